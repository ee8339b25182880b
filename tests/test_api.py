"""Tests for the Hookline REST API."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from hookline.api.app import create_app
from hookline.api.router import set_service
from hookline.config import Settings
from hookline.exceptions import NotFoundError, StorageError, ValidationError
from hookline.models import Delivery, DeliveryStats, DeliveryStatus, Webhook, WebhookEvent, WebhookHealth
from hookline.service import WebhookService

from conftest import TEST_SECRET

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


def make_webhook(**overrides) -> Webhook:
    values = {
        "id": "whk_1",
        "name": "Search indexer",
        "url": "https://search.example.com/hooks",
        "secret": TEST_SECRET,
        "events": ["page.published"],
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(overrides)
    return Webhook(**values)


def make_delivery(**overrides) -> Delivery:
    values = {
        "id": "dlv_1",
        "webhook_id": "whk_1",
        "event": "page.published",
        "payload": WebhookEvent(type="page.published", timestamp=NOW, data={"id": 1}).to_payload(),
        "next_retry_at": NOW,
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(overrides)
    return Delivery(**values)


@pytest.fixture
def mock_service():
    """Create a mock WebhookService."""
    service = MagicMock(spec=WebhookService)
    for name in (
        "dispatch",
        "dispatch_event",
        "create_webhook",
        "get_webhook",
        "list_webhooks",
        "update_webhook",
        "delete_webhook",
        "send_test",
        "list_deliveries",
        "retry_delivery",
        "get_stats",
        "health_summary",
    ):
        setattr(service, name, AsyncMock())
    service.scheduler = MagicMock()
    service.scheduler.running = True
    return service


@pytest.fixture
def client(mock_service):
    """Test client with a mocked service. The lifespan is not run."""
    app = create_app(Settings(_env_file=None, env="test"))
    set_service(mock_service)
    yield TestClient(app)
    set_service(None)


class TestHealthEndpoint:
    def test_health_when_service_initialized(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["storage_connected"] is True
        assert data["scheduler_running"] is True
        assert "version" in data

    def test_health_when_service_not_initialized(self):
        app = create_app(Settings(_env_file=None, env="test"))
        set_service(None)

        response = TestClient(app).get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "unhealthy"

    def test_endpoints_unavailable_without_service(self):
        app = create_app(Settings(_env_file=None, env="test"))
        set_service(None)

        response = TestClient(app).get("/api/v1/webhooks")

        assert response.status_code == 503


class TestEventsEndpoint:
    def test_emit_event(self, client, mock_service):
        mock_service.dispatch.return_value = ["dlv_1", "dlv_2"]

        response = client.post(
            "/api/v1/events", json={"type": "page.published", "data": {"id": 42}}
        )

        assert response.status_code == 202
        assert response.json() == {"delivery_ids": ["dlv_1", "dlv_2"], "debounced": False}
        mock_service.dispatch.assert_awaited_once_with("page.published", {"id": 42})

    def test_emit_debounced_event(self, client, mock_service):
        mock_service.dispatch_event.return_value = None

        response = client.post(
            "/api/v1/events",
            json={"type": "page.updated", "data": {"id": 42}, "debounce": True},
        )

        assert response.status_code == 202
        assert response.json() == {"delivery_ids": [], "debounced": True}
        mock_service.dispatch.assert_not_called()

    def test_emit_event_requires_type(self, client):
        response = client.post("/api/v1/events", json={"data": {}})
        assert response.status_code == 422

    def test_storage_failure_is_503_when_transient(self, client, mock_service):
        mock_service.dispatch.side_effect = StorageError("database is locked", transient=True)

        response = client.post("/api/v1/events", json={"type": "page.published"})

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "storage_error"


class TestWebhookEndpoints:
    def test_create_returns_secret_once(self, client, mock_service):
        mock_service.create_webhook.return_value = make_webhook()

        response = client.post(
            "/api/v1/webhooks",
            json={
                "name": "Search indexer",
                "url": "https://search.example.com/hooks",
                "events": ["page.published"],
            },
        )

        assert response.status_code == 201
        assert response.json()["secret"] == TEST_SECRET

        mock_service.get_webhook.return_value = make_webhook()
        fetched = client.get("/api/v1/webhooks/whk_1")
        assert fetched.status_code == 200
        assert "secret" not in fetched.json()

    def test_create_validation_error(self, client, mock_service):
        mock_service.create_webhook.side_effect = ValidationError("url", "invalid URL")

        response = client.post(
            "/api/v1/webhooks",
            json={"name": "x", "url": "nope", "events": ["page.published"]},
        )

        assert response.status_code == 400
        assert response.json()["error"]["field"] == "url"

    def test_create_rejects_short_secret(self, client):
        response = client.post(
            "/api/v1/webhooks",
            json={
                "name": "x",
                "url": "https://example.com",
                "events": ["page.published"],
                "secret": "short",
            },
        )
        assert response.status_code == 422

    def test_list_webhooks(self, client, mock_service):
        mock_service.list_webhooks.return_value = [make_webhook(), make_webhook(id="whk_2")]

        response = client.get("/api/v1/webhooks?active_only=true&limit=10")

        assert response.status_code == 200
        assert response.json()["count"] == 2
        mock_service.list_webhooks.assert_awaited_once_with(active_only=True, limit=10, offset=0)

    def test_get_missing_webhook(self, client, mock_service):
        mock_service.get_webhook.side_effect = NotFoundError("webhook", "whk_x")

        response = client.get("/api/v1/webhooks/whk_x")

        assert response.status_code == 404
        assert response.json()["error"]["resource_id"] == "whk_x"

    def test_update_passes_only_given_fields(self, client, mock_service):
        mock_service.update_webhook.return_value = make_webhook(active=False)

        response = client.patch("/api/v1/webhooks/whk_1", json={"active": False})

        assert response.status_code == 200
        assert response.json()["active"] is False
        mock_service.update_webhook.assert_awaited_once_with("whk_1", active=False)

    def test_delete_webhook(self, client, mock_service):
        response = client.delete("/api/v1/webhooks/whk_1")

        assert response.status_code == 204
        mock_service.delete_webhook.assert_awaited_once_with("whk_1")

    def test_send_test_event(self, client, mock_service):
        mock_service.send_test.return_value = make_delivery(event="test")

        response = client.post("/api/v1/webhooks/whk_1/test", json={"triggered_by": "admin"})

        assert response.status_code == 202
        assert response.json()["event"] == "test"
        mock_service.send_test.assert_awaited_once_with("whk_1", triggered_by="admin")

    def test_send_test_event_without_body(self, client, mock_service):
        mock_service.send_test.return_value = make_delivery(event="test")

        response = client.post("/api/v1/webhooks/whk_1/test")

        assert response.status_code == 202
        mock_service.send_test.assert_awaited_once_with("whk_1", triggered_by=None)

    def test_health_summary_not_taken_for_webhook_id(self, client, mock_service):
        mock_service.health_summary.return_value = [
            WebhookHealth(
                webhook_id="whk_1",
                name="a",
                active=True,
                stats=DeliveryStats(total=10, delivered=5, dead=5),
            ),
            WebhookHealth(webhook_id="whk_2", name="b", active=True, stats=DeliveryStats()),
        ]

        response = client.get("/api/v1/webhooks/health")

        assert response.status_code == 200
        data = response.json()
        assert data["unhealthy"] == 1
        assert data["webhooks"][0]["stats"]["health"] == "red"
        mock_service.get_webhook.assert_not_called()
        mock_service.health_summary.assert_awaited_once_with(since=None)

    def test_health_summary_since(self, client, mock_service):
        mock_service.health_summary.return_value = []

        response = client.get("/api/v1/webhooks/health?since=2025-01-01T12:00:00Z")

        assert response.status_code == 200
        assert response.json() == {"webhooks": [], "unhealthy": 0}
        mock_service.health_summary.assert_awaited_once_with(
            since=datetime(2025, 1, 1, 12, tzinfo=UTC)
        )


class TestDeliveryEndpoints:
    def test_list_deliveries_with_status_filter(self, client, mock_service):
        mock_service.list_deliveries.return_value = [
            make_delivery(status=DeliveryStatus.DEAD, attempts=5, error_message="HTTP 503")
        ]

        response = client.get("/api/v1/webhooks/whk_1/deliveries?status=dead")

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["deliveries"][0]["payload"]["data"] == {"id": 1}
        assert data["deliveries"][0]["error_message"] == "HTTP 503"
        mock_service.list_deliveries.assert_awaited_once_with(
            "whk_1", status=DeliveryStatus.DEAD, limit=50, offset=0
        )

    def test_list_deliveries_rejects_unknown_status(self, client):
        response = client.get("/api/v1/webhooks/whk_1/deliveries?status=lost")
        assert response.status_code == 422

    def test_stats(self, client, mock_service):
        mock_service.get_stats.return_value = DeliveryStats(total=4, delivered=3, pending=1)

        response = client.get("/api/v1/webhooks/whk_1/stats")

        assert response.status_code == 200
        stats = response.json()["stats"]
        assert stats["success_rate"] == 75.0
        assert stats["health"] == "red"
        mock_service.get_stats.assert_awaited_once_with("whk_1", since=None)

    def test_stats_since(self, client, mock_service):
        mock_service.get_stats.return_value = DeliveryStats(total=1, delivered=1)

        response = client.get("/api/v1/webhooks/whk_1/stats?since=2025-01-01T00:00:00Z")

        assert response.status_code == 200
        mock_service.get_stats.assert_awaited_once_with(
            "whk_1", since=datetime(2025, 1, 1, tzinfo=UTC)
        )

    def test_stats_rejects_invalid_since(self, client):
        response = client.get("/api/v1/webhooks/whk_1/stats?since=yesterday")
        assert response.status_code == 422

    def test_retry_delivery(self, client, mock_service):
        mock_service.retry_delivery.return_value = make_delivery()

        response = client.post("/api/v1/webhooks/whk_1/deliveries/dlv_1/retry")

        assert response.status_code == 200
        assert response.json()["status"] == "pending"
        mock_service.retry_delivery.assert_awaited_once_with("dlv_1", webhook_id="whk_1")

    def test_retry_pending_delivery_rejected(self, client, mock_service):
        mock_service.retry_delivery.side_effect = ValidationError(
            "status", "delivery is still pending"
        )

        response = client.post("/api/v1/webhooks/whk_1/deliveries/dlv_1/retry")

        assert response.status_code == 400
