"""Tests for Hookline data models."""

import json
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from hookline.models import (
    ALL_EVENT_TYPES,
    PAGE_PUBLISHED,
    AttemptResult,
    Delivery,
    DeliveryStats,
    DeliveryStatus,
    FormEventData,
    Outcome,
    PageEventData,
    TestEventData,
    Webhook,
    WebhookEvent,
    calculate_health_status,
    generate_id,
    generate_secret,
)


class TestHelpers:
    def test_generate_id_prefix(self):
        webhook_id = generate_id("whk")
        assert webhook_id.startswith("whk_")
        assert len(webhook_id) == 16

    def test_generate_id_unique(self):
        assert generate_id("dlv") != generate_id("dlv")

    def test_generate_secret(self):
        secret = generate_secret()
        assert len(secret) == 64
        int(secret, 16)


class TestWebhook:
    """Tests for Webhook model."""

    def test_defaults(self):
        webhook = Webhook(name="Indexer", url="https://example.com/hook", events=[PAGE_PUBLISHED])
        assert webhook.id.startswith("whk_")
        assert webhook.active is True
        assert webhook.headers == {}
        assert len(webhook.secret) == 64

    def test_secret_hidden_from_repr(self):
        webhook = Webhook(
            name="Indexer", url="https://example.com/hook", secret="s3cret-value", events=["x"]
        )
        assert "s3cret-value" not in repr(webhook)

    def test_invalid_url_rejected(self):
        with pytest.raises(ValidationError):
            Webhook(name="Bad", url="not a url", events=[PAGE_PUBLISHED])

    def test_non_http_scheme_rejected(self):
        with pytest.raises(ValidationError):
            Webhook(name="Bad", url="ftp://example.com/hook", events=[PAGE_PUBLISHED])

    def test_empty_events_rejected(self):
        with pytest.raises(ValidationError):
            Webhook(name="Empty", url="https://example.com/hook", events=[])

    def test_blank_events_rejected(self):
        with pytest.raises(ValidationError):
            Webhook(name="Blank", url="https://example.com/hook", events=["  ", ""])

    def test_events_normalized(self):
        webhook = Webhook(
            name="Dupes",
            url="https://example.com/hook",
            events=[" page.created", "page.created", "page.deleted "],
        )
        assert webhook.events == ["page.created", "page.deleted"]

    def test_header_injection_rejected(self):
        with pytest.raises(ValidationError):
            Webhook(
                name="Inject",
                url="https://example.com/hook",
                events=["x"],
                headers={"X-Token": "abc\r\nX-Evil: 1"},
            )

    def test_header_name_with_colon_rejected(self):
        with pytest.raises(ValidationError):
            Webhook(
                name="Inject",
                url="https://example.com/hook",
                events=["x"],
                headers={"X-Bad:Name": "1"},
            )

    @pytest.mark.parametrize(
        "name", ["Content-Length", "transfer-encoding", "HOST", "Connection"]
    )
    def test_framing_headers_rejected(self, name):
        with pytest.raises(ValidationError):
            Webhook(
                name="Framing",
                url="https://example.com/hook",
                events=["x"],
                headers={name: "1"},
            )

    def test_subscribes_to(self):
        webhook = Webhook(name="W", url="https://example.com/hook", events=["page.created"])
        assert webhook.subscribes_to("page.created")
        assert not webhook.subscribes_to("page.deleted")

    def test_inactive_subscribes_to_nothing(self):
        webhook = Webhook(
            name="W", url="https://example.com/hook", events=["page.created"], active=False
        )
        assert not webhook.subscribes_to("page.created")


class TestDelivery:
    def test_defaults(self):
        delivery = Delivery(webhook_id="whk_1", event="page.created", payload=b"{}")
        assert delivery.id.startswith("dlv_")
        assert delivery.status == DeliveryStatus.PENDING
        assert delivery.attempts == 0
        assert not delivery.is_terminal

    def test_terminal_states(self):
        for status in (DeliveryStatus.DELIVERED, DeliveryStatus.DEAD):
            delivery = Delivery(webhook_id="w", event="e", payload=b"{}", status=status)
            assert delivery.is_terminal

    def test_negative_attempts_rejected(self):
        with pytest.raises(ValidationError):
            Delivery(webhook_id="w", event="e", payload=b"{}", attempts=-1)

    def test_payload_json(self):
        delivery = Delivery(webhook_id="w", event="e", payload=b'{"type": "e", "data": 1}')
        assert delivery.payload_json() == {"type": "e", "data": 1}


class TestAttemptResult:
    def test_success(self):
        result = AttemptResult(outcome=Outcome.SUCCESS, status_code=200)
        assert result.succeeded
        assert not result.retryable

    def test_retryable(self):
        result = AttemptResult(outcome=Outcome.RETRYABLE, error="timeout")
        assert result.retryable
        assert not result.succeeded

    def test_permanent(self):
        result = AttemptResult(outcome=Outcome.PERMANENT, status_code=404)
        assert not result.retryable
        assert not result.succeeded


class TestWebhookEvent:
    def test_envelope_shape(self):
        ts = datetime(2025, 3, 1, 9, 30, tzinfo=UTC)
        event = WebhookEvent(type=PAGE_PUBLISHED, timestamp=ts, data={"id": 42})
        body = json.loads(event.to_payload())
        assert body["type"] == PAGE_PUBLISHED
        assert body["data"] == {"id": 42}
        assert body["timestamp"].startswith("2025-03-01T09:30:00")

    def test_typed_data_serialized(self):
        data = PageEventData(id=7, title="Hello", slug="hello", status="published", author_id=1)
        body = json.loads(WebhookEvent(type=PAGE_PUBLISHED, data=data).to_payload())
        assert body["data"]["slug"] == "hello"
        assert body["data"]["author_id"] == 1

    def test_serialization_is_stable(self):
        ts = datetime(2025, 3, 1, tzinfo=UTC)
        event = WebhookEvent(type="page.created", timestamp=ts, data={"b": 1, "a": 2})
        assert event.to_payload() == event.to_payload()

    def test_form_event_data(self):
        data = FormEventData(form_id=1, form_name="Contact", form_slug="contact", submission_id=99)
        assert data.data == {}

    def test_test_event_data(self):
        data = TestEventData(webhook_id="whk_1")
        assert data.message == "This is a test webhook delivery"

    def test_all_event_types(self):
        assert len(ALL_EVENT_TYPES) == 10
        assert "test" not in ALL_EVENT_TYPES


class TestDeliveryStats:
    def test_empty_is_unknown(self):
        stats = DeliveryStats()
        assert stats.success_rate == 0.0
        assert stats.health == "unknown"

    def test_success_rate(self):
        stats = DeliveryStats(total=3, delivered=2, dead=1)
        assert stats.success_rate == 66.67
        assert stats.health == "red"

    @pytest.mark.parametrize(
        ("rate", "total", "expected"),
        [
            (100.0, 10, "green"),
            (95.0, 20, "green"),
            (94.99, 20, "yellow"),
            (80.0, 5, "yellow"),
            (79.9, 5, "red"),
            (0.0, 0, "unknown"),
        ],
    )
    def test_health_thresholds(self, rate, total, expected):
        assert calculate_health_status(rate, total) == expected

    def test_dump_includes_computed_fields(self):
        dumped = DeliveryStats(total=4, delivered=4).model_dump()
        assert dumped["success_rate"] == 100.0
        assert dumped["health"] == "green"
