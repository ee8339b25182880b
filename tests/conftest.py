"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from typing import Any

import pytest
import pytest_asyncio

from hookline.models import Delivery, Webhook, WebhookEvent
from hookline.storage import WebhookStorage

TEST_SECRET = "whsec_test_secret_0123456789"


class FakeClock:
    """Settable clock for schedulers and storage calls."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        from datetime import timedelta

        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_webhook() -> Callable[..., Webhook]:
    """Factory for webhooks with sensible defaults."""

    def _make(**overrides: Any) -> Webhook:
        values: dict[str, Any] = {
            "name": "Test hook",
            "url": "https://hooks.example.com/receive",
            "secret": TEST_SECRET,
            "events": ["page.published"],
        }
        values.update(overrides)
        return Webhook(**values)

    return _make


@pytest.fixture
def make_delivery() -> Callable[..., Delivery]:
    """Factory for pending deliveries."""

    def _make(webhook: Webhook, **overrides: Any) -> Delivery:
        event = overrides.pop("event", "page.published")
        now = overrides.pop("now", datetime(2025, 1, 1, 12, 0, tzinfo=UTC))
        values: dict[str, Any] = {
            "webhook_id": webhook.id,
            "event": event,
            "payload": WebhookEvent(type=event, timestamp=now, data={"id": 1}).to_payload(),
            "next_retry_at": now,
            "created_at": now,
            "updated_at": now,
        }
        values.update(overrides)
        return Delivery(**values)

    return _make


@pytest_asyncio.fixture
async def storage(tmp_path) -> AsyncIterator[WebhookStorage]:
    """File-backed SQLite storage.

    A file rather than :memory: so concurrent sessions use separate
    connections, as they would against a real database.
    """
    store = WebhookStorage(url=f"sqlite+aiosqlite:///{tmp_path / 'hookline.db'}")
    await store.initialize()
    yield store
    await store.close()
