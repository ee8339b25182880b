"""Event fan-out: one pending delivery per subscribed webhook.

Dispatching is a local database write and never performs network I/O,
so callers in request handlers are not slowed down by slow endpoints.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from hookline.exceptions import NotFoundError, StorageError
from hookline.models import (
    TEST_EVENT,
    Delivery,
    TestEventData,
    WebhookEvent,
    utc_now,
)

if TYPE_CHECKING:
    from hookline.storage import WebhookStorage

logger = logging.getLogger(__name__)

DispatchHook = Callable[[list[str]], Awaitable[None] | None]


class Dispatcher:
    """Turns domain events into pending deliveries.

    Example:
        ```python
        dispatcher = Dispatcher(storage, on_dispatched=lambda ids: scheduler.wake())
        delivery_ids = await dispatcher.dispatch("page.published", {"id": 42})
        ```
    """

    def __init__(
        self,
        storage: WebhookStorage,
        on_dispatched: DispatchHook | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            storage: Storage for webhooks and deliveries.
            on_dispatched: Called with the new delivery IDs after they are
                committed, typically to wake the scheduler.
            clock: Source of the current time.
        """
        self._storage = storage
        self._on_dispatched = on_dispatched
        self._clock = clock

    async def dispatch(self, event_type: str, data: Any) -> list[str]:
        """Create a pending delivery for every active webhook subscribed to an event.

        The event is serialized once and every delivery carries the same
        payload bytes. All deliveries are written in one transaction.

        Args:
            event_type: Event type, e.g. "page.published".
            data: JSON-serializable event data.

        Returns:
            IDs of the created deliveries. Empty if nothing subscribes.

        Raises:
            StorageError: If the deliveries could not be persisted.
        """
        webhooks = await self._storage.get_webhooks_for_event(event_type)
        if not webhooks:
            logger.debug("No webhooks subscribed to event %s", event_type)
            return []

        now = self._clock()
        payload = WebhookEvent(type=event_type, timestamp=now, data=data).to_payload()
        deliveries = [
            Delivery(
                webhook_id=webhook.id,
                event=event_type,
                payload=payload,
                next_retry_at=now,
                created_at=now,
                updated_at=now,
            )
            for webhook in webhooks
        ]
        return await self._persist(deliveries)

    async def dispatch_test(self, webhook_id: str, triggered_by: str | None = None) -> str:
        """Queue a test event for a single webhook.

        The test event bypasses subscriptions and the active flag check at
        dispatch time; an inactive webhook's test delivery is dead-lettered
        by the worker.

        Raises:
            NotFoundError: If the webhook does not exist.
        """
        webhook = await self._storage.get_webhook(webhook_id)
        if webhook is None:
            raise NotFoundError("webhook", webhook_id)

        now = self._clock()
        data = TestEventData(webhook_id=webhook.id, triggered_by=triggered_by, timestamp=now)
        payload = WebhookEvent(type=TEST_EVENT, timestamp=now, data=data).to_payload()
        delivery = Delivery(
            webhook_id=webhook.id,
            event=TEST_EVENT,
            payload=payload,
            next_retry_at=now,
            created_at=now,
            updated_at=now,
        )
        (delivery_id,) = await self._persist([delivery])
        return delivery_id

    async def _persist(self, deliveries: list[Delivery]) -> list[str]:
        event_type = deliveries[0].event
        try:
            await self._storage.create_deliveries(deliveries)
        except StorageError:
            logger.exception(
                "Failed to queue %d deliveries for event %s", len(deliveries), event_type
            )
            raise

        delivery_ids = [d.id for d in deliveries]
        logger.info("Queued %d deliveries for event %s", len(delivery_ids), event_type)

        if self._on_dispatched is not None:
            result = self._on_dispatched(delivery_ids)
            if result is not None:
                await result
        return delivery_ids
