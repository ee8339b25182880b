"""Core Hookline service layer.

This module provides the WebhookService that wires storage, the delivery
engine, the dispatcher, the debouncer and the retry scheduler together,
and exposes the administrative operations used by the API.

Example:
    ```python
    from hookline.service import WebhookService

    async with WebhookService.create() as hooks:
        webhook = await hooks.create_webhook(
            name="Search indexer",
            url="https://search.example.com/hooks/cms",
            events=["page.published", "page.unpublished"],
        )

        # Domain code emits events; delivery happens in the background
        await hooks.dispatch("page.published", {"id": 42, "slug": "hello"})
    ```
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import pydantic

from hookline.config import Settings
from hookline.exceptions import NotFoundError, ValidationError
from hookline.models import (
    Delivery,
    DeliveryStats,
    DeliveryStatus,
    Webhook,
    WebhookHealth,
    utc_now,
)
from hookline.storage import WebhookStorage
from hookline.webhooks import DeliveryEngine, Dispatcher, RetryScheduler
from hookline.webhooks.debounce import Debouncer

logger = logging.getLogger(__name__)


def _validation_error(e: pydantic.ValidationError) -> ValidationError:
    error = e.errors()[0]
    field_name = ".".join(str(part) for part in error["loc"]) or "webhook"
    return ValidationError(field_name, error["msg"])


@dataclass
class WebhookService:
    """High-level webhook service.

    This service provides:
    - dispatch(): Queue an event for every subscribed webhook
    - dispatch_event(): Same, but coalesced by the debouncer when enabled
    - Webhook administration: create, update, enable/disable, delete
    - Delivery administration: history, manual retry, test events
    - Statistics and health per webhook

    Attributes:
        storage: Webhook and delivery storage.
        engine: HTTP delivery engine.
        settings: Configuration settings.
    """

    storage: WebhookStorage
    engine: DeliveryEngine
    settings: Settings

    scheduler: RetryScheduler = field(init=False)
    dispatcher: Dispatcher = field(init=False)
    debouncer: Debouncer = field(init=False)

    def __post_init__(self) -> None:
        self.scheduler = RetryScheduler(
            self.storage,
            self.engine,
            policy=self.settings.retry,
            settings=self.settings.scheduler,
        )
        self.dispatcher = Dispatcher(self.storage, on_dispatched=self._on_dispatched)
        self.debouncer = Debouncer(
            self.dispatcher,
            interval=self.settings.debounce.interval_seconds,
            max_wait=self.settings.debounce.max_wait_seconds,
        )

    @classmethod
    def create(cls, settings: Settings | None = None) -> WebhookService:
        """Create a WebhookService with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.
        """
        if settings is None:
            settings = Settings()

        return cls(
            storage=WebhookStorage(url=settings.database_url, echo=settings.database_echo),
            engine=DeliveryEngine.from_settings(settings),
            settings=settings,
        )

    async def initialize(self) -> None:
        """Initialize the service (database schema, etc.)."""
        await self.storage.initialize()

    async def start(self) -> None:
        """Start background delivery."""
        await self.scheduler.start()

    async def stop(self) -> None:
        """Flush debounced events and stop background delivery."""
        await self.debouncer.stop()
        await self.scheduler.stop()

    async def close(self) -> None:
        """Stop background work and release resources."""
        await self.stop()
        await self.engine.close()
        await self.storage.close()

    async def __aenter__(self) -> WebhookService:
        """Async context manager entry: initialize and start delivering."""
        await self.initialize()
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    def _on_dispatched(self, delivery_ids: list[str]) -> None:
        if self.scheduler.running:
            self.scheduler.wake()

    # ------------------------------------------------------------------
    # Event ingress
    # ------------------------------------------------------------------

    async def dispatch(self, event_type: str, data: Any) -> list[str]:
        """Queue an event for every active webhook subscribed to it.

        Returns:
            IDs of the created deliveries.
        """
        return await self.dispatcher.dispatch(event_type, data)

    async def dispatch_event(self, event_type: str, data: Any) -> list[str] | None:
        """Queue an event, coalescing rapid updates to the same entity.

        Returns:
            Delivery IDs when dispatched immediately, or None when the event
            was handed to the debouncer.
        """
        if not self.settings.debounce.enabled:
            return await self.dispatch(event_type, data)
        self.debouncer.dispatch(event_type, data)
        return None

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    async def create_webhook(
        self,
        name: str,
        url: str,
        events: list[str],
        secret: str | None = None,
        headers: dict[str, str] | None = None,
        active: bool = True,
    ) -> Webhook:
        """Register a webhook.

        A secret is generated when none is given.

        Raises:
            ValidationError: If the URL, name or event list is invalid.
        """
        values: dict[str, Any] = {
            "name": name,
            "url": url,
            "events": events,
            "headers": headers or {},
            "active": active,
        }
        if secret:
            values["secret"] = secret

        try:
            webhook = Webhook.model_validate(values)
        except pydantic.ValidationError as e:
            raise _validation_error(e) from e

        await self.storage.create_webhook(webhook)
        logger.info("Webhook created: %s (%s) for %s", webhook.id, webhook.name, webhook.events)
        return webhook

    async def get_webhook(self, webhook_id: str) -> Webhook:
        """Get a webhook.

        Raises:
            NotFoundError: If the webhook does not exist.
        """
        webhook = await self.storage.get_webhook(webhook_id)
        if webhook is None:
            raise NotFoundError("webhook", webhook_id)
        return webhook

    async def list_webhooks(
        self,
        active_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Webhook]:
        return await self.storage.list_webhooks(active_only=active_only, limit=limit, offset=offset)

    async def update_webhook(self, webhook_id: str, **updates: Any) -> Webhook:
        """Update a webhook's configuration.

        Raises:
            NotFoundError: If the webhook does not exist.
            ValidationError: If the merged configuration is invalid.
        """
        try:
            webhook = await self.storage.update_webhook(webhook_id, **updates)
        except pydantic.ValidationError as e:
            raise _validation_error(e) from e
        if webhook is None:
            raise NotFoundError("webhook", webhook_id)
        logger.info("Webhook updated: %s", webhook_id)
        return webhook

    async def set_webhook_active(self, webhook_id: str, active: bool) -> Webhook:
        """Enable or disable a webhook.

        Pending deliveries of a disabled webhook are dead-lettered when
        they next come due.
        """
        return await self.update_webhook(webhook_id, active=active)

    async def delete_webhook(self, webhook_id: str) -> None:
        """Delete a webhook and its delivery history.

        Raises:
            NotFoundError: If the webhook does not exist.
        """
        if not await self.storage.delete_webhook(webhook_id):
            raise NotFoundError("webhook", webhook_id)
        logger.info("Webhook deleted: %s", webhook_id)

    async def send_test(self, webhook_id: str, triggered_by: str | None = None) -> Delivery:
        """Queue a test event for one webhook.

        Raises:
            NotFoundError: If the webhook does not exist.
        """
        delivery_id = await self.dispatcher.dispatch_test(webhook_id, triggered_by=triggered_by)
        return await self.get_delivery(delivery_id)

    # ------------------------------------------------------------------
    # Deliveries
    # ------------------------------------------------------------------

    async def get_delivery(self, delivery_id: str, webhook_id: str | None = None) -> Delivery:
        """Get a delivery, optionally checking which webhook it belongs to.

        Raises:
            NotFoundError: If the delivery does not exist (for that webhook).
        """
        delivery = await self.storage.get_delivery(delivery_id)
        if delivery is None or (webhook_id is not None and delivery.webhook_id != webhook_id):
            raise NotFoundError("delivery", delivery_id)
        return delivery

    async def list_deliveries(
        self,
        webhook_id: str,
        status: DeliveryStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Delivery]:
        """Delivery history for a webhook, newest first.

        Raises:
            NotFoundError: If the webhook does not exist.
        """
        await self.get_webhook(webhook_id)
        return await self.storage.list_deliveries(
            webhook_id, status=status, limit=limit, offset=offset
        )

    async def retry_delivery(self, delivery_id: str, webhook_id: str | None = None) -> Delivery:
        """Manually retry a delivered or dead delivery.

        The delivery is reset to pending with zero attempts and becomes due
        immediately.

        Raises:
            NotFoundError: If the delivery does not exist (for that webhook).
            ValidationError: If the delivery is still pending.
        """
        await self.get_delivery(delivery_id, webhook_id=webhook_id)
        delivery = await self.storage.reset_delivery(delivery_id, now=utc_now())
        logger.info("Delivery %s reset for manual retry", delivery_id)
        if self.scheduler.running:
            self.scheduler.wake()
        return delivery

    async def recent_failures(self, limit: int = 20) -> list[Delivery]:
        return await self.storage.get_recent_failed_deliveries(limit=limit)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def get_stats(self, webhook_id: str, since: datetime | None = None) -> DeliveryStats:
        """Delivery statistics for a webhook.

        Raises:
            NotFoundError: If the webhook does not exist.
        """
        await self.get_webhook(webhook_id)
        return await self.storage.get_delivery_stats(webhook_id, since=since)

    async def health_summary(self, since: datetime | None = None) -> list[WebhookHealth]:
        """Delivery health for every webhook."""
        return await self.storage.get_health_summary(since=since)


__all__ = ["WebhookService"]
