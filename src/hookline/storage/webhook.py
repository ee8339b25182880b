"""Webhook storage operations for Hookline.

Provides methods to store, retrieve, and manage webhook configurations.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, func, select

from hookline.models import Webhook, utc_now

from .retry import db_retry
from .tables import DeliveryRow, WebhookRow


def _webhook_values(webhook: Webhook) -> dict[str, Any]:
    values = webhook.model_dump()
    values["url"] = str(webhook.url)
    return values


class WebhookMixin:
    """Mixin providing webhook operations for WebhookStorage.

    This mixin expects the following from the base class:
    - _transaction() -> async context manager yielding an AsyncSession
    """

    _transaction: Any

    @db_retry
    async def create_webhook(self, webhook: Webhook) -> Webhook:
        """Store a new webhook configuration.

        Args:
            webhook: Validated webhook to store.

        Returns:
            The stored webhook.
        """
        async with self._transaction() as session:
            session.add(WebhookRow(**_webhook_values(webhook)))
        return webhook

    @db_retry
    async def get_webhook(self, webhook_id: str) -> Webhook | None:
        """Get a webhook by ID.

        Returns:
            Webhook or None if not found.
        """
        async with self._transaction() as session:
            row = await session.get(WebhookRow, webhook_id)
            return Webhook.model_validate(row) if row is not None else None

    @db_retry
    async def list_webhooks(
        self,
        active_only: bool = False,
        limit: int | None = 100,
        offset: int = 0,
    ) -> list[Webhook]:
        """List webhooks ordered by name.

        Args:
            active_only: If True, only return active webhooks.
            limit: Maximum webhooks to return. None for no limit.
            offset: Number of webhooks to skip.
        """
        stmt = select(WebhookRow).order_by(WebhookRow.name, WebhookRow.id)
        if active_only:
            stmt = stmt.where(WebhookRow.active.is_(True))
        if limit is not None:
            stmt = stmt.limit(limit)
        stmt = stmt.offset(offset)

        async with self._transaction() as session:
            rows = (await session.scalars(stmt)).all()
            return [Webhook.model_validate(row) for row in rows]

    async def get_webhooks_for_event(self, event_type: str) -> list[Webhook]:
        """Get all active webhooks that subscribe to an event type.

        Subscriptions live in a JSON column, so matching happens here
        rather than in SQL.
        """
        webhooks = await self.list_webhooks(active_only=True, limit=None)
        return [wh for wh in webhooks if wh.subscribes_to(event_type)]

    @db_retry
    async def update_webhook(self, webhook_id: str, **updates: Any) -> Webhook | None:
        """Update a webhook configuration.

        The merged configuration is re-validated before it is written, so an
        update can never store an invalid URL or an empty event list.

        Args:
            webhook_id: ID of the webhook to update.
            **updates: Fields to update. None values are ignored.

        Returns:
            Updated Webhook or None if not found.

        Raises:
            pydantic.ValidationError: If the merged configuration is invalid.
        """
        updates.pop("id", None)
        updates.pop("created_at", None)

        async with self._transaction() as session:
            row = await session.get(WebhookRow, webhook_id, with_for_update=True)
            if row is None:
                return None

            current = _webhook_values(Webhook.model_validate(row))
            current.update({k: v for k, v in updates.items() if v is not None})
            current["updated_at"] = utc_now()
            webhook = Webhook.model_validate(current)

            for key, value in _webhook_values(webhook).items():
                setattr(row, key, value)

        return webhook

    async def set_webhook_active(self, webhook_id: str, active: bool) -> Webhook | None:
        """Enable or disable a webhook."""
        return await self.update_webhook(webhook_id, active=active)

    @db_retry
    async def delete_webhook(self, webhook_id: str) -> bool:
        """Delete a webhook and all of its deliveries.

        Returns:
            True if deleted, False if not found.
        """
        async with self._transaction() as session:
            await session.execute(delete(DeliveryRow).where(DeliveryRow.webhook_id == webhook_id))
            result = await session.execute(delete(WebhookRow).where(WebhookRow.id == webhook_id))
            return bool(result.rowcount)

    @db_retry
    async def count_webhooks(self, active_only: bool = False) -> int:
        stmt = select(func.count()).select_from(WebhookRow)
        if active_only:
            stmt = stmt.where(WebhookRow.active.is_(True))
        async with self._transaction() as session:
            return int((await session.execute(stmt)).scalar_one())
