"""Database storage client for Hookline.

This module provides the main WebhookStorage class that combines
all storage operations through mixins.

Example:
    ```python
    from hookline.storage import WebhookStorage

    async with WebhookStorage("sqlite+aiosqlite:///./hookline.db") as storage:
        await storage.create_webhook(webhook)
        due = await storage.get_due_deliveries(now, limit=50, claim_ttl=ttl)
    ```
"""

from __future__ import annotations

from .base import StorageBase
from .delivery import DeliveryMixin
from .webhook import WebhookMixin


class WebhookStorage(WebhookMixin, DeliveryMixin, StorageBase):
    """Async SQLAlchemy storage for webhooks and deliveries.

    This class combines functionality from multiple mixins:
    - WebhookMixin: create_webhook, get_webhook, list_webhooks, update_webhook, etc.
    - DeliveryMixin: create_deliveries, claim_delivery, record_attempt,
      reset_delivery, get_delivery_stats, etc.

    Example:
        ```python
        storage = WebhookStorage()
        await storage.initialize()

        webhook = await storage.create_webhook(
            Webhook(name="Site rebuild", url="https://ci.example.com/hook", events=["page.published"])
        )

        await storage.close()
        ```
    """

    async def __aenter__(self) -> WebhookStorage:
        await self.initialize()
        return self
