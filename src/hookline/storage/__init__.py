"""Storage backends for Hookline.

This module provides the storage layer for persisting webhooks and their
deliveries through SQLAlchemy's asyncio extension.

Example:
    ```python
    from hookline.storage import WebhookStorage

    async with WebhookStorage() as storage:
        await storage.create_webhook(webhook)
        deliveries = await storage.list_deliveries(webhook.id)
    ```
"""

from .client import WebhookStorage
from .delivery import TERMINAL_STATUSES, attempt_transition
from .tables import Base, DeliveryRow, WebhookRow

__all__ = [
    "WebhookStorage",
    "attempt_transition",
    "TERMINAL_STATUSES",
    "Base",
    "WebhookRow",
    "DeliveryRow",
]
