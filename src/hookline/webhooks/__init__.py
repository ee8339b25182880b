"""Webhook dispatch and delivery for Hookline.

Provides event fan-out, HMAC-signed HTTP delivery, exponential backoff
retry with dead-lettering, and event debouncing.

Example:
    ```python
    from hookline.webhooks import DeliveryEngine, Dispatcher, RetryScheduler

    scheduler = RetryScheduler(storage, DeliveryEngine())
    dispatcher = Dispatcher(storage, on_dispatched=lambda ids: scheduler.wake())

    await scheduler.start()
    await dispatcher.dispatch("page.published", {"id": 42, "title": "Hello"})
    ```
"""

from .backoff import calculate_backoff
from .debounce import Debouncer, entity_key
from .dispatcher import Dispatcher
from .engine import DeliveryEngine, HttpTransport, Transport, classify_status
from .scheduler import RetryScheduler
from .signing import (
    DELIVERY_ID_HEADER,
    EVENT_HEADER,
    SIGNATURE_HEADER,
    sign,
    verify_signature,
)

__all__ = [
    "calculate_backoff",
    "classify_status",
    "Debouncer",
    "DeliveryEngine",
    "Dispatcher",
    "entity_key",
    "HttpTransport",
    "RetryScheduler",
    "sign",
    "Transport",
    "verify_signature",
    "SIGNATURE_HEADER",
    "EVENT_HEADER",
    "DELIVERY_ID_HEADER",
]
