"""Hookline: webhook event dispatch and delivery.

Propagates internal domain events to externally configured HTTP endpoints
with HMAC-signed payloads, at-least-once delivery, exponential backoff
retry and dead-lettering.

Quick Start:
    from hookline.service import WebhookService

    async with WebhookService.create() as hooks:
        await hooks.create_webhook(
            name="Cache purge",
            url="https://cdn.example.com/purge",
            events=["page.published", "page.deleted"],
        )

        # Queue the event; workers deliver it in the background
        await hooks.dispatch("page.published", {"id": 42, "slug": "hello"})

Delivery lifecycle:
    - pending: waiting for its next attempt
    - delivered: an attempt got a 2xx response
    - dead: a 4xx response, a disabled webhook, or retries exhausted
"""

__version__ = "0.1.0"

# Configuration
from .config import DebounceSettings, RetryPolicy, SchedulerSettings, Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    DeliveryError,
    HooklineError,
    NotFoundError,
    StorageError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    configure_logging,
    get_logger,
    logger,
    unbind_context,
)

# Models
from .models import (
    AttemptResult,
    Delivery,
    DeliveryStats,
    DeliveryStatus,
    Outcome,
    Webhook,
    WebhookEvent,
    WebhookHealth,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "RetryPolicy",
    "SchedulerSettings",
    "DebounceSettings",
    "settings",
    # Exceptions
    "HooklineError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "ConfigurationError",
    "DeliveryError",
    # Logging
    "configure_logging",
    "get_logger",
    "logger",
    "bind_context",
    "unbind_context",
    # Models
    "Webhook",
    "Delivery",
    "DeliveryStatus",
    "WebhookEvent",
    "AttemptResult",
    "Outcome",
    "DeliveryStats",
    "WebhookHealth",
]
