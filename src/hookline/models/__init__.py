"""Data models for Hookline.

Core Types:
    - Webhook: Subscription configuration (URL, secret, events, headers)
    - Delivery: One event queued for one webhook, with attempt diagnostics
    - WebhookEvent: The {type, timestamp, data} envelope sent to endpoints

Supporting Types:
    - DeliveryStatus, Outcome, AttemptResult: Delivery state and attempt results
    - DeliveryStats, WebhookHealth: Per-webhook statistics
    - PageEventData, MediaEventData, FormEventData, UserEventData, TestEventData
"""

from .base import generate_id, generate_secret, utc_now
from .delivery import (
    AttemptResult,
    Delivery,
    DeliveryStats,
    DeliveryStatus,
    HealthStatus,
    Outcome,
    WebhookHealth,
    calculate_health_status,
)
from .events import (
    ALL_EVENT_TYPES,
    EVENT_DESCRIPTIONS,
    FORM_SUBMITTED,
    MEDIA_DELETED,
    MEDIA_UPLOADED,
    PAGE_CREATED,
    PAGE_DELETED,
    PAGE_PUBLISHED,
    PAGE_UNPUBLISHED,
    PAGE_UPDATED,
    TEST_EVENT,
    USER_CREATED,
    USER_DELETED,
    FormEventData,
    MediaEventData,
    PageEventData,
    TestEventData,
    UserEventData,
    WebhookEvent,
)
from .webhook import Webhook

__all__ = [
    # Helpers
    "generate_id",
    "generate_secret",
    "utc_now",
    # Core types
    "Webhook",
    "Delivery",
    "WebhookEvent",
    # Delivery state
    "AttemptResult",
    "DeliveryStatus",
    "Outcome",
    "DeliveryStats",
    "HealthStatus",
    "WebhookHealth",
    "calculate_health_status",
    # Event types
    "ALL_EVENT_TYPES",
    "EVENT_DESCRIPTIONS",
    "PAGE_CREATED",
    "PAGE_UPDATED",
    "PAGE_DELETED",
    "PAGE_PUBLISHED",
    "PAGE_UNPUBLISHED",
    "MEDIA_UPLOADED",
    "MEDIA_DELETED",
    "FORM_SUBMITTED",
    "USER_CREATED",
    "USER_DELETED",
    "TEST_EVENT",
    # Event payloads
    "PageEventData",
    "MediaEventData",
    "FormEventData",
    "UserEventData",
    "TestEventData",
]
