"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from hookline.models import Delivery, DeliveryStats, DeliveryStatus, Webhook, WebhookHealth


class HealthResponse(BaseModel):
    """Service health."""

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "unhealthy"]
    version: str
    storage_connected: bool
    scheduler_running: bool = False


class EventRequest(BaseModel):
    """Request body for emitting a domain event.

    Attributes:
        type: Event type, e.g. "page.published".
        data: Event data sent to subscribers.
        debounce: Coalesce with other recent events for the same entity.
    """

    model_config = ConfigDict(extra="forbid")

    type: str = Field(min_length=1, max_length=100, description="Event type")
    data: Any = Field(default=None, description="Event data")
    debounce: bool = Field(default=False, description="Coalesce rapid events per entity")


class EventResponse(BaseModel):
    """Result of emitting an event."""

    model_config = ConfigDict(extra="forbid")

    delivery_ids: list[str] = Field(default_factory=list)
    debounced: bool = False


class WebhookCreateRequest(BaseModel):
    """Request body for registering a webhook.

    Attributes:
        name: Human-readable label.
        url: Endpoint that receives deliveries.
        events: Subscribed event types.
        secret: Shared secret. Generated when omitted.
        headers: Extra static headers.
        active: Whether the webhook receives events.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=200)
    url: str = Field(min_length=1)
    events: list[str] = Field(min_length=1)
    secret: str | None = Field(default=None, min_length=16)
    headers: dict[str, str] = Field(default_factory=dict)
    active: bool = True


class WebhookUpdateRequest(BaseModel):
    """Request body for editing a webhook. Omitted fields are unchanged."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=200)
    url: str | None = None
    events: list[str] | None = None
    secret: str | None = Field(default=None, min_length=16)
    headers: dict[str, str] | None = None
    active: bool | None = None


class WebhookResponse(BaseModel):
    """A webhook as returned by the API. The secret is never included."""

    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    url: str
    events: list[str]
    headers: dict[str, str]
    active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_webhook(cls, webhook: Webhook) -> WebhookResponse:
        return cls(
            id=webhook.id,
            name=webhook.name,
            url=str(webhook.url),
            events=list(webhook.events),
            headers=dict(webhook.headers),
            active=webhook.active,
            created_at=webhook.created_at,
            updated_at=webhook.updated_at,
        )


class WebhookCreatedResponse(WebhookResponse):
    """Returned once, on creation: includes the signing secret."""

    secret: str

    @classmethod
    def from_webhook(cls, webhook: Webhook) -> WebhookCreatedResponse:
        base = WebhookResponse.from_webhook(webhook)
        return cls(**base.model_dump(), secret=webhook.secret)


class WebhookListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    webhooks: list[WebhookResponse]
    count: int


class DeliveryResponse(BaseModel):
    """A delivery with its most recent attempt diagnostics."""

    model_config = ConfigDict(extra="forbid")

    id: str
    webhook_id: str
    event: str
    status: DeliveryStatus
    attempts: int
    payload: Any
    next_retry_at: datetime | None
    response_code: int | None
    response_body: str | None
    error_message: str | None
    delivered_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_delivery(cls, delivery: Delivery) -> DeliveryResponse:
        return cls(
            id=delivery.id,
            webhook_id=delivery.webhook_id,
            event=delivery.event,
            status=delivery.status,
            attempts=delivery.attempts,
            payload=delivery.payload_json(),
            next_retry_at=delivery.next_retry_at,
            response_code=delivery.response_code,
            response_body=delivery.response_body,
            error_message=delivery.error_message,
            delivered_at=delivery.delivered_at,
            created_at=delivery.created_at,
            updated_at=delivery.updated_at,
        )


class DeliveryListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    deliveries: list[DeliveryResponse]
    count: int


class TestEventRequest(BaseModel):
    """Request body for sending a test event."""

    __test__ = False  # keep pytest from collecting this model

    model_config = ConfigDict(extra="forbid")

    triggered_by: str | None = Field(default=None, max_length=200)


class WebhookStatsResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    webhook_id: str
    stats: DeliveryStats


class HealthSummaryResponse(BaseModel):
    """Delivery health for every webhook."""

    model_config = ConfigDict(extra="forbid")

    webhooks: list[WebhookHealth]
    unhealthy: int = Field(description="Webhooks with red health")
