"""Webhook subscription model.

A webhook is an externally configured HTTP endpoint together with the
event types it subscribes to. The dispatch subsystem only reads webhooks;
they are created, edited and deleted by an administrator.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator

from .base import generate_id, generate_secret, utc_now

# Message framing is derived from the payload by the HTTP client
RESERVED_HEADERS = frozenset({"content-length", "transfer-encoding", "host", "connection"})


class Webhook(BaseModel):
    """Configuration for a registered webhook.

    Attributes:
        id: Unique identifier for this webhook.
        name: Human-readable label.
        url: HTTP(S) endpoint that receives event deliveries.
        secret: Shared secret for HMAC-SHA256 signatures. Never sent.
        events: Event types this webhook subscribes to.
        headers: Extra static headers sent with every delivery.
        active: Inactive webhooks never receive new deliveries.
        created_at: When the webhook was registered.
        updated_at: When the webhook was last modified.
    """

    model_config = ConfigDict(extra="forbid", from_attributes=True)

    id: str = Field(default_factory=lambda: generate_id("whk"))
    name: str = Field(min_length=1, max_length=200, description="Human-readable label")
    url: HttpUrl = Field(description="Endpoint that receives events")
    secret: str = Field(
        default_factory=generate_secret,
        min_length=1,
        repr=False,
        description="Shared secret for HMAC-SHA256 signatures",
    )
    events: list[str] = Field(min_length=1, description="Subscribed event types")
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Extra headers sent with every delivery",
    )
    active: bool = Field(default=True, description="Whether the webhook receives events")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("events")
    @classmethod
    def _normalize_events(cls, events: list[str]) -> list[str]:
        """Strip whitespace, drop blanks and duplicates, keep order."""
        seen: list[str] = []
        for event in events:
            event = event.strip()
            if event and event not in seen:
                seen.append(event)
        if not seen:
            raise ValueError("at least one event type is required")
        return seen

    @field_validator("headers")
    @classmethod
    def _validate_headers(cls, headers: dict[str, str]) -> dict[str, str]:
        cleaned: dict[str, str] = {}
        for key, value in headers.items():
            key = key.strip()
            if not key:
                continue
            if any(c in key for c in ":\r\n ") or any(c in value for c in "\r\n"):
                raise ValueError(f"invalid header: {key!r}")
            if key.lower() in RESERVED_HEADERS:
                raise ValueError(f"reserved header: {key!r}")
            cleaned[key] = value.strip()
        return cleaned

    def subscribes_to(self, event_type: str) -> bool:
        """Check if this webhook is active and subscribed to the event type."""
        return self.active and event_type in self.events
