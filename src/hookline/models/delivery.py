"""Delivery records, attempt outcomes and delivery statistics."""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .base import generate_id, utc_now

HealthStatus = Literal["unknown", "green", "yellow", "red"]


class DeliveryStatus(str, Enum):
    """Lifecycle state of a delivery."""

    PENDING = "pending"  # Waiting for its next attempt
    DELIVERED = "delivered"  # Terminal: endpoint answered 2xx
    DEAD = "dead"  # Terminal: retries exhausted or permanent failure


class Outcome(str, Enum):
    """Classification of one HTTP attempt."""

    SUCCESS = "success"
    RETRYABLE = "retryable"
    PERMANENT = "permanent"


class Delivery(BaseModel):
    """One event queued for (or delivered to) one webhook.

    The payload is the exact body sent on every attempt; it is fixed when
    the delivery is created so that retries carry an identical signature.

    Attributes:
        id: Unique identifier for this delivery.
        webhook_id: Webhook this delivery belongs to.
        event: Event type being delivered.
        payload: Serialized JSON body.
        attempts: HTTP attempts made so far.
        status: Lifecycle state.
        next_retry_at: When the delivery is next due. None when terminal.
        response_code: Status code of the most recent response.
        response_body: Truncated body of the most recent response.
        error_message: Error from the most recent attempt.
        delivered_at: When a 2xx response was received.
        claim_token: Token of the worker currently processing the delivery.
        claimed_at: When the current claim was taken.
    """

    model_config = ConfigDict(extra="forbid", from_attributes=True)

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    webhook_id: str
    event: str
    payload: bytes
    attempts: int = Field(default=0, ge=0)
    status: DeliveryStatus = DeliveryStatus.PENDING
    next_retry_at: datetime | None = None
    response_code: int | None = None
    response_body: str | None = None
    error_message: str | None = None
    delivered_at: datetime | None = None
    claim_token: str | None = None
    claimed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status in (DeliveryStatus.DELIVERED, DeliveryStatus.DEAD)

    def payload_json(self) -> Any:
        """Decode the stored payload."""
        return json.loads(self.payload)


class AttemptResult(BaseModel):
    """What happened during a single delivery attempt.

    Attributes:
        outcome: Success, retryable failure or permanent failure.
        status_code: HTTP status code, if a response was received.
        response_body: Response body truncated for storage.
        error: Error description for failed attempts.
        duration_ms: Wall-clock time spent on the attempt.
    """

    model_config = ConfigDict(extra="forbid")

    outcome: Outcome
    status_code: int | None = None
    response_body: str | None = None
    error: str | None = None
    duration_ms: int = Field(default=0, ge=0)

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    @property
    def retryable(self) -> bool:
        return self.outcome is Outcome.RETRYABLE


def calculate_health_status(success_rate: float, total_deliveries: int) -> HealthStatus:
    """Health bucket for a webhook.

    green: >= 95% delivered, yellow: >= 80%, red: below 80%,
    unknown: no deliveries yet.
    """
    if total_deliveries == 0:
        return "unknown"
    if success_rate >= 95:
        return "green"
    if success_rate >= 80:
        return "yellow"
    return "red"


class DeliveryStats(BaseModel):
    """Delivery counts for one webhook."""

    model_config = ConfigDict(extra="ignore")  # computed fields round-trip through dumps

    total: int = Field(default=0, ge=0)
    delivered: int = Field(default=0, ge=0)
    pending: int = Field(default=0, ge=0)
    dead: int = Field(default=0, ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success_rate(self) -> float:
        """Percentage of deliveries that were delivered."""
        if self.total == 0:
            return 0.0
        return round(self.delivered / self.total * 100, 2)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def health(self) -> HealthStatus:
        return calculate_health_status(self.success_rate, self.total)


class WebhookHealth(BaseModel):
    """Per-webhook health summary row."""

    model_config = ConfigDict(extra="forbid")

    webhook_id: str
    name: str
    active: bool
    stats: DeliveryStats
