"""Event envelope, well-known event types and typed event payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .base import utc_now

PAGE_CREATED = "page.created"
PAGE_UPDATED = "page.updated"
PAGE_DELETED = "page.deleted"
PAGE_PUBLISHED = "page.published"
PAGE_UNPUBLISHED = "page.unpublished"
MEDIA_UPLOADED = "media.uploaded"
MEDIA_DELETED = "media.deleted"
FORM_SUBMITTED = "form.submitted"
USER_CREATED = "user.created"
USER_DELETED = "user.deleted"

# Sent by the "send test event" admin action; never subscribed to.
TEST_EVENT = "test"

EVENT_DESCRIPTIONS: dict[str, str] = {
    PAGE_CREATED: "When a new page is created",
    PAGE_UPDATED: "When a page is updated",
    PAGE_DELETED: "When a page is deleted",
    PAGE_PUBLISHED: "When a page is published",
    PAGE_UNPUBLISHED: "When a page is unpublished",
    MEDIA_UPLOADED: "When media is uploaded",
    MEDIA_DELETED: "When media is deleted",
    FORM_SUBMITTED: "When a form is submitted",
    USER_CREATED: "When a user is created",
    USER_DELETED: "When a user is deleted",
}

ALL_EVENT_TYPES: list[str] = list(EVENT_DESCRIPTIONS)


class WebhookEvent(BaseModel):
    """Envelope sent as the body of every delivery.

    Attributes:
        type: Event type, e.g. "page.published".
        timestamp: When the event was emitted (UTC).
        data: Event-specific payload.
    """

    model_config = ConfigDict(extra="forbid")

    type: str = Field(min_length=1)
    timestamp: datetime = Field(default_factory=utc_now)
    data: Any = None

    def to_payload(self) -> bytes:
        """Serialize to the canonical JSON bytes stored with each delivery."""
        return self.model_dump_json().encode("utf-8")


class PageEventData(BaseModel):
    """Data for page.* events."""

    id: int
    title: str
    slug: str
    status: str
    author_id: int
    author_email: str | None = None
    language_code: str | None = None
    published_at: datetime | None = None


class MediaEventData(BaseModel):
    """Data for media.* events."""

    id: int
    uuid: str
    filename: str
    mime_type: str
    size: int
    uploader_id: int


class FormEventData(BaseModel):
    """Data for form.submitted events."""

    form_id: int
    form_name: str
    form_slug: str
    submission_id: int
    data: dict[str, str] = Field(default_factory=dict)
    submitted_at: datetime = Field(default_factory=utc_now)


class UserEventData(BaseModel):
    """Data for user.* events."""

    id: int
    email: str
    name: str
    role: str


class TestEventData(BaseModel):
    """Data for the administrative test event."""

    __test__ = False  # keep pytest from collecting this model

    message: str = "This is a test webhook delivery"
    webhook_id: str
    triggered_by: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)
