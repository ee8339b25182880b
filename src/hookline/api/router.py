"""FastAPI router for Hookline API endpoints."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from hookline import __version__
from hookline.models import DeliveryStatus
from hookline.service import WebhookService

from .schemas import (
    DeliveryListResponse,
    DeliveryResponse,
    EventRequest,
    EventResponse,
    HealthResponse,
    HealthSummaryResponse,
    TestEventRequest,
    WebhookCreatedResponse,
    WebhookCreateRequest,
    WebhookListResponse,
    WebhookResponse,
    WebhookStatsResponse,
    WebhookUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: WebhookService | None = None


def set_service(service: WebhookService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> WebhookService:
    """Dependency to get the WebhookService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[WebhookService, Depends(get_service)]


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health."""
    if _service is None:
        return HealthResponse(status="unhealthy", version=__version__, storage_connected=False)
    return HealthResponse(
        status="healthy",
        version=__version__,
        storage_connected=True,
        scheduler_running=_service.scheduler.running,
    )


@router.post(
    "/events",
    response_model=EventResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["events"],
)
async def emit_event(request: EventRequest, service: ServiceDep) -> EventResponse:
    """Emit a domain event to every subscribed webhook.

    Delivery happens in the background; the response lists the queued
    deliveries. Debounced events are queued later and return no IDs.
    """
    if request.debounce:
        delivery_ids = await service.dispatch_event(request.type, request.data)
        if delivery_ids is None:
            return EventResponse(debounced=True)
        return EventResponse(delivery_ids=delivery_ids)

    delivery_ids = await service.dispatch(request.type, request.data)
    return EventResponse(delivery_ids=delivery_ids)


@router.post(
    "/webhooks",
    response_model=WebhookCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def create_webhook(request: WebhookCreateRequest, service: ServiceDep) -> WebhookCreatedResponse:
    """Register a webhook.

    The response includes the signing secret. It is not returned again.
    """
    webhook = await service.create_webhook(
        name=request.name,
        url=request.url,
        events=request.events,
        secret=request.secret,
        headers=request.headers,
        active=request.active,
    )
    return WebhookCreatedResponse.from_webhook(webhook)


@router.get("/webhooks", response_model=WebhookListResponse, tags=["webhooks"])
async def list_webhooks(
    service: ServiceDep,
    active_only: bool = False,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> WebhookListResponse:
    webhooks = await service.list_webhooks(active_only=active_only, limit=limit, offset=offset)
    return WebhookListResponse(
        webhooks=[WebhookResponse.from_webhook(w) for w in webhooks],
        count=len(webhooks),
    )


# Declared before /webhooks/{webhook_id} so "health" is not taken for an ID
@router.get("/webhooks/health", response_model=HealthSummaryResponse, tags=["webhooks"])
async def webhooks_health(
    service: ServiceDep,
    since: datetime | None = None,
) -> HealthSummaryResponse:
    """Delivery health of every webhook, optionally for deliveries created since a time."""
    summary = await service.health_summary(since=since)
    return HealthSummaryResponse(
        webhooks=summary,
        unhealthy=sum(1 for h in summary if h.stats.health == "red"),
    )


@router.get("/webhooks/{webhook_id}", response_model=WebhookResponse, tags=["webhooks"])
async def get_webhook(webhook_id: str, service: ServiceDep) -> WebhookResponse:
    webhook = await service.get_webhook(webhook_id)
    return WebhookResponse.from_webhook(webhook)


@router.patch("/webhooks/{webhook_id}", response_model=WebhookResponse, tags=["webhooks"])
async def update_webhook(
    webhook_id: str,
    request: WebhookUpdateRequest,
    service: ServiceDep,
) -> WebhookResponse:
    """Edit a webhook. Only the fields present in the body change."""
    webhook = await service.update_webhook(webhook_id, **request.model_dump(exclude_unset=True))
    return WebhookResponse.from_webhook(webhook)


@router.delete(
    "/webhooks/{webhook_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    tags=["webhooks"],
)
async def delete_webhook(webhook_id: str, service: ServiceDep) -> Response:
    """Delete a webhook and its delivery history."""
    await service.delete_webhook(webhook_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/webhooks/{webhook_id}/test",
    response_model=DeliveryResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["webhooks"],
)
async def send_test_event(
    webhook_id: str,
    service: ServiceDep,
    request: TestEventRequest | None = None,
) -> DeliveryResponse:
    """Queue a test event for one webhook."""
    triggered_by = request.triggered_by if request is not None else None
    delivery = await service.send_test(webhook_id, triggered_by=triggered_by)
    return DeliveryResponse.from_delivery(delivery)


@router.get(
    "/webhooks/{webhook_id}/deliveries",
    response_model=DeliveryListResponse,
    tags=["deliveries"],
)
async def list_deliveries(
    webhook_id: str,
    service: ServiceDep,
    delivery_status: Annotated[DeliveryStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> DeliveryListResponse:
    """Delivery history for a webhook, newest first."""
    deliveries = await service.list_deliveries(
        webhook_id, status=delivery_status, limit=limit, offset=offset
    )
    return DeliveryListResponse(
        deliveries=[DeliveryResponse.from_delivery(d) for d in deliveries],
        count=len(deliveries),
    )


@router.get(
    "/webhooks/{webhook_id}/stats",
    response_model=WebhookStatsResponse,
    tags=["deliveries"],
)
async def webhook_stats(
    webhook_id: str,
    service: ServiceDep,
    since: datetime | None = None,
) -> WebhookStatsResponse:
    """Delivery counts for a webhook. ``since`` limits them to recent deliveries."""
    stats = await service.get_stats(webhook_id, since=since)
    return WebhookStatsResponse(webhook_id=webhook_id, stats=stats)


@router.post(
    "/webhooks/{webhook_id}/deliveries/{delivery_id}/retry",
    response_model=DeliveryResponse,
    tags=["deliveries"],
)
async def retry_delivery(webhook_id: str, delivery_id: str, service: ServiceDep) -> DeliveryResponse:
    """Manually retry a delivered or dead delivery."""
    delivery = await service.retry_delivery(delivery_id, webhook_id=webhook_id)
    logger.info("Manual retry requested for delivery %s", delivery_id)
    return DeliveryResponse.from_delivery(delivery)
