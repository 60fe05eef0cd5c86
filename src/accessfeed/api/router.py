"""FastAPI router for AccessFeed API endpoints."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sse_starlette.sse import EventSourceResponse

from accessfeed import __version__
from accessfeed.broadcast import QueueChannel, connected_frame
from accessfeed.exceptions import NotFoundError
from accessfeed.logging import get_logger
from accessfeed.models import Event, WebhookCreate, WebhookUpdate
from accessfeed.service import AccessFeedService

from .auth import AdminDep, StreamUserDep, extract_client_ip, issue_stream_token
from .helpers import available_events, connection_info, context_from_request
from .schemas import (
    AvailableEventsResponse,
    BroadcastTestResponse,
    ConnectionsResponse,
    DeliveryListResponse,
    EventListResponse,
    HealthResponse,
    StreamTokenResponse,
    TestDeliveryResponse,
    WebhookListResponse,
    WebhookResponse,
)

logger = get_logger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: AccessFeedService | None = None


def set_service(service: AccessFeedService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> AccessFeedService:
    """Dependency to get the AccessFeedService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[AccessFeedService, Depends(get_service)]


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health."""
    if _service is None:
        return HealthResponse(status="unhealthy", version=__version__)
    return HealthResponse(
        status="healthy",
        version=__version__,
        live_connections=_service.hub.connection_count,
    )


# Webhooks


@router.post(
    "/webhooks",
    response_model=WebhookResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def create_webhook(
    body: WebhookCreate,
    request: Request,
    service: ServiceDep,
    admin: AdminDep,
) -> WebhookResponse:
    """Register a webhook.

    A signing secret is generated when none is supplied. The secret is
    never returned by the API.

    Raises:
        ConfigurationError: Invalid URL or unknown event names (400).
        DuplicateWebhookError: An active webhook already uses the URL (409).
    """
    config = await service.registry.create(body)
    await service.dispatcher.log_webhook_created(context_from_request(request, admin), config)
    logger.info("Webhook created", webhook_id=config.id, events=config.events)
    return WebhookResponse.from_config(config)


@router.get("/webhooks", response_model=WebhookListResponse, tags=["webhooks"])
async def list_webhooks(service: ServiceDep, admin: AdminDep) -> WebhookListResponse:
    """List all webhooks in creation order."""
    webhooks = [WebhookResponse.from_config(c) for c in await service.registry.list()]
    return WebhookListResponse(webhooks=webhooks, count=len(webhooks))


@router.get(
    "/webhooks/events/available",
    response_model=AvailableEventsResponse,
    tags=["webhooks"],
)
async def list_available_events(admin: AdminDep) -> AvailableEventsResponse:
    """List the events a webhook can subscribe to."""
    return AvailableEventsResponse(events=available_events())


@router.get("/webhooks/{webhook_id}", response_model=WebhookResponse, tags=["webhooks"])
async def get_webhook(webhook_id: str, service: ServiceDep, admin: AdminDep) -> WebhookResponse:
    """Get one webhook."""
    return WebhookResponse.from_config(await service.registry.get_by_id(webhook_id))


@router.put("/webhooks/{webhook_id}", response_model=WebhookResponse, tags=["webhooks"])
async def update_webhook(
    webhook_id: str,
    body: WebhookUpdate,
    request: Request,
    service: ServiceDep,
    admin: AdminDep,
) -> WebhookResponse:
    """Update the provided fields of a webhook."""
    config = await service.registry.update(webhook_id, body)
    await service.dispatcher.log_webhook_updated(
        context_from_request(request, admin), config, body.model_fields_set
    )
    return WebhookResponse.from_config(config)


@router.delete(
    "/webhooks/{webhook_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["webhooks"],
)
async def delete_webhook(
    webhook_id: str,
    request: Request,
    service: ServiceDep,
    admin: AdminDep,
) -> None:
    """Delete a webhook. Pending retries for it stop at their next attempt."""
    config = await service.registry.delete(webhook_id)
    await service.dispatcher.log_webhook_deleted(context_from_request(request, admin), config)


@router.post(
    "/webhooks/{webhook_id}/test",
    response_model=TestDeliveryResponse,
    tags=["webhooks"],
)
async def test_webhook(
    webhook_id: str, service: ServiceDep, admin: AdminDep
) -> TestDeliveryResponse:
    """Send a webhook.test event and report the first attempt.

    The response reflects the attempt's outcome; a failed attempt is not
    an API error.
    """
    delivery = await service.engine.send_test(webhook_id)
    return TestDeliveryResponse(message="Test webhook sent", delivery=delivery)


@router.get(
    "/webhooks/{webhook_id}/deliveries",
    response_model=DeliveryListResponse,
    tags=["webhooks"],
)
async def list_deliveries(
    webhook_id: str,
    service: ServiceDep,
    admin: AdminDep,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> DeliveryListResponse:
    """Delivery history for a webhook, newest first."""
    await service.registry.get_by_id(webhook_id)
    deliveries = await service.engine.history(webhook_id, limit=limit)
    return DeliveryListResponse(
        webhook_id=webhook_id, deliveries=deliveries, count=len(deliveries)
    )


# Events


@router.get("/events", response_model=EventListResponse, tags=["events"])
async def list_events(
    service: ServiceDep,
    admin: AdminDep,
    type: Annotated[str | None, Query(description="Filter by event type")] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> EventListResponse:
    """Recent events, newest first."""
    events = await service.event_store.list_recent(limit=limit, type=type)
    return EventListResponse(events=events, count=len(events))


@router.get("/events/stream", tags=["events"])
async def stream_events(
    request: Request,
    service: ServiceDep,
    user: StreamUserDep,
) -> EventSourceResponse:
    """Live feed of events as Server-Sent Events.

    Authenticated with a stream token in the ``token`` query parameter.
    The first frame confirms the connection; afterwards every recorded
    event is pushed as it happens. Nothing is replayed on reconnect.
    """
    channel = QueueChannel(
        subscriber_id=user.user_id if user else None,
        max_queue=service.settings.broadcast_queue_size,
    )
    service.hub.open(channel)

    async def event_stream() -> Any:
        try:
            yield {"data": connected_frame(channel)}
            async for frame in channel.frames():
                yield {"data": frame}
        finally:
            await service.hub.close(channel)

    return EventSourceResponse(
        event_stream(),
        ping=service.settings.sse_ping_seconds,
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/events/stream-token", response_model=StreamTokenResponse, tags=["events"])
async def create_stream_token(service: ServiceDep, admin: AdminDep) -> StreamTokenResponse:
    """Issue a short-lived token for the live stream."""
    settings = service.settings
    return StreamTokenResponse(
        token=issue_stream_token(settings, admin),
        expires_in=settings.stream_token_expire_minutes * 60,
        stream_url="/api/v1/events/stream",
    )


@router.get("/events/connections", response_model=ConnectionsResponse, tags=["events"])
async def list_connections(service: ServiceDep, admin: AdminDep) -> ConnectionsResponse:
    """Open live-feed connections."""
    connections = [connection_info(c) for c in service.hub.connections()]
    return ConnectionsResponse(connections=connections, count=len(connections))


@router.post("/events/test-broadcast", response_model=BroadcastTestResponse, tags=["events"])
async def test_broadcast(
    request: Request, service: ServiceDep, admin: AdminDep
) -> BroadcastTestResponse:
    """Push a synthetic event to live connections only.

    The event is not recorded and triggers no webhooks.
    """
    event = Event(
        type="test",
        action="broadcast_test",
        entity_type="system",
        entity_name="Test System",
        user_name="Test System",
        details="This is a test broadcast event",
        ip_address=extract_client_ip(request),
    )
    connections = await service.hub.broadcast(event)
    return BroadcastTestResponse(
        message="Test event broadcasted", event=event, connections=connections
    )


@router.get("/events/{event_id}", response_model=Event, tags=["events"])
async def get_event(event_id: str, service: ServiceDep, admin: AdminDep) -> Event:
    """Get one recorded event."""
    event = await service.event_store.get(event_id)
    if event is None:
        raise NotFoundError("Event", event_id)
    return event
