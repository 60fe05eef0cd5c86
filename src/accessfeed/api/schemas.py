"""Pydantic schemas for API request/response models.

Webhook create/update bodies are the domain models WebhookCreate and
WebhookUpdate; the registry performs the URL and event-name checks.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from accessfeed.models import Event, WebhookConfig, WebhookDelivery


class HealthResponse(BaseModel):
    """Response for health check endpoint.

    Attributes:
        status: Service status.
        version: API version.
        live_connections: Open live-feed connections.
    """

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "unhealthy"]
    version: str
    live_connections: int = 0


class WebhookResponse(BaseModel):
    """A webhook configuration as exposed by the API. Never carries the secret."""

    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    url: str
    events: list[str]
    active: bool
    retry_attempts: int
    timeout_ms: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_config(cls, config: WebhookConfig) -> WebhookResponse:
        return cls.model_validate(config.model_dump())


class WebhookListResponse(BaseModel):
    """All registered webhooks."""

    model_config = ConfigDict(extra="forbid")

    webhooks: list[WebhookResponse]
    count: int


class AvailableEvent(BaseModel):
    """A subscribable webhook event.

    Attributes:
        key: Constant-style name, e.g. DOOR_OFFLINE.
        name: Event name used in subscriptions, e.g. door.offline.
        description: Human-readable description.
    """

    model_config = ConfigDict(extra="forbid")

    key: str
    name: str
    description: str


class AvailableEventsResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    events: list[AvailableEvent]


class DeliveryListResponse(BaseModel):
    """Delivery history for one webhook, newest first."""

    model_config = ConfigDict(extra="forbid")

    webhook_id: str
    deliveries: list[WebhookDelivery]
    count: int


class TestDeliveryResponse(BaseModel):
    """Outcome of the first attempt of a test delivery."""

    model_config = ConfigDict(extra="forbid")

    message: str
    delivery: WebhookDelivery


class EventListResponse(BaseModel):
    """Recent events, newest first."""

    model_config = ConfigDict(extra="forbid")

    events: list[Event]
    count: int


class StreamTokenResponse(BaseModel):
    """Short-lived token for opening the live event stream.

    Attributes:
        token: Value for the ``token`` query parameter.
        expires_in: Seconds until the token expires.
        stream_url: Path of the stream endpoint.
    """

    model_config = ConfigDict(extra="forbid")

    token: str
    expires_in: int = Field(ge=0)
    stream_url: str


class ConnectionInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    subscriber_id: str | None
    connected_at: datetime


class ConnectionsResponse(BaseModel):
    """Open live-feed connections."""

    model_config = ConfigDict(extra="forbid")

    connections: list[ConnectionInfo]
    count: int


class BroadcastTestResponse(BaseModel):
    """Result of pushing a synthetic event to the live feed."""

    model_config = ConfigDict(extra="forbid")

    message: str
    event: Event
    connections: int
