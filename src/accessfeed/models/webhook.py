"""Webhook models for server-to-server event notifications.

Provides webhook registration, the outbound envelope, and delivery
tracking for the signed, retried webhook fan-out.
"""

from __future__ import annotations

import copy
import json
import secrets
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .base import generate_id, utc_now

# Event names that webhooks can subscribe to, with admin-facing descriptions
EVENT_DESCRIPTIONS: dict[str, str] = {
    "access_request.created": "Triggered when a new access request is created",
    "access_request.granted": "Triggered when an access request is granted",
    "access_request.denied": "Triggered when an access request is denied",
    "access_request.expired": "Triggered when an access request expires",
    "access_request.status_changed": "Triggered when an access request status changes",
    "door.opened": "Triggered when a door is opened",
    "door.closed": "Triggered when a door is closed",
    "door.offline": "Triggered when a door goes offline",
    "door.online": "Triggered when a door comes online",
    "user.login": "Triggered when a user logs in",
    "user.logout": "Triggered when a user logs out",
    "system.error": "Triggered when a system error occurs",
    "system.startup": "Triggered when the system starts up",
    "system.shutdown": "Triggered when the system shuts down",
    "esp32.command_sent": "Triggered when a command is sent to an ESP32 device",
    "esp32.command_received": "Triggered when an ESP32 device receives a command",
    "esp32.command_executed": "Triggered when an ESP32 device executes a command",
}

ALL_EVENT_TYPES: list[str] = list(EVENT_DESCRIPTIONS)

# Reserved for admin-initiated test deliveries; not subscribable
TEST_EVENT = "webhook.test"

DeliveryStatus = Literal["pending", "retrying", "delivered", "failed"]
TERMINAL_STATUSES: frozenset[str] = frozenset({"delivered", "failed"})

RESPONSE_BODY_LIMIT = 1000


def generate_secret() -> str:
    """Generate a webhook signing secret (64 hex chars)."""
    return secrets.token_hex(32)


def event_key(name: str) -> str:
    """Upper-snake constant name for an event, e.g. door.offline -> DOOR_OFFLINE."""
    return name.replace(".", "_").upper()


class WebhookCreate(BaseModel):
    """Fields accepted when registering a webhook."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=200)
    url: str = Field(min_length=1, max_length=2048)
    events: list[str] = Field(min_length=1)
    secret: str | None = Field(default=None, min_length=16, max_length=256)
    active: bool = True
    retry_attempts: int | None = Field(default=None, ge=1, le=10)
    timeout_ms: int | None = Field(default=None, ge=100, le=60000)


class WebhookUpdate(BaseModel):
    """Partial update; only fields that were explicitly set are merged."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=200)
    url: str | None = Field(default=None, min_length=1, max_length=2048)
    events: list[str] | None = Field(default=None, min_length=1)
    active: bool | None = None
    retry_attempts: int | None = Field(default=None, ge=1, le=10)
    timeout_ms: int | None = Field(default=None, ge=100, le=60000)


class WebhookConfig(BaseModel):
    """Configuration for a registered webhook.

    The secret is excluded from every serialization so it never leaves
    the process through the API, logs or repr.

    Attributes:
        id: Unique identifier for this webhook.
        name: Human-readable label.
        url: HTTP(S) endpoint that receives events.
        events: Event names this webhook subscribes to.
        secret: Shared secret for HMAC-SHA256 signatures.
        active: Whether deliveries are made.
        retry_attempts: Maximum delivery attempts per event.
        timeout_ms: Per-attempt HTTP timeout.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    id: str = Field(default_factory=lambda: generate_id("whk"))
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    events: list[str] = Field(default_factory=list)
    secret: str = Field(default_factory=generate_secret, exclude=True, repr=False)
    active: bool = True
    retry_attempts: int = Field(default=3, ge=1, le=10)
    timeout_ms: int = Field(default=5000, ge=100, le=60000)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("events")
    @classmethod
    def _dedupe_events(cls, events: list[str]) -> list[str]:
        return list(dict.fromkeys(events))

    def subscribes_to(self, event_name: str) -> bool:
        """Check if this webhook is active and subscribed to the given event."""
        return self.active and event_name in self.events


class DeliveryResponse(BaseModel):
    """Summary of the HTTP response for a successful attempt."""

    model_config = ConfigDict(extra="forbid")

    status_code: int
    reason: str = ""
    body: str | None = None


class DeliveryFailure(BaseModel):
    """Summary of the most recent failed attempt."""

    model_config = ConfigDict(extra="forbid")

    message: str
    kind: str = "network"
    status_code: int | None = None


class WebhookDelivery(BaseModel):
    """One attempt-sequence of sending a triggered event to one webhook.

    The payload is a deep copy taken at creation time so later changes to
    upstream entities never rewrite delivery history.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    webhook_id: str
    event: str
    payload: dict[str, Any] = Field(default_factory=dict)
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(ge=1)
    status: DeliveryStatus = "pending"
    response: DeliveryResponse | None = None
    error: DeliveryFailure | None = None
    created_at: datetime = Field(default_factory=utc_now)
    last_attempt_at: datetime | None = None
    next_retry_at: datetime | None = None

    @classmethod
    def for_config(
        cls,
        config: WebhookConfig,
        event: str,
        payload: dict[str, Any],
        created_at: datetime | None = None,
    ) -> WebhookDelivery:
        """Create a pending delivery with a snapshot of the payload."""
        return cls(
            webhook_id=config.id,
            event=event,
            payload=copy.deepcopy(payload),
            max_attempts=config.retry_attempts,
            created_at=created_at or utc_now(),
        )

    @property
    def is_terminal(self) -> bool:
        """Whether the delivery reached delivered or failed."""
        return self.status in TERMINAL_STATUSES

    @property
    def can_retry(self) -> bool:
        """Whether another attempt is allowed after a failure."""
        return self.attempts < self.max_attempts

    def start_attempt(self, now: datetime) -> WebhookDelivery:
        """Record the start of a new attempt."""
        if self.attempts >= self.max_attempts:
            raise ValueError(f"Delivery {self.id} already used {self.attempts} attempts")
        self.attempts += 1
        self.last_attempt_at = now
        self.next_retry_at = None
        return self

    def mark_delivered(
        self, status_code: int, reason: str = "", body: str | None = None
    ) -> WebhookDelivery:
        """Mark delivery as successful."""
        self.status = "delivered"
        self.response = DeliveryResponse(
            status_code=status_code,
            reason=reason,
            body=body[:RESPONSE_BODY_LIMIT] if body else None,
        )
        self.next_retry_at = None
        return self

    def mark_retrying(self, next_retry_at: datetime, error: DeliveryFailure) -> WebhookDelivery:
        """Mark delivery for retry."""
        self.status = "retrying"
        self.error = error
        self.next_retry_at = next_retry_at
        return self

    def mark_failed(self, error: DeliveryFailure) -> WebhookDelivery:
        """Mark delivery as failed (no more retries)."""
        self.status = "failed"
        self.error = error
        self.next_retry_at = None
        return self


class WebhookEnvelope(BaseModel):
    """Canonical JSON body POSTed to webhook endpoints."""

    model_config = ConfigDict(extra="forbid")

    event: str
    timestamp: datetime
    delivery_id: str
    data: dict[str, Any]

    @classmethod
    def for_delivery(cls, delivery: WebhookDelivery) -> WebhookEnvelope:
        """Envelope for a delivery; stable across retries."""
        return cls(
            event=delivery.event,
            timestamp=delivery.created_at,
            delivery_id=delivery.id,
            data=delivery.payload,
        )

    def to_bytes(self) -> bytes:
        """Compact UTF-8 JSON. These exact bytes are signed and transmitted."""
        return json.dumps(
            self.model_dump(mode="json"),
            separators=(",", ":"),
            ensure_ascii=False,
        ).encode("utf-8")


__all__ = [
    "ALL_EVENT_TYPES",
    "EVENT_DESCRIPTIONS",
    "TEST_EVENT",
    "DeliveryFailure",
    "DeliveryResponse",
    "DeliveryStatus",
    "WebhookConfig",
    "WebhookCreate",
    "WebhookDelivery",
    "WebhookEnvelope",
    "WebhookUpdate",
    "event_key",
    "generate_secret",
]
