"""Data models for AccessFeed.

Event Models:
    - Event: Immutable record of a domain occurrence
    - EventContext: Who triggered an event and from where
    - EventData: What happened, as described by the producer

Webhook Models:
    - WebhookConfig: Registered endpoint with its subscriptions and secret
    - WebhookDelivery: One attempt-sequence to one webhook
    - WebhookEnvelope: Canonical outbound JSON body
"""

from .base import generate_id, utc_now
from .event import SYSTEM_USER_NAME, Event, EventContext, EventData, display_name
from .webhook import (
    ALL_EVENT_TYPES,
    EVENT_DESCRIPTIONS,
    TEST_EVENT,
    DeliveryFailure,
    DeliveryResponse,
    DeliveryStatus,
    WebhookConfig,
    WebhookCreate,
    WebhookDelivery,
    WebhookEnvelope,
    WebhookUpdate,
    event_key,
    generate_secret,
)

__all__ = [
    "ALL_EVENT_TYPES",
    "EVENT_DESCRIPTIONS",
    "SYSTEM_USER_NAME",
    "TEST_EVENT",
    "DeliveryFailure",
    "DeliveryResponse",
    "DeliveryStatus",
    "Event",
    "EventContext",
    "EventData",
    "WebhookConfig",
    "WebhookCreate",
    "WebhookDelivery",
    "WebhookEnvelope",
    "WebhookUpdate",
    "display_name",
    "event_key",
    "generate_id",
    "generate_secret",
    "utc_now",
]
