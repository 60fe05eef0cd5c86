"""Storage interfaces and in-memory implementations for AccessFeed."""

from .base import DeliveryStore, EventStore, WebhookStore
from .memory import InMemoryDeliveryStore, InMemoryEventStore, InMemoryWebhookStore

__all__ = [
    "DeliveryStore",
    "EventStore",
    "InMemoryDeliveryStore",
    "InMemoryEventStore",
    "InMemoryWebhookStore",
    "WebhookStore",
]
