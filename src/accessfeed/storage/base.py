"""Store interfaces for events, webhook configurations and deliveries.

Engine logic depends only on these interfaces, so a durable backend can
replace the in-memory implementations without touching the engine.
All stores implement async interfaces for non-blocking I/O.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from accessfeed.models import Event, WebhookConfig, WebhookDelivery


class EventStore(ABC):
    """Append-only event log."""

    @abstractmethod
    async def append(self, event: Event) -> str:
        """Persist a new event.

        Args:
            event: Event to store.

        Returns:
            The event ID.
        """
        ...

    @abstractmethod
    async def get(self, event_id: str) -> Event | None:
        """Get an event by ID, or None if unknown."""
        ...

    @abstractmethod
    async def list_recent(self, limit: int = 100, type: str | None = None) -> list[Event]:
        """List events newest first.

        Args:
            limit: Maximum events to return.
            type: Optional event type filter.
        """
        ...


class WebhookStore(ABC):
    """Keyed store of webhook configurations."""

    @abstractmethod
    async def get(self, webhook_id: str) -> WebhookConfig | None:
        """Get a webhook by ID, or None if unknown."""
        ...

    @abstractmethod
    async def put(self, webhook: WebhookConfig) -> str:
        """Insert or replace a webhook configuration."""
        ...

    @abstractmethod
    async def delete(self, webhook_id: str) -> bool:
        """Delete a webhook. Returns False if it did not exist."""
        ...

    @abstractmethod
    async def list(self) -> list[WebhookConfig]:
        """List all webhooks in creation order."""
        ...


class DeliveryStore(ABC):
    """Delivery history, bounded per webhook."""

    @abstractmethod
    async def add(self, delivery: WebhookDelivery) -> str:
        """Record a new delivery, evicting the webhook's oldest if over the limit."""
        ...

    @abstractmethod
    async def update(self, delivery: WebhookDelivery) -> str:
        """Persist the current state of an existing delivery."""
        ...

    @abstractmethod
    async def get(self, delivery_id: str) -> WebhookDelivery | None:
        """Get a delivery by ID, or None if unknown or evicted."""
        ...

    @abstractmethod
    async def list_for_webhook(self, webhook_id: str, limit: int = 100) -> list[WebhookDelivery]:
        """List a webhook's deliveries newest first."""
        ...
