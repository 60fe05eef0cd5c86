"""In-memory store implementations.

Suitable for a single process. Objects are copied on the way in and out
so callers never share mutable state with the store, matching what a
durable backend would do.
"""

from __future__ import annotations

import logging
from collections import OrderedDict, deque
from typing import TYPE_CHECKING

from .base import DeliveryStore, EventStore, WebhookStore

if TYPE_CHECKING:
    from accessfeed.models import Event, WebhookConfig, WebhookDelivery

logger = logging.getLogger(__name__)


class InMemoryEventStore(EventStore):
    """Bounded append-only event log; the oldest events fall off first."""

    def __init__(self, max_size: int = 10000) -> None:
        self._max_size = max_size
        self._events: OrderedDict[str, Event] = OrderedDict()

    async def append(self, event: Event) -> str:
        if event.id in self._events:
            raise ValueError(f"Event {event.id} already recorded")
        self._events[event.id] = event
        while len(self._events) > self._max_size:
            self._events.popitem(last=False)
        return event.id

    async def get(self, event_id: str) -> Event | None:
        return self._events.get(event_id)

    async def list_recent(self, limit: int = 100, type: str | None = None) -> list[Event]:
        results: list[Event] = []
        for event in reversed(self._events.values()):
            if type is not None and event.type != type:
                continue
            results.append(event)
            if len(results) >= limit:
                break
        return results

    def __len__(self) -> int:
        return len(self._events)


class InMemoryWebhookStore(WebhookStore):
    """Dict-backed webhook configuration store."""

    def __init__(self) -> None:
        self._webhooks: dict[str, WebhookConfig] = {}

    async def get(self, webhook_id: str) -> WebhookConfig | None:
        webhook = self._webhooks.get(webhook_id)
        return webhook.model_copy(deep=True) if webhook is not None else None

    async def put(self, webhook: WebhookConfig) -> str:
        self._webhooks[webhook.id] = webhook.model_copy(deep=True)
        return webhook.id

    async def delete(self, webhook_id: str) -> bool:
        return self._webhooks.pop(webhook_id, None) is not None

    async def list(self) -> list[WebhookConfig]:
        return [w.model_copy(deep=True) for w in self._webhooks.values()]


class InMemoryDeliveryStore(DeliveryStore):
    """Delivery history keeping at most ``history_limit`` entries per webhook."""

    def __init__(self, history_limit: int = 100) -> None:
        self._history_limit = history_limit
        self._deliveries: dict[str, WebhookDelivery] = {}
        self._by_webhook: dict[str, deque[str]] = {}

    async def add(self, delivery: WebhookDelivery) -> str:
        self._deliveries[delivery.id] = delivery.model_copy(deep=True)
        ids = self._by_webhook.setdefault(delivery.webhook_id, deque())
        ids.append(delivery.id)
        while len(ids) > self._history_limit:
            evicted = ids.popleft()
            self._deliveries.pop(evicted, None)
            logger.debug("Evicted delivery %s from history of %s", evicted, delivery.webhook_id)
        return delivery.id

    async def update(self, delivery: WebhookDelivery) -> str:
        # Evicted deliveries may still finish their retry chain; their
        # final state is simply not retained.
        if delivery.id in self._deliveries:
            self._deliveries[delivery.id] = delivery.model_copy(deep=True)
        return delivery.id

    async def get(self, delivery_id: str) -> WebhookDelivery | None:
        delivery = self._deliveries.get(delivery_id)
        return delivery.model_copy(deep=True) if delivery is not None else None

    async def list_for_webhook(self, webhook_id: str, limit: int = 100) -> list[WebhookDelivery]:
        ids = self._by_webhook.get(webhook_id, deque())
        deliveries = [self._deliveries[i] for i in reversed(ids) if i in self._deliveries]
        deliveries.sort(key=lambda d: d.created_at, reverse=True)
        return [d.model_copy(deep=True) for d in deliveries[:limit]]
