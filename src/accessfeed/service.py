"""AccessFeed service layer.

Wires the stores, webhook registry, delivery engine, live broadcast hub
and event dispatcher into one object with a single lifecycle.

Example:
    ```python
    from accessfeed.service import AccessFeedService

    async with AccessFeedService.create() as feed:
        await feed.registry.create(
            WebhookCreate(name="ops", url="https://ops.example/hook", events=["door.offline"])
        )
        await feed.dispatcher.log(
            None, "door", "offline", "Door", "door_7", "Lobby", "Controller unreachable"
        )
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from accessfeed.broadcast import BroadcastHub
from accessfeed.config import Settings
from accessfeed.events import EventDispatcher
from accessfeed.logging import get_logger
from accessfeed.scheduling import AsyncioScheduler, Scheduler
from accessfeed.storage import (
    DeliveryStore,
    EventStore,
    InMemoryDeliveryStore,
    InMemoryEventStore,
    InMemoryWebhookStore,
    WebhookStore,
)
from accessfeed.webhooks import DedupWindow, DeliveryEngine, WebhookRegistry

if TYPE_CHECKING:
    import httpx

logger = get_logger(__name__)


@dataclass
class AccessFeedService:
    """Event recording, webhook delivery and live feed for one process.

    Uses dependency injection for stores, scheduler and HTTP client,
    making it easy to test and configure.

    Attributes:
        settings: Configuration settings.
        event_store: Append-only event log.
        webhook_store: Webhook configurations.
        delivery_store: Delivery history.
        scheduler: Runs delayed webhook retries.
        hub: Live broadcast hub.
        registry: Validated webhook CRUD.
        engine: Webhook delivery engine.
        dispatcher: Entry point for recording events.
    """

    settings: Settings
    event_store: EventStore
    webhook_store: WebhookStore
    delivery_store: DeliveryStore
    scheduler: Scheduler
    hub: BroadcastHub
    registry: WebhookRegistry
    engine: DeliveryEngine
    dispatcher: EventDispatcher

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        *,
        scheduler: Scheduler | None = None,
        http_client: httpx.AsyncClient | None = None,
        event_store: EventStore | None = None,
        webhook_store: WebhookStore | None = None,
        delivery_store: DeliveryStore | None = None,
    ) -> AccessFeedService:
        """Create a service with in-memory stores and default collaborators.

        Args:
            settings: Optional settings. Uses defaults if None.
            scheduler: Retry scheduler. Real-time asyncio timers if None.
            http_client: Outbound client for webhooks. Engine-owned if None.
            event_store: Event log. In-memory if None.
            webhook_store: Webhook configurations. In-memory if None.
            delivery_store: Delivery history. In-memory if None.

        Returns:
            Configured AccessFeedService instance.
        """
        if settings is None:
            settings = Settings()
        if scheduler is None:
            scheduler = AsyncioScheduler()

        event_store = event_store or InMemoryEventStore(max_size=settings.event_store_max_size)
        webhook_store = webhook_store or InMemoryWebhookStore()
        delivery_store = delivery_store or InMemoryDeliveryStore(
            history_limit=settings.webhook_history_limit
        )

        hub = BroadcastHub()
        registry = WebhookRegistry(webhook_store, settings=settings)
        dispatcher = EventDispatcher(
            event_store,
            hub,
            clock=scheduler.clock,
            user_agent=settings.webhook_user_agent,
        )
        engine = DeliveryEngine(
            registry,
            delivery_store,
            DedupWindow(capacity=settings.dedup_capacity),
            scheduler,
            http_client=http_client,
            settings=settings,
            on_permanent_failure=dispatcher.on_permanent_failure,
        )
        dispatcher.attach_engine(engine)

        return cls(
            settings=settings,
            event_store=event_store,
            webhook_store=webhook_store,
            delivery_store=delivery_store,
            scheduler=scheduler,
            hub=hub,
            registry=registry,
            engine=engine,
            dispatcher=dispatcher,
        )

    async def close(self) -> None:
        """Finish pending fan-out, then close connections and cancel retries."""
        await self.dispatcher.drain()
        await self.hub.shutdown()
        await self.scheduler.aclose()
        await self.engine.aclose()
        logger.info("AccessFeed service closed")

    async def __aenter__(self) -> AccessFeedService:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()


__all__ = ["AccessFeedService"]
