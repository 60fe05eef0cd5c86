"""Event recording and fan-out.

Business routes call ``log_event`` after the action they describe has
happened. The event is appended to the store and then, in the
background, pushed to the live feed and (for mapped events) to
subscribed webhooks. Recording an event never fails the caller.

Example:
    ```python
    dispatcher = EventDispatcher(event_store, hub, engine)

    await dispatcher.log(
        EventContext.for_user(user, ip_address="10.0.0.5"),
        "door", "offline", "Door", door_id, "Lobby", "Controller unreachable",
    )
    ```
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine, Iterable
from typing import TYPE_CHECKING, Any

from accessfeed.logging import get_logger
from accessfeed.models import Event, EventContext, EventData
from accessfeed.webhooks.mapping import webhook_event_for, webhook_payload

if TYPE_CHECKING:
    from accessfeed.broadcast import BroadcastHub
    from accessfeed.exceptions import PermanentDeliveryError
    from accessfeed.models import WebhookConfig, WebhookDelivery
    from accessfeed.scheduling import Clock
    from accessfeed.storage import EventStore
    from accessfeed.webhooks import DeliveryEngine

logger = get_logger(__name__)


class EventDispatcher:
    """Records events and fans them out to the live feed and webhooks.

    Holds explicit references to its collaborators. The delivery engine
    may be attached after construction, since the engine's permanent
    failure handler points back at this dispatcher.
    """

    def __init__(
        self,
        event_store: EventStore,
        hub: BroadcastHub,
        engine: DeliveryEngine | None = None,
        clock: Clock | None = None,
        user_agent: str = "AccessFeed-Webhook",
    ) -> None:
        self._store = event_store
        self._hub = hub
        self._engine = engine
        self._clock = clock
        self._user_agent = user_agent
        self._tasks: set[asyncio.Task[Any]] = set()

    def attach_engine(self, engine: DeliveryEngine) -> None:
        self._engine = engine

    @property
    def in_flight(self) -> int:
        """Fan-out tasks not finished yet."""
        return sum(1 for t in self._tasks if not t.done())

    async def log_event(
        self,
        context: EventContext | None,
        data: EventData,
        *,
        trigger_webhooks: bool = True,
    ) -> Event | None:
        """Record an event and start its fan-out.

        Args:
            context: Who caused the event; None means the system.
            data: What happened.
            trigger_webhooks: Set False for events that must never reach
                webhooks, such as delivery failures themselves.

        Returns:
            The stored event, or None if it could not be recorded.
        """
        try:
            event = Event.record(
                context,
                data,
                created_at=self._clock.now() if self._clock is not None else None,
            )
            await self._store.append(event)
        except Exception as e:
            logger.error(
                "Failed to record event",
                type=data.type,
                action=data.action,
                error=str(e),
                exc_info=True,
            )
            return None

        logger.debug("Event recorded", event_id=event.id, key=event.key)

        self._spawn(self._broadcast(event), "broadcast", event)
        if trigger_webhooks and self._engine is not None:
            webhook_event = webhook_event_for(event)
            if webhook_event is not None:
                self._spawn(self._trigger(webhook_event, event), "webhook", event)
        return event

    async def log(
        self,
        context: EventContext | None,
        type: str,
        action: str,
        entity_type: str = "",
        entity_id: str | int | None = None,
        entity_name: str = "",
        details: str = "",
    ) -> Event | None:
        """Positional shorthand for ``log_event``."""
        return await self.log_event(
            context,
            EventData(
                type=type,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                entity_name=entity_name,
                details=details,
            ),
        )

    def _spawn(self, coro: Coroutine[Any, Any, Any], target: str, event: Event) -> None:
        task = asyncio.create_task(coro, name=f"{target}:{event.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _broadcast(self, event: Event) -> None:
        try:
            delivered = await self._hub.broadcast(event)
        except Exception:
            logger.exception("Live broadcast failed", event_id=event.id)
            return
        logger.debug("Event broadcast", event_id=event.id, connections=delivered)

    async def _trigger(self, webhook_event: str, event: Event) -> None:
        assert self._engine is not None
        try:
            delivery_ids = await self._engine.trigger_webhook(webhook_event, webhook_payload(event))
        except Exception:
            logger.exception(
                "Webhook trigger failed", event_id=event.id, webhook_event=webhook_event
            )
            return
        if delivery_ids:
            logger.info(
                "Webhooks triggered",
                event_id=event.id,
                webhook_event=webhook_event,
                deliveries=len(delivery_ids),
            )

    async def drain(self) -> None:
        """Wait for all fan-out tasks, including ones started meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def on_permanent_failure(
        self,
        delivery: WebhookDelivery,
        webhook: WebhookConfig,
        error: PermanentDeliveryError,
    ) -> None:
        """Record an exhausted delivery as a webhook.failed event.

        Never triggers webhooks, so a failing endpoint cannot cause a
        cascade of failure notifications.
        """
        last_error = delivery.error.message if delivery.error else error.message
        await self.log_event(
            EventContext.system(user_agent=self._user_agent),
            EventData(
                type="webhook",
                action="failed",
                entity_type="WebhookDelivery",
                entity_id=delivery.id,
                entity_name=f"Webhook delivery permanently failed to {webhook.name}",
                details=f"Event: {delivery.event}, Error: {last_error}",
            ),
            trigger_webhooks=False,
        )

    # Producers for the webhook admin lifecycle

    async def log_webhook_created(
        self, context: EventContext, webhook: WebhookConfig
    ) -> Event | None:
        return await self.log(
            context,
            "webhook",
            "created",
            "WebhookConfig",
            webhook.id,
            f"Webhook created: {webhook.name}",
            f"URL: {webhook.url}",
        )

    async def log_webhook_updated(
        self,
        context: EventContext,
        webhook: WebhookConfig,
        changes: Iterable[str] = (),
    ) -> Event | None:
        changed = ", ".join(sorted(changes))
        return await self.log(
            context,
            "webhook",
            "updated",
            "WebhookConfig",
            webhook.id,
            f"Webhook updated: {webhook.name}",
            f"URL: {webhook.url}" + (f" (changed: {changed})" if changed else ""),
        )

    async def log_webhook_deleted(
        self, context: EventContext, webhook: WebhookConfig
    ) -> Event | None:
        return await self.log(
            context,
            "webhook",
            "deleted",
            "WebhookConfig",
            webhook.id,
            f"Webhook deleted: {webhook.name}",
            f"URL: {webhook.url}",
        )

    # Producers for system-level events

    async def log_system_event(
        self, context: EventContext | None, action: str, details: str
    ) -> Event | None:
        return await self.log(context, "system", action, "system", None, "System", details)

    async def log_error(
        self, context: EventContext | None, error: BaseException, where: str = ""
    ) -> Event | None:
        details = f"Error: {error}" + (f" - {where}" if where else "")
        return await self.log(context, "error", "occurred", "system", None, "System", details)
