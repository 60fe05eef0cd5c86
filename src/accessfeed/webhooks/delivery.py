"""Webhook delivery with HMAC signatures and exponential backoff retry.

Every subscribed webhook gets its own delivery record. Attempts are made
in the background so triggering never waits on remote endpoints:

- Duplicate triggers inside the dedup window are suppressed
- The envelope is serialized once; every attempt sends the same bytes
- Failures are retried after base * 2**(attempt-1) seconds
- Exhausted deliveries are marked failed and reported once
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable, Coroutine
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import httpx

from accessfeed.exceptions import PermanentDeliveryError, TransientDeliveryError
from accessfeed.models import (
    TEST_EVENT,
    DeliveryFailure,
    WebhookConfig,
    WebhookDelivery,
    WebhookEnvelope,
)

from .dedup import dedup_key
from .signature import signature_header

if TYPE_CHECKING:
    from accessfeed.config import Settings
    from accessfeed.scheduling import Scheduler
    from accessfeed.storage import DeliveryStore

    from .dedup import DedupWindow
    from .registry import WebhookRegistry

logger = logging.getLogger(__name__)

PermanentFailureHandler = Callable[
    [WebhookDelivery, WebhookConfig, PermanentDeliveryError], Awaitable[None]
]

CONFIG_GONE_MESSAGE = "Webhook not found or inactive"


class DeliveryEngine:
    """Delivers triggered events to subscribed webhooks.

    Example:
        ```python
        engine = DeliveryEngine(registry, InMemoryDeliveryStore(), DedupWindow(), scheduler)

        delivery_ids = await engine.trigger_webhook("door.offline", {"eventId": "evt_1"})
        await engine.wait_idle()
        ```
    """

    def __init__(
        self,
        registry: WebhookRegistry,
        deliveries: DeliveryStore,
        dedup: DedupWindow,
        scheduler: Scheduler,
        http_client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
        on_permanent_failure: PermanentFailureHandler | None = None,
    ) -> None:
        """Initialize the delivery engine.

        Args:
            registry: Source of webhook configurations.
            deliveries: Store for delivery records.
            dedup: Window of recently triggered keys.
            scheduler: Runs delayed retries and supplies the clock.
            http_client: Client used for outbound POSTs. Created lazily and
                owned by the engine if not provided.
            settings: Retry, concurrency and identity settings.
            on_permanent_failure: Awaited once per delivery that exhausts
                its attempts.
        """
        if settings is None:
            from accessfeed.config import settings as default_settings

            settings = default_settings

        self._registry = registry
        self._deliveries = deliveries
        self._dedup = dedup
        self._scheduler = scheduler
        self._client = http_client
        self._owns_client = http_client is None
        self._retry_base = settings.webhook_retry_base_seconds
        self._history_limit = settings.webhook_history_limit
        self._dedup_fallback = settings.dedup_fallback
        self._user_agent = settings.webhook_user_agent
        self._product_name = settings.product_name
        self._semaphore = asyncio.Semaphore(settings.webhook_max_concurrent)
        self._on_permanent_failure = on_permanent_failure
        self._active: dict[str, WebhookDelivery] = {}
        self._bodies: dict[str, bytes] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._suppressed = 0

    @property
    def suppressed_count(self) -> int:
        """Triggers dropped as duplicates since creation."""
        return self._suppressed

    @property
    def in_flight(self) -> int:
        """Attempts currently running in the background."""
        return sum(1 for t in self._tasks if not t.done())

    def backoff_seconds(self, attempt: int) -> float:
        """Delay before the retry that follows failed attempt number ``attempt``."""
        return self._retry_base * (2 ** (attempt - 1))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def trigger_webhook(self, event_name: str, payload: dict[str, Any]) -> list[str]:
        """Start deliveries of an event to every subscribed webhook.

        Args:
            event_name: Webhook event name, e.g. "door.offline".
            payload: Event data; snapshotted per delivery.

        Returns:
            IDs of the deliveries created. Empty for duplicates or when no
            active webhook subscribes to the event.
        """
        now = self._scheduler.clock.now()
        key = dedup_key(event_name, payload, now=now, fallback=self._dedup_fallback)
        if self._dedup.has(key):
            self._suppressed += 1
            logger.debug("Suppressed duplicate webhook trigger %s", key)
            return []
        self._dedup.add(key)

        webhooks = await self._registry.list_for_event(event_name)
        if not webhooks:
            logger.debug("No webhooks subscribed to event %s", event_name)
            return []

        delivery_ids: list[str] = []
        for webhook in webhooks:
            delivery = WebhookDelivery.for_config(webhook, event_name, payload, created_at=now)
            await self._track(delivery)
            self._spawn(self._run_attempt(delivery.id))
            delivery_ids.append(delivery.id)

        logger.info(
            "Triggered %s for %d webhook(s): %s",
            event_name,
            len(delivery_ids),
            ", ".join(delivery_ids),
        )
        return delivery_ids

    async def send_test(self, webhook_id: str) -> WebhookDelivery:
        """Send a test event to one webhook and wait for the first attempt.

        Skips duplicate suppression and subscription checks. Retries, if
        any, continue in the background.

        Raises:
            NotFoundError: If the webhook does not exist.
        """
        webhook = await self._registry.get_by_id(webhook_id)
        data = {
            "message": f"This is a test webhook from {self._product_name}",
            "webhookId": webhook.id,
            "webhookName": webhook.name,
        }
        delivery = WebhookDelivery.for_config(
            webhook, TEST_EVENT, data, created_at=self._scheduler.clock.now()
        )
        await self._track(delivery)
        return await self._attempt(delivery.id)

    async def history(self, webhook_id: str, limit: int | None = None) -> list[WebhookDelivery]:
        """Deliveries for a webhook, newest first."""
        return await self._deliveries.list_for_webhook(webhook_id, limit or self._history_limit)

    async def _run_attempt(self, delivery_id: str) -> None:
        try:
            await self._attempt(delivery_id)
        except asyncio.CancelledError:
            raise
        except LookupError:
            logger.warning("Dropping attempt for untracked delivery %s", delivery_id)
        except Exception:
            logger.exception("Webhook delivery %s crashed", delivery_id)

    async def _track(self, delivery: WebhookDelivery) -> None:
        self._active[delivery.id] = delivery
        await self._deliveries.add(delivery)

    def _release(self, delivery_id: str) -> None:
        self._active.pop(delivery_id, None)
        self._bodies.pop(delivery_id, None)

    def _body_for(self, delivery: WebhookDelivery) -> bytes:
        body = self._bodies.get(delivery.id)
        if body is None:
            body = self._bodies[delivery.id] = WebhookEnvelope.for_delivery(delivery).to_bytes()
        return body

    async def _attempt(self, delivery_id: str) -> WebhookDelivery:
        """Make one delivery attempt and record its outcome.

        The engine holds its own copy of every unfinished delivery, so a
        record evicted from history still runs to a terminal state.
        """
        delivery = self._active.get(delivery_id)
        if delivery is None:
            delivery = await self._deliveries.get(delivery_id)
        if delivery is None:
            raise LookupError(f"Delivery {delivery_id} is no longer tracked")
        if delivery.is_terminal:
            return delivery

        webhook = await self._registry.find(delivery.webhook_id)
        if webhook is None or not webhook.active:
            delivery.mark_failed(DeliveryFailure(message=CONFIG_GONE_MESSAGE, kind="config"))
            await self._deliveries.update(delivery)
            self._release(delivery.id)
            logger.warning(
                "Webhook %s not found or inactive; delivery %s abandoned after %d attempt(s)",
                delivery.webhook_id,
                delivery.id,
                delivery.attempts,
            )
            return delivery

        delivery.start_attempt(self._scheduler.clock.now())
        body = self._body_for(delivery)

        try:
            response = await self._post(webhook, delivery, body)
        except TransientDeliveryError as e:
            await self._handle_failure(webhook, delivery, e)
        else:
            delivery.mark_delivered(
                status_code=response.status_code,
                reason=response.reason_phrase,
                body=response.text or None,
            )
            self._release(delivery.id)
            logger.info(
                "Webhook delivered: %s to %s (status %d, attempt %d)",
                delivery.event,
                webhook.url,
                response.status_code,
                delivery.attempts,
            )

        await self._deliveries.update(delivery)
        return delivery

    async def _post(
        self, webhook: WebhookConfig, delivery: WebhookDelivery, body: bytes
    ) -> httpx.Response:
        """POST the signed body; raise TransientDeliveryError unless 2xx."""
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Signature": signature_header(body, webhook.secret),
            "X-Webhook-Event": delivery.event,
            "X-Webhook-Delivery": delivery.id,
            "User-Agent": self._user_agent,
        }

        try:
            async with self._semaphore:
                response = await self._http().post(
                    webhook.url,
                    content=body,
                    headers=headers,
                    timeout=webhook.timeout_ms / 1000,
                )
        except httpx.TimeoutException as e:
            raise TransientDeliveryError(
                f"Request timeout after {webhook.timeout_ms}ms", delivery.id, kind="timeout"
            ) from e
        except httpx.RequestError as e:
            raise TransientDeliveryError(str(e) or type(e).__name__, delivery.id) from e
        except Exception as e:
            logger.exception("Unexpected error delivering %s", delivery.id)
            raise TransientDeliveryError(
                f"Unexpected error: {e}", delivery.id, kind="internal"
            ) from e

        if not response.is_success:
            raise TransientDeliveryError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                delivery.id,
                kind="http",
                status_code=response.status_code,
            )
        return response

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def _handle_failure(
        self,
        webhook: WebhookConfig,
        delivery: WebhookDelivery,
        error: TransientDeliveryError,
    ) -> None:
        failure = DeliveryFailure(
            message=error.message, kind=error.kind, status_code=error.status_code
        )

        if delivery.can_retry:
            delay = self.backoff_seconds(delivery.attempts)
            next_retry = self._scheduler.clock.now() + timedelta(seconds=delay)
            delivery.mark_retrying(next_retry_at=next_retry, error=failure)
            self._scheduler.call_later(delay, functools.partial(self._run_attempt, delivery.id))
            logger.info(
                "Webhook scheduled for retry: %s to %s (attempt %d failed: %s; next at %s)",
                delivery.event,
                webhook.url,
                delivery.attempts,
                error.message,
                next_retry.isoformat(),
            )
            return

        delivery.mark_failed(failure)
        self._release(delivery.id)
        permanent = PermanentDeliveryError(
            f"Delivery of {delivery.event} to {webhook.url} failed after "
            f"{delivery.attempts} attempt(s): {error.message}",
            delivery.id,
            attempts=delivery.attempts,
        )
        logger.warning("Webhook max attempts exceeded: %s", permanent.message)

        if self._on_permanent_failure is not None:
            try:
                await self._on_permanent_failure(delivery, webhook, permanent)
            except Exception:
                logger.exception("Permanent failure handler raised for %s", delivery.id)

    async def wait_idle(self) -> None:
        """Wait for every background attempt, including ones spawned meanwhile.

        Retries waiting on the scheduler are not attempts yet and are not
        waited for.
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel background attempts and close an engine-owned HTTP client."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._active.clear()
        self._bodies.clear()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
