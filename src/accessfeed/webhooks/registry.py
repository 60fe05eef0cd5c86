"""Webhook registry: validated CRUD over webhook configurations.

Invalid configurations are rejected here, synchronously, so the delivery
engine only ever sees well-formed configs.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from pydantic import HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from accessfeed.exceptions import ConfigurationError, DuplicateWebhookError, NotFoundError
from accessfeed.models import (
    EVENT_DESCRIPTIONS,
    WebhookConfig,
    WebhookCreate,
    WebhookUpdate,
    utc_now,
)

if TYPE_CHECKING:
    from accessfeed.config import Settings
    from accessfeed.storage import WebhookStore

logger = logging.getLogger(__name__)

_URL_ADAPTER: TypeAdapter[HttpUrl] = TypeAdapter(HttpUrl)

# Fields that WebhookUpdate may change
UPDATABLE_FIELDS = ("name", "url", "events", "active", "retry_attempts", "timeout_ms")


def validate_url(url: str) -> str:
    """Check that a webhook URL is an absolute http(s) URL.

    Returns the URL unchanged so the configured value is what gets called.

    Raises:
        ConfigurationError: If the URL is malformed or not http/https.
    """
    try:
        parsed = _URL_ADAPTER.validate_python(url)
    except PydanticValidationError as e:
        raise ConfigurationError("url", f"invalid webhook URL {url!r}") from e
    if parsed.scheme not in ("http", "https"):
        raise ConfigurationError("url", f"unsupported scheme {parsed.scheme!r}")
    return url


def validate_events(events: Iterable[str]) -> list[str]:
    """Check that every event name is subscribable.

    Raises:
        ConfigurationError: If the list is empty or has unknown names.
    """
    names = list(dict.fromkeys(events))
    if not names:
        raise ConfigurationError("events", "at least one event is required")
    unknown = [name for name in names if name not in EVENT_DESCRIPTIONS]
    if unknown:
        raise ConfigurationError("events", f"unknown events: {', '.join(unknown)}")
    return names


class WebhookRegistry:
    """Create, read, update and delete webhook configurations.

    Mutations to the same webhook are serialized with a per-id lock. The
    URL uniqueness check shares a single lock across creates and URL or
    activation changes, so two concurrent creates cannot both claim a URL.

    Example:
        ```python
        registry = WebhookRegistry(InMemoryWebhookStore())
        config = await registry.create(
            WebhookCreate(name="ops", url="https://ops.example/hook", events=["door.offline"])
        )
        ```
    """

    def __init__(self, store: WebhookStore, settings: Settings | None = None) -> None:
        """Initialize the registry.

        Args:
            store: Backing store for configurations.
            settings: Supplies defaults for retry_attempts and timeout_ms.
        """
        self._store = store
        self._default_retry_attempts = settings.webhook_default_retry_attempts if settings else 3
        self._default_timeout_ms = settings.webhook_default_timeout_ms if settings else 5000
        self._locks: dict[str, asyncio.Lock] = {}
        self._url_lock = asyncio.Lock()

    def _lock_for(self, webhook_id: str) -> asyncio.Lock:
        lock = self._locks.get(webhook_id)
        if lock is None:
            lock = self._locks[webhook_id] = asyncio.Lock()
        return lock

    async def _ensure_url_available(self, url: str, exclude_id: str | None = None) -> None:
        for existing in await self._store.list():
            if existing.id != exclude_id and existing.active and existing.url == url:
                raise DuplicateWebhookError(url)

    async def create(self, data: WebhookCreate) -> WebhookConfig:
        """Register a new webhook.

        Args:
            data: Validated creation fields.

        Returns:
            The stored configuration, including its generated id.

        Raises:
            ConfigurationError: For an invalid URL or unknown event names.
            DuplicateWebhookError: If an active webhook already uses the URL.
        """
        url = validate_url(data.url)
        events = validate_events(data.events)

        fields: dict[str, object] = {
            "name": data.name,
            "url": url,
            "events": events,
            "active": data.active,
            "retry_attempts": data.retry_attempts or self._default_retry_attempts,
            "timeout_ms": data.timeout_ms or self._default_timeout_ms,
        }
        if data.secret is not None:
            fields["secret"] = data.secret
        config = WebhookConfig(**fields)

        async with self._url_lock:
            if config.active:
                await self._ensure_url_available(url)
            await self._store.put(config)

        logger.info("Registered webhook %s (%s) for %d events", config.id, url, len(events))
        return config

    async def list(self) -> list[WebhookConfig]:
        """All webhooks in creation order."""
        return await self._store.list()

    async def list_for_event(self, event_name: str) -> list[WebhookConfig]:
        """Active webhooks subscribed to ``event_name``."""
        return [w for w in await self._store.list() if w.subscribes_to(event_name)]

    async def find(self, webhook_id: str) -> WebhookConfig | None:
        """Get a webhook, or None if it does not exist."""
        return await self._store.get(webhook_id)

    async def get_by_id(self, webhook_id: str) -> WebhookConfig:
        """Get a webhook.

        Raises:
            NotFoundError: If no webhook has this id.
        """
        config = await self._store.get(webhook_id)
        if config is None:
            raise NotFoundError("Webhook", webhook_id)
        return config

    async def update(self, webhook_id: str, data: WebhookUpdate) -> WebhookConfig:
        """Merge the explicitly provided fields into a webhook.

        Fields left unset on ``data`` are kept. ``updated_at`` always moves.

        Raises:
            NotFoundError: If no webhook has this id.
            ConfigurationError: For an invalid URL or unknown event names.
            DuplicateWebhookError: If the new URL, or a reactivation,
                collides with another active webhook.
        """
        changes = {
            field: getattr(data, field)
            for field in data.model_fields_set
            if field in UPDATABLE_FIELDS and getattr(data, field) is not None
        }
        if "url" in changes:
            changes["url"] = validate_url(changes["url"])
        if "events" in changes:
            changes["events"] = validate_events(changes["events"])

        async with self._lock_for(webhook_id):
            config = await self.get_by_id(webhook_id)
            # secret is excluded from model_dump and must be carried explicitly
            updated = WebhookConfig.model_validate(
                {
                    **config.model_dump(),
                    **changes,
                    "secret": config.secret,
                    "updated_at": utc_now(),
                }
            )

            if "url" in changes or "active" in changes:
                async with self._url_lock:
                    if updated.active:
                        await self._ensure_url_available(updated.url, exclude_id=webhook_id)
                    await self._store.put(updated)
            else:
                await self._store.put(updated)

        logger.info("Updated webhook %s (fields: %s)", webhook_id, ", ".join(sorted(changes)))
        return updated

    async def delete(self, webhook_id: str) -> WebhookConfig:
        """Remove a webhook and return its last configuration.

        Deliveries already in flight find the config missing on their next
        attempt and stop.

        Raises:
            NotFoundError: If no webhook has this id.
        """
        async with self._lock_for(webhook_id):
            config = await self.get_by_id(webhook_id)
            await self._store.delete(webhook_id)
        self._locks.pop(webhook_id, None)
        logger.info("Deleted webhook %s", webhook_id)
        return config
