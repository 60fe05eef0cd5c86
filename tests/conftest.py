"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from accessfeed.config import Settings
from accessfeed.scheduling import ManualScheduler
from accessfeed.storage import InMemoryDeliveryStore, InMemoryWebhookStore
from accessfeed.webhooks import DedupWindow, DeliveryEngine, WebhookRegistry

# Add tests directory to path so helpers can be imported
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

from receivers import WebhookReceiver  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    """Test settings that ignore the environment's .env file."""
    return Settings(_env_file=None, env="test", auth_enabled=False)


@pytest.fixture
def scheduler() -> ManualScheduler:
    """Deterministic scheduler; retries only run when the test advances time."""
    return ManualScheduler()


@pytest.fixture
def webhook_store() -> InMemoryWebhookStore:
    return InMemoryWebhookStore()


@pytest.fixture
def delivery_store() -> InMemoryDeliveryStore:
    return InMemoryDeliveryStore(history_limit=100)


@pytest.fixture
def registry(webhook_store: InMemoryWebhookStore, settings: Settings) -> WebhookRegistry:
    return WebhookRegistry(webhook_store, settings=settings)


@pytest.fixture
def make_engine(
    registry: WebhookRegistry,
    delivery_store: InMemoryDeliveryStore,
    scheduler: ManualScheduler,
    settings: Settings,
) -> Callable[..., DeliveryEngine]:
    """Factory for a DeliveryEngine wired to a WebhookReceiver."""

    def _make(receiver: WebhookReceiver, **kwargs: object) -> DeliveryEngine:
        return DeliveryEngine(
            registry,
            delivery_store,
            DedupWindow(capacity=settings.dedup_capacity),
            scheduler,
            http_client=receiver.client(),
            settings=settings,
            **kwargs,  # type: ignore[arg-type]
        )

    return _make
