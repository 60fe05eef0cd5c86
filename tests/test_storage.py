"""Tests for the in-memory stores."""

from datetime import UTC, datetime, timedelta

import pytest

from accessfeed.models import Event, WebhookConfig, WebhookDelivery
from accessfeed.storage import InMemoryDeliveryStore, InMemoryEventStore, InMemoryWebhookStore

T0 = datetime(2024, 1, 1, tzinfo=UTC)


class TestEventStore:
    """Tests for InMemoryEventStore."""

    @pytest.mark.asyncio
    async def test_append_and_get(self):
        """Appended events should be retrievable by id."""
        store = InMemoryEventStore()
        event = Event(type="door", action="opened")

        assert await store.append(event) == event.id
        assert await store.get(event.id) == event

    @pytest.mark.asyncio
    async def test_append_only(self):
        """The same event cannot be recorded twice."""
        store = InMemoryEventStore()
        event = Event(type="door", action="opened")
        await store.append(event)

        with pytest.raises(ValueError):
            await store.append(event)

    @pytest.mark.asyncio
    async def test_list_recent_newest_first_with_filter(self):
        """list_recent should return newest first and filter by type."""
        store = InMemoryEventStore()
        events = [
            Event(type="door", action="opened"),
            Event(type="auth", action="login"),
            Event(type="door", action="closed"),
        ]
        for event in events:
            await store.append(event)

        assert [e.action for e in await store.list_recent()] == ["closed", "login", "opened"]
        assert [e.action for e in await store.list_recent(type="door")] == ["closed", "opened"]
        assert len(await store.list_recent(limit=1)) == 1

    @pytest.mark.asyncio
    async def test_bounded(self):
        """The oldest events should fall off beyond max_size."""
        store = InMemoryEventStore(max_size=2)
        first = Event(type="door", action="opened")
        await store.append(first)
        await store.append(Event(type="door", action="closed"))
        await store.append(Event(type="door", action="opened"))

        assert len(store) == 2
        assert await store.get(first.id) is None


class TestWebhookStore:
    """Tests for InMemoryWebhookStore."""

    @pytest.mark.asyncio
    async def test_crud(self):
        """put, get, list and delete should behave as a keyed store."""
        store = InMemoryWebhookStore()
        config = WebhookConfig(name="Ops", url="https://x.example")

        await store.put(config)
        assert (await store.get(config.id)).secret == config.secret
        assert [w.id for w in await store.list()] == [config.id]
        assert await store.delete(config.id) is True
        assert await store.delete(config.id) is False
        assert await store.get(config.id) is None

    @pytest.mark.asyncio
    async def test_returns_copies(self):
        """Mutating a returned config should not change the store."""
        store = InMemoryWebhookStore()
        config = WebhookConfig(name="Ops", url="https://x.example")
        await store.put(config)

        fetched = await store.get(config.id)
        fetched.name = "Changed"

        assert (await store.get(config.id)).name == "Ops"


class TestDeliveryStore:
    """Tests for InMemoryDeliveryStore."""

    @pytest.fixture
    def config(self):
        return WebhookConfig(name="Ops", url="https://x.example")

    def _delivery(self, config, offset):
        return WebhookDelivery.for_config(
            config, "door.offline", {}, created_at=T0 + timedelta(seconds=offset)
        )

    @pytest.mark.asyncio
    async def test_history_newest_first(self, config):
        """list_for_webhook should return newest first."""
        store = InMemoryDeliveryStore()
        deliveries = [self._delivery(config, i) for i in range(3)]
        for delivery in deliveries:
            await store.add(delivery)

        listed = await store.list_for_webhook(config.id)
        assert [d.id for d in listed] == [d.id for d in reversed(deliveries)]
        assert len(await store.list_for_webhook(config.id, limit=2)) == 2

    @pytest.mark.asyncio
    async def test_history_bounded_per_webhook(self, config):
        """The oldest delivery of a webhook should be evicted first."""
        store = InMemoryDeliveryStore(history_limit=2)
        other = WebhookConfig(name="Other", url="https://y.example")
        oldest = self._delivery(config, 0)
        kept = self._delivery(other, 0)
        await store.add(oldest)
        await store.add(kept)
        await store.add(self._delivery(config, 1))
        await store.add(self._delivery(config, 2))

        assert await store.get(oldest.id) is None
        assert await store.get(kept.id) is not None
        assert len(await store.list_for_webhook(config.id)) == 2

    @pytest.mark.asyncio
    async def test_update_evicted_is_ignored(self, config):
        """Updating an evicted delivery should not resurrect it."""
        store = InMemoryDeliveryStore(history_limit=1)
        evicted = self._delivery(config, 0)
        await store.add(evicted)
        await store.add(self._delivery(config, 1))

        evicted.status = "delivered"
        await store.update(evicted)

        assert await store.get(evicted.id) is None

    @pytest.mark.asyncio
    async def test_update_persists_state(self, config):
        """update should replace the stored state."""
        store = InMemoryDeliveryStore()
        delivery = self._delivery(config, 0)
        await store.add(delivery)

        delivery.start_attempt(T0)
        await store.update(delivery)

        assert (await store.get(delivery.id)).attempts == 1
