"""Tests for duplicate suppression."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from accessfeed.webhooks import DedupWindow, dedup_key

NOW = datetime(2024, 1, 1, tzinfo=UTC)


class TestDedupKey:
    """Tests for dedup_key."""

    def test_event_id_preferred(self):
        """eventId should win over id."""
        key = dedup_key("door.offline", {"eventId": "evt_1", "id": 9}, now=NOW)

        assert key == "door.offline-evt_1"

    def test_falls_back_to_id(self):
        """id should be used when eventId is missing."""
        assert dedup_key("door.offline", {"id": 9}, now=NOW) == "door.offline-9"

    def test_timestamp_fallback(self):
        """Without ids the trigger time in milliseconds is used."""
        key = dedup_key("door.offline", {"entityName": "Lobby"}, now=NOW)

        assert key == f"door.offline-{int(NOW.timestamp() * 1000)}"
        later = dedup_key(
            "door.offline", {"entityName": "Lobby"}, now=NOW + timedelta(milliseconds=1)
        )
        assert later != key

    def test_content_fallback(self):
        """The content fallback should key on the payload, not the time."""
        first = dedup_key("door.offline", {"a": 1, "b": 2}, now=NOW, fallback="content")
        reordered = dedup_key(
            "door.offline", {"b": 2, "a": 1}, now=NOW + timedelta(seconds=5), fallback="content"
        )
        other = dedup_key("door.offline", {"a": 2}, now=NOW, fallback="content")

        assert first == reordered
        assert first != other

    def test_event_name_is_part_of_key(self):
        """The same id under different events should not collide."""
        payload = {"eventId": "evt_1"}

        assert dedup_key("door.offline", payload, now=NOW) != dedup_key(
            "door.online", payload, now=NOW
        )


class TestDedupWindow:
    """Tests for DedupWindow."""

    def test_add_and_has(self):
        """Added keys should be reported as present."""
        window = DedupWindow(capacity=3)
        window.add("a")

        assert window.has("a")
        assert "a" in window
        assert not window.has("b")

    def test_fifo_eviction(self):
        """The oldest key should be evicted once over capacity."""
        window = DedupWindow(capacity=2)
        for key in ("a", "b", "c"):
            window.add(key)

        assert not window.has("a")
        assert window.has("b") and window.has("c")
        assert len(window) == 2
        assert window.evictions == 1

    def test_readd_does_not_refresh(self):
        """Re-adding a key should keep its original position."""
        window = DedupWindow(capacity=2)
        window.add("a")
        window.add("b")
        window.add("a")
        window.add("c")

        assert not window.has("a")
        assert window.has("b")

    def test_clear(self):
        """clear should forget every key."""
        window = DedupWindow()
        window.add("a")
        window.clear()

        assert len(window) == 0

    def test_capacity_must_be_positive(self):
        """A zero capacity should be rejected."""
        with pytest.raises(ValueError):
            DedupWindow(capacity=0)
