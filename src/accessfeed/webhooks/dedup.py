"""Bounded window of recently triggered webhook events.

Suppresses re-triggers of the same occurrence. Keys are kept in insertion
order and the oldest is evicted once the window is over capacity. The
window lives in memory only; it does not survive a restart.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections import OrderedDict
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Literal

logger = logging.getLogger(__name__)

FallbackIdentity = Literal["timestamp", "content"]


def dedup_key(
    event_name: str,
    payload: Mapping[str, Any],
    *,
    now: datetime,
    fallback: FallbackIdentity = "timestamp",
) -> str:
    """Build the duplicate-suppression key for a trigger.

    The identity is the payload's ``eventId``, else its ``id``. Without
    either, ``fallback`` decides: "timestamp" uses the trigger time in
    milliseconds (so identical payloads a millisecond apart are distinct,
    and distinct payloads within one millisecond collide); "content" uses a
    hash of the canonical JSON payload.

    Args:
        event_name: Webhook event name.
        payload: Event payload.
        now: Trigger time.
        fallback: Identity strategy when the payload carries no id.

    Returns:
        Key of the form "<event_name>-<identity>".
    """
    identity = payload.get("eventId")
    if identity is None:
        identity = payload.get("id")
    if identity is None:
        if fallback == "content":
            canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
            identity = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        else:
            identity = int(now.timestamp() * 1000)
    return f"{event_name}-{identity}"


class DedupWindow:
    """Insertion-ordered set of recent keys with FIFO eviction.

    Example:
        ```python
        window = DedupWindow(capacity=2)
        window.add("a"); window.add("b"); window.add("c")
        assert not window.has("a")  # evicted
        ```
    """

    def __init__(self, capacity: int = 1000) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._keys: OrderedDict[str, None] = OrderedDict()
        self._evictions = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def evictions(self) -> int:
        """Total keys evicted since creation."""
        return self._evictions

    def has(self, key: str) -> bool:
        """Check whether a key is inside the window."""
        return key in self._keys

    def add(self, key: str) -> None:
        """Insert a key, evicting the oldest entries beyond capacity.

        Re-adding a key that is already present keeps its original position.
        """
        if key in self._keys:
            return
        self._keys[key] = None
        while len(self._keys) > self._capacity:
            evicted, _ = self._keys.popitem(last=False)
            self._evictions += 1
            logger.debug("Evicted dedup key %s (size=%d)", evicted, len(self._keys))

    def clear(self) -> None:
        self._keys.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)
