"""Live fan-out of events to connected administrators.

Each connected client is a PushChannel. The hub writes every event to
all open channels concurrently; a channel whose write fails is closed and
removed without affecting the others. Clients only see events that occur
while they are connected.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from datetime import datetime
from typing import TYPE_CHECKING

from accessfeed.exceptions import BroadcastWriteError
from accessfeed.models import generate_id, utc_now

if TYPE_CHECKING:
    from accessfeed.models import Event

logger = logging.getLogger(__name__)


def event_frame(event: Event, timestamp: datetime | None = None) -> str:
    """Serialize the live-feed frame for an event."""
    return json.dumps(
        {
            "type": "event",
            "event": event.model_dump(mode="json"),
            "timestamp": (timestamp or utc_now()).isoformat(),
        },
        separators=(",", ":"),
        ensure_ascii=False,
    )


def connected_frame(channel: PushChannel, timestamp: datetime | None = None) -> str:
    """Serialize the greeting sent when a channel opens."""
    return json.dumps(
        {
            "type": "connected",
            "message": "Connected to event stream",
            "connectionId": channel.id,
            "timestamp": (timestamp or utc_now()).isoformat(),
        },
        separators=(",", ":"),
    )


class PushChannel(ABC):
    """One subscriber connection.

    Attributes:
        id: Unique connection id.
        subscriber_id: User that opened the connection.
        connected_at: When the connection was opened.
    """

    def __init__(self, subscriber_id: str | None = None) -> None:
        self.id = generate_id("sub")
        self.subscriber_id = subscriber_id
        self.connected_at = utc_now()

    @property
    @abstractmethod
    def closed(self) -> bool:
        """Whether the channel accepts no more frames."""
        ...

    @abstractmethod
    async def send(self, frame: str) -> None:
        """Write one frame.

        Raises:
            BroadcastWriteError: If the frame could not be written.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the channel. Idempotent."""
        ...


class QueueChannel(PushChannel):
    """Channel backed by a bounded queue, drained by the SSE response.

    A client too slow to keep up fills its queue; the next write fails and
    the hub drops the connection.
    """

    def __init__(self, subscriber_id: str | None = None, max_queue: int = 100) -> None:
        super().__init__(subscriber_id)
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=max_queue)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Frames written but not yet consumed."""
        return self._queue.qsize()

    async def send(self, frame: str) -> None:
        if self._closed:
            raise BroadcastWriteError("Channel is closed", self.id)
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull as e:
            raise BroadcastWriteError(
                f"Channel queue full ({self._queue.maxsize} frames)", self.id
            ) from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Unconsumed frames are discarded; the sentinel ends frames()
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def frames(self) -> AsyncIterator[str]:
        """Yield frames in write order until the channel is closed."""
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame


class BroadcastHub:
    """Registry of open channels and concurrent fan-out to them.

    Example:
        ```python
        hub = BroadcastHub()
        channel = QueueChannel(subscriber_id="admin_1")
        hub.open(channel)
        await hub.broadcast(event)  # -> 1
        ```
    """

    def __init__(self) -> None:
        self._channels: dict[str, PushChannel] = {}

    @property
    def connection_count(self) -> int:
        return len(self._channels)

    def connections(self) -> list[PushChannel]:
        """Open channels in connection order."""
        return list(self._channels.values())

    def open(self, channel: PushChannel) -> PushChannel:
        """Register a channel; it receives every event broadcast from now on."""
        if channel.closed:
            raise BroadcastWriteError("Cannot open a closed channel", channel.id)
        self._channels[channel.id] = channel
        logger.info(
            "Live connection %s opened for %s (%d total)",
            channel.id,
            channel.subscriber_id,
            len(self._channels),
        )
        return channel

    async def close(self, channel: PushChannel) -> None:
        """Unregister and close a channel. Safe to call more than once."""
        removed = self._channels.pop(channel.id, None)
        await channel.close()
        if removed is not None:
            logger.info(
                "Live connection %s closed (%d remaining)", channel.id, len(self._channels)
            )

    async def broadcast(self, event: Event) -> int:
        """Write an event to every open channel.

        Returns:
            Number of channels that accepted the frame.
        """
        return await self.broadcast_frame(event_frame(event))

    async def broadcast_frame(self, frame: str) -> int:
        """Write a pre-serialized frame to every open channel."""
        channels = list(self._channels.values())
        if not channels:
            return 0
        results = await asyncio.gather(*(self._send(channel, frame) for channel in channels))
        return sum(results)

    async def _send(self, channel: PushChannel, frame: str) -> bool:
        try:
            await channel.send(frame)
            return True
        except BroadcastWriteError as e:
            logger.warning("Dropping live connection %s: %s", channel.id, e.message)
        except Exception:
            logger.exception("Unexpected error writing to live connection %s", channel.id)
        await self.close(channel)
        return False

    async def shutdown(self) -> None:
        """Close every channel."""
        channels = list(self._channels.values())
        for channel in channels:
            await self.close(channel)
        if channels:
            logger.info("Closed %d live connection(s) on shutdown", len(channels))
