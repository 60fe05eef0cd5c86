"""Live event feed for connected administrators."""

from .hub import BroadcastHub, PushChannel, QueueChannel, connected_frame, event_frame

__all__ = [
    "BroadcastHub",
    "PushChannel",
    "QueueChannel",
    "connected_frame",
    "event_frame",
]
