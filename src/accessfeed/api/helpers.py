"""API helper functions shared by the route handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from accessfeed.models import EVENT_DESCRIPTIONS, EventContext, display_name, event_key

from .auth import extract_client_ip
from .schemas import AvailableEvent, ConnectionInfo

if TYPE_CHECKING:
    from fastapi import Request

    from accessfeed.broadcast import PushChannel

    from .auth import AuthenticatedUser


def context_from_request(request: Request, user: AuthenticatedUser | None) -> EventContext:
    """Build the event context for an admin request.

    Args:
        request: Incoming request, for client address and User-Agent.
        user: Authenticated admin, or None when auth is disabled.

    Returns:
        EventContext attributing the event to the admin (or "System").
    """
    ip_address = extract_client_ip(request)
    user_agent = request.headers.get("user-agent") or "unknown"
    if user is None:
        return EventContext(ip_address=ip_address, user_agent=user_agent)
    return EventContext(
        user_id=user.user_id,
        user_name=display_name(user.user_id),
        ip_address=ip_address,
        user_agent=user_agent,
    )


def available_events() -> list[AvailableEvent]:
    """Subscribable webhook events with descriptions."""
    return [
        AvailableEvent(key=event_key(name), name=name, description=description)
        for name, description in EVENT_DESCRIPTIONS.items()
    ]


def connection_info(channel: PushChannel) -> ConnectionInfo:
    return ConnectionInfo(
        id=channel.id,
        subscriber_id=channel.subscriber_id,
        connected_at=channel.connected_at,
    )
