"""Translation from internal events to subscribable webhook events."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from accessfeed.models import Event

# "<type>.<action>" -> webhook event name. Anything not listed triggers nothing.
WEBHOOK_EVENT_MAP: dict[str, str] = {
    "access.granted": "access_request.granted",
    "access.denied": "access_request.denied",
    "access.status_changed": "access_request.status_changed",
    "door.opened": "door.opened",
    "door.closed": "door.closed",
    "door.online": "door.online",
    "door.offline": "door.offline",
    "door.controlled": "door.opened",
    "auth.login": "user.login",
    "auth.logout": "user.logout",
    "system.startup": "system.startup",
    "system.shutdown": "system.shutdown",
    "error.occurred": "system.error",
}


def webhook_event_for(event: Event) -> str | None:
    """Webhook event name for an internal event, or None if unmapped."""
    return WEBHOOK_EVENT_MAP.get(event.key)


def webhook_payload(event: Event) -> dict[str, Any]:
    """Build the webhook data for an event.

    Auth events also carry a ``user`` block. The recorded display name
    stands in for the email, which the event itself does not keep.
    """
    payload: dict[str, Any] = {
        "eventId": event.id,
        "type": event.type,
        "action": event.action,
        "entityType": event.entity_type,
        "entityId": event.entity_id,
        "entityName": event.entity_name,
        "details": event.details,
        "userId": event.user_id,
        "userName": event.user_name,
        "ipAddress": event.ip_address,
    }
    if event.type == "auth":
        payload["user"] = {
            "id": event.user_id,
            "email": event.user_name,
            "ipAddress": event.ip_address,
        }
    return payload
