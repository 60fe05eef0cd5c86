"""Event models: the immutable, append-only log of domain occurrences.

Business routes outside AccessFeed describe what happened with an
EventData and who caused it with an EventContext. The dispatcher combines
the two into a frozen Event exactly once per occurrence.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now

SYSTEM_USER_NAME = "System"
UNKNOWN = "unknown"


def display_name(
    user_id: str | int | None,
    first_name: str | None = None,
    last_name: str | None = None,
    email: str | None = None,
) -> str:
    """Resolve the human-readable name recorded on events.

    "First Last" when both names are known, else the email, else "User <id>".
    """
    if first_name and last_name:
        return f"{first_name} {last_name}"
    if email:
        return email
    return f"User {user_id}"


class EventContext(BaseModel):
    """Who triggered an event and from where.

    Attributes:
        user_id: Acting user, or None for system-originated events.
        user_name: Display name; "System" when there is no user.
        ip_address: Client address, "unknown" if not available.
        user_agent: Client User-Agent, "unknown" if not available.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    user_id: str | None = None
    user_name: str = SYSTEM_USER_NAME
    ip_address: str = UNKNOWN
    user_agent: str = UNKNOWN

    @classmethod
    def system(cls, user_agent: str = UNKNOWN) -> EventContext:
        """Context for events raised by AccessFeed itself."""
        return cls(ip_address="127.0.0.1", user_agent=user_agent)

    @classmethod
    def for_user(
        cls,
        user: dict[str, Any] | None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> EventContext:
        """Build a context from a user mapping with id/firstName/lastName/email keys."""
        if not user:
            return cls(ip_address=ip_address or UNKNOWN, user_agent=user_agent or UNKNOWN)
        user_id = user.get("id")
        return cls(
            user_id=None if user_id is None else str(user_id),
            user_name=display_name(
                user_id,
                first_name=user.get("firstName") or user.get("first_name"),
                last_name=user.get("lastName") or user.get("last_name"),
                email=user.get("email"),
            ),
            ip_address=ip_address or UNKNOWN,
            user_agent=user_agent or UNKNOWN,
        )


class EventData(BaseModel):
    """What happened, as described by the producing business route."""

    model_config = ConfigDict(extra="forbid", frozen=True, coerce_numbers_to_str=True)

    type: str = Field(min_length=1, description="Event category, e.g. door, access, auth")
    action: str = Field(min_length=1, description="What happened, e.g. opened, granted")
    entity_type: str = Field(default="", description="Kind of entity affected")
    entity_id: str | None = Field(default=None, description="ID of the affected entity")
    entity_name: str = Field(default="", description="Display name of the affected entity")
    details: str = Field(default="", description="Free-form description")


class Event(BaseModel):
    """Immutable record of a domain occurrence.

    Created once by the dispatcher, never mutated or deleted afterwards.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: generate_id("evt"))
    type: str
    action: str
    entity_type: str = ""
    entity_id: str | None = None
    entity_name: str = ""
    user_id: str | None = None
    user_name: str = SYSTEM_USER_NAME
    details: str = ""
    ip_address: str = UNKNOWN
    user_agent: str = UNKNOWN
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def key(self) -> str:
        """Lookup key "<type>.<action>" used for webhook event mapping."""
        return f"{self.type}.{self.action}"

    @classmethod
    def record(
        cls,
        context: EventContext | None,
        data: EventData,
        created_at: datetime | None = None,
    ) -> Event:
        """Combine producer data with request context into a new Event."""
        context = context or EventContext()
        fields: dict[str, Any] = {
            **data.model_dump(),
            "user_id": context.user_id,
            "user_name": context.user_name,
            "ip_address": context.ip_address,
            "user_agent": context.user_agent,
        }
        if created_at is not None:
            fields["created_at"] = created_at
        return cls(**fields)


__all__ = [
    "SYSTEM_USER_NAME",
    "Event",
    "EventContext",
    "EventData",
    "display_name",
]
