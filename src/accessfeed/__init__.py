"""AccessFeed: event log and notification fan-out for access control.

Business routes record what happened; AccessFeed stores the event and
pushes it to signed, retried webhooks and to a live feed for
administrators.

Quick Start:
    from accessfeed.service import AccessFeedService

    async with AccessFeedService.create() as feed:
        await feed.registry.create(
            WebhookCreate(
                name="Ops channel",
                url="https://ops.example.com/hooks/doors",
                events=["door.offline", "door.online"],
            )
        )
        await feed.dispatcher.log(
            None, "door", "offline", "Door", "door_7", "Lobby", "Controller unreachable"
        )

Components:
    - EventDispatcher: records events and starts fan-out
    - WebhookRegistry: validated webhook CRUD
    - DeliveryEngine: signed delivery with exponential backoff retry
    - BroadcastHub: live push to connected administrators
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    AccessFeedError,
    AuthenticationError,
    AuthorizationError,
    BroadcastWriteError,
    ConfigurationError,
    DeliveryError,
    DuplicateWebhookError,
    NotFoundError,
    PermanentDeliveryError,
    StorageError,
    TransientDeliveryError,
    ValidationError,
)

# Logging
from .logging import configure_logging, get_logger

# Models
from .models import (
    Event,
    EventContext,
    EventData,
    WebhookConfig,
    WebhookCreate,
    WebhookDelivery,
    WebhookEnvelope,
    WebhookUpdate,
)

__all__ = [
    "AccessFeedError",
    "AuthenticationError",
    "AuthorizationError",
    "BroadcastWriteError",
    "ConfigurationError",
    "DeliveryError",
    "DuplicateWebhookError",
    "Event",
    "EventContext",
    "EventData",
    "NotFoundError",
    "PermanentDeliveryError",
    "Settings",
    "StorageError",
    "TransientDeliveryError",
    "ValidationError",
    "WebhookConfig",
    "WebhookCreate",
    "WebhookDelivery",
    "WebhookEnvelope",
    "WebhookUpdate",
    "__version__",
    "configure_logging",
    "get_logger",
    "settings",
]
