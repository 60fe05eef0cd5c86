"""AccessFeed exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from AccessFeedError for easy catching.
"""

from __future__ import annotations


class AccessFeedError(Exception):
    """Base exception for all AccessFeed errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "accessfeed_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(AccessFeedError):
    """Invalid input provided.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(AccessFeedError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource (e.g., "webhook", "delivery").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class ConfigurationError(ValidationError):
    """Webhook configuration rejected.

    Raised synchronously by the registry for invalid URLs, unknown event
    names or conflicting configurations. Never reaches the delivery engine.
    """

    code: str = "configuration_error"


class DuplicateWebhookError(ConfigurationError):
    """Another active webhook already targets this URL."""

    code: str = "duplicate_webhook"

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__("url", f"an active webhook already targets {url}")


class StorageError(AccessFeedError):
    """Storage operation failed."""

    code: str = "storage_error"


class AuthenticationError(AccessFeedError):
    """Authentication failed.

    Raised when authentication credentials are invalid or missing.
    """

    code: str = "authentication_error"


class AuthorizationError(AccessFeedError):
    """Authorization failed.

    Raised when user lacks permission to perform an action.
    """

    code: str = "authorization_error"


class DeliveryError(AccessFeedError):
    """A webhook delivery attempt did not succeed.

    Attributes:
        delivery_id: ID of the affected delivery.
    """

    code: str = "delivery_error"

    def __init__(self, message: str, delivery_id: str | None = None) -> None:
        self.delivery_id = delivery_id
        super().__init__(message)


class TransientDeliveryError(DeliveryError):
    """Network error, timeout or non-2xx response. Retried per backoff policy.

    Attributes:
        kind: "http", "timeout" or "network".
        status_code: HTTP status if a response was received.
    """

    code: str = "transient_delivery_error"

    def __init__(
        self,
        message: str,
        delivery_id: str | None = None,
        kind: str = "network",
        status_code: int | None = None,
    ) -> None:
        self.kind = kind
        self.status_code = status_code
        super().__init__(message, delivery_id)


class PermanentDeliveryError(DeliveryError):
    """All delivery attempts exhausted. Terminal, logged, never escalated."""

    code: str = "permanent_delivery_error"

    def __init__(self, message: str, delivery_id: str | None = None, attempts: int = 0) -> None:
        self.attempts = attempts
        super().__init__(message, delivery_id)


class BroadcastWriteError(AccessFeedError):
    """Writing a frame to one push connection failed.

    Isolated to that connection; the hub prunes it and carries on.
    """

    code: str = "broadcast_write_error"

    def __init__(self, message: str, channel_id: str | None = None) -> None:
        self.channel_id = channel_id
        super().__init__(message)
