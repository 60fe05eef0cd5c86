"""Tests for AccessFeed exception hierarchy."""

import pytest

from accessfeed.exceptions import (
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


class TestAccessFeedError:
    """Tests for the base AccessFeedError class."""

    def test_error_message(self):
        """Should store and return message."""
        error = AccessFeedError("Something went wrong")
        assert error.message == "Something went wrong"
        assert str(error) == "Something went wrong"

    def test_to_dict(self):
        """Should convert to API-friendly dict."""
        assert AccessFeedError("Something went wrong").to_dict() == {
            "error": {
                "code": "accessfeed_error",
                "message": "Something went wrong",
            }
        }

    @pytest.mark.parametrize(
        "error",
        [
            ValidationError("field", "invalid"),
            NotFoundError("Webhook", "whk_1"),
            StorageError("failed"),
            AuthenticationError("bad token"),
            AuthorizationError("not admin"),
            ConfigurationError("url", "bad"),
            DuplicateWebhookError("https://a.example/hook"),
            TransientDeliveryError("HTTP 500", "dlv_1"),
            PermanentDeliveryError("exhausted", "dlv_1", attempts=3),
            BroadcastWriteError("gone", "sub_1"),
        ],
    )
    def test_inheritance(self, error):
        """All custom exceptions should inherit from AccessFeedError."""
        assert isinstance(error, AccessFeedError)


class TestValidationErrors:
    """Tests for field-level validation errors."""

    def test_validation_error_dict(self):
        """Should include the field."""
        assert ValidationError("events", "unknown").to_dict() == {
            "error": {
                "code": "validation_error",
                "field": "events",
                "message": "events: unknown",
            }
        }

    def test_duplicate_webhook_is_configuration_error(self):
        """DuplicateWebhookError should be a ConfigurationError on the url field."""
        error = DuplicateWebhookError("https://a.example/hook")
        assert isinstance(error, ConfigurationError)
        assert error.field == "url"
        assert error.code == "duplicate_webhook"
        assert "https://a.example/hook" in error.message


class TestNotFoundError:
    """Tests for NotFoundError."""

    def test_to_dict(self):
        """Should include resource type and id."""
        result = NotFoundError("Webhook", "whk_1").to_dict()
        assert result["error"]["resource_type"] == "Webhook"
        assert result["error"]["resource_id"] == "whk_1"
        assert result["error"]["message"] == "Webhook not found: whk_1"


class TestDeliveryErrors:
    """Tests for delivery errors."""

    def test_transient_defaults(self):
        """Transient errors default to the network kind."""
        error = TransientDeliveryError("refused", "dlv_1")
        assert isinstance(error, DeliveryError)
        assert error.kind == "network"
        assert error.status_code is None
        assert error.delivery_id == "dlv_1"

    def test_transient_http(self):
        """HTTP failures carry the status code."""
        error = TransientDeliveryError("HTTP 503", kind="http", status_code=503)
        assert error.status_code == 503

    def test_permanent_attempts(self):
        """Permanent errors record how many attempts were made."""
        error = PermanentDeliveryError("exhausted", "dlv_1", attempts=3)
        assert error.attempts == 3
        assert error.code == "permanent_delivery_error"
