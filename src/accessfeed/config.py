"""Configuration management for AccessFeed."""

import logging
import secrets
import warnings
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


def _generate_dev_secret_key() -> str:
    """Generate a random secret key for development use.

    Tokens signed with it are invalidated on restart, which is acceptable
    outside production.
    """
    return secrets.token_hex(32)


class Settings(BaseSettings):
    """AccessFeed configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the ACCESSFEED_ prefix. For example:
        ACCESSFEED_LOG_FORMAT=text
        ACCESSFEED_WEBHOOK_MAX_CONCURRENT=20

    Security Notes:
        - In production (ACCESSFEED_ENV=production), auth is enabled by default
        - A missing secret key in production raises an error
        - Disabling auth in production logs a warning
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )
    product_name: str = Field(
        default="AccessFeed",
        min_length=1,
        description="Product name used in the outbound webhook User-Agent",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    # Authentication
    auth_enabled: bool | None = Field(
        default=None,
        description=(
            "Enable Bearer token authentication for admin routes. "
            "If not set, defaults to True in production, False otherwise."
        ),
    )
    auth_secret_key: str | None = Field(
        default=None,
        description=(
            "Secret key for token validation (HMAC). "
            "REQUIRED in production. In dev/test, a random key is generated if not set."
        ),
    )
    auth_token_expire_minutes: int = Field(
        default=60,
        ge=1,
        description="Admin token expiration time in minutes",
    )
    stream_token_expire_minutes: int = Field(
        default=5,
        ge=1,
        le=60,
        description="Lifetime of the query-string token used to open the live event stream",
    )

    # Webhook delivery
    webhook_retry_base_seconds: float = Field(
        default=1.0,
        gt=0.0,
        le=60.0,
        description="Initial retry delay; doubles after every failed attempt",
    )
    webhook_default_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Default maximum delivery attempts for new webhooks",
    )
    webhook_default_timeout_ms: int = Field(
        default=5000,
        ge=100,
        le=60000,
        description="Default per-attempt HTTP timeout for new webhooks",
    )
    webhook_max_concurrent: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Maximum outbound webhook requests in flight at once",
    )
    webhook_history_limit: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Deliveries kept per webhook; oldest are evicted first",
    )

    # Duplicate suppression
    dedup_capacity: int = Field(
        default=1000,
        ge=1,
        le=1_000_000,
        description="Number of recent trigger keys remembered for duplicate suppression",
    )
    dedup_fallback: Literal["timestamp", "content"] = Field(
        default="timestamp",
        description=(
            "Identity used when a payload carries no eventId/id: 'timestamp' keys on the "
            "trigger time in milliseconds, 'content' keys on a hash of the payload"
        ),
    )

    # Live feed
    broadcast_queue_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Frames buffered per live connection before it is dropped as too slow",
    )
    sse_ping_seconds: int = Field(
        default=15,
        ge=1,
        le=300,
        description="Keep-alive ping interval for the live event stream",
    )

    # Event log
    event_store_max_size: int = Field(
        default=10000,
        ge=100,
        le=1_000_000,
        description="Events retained by the in-memory event store",
    )

    # CORS Configuration
    cors_enabled: bool = Field(
        default=True,
        description="Enable CORS middleware",
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="List of allowed CORS origins",
    )
    cors_allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        description="Allowed HTTP methods for CORS requests",
    )
    cors_allow_headers: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed headers for CORS requests",
    )

    # Runtime-generated dev secret (not from env, generated at startup if needed)
    _runtime_dev_secret: str | None = None

    model_config = {
        "env_prefix": "ACCESSFEED_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_security_settings(self) -> "Settings":
        """Validate security settings based on environment.

        - In production, a secret key MUST be explicitly provided
        - In dev/test, a random key is generated if not provided
        - In production, disabling auth logs a warning
        """
        is_production = self.env == "production"

        if self.auth_enabled is None:
            object.__setattr__(self, "auth_enabled", is_production)

        if is_production:
            if self.auth_secret_key is None:
                raise ValueError(
                    "ACCESSFEED_AUTH_SECRET_KEY must be set in production. "
                    'Generate one with: python -c "import secrets; print(secrets.token_hex(32))"'
                )

            if not self.auth_enabled:
                warnings.warn(
                    "Authentication is disabled in production environment. "
                    "Set ACCESSFEED_AUTH_ENABLED=true to enable.",
                    UserWarning,
                    stacklevel=2,
                )
                logger.warning("Authentication disabled in production")
        elif self.auth_secret_key is None:
            object.__setattr__(self, "_runtime_dev_secret", _generate_dev_secret_key())
            logger.debug(
                "Generated random auth secret for development (tokens invalid after restart)"
            )

        return self

    @property
    def is_auth_enabled(self) -> bool:
        """Get resolved auth_enabled value (always bool, never None)."""
        if self.auth_enabled is None:
            return self.env == "production"
        return self.auth_enabled

    @property
    def effective_auth_secret_key(self) -> str:
        """Get the effective secret key for token operations.

        Raises:
            ValueError: If no secret key is available (should not happen
                after validation).
        """
        if self.auth_secret_key is not None:
            return self.auth_secret_key
        if self._runtime_dev_secret is not None:
            return self._runtime_dev_secret
        raise ValueError("No auth secret key available")

    @property
    def webhook_user_agent(self) -> str:
        """User-Agent header sent with every webhook delivery."""
        return f"{self.product_name}-Webhook/1.0"


# Global settings instance
settings = Settings()
