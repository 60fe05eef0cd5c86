"""Authentication for the AccessFeed admin API.

Provides:
- HMAC-signed tokens carrying a user id, role and scope
- A FastAPI dependency that admits administrators only
- Short-lived stream tokens for the live feed, passed as a query
  parameter because browser EventSource cannot set headers
"""

from __future__ import annotations

import hashlib
import hmac
import time
from functools import lru_cache
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field

from accessfeed.exceptions import AuthenticationError, AuthorizationError
from accessfeed.logging import bind_user, get_logger

if TYPE_CHECKING:
    from accessfeed.config import Settings

logger = get_logger(__name__)

ADMIN_ROLE = "admin"

# Token scopes: API tokens open the admin routes, stream tokens only the live feed
API_SCOPE = "api"
STREAM_SCOPE = "stream"

# Security scheme for OpenAPI docs
security = HTTPBearer(auto_error=False)


class AuthenticatedUser(BaseModel):
    """Represents an authenticated user.

    Attributes:
        user_id: Unique identifier for the user.
        role: Role encoded in the token, e.g. "admin".
        scope: What the token may be used for.
    """

    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(description="Unique identifier for the user")
    role: str = Field(default="user", description="Role granted by the token")
    scope: str = Field(default=API_SCOPE, description="Token scope")

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


class TokenValidator:
    """Validates Bearer tokens using HMAC-SHA256.

    Token format: user_id:role:scope:expires_at:signature
    where signature = HMAC(secret, user_id:role:scope:expires_at)
    """

    def __init__(self, secret_key: str) -> None:
        self.secret_key = secret_key.encode()

    def _sign(self, payload: str) -> str:
        return hmac.new(self.secret_key, payload.encode(), hashlib.sha256).hexdigest()

    def create_token(
        self,
        user_id: str,
        role: str = ADMIN_ROLE,
        scope: str = API_SCOPE,
        expire_minutes: int = 60,
    ) -> str:
        """Create a signed token for a user.

        Args:
            user_id: User identifier. Must not contain ":".
            role: Role granted by the token.
            scope: Scope the token is valid for.
            expire_minutes: Token validity in minutes.

        Returns:
            Signed token string.
        """
        if any(":" in part for part in (user_id, role, scope)):
            raise ValueError("user_id, role and scope must not contain ':'")
        expires_at = int(time.time()) + (expire_minutes * 60)
        payload = f"{user_id}:{role}:{scope}:{expires_at}"
        return f"{payload}:{self._sign(payload)}"

    def validate_token(self, token: str, scope: str = API_SCOPE) -> AuthenticatedUser:
        """Validate a token and return the authenticated user.

        Raises:
            AuthenticationError: If the token is invalid, expired or issued
                for another scope.
        """
        try:
            parts = token.split(":")
            if len(parts) != 5:
                raise AuthenticationError("Invalid token format")

            user_id, role, token_scope, expires_at_str, signature = parts
            payload = f"{user_id}:{role}:{token_scope}:{expires_at_str}"

            if not hmac.compare_digest(signature, self._sign(payload)):
                raise AuthenticationError("Invalid token signature")

            if time.time() > int(expires_at_str):
                raise AuthenticationError("Token has expired")

            if token_scope != scope:
                raise AuthenticationError(f"Token is not valid for {scope} access")

            return AuthenticatedUser(user_id=user_id, role=role, scope=token_scope)

        except (ValueError, IndexError) as e:
            raise AuthenticationError(f"Invalid token: {e}") from e


@lru_cache(maxsize=1)
def get_token_validator(secret_key: str) -> TokenValidator:
    """Get or create the token validator singleton.

    The secret_key parameter ensures a new validator is created if the key changes.
    """
    return TokenValidator(secret_key)


def reset_auth_singletons() -> None:
    """Reset the cached token validator (for testing)."""
    get_token_validator.cache_clear()


def settings_for(request: Request) -> Settings:
    """Settings attached to the application, else the process-wide settings."""
    app_settings = getattr(request.app.state, "settings", None)
    if app_settings is not None:
        return app_settings  # type: ignore[no-any-return]
    from accessfeed.config import settings

    return settings


def _require_admin(user: AuthenticatedUser) -> AuthenticatedUser:
    if not user.is_admin:
        logger.warning("Admin access denied", user_id=user.user_id, role=user.role)
        raise AuthorizationError("Admin access required")
    return user


class AuthDependency:
    """FastAPI dependency admitting administrators.

    Returns None when auth is disabled, so handlers treat the caller as
    an anonymous local operator.

    Usage:
        @router.get("/webhooks")
        async def list_webhooks(admin: AdminDep):
            ...
    """

    async def __call__(
        self,
        request: Request,
        credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    ) -> AuthenticatedUser | None:
        settings = settings_for(request)
        if not settings.is_auth_enabled:
            return None

        if credentials is None:
            raise AuthenticationError("Missing authentication credentials")

        validator = get_token_validator(settings.effective_auth_secret_key)
        user = _require_admin(validator.validate_token(credentials.credentials))
        bind_user(user.user_id)
        logger.debug("Admin authenticated", user_id=user.user_id)
        return user


class StreamTokenDependency:
    """FastAPI dependency validating the ``token`` query parameter.

    Used by the live stream endpoint, where the client cannot send an
    Authorization header.
    """

    async def __call__(
        self,
        request: Request,
        token: Annotated[str | None, Query(description="Stream token")] = None,
    ) -> AuthenticatedUser | None:
        settings = settings_for(request)
        if not settings.is_auth_enabled:
            return None

        if not token:
            raise AuthenticationError("Missing stream token")

        validator = get_token_validator(settings.effective_auth_secret_key)
        user = _require_admin(validator.validate_token(token, scope=STREAM_SCOPE))
        bind_user(user.user_id)
        logger.debug("Stream token accepted", user_id=user.user_id)
        return user


def issue_stream_token(settings: Settings, user: AuthenticatedUser | None) -> str:
    """Issue a short-lived token for opening the live stream."""
    validator = get_token_validator(settings.effective_auth_secret_key)
    return validator.create_token(
        user.user_id if user else "local",
        role=ADMIN_ROLE,
        scope=STREAM_SCOPE,
        expire_minutes=settings.stream_token_expire_minutes,
    )


def extract_client_ip(request: Request, *, trust_proxy_headers: bool = False) -> str:
    """Extract the best available client IP for event context.

    Enable *trust_proxy_headers* only when you control the proxy that sets
    ``X-Forwarded-For`` / ``X-Real-IP``.

    Returns:
        The client address, or "unknown".
    """
    if trust_proxy_headers:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            # Format: "client, proxy1, proxy2"
            client_ip = forwarded_for.split(",")[0].strip()
            if client_ip:
                return client_ip

        real_ip = request.headers.get("x-real-ip")
        if real_ip and real_ip.strip():
            return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


AdminDep = Annotated[AuthenticatedUser | None, Depends(AuthDependency())]
StreamUserDep = Annotated[AuthenticatedUser | None, Depends(StreamTokenDependency())]
