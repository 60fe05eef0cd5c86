"""FastAPI application for AccessFeed."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from accessfeed import __version__
from accessfeed.config import Settings
from accessfeed.exceptions import (
    AccessFeedError,
    AuthenticationError,
    AuthorizationError,
    DuplicateWebhookError,
    NotFoundError,
    ValidationError,
)
from accessfeed.logging import configure_logging, get_logger
from accessfeed.service import AccessFeedService

from .middleware import RequestContextMiddleware
from .router import router, set_service

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan.

    Creates the AccessFeedService on startup. On shutdown, pending
    fan-out finishes, live connections are closed and retries cancelled.
    """
    settings: Settings = app.state.settings

    configure_logging(level=settings.log_level, format=settings.log_format)
    logger.info(
        "Starting AccessFeed API",
        env=settings.env,
        auth_enabled=settings.is_auth_enabled,
        log_level=settings.log_level,
    )

    service = AccessFeedService.create(settings)
    set_service(service)

    yield

    await service.close()
    set_service(None)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.

    Returns:
        Configured FastAPI application.

    Example:
        ```python
        from accessfeed.api import create_app

        app = create_app()
        # Run with: uvicorn accessfeed.api:app --reload
        ```
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="AccessFeed",
        description="Event log, signed webhooks and live feed for access-control administration.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings

    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
        )

    app.add_middleware(RequestContextMiddleware)
    register_exception_handlers(app)
    app.include_router(router, prefix="/api/v1")

    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Map AccessFeed errors to HTTP responses."""

    @app.exception_handler(DuplicateWebhookError)
    async def duplicate_webhook_handler(
        request: Request, exc: DuplicateWebhookError
    ) -> JSONResponse:
        """Handle URL conflicts with 409 status."""
        logger.info("Duplicate webhook URL", url=exc.url, path=request.url.path)
        return JSONResponse(status_code=409, content=exc.to_dict())

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle validation and configuration errors with 400 status."""
        logger.warning(
            "Validation error", field=exc.field, error=exc.message, path=request.url.path
        )
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        """Handle not found errors with 404 status."""
        logger.info(
            "Resource not found",
            resource_type=exc.resource_type,
            resource_id=exc.resource_id,
            path=request.url.path,
        )
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(
        request: Request, exc: AuthenticationError
    ) -> JSONResponse:
        """Handle authentication errors with 401 status."""
        logger.warning("Authentication failed", error=exc.message, path=request.url.path)
        return JSONResponse(
            status_code=401,
            content=exc.to_dict(),
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(AuthorizationError)
    async def authorization_error_handler(
        request: Request, exc: AuthorizationError
    ) -> JSONResponse:
        """Handle authorization errors with 403 status."""
        logger.warning("Authorization failed", error=exc.message, path=request.url.path)
        return JSONResponse(status_code=403, content=exc.to_dict())

    @app.exception_handler(AccessFeedError)
    async def accessfeed_error_handler(request: Request, exc: AccessFeedError) -> JSONResponse:
        """Handle all other AccessFeed errors with 500 status."""
        logger.error("AccessFeed error", error=exc.message, code=exc.code, path=request.url.path)
        return JSONResponse(status_code=500, content=exc.to_dict())


# Default app instance for uvicorn
app = create_app()
