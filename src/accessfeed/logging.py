"""structlog setup and request-scoped log context.

Every record passes through ``merge_contextvars``, so fields bound for the
current request (request id, method, path, admin user) appear on all log
lines written while that request is handled, including the stdlib loggers
of the delivery engine.
"""

from __future__ import annotations

import logging
import sys
import uuid
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from structlog.typing import Processor

_configured = False


def _renderer_chain(format: str) -> list[Processor]:
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if format.lower() == "json":
        chain += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=True))
    return chain


def configure_logging(level: str = "INFO", format: str = "json") -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Level name; unknown names fall back to INFO.
        format: "json" for machine-readable lines, "text" for a colored console.
    """
    global _configured

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=_renderer_chain(format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, configuring defaults on first use."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_request_context(request_id: str | None = None, **fields: Any) -> str:
    """Start a fresh log context for one request.

    Any context left over from a previous request on the same task is
    dropped first.

    Args:
        request_id: Caller-supplied id, e.g. from ``X-Request-ID``. A new
            one is generated when missing.
        **fields: Extra fields such as method and path.

    Returns:
        The request id bound to the context.
    """
    request_id = request_id or f"req_{uuid.uuid4().hex[:16]}"
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **fields)
    return request_id


def bind_user(user_id: str) -> None:
    """Attribute the rest of the current request's log lines to a user."""
    structlog.contextvars.bind_contextvars(user_id=user_id)


def current_request_id() -> str | None:
    return structlog.contextvars.get_contextvars().get("request_id")


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


logger = get_logger("accessfeed")
