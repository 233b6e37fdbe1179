"""Structured logging configuration for Code Tutor."""

import logging
import sys
import time
import uuid
from collections.abc import Mapping, MutableMapping
from functools import lru_cache
from typing import Any

import structlog
from structlog.types import Processor

# Event keys whose values must never reach a log sink
SENSITIVE_KEYS = frozenset(
    {
        "password",
        "password_hash",
        "token",
        "access_token",
        "refresh_token",
        "authorization",
        "cookie",
        "client_secret",
    }
)
REDACTED = "[redacted]"


def _is_development() -> bool:
    from .config import get_settings

    settings = get_settings()
    return settings.debug or settings.env.lower() in ("development", "dev")


def _add_app_context(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> Mapping[str, Any] | str | bytes | bytearray | tuple[Any, ...]:
    event_dict["app"] = "code_tutor"
    return event_dict


def _redact_sensitive(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> Mapping[str, Any] | str | bytes | bytearray | tuple[Any, ...]:
    """Mask credentials passed as log fields by mistake."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        if event_dict[key] is not None:
            event_dict[key] = REDACTED
    return event_dict


def get_processors() -> list[Processor]:
    """Console rendering in development, JSON lines everywhere else."""
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _redact_sensitive,
        _add_app_context,
    ]

    if _is_development():
        return shared_processors + [structlog.dev.ConsoleRenderer(colors=True)]
    return shared_processors + [
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]


@lru_cache(maxsize=1)
def configure_logging(level: str = "INFO") -> None:
    """Install the structlog pipeline once per process; later calls are cached no-ops."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=get_processors(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def mask_identifier(value: str | None, keep: int = 20) -> str | None:
    """Truncate an identifier (email, jti) before it goes into a log line."""
    if value is None:
        return None
    return value[:keep] + "..." if len(value) > keep else value


def bind_context(**kwargs: Any) -> None:
    """Attach fields to every log line emitted from the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class RequestLoggingMiddleware:
    """
    ASGI middleware logging one ``request_complete`` line per HTTP request.

    Only method and path are logged. Query strings are left out because OAuth
    callbacks and redirects carry codes, state nonces and access tokens.
    """

    def __init__(self, app):
        self.app = app
        self._logger: structlog.stdlib.BoundLogger | None = None

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        if self._logger is None:
            self._logger = get_logger("http")
        return self._logger

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = time.perf_counter()
        if "request_id" not in structlog.contextvars.get_contextvars():
            bind_context(request_id=str(uuid.uuid4()))

        path = scope.get("path", "")
        method = scope.get("method", "")
        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 500)
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            if status_code >= 500:
                log = self.logger.error
            elif status_code >= 400:
                log = self.logger.warning
            else:
                log = self.logger.info
            log(
                "request_complete",
                method=method,
                path=path,
                status_code=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
            clear_context()


__all__ = [
    "configure_logging",
    "get_logger",
    "mask_identifier",
    "bind_context",
    "unbind_context",
    "clear_context",
    "RequestLoggingMiddleware",
    "SENSITIVE_KEYS",
]
