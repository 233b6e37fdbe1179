"""
Custom exception handlers for FastAPI.

Every error leaves the API as ``{"success": false, "error": <message>}``.

Security:
- Request IDs are logged server-side for tracing but NOT exposed to clients
- Generic error messages for 500 errors unless DEBUG is on
- Validation errors never echo submitted values (they may be passwords)
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.cache import StoreUnavailableError
from core.errors import AccountLockedError, AppError
from core.logging import get_logger

from .config import get_settings

logger = get_logger("backend.errors")


def _get_request_id() -> str:
    """Current request ID from the logging context (server-side use only)."""
    return structlog.contextvars.get_contextvars().get("request_id", "-")


def error_payload(message: str) -> dict:
    return {"success": False, "error": message}


def store_unavailable_response(path: str) -> JSONResponse:
    """503 for a request whose session or revocation store could not be reached."""
    logger.error("store_unavailable", path=path, request_id=_get_request_id())
    return JSONResponse(
        status_code=503,
        content=error_payload("Service temporarily unavailable. Please try again later."),
    )


def _field_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"field": ".".join(str(part) for part in err.get("loc", ())[1:]), "message": err.get("msg", "")}
        for err in exc.errors()
    ]


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            "app_error",
            code=exc.code,
            status_code=exc.status_code,
            path=request.url.path,
            request_id=_get_request_id(),
        )
        headers = {}
        if isinstance(exc, AccountLockedError):
            headers["Retry-After"] = str(exc.retry_after)
        if exc.status_code == 401:
            headers["WWW-Authenticate"] = "Bearer"
        return JSONResponse(
            status_code=exc.status_code,
            content=error_payload(exc.message),
            headers=headers or None,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(
            "http_exception",
            detail=exc.detail,
            status_code=exc.status_code,
            request_id=_get_request_id(),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_payload(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = _field_errors(exc)
        logger.warning("validation_error", fields=[e["field"] for e in errors], request_id=_get_request_id())
        return JSONResponse(
            status_code=400,
            content={**error_payload("Invalid input"), "errors": errors},
        )

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
        return store_unavailable_response(request.url.path)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            request_id=_get_request_id(),
        )
        message = str(exc) if get_settings().debug else "Internal server error"
        return JSONResponse(status_code=500, content=error_payload(message))
