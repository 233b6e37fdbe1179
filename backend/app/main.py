"""
ASGI application for the Code Tutor auth service.

``create_app`` wires middleware, exception handlers, the auth and users
routers and the health probes. Startup refuses to serve if the security
configuration is invalid or the database never answers.
"""

import time

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.cache import cache
from core.db import db
from core.logging import RequestLoggingMiddleware, configure_logging, get_logger
from core.security.encryption import get_encryption_service
from core.security.tokens import get_token_service
from core.security.validation import SecurityConfigError, validate_security_config
from core.sessions import get_session_store

from .config import get_settings
from .error_handlers import register_exception_handlers
from .middleware.request_id import RequestIDMiddleware
from .middleware.security import SecurityHeadersMiddleware
from .middleware.session import SessionMiddleware
from .routers import auth as auth_router
from .routers import users as users_router
from .scheduler import list_jobs, shutdown_scheduler, start_scheduler

settings = get_settings()
configure_logging(level="DEBUG" if settings.debug else "INFO")
logger = get_logger("api")


def validate_security_on_startup() -> None:
    try:
        result = validate_security_config(settings)
    except SecurityConfigError as e:
        for error in e.errors:
            logger.error("security_config_error", error=error)
        raise

    for warning in result.warnings:
        logger.warning("security_warning", message=warning)
    logger.info("security_validation_passed")


def wait_for_database(attempts: int = 3, backoff: float = 2.0) -> None:
    """Poll ``db.health_check`` with linear backoff; RuntimeError if it never answers."""
    for attempt in range(1, attempts + 1):
        health = db.health_check()
        if health["healthy"]:
            logger.info("database_reachable", attempt=attempt, latency_ms=health["latency_ms"])
            return
        logger.warning("database_unreachable", attempt=attempt, error=health["error"])
        if attempt < attempts:
            time.sleep(backoff * attempt)

    raise RuntimeError(f"Database unreachable after {attempts} attempts; check DATABASE_URL")


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, debug=settings.debug)

    # Middleware: the last one added is the outermost
    app.add_middleware(SessionMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,  # refresh and session cookies
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"],
        expose_headers=["X-Token-Expires-Soon", "Retry-After", "X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(app)

    @app.on_event("startup")
    async def startup_event():
        logger.info("app_startup", app_name=settings.app_name, env=settings.env)

        validate_security_on_startup()

        db.initialize(settings.database_url)
        db.create_all_tables()
        wait_for_database()
        logger.info("database_initialized")

        if "redis" in (settings.revocation_backend, settings.session_backend):
            if cache.initialize():
                logger.info("cache_initialized", redis_host=settings.redis_host)
            else:
                logger.error("cache_unavailable", message="Redis backend configured but not reachable")

        encryption = get_encryption_service()
        if not encryption.is_available and settings.require_encryption:
            raise RuntimeError("Encryption required but not available")

        # Build singletons up front so config errors surface at boot
        get_token_service()
        get_session_store()

        if settings.enable_scheduler:
            start_scheduler()

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("app_shutdown")
        if settings.enable_scheduler:
            shutdown_scheduler()

    @app.get("/health", tags=["health"])
    @app.get(f"{settings.api_prefix}/health", tags=["health"])
    def health_check():
        """Liveness probe. Returns no infrastructure details."""
        return {"status": "ok"}

    @app.get("/health/ready", tags=["health"])
    def readiness_check():
        """Readiness probe: 200 when the database answers, 503 otherwise."""
        health = db.health_check()
        checks = {"database": health["healthy"]}
        if "redis" in (settings.revocation_backend, settings.session_backend):
            checks["cache"] = cache.health_check().get("status") == "healthy"

        if not all(checks.values()):
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "not_ready", "checks": checks},
            )
        return {"status": "ready", "checks": checks}

    @app.get("/health/detailed", tags=["health"])
    def health_check_detailed():
        """Infrastructure status; only in debug mode outside production."""
        if settings.is_production or not settings.debug:
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"success": False, "error": "Not found"},
            )
        return {
            "status": "ok",
            "database": db.health_check(),
            "cache": cache.health_check() if cache.is_available else {"status": "unavailable"},
            "encryption": "available" if get_encryption_service().is_available else "unavailable",
            "jobs": list_jobs(),
        }

    app.include_router(auth_router.router, prefix=settings.api_prefix)
    app.include_router(users_router.router, prefix=settings.api_prefix)

    return app


app = create_app()
