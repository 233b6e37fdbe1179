"""
Database engine and session handling.

One process-wide ``DatabaseManager`` owns the engine. Request handlers get a
session through the ``get_db`` dependency; the session commits when the
handler returns and rolls back when it raises.

Usage:
    from core.db import db, get_db

    db.initialize()
    with db.session() as session:
        UserRepository(session).find_by_email("ada@example.com")
"""

import time
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from .config import get_settings


class Base(DeclarativeBase):
    pass


def _engine_options(url: str) -> dict[str, Any]:
    """In-memory SQLite gets a StaticPool so one database serves every thread."""
    if url.startswith("sqlite"):
        options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return options

    settings = get_settings()
    return {
        "poolclass": QueuePool,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": settings.db_pool_pre_ping,
    }


class DatabaseManager:
    """Singleton holder of the engine and session factory."""

    _instance: Optional["DatabaseManager"] = None

    def __new__(cls) -> "DatabaseManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def initialize(self, database_url: str | None = None) -> None:
        """Create the engine once. Later calls are no-ops."""
        if self._initialized:
            return

        url = database_url or get_settings().database_url
        self.engine = create_engine(url, echo=False, **_engine_options(url))

        if url.startswith("sqlite"):

            @event.listens_for(self.engine, "connect")
            def enable_foreign_keys(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
        )
        self._initialized = True

    def create_all_tables(self) -> None:
        self._ensure_initialized()
        from core import models  # noqa: F401  (registers tables on Base.metadata)

        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Session scope: commit on success, roll back on any exception."""
        self._ensure_initialized()
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def health_check(self) -> dict:
        """
        Run ``SELECT 1``.

        Returns:
            dict with 'healthy' (bool), 'latency_ms' (float) and 'error' (str or None)
        """
        if not self._initialized:
            return {"healthy": False, "latency_ms": 0, "error": "Database not initialized"}

        start = time.perf_counter()
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            error = None
        except SQLAlchemyError as e:
            error = type(e).__name__
        latency = round((time.perf_counter() - start) * 1000, 2)
        return {"healthy": error is None, "latency_ms": latency, "error": error}

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("DatabaseManager not initialized. Call initialize() first.")


db = DatabaseManager()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding one session per request."""
    with db.session() as session:
        yield session


__all__ = ["Base", "DatabaseManager", "db", "get_db"]
