"""Request-scoped sessions for routers. The engine is created in main.py startup."""

from core.db import db, get_db

__all__ = ["db", "get_db"]
