"""
Base model class for SQLAlchemy ORM.

Re-exports the declarative Base from the database module.
"""

from core.db import Base

__all__ = ["Base"]
