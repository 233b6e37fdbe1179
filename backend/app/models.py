"""
SQLAlchemy ORM models for the Code Tutor backend.

Re-exports from the unified core.models package.
"""

from core.models import ROLE_ADMIN, ROLE_MENTOR, ROLE_STUDENT, Base, User

__all__ = ["Base", "User", "ROLE_ADMIN", "ROLE_MENTOR", "ROLE_STUDENT"]
