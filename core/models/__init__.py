"""
SQLAlchemy models for Code Tutor.

Usage:
    from core.models import User
"""

from .base import Base
from .user import (
    ROLE_ADMIN,
    ROLE_MENTOR,
    ROLE_STUDENT,
    ROLES,
    USERNAME_MAX_LENGTH,
    USERNAME_MIN_LENGTH,
    USERNAME_PATTERN,
    User,
    ensure_utc,
)

__all__ = [
    "Base",
    "User",
    "ROLES",
    "ROLE_STUDENT",
    "ROLE_MENTOR",
    "ROLE_ADMIN",
    "USERNAME_MIN_LENGTH",
    "USERNAME_MAX_LENGTH",
    "USERNAME_PATTERN",
    "ensure_utc",
]
