"""
Repository pattern implementations for data access.

Usage:
    from core.repositories import UserRepository
    from core.db import db

    with db.session() as session:
        repo = UserRepository(session)
        user = repo.find_by_email("ada@example.com")
"""

from .base import BaseRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "UserRepository",
]
