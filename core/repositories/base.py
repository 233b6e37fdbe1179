"""Shared lookups for model repositories."""

from typing import Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.db import Base

T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    """
    Repositories flush but never commit. Whoever owns the session
    (``db.session()`` or the ``get_db`` dependency) commits.
    """

    model: type[T]

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, id: int) -> T | None:
        return self.session.get(self.model, id)

    def reload(self, id: int) -> T | None:
        """Re-read a row, discarding whatever the identity map holds for it."""
        return self.session.get(self.model, id, populate_existing=True)

    def count(self, **filters) -> int:
        stmt = select(func.count()).select_from(self.model)
        for column, value in filters.items():
            stmt = stmt.where(getattr(self.model, column) == value)
        return self.session.execute(stmt).scalar() or 0
