"""
User-related SQLAlchemy models.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

ROLE_STUDENT = "student"
ROLE_MENTOR = "mentor"
ROLE_ADMIN = "admin"
ROLES = (ROLE_STUDENT, ROLE_MENTOR, ROLE_ADMIN)

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
USERNAME_PATTERN = r"^[A-Za-z0-9_-]+$"


def ensure_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on round-trip; treat naive values as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class User(Base):
    """
    A Code Tutor account.

    An account authenticates with a password, a linked GitHub identity, or
    both; the check constraint keeps at least one of them present.

    Attributes:
        username: Unique handle (3-30 chars, letters, digits, "_" and "-")
        email: Unique, stored lowercase
        password_hash: bcrypt hash, never serialized
        role: student, mentor or admin
        github_id: Stable GitHub user id (unique when present)
        github_profile: Snapshot of public GitHub profile fields
        github_access_token / github_refresh_token: provider tokens, encrypted
            at rest when TOKEN_ENCRYPTION_KEY is set, never serialized
        failed_login_count / last_failed_login / locked_until: lockout state
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "password_hash IS NOT NULL OR github_id IS NOT NULL",
            name="ck_users_has_auth_method",
        ),
        CheckConstraint(
            "role IN ('student', 'mentor', 'admin')",
            name="ck_users_role",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    username: Mapped[str] = mapped_column(String(30), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(16), default=ROLE_STUDENT)

    github_id: Mapped[str | None] = mapped_column(String(64), unique=True, index=True, nullable=True)
    github_profile: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    github_access_token: Mapped[str | None] = mapped_column(String(512), nullable=True)
    github_refresh_token: Mapped[str | None] = mapped_column(String(512), nullable=True)

    active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    failed_login_count: Mapped[int] = mapped_column(Integer, default=0)
    last_failed_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def lock_remaining_seconds(self, now: datetime | None = None) -> int:
        """Seconds until the lockout expires, 0 when not locked."""
        locked_until = ensure_utc(self.locked_until)
        if locked_until is None:
            return 0
        now = now or datetime.now(timezone.utc)
        remaining = (locked_until - now).total_seconds()
        return int(remaining) + 1 if remaining > 0 else 0

    def is_locked(self, now: datetime | None = None) -> bool:
        return self.lock_remaining_seconds(now) > 0

    @property
    def avatar_url(self) -> str | None:
        return (self.github_profile or {}).get("avatar_url")

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role}>"
