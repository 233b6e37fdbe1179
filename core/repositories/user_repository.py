"""User repository for authentication and account management."""

import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import DateTime, case, func, literal, or_, select, update
from sqlalchemy.exc import IntegrityError

from core.config import get_settings
from core.errors import ConflictError, NotFoundError, ValidationError
from core.logging import get_logger
from core.models import ROLES, USERNAME_MAX_LENGTH, USERNAME_MIN_LENGTH, User
from core.security.encryption import get_encryption_service

from .base import BaseRepository

logger = get_logger("repository.user")

_USERNAME_INVALID_CHARS = re.compile(r"[^A-Za-z0-9_-]")


class UserRepository(BaseRepository[User]):
    """
    Repository for User operations.

    Emails are normalized to lowercase on every write and lookup, and
    username lookups are case-insensitive, so "Alice" and "alice" are the
    same account.
    """

    model = User

    # =========================================================================
    # Lookups
    # =========================================================================

    def find_by_id(self, user_id: int) -> User | None:
        return self.get_by_id(user_id)

    def find_by_email(self, email: str) -> User | None:
        return self.session.execute(
            select(User).where(User.email == email.strip().lower())
        ).scalar_one_or_none()

    def find_by_username(self, username: str) -> User | None:
        return self.session.execute(
            select(User).where(func.lower(User.username) == username.strip().lower())
        ).scalar_one_or_none()

    def find_by_github_id(self, github_id: str) -> User | None:
        return self.session.execute(
            select(User).where(User.github_id == str(github_id))
        ).scalar_one_or_none()

    @staticmethod
    def is_locked(user: User, now: datetime | None = None) -> bool:
        return user.is_locked(now)

    # =========================================================================
    # Creation
    # =========================================================================

    def _ensure_available(self, username: str | None, email: str | None, exclude_id: int | None = None):
        for existing in (
            self.find_by_username(username) if username else None,
            self.find_by_email(email) if email else None,
        ):
            if existing is not None and existing.id != exclude_id:
                raise ConflictError("User with this email or username already exists")

    def _flush_or_conflict(self) -> None:
        """Flush, turning a unique-constraint race into ConflictError."""
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("User with this email or username already exists") from exc

    def create_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        role: str = "student",
    ) -> User:
        """
        Create a password account.

        Raises:
            ConflictError: username or email (case-insensitive) already taken
            ValidationError: unknown role
        """
        if role not in ROLES:
            raise ValidationError("Invalid role")
        email = email.strip().lower()
        self._ensure_available(username, email)

        user = User(username=username, email=email, password_hash=password_hash, role=role)
        self.session.add(user)
        self._flush_or_conflict()
        logger.info("user_created", user_id=user.id, method="password")
        return user

    def unique_username(self, login: str) -> str:
        """Derive an unused username from a GitHub login."""
        base = _USERNAME_INVALID_CHARS.sub("", login or "")[:USERNAME_MAX_LENGTH]
        if len(base) < USERNAME_MIN_LENGTH:
            base = (base + "_user")[:USERNAME_MAX_LENGTH]

        candidate = base
        while self.find_by_username(candidate) is not None:
            suffix = secrets.token_hex(3)
            candidate = f"{base[: USERNAME_MAX_LENGTH - len(suffix) - 1]}_{suffix}"
        return candidate

    def create_from_github(
        self,
        github_id: str,
        login: str,
        email: str,
        profile: dict[str, Any],
        access_token: str | None = None,
        refresh_token: str | None = None,
    ) -> User:
        """Create an account for a first-time GitHub login (no password)."""
        email = email.strip().lower()
        self._ensure_available(None, email)

        user = User(
            username=self.unique_username(login),
            email=email,
            password_hash=None,
            github_id=str(github_id),
            github_profile=dict(profile),
            github_access_token=self._encrypt_token(access_token) if access_token else None,
            github_refresh_token=self._encrypt_token(refresh_token) if refresh_token else None,
        )
        self.session.add(user)
        self._flush_or_conflict()
        logger.info("user_created", user_id=user.id, method="github")
        return user

    # =========================================================================
    # GitHub link
    # =========================================================================

    def _encrypt_token(self, token: str) -> str:
        """
        Encrypt a GitHub token for storage.

        Falls back to plaintext if no key is configured, unless
        REQUIRE_ENCRYPTION is set.
        """
        encrypted, was_encrypted = get_encryption_service().encrypt_if_available(
            token, require_encryption=get_settings().require_encryption
        )
        if not was_encrypted:
            logger.warning("token_stored_unencrypted")
        return encrypted

    def get_decrypted_token(self, user: User) -> str | None:
        """Get the decrypted GitHub access token for a user."""
        if not user.github_access_token:
            return None
        return get_encryption_service().decrypt_if_encrypted(user.github_access_token)

    def update_github_link(
        self,
        user_id: int,
        github_id: str,
        github_profile: dict[str, Any],
        access_token: str | None = None,
        refresh_token: str | None = None,
        email: str | None = None,
    ) -> User:
        """
        Link or refresh a GitHub identity on an existing account.

        Profile fields are merged over the stored snapshot; email is only
        filled in when the account has none.
        """
        user = self.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        user.github_id = str(github_id)
        user.github_profile = {**(user.github_profile or {}), **github_profile}
        if access_token:
            user.github_access_token = self._encrypt_token(access_token)
        if refresh_token:
            user.github_refresh_token = self._encrypt_token(refresh_token)
        if email and not user.email:
            user.email = email.strip().lower()

        self._flush_or_conflict()
        return user

    # =========================================================================
    # Login attempts
    # =========================================================================

    def record_failed_login(self, user_id: int, now: datetime | None = None) -> User | None:
        """
        Count a failed login in a single atomic UPDATE.

        A failure after the rolling window, or after an expired lock, restarts
        the count at 1. Reaching MAX_FAILED_LOGINS within the window sets
        locked_until. Returns the refreshed user.
        """
        settings = get_settings()
        now = now or datetime.now(timezone.utc)
        window_start = now - timedelta(minutes=settings.failed_login_window_minutes)
        lock_until = now + timedelta(minutes=settings.lockout_minutes)

        restart = or_(
            User.last_failed_login.is_(None),
            User.last_failed_login < window_start,
            User.locked_until <= now,
        )
        new_count = case((restart, 1), else_=User.failed_login_count + 1)

        self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                failed_login_count=new_count,
                last_failed_login=now,
                locked_until=case(
                    (new_count >= settings.max_failed_logins, literal(lock_until, DateTime(timezone=True))),
                    (restart, None),
                    else_=User.locked_until,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        self.session.flush()

        user = self.reload(user_id)
        if user is not None and user.is_locked(now):
            logger.warning("account_locked", user_id=user_id, attempts=user.failed_login_count)
        return user

    def reset_failed_logins(self, user_id: int, now: datetime | None = None) -> None:
        """Clear the failure counter and lock, and stamp last_login."""
        self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                failed_login_count=0,
                last_failed_login=None,
                locked_until=None,
                last_login=now or datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        self.session.flush()
        self.reload(user_id)

    # =========================================================================
    # Account management
    # =========================================================================

    def _require(self, user_id: int) -> User:
        user = self.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def update_profile(self, user_id: int, username: str | None = None, email: str | None = None) -> User:
        user = self._require(user_id)
        email = email.strip().lower() if email else None
        self._ensure_available(username, email, exclude_id=user_id)

        if username:
            user.username = username
        if email:
            user.email = email
        self._flush_or_conflict()
        return user

    def set_role(self, user_id: int, role: str) -> User:
        if role not in ROLES:
            raise ValidationError("Invalid role")
        user = self._require(user_id)
        previous, user.role = user.role, role
        self.session.flush()
        logger.info("user_role_changed", user_id=user_id, previous=previous, role=role)
        return user

    def set_active(self, user_id: int, active: bool) -> User:
        user = self._require(user_id)
        user.active = active
        self.session.flush()
        logger.info("user_active_changed", user_id=user_id, active=active)
        return user
