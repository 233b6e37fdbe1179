"""
Password hashing with bcrypt.

bcrypt salts every hash and its cost factor is configurable through
BCRYPT_ROUNDS (default 12, minimum 10). Verification goes through
bcrypt.checkpw, which compares in constant time.
"""

import re
from functools import lru_cache

import bcrypt

from core.config import get_settings
from core.errors import PasswordHashingError, ValidationError
from core.logging import get_logger

logger = get_logger("security.passwords")

MIN_PASSWORD_LENGTH = 8
# bcrypt only looks at the first 72 bytes of its input
MAX_PASSWORD_BYTES = 72

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"\d")
_SYMBOL = re.compile(r"[^A-Za-z0-9]")


def validate_password_strength(password: str) -> None:
    """
    Enforce the password policy.

    Requirements: at least 8 characters, one uppercase letter, one lowercase
    letter, one digit and one non-alphanumeric character, at most 72 bytes.

    Raises:
        ValidationError: when the password does not meet the policy.
    """
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("Password does not meet security requirements")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError("Password is too long")
    if not (
        _UPPER.search(password)
        and _LOWER.search(password)
        and _DIGIT.search(password)
        and _SYMBOL.search(password)
    ):
        raise ValidationError("Password does not meet security requirements")


def hash_password(password: str, rounds: int | None = None) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain-text password
        rounds: Optional cost override (defaults to BCRYPT_ROUNDS)

    Returns:
        bcrypt hash string

    Raises:
        PasswordHashingError: if hashing fails for any reason
    """
    cost = rounds or get_settings().bcrypt_rounds
    try:
        salt = bcrypt.gensalt(rounds=cost)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")
    except (ValueError, TypeError) as exc:
        logger.error("password_hash_failed", error_type=type(exc).__name__)
        raise PasswordHashingError() from exc


def verify_password(password: str, password_hash: str | None) -> bool:
    """
    Check a password against a bcrypt hash.

    A missing or malformed hash yields False rather than an exception.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        logger.warning("password_hash_malformed")
        return False



@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password("dummy-password-for-timing")


def dummy_verify(password: str) -> bool:
    """
    Spend the same bcrypt time as a real check, always returning False.

    Used when no account matches so response time does not reveal which
    emails are registered.
    """
    verify_password(password or "x", _dummy_hash())
    return False


__all__ = [
    "MIN_PASSWORD_LENGTH",
    "validate_password_strength",
    "hash_password",
    "verify_password",
    "dummy_verify",
]
