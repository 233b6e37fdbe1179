"""
Security configuration validation.

Ensures signing secrets and encryption settings are sane before the
application starts serving requests.
"""

import base64
import binascii
from dataclasses import dataclass

from core.config import FORBIDDEN_SECRETS, Settings
from core.logging import get_logger

logger = get_logger("security.validation")

MIN_SECRET_LENGTH = 32


class SecurityConfigError(Exception):
    """Raised when security configuration is invalid."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        message = "Security configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(message)


@dataclass
class ValidationResult:
    """Result of security validation."""

    valid: bool
    errors: list[str]
    warnings: list[str]


def validate_signing_secret(name: str, secret: str) -> str | None:
    """
    Validate a token signing secret.

    Returns:
        Error message, or None if the secret is acceptable
    """
    if not secret:
        return f"{name} is not set"
    if secret.lower() in [v.lower() for v in FORBIDDEN_SECRETS]:
        return f"{name} cannot be a default value"
    if len(secret) < MIN_SECRET_LENGTH:
        return f"{name} must be at least {MIN_SECRET_LENGTH} characters (got {len(secret)})"
    return None


def validate_encryption_key(key: str | None) -> str | None:
    """
    Validate a Fernet key (44 characters, urlsafe base64 of 32 bytes).

    Returns:
        Error message, or None if the key is valid
    """
    if not key:
        return "TOKEN_ENCRYPTION_KEY is not set"
    if len(key) != 44:
        return f"TOKEN_ENCRYPTION_KEY must be 44 characters (got {len(key)})"
    try:
        decoded = base64.urlsafe_b64decode(key)
    except (binascii.Error, ValueError):
        return "TOKEN_ENCRYPTION_KEY is not valid base64"
    if len(decoded) != 32:
        return "TOKEN_ENCRYPTION_KEY is not a valid Fernet key"
    return None


def validate_security_config(settings: Settings) -> ValidationResult:
    """
    Validate all security configuration.

    In production, weak or shared signing secrets are fatal. In development
    they are reported as warnings so local setups keep working.

    Raises:
        SecurityConfigError: If fatal errors are found
    """
    errors: list[str] = []
    warnings: list[str] = []

    secret_problems = [
        problem
        for problem in (
            validate_signing_secret("JWT_SECRET_KEY", settings.jwt_secret_key),
            validate_signing_secret("REFRESH_TOKEN_SECRET_KEY", settings.refresh_token_secret_key),
        )
        if problem
    ]
    if settings.jwt_secret_key == settings.refresh_token_secret_key:
        secret_problems.append("JWT_SECRET_KEY and REFRESH_TOKEN_SECRET_KEY must differ")

    if settings.is_production:
        errors.extend(secret_problems)
        prod_errors, prod_warnings = settings.validate_production_config()
        errors.extend(e for e in prod_errors if e not in errors)
        warnings.extend(prod_warnings)
    else:
        warnings.extend(secret_problems)

    if settings.require_encryption or settings.token_encryption_key:
        problem = validate_encryption_key(settings.token_encryption_key)
        if problem:
            (errors if settings.require_encryption else warnings).append(problem)

    for error in errors:
        logger.error("config_validation_error", error=error)
    for warning in warnings:
        logger.warning("config_validation_warning", warning=warning)

    if errors or (settings.strict_security and warnings):
        raise SecurityConfigError(errors + (warnings if settings.strict_security else []))

    return ValidationResult(valid=True, errors=errors, warnings=warnings)


__all__ = [
    "SecurityConfigError",
    "ValidationResult",
    "validate_signing_secret",
    "validate_encryption_key",
    "validate_security_config",
]
