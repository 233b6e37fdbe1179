"""
Application error taxonomy.

Every error carries the HTTP status it maps to and a short machine-readable
code. The FastAPI handlers in backend.app.error_handlers turn these into the
``{"success": false, "error": <message>}`` response shape.
"""

from typing import Optional


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    code: str = "internal_error"
    message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, *, code: Optional[str] = None):
        self.message = message or self.message
        if code:
            self.code = code
        super().__init__(self.message)


# =============================================================================
# 401 - Unauthenticated
# =============================================================================


class UnauthenticatedError(AppError):
    status_code = 401
    code = "unauthenticated"
    message = "Authentication failed. Please log in again."


class NoTokenError(UnauthenticatedError):
    code = "no_token"
    message = "Access denied. No Authorization header."


class InvalidAuthFormatError(UnauthenticatedError):
    code = "invalid_format"
    message = "Access denied. Invalid Authorization format."


class EmptyTokenError(UnauthenticatedError):
    code = "empty_token"
    message = "Access denied. Empty token."


class TokenExpiredError(UnauthenticatedError):
    """Token is past its exp claim; the client should refresh."""

    code = "token_expired"
    message = "Token expired. Please log in again."


class TokenRevokedError(UnauthenticatedError):
    code = "token_revoked"
    message = "Token has been revoked"


class TokenMalformedError(UnauthenticatedError):
    code = "token_malformed"
    message = "Authentication failed. Please log in again."


class TokenSignatureError(UnauthenticatedError):
    code = "token_signature_invalid"
    message = "Authentication failed. Please log in again."


class WrongTokenTypeError(UnauthenticatedError):
    code = "wrong_token_type"
    message = "Invalid token type"


class InvalidCredentialsError(UnauthenticatedError):
    code = "invalid_credentials"
    message = "Invalid credentials"


# =============================================================================
# 403 / 423 - Authorization and account state
# =============================================================================


class ForbiddenError(AppError):
    status_code = 403
    code = "forbidden"
    message = "Insufficient privileges"


class AccountDisabledError(ForbiddenError):
    code = "account_disabled"
    message = "Account is disabled"


class AccountLockedError(AppError):
    """Too many failed logins; carries the seconds until the lock expires."""

    status_code = 423
    code = "account_locked"
    message = "Account temporarily locked due to too many failed login attempts"

    def __init__(self, retry_after: int, message: Optional[str] = None):
        self.retry_after = max(int(retry_after), 0)
        super().__init__(message)


# =============================================================================
# 4xx - Input
# =============================================================================


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"
    message = "Invalid input"


class ConflictError(AppError):
    status_code = 409
    code = "conflict"
    message = "Resource already exists"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"
    message = "Resource not found"


# =============================================================================
# 5xx
# =============================================================================


class UpstreamProviderError(AppError):
    """GitHub API or network failure. Detail stays in the logs."""

    status_code = 502
    code = "github_auth_failed"
    message = "Upstream provider error"


class InternalError(AppError):
    status_code = 500
    code = "internal_error"
    message = "Internal server error"


class PasswordHashingError(InternalError):
    code = "password_hashing_failed"
    message = "Registration failed. Please try again."


# =============================================================================
# OAuth flow
# =============================================================================


class OAuthFlowError(AppError):
    """
    Failure inside the GitHub OAuth exchange.

    These never produce a JSON body: the callback route redirects to the
    frontend login page with ``?error=<code>``.
    """

    status_code = 400
    code = "github_auth_failed"
    message = "GitHub authentication failed"


class InvalidStateError(OAuthFlowError):
    code = "invalid_state"
    message = "OAuth state mismatch"


class OAuthTimeoutError(OAuthFlowError):
    code = "oauth_timeout"
    message = "OAuth flow took too long"


class NoPrimaryEmailError(OAuthFlowError):
    code = "no_primary_email"
    message = "GitHub account has no primary email"


class AccountLinkConflictError(OAuthFlowError):
    code = "account_conflict"
    message = "An account with this email already exists"


class OAuthAccessDeniedError(OAuthFlowError):
    code = "access_denied"
    message = "GitHub authorization was denied"


__all__ = [
    "AppError",
    "UnauthenticatedError",
    "NoTokenError",
    "InvalidAuthFormatError",
    "EmptyTokenError",
    "TokenExpiredError",
    "TokenRevokedError",
    "TokenMalformedError",
    "TokenSignatureError",
    "WrongTokenTypeError",
    "InvalidCredentialsError",
    "ForbiddenError",
    "AccountDisabledError",
    "AccountLockedError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "UpstreamProviderError",
    "InternalError",
    "PasswordHashingError",
    "OAuthFlowError",
    "InvalidStateError",
    "OAuthTimeoutError",
    "NoPrimaryEmailError",
    "AccountLinkConflictError",
    "OAuthAccessDeniedError",
]
