"""
Authentication dependencies for FastAPI routes.

The pipeline is an explicit chain of dependencies:

    extract_bearer_token -> TokenService.verify -> AuthContext -> require_roles

``require_roles`` depends on ``authenticate_request``, so a role check can
never run against an unverified token.

Usage:
    @router.get("/users/profile")
    def profile(auth: AuthContext = Depends(authenticate_request)):
        ...

    @router.patch("/users/{user_id}/role")
    def change_role(auth: AuthContext = Depends(require_roles("admin"))):
        ...
"""

import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from fastapi import Depends, Request, Response

from core.errors import (
    EmptyTokenError,
    ForbiddenError,
    InvalidAuthFormatError,
    NoTokenError,
    TokenMalformedError,
    UnauthenticatedError,
)
from core.logging import get_logger
from core.security.roles import has_any_role
from core.security.tokens import ACCESS, TokenService, get_token_service

from ..config import get_settings

logger = get_logger("auth")

EXPIRES_SOON_HEADER = "X-Token-Expires-Soon"


@dataclass(frozen=True)
class AuthContext:
    """Identity of the caller, taken from a verified access token."""

    id: int
    username: str
    email: str
    role: str
    token_exp: int
    jti: str

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "AuthContext":
        try:
            return cls(
                id=int(claims["sub"]),
                username=claims.get("username", ""),
                email=claims.get("email", ""),
                role=claims.get("role", ""),
                token_exp=int(claims["exp"]),
                jti=claims["jti"],
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenMalformedError() from exc

    def seconds_remaining(self, now: Optional[float] = None) -> int:
        return int(self.token_exp - (now if now is not None else time.time()))

    def to_user_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("token_exp")
        data.pop("jti")
        return data


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_clock() -> Callable[[], datetime]:
    """Wall-clock dependency for lockout windows; tests override it."""
    return utc_now


def get_tokens() -> TokenService:
    """Token service dependency."""
    return get_token_service()


def extract_bearer_token(header: Optional[str]) -> str:
    """
    Pull the token out of an ``Authorization: Bearer <token>`` header.

    Raises:
        NoTokenError: header missing
        InvalidAuthFormatError: scheme is not Bearer
        EmptyTokenError: nothing after the scheme
    """
    if header is None or not header.strip():
        raise NoTokenError()

    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        raise InvalidAuthFormatError()

    token = token.strip()
    if not token:
        raise EmptyTokenError()
    return token


def _authenticate(request: Request, tokens: TokenService) -> AuthContext:
    token = extract_bearer_token(request.headers.get("Authorization"))
    claims = tokens.verify(token, ACCESS)
    auth = AuthContext.from_claims(claims)
    request.state.auth = auth
    return auth


def authenticate_request(
    request: Request,
    response: Response,
    tokens: TokenService = Depends(get_tokens),
) -> AuthContext:
    """
    Verify the bearer access token and expose the caller as ``request.state.auth``.

    Sets ``X-Token-Expires-Soon: true`` when the token is close to expiry so
    the client can refresh ahead of time.
    """
    try:
        auth = _authenticate(request, tokens)
    except UnauthenticatedError as exc:
        logger.info("auth_failed", code=exc.code, path=request.url.path)
        raise

    if auth.seconds_remaining() < get_settings().token_expiry_warning_seconds:
        response.headers[EXPIRES_SOON_HEADER] = "true"
    return auth


def optional_auth(
    request: Request,
    response: Response,
    tokens: TokenService = Depends(get_tokens),
) -> Optional[AuthContext]:
    """
    Like ``authenticate_request`` but returns None instead of raising.

    The failure is kept on ``request.state.auth_error`` for routes that
    report it.
    """
    request.state.auth_error = None
    try:
        return authenticate_request(request, response, tokens)
    except UnauthenticatedError as exc:
        request.state.auth_error = exc
        return None


def require_roles(*roles: str) -> Callable[..., AuthContext]:
    """
    Build a dependency that admits callers whose role grants any of ``roles``.

    Raises:
        ForbiddenError: the caller's role does not grant a required role
    """
    required = frozenset(roles)

    def check_roles(auth: AuthContext = Depends(authenticate_request)) -> AuthContext:
        if not has_any_role(auth.role, required):
            logger.warning("role_check_failed", user_id=auth.id, role=auth.role, required=sorted(required))
            raise ForbiddenError()
        return auth

    return check_roles


__all__ = [
    "AuthContext",
    "EXPIRES_SOON_HEADER",
    "authenticate_request",
    "extract_bearer_token",
    "get_clock",
    "get_tokens",
    "optional_auth",
    "require_roles",
]
