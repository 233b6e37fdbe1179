"""
JWT access and refresh tokens.

Access tokens are short-lived and carry the user's identity claims; refresh
tokens are long-lived, signed with a separate secret and carry only the
subject plus the id of the access token they were issued with (``ati``).

Both are HS256 only. The header ``alg`` is checked against the allow-list
before anything is decoded, so ``none`` and asymmetric algorithms never
reach signature verification.

Usage:
    from core.security.tokens import get_token_service

    tokens = get_token_service()
    pair = tokens.issue_token_pair(user)
    claims = tokens.verify(pair.access_token, "access")
"""

import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError

from core.config import Settings, get_settings
from core.errors import (
    AccountDisabledError,
    TokenExpiredError,
    TokenMalformedError,
    TokenRevokedError,
    TokenSignatureError,
    UnauthenticatedError,
    WrongTokenTypeError,
)
from core.logging import get_logger, mask_identifier
from core.security.revocation import RevocationList, build_revocation_list

logger = get_logger("security.tokens")

TokenType = Literal["access", "refresh"]

ACCESS = "access"
REFRESH = "refresh"
ALLOWED_ALGORITHMS = ["HS256"]
REQUIRED_CLAIMS = ("jti", "sub", "exp", "iat")


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    refresh_expires_in: int
    token_type: str = "Bearer"


@dataclass(frozen=True)
class RefreshResult:
    """New access token; ``refresh_token`` is set only when rotation is on."""

    access_token: str
    expires_in: int
    refresh_token: Optional[str] = None
    refresh_expires_in: Optional[int] = None


class TokenService:
    """
    Issues, verifies, refreshes and revokes JWTs.

    Args:
        settings: Secrets, TTLs, audience and issuer
        revocations: Revoked-token list consulted on every verify
        clock: Epoch-seconds source used for ``iat``/``exp`` when issuing
    """

    def __init__(
        self,
        settings: Settings,
        revocations: RevocationList,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.revocations = revocations
        self._clock = clock

    # =========================================================================
    # Issuance
    # =========================================================================

    def _secret_for(self, token_type: str) -> str:
        if token_type == ACCESS:
            return self.settings.jwt_secret_key
        return self.settings.refresh_token_secret_key

    def _encode(self, claims: dict[str, Any], token_type: str, ttl: int) -> tuple[str, str]:
        now = int(self._clock())
        jti = str(uuid.uuid4())
        payload = {
            **claims,
            "jti": jti,
            "type": token_type,
            "iat": now,
            "exp": now + ttl,
            "aud": self.settings.jwt_audience,
            "iss": self.settings.jwt_issuer,
        }
        token = jwt.encode(payload, self._secret_for(token_type), algorithm=self.settings.jwt_algorithm)
        return token, jti

    def _issue_access(self, user: Any) -> tuple[str, str]:
        claims = {
            "sub": str(user.id),
            "username": user.username,
            "email": user.email,
            "role": user.role,
        }
        return self._encode(claims, ACCESS, self.settings.access_token_ttl_seconds)

    def issue_token_pair(self, user: Any) -> TokenPair:
        """
        Mint an access/refresh pair for a user.

        The user needs ``id``, ``username``, ``email`` and ``role`` attributes.
        Role changes are only reflected in tokens issued after the change.
        """
        access_token, access_jti = self._issue_access(user)
        refresh_token, _ = self._encode(
            {"sub": str(user.id), "ati": access_jti},
            REFRESH,
            self.settings.refresh_token_ttl_seconds,
        )
        logger.info("token_pair_issued", user_id=user.id)
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.settings.access_token_ttl_seconds,
            refresh_expires_in=self.settings.refresh_token_ttl_seconds,
        )

    # =========================================================================
    # Verification
    # =========================================================================

    def _decode(self, token: str, token_type: str, verify_exp: bool = True) -> dict[str, Any]:
        if not token or not isinstance(token, str):
            raise TokenMalformedError()

        try:
            header = jwt.get_unverified_header(token)
            unverified = jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise TokenMalformedError() from exc

        if header.get("alg") not in ALLOWED_ALGORITHMS:
            logger.warning("token_algorithm_rejected", alg=str(header.get("alg"))[:10])
            raise TokenSignatureError()

        try:
            claims = jwt.decode(
                token,
                self._secret_for(token_type),
                algorithms=ALLOWED_ALGORITHMS,
                audience=self.settings.jwt_audience,
                issuer=self.settings.jwt_issuer,
                options={"verify_exp": verify_exp, "leeway": self.settings.jwt_leeway_seconds},
            )
        except ExpiredSignatureError as exc:
            raise TokenExpiredError() from exc
        except JWTClaimsError as exc:
            raise TokenMalformedError() from exc
        except JWTError as exc:
            # Header and payload parsed, so the signature is what failed.
            # A token signed with the other secret is a type confusion.
            if unverified.get("type") in (ACCESS, REFRESH) and unverified.get("type") != token_type:
                raise WrongTokenTypeError() from exc
            raise TokenSignatureError() from exc

        if claims.get("type") != token_type:
            raise WrongTokenTypeError()
        if any(claims.get(name) is None for name in REQUIRED_CLAIMS):
            raise TokenMalformedError()
        return claims

    def verify(self, token: str, expected_type: TokenType) -> dict[str, Any]:
        """
        Verify a token and return its claims.

        Raises:
            TokenExpiredError, TokenRevokedError, TokenMalformedError,
            TokenSignatureError, WrongTokenTypeError
        """
        claims = self._decode(token, expected_type)
        if self.revocations.is_revoked(claims.get("jti")):
            logger.info("revoked_token_presented", token_type=expected_type, user_id=claims.get("sub"))
            raise TokenRevokedError()
        return claims

    # =========================================================================
    # Refresh / Revocation
    # =========================================================================

    def refresh(self, refresh_token: str, load_user: Callable[[int], Any]) -> RefreshResult:
        """
        Exchange a refresh token for a new access token.

        ``load_user`` maps the subject id to the current user (or None) so the
        new access token reflects the user's current role.

        With REFRESH_TOKEN_ROTATION on, the presented refresh token is revoked
        and a new pair returned. Replaying a rotated token raises
        TokenRevokedError.
        """
        claims = self.verify(refresh_token, REFRESH)

        try:
            user_id = int(claims["sub"])
        except (TypeError, ValueError) as exc:
            raise TokenMalformedError() from exc

        user = load_user(user_id)
        if user is None:
            raise UnauthenticatedError("User not found")
        if not getattr(user, "active", True):
            raise AccountDisabledError()

        if self.settings.refresh_token_rotation:
            # Claiming the jti is atomic, so two concurrent refreshes cannot
            # both rotate the same token.
            if not self.revocations.revoke(claims["jti"], claims["exp"]):
                raise TokenRevokedError()
            pair = self.issue_token_pair(user)
            logger.info("refresh_token_rotated", user_id=user_id)
            return RefreshResult(
                access_token=pair.access_token,
                expires_in=pair.expires_in,
                refresh_token=pair.refresh_token,
                refresh_expires_in=pair.refresh_expires_in,
            )

        access_token, _ = self._issue_access(user)
        logger.info("access_token_refreshed", user_id=user_id)
        return RefreshResult(access_token=access_token, expires_in=self.settings.access_token_ttl_seconds)

    def revoke(self, token: str, token_type: TokenType) -> None:
        """
        Revoke a token until its expiry.

        Idempotent. Tokens that have already expired are accepted silently.
        Revoking a refresh token also revokes the access token it was issued
        with. Tokens with a bad signature or structure still raise.
        """
        claims = self._decode(token, token_type, verify_exp=False)
        jti, exp = claims.get("jti"), claims.get("exp")
        if not isinstance(exp, (int, float)):
            raise TokenMalformedError()

        self.revocations.revoke(jti, int(exp))

        linked = claims.get("ati")
        if token_type == REFRESH and linked and isinstance(claims.get("iat"), (int, float)):
            access_exp = int(claims["iat"]) + self.settings.access_token_ttl_seconds
            self.revocations.revoke(linked, access_exp)

        logger.debug("token_revoke_requested", token_type=token_type, jti=mask_identifier(jti))

    def prune_revocations(self) -> int:
        return self.revocations.prune()


# Global singleton instance
_token_service: TokenService | None = None


def get_token_service() -> TokenService:
    """Get the TokenService singleton built from current settings."""
    global _token_service
    if _token_service is None:
        settings = get_settings()
        _token_service = TokenService(settings, build_revocation_list(settings.revocation_backend))
    return _token_service


def set_token_service(service: TokenService | None) -> None:
    """Replace (or clear with None) the singleton; used by app startup and tests."""
    global _token_service
    _token_service = service


__all__ = [
    "ACCESS",
    "REFRESH",
    "ALLOWED_ALGORITHMS",
    "TokenPair",
    "RefreshResult",
    "TokenService",
    "get_token_service",
    "set_token_service",
]
