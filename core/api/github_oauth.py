"""
GitHub OAuth client.

Wraps the three provider calls of the authorization-code flow:

1. POST /login/oauth/access_token  (code -> provider token)
2. GET  /user                      (profile)
3. GET  /user/emails               (primary email)

Calls 2 and 3 run concurrently. Any network or HTTP failure surfaces as
UpstreamProviderError; provider tokens are never logged.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from core.config import Settings, get_settings
from core.errors import NoPrimaryEmailError, UpstreamProviderError
from core.logging import get_logger

logger = get_logger("github.oauth")

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_ACCESS_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_API_URL = "https://api.github.com"

# Public profile fields kept on the account
PROFILE_FIELDS = (
    "login",
    "avatar_url",
    "html_url",
    "name",
    "bio",
    "location",
    "company",
    "blog",
    "public_repos",
    "followers",
    "following",
    "created_at",
)


@dataclass(frozen=True)
class GitHubTokens:
    access_token: str
    refresh_token: Optional[str] = None
    scope: str = ""
    token_type: str = "bearer"

    def __repr__(self) -> str:
        return f"GitHubTokens(scope={self.scope!r}, token_type={self.token_type!r})"


@dataclass(frozen=True)
class GitHubIdentity:
    github_id: str
    login: str
    email: str
    email_verified: bool
    profile: dict[str, Any] = field(default_factory=dict)


def build_authorize_url(state: str, settings: Settings | None = None) -> str:
    """Build the GitHub authorize URL for the given state nonce."""
    settings = settings or get_settings()
    params = {
        "client_id": settings.github_client_id,
        "redirect_uri": settings.github_callback_url or "",
        "scope": settings.github_scope,
        "state": state,
    }
    return f"{GITHUB_AUTHORIZE_URL}?{urlencode({k: v for k, v in params.items() if v})}"


def select_primary_email(emails: Any) -> tuple[str, bool]:
    """
    Pick the account's primary email, preferring a verified one.

    Returns:
        Tuple of (email, verified)

    Raises:
        NoPrimaryEmailError: No entry is marked primary
    """
    if not isinstance(emails, list):
        raise NoPrimaryEmailError()
    primaries = [e for e in emails if isinstance(e, dict) and e.get("primary") and e.get("email")]
    for entry in primaries:
        if entry.get("verified"):
            return entry["email"], True
    if primaries:
        return primaries[0]["email"], False
    raise NoPrimaryEmailError()


class GitHubOAuthClient:
    """
    Async client for the GitHub OAuth exchange.

    Args:
        settings: Client credentials, callback URL and HTTP timeout
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(self, settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings or get_settings()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.github_http_timeout, transport=self._transport)

    async def exchange_code(self, code: str) -> GitHubTokens:
        """Exchange an authorization code for provider tokens."""
        payload = {
            "client_id": self.settings.github_client_id,
            "client_secret": self.settings.github_client_secret,
            "code": code,
        }
        if self.settings.github_callback_url:
            payload["redirect_uri"] = self.settings.github_callback_url

        try:
            async with self._client() as client:
                response = await client.post(
                    GITHUB_ACCESS_TOKEN_URL,
                    data=payload,
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("github_token_exchange_failed", error_type=type(exc).__name__)
            raise UpstreamProviderError() from exc

        if not isinstance(data, dict):
            logger.warning("github_token_exchange_unexpected_body", body_type=type(data).__name__)
            raise UpstreamProviderError()

        access_token = data.get("access_token")
        if not access_token:
            # GitHub reports bad codes with 200 and an "error" field
            logger.warning("github_token_exchange_rejected", error=str(data.get("error", ""))[:50])
            raise UpstreamProviderError()

        return GitHubTokens(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope", ""),
            token_type=data.get("token_type", "bearer"),
        )

    async def fetch_identity(self, access_token: str) -> GitHubIdentity:
        """Fetch profile and emails concurrently and build the identity."""
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/vnd.github+json",
        }
        try:
            async with self._client() as client:
                user_resp, emails_resp = await asyncio.gather(
                    client.get(f"{GITHUB_API_URL}/user", headers=headers),
                    client.get(f"{GITHUB_API_URL}/user/emails", headers=headers),
                )
                user_resp.raise_for_status()
                emails_resp.raise_for_status()
                user_data = user_resp.json()
                emails = emails_resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("github_profile_fetch_failed", error_type=type(exc).__name__)
            raise UpstreamProviderError() from exc

        if not isinstance(user_data, dict) or user_data.get("id") is None:
            raise UpstreamProviderError()

        email, verified = select_primary_email(emails)
        profile = {key: user_data.get(key) for key in PROFILE_FIELDS}
        return GitHubIdentity(
            github_id=str(user_data["id"]),
            login=user_data.get("login") or "",
            email=email.lower(),
            email_verified=verified,
            profile=profile,
        )

    async def authenticate(self, code: str) -> tuple[GitHubTokens, GitHubIdentity]:
        tokens = await self.exchange_code(code)
        identity = await self.fetch_identity(tokens.access_token)
        logger.info("github_identity_fetched", github_id=identity.github_id, verified=identity.email_verified)
        return tokens, identity


def get_github_client() -> GitHubOAuthClient:
    """FastAPI dependency; tests override it with a MockTransport-backed client."""
    return GitHubOAuthClient()


__all__ = [
    "GITHUB_AUTHORIZE_URL",
    "GITHUB_ACCESS_TOKEN_URL",
    "GITHUB_API_URL",
    "GitHubTokens",
    "GitHubIdentity",
    "GitHubOAuthClient",
    "build_authorize_url",
    "select_primary_email",
    "get_github_client",
]
