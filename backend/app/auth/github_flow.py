"""
GitHub OAuth authorization-code flow.

States:
    Idle -> AuthorizationRequested -> CallbackReceived -> StateValidated
    -> IdentityExchanged -> LocalUserResolved -> TokensIssued -> Redirected

Security:
- The state nonce is stored server-side under its own key; the session only
  holds the flow id. The nonce is compared in constant time.
- State is checked before any call to GitHub, and consumed atomically on the
  first callback whether or not it succeeds, so two concurrent callbacks for
  one flow cannot both pass.
- The flow must complete within OAUTH_FLOW_TIMEOUT_SECONDS.
- ``return_to`` only accepts relative paths (no open redirects).
"""

import secrets
import time
from typing import Callable, Optional
from urllib.parse import urlencode

from fastapi import Depends
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from core.api.github_oauth import (
    GitHubIdentity,
    GitHubOAuthClient,
    GitHubTokens,
    build_authorize_url,
    get_github_client,
)
from core.config import Settings
from core.errors import (
    AccountDisabledError,
    AccountLinkConflictError,
    InvalidStateError,
    OAuthAccessDeniedError,
    OAuthFlowError,
    OAuthTimeoutError,
)
from core.logging import get_logger
from core.models import User
from core.repositories import UserRepository
from core.security.tokens import TokenPair, TokenService
from core.sessions import SessionData, SessionStore, get_session_store

from ..config import get_settings
from .dependencies import get_tokens

logger = get_logger("auth.github")

SESSION_FLOW_ID = "oauth_flow"


def safe_return_to(value: Optional[str], default: str) -> str:
    """Accept only same-site relative paths like ``/playground``."""
    if not value or not value.startswith("/") or value.startswith("//"):
        return default
    if "\\" in value or any(ch in value for ch in "\r\n\t"):
        return default
    return value


class GitHubFlow:
    """
    Runs the OAuth exchange against a session and a database session.

    Args:
        settings: Frontend URL, timeouts and link policy
        client: GitHub API client
        tokens: Token service used to mint the app's own tokens
        clock: Epoch-seconds source for the flow timeout
        sessions: Store holding pending nonces (defaults to the app session store)
    """

    def __init__(
        self,
        settings: Settings,
        client: GitHubOAuthClient,
        tokens: TokenService,
        clock: Callable[[], float] = time.time,
        sessions: SessionStore | None = None,
    ):
        self.settings = settings
        self.client = client
        self.tokens = tokens
        self._clock = clock
        self._sessions = sessions

    @property
    def sessions(self) -> SessionStore:
        return self._sessions or get_session_store()

    # =========================================================================
    # Start
    # =========================================================================

    def start(self, session: SessionData, return_to: Optional[str] = None) -> str:
        """Store a fresh nonce for this browser and return the GitHub authorize URL."""
        state = secrets.token_urlsafe(32)
        flow_id = secrets.token_urlsafe(16)
        record = {
            "state": state,
            "return_to": safe_return_to(return_to, self.settings.oauth_default_return_to),
            "started_at": self._clock(),
        }
        # Outlives the flow timeout so a late callback reports oauth_timeout, not invalid_state
        self.sessions.save_oauth_state(flow_id, record, ttl=2 * self.settings.oauth_flow_timeout_seconds)
        session[SESSION_FLOW_ID] = flow_id
        logger.info("oauth_started", return_to=record["return_to"])
        return build_authorize_url(state, self.settings)

    # =========================================================================
    # Callback
    # =========================================================================

    def _check_state(
        self, record: Optional[dict], state: Optional[str], provider_error: Optional[str]
    ) -> str:
        """Validate an already-consumed nonce record. Returns the stored return path."""
        record = record or {}
        stored_state = record.get("state")
        return_to = record.get("return_to") or self.settings.oauth_default_return_to
        started_at = record.get("started_at")

        logger.info(
            "oauth_callback_received",
            state_present=bool(state),
            session_state_present=bool(stored_state),
            provider_error=bool(provider_error),
        )

        if provider_error:
            raise OAuthAccessDeniedError()
        if not state or not stored_state or not secrets.compare_digest(str(state), str(stored_state)):
            raise InvalidStateError()
        if started_at is None or self._clock() - float(started_at) > self.settings.oauth_flow_timeout_seconds:
            raise OAuthTimeoutError()
        return return_to

    def _resolve_user(self, db: Session, identity: GitHubIdentity, gh_tokens: GitHubTokens) -> User:
        """Find, link or create the local account for a GitHub identity."""
        repo = UserRepository(db)

        user = repo.find_by_github_id(identity.github_id)
        if user is None:
            existing = repo.find_by_email(identity.email)
            if existing is not None:
                can_link = (
                    self.settings.github_email_link_policy == "link_verified"
                    and identity.email_verified
                    and existing.github_id is None
                )
                if not can_link:
                    logger.warning("oauth_account_conflict", github_id=identity.github_id)
                    raise AccountLinkConflictError()
                user = existing
                logger.info("oauth_account_linked", user_id=user.id)

        if user is not None and not user.active:
            raise AccountDisabledError()

        if user is None:
            user = repo.create_from_github(
                github_id=identity.github_id,
                login=identity.login,
                email=identity.email,
                profile=identity.profile,
                access_token=gh_tokens.access_token,
                refresh_token=gh_tokens.refresh_token,
            )
        else:
            repo.update_github_link(
                user.id,
                github_id=identity.github_id,
                github_profile=identity.profile,
                access_token=gh_tokens.access_token,
                refresh_token=gh_tokens.refresh_token,
                email=identity.email,
            )

        repo.reset_failed_logins(user.id)
        db.commit()
        return user

    async def complete(
        self,
        session: SessionData,
        db: Session,
        code: Optional[str],
        state: Optional[str],
        provider_error: Optional[str] = None,
    ) -> tuple[User, TokenPair, str]:
        """
        Finish the flow.

        Returns:
            Tuple of (user, token pair, return path)

        Raises:
            OAuthFlowError subclasses, UpstreamProviderError, AccountDisabledError
        """
        flow_id = session.pop(SESSION_FLOW_ID, None)
        record = await run_in_threadpool(self.sessions.take_oauth_state, flow_id)
        return_to = self._check_state(record, state, provider_error)
        if not code:
            raise OAuthFlowError()

        gh_tokens, identity = await self.client.authenticate(code)
        user = await run_in_threadpool(self._resolve_user, db, identity, gh_tokens)
        pair = self.tokens.issue_token_pair(user)
        logger.info("oauth_login_success", user_id=user.id)
        return user, pair, return_to

    # =========================================================================
    # Redirects
    # =========================================================================

    def success_url(self, return_to: str, access_token: str) -> str:
        separator = "&" if "?" in return_to else "?"
        query = urlencode({"access_token": access_token})
        return f"{self.settings.frontend_url.rstrip('/')}{return_to}{separator}{query}"

    def failure_url(self, code: str) -> str:
        return f"{self.settings.frontend_url.rstrip('/')}/login?{urlencode({'error': code})}"


def get_github_flow(
    client: GitHubOAuthClient = Depends(get_github_client),
    tokens: TokenService = Depends(get_tokens),
) -> GitHubFlow:
    return GitHubFlow(get_settings(), client, tokens)


__all__ = ["GitHubFlow", "get_github_flow", "safe_return_to"]
