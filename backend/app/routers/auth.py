"""
Authentication router: GitHub OAuth, logout and auth status.

Security:
- OAuth state is stored server-side and consumed atomically on callback
- Failures redirect to the frontend login page with a short error code;
  details stay in the logs
- The refresh token is set as an HttpOnly cookie, the access token is
  handed to the frontend in the redirect query string
- Logout revokes whatever valid tokens it is given and always succeeds
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from core.cache import StoreUnavailableError
from core.errors import AccountDisabledError, AppError, OAuthFlowError, UnauthenticatedError
from core.logging import get_logger
from core.security.tokens import ACCESS, REFRESH, TokenService

from ..auth.cookies import clear_auth_cookies, set_refresh_cookie
from ..auth.dependencies import AuthContext, extract_bearer_token, get_tokens, optional_auth
from ..auth.github_flow import GitHubFlow, get_github_flow
from ..config import get_settings
from ..database import get_db
from ..schemas import AuthStatusResponse, MessageResponse, StatusUser

logger = get_logger("auth")

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# GitHub OAuth
# =============================================================================


@router.get("/github")
def github_login(
    request: Request,
    return_to: Optional[str] = Query(None, alias="returnTo"),
    flow: GitHubFlow = Depends(get_github_flow),
):
    """Start the OAuth flow: remember a nonce in the session and redirect to GitHub."""
    if not flow.settings.github_client_id:
        logger.error("oauth_not_configured")
        return RedirectResponse(url=flow.failure_url("github_auth_failed"), status_code=302)

    authorize_url = flow.start(request.state.session, return_to)
    return RedirectResponse(url=authorize_url, status_code=302)


@router.get("/github/callback")
async def github_callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    flow: GitHubFlow = Depends(get_github_flow),
    db: Session = Depends(get_db),
):
    """
    Finish the OAuth flow.

    Success redirects to ``FRONTEND_URL + return_to?access_token=...`` and sets
    the refresh cookie. Failure redirects to ``FRONTEND_URL/login?error=<code>``.
    """
    try:
        _, pair, return_to = await flow.complete(request.state.session, db, code, state, error)
    except OAuthFlowError as exc:
        logger.warning("oauth_callback_failed", code=exc.code)
        return RedirectResponse(url=flow.failure_url(exc.code), status_code=302)
    except AccountDisabledError:
        logger.warning("oauth_callback_failed", code="account_disabled")
        return RedirectResponse(url=flow.failure_url("access_denied"), status_code=302)
    except (AppError, StoreUnavailableError) as exc:
        logger.error("oauth_callback_failed", code="github_auth_failed", error_type=type(exc).__name__)
        return RedirectResponse(url=flow.failure_url("github_auth_failed"), status_code=302)

    response = RedirectResponse(url=flow.success_url(return_to, pair.access_token), status_code=302)
    set_refresh_cookie(response, pair.refresh_token, max_age=pair.refresh_expires_in)
    return response


# =============================================================================
# Logout / Status
# =============================================================================


@router.post("/logout", response_model=MessageResponse)
def logout(request: Request, tokens: TokenService = Depends(get_tokens)):
    """
    Revoke the bearer access token and refresh cookie (when valid), destroy
    the session and clear auth cookies. Invalid or missing tokens are ignored.
    """
    header = request.headers.get("Authorization")
    if header:
        try:
            tokens.revoke(extract_bearer_token(header), ACCESS)
        except UnauthenticatedError as exc:
            logger.info("logout_access_token_ignored", code=exc.code)

    refresh_token = request.cookies.get(get_settings().refresh_cookie_name)
    if refresh_token:
        try:
            tokens.revoke(refresh_token, REFRESH)
        except UnauthenticatedError as exc:
            logger.info("logout_refresh_token_ignored", code=exc.code)

    session = getattr(request.state, "session", None)
    if session is not None:
        session.invalidate()

    response = JSONResponse(content={"success": True, "message": "Logged out successfully"})
    clear_auth_cookies(response)
    logger.info("logout_completed")
    return response


@router.get("/status", response_model=AuthStatusResponse)
def auth_status(request: Request, auth: Optional[AuthContext] = Depends(optional_auth)):
    if auth is None:
        error = getattr(request.state, "auth_error", None)
        return JSONResponse(
            status_code=401,
            content={
                "isAuthenticated": False,
                "success": False,
                "error": error.message if error else "Authentication failed. Please log in again.",
            },
            headers={"WWW-Authenticate": "Bearer"},
        )
    return AuthStatusResponse(is_authenticated=True, user=StatusUser(**auth.to_user_dict()))
