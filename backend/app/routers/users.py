"""
User account router: registration, password login, token refresh, profile
and admin account management.

Security:
- Passwords are checked against the strength policy and hashed with bcrypt
- Unknown emails and wrong passwords return the same 401 message
- Failed logins are counted atomically; MAX_FAILED_LOGINS failures within
  the window lock the account (423 with Retry-After)
- The refresh token is only ever sent as an HttpOnly cookie
"""

from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from core.errors import (
    AccountDisabledError,
    AccountLockedError,
    InvalidCredentialsError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from core.logging import get_logger, mask_identifier
from core.models import ROLE_ADMIN
from core.repositories import UserRepository
from core.security.passwords import dummy_verify, hash_password, validate_password_strength, verify_password
from core.security.tokens import TokenService

from ..auth.cookies import set_refresh_cookie
from ..auth.dependencies import AuthContext, authenticate_request, get_clock, get_tokens, require_roles
from ..config import get_settings
from ..database import get_db
from ..schemas import (
    ActiveUpdateRequest,
    AuthData,
    AuthResponse,
    LoginRequest,
    ProfileUpdateRequest,
    RefreshData,
    RefreshResponse,
    RegisterRequest,
    RoleUpdateRequest,
    UserData,
    UserPublic,
    UserResponse,
)

logger = get_logger("users")

router = APIRouter(prefix="/users", tags=["users"])


def _user_response(user) -> UserResponse:
    return UserResponse(data=UserData(user=UserPublic.model_validate(user)))


def _auth_response(response: Response, user, tokens: TokenService) -> AuthResponse:
    pair = tokens.issue_token_pair(user)
    set_refresh_cookie(response, pair.refresh_token, max_age=pair.refresh_expires_in)
    return AuthResponse(data=AuthData(user=UserPublic.model_validate(user), access_token=pair.access_token))


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=AuthResponse)
def register(
    payload: RegisterRequest,
    response: Response,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_tokens),
) -> AuthResponse:
    """Create a password account and log it in."""
    validate_password_strength(payload.password)

    repo = UserRepository(db)
    user = repo.create_user(
        username=payload.username,
        email=payload.email,
        password_hash=hash_password(payload.password),
    )
    db.commit()

    logger.info("user_registered", user_id=user.id, email=mask_identifier(user.email))
    return _auth_response(response, user, tokens)


@router.post("/login", response_model=AuthResponse)
def login(
    payload: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_tokens),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AuthResponse:
    """
    Authenticate with email and password.

    Errors:
        401 invalid credentials, 423 account locked, 403 account disabled
    """
    repo = UserRepository(db)
    user = repo.find_by_email(payload.email)

    if user is None or not user.password_hash:
        dummy_verify(payload.password)
        logger.info("login_failed", reason="unknown_account", email=mask_identifier(payload.email))
        raise InvalidCredentialsError()

    now = clock()
    if user.is_locked(now):
        logger.warning("login_rejected_locked", user_id=user.id)
        raise AccountLockedError(user.lock_remaining_seconds(now))

    if not verify_password(payload.password, user.password_hash):
        user = repo.record_failed_login(user.id, now)
        # Commit now: the error response must not roll the counter back
        db.commit()
        logger.info("login_failed", reason="bad_password", user_id=user.id if user else None)
        raise InvalidCredentialsError()

    if not user.active:
        logger.warning("login_rejected_disabled", user_id=user.id)
        raise AccountDisabledError()

    repo.reset_failed_logins(user.id, now)
    db.commit()

    logger.info("login_success", user_id=user.id)
    return _auth_response(response, user, tokens)


@router.post("/refresh", response_model=RefreshResponse)
def refresh(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_tokens),
) -> RefreshResponse:
    """Issue a new access token from the refresh-token cookie."""
    refresh_token = request.cookies.get(get_settings().refresh_cookie_name)
    if not refresh_token:
        raise UnauthenticatedError("Refresh token not found")

    repo = UserRepository(db)
    result = tokens.refresh(refresh_token, repo.find_by_id)
    if result.refresh_token:
        set_refresh_cookie(response, result.refresh_token, max_age=result.refresh_expires_in)

    return RefreshResponse(data=RefreshData(access_token=result.access_token, expires_in=result.expires_in))


@router.get("/profile", response_model=UserResponse)
def get_profile(
    auth: AuthContext = Depends(authenticate_request),
    db: Session = Depends(get_db),
) -> UserResponse:
    user = UserRepository(db).find_by_id(auth.id)
    if user is None:
        raise NotFoundError("User not found")
    return _user_response(user)


@router.patch("/profile", response_model=UserResponse)
def update_profile(
    payload: ProfileUpdateRequest,
    auth: AuthContext = Depends(authenticate_request),
    db: Session = Depends(get_db),
) -> UserResponse:
    """Change username and/or email. New values show up in tokens after the next refresh."""
    if payload.username is None and payload.email is None:
        raise ValidationError("Nothing to update")

    user = UserRepository(db).update_profile(auth.id, username=payload.username, email=payload.email)
    db.commit()
    logger.info("profile_updated", user_id=auth.id)
    return _user_response(user)


@router.patch("/{user_id}/role", response_model=UserResponse)
def change_role(
    user_id: int,
    payload: RoleUpdateRequest,
    admin: AuthContext = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
) -> UserResponse:
    """Admin only. Takes effect in the user's next issued token."""
    user = UserRepository(db).set_role(user_id, payload.role)
    db.commit()
    logger.info("role_changed_by_admin", admin_id=admin.id, user_id=user_id, role=payload.role)
    return _user_response(user)


@router.patch("/{user_id}/active", response_model=UserResponse)
def change_active(
    user_id: int,
    payload: ActiveUpdateRequest,
    admin: AuthContext = Depends(require_roles(ROLE_ADMIN)),
    db: Session = Depends(get_db),
) -> UserResponse:
    """Admin only. Soft-disable or re-enable an account."""
    if user_id == admin.id and not payload.active:
        raise ValidationError("Cannot disable your own account")

    user = UserRepository(db).set_active(user_id, payload.active)
    db.commit()
    logger.info("active_changed_by_admin", admin_id=admin.id, user_id=user_id, active=payload.active)
    return _user_response(user)
