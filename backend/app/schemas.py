"""
Pydantic schemas for request and response validation.

Response envelopes use the camelCase keys the frontend reads
(``accessToken``, ``expiresIn``, ``isAuthenticated``).
"""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, EmailStr, Field

from core.models import USERNAME_MAX_LENGTH, USERNAME_MIN_LENGTH, USERNAME_PATTERN


def _lower(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


Username = Annotated[
    str,
    Field(min_length=USERNAME_MIN_LENGTH, max_length=USERNAME_MAX_LENGTH, pattern=USERNAME_PATTERN),
]
Email = Annotated[EmailStr, BeforeValidator(_lower)]


# =============================================================================
# Requests
# =============================================================================


class RegisterRequest(BaseModel):
    username: Username
    email: Email
    password: str = Field(min_length=1, max_length=256)


class LoginRequest(BaseModel):
    email: Email
    password: str = Field(min_length=1, max_length=256)


class ProfileUpdateRequest(BaseModel):
    username: Username | None = None
    email: Email | None = None


class RoleUpdateRequest(BaseModel):
    role: Literal["student", "mentor", "admin"]


class ActiveUpdateRequest(BaseModel):
    active: bool


# =============================================================================
# Responses
# =============================================================================


class UserPublic(BaseModel):
    """User fields safe to return; there is no password or token field."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    role: str
    active: bool = True
    github_id: str | None = None
    avatar_url: str | None = None
    created_at: datetime | None = None


class _Envelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True


class AuthData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user: UserPublic
    access_token: str = Field(alias="accessToken")


class AuthResponse(_Envelope):
    data: AuthData


class RefreshData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    expires_in: int = Field(alias="expiresIn")


class RefreshResponse(_Envelope):
    data: RefreshData


class UserData(BaseModel):
    user: UserPublic


class UserResponse(_Envelope):
    data: UserData


class StatusUser(BaseModel):
    id: int
    username: str
    email: str
    role: str


class AuthStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_authenticated: bool = Field(alias="isAuthenticated")
    user: StatusUser | None = None


class MessageResponse(_Envelope):
    message: str
