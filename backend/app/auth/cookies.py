"""
Auth cookie helpers.

The refresh token travels only in an HttpOnly cookie; it is never put in a
response body or URL.
"""

from fastapi import Response

from ..config import get_settings

# Cookies cleared on logout, including the legacy Express session cookie
LOGOUT_COOKIES = ("refreshToken", "code_tutor.sid", "accessToken", "connect.sid")


def set_refresh_cookie(response: Response, refresh_token: str, max_age: int | None = None) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=refresh_token,
        max_age=max_age or settings.refresh_token_ttl_seconds,
        httponly=True,  # Cannot be accessed by JavaScript
        secure=settings.is_production,  # Only send over HTTPS in production
        samesite="lax",
        path="/",
    )


def clear_auth_cookies(response: Response) -> None:
    settings = get_settings()
    names = {settings.refresh_cookie_name, settings.session_cookie_name, *LOGOUT_COOKIES}
    for name in sorted(names):
        response.delete_cookie(key=name, path="/", secure=settings.is_production, samesite="lax")
