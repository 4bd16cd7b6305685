"""
Cookie directives issued to the host adapter.
"""

from dataclasses import dataclass
from typing import List

from ..adapters.token_client import TokenData

AUTH_COOKIE = "auth_token"
REFRESH_COOKIE = "refresh_token"

DEFAULT_AUTH_COOKIE_MAX_AGE = 3600
DEFAULT_REFRESH_COOKIE_MAX_AGE = 30 * 24 * 60 * 60


@dataclass(frozen=True)
class CookieDirective:
    """A cookie the adapter should set on the response. ``max_age`` is in seconds."""

    name: str
    value: str
    max_age: int
    http_only: bool = True
    same_site: str = "strict"
    secure: bool = False
    path: str = "/"


def auth_cookie(token: str, *, max_age: int = DEFAULT_AUTH_COOKIE_MAX_AGE, secure: bool = False) -> CookieDirective:
    return CookieDirective(name=AUTH_COOKIE, value=token, max_age=max_age, secure=secure)


def auth_cookies(
    token_data: TokenData,
    *,
    secure: bool = False,
    refresh_max_age: int = DEFAULT_REFRESH_COOKIE_MAX_AGE,
) -> List[CookieDirective]:
    """Cookies persisting a code-exchange result.

    The access cookie lives as long as the access token; the refresh
    cookie, when a refresh token was issued, gets a fixed lifetime.
    """
    cookies = [auth_cookie(token_data.access_token, max_age=token_data.expires_in, secure=secure)]
    if token_data.refresh_token:
        cookies.append(CookieDirective(
            name=REFRESH_COOKIE,
            value=token_data.refresh_token,
            max_age=refresh_max_age,
            secure=secure,
        ))
    return cookies


def clear_auth_cookies(*, secure: bool = False) -> List[CookieDirective]:
    """Expire both auth cookies."""
    return [
        CookieDirective(name=AUTH_COOKIE, value="", max_age=0, secure=secure),
        CookieDirective(name=REFRESH_COOKIE, value="", max_age=0, secure=secure),
    ]
