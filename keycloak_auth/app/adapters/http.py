"""
Capability interface between the auth helper and a host web framework.
"""

from typing import Optional, Protocol

from ..domain.cookies import CookieDirective


class HttpAdapter(Protocol):
    """What the helper needs from a request/response pair.

    Each host framework supplies one implementation; nothing else in the
    helper touches framework request or response types.
    """

    def get_cookie(self, name: str) -> Optional[str]:
        ...

    def get_header(self, name: str) -> Optional[str]:
        ...

    def set_cookie(self, cookie: CookieDirective) -> None:
        ...


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[7:].strip()
    return token or None
