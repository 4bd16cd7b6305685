"""
FastAPI/Starlette host adapter.
"""

from typing import Callable, Optional, TYPE_CHECKING

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from shared.errors import AuthenticationRejected
from shared.logging import set_user_context
from ..domain.auth_decision import Authenticated, Identity
from ..domain.cookies import CookieDirective

if TYPE_CHECKING:
    from ..keycloak import KeycloakAuth


class StarletteAdapter:
    """HttpAdapter over a Starlette request and the response being built."""

    def __init__(self, request: Request, response: Response):
        self.request = request
        self.response = response

    def get_cookie(self, name: str) -> Optional[str]:
        return self.request.cookies.get(name)

    def get_header(self, name: str) -> Optional[str]:
        return self.request.headers.get(name)

    def set_cookie(self, cookie: CookieDirective) -> None:
        self.response.set_cookie(
            key=cookie.name,
            value=cookie.value,
            max_age=cookie.max_age,
            path=cookie.path,
            secure=cookie.secure,
            httponly=cookie.http_only,
            samesite=cookie.same_site,
        )


def require_user(keycloak: "KeycloakAuth") -> Callable:
    """FastAPI dependency returning the authenticated :class:`Identity`.

    Rejections raise :class:`AuthenticationRejected`; register
    :func:`authentication_rejected_handler` to render them.
    """

    async def dependency(request: Request, response: Response) -> Identity:
        outcome = await keycloak.authenticate(StarletteAdapter(request, response))
        if not isinstance(outcome, Authenticated):
            raise AuthenticationRejected(outcome.reason.value, outcome.message, outcome.status_code)

        set_user_context(user_id=outcome.identity.id)
        request.state.user = outcome.identity
        return outcome.identity

    return dependency


async def authentication_rejected_handler(request: Request, exc: AuthenticationRejected) -> JSONResponse:
    """Render a rejection as ``{"error": <generic message>}``."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
