"""
Example FastAPI application protected by the Keycloak auth helper.
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, Field

from shared.config import KeycloakSettings, get_settings
from shared.errors import (
    AuthenticationRejected,
    ConfigurationError,
    TokenExchangeError,
    VerificationError,
)
from shared.logging import clear_context, configure_logging, get_logger, set_request_id
from .adapters.fastapi_adapter import StarletteAdapter, authentication_rejected_handler, require_user
from .domain.auth_decision import Identity
from .keycloak import KeycloakAuth


class TokenExchangeRequest(BaseModel):
    """Request model for the authorization-code exchange."""
    code: str = Field(min_length=1)
    redirect_uri: str = Field(min_length=1)


def create_app(
    keycloak: Optional[KeycloakAuth] = None,
    settings: Optional[KeycloakSettings] = None,
) -> FastAPI:
    """Create FastAPI application."""
    if keycloak is None:
        keycloak = KeycloakAuth(settings or get_settings())
    settings = keycloak.settings

    configure_logging("keycloak", settings.log_level)
    logger = get_logger("keycloak.app")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if keycloak.key_store is not None:
            await keycloak.key_store.warmup()
        yield
        await keycloak.close()

    app = FastAPI(
        title="Keycloak Auth",
        version="1.0.0",
        docs_url="/docs" if settings.env == "local" else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.keycloak = keycloak
    current_user = require_user(keycloak)

    @app.middleware("http")
    async def add_request_context(request: Request, call_next):
        start_time = time.time()
        set_request_id(request.headers.get("X-Request-ID"))
        try:
            response = await call_next(request)
            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.time() - start_time) * 1000, 2)
            )
            return response
        finally:
            clear_context()

    app.add_exception_handler(AuthenticationRejected, authentication_rejected_handler)

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        logger.error("Configuration error", code=exc.code, message=exc.message)
        return JSONResponse(status_code=500, content=exc.to_response().model_dump())

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        keycloak_status = await keycloak.check_health()
        return {
            "service": "keycloak-auth",
            "status": "ok" if keycloak_status != "error" else "degraded",
            "dependencies": {"keycloak": keycloak_status},
            "version": "1.0.0"
        }

    @app.get("/api/protected")
    async def protected(user: Identity = Depends(current_user)):
        return {"user": user.to_dict()}

    @app.post("/api/token")
    async def token_exchange(body: TokenExchangeRequest, request: Request, response: Response):
        """Exchange an authorization code and set the auth cookies."""
        try:
            result = await keycloak.handle_token_exchange(
                body.code,
                body.redirect_uri,
                StarletteAdapter(request, response)
            )
        except (TokenExchangeError, VerificationError) as e:
            logger.warning("Token exchange failed", code=e.code)
            return JSONResponse(status_code=401, content={"error": "Authentication failed"})

        return {"message": "Authentication successful", "user": result.user.to_dict()}

    @app.get("/api/login")
    async def login(redirect_uri: str, prompt: Optional[str] = None):
        """Redirect the browser to the Keycloak login page."""
        url = keycloak.get_auth_url(
            redirect_uri,
            state=keycloak.generate_random_state(),
            prompt=prompt
        )
        return RedirectResponse(url, status_code=302)

    @app.get("/api/logout")
    async def logout(request: Request, response: Response, redirect_uri: Optional[str] = None):
        keycloak.logout(StarletteAdapter(request, response))
        return {
            "message": "Logged out successfully",
            "logout_url": keycloak.get_logout_url(redirect_uri)
        }

    return app


if __name__ == "__main__":
    import uvicorn

    app_settings = get_settings()
    uvicorn.run(
        create_app(settings=app_settings),
        host=app_settings.host,
        port=app_settings.port,
        log_level=app_settings.log_level.lower()
    )
