"""
Mock Keycloak realm providing JWKS, authorization, token and logout endpoints.

Tokens are RS256-signed with a locally generated key, so the real
verification path can run end to end without a Keycloak instance.
"""

import secrets
import sys
import os
from typing import Dict, Any, Optional
from urllib.parse import urlencode

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse

# Add repository root to path
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.logging import get_logger
from shared.test_helpers import SigningKey, TestDataFactory, TestUser, TokenFactory, create_jwks, generate_signing_key


class MockKeycloakServer:
    """Mock Keycloak server implementation."""

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        realm: str = "test-realm",
        client_id: str = "test-client",
        client_secret: str = "test-secret",
        signing_key: Optional[SigningKey] = None,
    ):
        self.logger = get_logger("mock.keycloak")
        self.app = FastAPI(title="Mock Keycloak", version="1.0.0")

        self.realm = realm
        self.client_id = client_id
        self.client_secret = client_secret
        self.issuer = f"{base_url.rstrip('/')}/realms/{realm}"

        self.users: Dict[str, TestUser] = {
            user.user_id: user for user in TestDataFactory.create_test_users()
        }
        self.default_user_id = next(iter(self.users))

        self.signing_key = signing_key or generate_signing_key("mock-key-1")
        self.tokens = TokenFactory(self.signing_key, self.issuer, client_id=client_id)

        # Authorization codes issued and not yet redeemed
        self.codes: Dict[str, Dict[str, str]] = {}

        # Knobs for tests
        self.certs_requests = 0
        self.certs_status_code = 200

        self._setup_routes()

    @property
    def jwks(self) -> Dict[str, Any]:
        return create_jwks(self.signing_key)

    def rotate_key(self, kid: str) -> SigningKey:
        """Replace the realm's signing key; previously issued tokens stop verifying."""
        self.signing_key = generate_signing_key(kid)
        self.tokens = TokenFactory(self.signing_key, self.issuer, client_id=self.client_id)
        self.logger.info("Signing key rotated", kid=kid)
        return self.signing_key

    def issue_code(self, redirect_uri: str, user_id: Optional[str] = None) -> str:
        """Issue an authorization code as if the user had just logged in."""
        code = secrets.token_urlsafe(16)
        self.codes[code] = {
            "user_id": user_id or self.default_user_id,
            "redirect_uri": redirect_uri,
        }
        return code

    def _check_realm(self, realm: str) -> None:
        if realm != self.realm:
            raise HTTPException(status_code=404, detail="Realm not found")

    def _setup_routes(self):
        """Set up mock Keycloak routes."""

        @self.app.get("/realms/{realm}/.well-known/openid-configuration")
        async def openid_configuration(realm: str):
            """OpenID Connect configuration."""
            self._check_realm(realm)
            return {
                "issuer": self.issuer,
                "authorization_endpoint": f"{self.issuer}/protocol/openid-connect/auth",
                "token_endpoint": f"{self.issuer}/protocol/openid-connect/token",
                "jwks_uri": f"{self.issuer}/protocol/openid-connect/certs",
                "end_session_endpoint": f"{self.issuer}/protocol/openid-connect/logout",
                "grant_types_supported": ["authorization_code"],
                "response_types_supported": ["code"],
                "id_token_signing_alg_values_supported": ["RS256"],
                "scopes_supported": ["openid", "profile", "email"]
            }

        @self.app.get("/realms/{realm}/protocol/openid-connect/certs")
        async def jwks_endpoint(realm: str):
            """JWKS endpoint."""
            self._check_realm(realm)
            self.certs_requests += 1
            if self.certs_status_code != 200:
                return JSONResponse(status_code=self.certs_status_code, content={"error": "unavailable"})
            return self.jwks

        @self.app.get("/realms/{realm}/protocol/openid-connect/auth")
        async def authorization_endpoint(
            realm: str,
            client_id: str,
            redirect_uri: str,
            response_type: str = "code",
            scope: str = "openid",
            state: Optional[str] = None,
        ):
            """Log the default user in and redirect back with a code."""
            self._check_realm(realm)
            if client_id != self.client_id:
                raise HTTPException(status_code=400, detail="Invalid client")
            if response_type != "code":
                raise HTTPException(status_code=400, detail="Unsupported response type")

            params = {"code": self.issue_code(redirect_uri)}
            if state:
                params["state"] = state
            return RedirectResponse(f"{redirect_uri}?{urlencode(params)}", status_code=302)

        @self.app.post("/realms/{realm}/protocol/openid-connect/token")
        async def token_endpoint(realm: str, request: Request):
            """Token endpoint for the authorization-code grant."""
            self._check_realm(realm)
            form = await request.form()

            if form.get("client_id") != self.client_id or form.get("client_secret") != self.client_secret:
                return JSONResponse(status_code=401, content={"error": "unauthorized_client"})

            if form.get("grant_type") != "authorization_code":
                return JSONResponse(status_code=400, content={"error": "unsupported_grant_type"})

            grant = self.codes.pop(str(form.get("code", "")), None)
            if grant is None or grant["redirect_uri"] != form.get("redirect_uri"):
                return JSONResponse(
                    status_code=400,
                    content={"error": "invalid_grant", "error_description": "Code not valid"}
                )

            return self._generate_token_pair(grant["user_id"])

        @self.app.get("/realms/{realm}/protocol/openid-connect/logout")
        async def logout_endpoint(realm: str, redirect_uri: Optional[str] = None):
            """Logout endpoint."""
            self._check_realm(realm)
            if redirect_uri:
                return RedirectResponse(redirect_uri, status_code=302)
            return {"message": "Logged out successfully"}

    def _generate_token_pair(self, user_id: str) -> Dict[str, Any]:
        """Generate access and refresh token pair."""
        user = self.users[user_id]
        return {
            "access_token": self.tokens.access_token(user),
            "expires_in": 3600,
            "refresh_expires_in": 2592000,  # 30 days
            "refresh_token": self.tokens.refresh_token(user),
            "id_token": self.tokens.access_token(user, aud=self.client_id, typ="ID"),
            "token_type": "Bearer",
            "not-before-policy": 0,
            "scope": "openid profile email"
        }


def create_app():
    """Create mock Keycloak application."""
    server = MockKeycloakServer()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8080)
