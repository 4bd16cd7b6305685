"""
Authorization-code exchange against the Keycloak token endpoint.
"""

from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from shared.errors import MissingClientSecret, MissingParameter, TokenExchangeError
from shared.logging import get_logger

TOKEN_PATH = "/protocol/openid-connect/token"


class TokenData(BaseModel):
    """Token endpoint response."""

    model_config = ConfigDict(extra="allow")

    access_token: str
    expires_in: int
    refresh_token: Optional[str] = None
    refresh_expires_in: Optional[int] = None
    token_type: Optional[str] = None
    id_token: Optional[str] = None


class TokenClient:
    """Client for the realm's token endpoint."""

    def __init__(
        self,
        keycloak_url: str,
        client_id: str,
        client_secret: Optional[str] = None,
        *,
        http_timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.token_endpoint = f"{keycloak_url.rstrip('/')}{TOKEN_PATH}"
        self.client_id = client_id
        self.client_secret = client_secret
        self.http_timeout = http_timeout
        self.logger = get_logger("keycloak.token_client")

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=http_timeout)

    async def exchange_code_for_tokens(self, code: str, redirect_uri: str) -> TokenData:
        """Exchange an authorization code for tokens.

        A single form-encoded POST; failures are not retried.
        """
        if not self.client_secret:
            raise MissingClientSecret()
        if not code:
            raise MissingParameter("code")
        if not redirect_uri:
            raise MissingParameter("redirect_uri")

        form = {
            "grant_type": "authorization_code",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "redirect_uri": redirect_uri,
        }

        try:
            response = await self._client.post(
                self.token_endpoint,
                data=form,
                timeout=self.http_timeout,
            )
        except httpx.HTTPError as e:
            self.logger.error("Token endpoint HTTP error", error=str(e))
            raise TokenExchangeError(
                "Token endpoint unavailable",
                details={"http_error": type(e).__name__}
            ) from e

        if response.status_code != 200:
            self.logger.warning(
                "Token exchange rejected",
                status_code=response.status_code
            )
            raise TokenExchangeError(
                f"Token endpoint responded with {response.status_code}",
                details={"status_code": response.status_code}
            )

        try:
            token_data = TokenData.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            self.logger.error("Token endpoint returned an unreadable body", error=str(e))
            raise TokenExchangeError("Token endpoint returned an invalid response") from e

        self.logger.info(
            "Authorization code exchanged",
            expires_in=token_data.expires_in,
            has_refresh_token=token_data.refresh_token is not None
        )
        return token_data

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
