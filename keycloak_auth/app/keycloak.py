"""
Keycloak integration facade.

Wires the key store, token validator, request decision and code-exchange
client from one settings object and exposes the operations a host
application calls through an :class:`~keycloak_auth.app.adapters.http.HttpAdapter`.
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from shared.config import KeycloakSettings, get_settings
from shared.errors import MissingParameter
from shared.logging import get_logger
from .adapters.http import HttpAdapter
from .adapters.token_client import TokenClient, TokenData
from .domain.auth_decision import (
    AuthDecision,
    Authenticated,
    AuthOutcome,
    Identity,
    RequestCredentials,
)
from .domain.cookies import auth_cookies, clear_auth_cookies
from .jwks.client import JWKSClient
from .urls import generate_random_state, get_auth_url, get_logout_url
from .validation.token_validator import TokenValidator, TokenVerifier, UnverifiedTokenDecoder


@dataclass(frozen=True)
class TokenExchangeResult:
    token_data: TokenData
    user: Identity


class KeycloakAuth:
    """Authentication helper bound to one Keycloak realm and client."""

    def __init__(
        self,
        settings: KeycloakSettings,
        *,
        verifier: Optional[TokenVerifier] = None,
        key_store: Optional[JWKSClient] = None,
        token_client: Optional[TokenClient] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not settings.keycloak_url:
            raise MissingParameter("keycloak_url")
        if not settings.client_id:
            raise MissingParameter("client_id")

        self.settings = settings
        self.keycloak_url = settings.keycloak_url.rstrip("/")
        self.client_id = settings.client_id
        self.logger = get_logger("keycloak.auth")

        self.key_store = key_store
        if verifier is None:
            if settings.allow_unverified_decode:
                verifier = UnverifiedTokenDecoder(allow_unverified=True)
            else:
                if self.key_store is None:
                    self.key_store = JWKSClient.for_provider(
                        self.keycloak_url,
                        cache_ttl=settings.jwks_cache_ttl,
                        refresh_cooldown=settings.refresh_cooldown,
                        http_timeout=settings.http_timeout,
                        client=http_client,
                    )
                verifier = TokenValidator(
                    self.key_store,
                    issuer=settings.expected_issuer,
                    audience=settings.audience,
                    leeway=settings.leeway,
                    refresh_on_unknown_kid=settings.refresh_on_unknown_kid,
                )
        self.verifier = verifier

        self.token_client = token_client or TokenClient(
            self.keycloak_url,
            self.client_id,
            settings.client_secret,
            http_timeout=settings.http_timeout,
            client=http_client,
        )
        self.decision = AuthDecision(
            verifier,
            cookie_max_age=settings.cookie_max_age,
            secure_cookies=settings.secure_cookies,
        )

    async def authenticate(self, adapter: HttpAdapter) -> AuthOutcome:
        """Decide on the request behind ``adapter`` and apply any cookie directive."""
        outcome = await self.decision.decide(RequestCredentials.from_adapter(adapter))
        if isinstance(outcome, Authenticated) and outcome.persist is not None:
            adapter.set_cookie(outcome.persist)
        return outcome

    async def handle_token_exchange(
        self,
        code: str,
        redirect_uri: str,
        adapter: HttpAdapter,
    ) -> TokenExchangeResult:
        """Exchange a code, verify the access token and persist both cookies."""
        token_data = await self.token_client.exchange_code_for_tokens(code, redirect_uri)
        claims = await self.verifier.verify(token_data.access_token)
        user = Identity.from_claims(claims)

        for cookie in auth_cookies(
            token_data,
            secure=self.settings.secure_cookies,
            refresh_max_age=self.settings.refresh_cookie_max_age,
        ):
            adapter.set_cookie(cookie)

        self.logger.info("User logged in", user_id=user.id)
        return TokenExchangeResult(token_data=token_data, user=user)

    def logout(self, adapter: HttpAdapter) -> None:
        for cookie in clear_auth_cookies(secure=self.settings.secure_cookies):
            adapter.set_cookie(cookie)

    def get_auth_url(self, redirect_uri: str, **options) -> str:
        return get_auth_url(self.keycloak_url, self.client_id, redirect_uri, **options)

    def get_logout_url(self, redirect_uri: Optional[str] = None, id_token_hint: Optional[str] = None) -> str:
        return get_logout_url(self.keycloak_url, redirect_uri, id_token_hint)

    @staticmethod
    def generate_random_state(length: int = 32) -> str:
        return generate_random_state(length)

    async def check_health(self) -> str:
        if self.key_store is None:
            return "disabled"
        return await self.key_store.check_health()

    async def close(self) -> None:
        if self.key_store is not None:
            await self.key_store.close()
        await self.token_client.close()


def init_keycloak(settings: Optional[KeycloakSettings] = None, **kwargs) -> KeycloakAuth:
    """Create a :class:`KeycloakAuth`.

    Settings fields may be passed as keyword arguments instead of a
    settings object; they are layered over the ``KEYCLOAK_*`` environment.
    Missing ``keycloak_url`` or ``client_id`` raises ``MissingParameter``.
    """
    component_names = ("verifier", "key_store", "token_client", "http_client")
    components = {name: kwargs.pop(name) for name in component_names if name in kwargs}
    if settings is None:
        settings = get_settings(**kwargs)
    return KeycloakAuth(settings, **components)
