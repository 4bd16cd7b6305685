"""
Keycloak authentication helper.

Verifies Keycloak-issued tokens against the realm's published signing
keys, decides per request between the ``auth_token`` cookie and a bearer
header, and handles the authorization-code exchange and auth cookies.
"""

from .app.keycloak import KeycloakAuth, TokenExchangeResult, init_keycloak
from .app.urls import generate_random_state, get_auth_url, get_logout_url

__all__ = [
    "KeycloakAuth",
    "TokenExchangeResult",
    "generate_random_state",
    "get_auth_url",
    "get_logout_url",
    "init_keycloak",
]
