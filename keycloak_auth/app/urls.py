"""
Login and logout URL builders for the Keycloak OpenID Connect endpoints.
"""

import secrets
import string
from typing import Optional
from urllib.parse import urlencode

from shared.errors import MissingParameter

STATE_ALPHABET = string.ascii_letters + string.digits


def get_auth_url(
    keycloak_url: str,
    client_id: str,
    redirect_uri: str,
    *,
    scope: str = "openid",
    response_type: str = "code",
    state: Optional[str] = None,
    prompt: Optional[str] = None,
) -> str:
    """Build the authorization URL that starts the login flow."""
    if not keycloak_url:
        raise MissingParameter("keycloak_url")
    if not client_id:
        raise MissingParameter("client_id")
    if not redirect_uri:
        raise MissingParameter("redirect_uri")

    params = [
        ("client_id", client_id),
        ("redirect_uri", redirect_uri),
        ("response_type", response_type),
        ("scope", scope),
    ]
    if state:
        params.append(("state", state))
    if prompt:
        params.append(("prompt", prompt))

    return f"{keycloak_url.rstrip('/')}/protocol/openid-connect/auth?{urlencode(params)}"


def get_logout_url(
    keycloak_url: str,
    redirect_uri: Optional[str] = None,
    id_token_hint: Optional[str] = None,
) -> str:
    """Build the end-session URL."""
    if not keycloak_url:
        raise MissingParameter("keycloak_url")

    params = []
    if redirect_uri:
        params.append(("redirect_uri", redirect_uri))
    if id_token_hint:
        params.append(("id_token_hint", id_token_hint))

    url = f"{keycloak_url.rstrip('/')}/protocol/openid-connect/logout"
    return f"{url}?{urlencode(params)}" if params else url


def generate_random_state(length: int = 32) -> str:
    """Random alphanumeric value for the OAuth ``state`` parameter."""
    return "".join(secrets.choice(STATE_ALPHABET) for _ in range(length))
