"""
Shared configuration management for the Keycloak auth helper.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class KeycloakSettings(BaseSettings):
    """Provider, cache and cookie settings.

    Values are read from ``KEYCLOAK_*`` environment variables or a
    ``.env`` file; keyword arguments take precedence.
    """

    model_config = SettingsConfigDict(
        env_prefix="KEYCLOAK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Provider (base URL includes the realm path, e.g. https://idp/realms/r)
    keycloak_url: str = Field(default="")
    client_id: str = Field(default="")
    client_secret: Optional[str] = Field(default=None)

    # Token validation
    audience: Optional[str] = Field(default="account")
    issuer: Optional[str] = Field(default=None)
    leeway: int = Field(default=0, ge=0)
    refresh_on_unknown_kid: bool = Field(default=True)
    allow_unverified_decode: bool = Field(default=False)

    # Key cache
    jwks_cache_ttl: int = Field(default=3600, gt=0)
    refresh_cooldown: float = Field(default=30.0, ge=0)
    http_timeout: float = Field(default=10.0, gt=0)

    # Cookies
    cookie_max_age: int = Field(default=3600, ge=0)
    refresh_cookie_max_age: int = Field(default=30 * 24 * 60 * 60, ge=0)

    # Demo application
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    @property
    def secure_cookies(self) -> bool:
        """Cookies carry the Secure attribute only in production."""
        return self.env.lower() == "production"

    @property
    def expected_issuer(self) -> str:
        return (self.issuer or self.keycloak_url).rstrip("/")


def get_settings(**overrides) -> KeycloakSettings:
    """Load settings from the environment with explicit overrides."""
    return KeycloakSettings(**overrides)
