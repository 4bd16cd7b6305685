"""
Per-request authentication decision.

Given the credentials found on a request, picks the candidate token,
verifies it and produces an outcome. Reading credentials and applying the
outcome is left to the host adapter, so the decision itself runs without
an HTTP server.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from shared.errors import VerificationError
from shared.logging import get_logger
from ..adapters.http import HttpAdapter, bearer_token
from ..validation.token_validator import Claims, TokenVerifier
from .cookies import AUTH_COOKIE, DEFAULT_AUTH_COOKIE_MAX_AGE, CookieDirective, auth_cookie

PROVIDER_SOURCE = "keycloak"


class RejectionReason(Enum):
    """User-visible rejection categories."""

    MISSING_CREDENTIAL = "AUTHENTICATION_REQUIRED"
    INVALID_CREDENTIAL = "AUTHENTICATION_FAILED"

    @property
    def message(self) -> str:
        if self is RejectionReason.MISSING_CREDENTIAL:
            return "Authentication required"
        return "Authentication failed"


class TokenSource(Enum):
    COOKIE = "cookie"
    HEADER = "header"


@dataclass(frozen=True)
class RequestCredentials:
    """Tokens found on a request; empty values count as absent."""

    cookie_token: Optional[str] = None
    bearer_token: Optional[str] = None

    @classmethod
    def from_adapter(cls, adapter: HttpAdapter) -> "RequestCredentials":
        return cls(
            cookie_token=adapter.get_cookie(AUTH_COOKIE) or None,
            bearer_token=bearer_token(adapter.get_header("Authorization")),
        )

    def candidate(self) -> Optional[Tuple[str, TokenSource]]:
        """Return ``(token, source)``; the cookie always wins over the header."""
        if self.cookie_token:
            return self.cookie_token, TokenSource.COOKIE
        if self.bearer_token:
            return self.bearer_token, TokenSource.HEADER
        return None


@dataclass(frozen=True)
class Identity:
    """Normalized user record exposed to the application."""

    id: Optional[str]
    email: Optional[str]
    name: Optional[str]
    preferred_username: Optional[str]
    source: str = PROVIDER_SOURCE

    @classmethod
    def from_claims(cls, claims: Claims, source: str = PROVIDER_SOURCE) -> "Identity":
        return cls(
            id=claims.subject,
            email=claims.email,
            name=claims.name,
            preferred_username=claims.preferred_username,
            source=source,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "preferred_username": self.preferred_username,
            "source": self.source,
        }


@dataclass(frozen=True)
class Authenticated:
    identity: Identity
    persist: Optional[CookieDirective] = None
    status_code: int = 200


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason
    # Internal error code for logs; never sent to the client
    cause: Optional[str] = None
    status_code: int = 401

    @property
    def message(self) -> str:
        return self.reason.message

    def body(self) -> Dict[str, str]:
        return {"error": self.message}


AuthOutcome = Union[Authenticated, Rejected]


class AuthDecision:
    """Decides whether a request is authenticated."""

    def __init__(
        self,
        verifier: TokenVerifier,
        *,
        cookie_max_age: int = DEFAULT_AUTH_COOKIE_MAX_AGE,
        secure_cookies: bool = False,
        source: str = PROVIDER_SOURCE,
    ):
        self.verifier = verifier
        self.cookie_max_age = cookie_max_age
        self.secure_cookies = secure_cookies
        self.source = source
        self.logger = get_logger("keycloak.auth_decision")

    async def decide(self, credentials: RequestCredentials) -> AuthOutcome:
        candidate = credentials.candidate()
        if candidate is None:
            self.logger.info("Request has no credential")
            return Rejected(RejectionReason.MISSING_CREDENTIAL)

        token, source = candidate
        try:
            claims = await self.verifier.verify(token)
        except VerificationError as e:
            self.logger.warning(
                "Token verification failed",
                code=e.code,
                error=e.message,
                token_source=source.value
            )
            return Rejected(RejectionReason.INVALID_CREDENTIAL, cause=e.code)

        identity = Identity.from_claims(claims, source=self.source)

        persist = None
        if source is TokenSource.HEADER:
            persist = auth_cookie(token, max_age=self.cookie_max_age, secure=self.secure_cookies)

        self.logger.info(
            "Request authenticated",
            user_id=identity.id,
            token_source=source.value
        )
        return Authenticated(identity=identity, persist=persist)
