"""
Token validation for Keycloak-issued JWTs.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Union

from jose import jws, jwt
from jose.exceptions import JOSEError, JWTError

from shared.errors import (
    ClaimMismatch,
    ConfigurationError,
    MalformedToken,
    SignatureInvalid,
    UnknownKeyId,
)
from shared.logging import get_logger
from ..jwks.client import JWKSClient

# Asymmetric algorithms only; a symmetric alg here would let a public key
# be used as an HMAC secret.
SUPPORTED_ALGORITHMS = frozenset({
    "RS256", "RS384", "RS512",
    "PS256", "PS384", "PS512",
    "ES256", "ES384", "ES512",
})


@dataclass(frozen=True)
class Claims:
    """Decoded token payload.

    ``verified`` is True only for claims produced by :class:`TokenValidator`
    after the signature, issuer, audience and expiry checks all passed.
    """

    subject: Optional[str]
    email: Optional[str]
    name: Optional[str]
    preferred_username: Optional[str]
    issuer: Optional[str]
    audience: Union[str, List[str], None]
    expires_at: Optional[float]
    payload: Mapping[str, Any] = field(default_factory=dict)
    verified: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, verified: bool) -> "Claims":
        return cls(
            subject=payload.get("sub"),
            email=payload.get("email"),
            name=payload.get("name"),
            preferred_username=payload.get("preferred_username"),
            issuer=payload.get("iss"),
            audience=payload.get("aud"),
            expires_at=payload.get("exp"),
            payload=dict(payload),
            verified=verified,
        )


class TokenVerifier(Protocol):
    """Anything that turns a raw token into claims or raises VerificationError."""

    async def verify(self, token: str) -> Claims:
        ...


class TokenValidator:
    """Verifies JWTs against the provider's published signing keys."""

    def __init__(
        self,
        key_store: JWKSClient,
        issuer: Optional[str],
        audience: Optional[str] = "account",
        *,
        leeway: float = 0,
        refresh_on_unknown_kid: bool = True,
        default_algorithm: str = "RS256",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.key_store = key_store
        self.issuer = issuer
        self.audience = audience
        self.leeway = leeway
        self.refresh_on_unknown_kid = refresh_on_unknown_kid
        self.default_algorithm = default_algorithm
        self._clock = clock
        self.logger = get_logger("keycloak.validator")

    async def verify(self, token: str) -> Claims:
        """Verify a JWT and return its claims.

        Raises a :class:`~shared.errors.VerificationError` subclass naming
        the failed check: MalformedToken, UnknownKeyId, SignatureInvalid,
        ClaimMismatch or FetchError.
        """
        kid = self._parse_header(token)

        key_set = await self.key_store.get_keys()
        key_data = key_set.get(kid)
        if key_data is None and self.refresh_on_unknown_kid:
            # Keys may have been rotated since the last fetch
            self.logger.info("Unknown key id, refreshing JWKS", kid=kid)
            key_set = await self.key_store.refresh(stale=key_set)
            key_data = key_set.get(kid)

        if key_data is None:
            raise UnknownKeyId(kid)

        payload = self._verify_signature(token, key_data)
        self._validate_claims(payload)

        self.logger.debug("Token verified successfully", kid=kid)
        return Claims.from_payload(payload, verified=True)

    def _parse_header(self, token: str) -> str:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise MalformedToken("Token header could not be decoded") from exc

        if not isinstance(header.get("alg"), str):
            raise MalformedToken("Token header missing algorithm (alg)")

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise MalformedToken("Token header missing key id (kid)")
        return kid

    def _verify_signature(self, token: str, key_data: Mapping[str, Any]) -> Dict[str, Any]:
        # The published key decides the algorithm, never the token header
        algorithm = key_data.get("alg") or self.default_algorithm
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise SignatureInvalid(
                "Signing key uses an unsupported algorithm",
                details={"alg": algorithm}
            )

        try:
            signed_payload = jws.verify(token, dict(key_data), algorithms=[algorithm])
        except JOSEError as exc:
            raise SignatureInvalid(details={"alg": algorithm}) from exc

        try:
            payload = json.loads(signed_payload)
        except ValueError as exc:
            raise MalformedToken("Token payload is not valid JSON") from exc

        if not isinstance(payload, dict):
            raise MalformedToken("Token payload is not a JSON object")
        return payload

    def _validate_claims(self, payload: Dict[str, Any]) -> None:
        now = self._clock()

        exp = _numeric_claim(payload, "exp", "expiry")
        if exp is None:
            raise ClaimMismatch("expiry", "Token has no expiry")
        if exp <= now - self.leeway:
            raise ClaimMismatch("expiry", "Token has expired")

        nbf = _numeric_claim(payload, "nbf", "not_before")
        if nbf is not None and nbf > now + self.leeway:
            raise ClaimMismatch("not_before", "Token is not valid yet")

        if self.issuer is not None and payload.get("iss") != self.issuer:
            raise ClaimMismatch("issuer")

        if self.audience is not None:
            aud = payload.get("aud")
            audiences = [aud] if isinstance(aud, str) else aud if isinstance(aud, list) else []
            if self.audience not in audiences:
                raise ClaimMismatch("audience")


def _numeric_claim(payload: Mapping[str, Any], name: str, claim: str) -> Optional[float]:
    value = payload.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ClaimMismatch(claim, f"Token {name} claim is not a number")
    return float(value)


def decode(token: str) -> Claims:
    """Decode a token's claims WITHOUT checking its signature or claims."""
    try:
        payload = jwt.get_unverified_claims(token)
    except JWTError as exc:
        raise MalformedToken("Token claims could not be decoded") from exc
    return Claims.from_payload(payload, verified=False)


class UnverifiedTokenDecoder:
    """Accepts any well-formed token. For deployments without a key server.

    Construction requires ``allow_unverified=True`` so the choice is
    explicit at the call site and in configuration.
    """

    def __init__(self, *, allow_unverified: bool = False) -> None:
        if not allow_unverified:
            raise ConfigurationError(
                "UNVERIFIED_DECODE_DISABLED",
                "Unverified token decoding must be enabled explicitly"
            )
        self.logger = get_logger("keycloak.validator")
        self.logger.warning("Token signatures will NOT be verified")

    async def verify(self, token: str) -> Claims:
        return decode(token)
