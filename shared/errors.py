"""
Shared error taxonomy for the Keycloak auth helper.

Verification failures keep their specific kind all the way up to the
request decision, which collapses them into a single user-visible
category. Configuration errors are raised immediately and never turned
into per-request outcomes.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class KeycloakAuthError(Exception):
    """Base exception for the auth helper."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class VerificationError(KeycloakAuthError):
    """A credential could not be verified."""


class MalformedToken(VerificationError):
    """Token is not a parsable JWS or its header lacks a key id."""

    def __init__(self, message: str = "Malformed token", details: Optional[Dict[str, Any]] = None):
        super().__init__("MALFORMED_TOKEN", message, details)


class UnknownKeyId(VerificationError):
    """Token was signed by a key the provider does not publish."""

    def __init__(self, kid: str, message: str = "Signing key not found"):
        self.kid = kid
        super().__init__("UNKNOWN_KEY_ID", message, {"kid": kid})


class SignatureInvalid(VerificationError):
    """Signature did not validate against the published key."""

    def __init__(self, message: str = "Token signature is invalid", details: Optional[Dict[str, Any]] = None):
        super().__init__("SIGNATURE_INVALID", message, details)


class ClaimMismatch(VerificationError):
    """A registered claim (issuer, audience, expiry) failed validation."""

    def __init__(self, claim: str, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.claim = claim
        super().__init__(
            "CLAIM_MISMATCH",
            message or f"Token {claim} claim is invalid",
            {"claim": claim, **(details or {})}
        )


class FetchError(VerificationError):
    """Signing keys could not be retrieved from the provider."""

    def __init__(self, message: str = "Failed to fetch signing keys", details: Optional[Dict[str, Any]] = None):
        super().__init__("FETCH_ERROR", message, details)


class ConfigurationError(KeycloakAuthError):
    """The helper is misconfigured."""


class MissingParameter(ConfigurationError):
    """A required configuration value or argument is absent."""

    def __init__(self, parameter: str):
        self.parameter = parameter
        super().__init__("MISSING_PARAMETER", f"{parameter} is required", {"parameter": parameter})


class MissingClientSecret(ConfigurationError):
    """Code exchange attempted without a client secret."""

    def __init__(self, message: str = "Missing client secret configuration"):
        super().__init__("MISSING_CLIENT_SECRET", message)


class TokenExchangeError(KeycloakAuthError):
    """The provider refused or failed the authorization-code exchange."""

    def __init__(self, message: str = "Token exchange failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("TOKEN_EXCHANGE_ERROR", message, details)


class AuthenticationRejected(KeycloakAuthError):
    """Raised by host adapters when a request is rejected.

    Carries only the generic, user-visible message for the rejection
    category; the underlying verification error is not attached.
    """

    def __init__(self, code: str, message: str, status_code: int = 401):
        self.status_code = status_code
        super().__init__(code, message)
