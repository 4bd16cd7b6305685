"""
Token validation package.

Validates JWTs issued by the upstream identity provider: structure,
signature against the published key, expiry, audience and issuer. Each
failed check raises its own error kind.
"""

from .token_validator import Claims, TokenValidator, TokenVerifier, UnverifiedTokenDecoder, decode

__all__ = ["Claims", "TokenValidator", "TokenVerifier", "UnverifiedTokenDecoder", "decode"]
