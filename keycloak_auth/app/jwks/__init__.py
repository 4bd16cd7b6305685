"""
JWKS client package.

Retrieves and caches the JSON Web Key Set used to verify token
signatures.

Key points:
- Fetches have an enforced timeout and sit behind a circuit breaker.
- Keys are cached for a fixed TTL and replaced wholesale on refresh.
- A failed refresh is an error; expired keys are never reused.
"""

from .client import JWKS_PATH, CacheState, JWKSClient, SigningKeySet

__all__ = ["JWKS_PATH", "CacheState", "JWKSClient", "SigningKeySet"]
