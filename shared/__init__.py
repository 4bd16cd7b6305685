"""
Shared utilities for the Keycloak auth helper.

- config: Settings via pydantic-settings
- logging: Structured logging with request correlation
- errors: Error taxonomy and response envelope
- circuit_breaker: Protection for calls to the identity provider
- test_helpers: RSA keys, JWKS documents and signed tokens for tests

Do not import from keycloak_auth into shared/.
"""
