"""
Application package for the Keycloak auth helper.

- app.jwks: Fetching and caching the realm's signing keys.
- app.validation: Token verification (signature, issuer, audience, expiry).
- app.domain: Per-request decision and cookie directives.
- app.adapters: Host framework adapters and the code-exchange client.
- app.keycloak: Facade wiring the pieces from settings.
- app.main: Example FastAPI application.

Design notes:
- Importing this package must not perform network calls. All IO happens
  in request handlers or explicit startup hooks.
- Use the shared/ utilities for config, logging and errors.
"""
