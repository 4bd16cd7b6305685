"""
Adapters between the helper and the outside world: host web frameworks
and the Keycloak token endpoint.
"""
