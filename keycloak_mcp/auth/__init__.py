"""
Authentication module for the Keycloak-protected MCP server.

Bearer tokens are issued by Keycloak and verified here against the realm JWKS.
"""

from keycloak_mcp.auth.jwks import JWKSUnavailableError, probe_jwks
from keycloak_mcp.auth.provider import (
    KeycloakAuthProvider,
    KeycloakTokenVerifier,
    audience_matches,
    build_protected_resource_metadata,
)

__all__ = [
    "JWKSUnavailableError",
    "probe_jwks",
    "KeycloakAuthProvider",
    "KeycloakTokenVerifier",
    "audience_matches",
    "build_protected_resource_metadata",
]
