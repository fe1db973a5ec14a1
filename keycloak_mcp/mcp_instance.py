"""
MCP server instance with OAuth 2.1 authentication.

This module creates the MCP server instance configured with KeycloakAuthProvider.
Users authenticate against the Keycloak realm (authorization code + PKCE, or the
password grant for scripted tests); this server only verifies the bearer tokens.
"""

from fastmcp import FastMCP
from loguru import logger

from keycloak_mcp.auth import KeycloakAuthProvider
from keycloak_mcp.config import settings

SERVER_NAME = "mcp-oauth-keycloak-server"
SERVER_VERSION = "1.0.0"

# Tokens are verified against the realm JWKS; no scopes are required beyond a valid token
auth_provider = KeycloakAuthProvider(settings)

logger.debug(
    f"KeycloakAuthProvider configured: realm={settings.realm_url}, "
    f"client_id={settings.keycloak_client_id}"
)

# Create MCP server instance with OAuth authentication
mcp = FastMCP(
    name=SERVER_NAME,
    version=SERVER_VERSION,
    auth=auth_provider,
)
