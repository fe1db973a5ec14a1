"""
Keycloak admin REST client and the demo realm provisioning.
"""

from keycloak_mcp.keycloak.admin import KeycloakAdminClient, KeycloakAdminError
from keycloak_mcp.keycloak.provisioning import (
    CURSOR_REDIRECT_URIS,
    REDIRECT_URI_PRESETS,
    VSCODE_REDIRECT_URIS,
    setup_keycloak,
)

__all__ = [
    "KeycloakAdminClient",
    "KeycloakAdminError",
    "CURSOR_REDIRECT_URIS",
    "VSCODE_REDIRECT_URIS",
    "REDIRECT_URI_PRESETS",
    "setup_keycloak",
]
