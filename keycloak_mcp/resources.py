"""
MCP resources exposed by the demo server.
"""

import json

from keycloak_mcp.config import settings
from keycloak_mcp.mcp_instance import SERVER_VERSION, mcp

SERVER_INFO_URI = "mcp://server/info"


@mcp.resource(SERVER_INFO_URI, name="server-info", mime_type="application/json")
def server_info() -> str:
    """Describe this server and the identity provider protecting it."""
    return json.dumps(
        {
            "name": "MCP OAuth Demo Server",
            "version": SERVER_VERSION,
            "oauth": {
                "provider": "Keycloak",
                "realm": settings.keycloak_realm,
            },
        },
        indent=2,
    )
