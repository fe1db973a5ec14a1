"""
MCP prompts exposed by the demo server.
"""

from keycloak_mcp.mcp_instance import mcp


@mcp.prompt(name="oauth-test", description="A test prompt for the OAuth-protected server")
def oauth_test() -> str:
    return (
        "You are connected to an OAuth-protected MCP server using Keycloak. "
        "The connection is secure."
    )
