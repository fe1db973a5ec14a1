"""
Demo tools exposed by the OAuth-protected MCP server.

Both tools return static text; their purpose is to prove that an
authenticated session reaches tool dispatch.
"""

from typing import Annotated

from fastmcp import Context
from fastmcp.server.dependencies import get_access_token
from loguru import logger
from pydantic import Field

from keycloak_mcp.mcp_instance import mcp


@mcp.tool(name="greet", description="Greets the user by name")
def greet(name: Annotated[str, Field(description="The name to greet")]) -> str:
    logger.info(f"[TOOL] greet invoked, name length: {len(name)}")
    return f"Hello, {name}! Welcome to the OAuth-protected MCP server."


@mcp.tool(name="whoami", description="Returns information about the authenticated user")
def whoami(ctx: Context) -> str:
    """
    Describe the caller's session and identity.

    The user line is present only when the request carried a verified
    bearer token (always the case over HTTP; absent for in-process clients).
    """
    lines = [f"Session ID: {ctx.session_id}"]

    token = get_access_token()
    if token is not None:
        claims = token.claims or {}
        user = claims.get("preferred_username") or claims.get("sub") or token.client_id
        lines.append(f"User: {user}")

    lines.append("This request was authenticated via OAuth with Keycloak.")
    return "\n".join(lines)
