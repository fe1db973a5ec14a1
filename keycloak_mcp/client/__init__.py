"""
Client-side drivers for the OAuth-protected MCP server.

- pkce / oauth / callback: authorization code + PKCE and password grants
- mcp_session: raw JSON-RPC over streamable HTTP with a bearer token
- flows: the smoke test and the browser login test
"""
