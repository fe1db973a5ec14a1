"""
MCP tools for the Keycloak demo server.

- greeting: greet (static greeting) and whoami (session + token identity)
"""
