"""
Pytest configuration and fixtures for keycloak_mcp tests.

Sets up environment variables before any imports so the global settings
are deterministic regardless of the developer's shell.
"""

import os

# Set BEFORE any keycloak_mcp imports (config.settings is created at import time)
os.environ.setdefault("KEYCLOAK_URL", "http://keycloak.test:8080")
os.environ.setdefault("KEYCLOAK_REALM", "mcp-demo")
os.environ.setdefault("KEYCLOAK_CLIENT_ID", "mcp-server")
os.environ.setdefault("KEYCLOAK_PUBLIC_CLIENT_ID", "mcp-client")
os.environ.setdefault("MCP_SERVER_URL", "http://testserver")

import pytest  # noqa: E402
from fastmcp.server.auth.providers.jwt import RSAKeyPair  # noqa: E402

from keycloak_mcp import sessions  # noqa: E402
from keycloak_mcp.config import Settings  # noqa: E402

ISSUER = "http://keycloak.test:8080/realms/mcp-demo"


@pytest.fixture(scope="session")
def rsa_key_pair() -> RSAKeyPair:
    return RSAKeyPair.generate()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        keycloak_url="http://keycloak.test:8080",
        keycloak_realm="mcp-demo",
        keycloak_client_id="mcp-server",
        keycloak_public_client_id="mcp-client",
        mcp_server_url="http://testserver",
    )


@pytest.fixture
def make_token(rsa_key_pair):
    """Issue a realm-signed access token with Keycloak-shaped claims."""

    def _make(
        subject: str = "user-123",
        username: str = "testuser",
        audience="account",
        azp: str = "mcp-client",
        issuer: str = ISSUER,
        expires_in_seconds: int = 3600,
    ) -> str:
        return rsa_key_pair.create_token(
            subject=subject,
            issuer=issuer,
            audience=audience,
            expires_in_seconds=expires_in_seconds,
            additional_claims={"preferred_username": username, "azp": azp},
        )

    return _make


@pytest.fixture(autouse=True)
def clear_sessions():
    """Each test starts with an empty session registry."""
    sessions._SESSIONS.clear()
    yield
    sessions._SESSIONS.clear()
