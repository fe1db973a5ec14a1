"""
Configuration management for the Keycloak-protected MCP server.

Loads settings from environment variables (and an optional .env file).
Variable names match the demo harness: MCP_PORT, MCP_SERVER_URL,
KEYCLOAK_URL, KEYCLOAK_REALM, KEYCLOAK_CLIENT_ID, ...
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # MCP resource server
    mcp_host: str = "0.0.0.0"
    mcp_port: int = 3001
    # Public URL of this server (used in protected resource metadata and 401 challenges)
    mcp_server_url: str = "http://localhost:3001"

    # Keycloak (authorization server)
    keycloak_url: str = "http://localhost:8080"
    keycloak_realm: str = "mcp-demo"
    # Confidential client representing this resource server (audience / azp checks)
    keycloak_client_id: str = "mcp-server"
    # Public client used by MCP clients (Cursor, VS Code, the test drivers)
    keycloak_public_client_id: str = "mcp-client"

    # Keycloak admin credentials (master realm, admin-cli) for provisioning
    keycloak_admin: str = "admin"
    keycloak_admin_password: str = "admin"

    # Demo user created in the realm
    test_user_username: str = "testuser"
    test_user_password: str = "testpassword"

    # Reject tokens whose aud/azp do not name this server instead of only logging
    strict_audience: bool = False

    # Loopback redirect target for the browser PKCE flow
    callback_host: str = "127.0.0.1"
    callback_port: int = 3000
    callback_path: str = "/callback"

    # Logging
    log_level: str = "INFO"

    # Uvicorn graceful shutdown window (seconds)
    shutdown_timeout_seconds: int = 7

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("mcp_server_url", "keycloak_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def realm_url(self) -> str:
        """Issuer URL of the realm (also the authorization server identifier)."""
        return f"{self.keycloak_url}/realms/{self.keycloak_realm}"

    @property
    def openid_configuration_url(self) -> str:
        return f"{self.realm_url}/.well-known/openid-configuration"

    @property
    def jwks_url(self) -> str:
        return f"{self.realm_url}/protocol/openid-connect/certs"

    @property
    def authorization_url(self) -> str:
        return f"{self.realm_url}/protocol/openid-connect/auth"

    @property
    def token_url(self) -> str:
        return f"{self.realm_url}/protocol/openid-connect/token"

    @property
    def admin_token_url(self) -> str:
        return f"{self.keycloak_url}/realms/master/protocol/openid-connect/token"

    @property
    def mcp_url(self) -> str:
        return f"{self.mcp_server_url}/mcp"

    @property
    def resource_metadata_url(self) -> str:
        return f"{self.mcp_server_url}/.well-known/oauth-protected-resource"

    @property
    def mcp_resource_metadata_url(self) -> str:
        """RFC 9728 path-scoped metadata URL for the /mcp resource (used in 401 challenges)."""
        return f"{self.resource_metadata_url}/mcp"

    @property
    def callback_url(self) -> str:
        return f"http://{self.callback_host}:{self.callback_port}{self.callback_path}"


# Global settings instance
settings = Settings()
