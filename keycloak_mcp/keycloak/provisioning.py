"""
Keycloak layout for the MCP OAuth demo.

Creates (idempotently) the demo realm, the custom MCP scopes, a public
client for MCP clients (Claude Desktop, IDEs), a confidential client for
the MCP server, and a test user.
"""

from typing import Any, Dict, List, Optional

import httpx
from loguru import logger
from pydantic import BaseModel, Field

from keycloak_mcp.config import Settings
from keycloak_mcp.keycloak.admin import KeycloakAdminClient


# Keycloak admin API representations (camelCase on the wire)


class RealmSpec(BaseModel):
    """Realm to create."""

    realm: str
    enabled: bool = True
    display_name: str = Field(default="MCP Demo Realm", alias="displayName")
    registration_allowed: bool = Field(default=False, alias="registrationAllowed")
    login_with_email_allowed: bool = Field(default=True, alias="loginWithEmailAllowed")
    duplicate_emails_allowed: bool = Field(default=False, alias="duplicateEmailsAllowed")
    reset_password_allowed: bool = Field(default=True, alias="resetPasswordAllowed")
    edit_username_allowed: bool = Field(default=False, alias="editUsernameAllowed")
    brute_force_protected: bool = Field(default=True, alias="bruteForceProtected")

    class Config:
        populate_by_name = True

    def to_representation(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class ScopeSpec(BaseModel):
    """Custom client scope, included in the token's scope claim."""

    name: str
    description: str
    protocol: str = "openid-connect"
    attributes: Dict[str, str] = Field(
        default_factory=lambda: {
            "include.in.token.scope": "true",
            "display.on.consent.screen": "true",
        }
    )

    def to_representation(self) -> Dict[str, Any]:
        return self.model_dump()


class ClientSpec(BaseModel):
    """OAuth client (public or confidential)."""

    client_id: str = Field(alias="clientId")
    public_client: bool = Field(alias="publicClient")
    redirect_uris: List[str] = Field(default_factory=list, alias="redirectUris")
    web_origins: List[str] = Field(default_factory=list, alias="webOrigins")
    description: Optional[str] = None

    class Config:
        populate_by_name = True

    def to_representation(self) -> Dict[str, Any]:
        description = self.description or (
            "Public client for MCP clients (Claude Desktop, IDEs)"
            if self.public_client
            else "Confidential client for MCP server resource validation"
        )
        return {
            "clientId": self.client_id,
            "name": self.client_id,
            "description": description,
            "enabled": True,
            "publicClient": self.public_client,
            "directAccessGrantsEnabled": True,
            "standardFlowEnabled": True,
            "implicitFlowEnabled": False,
            "serviceAccountsEnabled": not self.public_client,
            "authorizationServicesEnabled": False,
            "redirectUris": self.redirect_uris,
            "webOrigins": self.web_origins,
            "protocol": "openid-connect",
            "attributes": {
                "pkce.code.challenge.method": "S256",
                "oauth2.device.authorization.grant.enabled": "false",
                "oidc.ciba.grant.enabled": "false",
            },
            "defaultClientScopes": ["openid", "profile", "email"],
            "optionalClientScopes": [],
        }


class UserSpec(BaseModel):
    """Test user with a non-temporary password."""

    username: str
    password: str
    first_name: str = Field(default="Test", alias="firstName")
    last_name: str = Field(default="User", alias="lastName")

    class Config:
        populate_by_name = True

    @property
    def email(self) -> str:
        return f"{self.username}@example.com"

    def to_representation(self) -> Dict[str, Any]:
        return {
            "username": self.username,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "enabled": True,
            "emailVerified": True,
            "credentials": [
                {"type": "password", "value": self.password, "temporary": False},
            ],
        }


# Redirect URIs


PUBLIC_CLIENT_REDIRECT_URIS = [
    "http://localhost:*",
    "http://127.0.0.1:*",
    "https://localhost:*",
    "https://127.0.0.1:*",
    # Common callback paths for MCP clients
    "http://localhost:3000/callback",
    "http://127.0.0.1:3000/callback",
    "http://localhost:8888/callback",
    "http://127.0.0.1:8888/callback",
    "cursor://anysphere.cursor-mcp/oauth/callback",
]
PUBLIC_CLIENT_WEB_ORIGINS = ["http://localhost:*", "http://127.0.0.1:*"]

CURSOR_REDIRECT_URIS = [
    "http://localhost:*",
    "http://127.0.0.1:*",
    "https://localhost:*",
    "https://127.0.0.1:*",
    "https://vscode.dev/*",
    "https://vscode.dev/redirect",
    "cursor://anysphere.cursor-mcp/oauth/callback",
]
CURSOR_WEB_ORIGINS = ["*"]

VSCODE_REDIRECT_URIS = [
    "http://localhost:*",
    "http://127.0.0.1:*",
    "https://localhost:*",
    "https://127.0.0.1:*",
    "https://vscode.dev/*",
    "https://vscode.dev/redirect",
    "http://127.0.0.1:33418",
    "http://127.0.0.1:33418/*",
    "cursor://anysphere.cursor-mcp/oauth/callback",
    "vscode://anysphere.mcp/callback",
]
VSCODE_WEB_ORIGINS = ["http://localhost:*", "http://127.0.0.1:*", "https://vscode.dev"]

# preset name -> (redirect URIs, web origins)
REDIRECT_URI_PRESETS = {
    "cursor": (CURSOR_REDIRECT_URIS, CURSOR_WEB_ORIGINS),
    "vscode": (VSCODE_REDIRECT_URIS, VSCODE_WEB_ORIGINS),
}

MCP_SCOPES = [
    ScopeSpec(name="mcp:read", description="Read access to MCP resources"),
    ScopeSpec(name="mcp:write", description="Write access to MCP resources"),
]


def build_demo_layout(settings: Settings) -> Dict[str, Any]:
    """Realm, scopes, clients and user for the demo, named from settings."""
    return {
        "realm": RealmSpec(realm=settings.keycloak_realm),
        "scopes": list(MCP_SCOPES),
        "clients": [
            ClientSpec(
                client_id=settings.keycloak_public_client_id,
                public_client=True,
                redirect_uris=PUBLIC_CLIENT_REDIRECT_URIS,
                web_origins=PUBLIC_CLIENT_WEB_ORIGINS,
            ),
            ClientSpec(client_id=settings.keycloak_client_id, public_client=False),
        ],
        "user": UserSpec(
            username=settings.test_user_username,
            password=settings.test_user_password,
        ),
    }


def log_setup_summary(settings: Settings) -> None:
    logger.success("✅ Keycloak setup completed successfully!")
    logger.info("Configuration Summary:")
    logger.info("----------------------")
    logger.info(f"Realm: {settings.keycloak_realm}")
    logger.info(f"Public Client ID: {settings.keycloak_public_client_id}")
    logger.info(f"Server Client ID: {settings.keycloak_client_id}")
    logger.info(f"Test User: {settings.test_user_username} / {settings.test_user_password}")
    logger.info(f"OpenID Configuration URL: {settings.openid_configuration_url}")
    logger.info(f"Authorization URL: {settings.authorization_url}")
    logger.info(f"Token URL: {settings.token_url}")


async def setup_keycloak(
    settings: Settings,
    client: Optional[httpx.AsyncClient] = None,
    *,
    ready_attempts: int = 30,
    ready_interval: float = 2.0,
) -> None:
    """
    Provision the demo realm end to end.

    Order: wait for Keycloak, admin token, realm, scopes, public client,
    confidential client, test user.

    Raises:
        KeycloakAdminError: If Keycloak never becomes ready or a required step fails
    """
    logger.info("🔧 Keycloak Setup for MCP OAuth Demo")
    logger.info(f"Keycloak URL: {settings.keycloak_url}")
    logger.info(f"Realm: {settings.keycloak_realm}")

    layout = build_demo_layout(settings)
    realm = settings.keycloak_realm

    async with KeycloakAdminClient(settings.keycloak_url, client=client) as admin:
        await admin.wait_until_ready(attempts=ready_attempts, interval=ready_interval)
        await admin.authenticate(settings.keycloak_admin, settings.keycloak_admin_password)

        await admin.ensure_realm(layout["realm"].to_representation())
        await admin.ensure_client_scopes(realm, [s.to_representation() for s in layout["scopes"]])
        for client_spec in layout["clients"]:
            await admin.ensure_client(realm, client_spec.to_representation())
        await admin.ensure_user(realm, layout["user"].to_representation())

    log_setup_summary(settings)
