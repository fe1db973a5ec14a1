"""
Keycloak bearer-token authentication for the MCP endpoint.

Tokens are issued and signed by Keycloak. This module only verifies them:
signature against the realm JWKS, issuer pinned to the realm URL, expiry,
then a lenient audience check (Keycloak puts "account" in aud and the
requesting client in azp, so a strict aud match would reject the public
client's tokens).
"""

from typing import Any, Optional

from fastmcp.server.auth import AccessToken, RemoteAuthProvider
from fastmcp.server.auth.providers.jwt import JWTVerifier
from loguru import logger
from pydantic import AnyHttpUrl
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from keycloak_mcp.config import Settings

PROTECTED_RESOURCE_PATH = "/.well-known/oauth-protected-resource"
MCP_AUTHORIZATION_DOCS = "https://modelcontextprotocol.io/specification/draft/basic/authorization"
SUPPORTED_SCOPES = ["openid", "profile", "email"]


def audience_matches(claims: dict[str, Any], client_id: str) -> bool:
    """
    Check whether a token was issued for this resource server.

    Accepts the token when its audience contains the server client ID or
    Keycloak's default "account" audience, or when the authorized party
    (azp) is the server client.

    Args:
        claims: Decoded JWT claims
        client_id: Keycloak client ID of this resource server

    Returns:
        True if the audience/azp claims name this server
    """
    aud = claims.get("aud")
    audiences = aud if isinstance(aud, list) else [aud]
    return (
        client_id in audiences
        or "account" in audiences
        or claims.get("azp") == client_id
    )


class KeycloakTokenVerifier(JWTVerifier):
    """JWT verifier for Keycloak access tokens with a lenient audience policy."""

    def __init__(self, *, client_id: str, strict_audience: bool = False, **kwargs: Any):
        kwargs.setdefault("algorithm", "RS256")
        super().__init__(**kwargs)
        self.client_id = client_id
        self.strict_audience = strict_audience

    async def verify_token(self, token: str) -> Optional[AccessToken]:
        access_token = await super().verify_token(token)
        if access_token is None:
            logger.info("[AUTH] Token verification failed")
            return None

        claims = access_token.claims or {}
        if not audience_matches(claims, self.client_id):
            logger.warning(
                f"[AUTH] Token audience/azp mismatch: aud={claims.get('aud')}, "
                f"azp={claims.get('azp')}, expected={self.client_id}"
            )
            if self.strict_audience:
                return None

        logger.debug(f"[AUTH] Token accepted for subject {claims.get('sub')}")
        return access_token


def build_protected_resource_metadata(settings: Settings) -> dict[str, Any]:
    """Build the RFC 9728 protected resource metadata document."""
    return {
        "resource": settings.mcp_url,
        "authorization_servers": [settings.realm_url],
        "scopes_supported": list(SUPPORTED_SCOPES),
        "bearer_methods_supported": ["header"],
        "resource_documentation": MCP_AUTHORIZATION_DOCS,
    }


class KeycloakAuthProvider(RemoteAuthProvider):
    """
    Resource-server auth provider backed by a Keycloak realm.

    Keycloak is advertised as the authorization server; clients authenticate
    against it directly. This server only verifies the resulting tokens.

    Example:
        ```python
        from fastmcp import FastMCP

        mcp = FastMCP("demo", auth=KeycloakAuthProvider(settings))
        ```
    """

    def __init__(
        self,
        settings: Settings,
        *,
        token_verifier: Optional[JWTVerifier] = None,
    ):
        """
        Initialize the provider.

        Args:
            settings: Application settings (realm URL, client ID, public URL)
            token_verifier: Optional verifier override. If None, verifies
                RS256 tokens against the realm's remote JWKS.
        """
        self.settings = settings

        if token_verifier is None:
            token_verifier = KeycloakTokenVerifier(
                client_id=settings.keycloak_client_id,
                strict_audience=settings.strict_audience,
                jwks_uri=settings.jwks_url,
                issuer=settings.realm_url,
            )

        super().__init__(
            token_verifier=token_verifier,
            authorization_servers=[AnyHttpUrl(settings.realm_url)],
            base_url=settings.mcp_server_url,
        )

    def get_routes(self, mcp_path: Optional[str] = None) -> list[Route]:
        """
        Get OAuth routes with one protected resource metadata document.

        The same document is served at the root location and at the
        path-scoped location (/.well-known/oauth-protected-resource/mcp) that
        401 challenges point to, replacing the inherited metadata routes.
        """
        scoped_path = f"{PROTECTED_RESOURCE_PATH}{(mcp_path or '').rstrip('/')}"
        metadata_paths = {PROTECTED_RESOURCE_PATH, scoped_path}

        routes = [
            route
            for route in super().get_routes(mcp_path)
            if getattr(route, "path", None) not in metadata_paths
        ]

        async def protected_resource_metadata(request: Request) -> JSONResponse:
            return JSONResponse(build_protected_resource_metadata(self.settings))

        for path in sorted(metadata_paths):
            routes.append(Route(path, endpoint=protected_resource_metadata, methods=["GET"]))
        return routes
