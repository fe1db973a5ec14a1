"""
Async client for the Keycloak admin REST API.

Covers only what the demo needs: waiting for Keycloak to come up, obtaining
an admin token, and create-if-absent calls for realms, client scopes,
clients and users. Every ensure_* call is idempotent.
"""

import asyncio
from typing import Any, Optional

import httpx
from loguru import logger

from keycloak_mcp.client.oauth import OAuthError, fetch_admin_token


class KeycloakAdminError(Exception):
    """Raised when a Keycloak admin API call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class KeycloakAdminClient:
    """
    Keycloak admin REST client.

    Usage:
        async with KeycloakAdminClient("http://localhost:8080") as admin:
            await admin.authenticate("admin", "admin")
            await admin.ensure_realm(realm_spec)
    """

    def __init__(
        self,
        base_url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        """
        Initialize admin client.

        Args:
            base_url: Keycloak base URL (e.g., http://localhost:8080)
            client: Optional httpx client (tests inject a MockTransport-backed client)
            timeout: HTTP request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)
        self._token: Optional[str] = None

    async def __aenter__(self) -> "KeycloakAdminClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def token(self) -> Optional[str]:
        return self._token

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _headers(self) -> dict[str, str]:
        if not self._token:
            raise KeycloakAdminError("Not authenticated. Call authenticate() first.")
        return {"Authorization": f"Bearer {self._token}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, self._url(path), headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise KeycloakAdminError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _raise_for(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        raise KeycloakAdminError(
            f"Failed to {action}: {response.status_code} {response.text}",
            status_code=response.status_code,
            body=response.text,
        )

    # ------------------------------------------------------------------
    # Readiness and authentication
    # ------------------------------------------------------------------

    async def wait_until_ready(self, attempts: int = 30, interval: float = 2.0) -> None:
        """
        Poll the master realm endpoint until Keycloak answers.

        Raises:
            KeycloakAdminError: If Keycloak is not ready after all attempts
        """
        logger.info("Waiting for Keycloak to be ready...")

        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.get(self._url("/realms/master"))
                if response.is_success:
                    logger.info("Keycloak is ready!")
                    return
            except httpx.HTTPError:
                # Keycloak not ready yet
                pass

            logger.debug(f"Keycloak not ready (attempt {attempt}/{attempts})")
            if attempt < attempts:
                await asyncio.sleep(interval)

        raise KeycloakAdminError("Keycloak did not become ready in time")

    async def authenticate(self, username: str, password: str) -> str:
        """
        Obtain an admin access token (password grant, admin-cli, master realm).

        Returns:
            The admin access token (also kept for subsequent calls)
        """
        logger.info("Getting admin access token...")
        try:
            tokens = await fetch_admin_token(
                self._client, self.base_url, username=username, password=password
            )
        except OAuthError as e:
            raise KeycloakAdminError(
                f"Failed to get admin token: {e}", status_code=e.status_code, body=e.body
            ) from e

        self._token = tokens.access_token
        return self._token

    # ------------------------------------------------------------------
    # Realms
    # ------------------------------------------------------------------

    async def realm_exists(self, realm: str) -> bool:
        response = await self._request("GET", f"/admin/realms/{realm}")
        return response.is_success

    async def ensure_realm(self, representation: dict[str, Any]) -> bool:
        """
        Create a realm unless it already exists.

        Args:
            representation: Keycloak RealmRepresentation (must contain "realm")

        Returns:
            True if the realm was created, False if it already existed
        """
        realm = representation["realm"]
        logger.info(f"Creating realm: {realm}...")

        if await self.realm_exists(realm):
            logger.info(f"Realm {realm} already exists, skipping creation.")
            return False

        response = await self._request("POST", "/admin/realms", json=representation)
        self._raise_for(response, "create realm")
        logger.success(f"Realm {realm} created successfully.")
        return True

    # ------------------------------------------------------------------
    # Client scopes
    # ------------------------------------------------------------------

    async def list_client_scopes(self, realm: str) -> list[dict[str, Any]]:
        response = await self._request("GET", f"/admin/realms/{realm}/client-scopes")
        self._raise_for(response, "list client scopes")
        return response.json()

    async def ensure_client_scopes(self, realm: str, representations: list[dict[str, Any]]) -> list[str]:
        """
        Create client scopes that do not exist yet.

        A failed creation is logged and skipped, not raised.

        Returns:
            Names of the scopes created
        """
        logger.info("Creating custom MCP scopes...")
        existing = {scope.get("name") for scope in await self.list_client_scopes(realm)}
        created = []

        for representation in representations:
            name = representation["name"]
            if name in existing:
                logger.info(f"Scope {name} already exists, skipping.")
                continue

            response = await self._request(
                "POST", f"/admin/realms/{realm}/client-scopes", json=representation
            )
            if response.is_success:
                logger.success(f"Scope {name} created successfully.")
                created.append(name)
            else:
                logger.warning(f"Failed to create scope {name}: {response.status_code}")

        return created

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    async def get_client(self, realm: str, client_id: str) -> Optional[dict[str, Any]]:
        """Look up a client by its clientId; None if absent."""
        response = await self._request(
            "GET", f"/admin/realms/{realm}/clients", params={"clientId": client_id}
        )
        self._raise_for(response, f"look up client {client_id}")
        clients = response.json()
        return clients[0] if clients else None

    async def ensure_client(self, realm: str, representation: dict[str, Any]) -> bool:
        """
        Create a client, or update it in place when it already exists.

        Returns:
            True if the client was created, False if an existing one was updated
        """
        client_id = representation["clientId"]
        logger.info(f"Creating client: {client_id}...")

        existing = await self.get_client(realm, client_id)
        if existing is not None:
            logger.info(f"Client {client_id} already exists, updating...")
            response = await self._request(
                "PUT", f"/admin/realms/{realm}/clients/{existing['id']}", json=representation
            )
            self._raise_for(response, f"update client {client_id}")
            logger.success(f"Client {client_id} updated successfully.")
            return False

        response = await self._request("POST", f"/admin/realms/{realm}/clients", json=representation)
        self._raise_for(response, f"create client {client_id}")
        logger.success(f"Client {client_id} created successfully.")
        return True

    async def get_redirect_uris(self, realm: str, client_id: str) -> list[str]:
        """Return the redirect URIs registered for a client."""
        client = await self.get_client(realm, client_id)
        if client is None:
            raise KeycloakAdminError(f"Client {client_id} not found in realm {realm}", status_code=404)
        return list(client.get("redirectUris", []))

    async def update_redirect_uris(
        self,
        realm: str,
        client_id: str,
        redirect_uris: list[str],
        web_origins: list[str],
    ) -> None:
        """
        Replace a public client's redirect URIs and web origins.

        Raises:
            KeycloakAdminError: If the client does not exist or the update fails
        """
        client = await self.get_client(realm, client_id)
        if client is None:
            raise KeycloakAdminError(f"Client {client_id} not found in realm {realm}", status_code=404)

        logger.info(f"Client UUID: {client['id']}")
        representation = {
            "clientId": client_id,
            "enabled": True,
            "publicClient": True,
            "directAccessGrantsEnabled": True,
            "standardFlowEnabled": True,
            "redirectUris": redirect_uris,
            "webOrigins": web_origins,
        }
        response = await self._request(
            "PUT", f"/admin/realms/{realm}/clients/{client['id']}", json=representation
        )
        self._raise_for(response, f"update client {client_id}")

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def ensure_user(self, realm: str, representation: dict[str, Any]) -> bool:
        """
        Create a user unless one with the same username exists.

        Returns:
            True if the user was created, False if it already existed
        """
        username = representation["username"]
        logger.info(f"Creating test user: {username}...")

        response = await self._request(
            "GET", f"/admin/realms/{realm}/users", params={"username": username, "exact": "true"}
        )
        if response.is_success and response.json():
            logger.info(f"User {username} already exists, skipping creation.")
            return False

        response = await self._request("POST", f"/admin/realms/{realm}/users", json=representation)
        self._raise_for(response, "create user")
        logger.success(f"User {username} created successfully.")
        return True
