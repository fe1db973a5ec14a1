"""
Tests for the Keycloak admin REST client and the demo provisioning.
"""

import json

import httpx
import pytest

from keycloak_mcp.keycloak.admin import KeycloakAdminClient, KeycloakAdminError
from keycloak_mcp.keycloak.provisioning import (
    CURSOR_REDIRECT_URIS,
    PUBLIC_CLIENT_REDIRECT_URIS,
    REDIRECT_URI_PRESETS,
    VSCODE_REDIRECT_URIS,
    ClientSpec,
    RealmSpec,
    UserSpec,
    setup_keycloak,
)

BASE = "http://kc.test"


class FakeKeycloak:
    """Stateful stand-in for the Keycloak admin API."""

    def __init__(self, ready_after: int = 0):
        self.ready_after = ready_after
        self.master_polls = 0
        self.realms = {}
        self.scopes = []
        self.clients = {}
        self.users = []
        self.calls = []
        self.fail_scope_creation = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))

        if path == "/realms/master":
            self.master_polls += 1
            if self.master_polls <= self.ready_after:
                raise httpx.ConnectError("not up", request=request)
            return httpx.Response(200, json={"realm": "master"})

        if path == "/realms/master/protocol/openid-connect/token":
            return httpx.Response(200, json={"access_token": "admin-token", "token_type": "Bearer", "expires_in": 60})

        if request.headers.get("authorization") != "Bearer admin-token":
            return httpx.Response(401)

        body = json.loads(request.content) if request.content else None

        if path == "/admin/realms" and request.method == "POST":
            self.realms[body["realm"]] = body
            return httpx.Response(201)

        parts = path.split("/")  # ['', 'admin', 'realms', realm, ...]
        realm = parts[3]
        resource = parts[4] if len(parts) > 4 else None

        if resource is None:
            return httpx.Response(200, json=self.realms[realm]) if realm in self.realms else httpx.Response(404)

        if resource == "client-scopes":
            if request.method == "GET":
                return httpx.Response(200, json=self.scopes)
            if self.fail_scope_creation:
                return httpx.Response(500)
            self.scopes.append(body)
            return httpx.Response(201)

        if resource == "clients":
            if request.method == "GET":
                client_id = request.url.params.get("clientId")
                return httpx.Response(200, json=[c for c in self.clients.values() if c["clientId"] == client_id])
            if request.method == "POST":
                uuid = f"uuid-{body['clientId']}"
                self.clients[uuid] = {**body, "id": uuid}
                return httpx.Response(201)
            if request.method == "PUT":
                uuid = parts[5]
                self.clients[uuid] = {**body, "id": uuid}
                return httpx.Response(204)

        if resource == "users":
            if request.method == "GET":
                username = request.url.params.get("username")
                return httpx.Response(200, json=[u for u in self.users if u["username"] == username])
            self.users.append(body)
            return httpx.Response(201)

        return httpx.Response(404)


@pytest.fixture
def keycloak():
    return FakeKeycloak()


def _http(keycloak: FakeKeycloak) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(keycloak))


async def _admin(http: httpx.AsyncClient) -> KeycloakAdminClient:
    admin = KeycloakAdminClient(BASE, client=http)
    await admin.authenticate("admin", "admin")
    return admin


class TestKeycloakAdminClient:
    @pytest.mark.asyncio
    async def test_wait_until_ready_retries(self):
        keycloak = FakeKeycloak(ready_after=2)

        async with _http(keycloak) as http:
            await KeycloakAdminClient(BASE, client=http).wait_until_ready(attempts=5, interval=0)

        assert keycloak.master_polls == 3

    @pytest.mark.asyncio
    async def test_wait_until_ready_gives_up(self):
        keycloak = FakeKeycloak(ready_after=100)

        async with _http(keycloak) as http:
            with pytest.raises(KeycloakAdminError, match="did not become ready"):
                await KeycloakAdminClient(BASE, client=http).wait_until_ready(attempts=3, interval=0)

        assert keycloak.master_polls == 3

    @pytest.mark.asyncio
    async def test_calls_require_authentication(self, keycloak):
        async with _http(keycloak) as http:
            with pytest.raises(KeycloakAdminError, match="Not authenticated"):
                await KeycloakAdminClient(BASE, client=http).realm_exists("mcp-demo")

    @pytest.mark.asyncio
    async def test_authenticate_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "invalid_grant"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            with pytest.raises(KeycloakAdminError) as exc_info:
                await KeycloakAdminClient(BASE, client=http).authenticate("admin", "wrong")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_ensure_realm_is_idempotent(self, keycloak):
        async with _http(keycloak) as http:
            admin = await _admin(http)
            representation = RealmSpec(realm="mcp-demo").to_representation()

            assert await admin.ensure_realm(representation) is True
            assert await admin.ensure_realm(representation) is False

        assert list(keycloak.realms) == ["mcp-demo"]
        assert keycloak.realms["mcp-demo"]["displayName"] == "MCP Demo Realm"
        assert keycloak.realms["mcp-demo"]["bruteForceProtected"] is True

    @pytest.mark.asyncio
    async def test_ensure_client_updates_existing(self, keycloak):
        async with _http(keycloak) as http:
            admin = await _admin(http)
            keycloak.realms["mcp-demo"] = {"realm": "mcp-demo"}
            spec = ClientSpec(client_id="mcp-client", public_client=True, redirect_uris=["http://a"])

            assert await admin.ensure_client("mcp-demo", spec.to_representation()) is True

            spec.redirect_uris = ["http://b"]
            assert await admin.ensure_client("mcp-demo", spec.to_representation()) is False

        assert len(keycloak.clients) == 1
        assert keycloak.clients["uuid-mcp-client"]["redirectUris"] == ["http://b"]
        assert ("PUT", "/admin/realms/mcp-demo/clients/uuid-mcp-client") in keycloak.calls

    @pytest.mark.asyncio
    async def test_scope_creation_failure_only_warns(self, keycloak):
        keycloak.fail_scope_creation = True

        async with _http(keycloak) as http:
            admin = await _admin(http)
            created = await admin.ensure_client_scopes(
                "mcp-demo", [{"name": "mcp:read"}, {"name": "mcp:write"}]
            )

        assert created == []

    @pytest.mark.asyncio
    async def test_update_redirect_uris(self, keycloak):
        keycloak.clients["uuid-mcp-client"] = {"id": "uuid-mcp-client", "clientId": "mcp-client", "redirectUris": []}

        async with _http(keycloak) as http:
            admin = await _admin(http)
            await admin.update_redirect_uris("mcp-demo", "mcp-client", VSCODE_REDIRECT_URIS, ["*"])
            uris = await admin.get_redirect_uris("mcp-demo", "mcp-client")

        assert uris == VSCODE_REDIRECT_URIS
        assert keycloak.clients["uuid-mcp-client"]["webOrigins"] == ["*"]
        assert keycloak.clients["uuid-mcp-client"]["publicClient"] is True

    @pytest.mark.asyncio
    async def test_unknown_client(self, keycloak):
        async with _http(keycloak) as http:
            admin = await _admin(http)
            with pytest.raises(KeycloakAdminError, match="not found") as exc_info:
                await admin.get_redirect_uris("mcp-demo", "nope")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_create_failure_carries_status_and_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/token"):
                return httpx.Response(200, json={"access_token": "admin-token", "token_type": "Bearer", "expires_in": 60})
            if request.method == "GET":
                return httpx.Response(404)
            return httpx.Response(409, text="Conflict detected")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            admin = await _admin(http)
            with pytest.raises(KeycloakAdminError) as exc_info:
                await admin.ensure_realm({"realm": "mcp-demo"})

        assert exc_info.value.status_code == 409
        assert exc_info.value.body == "Conflict detected"


class TestSpecs:
    def test_public_client_representation(self):
        rep = ClientSpec(client_id="mcp-client", public_client=True).to_representation()

        assert rep["publicClient"] is True
        assert rep["serviceAccountsEnabled"] is False
        assert rep["attributes"]["pkce.code.challenge.method"] == "S256"
        assert rep["defaultClientScopes"] == ["openid", "profile", "email"]
        assert rep["description"].startswith("Public client")

    def test_confidential_client_representation(self):
        rep = ClientSpec(client_id="mcp-server", public_client=False).to_representation()

        assert rep["publicClient"] is False
        assert rep["serviceAccountsEnabled"] is True
        assert rep["redirectUris"] == []

    def test_user_representation(self):
        rep = UserSpec(username="testuser", password="testpassword").to_representation()

        assert rep["email"] == "testuser@example.com"
        assert rep["emailVerified"] is True
        assert rep["credentials"] == [{"type": "password", "value": "testpassword", "temporary": False}]

    def test_redirect_presets(self):
        assert "cursor://anysphere.cursor-mcp/oauth/callback" in PUBLIC_CLIENT_REDIRECT_URIS
        assert "http://127.0.0.1:3000/callback" in PUBLIC_CLIENT_REDIRECT_URIS
        assert REDIRECT_URI_PRESETS["cursor"][0] is CURSOR_REDIRECT_URIS
        assert "vscode://anysphere.mcp/callback" in VSCODE_REDIRECT_URIS
        assert "vscode://anysphere.mcp/callback" not in CURSOR_REDIRECT_URIS


class TestSetupKeycloak:
    @pytest.mark.asyncio
    async def test_provisions_demo_realm(self, keycloak, test_settings):
        async with _http(keycloak) as http:
            await setup_keycloak(test_settings, client=http, ready_interval=0)

        assert "mcp-demo" in keycloak.realms
        assert [s["name"] for s in keycloak.scopes] == ["mcp:read", "mcp:write"]
        assert keycloak.scopes[0]["attributes"]["include.in.token.scope"] == "true"

        by_client_id = {c["clientId"]: c for c in keycloak.clients.values()}
        assert by_client_id["mcp-client"]["publicClient"] is True
        assert by_client_id["mcp-client"]["redirectUris"] == PUBLIC_CLIENT_REDIRECT_URIS
        assert by_client_id["mcp-server"]["publicClient"] is False

        assert [u["username"] for u in keycloak.users] == ["testuser"]

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, keycloak, test_settings):
        async with _http(keycloak) as http:
            await setup_keycloak(test_settings, client=http, ready_interval=0)
            await setup_keycloak(test_settings, client=http, ready_interval=0)

        assert len(keycloak.realms) == 1
        assert len(keycloak.scopes) == 2
        assert len(keycloak.clients) == 2
        assert len(keycloak.users) == 1
