"""
Tests for token endpoint calls.
"""

from urllib.parse import parse_qs

import httpx
import pytest

from keycloak_mcp.client.oauth import (
    OAuthError,
    decode_token_claims,
    exchange_authorization_code,
    fetch_admin_token,
    password_grant,
)

TOKEN_URL = "http://kc/realms/mcp-demo/protocol/openid-connect/token"
TOKENS = {"access_token": "at", "token_type": "Bearer", "expires_in": 300, "scope": "openid profile email"}


def _form(request: httpx.Request) -> dict:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


class TestPasswordGrant:
    @pytest.mark.asyncio
    async def test_posts_form_and_parses_tokens(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["content_type"] = request.headers["content-type"]
            seen["form"] = _form(request)
            return httpx.Response(200, json=TOKENS)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            tokens = await password_grant(
                client, TOKEN_URL, client_id="mcp-client", username="testuser", password="pw"
            )

        assert tokens.access_token == "at"
        assert tokens.expires_in == 300
        assert tokens.refresh_token is None
        assert seen["url"] == TOKEN_URL
        assert seen["content_type"] == "application/x-www-form-urlencoded"
        assert seen["form"] == {
            "grant_type": "password",
            "client_id": "mcp-client",
            "username": "testuser",
            "password": "pw",
            "scope": "openid profile email",
        }

    @pytest.mark.asyncio
    async def test_rejected_credentials(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "invalid_grant"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(OAuthError) as exc_info:
                await password_grant(client, TOKEN_URL, client_id="c", username="u", password="bad")

        assert exc_info.value.status_code == 401
        assert "invalid_grant" in exc_info.value.body

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"foo": "bar"}))
        ) as client:
            with pytest.raises(OAuthError, match="Malformed"):
                await password_grant(client, TOKEN_URL, client_id="c", username="u", password="p")


class TestAuthorizationCodeExchange:
    @pytest.mark.asyncio
    async def test_sends_verifier(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["form"] = _form(request)
            return httpx.Response(200, json=TOKENS)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await exchange_authorization_code(
                client,
                TOKEN_URL,
                client_id="mcp-client",
                code="the-code",
                redirect_uri="http://127.0.0.1:3000/callback",
                code_verifier="verifier",
            )

        assert seen["form"] == {
            "grant_type": "authorization_code",
            "client_id": "mcp-client",
            "code": "the-code",
            "redirect_uri": "http://127.0.0.1:3000/callback",
            "code_verifier": "verifier",
        }

    @pytest.mark.asyncio
    async def test_failure_is_prefixed(self):
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(400, text="invalid_grant"))
        ) as client:
            with pytest.raises(OAuthError, match="Token exchange failed"):
                await exchange_authorization_code(
                    client, TOKEN_URL, client_id="c", code="x", redirect_uri="r", code_verifier="v"
                )


@pytest.mark.asyncio
async def test_admin_token_uses_master_realm_admin_cli():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["form"] = _form(request)
        return httpx.Response(200, json=TOKENS)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        await fetch_admin_token(client, "http://kc/", username="admin", password="admin")

    assert seen["url"] == "http://kc/realms/master/protocol/openid-connect/token"
    assert seen["form"]["client_id"] == "admin-cli"
    assert seen["form"]["grant_type"] == "password"


def test_decode_token_claims(make_token):
    claims = decode_token_claims(make_token(username="alice"))

    assert claims["preferred_username"] == "alice"
    assert claims["sub"] == "user-123"


def test_decode_token_claims_not_a_jwt():
    assert decode_token_claims("opaque-token") == {}
