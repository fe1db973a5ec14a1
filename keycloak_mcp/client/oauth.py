"""
OAuth token endpoint calls against Keycloak.

- password grant: scripted tests with the demo user (no browser)
- authorization code + PKCE exchange: the browser login flow
- admin token: password grant for admin-cli on the master realm
"""

from typing import Any, Optional

import httpx
from jose import jwt
from jose.exceptions import JOSEError
from loguru import logger
from pydantic import BaseModel

DEFAULT_SCOPE = "openid profile email"


class OAuthError(Exception):
    """Raised when the token endpoint rejects a request."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class TokenResponse(BaseModel):
    """OAuth token endpoint response."""

    access_token: str
    token_type: str
    expires_in: int
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    scope: Optional[str] = None


async def request_token(
    client: httpx.AsyncClient,
    token_url: str,
    form: dict[str, str],
) -> TokenResponse:
    """
    POST a form-encoded grant to a token endpoint.

    Raises:
        OAuthError: On transport failure, non-2xx status or a malformed body
    """
    logger.debug(f"Token request: grant_type={form.get('grant_type')} url={token_url}")

    try:
        response = await client.post(
            token_url,
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
    except httpx.HTTPError as e:
        raise OAuthError(f"Token request to {token_url} failed: {e}") from e

    if not response.is_success:
        raise OAuthError(
            f"{response.status_code} {response.text}",
            status_code=response.status_code,
            body=response.text,
        )

    try:
        return TokenResponse(**response.json())
    except (ValueError, TypeError) as e:
        raise OAuthError(f"Malformed token response: {e}", status_code=response.status_code) from e


async def password_grant(
    client: httpx.AsyncClient,
    token_url: str,
    *,
    client_id: str,
    username: str,
    password: str,
    scope: str = DEFAULT_SCOPE,
) -> TokenResponse:
    """Obtain tokens for a user with the resource owner password grant."""
    return await request_token(
        client,
        token_url,
        {
            "grant_type": "password",
            "client_id": client_id,
            "username": username,
            "password": password,
            "scope": scope,
        },
    )


async def exchange_authorization_code(
    client: httpx.AsyncClient,
    token_url: str,
    *,
    client_id: str,
    code: str,
    redirect_uri: str,
    code_verifier: str,
) -> TokenResponse:
    """Exchange an authorization code for tokens, proving possession of the PKCE verifier."""
    try:
        return await request_token(
            client,
            token_url,
            {
                "grant_type": "authorization_code",
                "client_id": client_id,
                "code": code,
                "redirect_uri": redirect_uri,
                "code_verifier": code_verifier,
            },
        )
    except OAuthError as e:
        raise OAuthError(f"Token exchange failed: {e}", status_code=e.status_code, body=e.body) from e


async def fetch_admin_token(
    client: httpx.AsyncClient,
    keycloak_url: str,
    *,
    username: str,
    password: str,
) -> TokenResponse:
    """Obtain an admin token from the master realm via admin-cli."""
    token_url = f"{keycloak_url.rstrip('/')}/realms/master/protocol/openid-connect/token"
    return await request_token(
        client,
        token_url,
        {
            "grant_type": "password",
            "client_id": "admin-cli",
            "username": username,
            "password": password,
        },
    )


def decode_token_claims(token: str) -> dict[str, Any]:
    """
    Decode JWT claims without signature verification.

    Only for displaying token details in the test drivers; the resource
    server verifies signatures against the JWKS.

    Returns:
        Claims dict, or an empty dict if the token is not a JWT
    """
    try:
        return jwt.get_unverified_claims(token)
    except JOSEError as e:
        logger.warning(f"Failed to decode token claims: {e}")
        return {}
