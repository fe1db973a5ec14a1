"""
End-to-end drivers for the OAuth-protected MCP server.

run_smoke_test: scripted password-grant test (no browser)
    1. Access token from Keycloak
    2. MCP initialize with the bearer token
    3. notifications/initialized
    4. tools/list
    5. tools/call greet, then DELETE the session

run_browser_flow: authorization code + PKCE in the user's browser,
    then the same MCP exercise with the resulting token.
"""

import asyncio
import json
import webbrowser
from typing import Optional

import httpx
from loguru import logger

from keycloak_mcp.client.callback import AuthorizationError, CallbackServer
from keycloak_mcp.client.mcp_session import McpHttpError, McpHttpSession
from keycloak_mcp.client.oauth import (
    OAuthError,
    TokenResponse,
    decode_token_claims,
    exchange_authorization_code,
    password_grant,
)
from keycloak_mcp.client.pkce import (
    build_authorization_url,
    generate_code_challenge,
    generate_code_verifier,
    generate_state,
)
from keycloak_mcp.config import Settings

GREET_ARGUMENTS = {"name": "OAuth User"}


def _tool_text(result: dict) -> str:
    content = result.get("content") or []
    return content[0].get("text", "") if content else ""


def log_token_summary(tokens: TokenResponse) -> dict:
    """
    Log the token details a user checks when debugging audience problems.

    Returns:
        The unverified access token claims
    """
    claims = decode_token_claims(tokens.access_token)
    logger.info("Token Information:")
    logger.info(f"  Token Type: {tokens.token_type}")
    logger.info(f"  Expires In: {tokens.expires_in} seconds")
    logger.info(f"  Scope: {tokens.scope or 'not specified'}")
    logger.info(f"  Subject: {claims.get('sub', 'unknown')}")
    logger.info(f"  Username: {claims.get('preferred_username', 'unknown')}")
    logger.info(f"  Audience: {claims.get('aud', 'none')}")
    logger.info(f"  Authorized Party: {claims.get('azp', 'none')}")
    logger.info(f"  Access Token: {tokens.access_token[:50]}...")
    return claims


async def fetch_user_token(
    settings: Settings,
    *,
    username: Optional[str] = None,
    password: Optional[str] = None,
    client_id: Optional[str] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> TokenResponse:
    """Password grant for the demo user against the public client."""
    owns_client = http is None
    http = http or httpx.AsyncClient(timeout=10.0)
    try:
        return await password_grant(
            http,
            settings.token_url,
            client_id=client_id or settings.keycloak_public_client_id,
            username=username or settings.test_user_username,
            password=password or settings.test_user_password,
        )
    finally:
        if owns_client:
            await http.aclose()


async def run_smoke_test(
    settings: Settings,
    *,
    username: Optional[str] = None,
    password: Optional[str] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> int:
    """
    Run the five-step password-grant test.

    Returns:
        Process exit code (0 when every step passed)
    """
    logger.info("==============================================")
    logger.info("  MCP OAuth Flow Test with Keycloak")
    logger.info("==============================================")

    owns_client = http is None
    http = http or httpx.AsyncClient(timeout=10.0)

    try:
        logger.info("")
        logger.info("━━━ [1/5] Getting access token from Keycloak ━━━")
        try:
            tokens = await fetch_user_token(settings, username=username, password=password, http=http)
        except OAuthError as e:
            logger.error(f"✗ Could not get access token: {e}")
            return 1
        logger.success(f"✓ Token obtained (expires in {tokens.expires_in}s)")

        session = McpHttpSession(http, settings.mcp_server_url, tokens.access_token)

        try:
            logger.info("")
            logger.info("━━━ [2/5] Initializing MCP session ━━━")
            init_result = await session.initialize()
            logger.success("✓ Session created")
            logger.info(f"  - Session ID: {session.session_id}")
            logger.info(f"  - Server: {init_result.get('serverInfo', {}).get('name')}")
            logger.info(f"  - Protocol: {init_result.get('protocolVersion')}")

            logger.info("")
            logger.info("━━━ [3/5] Sending initialized notification ━━━")
            await session.notify_initialized()
            logger.success("✓ Notification sent")

            logger.info("")
            logger.info("━━━ [4/5] Listing available tools ━━━")
            tools = await session.list_tools()
            logger.success(f"✓ Found {len(tools)} tools")
            logger.info(f"  - Tools: {', '.join(t['name'] for t in tools)}")

            logger.info("")
            logger.info("━━━ [5/5] Calling 'greet' tool ━━━")
            result = await session.call_tool("greet", GREET_ARGUMENTS)
            logger.success("✓ Tool executed")
            logger.info(f"  - Response: {_tool_text(result)}")

            status = await session.terminate()
            logger.info(f"  - Session terminated (HTTP {status})")
        except McpHttpError as e:
            logger.error(f"✗ {e}")
            return 1

        logger.info("")
        logger.info("==============================================")
        logger.success("  All tests passed!")
        logger.info("==============================================")
        logger.info("Summary:")
        logger.info("  - OAuth token obtained from Keycloak")
        logger.info("  - MCP session established with bearer token")
        logger.info("  - Tools listed and executed successfully")
        return 0
    finally:
        if owns_client:
            await http.aclose()


async def exercise_mcp(http: httpx.AsyncClient, server_url: str, access_token: str) -> None:
    """
    Walk the MCP server with an access token: metadata, initialize,
    initialized notification, tools/list, greet, session DELETE.

    Raises:
        McpHttpError: If the MCP endpoint rejects any request
    """
    logger.info("🔌 Testing MCP connection...")
    session = McpHttpSession(http, server_url, access_token)

    logger.info("1. Fetching protected resource metadata...")
    try:
        metadata = await session.fetch_resource_metadata()
        logger.info(f"   Protected Resource Metadata: {json.dumps(metadata, indent=2)}")
    except McpHttpError as e:
        logger.warning(f"   Could not fetch protected resource metadata: {e}")

    logger.info("2. Testing MCP endpoint with OAuth token...")
    init_result = await session.initialize()
    logger.info(f"   Session ID: {session.session_id}")
    logger.info(f"   Initialize response: {json.dumps(init_result, indent=2)}")
    await session.notify_initialized()

    logger.info("3. Listing available tools...")
    tools = await session.list_tools()
    logger.info(f"   Available tools: {[t['name'] for t in tools]}")

    logger.info("4. Calling the greet tool...")
    result = await session.call_tool("greet", GREET_ARGUMENTS)
    logger.info(f"   Tool result: {_tool_text(result)}")

    status = await session.terminate()
    logger.info(f"5. Session terminated (HTTP {status})")

    logger.success("✅ MCP connection test completed successfully!")


async def run_browser_flow(
    settings: Settings,
    *,
    open_browser: bool = True,
    timeout: float = 5 * 60,
    http: Optional[httpx.AsyncClient] = None,
) -> int:
    """
    Log in through the browser with PKCE, exchange the code, then exercise MCP.

    Returns:
        Process exit code
    """
    client_id = settings.keycloak_public_client_id

    logger.info("🔐 MCP OAuth Test Client")
    logger.info("Configuration:")
    logger.info(f"  Keycloak URL: {settings.keycloak_url}")
    logger.info(f"  Realm: {settings.keycloak_realm}")
    logger.info(f"  Client ID: {client_id}")
    logger.info(f"  MCP Server: {settings.mcp_server_url}")

    code_verifier = generate_code_verifier()
    state = generate_state()
    auth_url = build_authorization_url(
        settings.authorization_url,
        client_id=client_id,
        redirect_uri=settings.callback_url,
        state=state,
        code_challenge=generate_code_challenge(code_verifier),
    )

    logger.info("Starting authorization flow with PKCE...")
    logger.info("Please open this URL in your browser to authorize:")
    logger.info(f"  {auth_url}")

    callback_server = CallbackServer(
        settings.callback_host, settings.callback_port, settings.callback_path, state
    )
    if open_browser and not webbrowser.open(auth_url):
        logger.warning("Could not open browser automatically. Please open the URL manually.")

    owns_client = http is None
    http = http or httpx.AsyncClient(timeout=10.0)

    try:
        code = await asyncio.to_thread(callback_server.wait_for_code, timeout)
        tokens = await exchange_authorization_code(
            http,
            settings.token_url,
            client_id=client_id,
            code=code,
            redirect_uri=settings.callback_url,
            code_verifier=code_verifier,
        )

        logger.success("✅ OAuth authorization successful!")
        log_token_summary(tokens)

        await exercise_mcp(http, settings.mcp_server_url, tokens.access_token)
        return 0
    except (AuthorizationError, OAuthError, McpHttpError) as e:
        logger.error(f"❌ Authorization failed: {e}")
        return 1
    finally:
        if owns_client:
            await http.aclose()
