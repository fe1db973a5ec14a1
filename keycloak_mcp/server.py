"""
Keycloak-protected FastMCP Server

Main MCP server definition with OAuth 2.1 bearer authentication.
Tools, resources and prompts are registered via imports below.
"""

from datetime import datetime, timezone

from loguru import logger
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from keycloak_mcp.auth import JWKSUnavailableError, probe_jwks
from keycloak_mcp.config import settings
from keycloak_mcp.middleware import MCP_SESSION_HEADER, SessionTrackingMiddleware
from keycloak_mcp.sessions import get_session_count
from keycloak_mcp.utils.log import configure_logging

# Import MCP server instance (created in mcp_instance.py with KeycloakAuthProvider)
from keycloak_mcp.mcp_instance import mcp  # noqa: E402

# Import components to register them with the server
# This triggers the decorators which register them with the mcp instance
from keycloak_mcp.tools import greeting  # noqa: F401, E402
from keycloak_mcp import resources  # noqa: F401, E402
from keycloak_mcp import prompts  # noqa: F401, E402

MCP_PATH = "/mcp"


@mcp.custom_route("/health", methods=["GET"])
async def health_check(request: Request) -> JSONResponse:
    """Unauthenticated liveness probe."""
    return JSONResponse(
        {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "sessions": get_session_count(),
        }
    )


def create_app():
    """
    Create the ASGI app for the Streamable HTTP transport.

    Exposes /mcp (bearer protected), /health and the OAuth protected
    resource metadata under /.well-known/*.
    """
    return mcp.http_app(
        path=MCP_PATH,
        middleware=[
            # MCP clients such as Cursor call from browser contexts
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
                allow_headers=["Content-Type", "Authorization", MCP_SESSION_HEADER, "Accept"],
                expose_headers=[MCP_SESSION_HEADER, "WWW-Authenticate"],
            ),
            Middleware(
                SessionTrackingMiddleware,
                mcp_path=MCP_PATH,
                resource_metadata_url=settings.mcp_resource_metadata_url,
            ),
        ],
    )


app = create_app()


def log_startup_banner() -> None:
    logger.info("🚀 MCP OAuth Server starting")
    logger.info(f"   Server URL: {settings.mcp_server_url}")
    logger.info(f"   MCP endpoint: {settings.mcp_url}")
    logger.info(f"   Health check: {settings.mcp_server_url}/health")
    logger.info("📋 OAuth Configuration:")
    logger.info(f"   Keycloak URL: {settings.keycloak_url}")
    logger.info(f"   Realm: {settings.keycloak_realm}")
    logger.info(f"   Client ID: {settings.keycloak_client_id}")
    logger.info(f"📄 Protected Resource Metadata: {settings.resource_metadata_url}")
    logger.info(f"🔑 Keycloak OpenID Configuration: {settings.openid_configuration_url}")


async def check_jwks() -> bool:
    """Probe the realm JWKS; never prevents startup."""
    try:
        await probe_jwks(settings.jwks_url)
        return True
    except JWKSUnavailableError as e:
        logger.warning(f"Could not initialize JWKS: {e}")
        logger.warning("Starting server anyway. Make sure Keycloak is running and the realm is configured.")
        return False


def main() -> None:
    import asyncio
    import signal
    import uvicorn

    configure_logging(settings.log_level)
    log_startup_banner()

    async def serve() -> None:
        """Run uvicorn with explicit signal handling for graceful shutdown."""
        await check_jwks()

        config = uvicorn.Config(
            "keycloak_mcp.server:app",
            host=settings.mcp_host,
            port=settings.mcp_port,
            log_level=settings.log_level.lower(),
            timeout_graceful_shutdown=settings.shutdown_timeout_seconds,
        )
        server = uvicorn.Server(config)

        loop = asyncio.get_running_loop()

        def handle_exit(sig: int, *_: object) -> None:
            logger.info(f"Received signal {sig}, initiating graceful shutdown")
            server.should_exit = True

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, handle_exit, sig)
            except NotImplementedError:
                # Non-POSIX platforms
                pass

        logger.info(f"🌐 Starting Uvicorn on {settings.mcp_host}:{settings.mcp_port} (path={MCP_PATH})")
        await server.serve()

    asyncio.run(serve())


if __name__ == "__main__":
    main()
