"""
CLI entry point for keycloak-mcp.

Commands:
  serve               Run the OAuth-protected MCP server
  setup-keycloak      Create the demo realm, scopes, clients and test user
  get-token           Print a fresh access token for the test user
  check-client        Show the redirect URIs registered for the public client
  add-redirect-uris   Replace the public client's redirect URIs with a preset
  smoke-test          Password-grant test of the MCP server (no browser)
  login               Browser login with PKCE, then exercise the MCP server
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from loguru import logger

from keycloak_mcp.client.flows import (
    fetch_user_token,
    log_token_summary,
    run_browser_flow,
    run_smoke_test,
)
from keycloak_mcp.client.oauth import OAuthError
from keycloak_mcp.config import Settings, settings
from keycloak_mcp.keycloak.admin import KeycloakAdminClient, KeycloakAdminError
from keycloak_mcp.keycloak.provisioning import REDIRECT_URI_PRESETS, setup_keycloak
from keycloak_mcp.utils.log import CLI_FORMAT, configure_logging

# Global flags that override settings for the client-side commands
GLOBAL_OVERRIDES = {
    "--keycloak-url": "keycloak_url",
    "--realm": "realm",
    "--server-url": "server_url",
    "--client-id": "client_id",
}


def _settings_from_args(args: argparse.Namespace) -> Settings:
    """Apply CLI overrides on top of the environment settings."""
    overrides = {}
    if getattr(args, "server_url", None):
        overrides["mcp_server_url"] = args.server_url.rstrip("/")
    if getattr(args, "keycloak_url", None):
        overrides["keycloak_url"] = args.keycloak_url.rstrip("/")
    if getattr(args, "realm", None):
        overrides["keycloak_realm"] = args.realm
    if getattr(args, "client_id", None):
        overrides["keycloak_public_client_id"] = args.client_id
    return settings.model_copy(update=overrides) if overrides else settings


# ============== Commands ==============


def cmd_serve(args: argparse.Namespace) -> int:
    from keycloak_mcp import server

    server.main()
    return 0


def cmd_setup_keycloak(args: argparse.Namespace) -> int:
    try:
        asyncio.run(setup_keycloak(_settings_from_args(args)))
    except KeycloakAdminError as e:
        logger.error(f"❌ Setup failed: {e}")
        return 1
    return 0


def cmd_get_token(args: argparse.Namespace) -> int:
    cfg = _settings_from_args(args)
    try:
        tokens = asyncio.run(
            fetch_user_token(cfg, username=args.username, password=args.password)
        )
    except OAuthError as e:
        logger.error(f"Failed to get token. Is Keycloak running? ({e})")
        return 1

    log_token_summary(tokens)
    logger.info(f"Fresh token (expires in {tokens.expires_in // 60} minutes):")
    print(tokens.access_token)
    logger.info("Update .cursor/mcp.json with:")
    logger.info(f'"Authorization": "Bearer {tokens.access_token}"')
    return 0


async def _check_client(cfg: Settings) -> List[str]:
    async with KeycloakAdminClient(cfg.keycloak_url) as admin:
        await admin.authenticate(cfg.keycloak_admin, cfg.keycloak_admin_password)
        return await admin.get_redirect_uris(cfg.keycloak_realm, cfg.keycloak_public_client_id)


def cmd_check_client(args: argparse.Namespace) -> int:
    cfg = _settings_from_args(args)
    try:
        redirect_uris = asyncio.run(_check_client(cfg))
    except KeycloakAdminError as e:
        logger.error(f"✗ {e}")
        return 1

    logger.info(f"Current redirect URIs for {cfg.keycloak_public_client_id}:")
    for uri in redirect_uris:
        logger.info(f"  - {uri}")
    return 0


async def _add_redirect_uris(cfg: Settings, preset: str) -> None:
    redirect_uris, web_origins = REDIRECT_URI_PRESETS[preset]
    async with KeycloakAdminClient(cfg.keycloak_url) as admin:
        await admin.authenticate(cfg.keycloak_admin, cfg.keycloak_admin_password)
        logger.info(f"Updating client with {preset} redirect URIs...")
        await admin.update_redirect_uris(
            cfg.keycloak_realm, cfg.keycloak_public_client_id, redirect_uris, web_origins
        )


def cmd_add_redirect_uris(args: argparse.Namespace) -> int:
    cfg = _settings_from_args(args)
    try:
        asyncio.run(_add_redirect_uris(cfg, args.preset))
    except KeycloakAdminError as e:
        logger.error(f"✗ {e}")
        return 1
    logger.success(f"Done! Keycloak client updated with {args.preset} redirect URIs")
    return 0


def cmd_smoke_test(args: argparse.Namespace) -> int:
    return asyncio.run(
        run_smoke_test(_settings_from_args(args), username=args.username, password=args.password)
    )


def cmd_login(args: argparse.Namespace) -> int:
    return asyncio.run(run_browser_flow(_settings_from_args(args), open_browser=not args.no_browser))


# ============== Main Entry Point ==============


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keycloak-mcp",
        description="OAuth-protected MCP server with Keycloak, plus provisioning and test drivers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  keycloak-mcp setup-keycloak
  keycloak-mcp serve
  keycloak-mcp smoke-test --verbose
  keycloak-mcp add-redirect-uris --preset vscode
""",
    )
    parser.add_argument("--keycloak-url", help="Keycloak base URL (default: $KEYCLOAK_URL)")
    parser.add_argument("--realm", help="Realm name (default: $KEYCLOAK_REALM)")
    parser.add_argument("--server-url", help="MCP server URL (default: $MCP_SERVER_URL)")
    parser.add_argument("--client-id", help="Public client ID (default: $KEYCLOAK_PUBLIC_CLIENT_ID)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "serve", help="Run the MCP server (configured from the environment)"
    ).set_defaults(func=cmd_serve)
    subparsers.add_parser("setup-keycloak", help="Provision the demo realm").set_defaults(
        func=cmd_setup_keycloak
    )

    get_token = subparsers.add_parser("get-token", help="Print an access token for the test user")
    get_token.add_argument("--username")
    get_token.add_argument("--password")
    get_token.set_defaults(func=cmd_get_token)

    subparsers.add_parser("check-client", help="Show the public client's redirect URIs").set_defaults(
        func=cmd_check_client
    )

    add_uris = subparsers.add_parser("add-redirect-uris", help="Register IDE redirect URIs")
    add_uris.add_argument("--preset", choices=sorted(REDIRECT_URI_PRESETS), default="cursor")
    add_uris.set_defaults(func=cmd_add_redirect_uris)

    smoke = subparsers.add_parser("smoke-test", help="Password-grant test of the MCP server")
    smoke.add_argument("--username")
    smoke.add_argument("--password")
    smoke.add_argument("--verbose", action="store_true", help="Log raw HTTP exchanges")
    smoke.set_defaults(func=cmd_smoke_test)

    login = subparsers.add_parser("login", help="Browser login with PKCE")
    login.add_argument("--no-browser", action="store_true", help="Only print the authorization URL")
    login.set_defaults(func=cmd_login)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        # The server reads its configuration from the environment only
        flags = [flag for flag, dest in GLOBAL_OVERRIDES.items() if getattr(args, dest, None)]
        if flags:
            parser.error(
                f"serve does not accept {', '.join(flags)}; set "
                "MCP_SERVER_URL, KEYCLOAK_URL, KEYCLOAK_REALM or KEYCLOAK_PUBLIC_CLIENT_ID instead"
            )
    else:
        level = "DEBUG" if getattr(args, "verbose", False) else settings.log_level
        configure_logging(level, fmt=CLI_FORMAT)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
