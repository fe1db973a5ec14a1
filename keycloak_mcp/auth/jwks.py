"""
Startup probe for the realm's JSON Web Key Set.

Token verification fetches and caches the JWKS lazily. Probing it at startup
surfaces a missing realm or an unreachable Keycloak early; the server still
starts when the probe fails (every request then fails verification).
"""

from typing import Optional

import httpx
from loguru import logger


class JWKSUnavailableError(Exception):
    """Raised when the JWKS endpoint cannot be fetched or parsed."""
    pass


async def probe_jwks(
    jwks_url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 5.0,
) -> int:
    """
    Fetch the JWKS once and report how many keys it holds.

    Args:
        jwks_url: Realm certs endpoint (.../protocol/openid-connect/certs)
        client: Optional httpx client (used by tests to inject a transport)
        timeout: Request timeout in seconds

    Returns:
        Number of keys published by the realm

    Raises:
        JWKSUnavailableError: If the request fails or the body has no keys
    """
    logger.info(f"Fetching JWKS from: {jwks_url}")

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                response = await own_client.get(jwks_url)
        else:
            response = await client.get(jwks_url, timeout=timeout)
        response.raise_for_status()
        keys = response.json().get("keys")
    except httpx.HTTPStatusError as e:
        raise JWKSUnavailableError(
            f"JWKS endpoint returned {e.response.status_code}: {jwks_url}"
        ) from e
    except (httpx.HTTPError, ValueError) as e:
        raise JWKSUnavailableError(f"Failed to fetch JWKS from {jwks_url}: {e}") from e

    if not keys:
        raise JWKSUnavailableError(f"JWKS at {jwks_url} contains no keys")

    logger.info(f"JWKS initialized successfully ({len(keys)} keys)")
    return len(keys)
