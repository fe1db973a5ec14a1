"""
Session bookkeeping middleware for the streamable HTTP MCP endpoint.

Runs after bearer authentication. Requests without a bearer token get a
401 JSON challenge here; requests carrying a token that failed verification
pass through so the MCP bearer guard answers with its own 401.
"""

from typing import Any, Dict, Optional

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from keycloak_mcp.sessions import get_session, register_session, remove_session

MCP_SESSION_HEADER = "mcp-session-id"
MISSING_TOKEN_DESCRIPTION = "Missing or invalid Authorization header"


def _token_claims(request: Request) -> Dict[str, Any]:
    user = request.scope.get("user")
    access_token = getattr(user, "access_token", None)
    return getattr(access_token, "claims", None) or {}


def _is_authenticated(request: Request) -> bool:
    user = request.scope.get("user")
    return bool(user is not None and user.is_authenticated)


def _has_bearer_token(request: Request) -> bool:
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    return scheme.lower() == "bearer" and bool(token.strip())


def missing_token_response(resource_metadata_url: Optional[str] = None) -> JSONResponse:
    """401 challenge for a request that carries no bearer token."""
    challenge = "Bearer"
    if resource_metadata_url:
        challenge = f'Bearer resource_metadata="{resource_metadata_url}"'
    return JSONResponse(
        {"error": "invalid_token", "error_description": MISSING_TOKEN_DESCRIPTION},
        status_code=401,
        headers={"WWW-Authenticate": challenge},
    )


class SessionTrackingMiddleware(BaseHTTPMiddleware):
    """Track MCP sessions and reject GET/DELETE for unknown ones."""

    def __init__(self, app, mcp_path: str = "/mcp", resource_metadata_url: Optional[str] = None):
        super().__init__(app)
        self.mcp_path = mcp_path.rstrip("/")
        self.resource_metadata_url = resource_metadata_url

    async def dispatch(self, request: Request, call_next):
        if request.url.path.rstrip("/") != self.mcp_path:
            return await call_next(request)

        if not _is_authenticated(request):
            if request.method != "OPTIONS" and not _has_bearer_token(request):
                logger.info(f"[AUTH] {request.method} {request.url.path} without bearer token")
                return missing_token_response(self.resource_metadata_url)
            return await call_next(request)

        session_id = request.headers.get(MCP_SESSION_HEADER)

        if request.method in ("GET", "DELETE"):
            if not session_id:
                return JSONResponse({"error": "Missing mcp-session-id header"}, status_code=400)

            if get_session(session_id) is None:
                if request.method == "DELETE":
                    # Terminating an unknown session is a no-op
                    return Response(status_code=204)
                return JSONResponse({"error": "Session not found"}, status_code=404)

        response = await call_next(request)

        if request.method == "POST":
            new_session_id = response.headers.get(MCP_SESSION_HEADER)
            if new_session_id and get_session(new_session_id) is None:
                session = register_session(new_session_id, _token_claims(request))
                logger.info(
                    f"New session initialized: {new_session_id} "
                    f"(user={session.username or session.subject or 'unknown'})"
                )
        elif request.method == "DELETE":
            remove_session(session_id)
            logger.info(f"Session terminated: {session_id}")

        return response
