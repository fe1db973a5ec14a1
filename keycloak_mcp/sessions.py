"""
In-memory MCP session registry.

Records which authenticated caller opened each MCP session so that:
- GET/DELETE /mcp can reject unknown session IDs before reaching the transport,
- DELETE /mcp can forget a session once the transport is closed,
- /health can report how many sessions are open.

The transport objects themselves are owned by the MCP SDK session manager;
this registry only keys metadata by the same session ID.

Note: This is per-process storage with no expiry. Sessions live until an
explicit DELETE or process exit.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass
class McpSession:
    """An MCP session opened by an authenticated client."""

    id: str                         # mcp-session-id issued by the transport
    subject: Optional[str] = None   # sub claim of the initializing token
    username: Optional[str] = None  # preferred_username claim
    client_id: Optional[str] = None  # azp claim (the OAuth client that asked for the token)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# Module-level in-memory storage
_SESSIONS: Dict[str, McpSession] = {}


def register_session(session_id: str, claims: Optional[Dict[str, Any]] = None) -> McpSession:
    """
    Record a newly initialized session.

    Args:
        session_id: The session ID returned in the mcp-session-id header
        claims: Claims of the access token used for initialize (optional)

    Returns:
        The stored McpSession
    """
    claims = claims or {}
    session = McpSession(
        id=session_id,
        subject=claims.get("sub"),
        username=claims.get("preferred_username"),
        client_id=claims.get("azp"),
    )
    _SESSIONS[session_id] = session
    return session


def get_session(session_id: str) -> Optional[McpSession]:
    """Retrieve a session by ID, or None if unknown."""
    return _SESSIONS.get(session_id)


def remove_session(session_id: str) -> Optional[McpSession]:
    """
    Remove and return a session.

    Args:
        session_id: The session ID

    Returns:
        The removed session if found, None otherwise
    """
    return _SESSIONS.pop(session_id, None)


def list_sessions() -> List[McpSession]:
    """Return all open sessions, oldest first."""
    return sorted(_SESSIONS.values(), key=lambda s: s.created_at)


def get_session_count() -> int:
    """Return the current number of open sessions."""
    return len(_SESSIONS)
