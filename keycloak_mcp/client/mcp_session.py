"""
Minimal MCP client speaking JSON-RPC over the streamable HTTP transport.

Exposes raw status codes, headers and bodies (401 challenges, session IDs,
SSE framing) to the test drivers.
"""

import json
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

MCP_SESSION_HEADER = "mcp-session-id"
PROTOCOL_VERSION = "2024-11-05"
CLIENT_INFO = {"name": "mcp-oauth-test-client", "version": "1.0.0"}


class McpHttpError(Exception):
    """Raised when the MCP endpoint answers with a non-2xx status or a JSON-RPC error."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


def decode_rpc_body(content_type: str, text: str) -> Optional[Dict[str, Any]]:
    """
    Decode a JSON-RPC message from a JSON or SSE response body.

    For text/event-stream bodies, the last `data:` line carrying a JSON-RPC
    response is returned.

    Returns:
        The decoded message, or None for an empty body
    """
    if not text.strip():
        return None

    if "text/event-stream" not in content_type:
        return json.loads(text)

    message = None
    for line in text.splitlines():
        if line.startswith("data:"):
            data = line[len("data:"):].strip()
            if data:
                message = json.loads(data)
    return message


class McpHttpSession:
    """
    One MCP session against a bearer-protected /mcp endpoint.

    Usage:
        async with httpx.AsyncClient() as http:
            session = McpHttpSession(http, "http://localhost:3001", access_token)
            await session.initialize()
            await session.notify_initialized()
            tools = await session.list_tools()
    """

    def __init__(self, client: httpx.AsyncClient, server_url: str, access_token: str):
        self._client = client
        self.server_url = server_url.rstrip("/")
        self.access_token = access_token
        self.session_id: Optional[str] = None
        self._next_id = 1

    @property
    def endpoint(self) -> str:
        return f"{self.server_url}/mcp"

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
            "Authorization": f"Bearer {self.access_token}",
        }
        if self.session_id:
            headers[MCP_SESSION_HEADER] = self.session_id
        return headers

    async def _post(self, message: Dict[str, Any]) -> httpx.Response:
        logger.debug(f"→ {message.get('method')} {json.dumps(message)}")
        try:
            response = await self._client.post(self.endpoint, json=message, headers=self._headers())
        except httpx.HTTPError as e:
            raise McpHttpError(f"{message.get('method')} request failed: {e}") from e

        logger.debug(f"← HTTP {response.status_code} {dict(response.headers)} {response.text}")
        if not response.is_success:
            raise McpHttpError(
                f"{message.get('method')} failed: {response.status_code} {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        return response

    async def request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Send a JSON-RPC request and return its result.

        Raises:
            McpHttpError: On HTTP failure or a JSON-RPC error response
        """
        message: Dict[str, Any] = {"jsonrpc": "2.0", "id": self._next_id, "method": method}
        self._next_id += 1
        if params is not None:
            message["params"] = params

        response = await self._post(message)
        reply = decode_rpc_body(response.headers.get("content-type", ""), response.text)
        if reply is None:
            raise McpHttpError(f"{method} returned an empty body", status_code=response.status_code)
        if "error" in reply:
            raise McpHttpError(
                f"{method} returned JSON-RPC error: {reply['error']}",
                status_code=response.status_code,
                body=response.text,
            )
        return reply.get("result", {})

    async def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        message: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        await self._post(message)

    async def fetch_resource_metadata(self) -> Dict[str, Any]:
        """GET the RFC 9728 protected resource metadata (unauthenticated)."""
        url = f"{self.server_url}/.well-known/oauth-protected-resource"
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise McpHttpError(f"Fetching {url} failed: {e}") from e
        if not response.is_success:
            raise McpHttpError(
                f"Could not fetch protected resource metadata: {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )
        return response.json()

    async def initialize(self) -> Dict[str, Any]:
        """
        Open the session.

        Returns:
            The initialize result (serverInfo, protocolVersion, capabilities)

        Raises:
            McpHttpError: If the server rejects the request or issues no session ID
        """
        message = {
            "jsonrpc": "2.0",
            "id": self._next_id,
            "method": "initialize",
            "params": {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": CLIENT_INFO,
            },
        }
        self._next_id += 1

        response = await self._post(message)
        self.session_id = response.headers.get(MCP_SESSION_HEADER)
        if not self.session_id:
            raise McpHttpError("No session ID received", status_code=response.status_code)

        reply = decode_rpc_body(response.headers.get("content-type", ""), response.text) or {}
        if "error" in reply:
            raise McpHttpError(f"initialize returned JSON-RPC error: {reply['error']}")
        return reply.get("result", {})

    async def notify_initialized(self) -> None:
        await self.notify("notifications/initialized")

    async def list_tools(self) -> List[Dict[str, Any]]:
        result = await self.request("tools/list")
        return result.get("tools", [])

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.request("tools/call", {"name": name, "arguments": arguments or {}})

    async def terminate(self) -> int:
        """
        DELETE the session.

        Returns:
            The HTTP status code of the DELETE
        """
        if not self.session_id:
            raise McpHttpError("No session to terminate")
        try:
            response = await self._client.delete(self.endpoint, headers=self._headers())
        except httpx.HTTPError as e:
            raise McpHttpError(f"Session termination failed: {e}") from e
        self.session_id = None
        return response.status_code
