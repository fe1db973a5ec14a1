"""
Loopback HTTP server receiving the OAuth authorization callback.

Keycloak redirects the browser to http://127.0.0.1:<port>/callback with
either ?code=...&state=... or ?error=...&error_description=...
"""

import html
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Optional
from urllib.parse import parse_qs, urlparse

from loguru import logger

DEFAULT_TIMEOUT_SECONDS = 5 * 60


class AuthorizationError(Exception):
    """Raised when the authorization callback reports an error or is invalid."""
    pass


class CallbackHandler(BaseHTTPRequestHandler):
    """Handle the OAuth redirect from the browser."""

    server: "CallbackServer"

    def log_message(self, format, *args):
        """Suppress default logging."""
        pass

    def do_GET(self):
        parsed = urlparse(self.path)

        if parsed.path != self.server.callback_path:
            self._send_html(404, "Not found")
            return

        params = parse_qs(parsed.query)
        code = params.get("code", [None])[0]
        state = params.get("state", [None])[0]
        error = params.get("error", [None])[0]

        if error:
            description = params.get("error_description", ["Unknown error"])[0]
            self._send_html(
                400,
                f"<h1>Authorization Error</h1><p>{html.escape(error)}: {html.escape(description)}</p>",
            )
            self.server.error = AuthorizationError(f"Authorization error: {error} - {description}")
        elif not code or state != self.server.expected_state:
            self._send_html(400, "<h1>Invalid callback</h1><p>Missing code or state mismatch</p>")
            self.server.error = AuthorizationError("Invalid callback: missing code or state mismatch")
        else:
            self._send_html(
                200,
                "<html><head><title>Authorization Successful</title></head><body>"
                "<h1>✅ Authorization Successful!</h1>"
                "<p>You have been authenticated with Keycloak.</p>"
                "<p>You can close this window now.</p>"
                "</body></html>",
            )
            self.server.code = code

        self.server.done = True

    def _send_html(self, status: int, body: str) -> None:
        payload = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)


class CallbackServer(HTTPServer):
    """
    Single-use callback server.

    Serves requests until one hits the callback path, then reports the
    authorization code (or the error) through wait_for_code().
    """

    def __init__(self, host: str, port: int, callback_path: str, expected_state: str):
        super().__init__((host, port), CallbackHandler)
        self.callback_path = callback_path
        self.expected_state = expected_state
        self.code: Optional[str] = None
        self.error: Optional[AuthorizationError] = None
        self.done = False
        # handle_request() returns after this many seconds without a request
        self.timeout = 1.0

    @property
    def port(self) -> int:
        return self.server_address[1]

    def wait_for_code(self, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> str:
        """
        Block until the callback arrives.

        Returns:
            The authorization code

        Raises:
            AuthorizationError: On an error callback, state mismatch or timeout
        """
        logger.info(f"Callback server listening on http://{self.server_address[0]}:{self.port}")
        deadline = time.monotonic() + timeout

        try:
            while not self.done:
                if time.monotonic() >= deadline:
                    raise AuthorizationError("Authorization timeout")
                self.handle_request()
        finally:
            self.server_close()

        if self.error is not None:
            raise self.error
        return self.code
