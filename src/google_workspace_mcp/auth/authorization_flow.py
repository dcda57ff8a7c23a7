"""Interactive OAuth2 authorization flow with a loopback callback listener.

``AuthorizationFlow.start()`` binds an HTTP listener to 127.0.0.1 on an
OS-assigned port, builds the Google consent URL and returns it right away.
The listener runs in a background thread and handles a single callback:

    Idle -> Listening -> AwaitingCallback -> Succeeded | Failed | TimedOut -> Closed

The callback must echo the per-flow state token exactly; anything else is
rejected before a code exchange is attempted. On success the tokens are
saved through TokenStorage. The listener closes itself after the callback
or after an idle timeout (5 minutes by default), whichever comes first.

Example:
    ```python
    flow = AuthorizationFlow()
    url = flow.start()
    print(f"Open this URL in your browser: {url}")
    flow.wait()
    print(flow.outcome)
    ```
"""

import logging
import secrets
import socket
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, urlparse

from google_workspace_mcp.auth.models import FlowState
from google_workspace_mcp.auth.oauth_client import OAuthClient, create_oauth_client
from google_workspace_mcp.auth.token_storage import TokenStorage

logger = logging.getLogger(__name__)

DEFAULT_CALLBACK_HOST = "127.0.0.1"
CALLBACK_PATH = "/callback"
DEFAULT_FLOW_TIMEOUT = 300.0  # 5 minutes

# How often the request loop wakes up to check for shutdown
POLL_INTERVAL = 0.2

# Longest a connected peer may stall before sending its request
CALLBACK_READ_TIMEOUT = 10.0

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "Content-Security-Policy": "default-src 'none'",
    "Cache-Control": "no-store",
}

SUCCESS_PAGE = (
    "<!DOCTYPE html><html><body>"
    "<h2>Authorization complete! You can close this tab and return to Claude.</h2>"
    "</body></html>"
)


class _CallbackServer(HTTPServer):
    """HTTPServer that knows which flow it belongs to."""

    flow: "AuthorizationFlow"

    def handle_error(self, request: object, client_address: tuple[str, int]) -> None:
        logger.debug(
            f"Callback listener: connection from {client_address[0]} dropped", exc_info=True
        )


class _CallbackHandler(BaseHTTPRequestHandler):
    """HTTP handler for the OAuth redirect."""

    server: _CallbackServer
    timeout = CALLBACK_READ_TIMEOUT

    def log_message(self, format: str, *args: object) -> None:
        """Route access logs to debug without the query string (it holds the code)."""
        # command and path are unset when the request line never arrived
        command = getattr(self, "command", None) or "-"
        path = urlparse(getattr(self, "path", "")).path
        logger.debug(f"Callback listener: {command} {path}")

    def handle(self) -> None:
        """Serve the connection while letting the flow interrupt a stalled read."""
        flow = self.server.flow
        flow._active_connection = self.connection
        try:
            super().handle()
        finally:
            flow._active_connection = None

    def do_GET(self) -> None:
        """Handle GET request from the OAuth redirect."""
        status, content_type, body = self.server.flow._handle_request(self.path)
        payload = body.encode("utf-8")

        self.send_response(status)
        self.send_header("Content-Type", f"{content_type}; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        for name, value in SECURITY_HEADERS.items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(payload)


class AuthorizationFlow:
    """One OAuth2 authorization-code flow attempt.

    Each instance owns its listener, state token and idle timer. Concurrent
    flows are independent: every one binds its own ephemeral port.

    Attributes:
        storage: Token storage receiving the exchanged tokens.
        timeout: Seconds to wait for a valid callback before closing.
        host: Loopback address the listener binds to.
    """

    def __init__(
        self,
        storage: TokenStorage | None = None,
        timeout: float = DEFAULT_FLOW_TIMEOUT,
        host: str = DEFAULT_CALLBACK_HOST,
    ) -> None:
        self.storage = storage or TokenStorage()
        self.timeout = timeout
        self.host = host

        self._state = FlowState.IDLE
        self._outcome: FlowState | None = None
        self._failure_reason: str | None = None
        self._state_token: str | None = None
        self._claimed = False
        self._active_connection: socket.socket | None = None
        self._client: OAuthClient | None = None
        self._server: _CallbackServer | None = None
        self._thread: threading.Thread | None = None
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()
        self._stopping = threading.Event()
        self._closed = threading.Event()

        self.port: int | None = None
        self.redirect_uri: str | None = None
        self.auth_url: str | None = None

    @property
    def state(self) -> FlowState:
        """Current lifecycle state."""
        return self._state

    @property
    def outcome(self) -> FlowState | None:
        """Terminal state reached (succeeded, failed or timed out), if any."""
        return self._outcome

    @property
    def failure_reason(self) -> str | None:
        """Why the flow failed, when ``outcome`` is FAILED."""
        return self._failure_reason

    def start(self) -> str:
        """Bind the callback listener and return the consent URL.

        Returns immediately; the callback is handled in the background.

        Returns:
            Google consent URL to open in a browser.

        Raises:
            RuntimeError: If this flow was already started.
            ClientConfigError: If the OAuth client is not configured.
            OSError: If the listener cannot be bound.
        """
        with self._lock:
            if self._state != FlowState.IDLE:
                raise RuntimeError("Authorization flow already started")

            server = _CallbackServer((self.host, 0), _CallbackHandler)
            server.flow = self
            server.timeout = POLL_INTERVAL
            self.port = server.server_address[1]
            self.redirect_uri = f"http://localhost:{self.port}{CALLBACK_PATH}"

            try:
                self._client = create_oauth_client(self.redirect_uri)
                self._state_token = secrets.token_hex(32)
                self.auth_url = self._client.authorization_url(self._state_token)
            except Exception:
                server.server_close()
                raise

            self._server = server
            self._state = FlowState.LISTENING
            logger.info(f"OAuth callback listener bound to {self.host}:{self.port}")

            self._timer = threading.Timer(self.timeout, self._on_timeout)
            self._timer.daemon = True
            self._thread = threading.Thread(
                target=self._serve, name=f"oauth-callback-{self.port}", daemon=True
            )
            self._state = FlowState.AWAITING_CALLBACK
            self._timer.start()
            self._thread.start()

        return self.auth_url

    def _serve(self) -> None:
        """Request loop; runs until the flow stops, then releases the socket."""
        assert self._server is not None
        try:
            while not self._stopping.is_set():
                self._server.handle_request()
        finally:
            self._server.server_close()
            with self._lock:
                self._state = FlowState.CLOSED
            self._closed.set()
            logger.debug(f"OAuth callback listener on port {self.port} closed")

    def _finish(
        self, outcome: FlowState, reason: str | None = None, interrupt: bool = False
    ) -> None:
        """Record the terminal outcome and stop the listener. Caller holds the lock."""
        self._outcome = outcome
        self._failure_reason = reason
        self._state = outcome
        self._stop(interrupt)

    def _stop(self, interrupt: bool = False) -> None:
        """Cancel the timer and end the request loop.

        With ``interrupt``, a connection stuck reading its request is shut
        down so the loop can exit without waiting for the read timeout.
        """
        if self._timer is not None:
            self._timer.cancel()
        self._stopping.set()

        connection = self._active_connection
        if interrupt and connection is not None:
            try:
                connection.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                logger.debug(f"Callback connection already closed: {e}")

    def _on_timeout(self) -> None:
        with self._lock:
            if self._state != FlowState.AWAITING_CALLBACK or self._claimed:
                return
            logger.warning(
                f"No OAuth callback received within {self.timeout:g}s, closing listener"
            )
            self._finish(FlowState.TIMED_OUT, interrupt=True)

    def _handle_request(self, raw_path: str) -> tuple[int, str, str]:
        """Validate one inbound request and run the code exchange.

        Validation happens under the lock. A valid callback claims the flow,
        then the exchange runs unlocked so ``close()`` never waits on it.

        Args:
            raw_path: Request target including the query string.

        Returns:
            Tuple of (status code, content type, body).
        """
        parsed = urlparse(raw_path)
        if parsed.path != CALLBACK_PATH:
            return 404, "text/plain", "Not found"

        with self._lock:
            if self._state != FlowState.AWAITING_CALLBACK or self._claimed:
                return 404, "text/plain", "Not found"

            params = parse_qs(parsed.query)
            state = params.get("state", [None])[0]
            expected = (self._state_token or "").encode("utf-8")
            if state is None or not secrets.compare_digest(state.encode("utf-8"), expected):
                logger.warning("OAuth callback rejected: state mismatch")
                self._finish(FlowState.FAILED, "state mismatch")
                return 403, "text/plain", "Invalid state parameter"

            if "error" in params:
                logger.warning(f"OAuth authorization denied: {params['error'][0]}")
                self._finish(FlowState.FAILED, "authorization denied")
                return 400, "text/plain", "Authorization was denied. Please try again."

            code = params.get("code", [None])[0]
            if not code:
                logger.warning("OAuth callback rejected: missing authorization code")
                self._finish(FlowState.FAILED, "missing code")
                return 400, "text/plain", "Missing authorization code"

            self._claimed = True
            if self._timer is not None:
                self._timer.cancel()
            client = self._client

        assert client is not None
        try:
            record = client.exchange_code(code)
            self.storage.save(record)
        except Exception:
            logger.exception("OAuth code exchange failed")
            with self._lock:
                self._finish(FlowState.FAILED, "exchange error")
            return 500, "text/plain", "Authorization failed. Please try again."

        logger.info(f"Authorization complete, credentials saved to {self.storage.token_path}")
        with self._lock:
            self._finish(FlowState.SUCCEEDED)
        return 200, "text/html", SUCCESS_PAGE

    def close(self) -> None:
        """Stop the listener. Safe to call more than once."""
        with self._lock:
            if self._state == FlowState.IDLE:
                self._state = FlowState.CLOSED
                self._closed.set()
                return
            self._stop(interrupt=True)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the listener has closed.

        Args:
            timeout: Maximum seconds to wait, or None to wait indefinitely.

        Returns:
            True if the listener closed, False on timeout.
        """
        return self._closed.wait(timeout)
