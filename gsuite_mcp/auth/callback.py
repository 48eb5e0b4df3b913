"""Local HTTP listener for the OAuth redirect callback.

The listener lives for exactly one flow attempt. It validates the
``state`` parameter, hands the authorization code to the coordinator, and
then holds the browser request open until the coordinator publishes an
``AuthResult``, so the page can show the account that was actually
authenticated. That wait is bounded by ``result_timeout``.
"""

from __future__ import annotations

import logging
import secrets
import threading
from collections.abc import Callable, Iterator
from concurrent.futures import Future, InvalidStateError
from contextlib import contextmanager
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from types import TracebackType
from urllib.parse import parse_qs, urlparse

from gsuite_mcp.auth.models import AuthResult
from gsuite_mcp.auth.oauth import CALLBACK_PATH, redirect_uri_for_port
from gsuite_mcp.auth.templates import render_error_page, render_success_page
from gsuite_mcp.utils.errors import AuthenticationError, OAuthCallbackError

logger = logging.getLogger(__name__)

# Seconds the callback handler waits for the coordinator's result.
DEFAULT_RESULT_TIMEOUT = 10.0

# Seconds allowed for in-flight callback requests when the listener closes.
DEFAULT_SHUTDOWN_TIMEOUT = 5.0


def _first(params: dict[str, list[str]], name: str) -> str:
    values = params.get(name)
    return values[0] if values else ""


class CallbackHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the OAuth redirect."""

    server: _CallbackHTTPServer

    def do_GET(self) -> None:  # noqa: N802
        parsed = urlparse(self.path)
        if parsed.path != CALLBACK_PATH:
            self.send_error(404)
            return

        with self.server.listener.tracking():
            self._handle_callback(parse_qs(parsed.query))

    def _handle_callback(self, params: dict[str, list[str]]) -> None:
        listener = self.server.listener

        # Verify state parameter (CSRF protection)
        returned_state = _first(params, "state")
        if not secrets.compare_digest(
            returned_state.encode("utf-8"), listener.state.encode("utf-8")
        ):
            # Note: Don't leak state values in error details
            listener.report_error(
                OAuthCallbackError("invalid state parameter - possible CSRF attack")
            )
            self._send_page(
                400,
                render_error_page(
                    "Authentication Error", "Invalid or expired OAuth state parameter"
                ),
            )
            return

        error = _first(params, "error")
        if error:
            description = _first(params, "error_description")
            listener.report_error(
                OAuthCallbackError(
                    f"OAuth error: {error} - {description}",
                    details={"oauth_error": error},
                )
            )
            self._send_page(
                400, render_error_page("Authentication Failed", description or error)
            )
            return

        code = _first(params, "code")
        if not code:
            listener.report_error(
                OAuthCallbackError("no authorization code received")
            )
            self._send_page(
                400,
                render_error_page(
                    "Authentication Error", "No authorization code received from Google"
                ),
            )
            return

        listener.report_code(code)

        try:
            result = listener.wait_for_result()
        except TimeoutError:
            self._send_page(
                400, render_error_page("Timeout", "Token exchange took too long")
            )
            return

        if not result.completed:
            self._send_page(
                400,
                render_error_page(
                    "Authentication Failed",
                    "Google sign-in finished but the account could not be set up. "
                    "Check the terminal for details.",
                ),
            )
            return

        self._send_page(200, render_success_page(result.email, result.other_accounts))

    def _send_page(self, status: int, body: str) -> None:
        payload = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        logger.debug("OAuth callback server: %s", format % args)


class _CallbackHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    block_on_close = False
    allow_reuse_port = False

    def __init__(self, address: tuple[str, int], listener: CallbackServer) -> None:
        self.listener = listener
        super().__init__(address, CallbackHandler)

    def handle_error(self, request: object, client_address: object) -> None:
        # Typically the browser closed the tab mid-response
        logger.debug("Error handling OAuth callback from %s", client_address, exc_info=True)


class CallbackServer:
    """Short-lived loopback listener for one OAuth flow attempt.

    Use as a context manager: entering binds the port and starts serving,
    exiting always tears the listener down, whatever the outcome.

    Attributes:
        state: CSRF state the callback must echo back.

    Example:
        >>> with CallbackServer(8000, state, on_code, on_error) as server:
        ...     print(server.redirect_uri)
        ...     # wait for on_code / on_error, then:
        ...     server.publish(AuthResult(email="user@example.com"))
    """

    def __init__(
        self,
        port: int,
        state: str,
        on_code: Callable[[str], None],
        on_error: Callable[[Exception], None],
        *,
        result_timeout: float = DEFAULT_RESULT_TIMEOUT,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
        host: str = "localhost",
    ) -> None:
        """Initialize the listener without binding.

        Args:
            port: Port to bind; 0 picks an ephemeral port.
            state: CSRF state the callback must echo back.
            on_code: Called from the handler thread with the authorization code.
            on_error: Called from a server thread with any callback failure.
            result_timeout: Seconds the handler waits for ``publish``.
            shutdown_timeout: Seconds ``close`` waits for in-flight requests.
            host: Interface to bind.
        """
        self.state = state
        self._port = port
        self._host = host
        self._on_code = on_code
        self._on_error = on_error
        self._result_timeout = result_timeout
        self._shutdown_timeout = shutdown_timeout
        self._result: Future[AuthResult] = Future()
        self._httpd: _CallbackHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._active = 0
        self._idle = threading.Condition()

    @property
    def port(self) -> int:
        """The bound port (the requested one until ``start`` is called)."""
        if self._httpd is None:
            return self._port
        return int(self._httpd.server_address[1])

    @property
    def redirect_uri(self) -> str:
        """Redirect URI pointing at the bound port."""
        return redirect_uri_for_port(self.port)

    def start(self) -> None:
        """Bind the port and start serving in a background thread.

        Raises:
            AuthenticationError: If the port cannot be bound.
        """
        try:
            self._httpd = _CallbackHTTPServer((self._host, self._port), self)
        except OSError as e:
            raise AuthenticationError(
                f"failed to listen on port {self._port}: {e}",
                details={
                    "port": self._port,
                    "hint": "Free the port or set GSUITE_MCP_OAUTH_PORT",
                },
            ) from e

        self._thread = threading.Thread(
            target=self._serve,
            args=(self._httpd,),
            name="oauth-callback",
            daemon=True,
        )
        self._thread.start()
        logger.debug("OAuth callback server listening on port %d", self.port)

    def _serve(self, httpd: _CallbackHTTPServer) -> None:
        try:
            httpd.serve_forever(poll_interval=0.1)
        except Exception as e:
            logger.error("OAuth callback server failed: %s", e)
            self._on_error(AuthenticationError(f"callback server error: {e}"))

    def report_code(self, code: str) -> None:
        """Forward an authorization code to the coordinator."""
        self._on_code(code)

    def report_error(self, error: Exception) -> None:
        """Forward a callback failure to the coordinator."""
        logger.warning("OAuth callback rejected: %s", error)
        self._on_error(error)

    def publish(self, result: AuthResult) -> bool:
        """Publish the flow outcome to a waiting callback handler.

        Only the first published result counts.

        Returns:
            True if this call set the result.
        """
        try:
            self._result.set_result(result)
        except InvalidStateError:
            return False
        return True

    def wait_for_result(self) -> AuthResult:
        """Block until a result is published.

        Raises:
            TimeoutError: If nothing is published within ``result_timeout``.
        """
        return self._result.result(timeout=self._result_timeout)

    @contextmanager
    def tracking(self) -> Iterator[None]:
        """Count a callback request as in flight for the duration of the block."""
        with self._idle:
            self._active += 1
        try:
            yield
        finally:
            with self._idle:
                self._active -= 1
                self._idle.notify_all()

    def close(self) -> None:
        """Stop serving and release the port.

        Unblocks any handler still waiting for a result, then gives
        in-flight requests up to ``shutdown_timeout`` seconds to finish.
        Safe to call more than once.
        """
        httpd = self._httpd
        if httpd is None:
            return
        self._httpd = None

        self.publish(AuthResult())
        httpd.shutdown()

        with self._idle:
            drained = self._idle.wait_for(
                lambda: self._active == 0, timeout=self._shutdown_timeout
            )
        if not drained:
            logger.warning(
                "OAuth callback requests still active after %.1fs shutdown grace",
                self._shutdown_timeout,
            )

        if self._thread is not None:
            self._thread.join(timeout=self._shutdown_timeout)
            self._thread = None

        httpd.server_close()
        logger.debug("OAuth callback server closed")

    def __enter__(self) -> CallbackServer:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


__all__ = [
    "CallbackServer",
    "CallbackHandler",
    "DEFAULT_RESULT_TIMEOUT",
    "DEFAULT_SHUTDOWN_TIMEOUT",
]
