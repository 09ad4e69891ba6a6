"""Short-lived localhost HTTP listener for the OAuth2 redirect.

Binds the exact host, port and path of the configured redirect URI,
classifies the first callback it receives (provider error, state
mismatch, missing code, success), serves a matching HTML page and hands
the outcome to the flow coordinator.

Uses only stdlib (http.server, threading, urllib.parse).
"""

# pylint: disable=logging-too-many-args

# pylint: disable=C0103,W0212

from __future__ import annotations

import html
import logging
import threading

from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import TYPE_CHECKING, Any, Union
from urllib.parse import parse_qs, urlparse

from ..exceptions import (
    AuthenticationError,
    CallbackServerError,
    MissingAuthorizationCode,
    ProviderAuthorizationError,
    StateMismatchError,
)
from ..types import AuthResult


if TYPE_CHECKING:
    from collections.abc import Callable


logger = logging.getLogger("octosession.auth")

CallbackOutcome = Union[AuthResult, AuthenticationError]

_SUCCESS_HTML = """<!DOCTYPE html>
<html>
<head><title>Authentication Successful</title>
<style>
  body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
         display: flex; align-items: center; justify-content: center;
         height: 100vh; margin: 0; background: #f6f8fa; color: #24292f; }
  .card { text-align: center; padding: 2rem 3rem; background: white;
          border-radius: 12px; box-shadow: 0 2px 12px rgba(0,0,0,.08); }
  h1 { font-size: 1.5rem; margin-bottom: 0.5rem; color: #1a7f37; }
  p { color: #57606a; }
</style></head>
<body><div class="card">
  <h1>&#x2705; Signed in with GitHub</h1>
  <p>You can close this window and return to the application.</p>
</div></body></html>"""

_ERROR_HTML = """<!DOCTYPE html>
<html>
<head><title>Authentication Failed</title>
<style>
  body {{ font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
         display: flex; align-items: center; justify-content: center;
         height: 100vh; margin: 0; background: #f6f8fa; color: #24292f; }}
  .card {{ text-align: center; padding: 2rem 3rem; background: white;
          border-radius: 12px; box-shadow: 0 2px 12px rgba(0,0,0,.08); }}
  h1 {{ font-size: 1.5rem; margin-bottom: 0.5rem; color: #cf222e; }}
  p {{ color: #57606a; }}
</style></head>
<body><div class="card">
  <h1>&#x274C; Authentication Failed</h1>
  <p>{error}</p>
  <p>You can close this window and try again.</p>
</div></body></html>"""

_WAITING_HTML = """<!DOCTYPE html>
<html>
<head><title>Waiting for Authentication</title>
<style>
  body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
         display: flex; align-items: center; justify-content: center;
         height: 100vh; margin: 0; background: #f6f8fa; color: #24292f; }
  .card { text-align: center; padding: 2rem 3rem; background: white;
          border-radius: 12px; box-shadow: 0 2px 12px rgba(0,0,0,.08); }
</style></head>
<body><div class="card">
  <h1>Waiting for authentication&hellip;</h1>
  <p>Please complete the login in the browser window.</p>
</div></body></html>"""


def classify_callback(params: dict[str, str | None], expected_state: str) -> CallbackOutcome:
    """Turn callback query parameters into a result or an error.

    Parameters
    ----------
    params : dict
        ``code``, ``state``, ``error`` and ``error_description`` from the
        query string (missing ones are None).
    expected_state : str
        The state issued for this authorization attempt.

    Returns
    -------
    AuthResult or AuthenticationError
        A successful result, or the error the attempt must fail with.
    """
    error = params.get("error")
    if error:
        description = params.get("error_description")
        msg = f"GitHub authorization failed: {error}"
        if description:
            msg = f"{msg} - {description}"
        return ProviderAuthorizationError(
            msg, error=error, error_description=description, provider="github"
        )

    if params.get("state") != expected_state:
        msg = "State parameter mismatch (possible CSRF attack)"
        return StateMismatchError(msg, provider="github")

    code = params.get("code")
    if not code:
        msg = "No authorization code in callback"
        return MissingAuthorizationCode(msg, provider="github")

    return AuthResult(success=True, code=code, state=params.get("state"))


class OAuthCallbackServer:
    """Localhost HTTP server capturing one OAuth2 redirect.

    Parameters
    ----------
    host : str
        Bind address taken from the redirect URI.
    port : int
        Bind port taken from the redirect URI.
    path : str
        Callback path; only requests for this exact path are handled.
    expected_state : str
        The anti-forgery state issued for this attempt.
    on_result : callable
        Called once, from the server thread, with the callback outcome
        after the response page has been written.
    """

    poll_interval = 0.1

    def __init__(
        self,
        host: str,
        port: int,
        path: str,
        expected_state: str,
        on_result: Callable[[CallbackOutcome], Any],
    ) -> None:
        """Initialize the callback server."""
        self._host = host
        self._port = port
        self._path = path or "/"
        self._expected_state = expected_state
        self._on_result = on_result
        self._server: HTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._handled = threading.Event()
        self._stop_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        """Whether the listener currently holds its socket."""
        return self._server is not None

    @property
    def port(self) -> int:
        """The bound port (the configured one once started)."""
        if self._server is not None:
            return self._server.server_address[1]
        return self._port

    def start(self) -> None:
        """Bind the listener and serve on a daemon thread.

        Raises
        ------
        CallbackServerError
            If the address cannot be bound (e.g. the port is in use).
        """
        server_ref = self

        class _CallbackHandler(BaseHTTPRequestHandler):
            """HTTP request handler for the OAuth2 callback."""

            def do_GET(self) -> None:
                """Handle GET requests."""
                parsed = urlparse(self.path)

                if parsed.path == server_ref._path:
                    # Only capture the first callback
                    if server_ref._handled.is_set():
                        self._send_html(_SUCCESS_HTML)
                        return
                    server_ref._handled.set()

                    query = parse_qs(parsed.query)
                    params = {
                        name: query.get(name, [None])[0]
                        for name in ("code", "state", "error", "error_description")
                    }
                    outcome = classify_callback(params, server_ref._expected_state)
                    if isinstance(outcome, AuthResult):
                        self._send_html(_SUCCESS_HTML)
                    else:
                        detail = params.get("error_description") or params.get("error")
                        safe_msg = html.escape(str(detail or outcome.message), quote=True)
                        self._send_html(_ERROR_HTML.format(error=safe_msg), status=400)
                    server_ref._on_result(outcome)

                elif parsed.path == "/":
                    self._send_html(_WAITING_HTML)
                else:
                    self.send_error(404)

            def _send_html(self, html_content: str, status: int = 200) -> None:
                """Send an HTML response with security headers."""
                encoded = html_content.encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.send_header("Content-Length", str(len(encoded)))
                self.send_header("Cache-Control", "no-store")
                self.send_header(
                    "Content-Security-Policy",
                    "default-src 'none'; style-src 'unsafe-inline'",
                )
                self.send_header("X-Content-Type-Options", "nosniff")
                self.end_headers()
                self.wfile.write(encoded)

            def log_message(self, *args: Any) -> None:
                """Redirect HTTP server logging to the octosession logger."""
                if args:
                    logger.debug("OAuth callback server: %s", args[0] % args[1:])

        try:
            self._server = HTTPServer((self._host, self._port), _CallbackHandler)
        except OSError as exc:
            msg = f"Could not bind OAuth callback listener on {self._host}:{self._port}: {exc}"
            raise CallbackServerError(msg, provider="github") from exc

        self._thread = threading.Thread(
            target=self._server.serve_forever,
            kwargs={"poll_interval": self.poll_interval},
            daemon=True,
        )
        self._thread.start()
        logger.debug(
            "OAuth callback server listening on http://%s:%s%s", self._host, self.port, self._path
        )

    def stop(self) -> None:
        """Stop serving and release the socket. Safe to call repeatedly."""
        with self._stop_lock:
            server, thread = self._server, self._thread
            self._server = None
            self._thread = None
        if server is None:
            return
        server.shutdown()
        server.server_close()
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=5)
        logger.debug("OAuth callback server on port %s closed", self._port)
