"""OAuth2 authorization-code flow coordinator.

Drives one authorization attempt at a time: issues the anti-forgery
state, binds the callback listener on the redirect URI, opens the
authorization URL in the external browser and waits for the redirect.
The listener is closed before the attempt's future settles on every exit
path (success, provider error, timeout, cancellation, supersession).
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import asyncio
import logging
import secrets
import webbrowser

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from ..exceptions import (
    AuthenticationError,
    AuthorizationCancelled,
    AuthorizationSuperseded,
    AuthorizationTimeout,
    ConfigurationError,
    StateMismatchError,
)
from ..types import AuthFlowState, AuthResult
from .callback_server import CallbackOutcome, OAuthCallbackServer


if TYPE_CHECKING:
    from collections.abc import Callable

    from .provider import GitHubProvider


logger = logging.getLogger("octosession.auth")

DEFAULT_AUTH_TIMEOUT = 5 * 60


def parse_redirect_uri(redirect_uri: str) -> tuple[str, int, str]:
    """Split a redirect URI into the listener's host, port and path.

    Parameters
    ----------
    redirect_uri : str
        An ``http://`` or ``https://`` URL.

    Returns
    -------
    tuple[str, int, str]
        Host (``localhost`` when absent), port (80/443 when absent) and
        path (``/`` when absent).

    Raises
    ------
    ConfigurationError
        If the URI is not an http(s) URL.
    """
    parsed = urlparse(redirect_uri)
    if parsed.scheme not in ("http", "https"):
        msg = f"Redirect URI must be an http(s) URL: {redirect_uri!r}"
        raise ConfigurationError(msg, setting="redirect_uri")
    try:
        port = parsed.port
    except ValueError as exc:
        msg = f"Redirect URI has an invalid port: {redirect_uri!r}"
        raise ConfigurationError(msg, setting="redirect_uri") from exc
    if port is None:
        port = 443 if parsed.scheme == "https" else 80
    return parsed.hostname or "localhost", port, parsed.path or "/"


@dataclass
class _PendingAuth:
    """Book-keeping for the single in-flight attempt."""

    flow_id: str
    state: str
    future: asyncio.Future[AuthResult]
    server: OAuthCallbackServer | None = None
    timer: asyncio.TimerHandle | None = None
    finished: bool = field(default=False)


class AuthFlowManager:
    """Coordinates GitHub authorization attempts.

    Parameters
    ----------
    provider : GitHubProvider
        Builds the authorization URL.
    redirect_uri : str
        The registered callback URL; the listener binds its host, port
        and path.
    opener : callable, optional
        Opens a URL in the external browser (default ``webbrowser.open``).
    auth_timeout : float
        Seconds to wait for the callback (default 300).
    """

    def __init__(
        self,
        provider: GitHubProvider,
        redirect_uri: str,
        opener: Callable[[str], Any] | None = None,
        auth_timeout: float = DEFAULT_AUTH_TIMEOUT,
    ) -> None:
        """Initialize the auth flow manager."""
        self.provider = provider
        self.redirect_uri = redirect_uri
        self.opener = opener or webbrowser.open
        self.auth_timeout = auth_timeout
        self._host, self._port, self._path = parse_redirect_uri(redirect_uri)

        self._flow_state = AuthFlowState.PENDING
        self._pending: _PendingAuth | None = None

    @property
    def flow_state(self) -> AuthFlowState:
        """State of the most recent attempt."""
        return self._flow_state

    @property
    def is_pending(self) -> bool:
        """Whether an attempt is waiting for its callback."""
        return self._pending is not None

    async def login(self) -> AuthResult:
        """Run one authorization attempt.

        A pending attempt is failed with ``AuthorizationSuperseded`` and
        its listener closed before this one binds.

        Returns
        -------
        AuthResult
            ``success=True`` with the authorization ``code`` and ``state``.

        Raises
        ------
        ProviderAuthorizationError
            GitHub redirected back with an ``error`` (e.g. ``access_denied``).
        StateMismatchError
            The returned state differs from the issued one.
        MissingAuthorizationCode
            The callback carried no code.
        AuthorizationTimeout
            No callback arrived within ``auth_timeout``.
        AuthorizationCancelled
            ``cancel_auth()`` was called.
        AuthorizationSuperseded
            A newer ``login()`` replaced this attempt.
        CallbackServerError
            The callback port could not be bound.
        """
        previous = self._pending
        if previous is not None:
            logger.info("Auth flow %s superseded by a new login attempt", previous.flow_id)
            msg = "Authorization attempt superseded by a newer login"
            self._settle(
                previous,
                error=AuthorizationSuperseded(msg, provider="github", flow_id=previous.flow_id),
                flow_state=AuthFlowState.CANCELLED,
            )

        loop = asyncio.get_running_loop()
        attempt = _PendingAuth(
            flow_id=secrets.token_urlsafe(8),
            state=secrets.token_hex(32),
            future=loop.create_future(),
        )
        self._pending = attempt
        self._flow_state = AuthFlowState.IN_PROGRESS

        def _from_server_thread(outcome: CallbackOutcome) -> None:
            loop.call_soon_threadsafe(self._on_callback, attempt, outcome)

        attempt.server = OAuthCallbackServer(
            host=self._host,
            port=self._port,
            path=self._path,
            expected_state=attempt.state,
            on_result=_from_server_thread,
        )
        try:
            attempt.server.start()
        except AuthenticationError:
            self._release(attempt)
            self._flow_state = AuthFlowState.FAILED
            raise

        attempt.timer = loop.call_later(self.auth_timeout, self._on_timeout, attempt)

        authorize_url = self.provider.build_authorize_url(self.redirect_uri, attempt.state)
        logger.info("Auth flow %s: opening browser for GitHub authorization", attempt.flow_id)
        try:
            self.opener(authorize_url)
        except Exception as exc:
            msg = f"Could not open the browser: {exc}"
            self._settle(
                attempt,
                error=AuthenticationError(msg, provider="github", flow_id=attempt.flow_id),
                flow_state=AuthFlowState.FAILED,
            )

        try:
            return await attempt.future
        except asyncio.CancelledError:
            self._settle(attempt, flow_state=AuthFlowState.CANCELLED)
            raise

    def cancel_auth(self) -> None:
        """Cancel the pending attempt, if any. Idempotent."""
        attempt = self._pending
        if attempt is None:
            return
        logger.info("Auth flow %s cancelled", attempt.flow_id)
        msg = "Authorization was cancelled"
        self._settle(
            attempt,
            error=AuthorizationCancelled(msg, provider="github", flow_id=attempt.flow_id),
            flow_state=AuthFlowState.CANCELLED,
        )

    def _on_callback(self, attempt: _PendingAuth, outcome: CallbackOutcome) -> None:
        if isinstance(outcome, AuthResult):
            logger.info("Auth flow %s received authorization code", attempt.flow_id)
            self._settle(attempt, result=outcome, flow_state=AuthFlowState.COMPLETED)
            return
        outcome.flow_id = attempt.flow_id
        outcome.context["flow_id"] = attempt.flow_id
        if isinstance(outcome, StateMismatchError):
            logger.warning("Auth flow %s: %s", attempt.flow_id, outcome.message)
        else:
            logger.info("Auth flow %s failed: %s", attempt.flow_id, outcome.message)
        self._settle(attempt, error=outcome, flow_state=AuthFlowState.FAILED)

    def _on_timeout(self, attempt: _PendingAuth) -> None:
        logger.info("Auth flow %s timed out after %ss", attempt.flow_id, self.auth_timeout)
        msg = f"No authorization callback received within {self.auth_timeout}s"
        self._settle(
            attempt,
            error=AuthorizationTimeout(
                msg, timeout=self.auth_timeout, provider="github", flow_id=attempt.flow_id
            ),
            flow_state=AuthFlowState.TIMED_OUT,
        )

    def _release(self, attempt: _PendingAuth) -> None:
        """Close the listener and timer of ``attempt``."""
        if attempt.timer is not None:
            attempt.timer.cancel()
            attempt.timer = None
        if attempt.server is not None:
            attempt.server.stop()
            attempt.server = None
        if self._pending is attempt:
            self._pending = None

    def _settle(
        self,
        attempt: _PendingAuth,
        result: AuthResult | None = None,
        error: BaseException | None = None,
        flow_state: AuthFlowState | None = None,
    ) -> None:
        """Release the attempt's resources, then resolve its future once."""
        if attempt.finished:
            return
        attempt.finished = True
        self._release(attempt)
        if flow_state is not None:
            self._flow_state = flow_state
        if attempt.future.done():
            return
        if error is not None:
            attempt.future.set_exception(error)
        elif result is not None:
            attempt.future.set_result(result)
        else:
            attempt.future.cancel()
