"""Tests for the authorization flow coordinator over real loopback sockets."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

import asyncio
import re
import socket

from urllib.parse import parse_qs, urlparse

import pytest

from octosession.auth.flow import AuthFlowManager, parse_redirect_uri
from octosession.auth.provider import GitHubProvider
from octosession.exceptions import (
    AuthenticationError,
    AuthorizationCancelled,
    AuthorizationSuperseded,
    AuthorizationTimeout,
    CallbackServerError,
    ConfigurationError,
    MissingAuthorizationCode,
    ProviderAuthorizationError,
    StateMismatchError,
)
from octosession.types import AuthFlowState
from tests.constants import CLIENT_ID, CLIENT_SECRET, LOGIN_TIMEOUT, SHORT_AUTH_TIMEOUT
from tests.helpers import callback_opener, can_bind, wait_until


# ── Fixtures ────────────────────────────────────────────────────────


@pytest.fixture()
def provider() -> GitHubProvider:
    """A GitHub provider with test credentials."""
    return GitHubProvider(client_id=CLIENT_ID, client_secret=CLIENT_SECRET)


def _make_flow(provider: GitHubProvider, redirect_uri: str, opener=None, **kwargs) -> AuthFlowManager:
    return AuthFlowManager(provider, redirect_uri, opener=opener or (lambda _url: True), **kwargs)


async def _login(flow: AuthFlowManager):
    return await asyncio.wait_for(flow.login(), LOGIN_TIMEOUT)


# ── Redirect URI parsing ────────────────────────────────────────────


class TestParseRedirectUri:
    """Tests for parse_redirect_uri()."""

    def test_explicit_parts(self) -> None:
        """Host, port and path are taken verbatim."""
        assert parse_redirect_uri("http://localhost:3000/auth/callback") == (
            "localhost",
            3000,
            "/auth/callback",
        )

    def test_default_ports(self) -> None:
        """Missing ports default by scheme."""
        assert parse_redirect_uri("http://127.0.0.1/cb")[1] == 80
        assert parse_redirect_uri("https://127.0.0.1/cb")[1] == 443

    def test_default_path(self) -> None:
        """A bare origin listens on '/'."""
        assert parse_redirect_uri("http://127.0.0.1:8765")[2] == "/"

    def test_rejects_non_http(self) -> None:
        """Custom schemes cannot be served by a loopback listener."""
        with pytest.raises(ConfigurationError):
            parse_redirect_uri("myapp://callback")


# ── Login outcomes ──────────────────────────────────────────────────


class TestAuthFlowLogin:
    """Tests for AuthFlowManager.login()."""

    @pytest.mark.asyncio
    async def test_successful_login(
        self, provider: GitHubProvider, redirect_uri: str, free_port: int
    ) -> None:
        """A valid callback resolves with the code and the issued state."""
        opener = callback_opener(redirect_uri)
        flow = _make_flow(provider, redirect_uri, opener)

        result = await _login(flow)

        assert result.success is True
        assert result.code == "abc123"
        assert re.fullmatch(r"[0-9a-f]{64}", result.state or "")
        assert flow.flow_state == AuthFlowState.COMPLETED
        assert not flow.is_pending
        assert can_bind(free_port)

    @pytest.mark.asyncio
    async def test_authorize_url_parameters(
        self, provider: GitHubProvider, redirect_uri: str
    ) -> None:
        """The browser is sent to GitHub with the exact authorization parameters."""
        opener = callback_opener(redirect_uri)
        flow = _make_flow(provider, redirect_uri, opener)

        result = await _login(flow)

        (url,) = opener.opened  # type: ignore[attr-defined]
        parsed = urlparse(url)
        params = parse_qs(parsed.query)
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == provider.authorize_url
        assert params["client_id"] == [CLIENT_ID]
        assert params["redirect_uri"] == [redirect_uri]
        assert params["scope"] == ["user:email read:user"]
        assert params["response_type"] == ["code"]
        assert params["state"] == [result.state]

    @pytest.mark.asyncio
    async def test_state_differs_per_attempt(
        self, provider: GitHubProvider, redirect_uri: str
    ) -> None:
        """Each attempt issues a fresh state."""
        flow = _make_flow(provider, redirect_uri, callback_opener(redirect_uri))
        first = await _login(flow)
        second = await _login(flow)
        assert first.state != second.state

    @pytest.mark.asyncio
    async def test_state_mismatch_rejected(
        self, provider: GitHubProvider, redirect_uri: str, free_port: int
    ) -> None:
        """A callback carrying any other state fails with StateMismatchError."""
        flow = _make_flow(provider, redirect_uri, callback_opener(redirect_uri, state="forged"))

        with pytest.raises(StateMismatchError) as exc_info:
            await _login(flow)

        assert exc_info.value.flow_id is not None
        assert flow.flow_state == AuthFlowState.FAILED
        assert can_bind(free_port)

    @pytest.mark.asyncio
    async def test_access_denied(
        self, provider: GitHubProvider, redirect_uri: str, free_port: int
    ) -> None:
        """A provider denial rejects with the provider's error code."""
        opener = callback_opener(
            redirect_uri,
            code=None,
            state=None,
            error="access_denied",
            error_description="The user has denied your application access.",
        )
        flow = _make_flow(provider, redirect_uri, opener)

        with pytest.raises(ProviderAuthorizationError, match="access_denied") as exc_info:
            await _login(flow)

        assert exc_info.value.error == "access_denied"
        assert can_bind(free_port)

    @pytest.mark.asyncio
    async def test_missing_code(
        self, provider: GitHubProvider, redirect_uri: str, free_port: int
    ) -> None:
        """A callback without a code fails with MissingAuthorizationCode."""
        flow = _make_flow(provider, redirect_uri, callback_opener(redirect_uri, code=None))

        with pytest.raises(MissingAuthorizationCode):
            await _login(flow)
        assert can_bind(free_port)

    @pytest.mark.asyncio
    async def test_timeout(self, provider: GitHubProvider, redirect_uri: str, free_port: int) -> None:
        """No callback within the window rejects with a timeout and frees the port."""
        flow = _make_flow(provider, redirect_uri, auth_timeout=SHORT_AUTH_TIMEOUT)

        with pytest.raises(AuthorizationTimeout) as exc_info:
            await _login(flow)

        assert exc_info.value.timeout == SHORT_AUTH_TIMEOUT
        assert flow.flow_state == AuthFlowState.TIMED_OUT
        assert not flow.is_pending
        assert can_bind(free_port)

    @pytest.mark.asyncio
    async def test_port_reusable_after_timeout(
        self, provider: GitHubProvider, redirect_uri: str
    ) -> None:
        """A new attempt binds the same port right after a timed-out one."""
        flow = _make_flow(provider, redirect_uri, auth_timeout=SHORT_AUTH_TIMEOUT)
        with pytest.raises(AuthorizationTimeout):
            await _login(flow)

        flow.opener = callback_opener(redirect_uri)
        result = await _login(flow)
        assert result.code == "abc123"

    @pytest.mark.asyncio
    async def test_browser_failure(
        self, provider: GitHubProvider, redirect_uri: str, free_port: int
    ) -> None:
        """An opener that raises fails the attempt and closes the listener."""

        def broken_opener(_url: str) -> bool:
            msg = "no browser available"
            raise RuntimeError(msg)

        flow = _make_flow(provider, redirect_uri, broken_opener)

        with pytest.raises(AuthenticationError, match="no browser available"):
            await _login(flow)
        assert flow.flow_state == AuthFlowState.FAILED
        assert can_bind(free_port)

    @pytest.mark.asyncio
    async def test_port_in_use(self, provider: GitHubProvider, redirect_uri: str, free_port: int) -> None:
        """A busy callback port fails fast with CallbackServerError."""
        flow = _make_flow(provider, redirect_uri)
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", free_port))
            blocker.listen(1)
            with pytest.raises(CallbackServerError):
                await _login(flow)
        assert not flow.is_pending


# ── Cancellation and supersession ───────────────────────────────────


class TestAuthFlowCancellation:
    """Tests for cancel_auth() and concurrent login() calls."""

    @pytest.mark.asyncio
    async def test_cancel_auth(self, provider: GitHubProvider, redirect_uri: str, free_port: int) -> None:
        """cancel_auth() rejects the pending attempt immediately."""
        flow = _make_flow(provider, redirect_uri)
        task = asyncio.create_task(flow.login())
        await wait_until(lambda: flow.is_pending)

        flow.cancel_auth()

        with pytest.raises(AuthorizationCancelled):
            await task
        assert flow.flow_state == AuthFlowState.CANCELLED
        assert can_bind(free_port)

    def test_cancel_without_pending_is_noop(
        self, provider: GitHubProvider, redirect_uri: str
    ) -> None:
        """cancel_auth() with nothing pending does nothing."""
        flow = _make_flow(provider, redirect_uri)
        flow.cancel_auth()
        flow.cancel_auth()
        assert flow.flow_state == AuthFlowState.PENDING

    @pytest.mark.asyncio
    async def test_cancel_twice(self, provider: GitHubProvider, redirect_uri: str) -> None:
        """A second cancel_auth() is a no-op."""
        flow = _make_flow(provider, redirect_uri)
        task = asyncio.create_task(flow.login())
        await wait_until(lambda: flow.is_pending)

        flow.cancel_auth()
        flow.cancel_auth()

        with pytest.raises(AuthorizationCancelled):
            await task

    @pytest.mark.asyncio
    async def test_second_login_supersedes_first(
        self, provider: GitHubProvider, redirect_uri: str, free_port: int
    ) -> None:
        """Starting a new login fails the pending one before binding again."""
        flow = _make_flow(provider, redirect_uri)
        first = asyncio.create_task(flow.login())
        await wait_until(lambda: flow.is_pending)

        second = asyncio.create_task(flow.login())

        with pytest.raises(AuthorizationSuperseded):
            await first
        await wait_until(lambda: flow.is_pending)
        assert not second.done()
        assert not can_bind(free_port)

        flow.cancel_auth()
        with pytest.raises(AuthorizationCancelled):
            await second
        assert can_bind(free_port)

    @pytest.mark.asyncio
    async def test_superseding_login_can_complete(
        self, provider: GitHubProvider, redirect_uri: str
    ) -> None:
        """The newer attempt completes normally once it receives its callback."""
        flow = _make_flow(provider, redirect_uri)
        first = asyncio.create_task(flow.login())
        await wait_until(lambda: flow.is_pending)

        flow.opener = callback_opener(redirect_uri)
        result = await _login(flow)

        with pytest.raises(AuthorizationSuperseded):
            await first
        assert result.code == "abc123"

    @pytest.mark.asyncio
    async def test_task_cancellation_closes_listener(
        self, provider: GitHubProvider, redirect_uri: str, free_port: int
    ) -> None:
        """Cancelling the awaiting task tears the attempt down."""
        flow = _make_flow(provider, redirect_uri)
        task = asyncio.create_task(flow.login())
        await wait_until(lambda: flow.is_pending)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not flow.is_pending
        assert can_bind(free_port)
