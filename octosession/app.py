"""Application facade exposed to the presentation layer.

``AuthApp`` wires configuration, the GitHub provider, the authorization
flow, the session store and the session manager together, and turns
every outcome into a plain result object so the UI never has to handle
exceptions. Session lifecycle events are translated into
``SessionStatusChange`` notifications for UI subscribers.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .auth.events import SessionEventChannel
from .auth.flow import AuthFlowManager
from .auth.provider import GitHubProvider
from .auth.session import SessionManager
from .auth.session_store import create_session_store
from .config import get_settings, get_setup_instructions
from .exceptions import ConfigurationError, OctoSessionException, SessionError
from .types import SessionEventType, SessionStatus, TokenInfo, create_session


if TYPE_CHECKING:
    from collections.abc import Callable

    from .auth.session_store import SessionStore
    from .config import OctoSessionSettings
    from .models import GitHubUser
    from .types import SessionEvent


logger = logging.getLogger("octosession")

_NOT_CONFIGURED = "GitHub OAuth is not configured"
_NOT_LOGGED_IN = "Not logged in"


def _user_dict(user: GitHubUser | None) -> dict[str, Any] | None:
    return user.model_dump(mode="json") if user is not None else None


@dataclass
class LoginResult:
    """Outcome of ``AuthApp.login``."""

    success: bool
    user: GitHubUser | None = None
    token: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return {
            "success": self.success,
            "user": _user_dict(self.user),
            "token": self.token,
            "error": self.error,
        }


@dataclass
class LogoutResult:
    """Outcome of ``AuthApp.logout``."""

    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return {"success": self.success, "error": self.error}


@dataclass
class StatusResult:
    """Outcome of ``AuthApp.get_status``."""

    is_logged_in: bool
    user: GitHubUser | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return {"is_logged_in": self.is_logged_in, "user": _user_dict(self.user), "error": self.error}


@dataclass
class RefreshResult:
    """Outcome of ``AuthApp.manual_refresh``."""

    success: bool
    user: GitHubUser | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return {"success": self.success, "user": _user_dict(self.user), "error": self.error}


@dataclass(frozen=True)
class SessionStatusChange:
    """Notification sent to UI subscribers when the login state changes."""

    is_logged_in: bool
    user: GitHubUser | None = None


class AuthApp:
    """GitHub login facade for a desktop host.

    Parameters
    ----------
    settings : OctoSessionSettings, optional
        Configuration (defaults to ``get_settings()``).
    store : SessionStore, optional
        Session store override (defaults to the configured backend).
    provider : GitHubProvider, optional
        Provider override (defaults to one built from settings).
    opener : callable, optional
        Browser opener passed to the flow coordinator.
    """

    def __init__(
        self,
        settings: OctoSessionSettings | None = None,
        store: SessionStore | None = None,
        provider: GitHubProvider | None = None,
        opener: Callable[[str], Any] | None = None,
    ) -> None:
        """Initialize the facade; call ``initialize_oauth()`` before use."""
        self.settings = settings if settings is not None else get_settings()
        self._store = store
        self._provider = provider
        self._opener = opener

        self.provider: GitHubProvider | None = None
        self.flow: AuthFlowManager | None = None
        self.session_manager: SessionManager | None = None
        self.setup_error: str | None = None
        self._listeners: list[Callable[[SessionStatusChange], Any]] = []

    @property
    def oauth_enabled(self) -> bool:
        """Whether OAuth was configured successfully."""
        return self.session_manager is not None

    async def initialize_oauth(self) -> bool:
        """Validate configuration, wire components and restore the stored session.

        Configuration errors are logged together with setup instructions
        and leave OAuth disabled instead of raising.

        Returns
        -------
        bool
            True if OAuth is enabled.
        """
        github = self.settings.github
        try:
            github.validate_credentials()
            provider = self._provider or GitHubProvider.from_settings(github)
            flow = AuthFlowManager(
                provider,
                redirect_uri=github.redirect_uri,
                opener=self._opener,
                auth_timeout=github.auth_timeout_seconds,
            )
        except ConfigurationError as exc:
            self.setup_error = str(exc)
            logger.error("%s: %s", _NOT_CONFIGURED, exc)
            logger.error(get_setup_instructions(github.redirect_uri))
            return False

        session_cfg = self.settings.session
        store = self._store or create_session_store(
            session_cfg.store_backend,
            service_name=session_cfg.service_name,
            data_dir=session_cfg.resolved_data_dir,
        )
        events = SessionEventChannel()
        events.subscribe(self._on_session_event)

        self.provider = provider
        self.flow = flow
        self.session_manager = SessionManager(
            provider,
            store,
            events=events,
            refresh_interval=session_cfg.refresh_interval_seconds,
            validation_interval=session_cfg.validation_interval_seconds,
            max_retry_attempts=session_cfg.max_retry_attempts,
        )
        self.setup_error = None

        session = await self.session_manager.load_session()
        if session is not None:
            logger.info("Restored session for %s", session.user.login)
        return True

    def _disabled_message(self) -> str:
        return self.setup_error or _NOT_CONFIGURED

    async def login(self) -> LoginResult:
        """Sign in through the browser and persist the new session."""
        if self.session_manager is None or self.flow is None or self.provider is None:
            return LoginResult(success=False, error=self._disabled_message())

        try:
            auth = await self.flow.login()
            tokens = await self.provider.exchange_code_for_token(auth.code or "")
            user = await self.provider.get_complete_user_profile(tokens.access_token)
            session = create_session(
                user,
                TokenInfo(
                    access_token=tokens.access_token,
                    token_type=tokens.token_type,
                    scope=tokens.scope,
                ),
            )
            await self.session_manager.save_session(session)
        except OctoSessionException as exc:
            logger.warning("Login failed: %s", exc)
            return LoginResult(success=False, error=str(exc))

        logger.info("Logged in as %s", user.login)
        self.session_manager.events.emit_type(SessionEventType.LOGGED_IN, session=session)
        return LoginResult(success=True, user=user, token=tokens.access_token)

    async def logout(self) -> LogoutResult:
        """Cancel any pending sign-in and clear the stored session."""
        if self.session_manager is None or self.flow is None:
            return LogoutResult(success=False, error=self._disabled_message())

        self.flow.cancel_auth()
        await self.session_manager.clear_session()
        self.session_manager.events.emit_type(SessionEventType.LOGGED_OUT)
        return LogoutResult(success=True)

    def get_status(self) -> StatusResult:
        """Current login state."""
        if self.session_manager is None:
            return StatusResult(is_logged_in=False, error=self._disabled_message())
        return StatusResult(
            is_logged_in=self.session_manager.is_logged_in(),
            user=self.session_manager.get_current_user(),
        )

    async def manual_refresh(self) -> RefreshResult:
        """Refresh the user profile on demand."""
        if self.session_manager is None:
            return RefreshResult(success=False, error=self._disabled_message())
        if not self.session_manager.is_logged_in():
            return RefreshResult(success=False, error=_NOT_LOGGED_IN)

        try:
            session = await self.session_manager.manual_refresh()
        except SessionError as exc:
            logger.warning("Manual refresh failed: %s", exc)
            return RefreshResult(success=False, error=str(exc))
        if session is None:
            return RefreshResult(success=False, error=_NOT_LOGGED_IN)
        return RefreshResult(success=True, user=session.user)

    def get_session_status(self) -> SessionStatus:
        """Session manager snapshot for diagnostics."""
        if self.session_manager is None:
            return SessionStatus(
                is_logged_in=False,
                last_validated=None,
                time_since_last_validation=None,
                is_refreshing=False,
                retry_count=0,
            )
        return self.session_manager.get_session_status()

    async def get_token(self) -> str | None:
        """Return the access token after confirming GitHub still accepts it."""
        if self.session_manager is None or not self.session_manager.is_logged_in():
            return None
        if not await self.session_manager.validate_session():
            return None
        return self.session_manager.get_current_token()

    def subscribe(self, callback: Callable[[SessionStatusChange], Any]) -> Callable[[], None]:
        """Register a login-state listener; returns an unsubscribe function."""
        if callback not in self._listeners:
            self._listeners.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Callable[[SessionStatusChange], Any]) -> None:
        """Remove a login-state listener."""
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _on_session_event(self, event: SessionEvent) -> None:
        if event.type in (SessionEventType.LOGGED_IN, SessionEventType.SESSION_REFRESHED):
            user = event.session.user if event.session is not None else None
            change = SessionStatusChange(is_logged_in=True, user=user)
        elif event.type in (SessionEventType.LOGGED_OUT, SessionEventType.AUTO_LOGOUT):
            change = SessionStatusChange(is_logged_in=False)
        else:
            return
        for callback in list(self._listeners):
            try:
                callback(change)
            except Exception:
                logger.exception("Session status listener failed")

    async def destroy(self) -> None:
        """Shut down timers and connections; persisted data is kept."""
        if self.flow is not None:
            self.flow.cancel_auth()
        if self.session_manager is not None:
            self.session_manager.destroy()
        if self.provider is not None:
            await self.provider.close()
        self._listeners.clear()
        logger.debug("AuthApp destroyed")
