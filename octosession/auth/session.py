"""GitHub session lifecycle manager.

Owns the single in-memory session, persists it write-through to a
``SessionStore``, and keeps it fresh with two background timers: a
periodic liveness validation and a periodic profile refresh. Background
failures are tolerated up to ``max_retry_attempts`` consecutive times
before the session is evicted.

Timers are ``asyncio`` tasks owned by the manager instance; they are
always started and stopped together.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import asyncio
import json
import logging
import time

from dataclasses import replace
from typing import TYPE_CHECKING, Any

from ..exceptions import (
    ProfileFetchError,
    RefreshInProgress,
    SessionError,
    SessionExpired,
    SessionLoadCorrupt,
    SessionPersistError,
    SessionRefreshError,
    SessionStoreError,
    SessionValidationFailed,
)
from ..models import GitHubUser
from ..types import Session, SessionEventType, SessionStatus, TokenInfo
from .events import SessionEventChannel


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .provider import GitHubProvider
    from .session_store import SessionStore


logger = logging.getLogger("octosession.auth")

TOKEN_KEY = "github_access_token"  # noqa: S105
METADATA_KEY = "github_user_data"

AUTO_REFRESH_INTERVAL = 30 * 60
TOKEN_VALIDATION_INTERVAL = 60 * 60
MAX_RETRY_ATTEMPTS = 3


def encode_metadata(session: Session) -> str:
    """Serialize everything but the access token into the metadata document."""
    return json.dumps(
        {
            "user": session.user.model_dump(mode="json"),
            "token": {
                "token_type": session.token.token_type,
                "scope": session.token.scope,
            },
            "created_at": session.created_at,
            "last_validated_at": session.last_validated_at,
        }
    )


def decode_metadata(access_token: str, raw: str) -> Session:
    """Rebuild a session from the stored token and metadata document.

    Parameters
    ----------
    access_token : str
        Contents of the token slot.
    raw : str
        Contents of the metadata slot.

    Returns
    -------
    Session
        The reconstructed session. A missing ``last_validated_at`` falls
        back to ``created_at`` and is never earlier than it.

    Raises
    ------
    SessionLoadCorrupt
        If the document cannot be parsed or lacks required fields.
    """
    try:
        doc = json.loads(raw)
        user = GitHubUser.model_validate(doc["user"])
        token_meta = doc.get("token") or {}
        created_at = float(doc["created_at"])
        last_validated_at = float(doc.get("last_validated_at") or created_at)
        token = TokenInfo(
            access_token=access_token,
            token_type=str(token_meta.get("token_type", "bearer")),
            scope=str(token_meta.get("scope", "")),
        )
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        msg = f"Stored session metadata is unreadable: {exc.__class__.__name__}"
        raise SessionLoadCorrupt(msg, key=METADATA_KEY) from exc

    return Session(
        user=user,
        token=token,
        created_at=created_at,
        last_validated_at=max(last_validated_at, created_at),
    )


class SessionManager:
    """Manages the GitHub session lifecycle with background maintenance.

    Parameters
    ----------
    provider : GitHubProvider
        Used for liveness probes and profile refreshes.
    store : SessionStore
        Backing store for the token and metadata slots.
    events : SessionEventChannel, optional
        Channel lifecycle events are emitted on (a new one by default).
    refresh_interval : float
        Seconds between background profile refreshes (default 1800).
    validation_interval : float
        Seconds between validation ticks, and the minimum age of
        ``last_validated_at`` before a tick probes the API (default 3600).
    max_retry_attempts : int
        Consecutive failures tolerated before eviction (default 3).
    """

    def __init__(
        self,
        provider: GitHubProvider,
        store: SessionStore,
        events: SessionEventChannel | None = None,
        refresh_interval: float = AUTO_REFRESH_INTERVAL,
        validation_interval: float = TOKEN_VALIDATION_INTERVAL,
        max_retry_attempts: int = MAX_RETRY_ATTEMPTS,
    ) -> None:
        """Initialize the session manager."""
        self.provider = provider
        self.store = store
        self.events = events if events is not None else SessionEventChannel()
        self.refresh_interval = refresh_interval
        self.validation_interval = validation_interval
        self.max_retry_attempts = max_retry_attempts

        self._current_session: Session | None = None
        self._is_refreshing = False
        self._retry_count = 0
        self._validation_task: asyncio.Task[None] | None = None
        self._refresh_task: asyncio.Task[None] | None = None
        self._maintenance_generation = 0
        # Bumped whenever the session is replaced or cleared
        self._session_epoch = 0
        self._write_lock = asyncio.Lock()

    # ── Persistence ──────────────────────────────────────────────────

    async def save_session(self, session: Session) -> None:
        """Persist ``session``, make it current and (re)start maintenance.

        Parameters
        ----------
        session : Session
            The session to store.

        Raises
        ------
        SessionPersistError
            If the store write fails. The in-memory session is left as it
            was.
        """
        async with self._write_lock:
            await self._write_through(session)
            self._session_epoch += 1
            self._current_session = session
            self._retry_count = 0
        self.start_maintenance()
        logger.info("Session saved for %s", session.user.login)

    async def load_session(self) -> Session | None:
        """Restore the persisted session without contacting GitHub.

        Returns
        -------
        Session or None
            The stored session, or None when there is none, the store
            cannot be read, or the stored data is corrupt (in which case
            the leftovers are cleared).
        """
        try:
            access_token = await self.store.get(TOKEN_KEY)
        except SessionStoreError as exc:
            logger.warning("Could not read stored token, treating as logged out: %s", exc)
            return None
        if not access_token:
            logger.debug("No stored session")
            return None

        try:
            raw = await self.store.get(METADATA_KEY)
        except SessionStoreError as exc:
            logger.warning("Could not read stored session data, treating as logged out: %s", exc)
            return None

        if raw is None:
            logger.warning("Stored token has no session data; clearing orphaned token")
            await self.clear_session()
            return None

        try:
            session = decode_metadata(access_token, raw)
        except SessionLoadCorrupt as exc:
            logger.warning("%s; clearing stored session", exc)
            await self.clear_session()
            return None

        self._session_epoch += 1
        self._current_session = session
        self._retry_count = 0
        self.start_maintenance()
        logger.info("Loaded stored session for %s", session.user.login)
        return session

    async def clear_session(self) -> None:
        """Stop maintenance and delete the stored session.

        Store failures are logged and never propagate; the manager always
        ends with no session.
        """
        self.stop_maintenance()
        self._session_epoch += 1
        self._current_session = None
        self._retry_count = 0
        await self._delete_keys(TOKEN_KEY, METADATA_KEY)
        logger.info("Session cleared")

    async def _delete_keys(self, *keys: str) -> None:
        for key in keys:
            try:
                await self.store.delete(key)
            except Exception as exc:
                logger.warning("Could not delete stored %s: %s", key, exc)

    async def _write_through(self, session: Session) -> None:
        try:
            await self.store.set(TOKEN_KEY, session.token.access_token)
            await self.store.set(METADATA_KEY, encode_metadata(session))
        except SessionStoreError as exc:
            msg = f"Could not persist session: {exc.message}"
            raise SessionPersistError(msg, login=session.user.login) from exc

    # ── Validation & refresh ─────────────────────────────────────────

    async def validate_session(self) -> bool:
        """Probe GitHub with the current token.

        On success ``last_validated_at`` is bumped and persisted and the
        retry count resets. On failure the retry count grows; reaching
        ``max_retry_attempts`` evicts the session.

        Returns
        -------
        bool
            True if the token is still accepted. False as well when the
            session was cleared or replaced while the probe was running.
        """
        session = self._current_session
        if session is None:
            return False
        epoch = self._session_epoch

        try:
            await self.provider.get_user_info(session.token.access_token)
        except ProfileFetchError as exc:
            if epoch != self._session_epoch:
                logger.debug("Ignoring failed probe for a session that is gone")
                return False
            error = SessionValidationFailed(f"Session validation failed: {exc.message}")
            error.__cause__ = exc
            await self._record_failure(error)
            return False

        async with self._write_lock:
            current = self._current_session
            if current is None or epoch != self._session_epoch:
                return False
            self._retry_count = 0

            validated = replace(current, last_validated_at=max(time.time(), current.created_at))
            try:
                await self.store.set(METADATA_KEY, encode_metadata(validated))
            except SessionStoreError as exc:
                logger.warning("Validated session but could not persist timestamp: %s", exc)
                return epoch == self._session_epoch

            if epoch != self._session_epoch:
                logger.debug("Session cleared during validation; discarding timestamp")
                await self._delete_keys(METADATA_KEY)
                return False
            self._current_session = validated
        logger.debug("Session for %s validated", current.user.login)
        return True

    async def refresh_user_info(self) -> Session:
        """Replace the user snapshot with a fresh profile from GitHub.

        Returns
        -------
        Session
            The refreshed session.

        Raises
        ------
        RefreshInProgress
            If another refresh is running.
        SessionRefreshError
            If there is no session, the session was cleared or replaced
            while refreshing, or the fetch or store write failed (only
            the last two count toward eviction).
        """
        if self._is_refreshing:
            msg = "A session refresh is already in progress"
            raise RefreshInProgress(msg)
        session = self._current_session
        if session is None:
            msg = "No active session to refresh"
            raise SessionRefreshError(msg)
        epoch = self._session_epoch

        self._is_refreshing = True
        try:
            try:
                user = await self.provider.get_complete_user_profile(session.token.access_token)
                async with self._write_lock:
                    current = self._current_session
                    if current is None or epoch != self._session_epoch:
                        msg = "Session changed while refreshing"
                        raise SessionRefreshError(msg)
                    refreshed = replace(
                        current,
                        user=user,
                        last_validated_at=max(time.time(), current.created_at),
                    )
                    await self._write_through(refreshed)
                    if epoch != self._session_epoch:
                        await self._delete_keys(TOKEN_KEY, METADATA_KEY)
                        msg = "Session cleared while refreshing; discarded refreshed data"
                        raise SessionRefreshError(msg)
                    self._current_session = refreshed
                    self._retry_count = 0
            except (ProfileFetchError, SessionPersistError) as exc:
                error = SessionRefreshError(f"Session refresh failed: {exc.message}")
                if epoch == self._session_epoch:
                    await self._record_failure(error)
                elif isinstance(exc, SessionPersistError):
                    await self._delete_keys(TOKEN_KEY, METADATA_KEY)
                raise error from exc
        finally:
            self._is_refreshing = False

        logger.info("Session for %s refreshed", refreshed.user.login)
        self.events.emit_type(SessionEventType.SESSION_REFRESHED, session=refreshed)
        return refreshed

    async def manual_refresh(self) -> Session | None:
        """User-initiated refresh.

        Returns
        -------
        Session or None
            The refreshed session, or the current one unchanged when a
            refresh is already running.

        Raises
        ------
        SessionRefreshError
            If the refresh fails or there is no session.
        """
        if self._is_refreshing:
            logger.info("Refresh already in progress; returning current session")
            return self._current_session
        return await self.refresh_user_info()

    async def _record_failure(self, error: SessionError) -> bool:
        """Count a background failure; evict once the limit is reached.

        Returns
        -------
        bool
            True if the session was evicted.
        """
        self._retry_count = min(self._retry_count + 1, self.max_retry_attempts)
        logger.warning(
            "%s (attempt %d/%d)", error.message, self._retry_count, self.max_retry_attempts
        )
        if self._retry_count >= self.max_retry_attempts:
            await self._evict(error)
            return True
        self.events.emit_type(SessionEventType.SESSION_ERROR, error=error)
        return False

    async def _evict(self, cause: SessionError) -> None:
        attempts = self._retry_count
        logger.warning("Evicting session after %d consecutive failures", attempts)
        await self.clear_session()
        expired = SessionExpired(
            f"Session expired after {attempts} consecutive failures", attempts=attempts
        )
        expired.__cause__ = cause
        self.events.emit_type(SessionEventType.SESSION_EXPIRED, error=expired)
        self.events.emit_type(SessionEventType.AUTO_LOGOUT)

    # ── Background maintenance ───────────────────────────────────────

    @property
    def maintenance_running(self) -> bool:
        """Whether the background timers are active."""
        return self._validation_task is not None and self._refresh_task is not None

    def start_maintenance(self) -> None:
        """(Re)start both background timers; any previous ones are stopped first."""
        self.stop_maintenance()
        generation = self._maintenance_generation
        self._validation_task = asyncio.create_task(
            self._run_timer(self.validation_interval, self._perform_periodic_validation, generation),
            name="octosession-validation",
        )
        self._refresh_task = asyncio.create_task(
            self._run_timer(self.refresh_interval, self._perform_auto_refresh, generation),
            name="octosession-refresh",
        )
        logger.debug(
            "Session maintenance started (validation every %ss, refresh every %ss)",
            self.validation_interval,
            self.refresh_interval,
        )

    def stop_maintenance(self) -> None:
        """Stop both background timers together."""
        self._maintenance_generation += 1
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        for task in (self._validation_task, self._refresh_task):
            # A timer stopping maintenance from its own tick exits on its own
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._validation_task = None
        self._refresh_task = None

    async def _run_timer(
        self,
        interval: float,
        tick: Callable[[], Awaitable[Any]],
        generation: int,
    ) -> None:
        while generation == self._maintenance_generation:
            await asyncio.sleep(interval)
            if generation != self._maintenance_generation:
                break
            try:
                await tick()
            except SessionError as exc:
                logger.debug("Maintenance tick ended with %s", exc.__class__.__name__)
            except Exception:
                logger.exception("Unexpected error in session maintenance tick")

    async def _perform_periodic_validation(self) -> None:
        session = self._current_session
        if session is None:
            return
        elapsed = time.time() - session.last_validated_at
        if elapsed <= self.validation_interval:
            logger.debug("Session validated %.0fs ago; skipping probe", elapsed)
            return
        await self.validate_session()

    async def _perform_auto_refresh(self) -> None:
        if self._current_session is None or self._is_refreshing:
            return
        await self.refresh_user_info()

    # ── Accessors ────────────────────────────────────────────────────

    def get_current_session(self) -> Session | None:
        """The in-memory session, if any."""
        return self._current_session

    def get_current_user(self) -> GitHubUser | None:
        """The current user snapshot, if any."""
        return self._current_session.user if self._current_session else None

    def get_current_token(self) -> str | None:
        """The current access token, if any."""
        return self._current_session.token.access_token if self._current_session else None

    def is_logged_in(self) -> bool:
        """Whether a session is loaded."""
        return self._current_session is not None

    @property
    def is_refreshing(self) -> bool:
        """Whether a refresh is running."""
        return self._is_refreshing

    @property
    def retry_count(self) -> int:
        """Consecutive background failures since the last success."""
        return self._retry_count

    def get_session_status(self) -> SessionStatus:
        """Snapshot of the manager state for UI polling."""
        session = self._current_session
        if session is None:
            return SessionStatus(
                is_logged_in=False,
                last_validated=None,
                time_since_last_validation=None,
                is_refreshing=self._is_refreshing,
                retry_count=self._retry_count,
            )
        return SessionStatus(
            is_logged_in=True,
            last_validated=session.last_validated_at,
            time_since_last_validation=max(0.0, time.time() - session.last_validated_at),
            is_refreshing=self._is_refreshing,
            retry_count=self._retry_count,
        )

    def destroy(self) -> None:
        """Stop maintenance and drop listeners; persisted data is kept."""
        self.stop_maintenance()
        self.events.clear()
        logger.debug("Session manager destroyed")
