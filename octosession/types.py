"""Type definitions for octosession session state.

Shared types used by the flow coordinator, the session manager and the
application facade.
"""

from __future__ import annotations

import time

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from .models import GitHubUser


@dataclass(frozen=True)
class TokenInfo:
    """Access token held by a session.

    Attributes
    ----------
    access_token : str
        The bearer credential. Only ever persisted in the store's
        secret slot.
    token_type : str
        Token type as reported by the provider, typically "bearer".
    scope : str
        Granted scopes as returned by the provider.
    """

    access_token: str
    token_type: str = "bearer"  # noqa: S105
    scope: str = ""

    def __repr__(self) -> str:
        """Represent the token without leaking the secret."""
        return f"TokenInfo(access_token='***', token_type={self.token_type!r}, scope={self.scope!r})"


@dataclass(frozen=True)
class Session:
    """The locally persisted unit of authentication state.

    Attributes
    ----------
    user : GitHubUser
        Snapshot of the provider profile; replaced wholesale on refresh.
    token : TokenInfo
        The access token and its non-secret metadata.
    created_at : float
        Unix timestamp of authentication.
    last_validated_at : float
        Unix timestamp of the last successful validation or refresh.
    """

    user: GitHubUser
    token: TokenInfo
    created_at: float
    last_validated_at: float


def create_session(user: GitHubUser, token: TokenInfo, now: float | None = None) -> Session:
    """Create a new session stamped with the current time.

    Parameters
    ----------
    user : GitHubUser
        The authenticated user's profile.
    token : TokenInfo
        The freshly exchanged token.
    now : float, optional
        Timestamp override (defaults to ``time.time()``).

    Returns
    -------
    Session
        A session whose ``created_at`` equals ``last_validated_at``.
    """
    stamp = time.time() if now is None else now
    return Session(user=user, token=token, created_at=stamp, last_validated_at=stamp)


@dataclass
class AuthResult:
    """Result of one authorization attempt.

    Attributes
    ----------
    success : bool
        Whether an authorization code was obtained.
    code : str or None
        The authorization code.
    state : str or None
        The state parameter echoed by the provider.
    error : str or None
        Error message if the attempt failed.
    """

    success: bool
    code: str | None = None
    state: str | None = None
    error: str | None = None


class AuthFlowState(str, Enum):
    """State of an OAuth2 authorization attempt."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class SessionStatus:
    """Read-only snapshot of the session manager for UI polling."""

    is_logged_in: bool
    last_validated: float | None
    time_since_last_validation: float | None
    is_refreshing: bool
    retry_count: int

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return {
            "is_logged_in": self.is_logged_in,
            "last_validated": self.last_validated,
            "time_since_last_validation": self.time_since_last_validation,
            "is_refreshing": self.is_refreshing,
            "retry_count": self.retry_count,
        }


class SessionEventType(str, Enum):
    """Kinds of notification sent from the session manager to the UI."""

    SESSION_EXPIRED = "session_expired"
    SESSION_REFRESHED = "session_refreshed"
    SESSION_ERROR = "session_error"
    AUTO_LOGOUT = "auto_logout"
    LOGGED_IN = "logged_in"
    LOGGED_OUT = "logged_out"


@dataclass(frozen=True)
class SessionEvent:
    """A single lifecycle notification.

    Attributes
    ----------
    type : SessionEventType
        What happened.
    session : Session or None
        The session after the transition (refresh, login).
    error : BaseException or None
        The failure behind a ``SESSION_ERROR``.
    timestamp : float
        Unix timestamp when the event was created.
    """

    type: SessionEventType
    session: Session | None = None
    error: BaseException | None = None
    timestamp: float = field(default_factory=time.time)
