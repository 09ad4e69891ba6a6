"""octosession exception hierarchy.

All octosession-specific exceptions inherit from OctoSessionException, enabling
catch-all handling while supporting specific error types.
"""

from __future__ import annotations

from typing import Any


class OctoSessionException(Exception):
    """Base exception for all octosession errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize octosession exception.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context (provider, flow_id, key, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class ConfigurationError(OctoSessionException):
    """OAuth configuration is missing or still holds placeholder values.

    Raised at startup; the host keeps running with OAuth disabled.
    """

    def __init__(self, message: str, setting: str | None = None, **context: Any) -> None:
        """Initialize configuration error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        setting : str, optional
            The offending setting name (e.g. ``"client_id"``).
        **context : Any
            Additional context.
        """
        super().__init__(message, setting=setting, **context)
        self.setting = setting


class AuthenticationError(OctoSessionException):
    """Base exception for all authentication failures.

    Raised when an authorization attempt, the code exchange,
    or a profile fetch fails.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize authentication error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The OAuth2 provider name (e.g., "github").
        flow_id : str, optional
            The unique identifier of the auth flow that failed.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, flow_id=flow_id, **context)
        self.provider = provider
        self.flow_id = flow_id


class ProviderAuthorizationError(AuthenticationError):
    """The provider redirected back with an ``error`` parameter.

    Typically ``access_denied`` when the user declines consent.
    """

    def __init__(
        self,
        message: str,
        error: str,
        error_description: str | None = None,
        provider: str | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize provider authorization error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        error : str
            The provider's error code.
        error_description : str, optional
            The provider's error description.
        provider : str, optional
            The OAuth2 provider name.
        flow_id : str, optional
            The unique identifier of the auth flow.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, flow_id=flow_id, error=error, **context)
        self.error = error
        self.error_description = error_description


class StateMismatchError(AuthenticationError):
    """Callback ``state`` did not match the one issued for the attempt.

    Indicates a possible cross-site request forgery.
    """


class MissingAuthorizationCode(AuthenticationError):
    """Callback carried neither an error nor an authorization code."""


class AuthorizationCancelled(AuthenticationError):
    """Authorization attempt was cancelled through ``cancel_auth()``."""


class AuthorizationSuperseded(AuthenticationError):
    """Authorization attempt was replaced by a newer ``login()`` call."""


class AuthorizationTimeout(AuthenticationError):
    """No authorization callback arrived within the allowed window."""

    def __init__(
        self,
        message: str,
        timeout: float,
        provider: str | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize timeout error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        timeout : float
            The timeout value in seconds.
        provider : str, optional
            The OAuth2 provider name.
        flow_id : str, optional
            The unique identifier of the auth flow.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, flow_id=flow_id, timeout=timeout, **context)
        self.timeout = timeout


class CallbackServerError(AuthenticationError):
    """The local callback listener could not be started."""


class TokenError(AuthenticationError):
    """Base exception for token-related failures."""


class TokenExchangeError(TokenError):
    """Exchanging the authorization code for an access token failed.

    Raised on transport errors, an ``error`` field in the response,
    or a response without an access token.
    """


class ProfileFetchError(AuthenticationError):
    """Fetching the authenticated user's profile or emails failed."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        provider: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize profile fetch error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        status_code : int, optional
            HTTP status returned by the provider, if any.
        provider : str, optional
            The OAuth2 provider name.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, status_code=status_code, **context)
        self.status_code = status_code


class SessionError(OctoSessionException):
    """Base exception for session lifecycle failures."""


class SessionPersistError(SessionError):
    """Writing the session to the store failed."""


class SessionLoadCorrupt(SessionError):
    """The stored session is incomplete or cannot be parsed."""


class SessionValidationFailed(SessionError):
    """A liveness probe of the current token failed (recoverable)."""


class SessionExpired(SessionError):
    """The session was evicted after repeated failures (terminal)."""


class SessionRefreshError(SessionError):
    """Refreshing the user snapshot failed."""


class RefreshInProgress(SessionError):
    """A refresh is already running; informational rather than fatal."""


class SessionStoreError(OctoSessionException):
    """The session store's backing medium failed.

    Raised by store backends; the session manager decides recovery.
    """

    def __init__(self, message: str, key: str | None = None, **context: Any) -> None:
        """Initialize store error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        key : str, optional
            The store key involved.
        **context : Any
            Additional context.
        """
        super().__init__(message, key=key, **context)
        self.key = key
