"""octosession - GitHub OAuth login and session lifecycle for desktop apps."""

from __future__ import annotations

from .app import (
    AuthApp,
    LoginResult,
    LogoutResult,
    RefreshResult,
    SessionStatusChange,
    StatusResult,
)
from .auth import (
    AuthFlowManager,
    EncryptedFileSessionStore,
    GitHubProvider,
    KeyringSessionStore,
    MemorySessionStore,
    SessionEventChannel,
    SessionManager,
    SessionStore,
    create_session_store,
)
from .config import OctoSessionSettings, get_settings
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    OctoSessionException,
    SessionError,
)
from .models import GitHubUser
from .types import (
    AuthResult,
    Session,
    SessionEvent,
    SessionEventType,
    SessionStatus,
    TokenInfo,
    create_session,
)


__version__ = "0.1.0"

__all__ = [
    "AuthApp",
    "AuthFlowManager",
    "AuthResult",
    "AuthenticationError",
    "ConfigurationError",
    "EncryptedFileSessionStore",
    "GitHubProvider",
    "GitHubUser",
    "KeyringSessionStore",
    "LoginResult",
    "LogoutResult",
    "MemorySessionStore",
    "OctoSessionException",
    "OctoSessionSettings",
    "RefreshResult",
    "Session",
    "SessionError",
    "SessionEvent",
    "SessionEventChannel",
    "SessionEventType",
    "SessionManager",
    "SessionStatus",
    "SessionStatusChange",
    "SessionStore",
    "StatusResult",
    "TokenInfo",
    "__version__",
    "create_session",
    "create_session_store",
    "get_settings",
]
