"""GitHub OAuth2 login and session lifecycle.

Provides the authorization flow coordinator, the GitHub API client,
pluggable session storage, the session manager and its event channel.
"""

from __future__ import annotations

from .callback_server import OAuthCallbackServer
from .events import SessionEventChannel
from .flow import AuthFlowManager
from .provider import GitHubProvider
from .session import (
    AUTO_REFRESH_INTERVAL,
    MAX_RETRY_ATTEMPTS,
    METADATA_KEY,
    TOKEN_KEY,
    TOKEN_VALIDATION_INTERVAL,
    SessionManager,
)
from .session_store import (
    EncryptedFileSessionStore,
    KeyringSessionStore,
    MemorySessionStore,
    SessionStore,
    create_session_store,
)


__all__ = [
    "AUTO_REFRESH_INTERVAL",
    "MAX_RETRY_ATTEMPTS",
    "METADATA_KEY",
    "TOKEN_KEY",
    "TOKEN_VALIDATION_INTERVAL",
    "AuthFlowManager",
    "EncryptedFileSessionStore",
    "GitHubProvider",
    "KeyringSessionStore",
    "MemorySessionStore",
    "OAuthCallbackServer",
    "SessionEventChannel",
    "SessionManager",
    "SessionStore",
    "create_session_store",
]
