"""Pytest configuration and fixtures."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

import os
import socket

from typing import TYPE_CHECKING

import pytest

from octosession.auth.session_store import MemorySessionStore
from octosession.config import clear_settings
from octosession.models import GitHubUser
from octosession.types import Session, TokenInfo, create_session
from tests.constants import ACCESS_TOKEN, SCOPE
from tests.helpers import FlakyStore


if TYPE_CHECKING:
    from collections.abc import Generator


# =============================================================================
# Environment isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolated_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory
) -> Generator[None, None, None]:
    """Keep real config files, .env files and OCTOSESSION_* vars out of tests."""
    workdir = tmp_path_factory.mktemp("cwd")
    home = tmp_path_factory.mktemp("home")
    for key in list(os.environ):
        if key.startswith("OCTOSESSION_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("APPDATA", str(home))
    monkeypatch.setenv("XDG_DATA_HOME", str(home / "data"))
    monkeypatch.chdir(workdir)
    clear_settings()
    yield
    clear_settings()


# =============================================================================
# Session fixtures
# =============================================================================


@pytest.fixture()
def github_user() -> GitHubUser:
    """The user returned by the profile endpoint."""
    return GitHubUser(
        id=583231,
        login="octocat",
        name="The Octocat",
        email=None,
        avatar_url="https://avatars.githubusercontent.com/u/583231?v=4",
        public_repos=8,
        followers=4000,
        following=9,
        created_at="2011-01-25T18:44:36Z",
    )


@pytest.fixture()
def refreshed_user(github_user: GitHubUser) -> GitHubUser:
    """The same user after a profile change."""
    return github_user.model_copy(update={"name": "Mona Lisa Octocat", "public_repos": 9})


@pytest.fixture()
def token_info() -> TokenInfo:
    """The token issued by the token endpoint."""
    return TokenInfo(access_token=ACCESS_TOKEN, token_type="bearer", scope=SCOPE)  # noqa: S106


@pytest.fixture()
def session(github_user: GitHubUser, token_info: TokenInfo) -> Session:
    """A freshly created session."""
    return create_session(github_user, token_info)


@pytest.fixture()
def memory_store() -> MemorySessionStore:
    """Create a memory session store."""
    return MemorySessionStore()


@pytest.fixture()
def flaky_store() -> FlakyStore:
    """Create a memory store with switchable failures."""
    return FlakyStore()


# =============================================================================
# Network fixtures
# =============================================================================


@pytest.fixture()
def free_port() -> int:
    """A loopback port that is free at the time of the call."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture()
def redirect_uri(free_port: int) -> str:
    """Redirect URI pointing at the free loopback port."""
    return f"http://127.0.0.1:{free_port}/auth/callback"
