"""Test doubles and helpers shared across test modules."""

from __future__ import annotations

import asyncio
import contextlib
import socket
import threading
import time

from typing import TYPE_CHECKING
from urllib.error import HTTPError
from urllib.parse import parse_qs, urlencode, urlparse
from urllib.request import urlopen

from octosession.auth.session_store import MemorySessionStore
from octosession.exceptions import SessionStoreError
from tests.constants import HTTP_TIMEOUT, POLL_DEADLINE


if TYPE_CHECKING:
    from collections.abc import Callable


class FlakyStore(MemorySessionStore):
    """Memory store whose operations can be made to fail per method."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_set = False
        self.fail_get = False
        self.fail_delete = False
        self.fail_keys: set[str] = set()
        self.delete_calls: list[str] = []

    def _check(self, flag: bool, key: str) -> None:
        if flag and (not self.fail_keys or key in self.fail_keys):
            msg = "simulated store failure"
            raise SessionStoreError(msg, key=key)

    async def set(self, key: str, value: str) -> None:
        self._check(self.fail_set, key)
        await super().set(key, value)

    async def get(self, key: str) -> str | None:
        self._check(self.fail_get, key)
        return await super().get(key)

    async def delete(self, key: str) -> None:
        self.delete_calls.append(key)
        self._check(self.fail_delete, key)
        await super().delete(key)


def can_bind(port: int) -> bool:
    """Whether a new listener could bind ``port`` right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        # Same socket options as http.server.HTTPServer
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind(("127.0.0.1", port))
            sock.listen(1)
        except OSError:
            return False
    return True


def http_get(url: str) -> tuple[int, str, dict[str, str]]:
    """GET ``url`` and return status, body and headers, including for 4xx."""
    try:
        with urlopen(url, timeout=HTTP_TIMEOUT) as resp:  # noqa: S310
            return resp.status, resp.read().decode("utf-8"), dict(resp.headers)
    except HTTPError as exc:
        return exc.code, exc.read().decode("utf-8"), dict(exc.headers)


def _hit(url: str) -> None:
    time.sleep(0.05)
    with contextlib.suppress(OSError):
        http_get(url)


def callback_opener(redirect_uri: str, **overrides: str | None) -> Callable[[str], bool]:
    """Browser stand-in that answers the authorization URL with a redirect.

    The callback carries ``code=abc123`` and the issued state unless
    ``overrides`` replace them; a None override drops the parameter.
    """
    opened: list[str] = []

    def opener(url: str) -> bool:
        opened.append(url)
        state = parse_qs(urlparse(url).query)["state"][0]
        params: dict[str, str | None] = {"code": "abc123", "state": state, **overrides}
        query = urlencode({k: v for k, v in params.items() if v is not None})
        threading.Thread(target=_hit, args=(f"{redirect_uri}?{query}",), daemon=True).start()
        return True

    opener.opened = opened  # type: ignore[attr-defined]
    return opener


async def wait_until(predicate: Callable[[], bool], timeout: float = POLL_DEADLINE) -> None:
    """Yield to the event loop until ``predicate()`` holds."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            msg = "condition not met in time"
            raise AssertionError(msg)
        await asyncio.sleep(0.01)


class GatedStore(MemorySessionStore):
    """Memory store whose writes wait while the gate is held."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()
        self.gate.set()
        self.waiting = 0

    def hold(self) -> None:
        self.gate.clear()

    def release(self) -> None:
        self.gate.set()

    async def set(self, key: str, value: str) -> None:
        self.waiting += 1
        try:
            await self.gate.wait()
        finally:
            self.waiting -= 1
        await super().set(key, value)
