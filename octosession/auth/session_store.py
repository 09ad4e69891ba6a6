"""Pluggable session storage backends.

Provides the SessionStore ABC and concrete implementations for
in-memory, OS keyring, and encrypted-file persistence. Stores hold plain
string values under string keys; they never retry and never interpret the
values, leaving recovery policy to the session manager.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import tempfile

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from ..exceptions import SessionStoreError


logger = logging.getLogger("octosession.auth")


class SessionStore(ABC):
    """Abstract base class for session storage.

    All methods are async so that slow media (OS vault IPC, disk) never
    block the event loop.
    """

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value.

        Parameters
        ----------
        key : str
            Entry name.
        value : str
            Entry contents.
        """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Read the value stored under ``key``.

        Parameters
        ----------
        key : str
            Entry name.

        Returns
        -------
        str or None
            The stored value, or None if absent.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``. Deleting a missing key is not an error.

        Parameters
        ----------
        key : str
            Entry name.
        """


class MemorySessionStore(SessionStore):
    """In-memory session store for tests and ephemeral sessions."""

    def __init__(self) -> None:
        """Initialize the memory session store."""
        self._values: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def set(self, key: str, value: str) -> None:
        """Store a value in memory."""
        async with self._lock:
            self._values[key] = value

    async def get(self, key: str) -> str | None:
        """Load a value from memory."""
        async with self._lock:
            return self._values.get(key)

    async def delete(self, key: str) -> None:
        """Delete a value from memory."""
        async with self._lock:
            self._values.pop(key, None)

    def keys(self) -> list[str]:
        """List stored keys."""
        return list(self._values)


class KeyringSessionStore(SessionStore):
    """OS credential vault backed store (Keychain, Credential Manager, Secret Service).

    Parameters
    ----------
    service_name : str
        Service name for keyring storage (default "octosession").
    """

    def __init__(self, service_name: str = "octosession") -> None:
        """Initialize the keyring session store."""
        import keyring
        import keyring.errors

        self._service_name = service_name
        self._keyring = keyring
        self._errors = keyring.errors

    async def _run(self, func: Any, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def set(self, key: str, value: str) -> None:
        """Save a value to the OS keyring."""
        try:
            await self._run(self._keyring.set_password, self._service_name, key, value)
        except self._errors.KeyringError as exc:
            msg = f"Keyring write failed: {exc}"
            raise SessionStoreError(msg, key=key) from exc

    async def get(self, key: str) -> str | None:
        """Load a value from the OS keyring."""
        try:
            return await self._run(self._keyring.get_password, self._service_name, key)
        except self._errors.KeyringError as exc:
            msg = f"Keyring read failed: {exc}"
            raise SessionStoreError(msg, key=key) from exc

    async def delete(self, key: str) -> None:
        """Delete a value from the OS keyring."""
        try:
            await self._run(self._keyring.delete_password, self._service_name, key)
        except self._errors.PasswordDeleteError:
            logger.debug("Keyring entry %s already absent", key)
        except self._errors.KeyringError as exc:
            msg = f"Keyring delete failed: {exc}"
            raise SessionStoreError(msg, key=key) from exc


class EncryptedFileSessionStore(SessionStore):
    """Fernet-encrypted JSON file in the user-data directory.

    All entries share one file (``session.enc``); the symmetric key lives
    next to it in ``session.key`` with owner-only permissions and is
    generated on first use.

    Parameters
    ----------
    data_dir : str or Path
        Directory holding the session and key files.
    """

    DATA_FILE = "session.enc"
    KEY_FILE = "session.key"

    def __init__(self, data_dir: str | Path) -> None:
        """Initialize the encrypted file session store."""
        from cryptography.fernet import Fernet, InvalidToken

        self._dir = Path(data_dir)
        self._fernet_cls = Fernet
        self._invalid_token = InvalidToken
        self._fernet: Any = None
        self._lock = asyncio.Lock()

    @property
    def data_path(self) -> Path:
        """Path of the encrypted session file."""
        return self._dir / self.DATA_FILE

    @property
    def key_path(self) -> Path:
        """Path of the encryption key file."""
        return self._dir / self.KEY_FILE

    def _cipher(self) -> Any:
        if self._fernet is None:
            self._dir.mkdir(parents=True, exist_ok=True)
            if self.key_path.exists():
                key = self.key_path.read_bytes().strip()
            else:
                key = self._fernet_cls.generate_key()
                self._write_atomic(self.key_path, key)
            self._fernet = self._fernet_cls(key)
        return self._fernet

    def _write_atomic(self, path: Path, payload: bytes) -> None:
        fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(payload)
            os.chmod(tmp, 0o600)
            os.replace(tmp, path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp)
            raise

    def _read_all(self) -> dict[str, str]:
        if not self.data_path.exists():
            return {}
        try:
            decrypted = self._cipher().decrypt(self.data_path.read_bytes())
        except self._invalid_token as exc:
            msg = "Session file cannot be decrypted with the stored key"
            raise SessionStoreError(msg, path=str(self.data_path)) from exc
        data = json.loads(decrypted)
        if not isinstance(data, dict):
            msg = "Session file does not hold a JSON object"
            raise SessionStoreError(msg, path=str(self.data_path))
        return data

    def _write_all(self, data: dict[str, str]) -> None:
        if not data:
            with contextlib.suppress(FileNotFoundError):
                self.data_path.unlink()
            return
        token = self._cipher().encrypt(json.dumps(data).encode("utf-8"))
        self._write_atomic(self.data_path, token)

    def _set_sync(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _get_sync(self, key: str) -> str | None:
        return self._read_all().get(key)

    def _delete_sync(self, key: str) -> None:
        data = self._read_all()
        if data.pop(key, None) is not None:
            self._write_all(data)

    async def _run(self, func: Any, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        async with self._lock:
            try:
                return await loop.run_in_executor(None, func, *args)
            except (OSError, ValueError) as exc:
                msg = f"Session file operation failed: {exc}"
                raise SessionStoreError(msg, path=str(self.data_path)) from exc

    async def set(self, key: str, value: str) -> None:
        """Save a value to the encrypted file."""
        await self._run(self._set_sync, key, value)

    async def get(self, key: str) -> str | None:
        """Load a value from the encrypted file."""
        return await self._run(self._get_sync, key)

    async def delete(self, key: str) -> None:
        """Delete a value from the encrypted file."""
        await self._run(self._delete_sync, key)


def create_session_store(backend: str = "keyring", **kwargs: Any) -> SessionStore:
    """Factory function for session stores.

    Parameters
    ----------
    backend : str
        Storage backend: "keyring", "file", or "memory".
    **kwargs : Any
        ``service_name`` for keyring, ``data_dir`` for file.

    Returns
    -------
    SessionStore
        A configured session store instance.
    """
    if backend == "memory":
        return MemorySessionStore()
    if backend == "keyring":
        return KeyringSessionStore(service_name=kwargs.get("service_name", "octosession"))
    if backend == "file":
        data_dir = kwargs.get("data_dir")
        if data_dir is None:
            from ..config import default_data_dir

            data_dir = default_data_dir()
        return EncryptedFileSessionStore(data_dir)
    msg = f"Unknown session store backend: {backend}"
    raise ValueError(msg)
