"""Logging for octosession.

Every module logs under the ``octosession`` namespace (``octosession.auth``
for the flow, store and session manager). This module attaches the single
stderr handler to that namespace and provides ``redact_sensitive_data``,
which provider code runs over request and response bodies before they are
logged.
"""

from __future__ import annotations

import logging
import sys

from typing import Any


LOGGER_NAME = "octosession"
DEFAULT_FORMAT = "%(name)s - %(levelname)s - %(message)s"
REDACTED = "[REDACTED]"


class _LoggerHolder:
    """Caches the namespace logger once its handler is attached."""

    instance: logging.Logger | None = None


def get_logger() -> logging.Logger:
    """Return the ``octosession`` namespace logger.

    The first call sets the level to WARNING and attaches a stderr
    handler, unless the host application already attached one.
    """
    if _LoggerHolder.instance is None:
        logger = logging.getLogger(LOGGER_NAME)
        logger.setLevel(logging.WARNING)
        if not logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
            logger.addHandler(handler)
        _LoggerHolder.instance = logger
    return _LoggerHolder.instance


def set_level(level: int | str) -> None:
    """Change the namespace level; names such as ``"info"`` are accepted."""
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    get_logger().setLevel(level)


def set_format(fmt: str) -> None:
    """Replace the formatter on every handler of the octosession logger."""
    formatter = logging.Formatter(fmt)
    for handler in get_logger().handlers:
        handler.setFormatter(formatter)


def enable_debug() -> None:
    """Turn on DEBUG output (``octosession --debug``).

    Shows listener binds and callbacks, redacted GitHub requests, store
    writes and maintenance ticks.
    """
    set_level(logging.DEBUG)


def configure_from_settings(level: str, fmt: str | None = None) -> None:
    """Apply ``LogSettings`` values to the octosession logger.

    Parameters
    ----------
    level : str
        Level name, e.g. ``"INFO"``.
    fmt : str, optional
        Formatter pattern.
    """
    set_level(level)
    if fmt:
        set_format(fmt)


# Fragments that mark a key as holding OAuth material
_SENSITIVE_FRAGMENTS = ("secret", "password", "token", "auth", "credential", "code")

# Keys that contain a sensitive fragment but carry no secret
_SAFE_KEYS = frozenset({"token_type"})


def _is_sensitive(key: Any) -> bool:
    name = str(key).lower()
    return name not in _SAFE_KEYS and any(frag in name for frag in _SENSITIVE_FRAGMENTS)


def redact_sensitive_data(
    data: dict[str, Any] | list[Any] | str | None, max_depth: int = 5
) -> dict[str, Any] | list[Any] | str | None:
    """Copy ``data`` with OAuth secrets masked.

    Values under keys such as ``access_token``, ``client_secret`` or
    ``code`` become ``"[REDACTED]"``; ``token_type`` is left readable.

    Parameters
    ----------
    data : dict or list or str or None
        A request or response body.
    max_depth : int, optional
        Nesting levels to descend before giving up with
        ``"[MAX_DEPTH]"`` (default: 5).

    Returns
    -------
    dict or list or str or None
        The redacted copy; scalars come back unchanged.
    """
    if max_depth <= 0:
        return "[MAX_DEPTH]"
    if isinstance(data, dict):
        return {
            k: REDACTED if _is_sensitive(k) else redact_sensitive_data(v, max_depth - 1)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [redact_sensitive_data(item, max_depth - 1) for item in data]
    return data
