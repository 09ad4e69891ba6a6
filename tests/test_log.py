"""Tests for logging helpers and log redaction."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

import logging

import pytest

from octosession.log import (
    configure_from_settings,
    enable_debug,
    get_logger,
    redact_sensitive_data,
    set_format,
    set_level,
)


@pytest.fixture()
def restore_level():
    """Put the package logger back the way the test found it."""
    logger = get_logger()
    level = logger.level
    formatters = [h.formatter for h in logger.handlers]
    yield logger
    logger.setLevel(level)
    for handler, formatter in zip(logger.handlers, formatters):
        handler.setFormatter(formatter)


class TestLogger:
    """Tests for the package logger helpers."""

    def test_singleton(self) -> None:
        """get_logger() returns the shared 'octosession' logger."""
        assert get_logger() is get_logger()
        assert get_logger().name == "octosession"
        assert get_logger().handlers

    def test_set_level_by_name(self, restore_level: logging.Logger) -> None:
        """Level names are accepted in any case."""
        set_level("info")
        assert restore_level.level == logging.INFO

    def test_enable_debug(self, restore_level: logging.Logger) -> None:
        """enable_debug() switches to DEBUG."""
        enable_debug()
        assert restore_level.level == logging.DEBUG

    def test_configure_from_settings(self, restore_level: logging.Logger) -> None:
        """Level and format from settings are applied to every handler."""
        configure_from_settings("ERROR", "%(levelname)s|%(message)s")
        assert restore_level.level == logging.ERROR
        assert all(
            h.formatter is not None and h.formatter._fmt == "%(levelname)s|%(message)s"  # noqa: SLF001
            for h in restore_level.handlers
        )

    def test_set_format(self, restore_level: logging.Logger) -> None:
        """set_format() replaces formatters."""
        set_format("%(message)s")
        record = logging.LogRecord("octosession", logging.INFO, __file__, 1, "hello", None, None)
        assert restore_level.handlers[0].format(record) == "hello"


class TestRedactSensitiveData:
    """Tests for redact_sensitive_data()."""

    def test_token_response(self) -> None:
        """Token endpoint bodies lose the secret but keep the metadata."""
        redacted = redact_sensitive_data(
            {"access_token": "gho_abc", "token_type": "bearer", "scope": "read:user"}
        )
        assert redacted == {
            "access_token": "[REDACTED]",
            "token_type": "bearer",
            "scope": "read:user",
        }

    def test_nested_and_lists(self) -> None:
        """Nested dicts and lists are traversed."""
        redacted = redact_sensitive_data(
            {"params": {"client_secret": "x", "code": "abc"}, "items": [{"password": "p"}]}
        )
        assert redacted == {
            "params": {"client_secret": "[REDACTED]", "code": "[REDACTED]"},
            "items": [{"password": "[REDACTED]"}],
        }

    def test_primitives_pass_through(self) -> None:
        """Strings and None are returned as is."""
        assert redact_sensitive_data("plain") == "plain"
        assert redact_sensitive_data(None) is None

    def test_depth_limit(self) -> None:
        """Deep structures are cut off."""
        deep: dict = {"a": {"b": {"c": {"d": {"e": {"f": 1}}}}}}
        assert "[MAX_DEPTH]" in repr(redact_sensitive_data(deep))

    def test_input_not_modified(self) -> None:
        """Redaction works on a copy."""
        original = {"access_token": "gho_abc"}
        redact_sensitive_data(original)
        assert original == {"access_token": "gho_abc"}

    def test_header_keys(self) -> None:
        """Authorization headers are masked regardless of case."""
        redacted = redact_sensitive_data(
            {"Authorization": "Bearer gho_abc", "Accept": "application/vnd.github+json"}
        )
        assert redacted == {"Authorization": "[REDACTED]", "Accept": "application/vnd.github+json"}
