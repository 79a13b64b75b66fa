"""Tests for logging helpers."""

from __future__ import annotations

import logging

import pytest

from oauthgate.config import LogSettings
from oauthgate.log import (
    configure,
    enable_debug,
    get_logger,
    mask_secret,
    redact_sensitive_data,
    set_level,
)


@pytest.fixture(autouse=True)
def _restore_level():
    """Put the package logger back to WARNING after each test."""
    yield
    get_logger().setLevel(logging.WARNING)


class TestLogger:
    """Tests for the package logger."""

    def test_singleton(self) -> None:
        """get_logger always returns the same logger."""
        assert get_logger() is get_logger()
        assert get_logger().name == "oauthgate"

    def test_set_level_by_name(self) -> None:
        """Level names are accepted."""
        set_level("info")
        assert get_logger().level == logging.INFO

    def test_enable_debug(self) -> None:
        """enable_debug switches to DEBUG."""
        enable_debug()
        assert get_logger().level == logging.DEBUG

    def test_configure(self) -> None:
        """configure applies level and format from settings."""
        logger = configure(LogSettings(level="ERROR", format="%(levelname)s|%(message)s"))
        assert logger.level == logging.ERROR
        for handler in logger.handlers:
            assert handler.formatter is not None
            assert handler.formatter._fmt == "%(levelname)s|%(message)s"  # pylint: disable=protected-access


class TestRedaction:
    """Tests for payload redaction and id masking."""

    def test_redacts_token_fields(self) -> None:
        """Token-like keys are redacted at any depth."""
        payload = {
            "access_token": "at",
            "email": "alice@example.com",
            "nested": {"client_secret": "s", "name": "Alice"},
            "items": [{"code_verifier": "v"}],
        }
        redacted = redact_sensitive_data(payload)
        assert redacted == {
            "access_token": "[REDACTED]",
            "email": "alice@example.com",
            "nested": {"client_secret": "[REDACTED]", "name": "Alice"},
            "items": [{"code_verifier": "[REDACTED]"}],
        }

    def test_does_not_mutate(self) -> None:
        """The input is left untouched."""
        payload = {"access_token": "at"}
        redact_sensitive_data(payload)
        assert payload == {"access_token": "at"}

    def test_max_depth(self) -> None:
        """Deep structures are cut off."""
        assert redact_sensitive_data({"a": {"b": "c"}}, max_depth=1) == {"a": "[MAX_DEPTH]"}

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, "<none>"), ("", "<none>"), ("abc", "***"), ("abcdefgh", "abcd...")],
    )
    def test_mask_secret(self, value: str | None, expected: str) -> None:
        """Only a short prefix of an identifier is shown."""
        assert mask_secret(value) == expected
