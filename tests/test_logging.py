# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for logging configuration and secret redaction."""

import io
import logging
import sys
from collections.abc import Iterator

import pytest

from sigfetch.logging import SecretFilter, configure_logging, verbosity_to_level


def _record(msg: str, *args: object) -> logging.LogRecord:
    return logging.LogRecord("test", logging.INFO, __file__, 1, msg, args, None)


class TestSecretFilter:
    """Tests for SecretFilter."""

    def test_no_secrets_passthrough(self) -> None:
        """Records pass unchanged when nothing is registered."""
        record = _record("hello %s", "world")
        assert SecretFilter().filter(record) is True
        assert record.getMessage() == "hello world"

    def test_redacts_message_and_args(self) -> None:
        """Secrets are replaced in the message and string arguments."""
        SecretFilter.register_secret("s3cr3t")
        record = _record("token s3cr3t and %s %d", "xs3cr3tx", 7)
        SecretFilter().filter(record)
        assert record.getMessage() == "token [REDACTED] and x[REDACTED]x 7"

    def test_redacts_non_string_args(self) -> None:
        """Secrets inside exceptions and other objects are replaced."""
        SecretFilter.register_secret("hunter2")
        record = _record("failed: %s", ValueError("bad password hunter2"))
        SecretFilter().filter(record)
        assert record.getMessage() == "failed: bad password [REDACTED]"
        assert record.args is None

    def test_redacts_traceback(self) -> None:
        """Exception text attached to the record is redacted."""
        SecretFilter.register_secret("hunter2")
        try:
            raise RuntimeError("token hunter2")
        except RuntimeError:
            exc_info = sys.exc_info()
        record = logging.LogRecord(
            "test", logging.ERROR, __file__, 1, "boom", None, exc_info
        )
        SecretFilter().filter(record)
        assert record.exc_text is not None
        assert "hunter2" not in record.exc_text
        assert "token [REDACTED]" in record.exc_text

    def test_longest_secret_first(self) -> None:
        """Overlapping secrets are fully redacted."""
        SecretFilter.register_secret("abc")
        SecretFilter.register_secret("abcdef")
        assert SecretFilter.redact("abcdef abc") == "[REDACTED] [REDACTED]"

    def test_empty_secret_ignored(self) -> None:
        """Empty strings are never registered."""
        SecretFilter.register_secret("")
        assert SecretFilter.redact("text") == "text"

    def test_clear_secrets(self) -> None:
        """Cleared secrets are no longer redacted."""
        SecretFilter.register_secret("key")
        SecretFilter.clear_secrets()
        record = _record("key")
        SecretFilter().filter(record)
        assert record.getMessage() == "key"


class TestVerbosityToLevel:
    """Tests for verbosity_to_level."""

    @pytest.mark.parametrize(
        ("verbose", "silent", "expected"),
        [
            (0, False, logging.WARNING),
            (1, False, logging.INFO),
            (2, False, logging.DEBUG),
            (5, False, logging.DEBUG),
            (2, True, logging.ERROR),
        ],
    )
    def test_levels(self, verbose: int, silent: bool, expected: int) -> None:
        """Each -v lowers the level; --silent overrides."""
        assert verbosity_to_level(verbose, silent=silent) == expected


class TestConfigureLogging:
    """Tests for configure_logging."""

    @pytest.fixture(autouse=True)
    def _restore_root(self) -> Iterator[None]:
        root = logging.getLogger()
        handlers = root.handlers[:]
        level = root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_single_stderr_handler(self) -> None:
        """Repeated calls leave one stderr handler with the filter."""
        configure_logging(logging.DEBUG)
        configure_logging(logging.INFO)
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        handler = root.handlers[0]
        assert isinstance(handler, logging.StreamHandler)
        assert handler.stream is sys.stderr
        assert any(isinstance(f, SecretFilter) for f in handler.filters)

    def test_output_is_redacted(self) -> None:
        """Formatted lines carry the level and logger name, redacted."""
        configure_logging(logging.INFO)
        stream = io.StringIO()
        handler = logging.getLogger().handlers[0]
        assert isinstance(handler, logging.StreamHandler)
        handler.setStream(stream)
        SecretFilter.register_secret("tok3n")

        logging.getLogger("sigfetch.test").info("using %s", "tok3n")

        assert stream.getvalue() == "INFO sigfetch.test: using [REDACTED]\n"
