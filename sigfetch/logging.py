# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Diagnostic logging on stderr.

stdout carries the response body, so every log line goes to stderr.
The level follows the ``-v``/``-s`` flags via :func:`verbosity_to_level`.

Credentials (SigV4 keys, basic auth passwords, bearer tokens and the
``Authorization`` values built from them) are registered with
:class:`SecretFilter` as soon as they are read.  The filter rewrites
each record's final message, so a secret is hidden whether it appears in
the format string or in any argument.
"""

import logging
import re
import sys
from typing import ClassVar


LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"

REDACTED = "[REDACTED]"


class SecretFilter(logging.Filter):
    """Replace registered secrets with ``[REDACTED]``.

    Secrets are held on the class, so every handler carrying a filter
    instance sees secrets registered after it was installed.
    """

    _secrets: ClassVar[set[str]] = set()
    _pattern: ClassVar[re.Pattern[str] | None] = None

    @classmethod
    def register_secret(cls, secret: str) -> None:
        """Start redacting ``secret``.  Empty strings are ignored."""
        if not secret or secret in cls._secrets:
            return
        cls._secrets.add(secret)
        # A longer secret may contain a shorter one; match it first
        alternatives = sorted(cls._secrets, key=len, reverse=True)
        cls._pattern = re.compile("|".join(map(re.escape, alternatives)))

    @classmethod
    def clear_secrets(cls) -> None:
        cls._secrets.clear()
        cls._pattern = None

    @classmethod
    def redact(cls, text: str) -> str:
        """Return ``text`` with every registered secret replaced."""
        if cls._pattern is None:
            return text
        return cls._pattern.sub(REDACTED, text)

    def filter(self, record: logging.LogRecord) -> bool:
        if self._pattern is None:
            return True
        # Merge the arguments first so non-string ones are covered too
        record.msg = self.redact(record.getMessage())
        record.args = None
        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(
                record.exc_info
            )
        if record.exc_text:
            record.exc_text = self.redact(record.exc_text)
        return True


def verbosity_to_level(verbose: int, *, silent: bool = False) -> int:
    """Map the ``-v`` count to a logging level.

    No flag logs warnings, ``-v`` adds info and ``-vv`` or more adds
    debug output.  ``--silent`` wins and keeps only errors.
    """
    if silent:
        return logging.ERROR
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return logging.WARNING


def configure_logging(level: int = logging.WARNING) -> None:
    """Send log records at ``level`` and above to stderr, redacted.

    Replaces any handlers already on the root logger, so calling it
    again only changes the level.
    """
    logging.basicConfig(
        level=level, stream=sys.stderr, format=LOG_FORMAT, force=True
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(SecretFilter())
