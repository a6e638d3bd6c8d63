# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Process context and optional configuration file.

:class:`Context` holds values computed once at process start (TTY flags,
connect timeout, user agent) and is passed explicitly through the
pipeline instead of living in module globals.

Defaults for command-line options can be kept in a YAML file following
the XDG Base Directory Specification:

    ``$XDG_CONFIG_HOME/sigfetch/config.yaml``
    (typically ``~/.config/sigfetch/config.yaml``)

Example::

    timeout: 30
    headers:
      - "x-team: platform"
    hosts:
      my-bucket.s3.amazonaws.com:
        aws_sigv4: us-east-1/s3
      api.internal:
        proxy: !env INTERNAL_PROXY

``!env`` tags resolve values from environment variables.  Entries under
``hosts:`` override the global ones for requests to that host, and
command-line values override both.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, TypeVar

import yaml
from dotenv import load_dotenv
from platformdirs import user_config_path

from sigfetch.errors import ConfigError
from sigfetch.request import DEFAULT_USER_AGENT, HttpVersion


logger = logging.getLogger(__name__)

#: Application name for XDG path resolution.
_APP_NAME = "sigfetch"

DEFAULT_CONNECT_TIMEOUT = 60.0


def get_config_path() -> Path:
    """Return the default config file path."""
    return user_config_path(_APP_NAME) / "config.yaml"


def get_dotenv_path() -> Path:
    """Return the ``.env`` path inside the XDG config directory."""
    return user_config_path(_APP_NAME) / ".env"


# ---------------------------------------------------------------------------
# Process context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Context:
    """Values fixed for the lifetime of the process.

    Attributes:
        is_stdout_tty: Whether stdout is a terminal.
        is_stderr_tty: Whether stderr is a terminal.
        connect_timeout: Connect timeout in seconds.
        user_agent: Value of the default User-Agent header.
    """

    is_stdout_tty: bool = False
    is_stderr_tty: bool = False
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def detect(cls, connect_timeout: float | None = None) -> Context:
        """Compute the context for the running process."""
        return cls(
            is_stdout_tty=sys.stdout.isatty(),
            is_stderr_tty=sys.stderr.isatty(),
            connect_timeout=connect_timeout or DEFAULT_CONNECT_TIMEOUT,
        )


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------


class _EnvVar:
    """Placeholder for an unresolved ``!env VAR_NAME`` tag."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name


def _env_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> _EnvVar:
    """Handle ``!env VAR_NAME`` in YAML."""
    value = loader.construct_scalar(node)  # type: ignore[arg-type]
    return _EnvVar(str(value))


def _make_loader() -> type[yaml.SafeLoader]:
    """Create a YAML loader that understands ``!env``."""

    class EnvLoader(yaml.SafeLoader):
        pass

    EnvLoader.add_constructor("!env", _env_constructor)
    return EnvLoader


def _raw_resolve(value: object) -> str | None:
    """Resolve an ``_EnvVar`` to its value, or stringify literals.

    Returns None if the value is None or the env var is unset/empty.
    """
    if isinstance(value, _EnvVar):
        return os.environ.get(value.var_name) or None
    if value is None:
        return None
    return str(value)


def _resolve_float(value: object, key: str) -> float | None:
    resolved = _raw_resolve(value)
    if resolved is None:
        return None
    try:
        return float(resolved)
    except ValueError as e:
        raise ConfigError(
            f"'{key}' must be a number, got {resolved!r}"
        ) from e


def _resolve_version(value: object, key: str) -> HttpVersion | None:
    resolved = _raw_resolve(value)
    if resolved is None:
        return None
    try:
        return HttpVersion(resolved)
    except ValueError as e:
        raise ConfigError(
            f"'{key}' must be 1 or 2, got {resolved!r}"
        ) from e


def _resolve_string_list(value: object, key: str) -> list[str]:
    """Resolve a list of strings, handling ``!env`` for each element."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"'{key}' must be a list, got {type(value).__name__}")
    result: list[str] = []
    for item in value:
        resolved = _raw_resolve(item)
        if resolved:
            result.append(resolved)
    return result


# ---------------------------------------------------------------------------
# File configuration
# ---------------------------------------------------------------------------

_KNOWN_KEYS = frozenset(
    {
        "timeout",
        "connect_timeout",
        "http",
        "proxy",
        "aws_sigv4",
        "basic",
        "bearer",
        "headers",
        "query",
    }
)


@dataclass(frozen=True)
class FileConfig:
    """Defaults read from the configuration file.

    Attributes:
        timeout: Total request timeout in seconds.
        connect_timeout: Connect timeout in seconds.
        http: HTTP version pin.
        proxy: Proxy URL.
        aws_sigv4: ``REGION/SERVICE`` specifier to sign with.
        basic: ``USER:PASS`` for basic auth.
        bearer: Bearer token.
        headers: Raw ``name: value`` strings sent before CLI headers.
        query: Raw ``key=value`` strings sent before CLI query pairs.
        hosts: Per-host overrides, keyed by lower-case hostname.
    """

    timeout: float | None = None
    connect_timeout: float | None = None
    http: HttpVersion | None = None
    proxy: str | None = None
    aws_sigv4: str | None = None
    basic: str | None = None
    bearer: str | None = None
    headers: tuple[str, ...] = ()
    query: tuple[str, ...] = ()
    hosts: dict[str, FileConfig] = field(default_factory=dict)

    @classmethod
    def from_yaml(cls, config_path: Path | None = None) -> FileConfig:
        """Load the configuration file.

        Args:
            config_path: Explicit path; it must exist.  When None, the
                default XDG path is used and a missing file yields an
                empty configuration.

        Raises:
            ConfigError: If the file is unreadable or invalid.
        """
        explicit = config_path is not None
        path = config_path if config_path is not None else get_config_path()
        if not path.exists():
            if explicit:
                raise ConfigError(f"Config file not found: {path}")
            return cls()

        try:
            with path.open() as f:
                raw = yaml.load(f, Loader=_make_loader())  # noqa: S506
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read config {path}: {e}") from e

        logger.debug("Loaded config from %s", path)
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise ConfigError(f"Config {path} must be a YAML mapping")
        return cls._from_raw(raw)

    @classmethod
    def _from_raw(cls, raw: dict[str, Any], prefix: str = "") -> FileConfig:
        allowed = _KNOWN_KEYS if prefix else _KNOWN_KEYS | {"hosts"}
        unknown = set(raw) - allowed
        if unknown:
            names = ", ".join(sorted(prefix + str(k) for k in unknown))
            raise ConfigError(f"Unknown config keys: {names}")

        hosts: dict[str, FileConfig] = {}
        if not prefix:
            raw_hosts = raw.get("hosts") or {}
            if not isinstance(raw_hosts, dict):
                raise ConfigError("'hosts' must be a YAML mapping")
            for host, host_raw in raw_hosts.items():
                key = f"hosts.{host}."
                if not isinstance(host_raw, dict):
                    raise ConfigError(f"{key[:-1]} must be a YAML mapping")
                hosts[str(host).lower()] = cls._from_raw(host_raw, key)

        return cls(
            timeout=_resolve_float(raw.get("timeout"), prefix + "timeout"),
            connect_timeout=_resolve_float(
                raw.get("connect_timeout"), prefix + "connect_timeout"
            ),
            http=_resolve_version(raw.get("http"), prefix + "http"),
            proxy=_raw_resolve(raw.get("proxy")),
            aws_sigv4=_raw_resolve(raw.get("aws_sigv4")),
            basic=_raw_resolve(raw.get("basic")),
            bearer=_raw_resolve(raw.get("bearer")),
            headers=tuple(
                _resolve_string_list(raw.get("headers"), prefix + "headers")
            ),
            query=tuple(
                _resolve_string_list(raw.get("query"), prefix + "query")
            ),
            hosts=hosts,
        )

    @property
    def has_auth(self) -> bool:
        """Whether any authentication option is set."""
        auth = (self.aws_sigv4, self.basic, self.bearer)
        return any(value is not None for value in auth)

    def for_host(self, host: str) -> FileConfig:
        """Return the configuration with overrides for ``host`` applied.

        Scalar values from the host entry replace global ones; header and
        query lists are appended after the global lists.  Authentication
        options are replaced as a group: a host entry that sets any of
        them drops all global ones.
        """
        override = self.hosts.get(host.lower())
        if override is None:
            return replace(self, hosts={})
        auth = override if override.has_auth else self
        return FileConfig(
            timeout=first_not_none(override.timeout, self.timeout),
            connect_timeout=first_not_none(
                override.connect_timeout, self.connect_timeout
            ),
            http=first_not_none(override.http, self.http),
            proxy=first_not_none(override.proxy, self.proxy),
            aws_sigv4=auth.aws_sigv4,
            basic=auth.basic,
            bearer=auth.bearer,
            headers=self.headers + override.headers,
            query=self.query + override.query,
        )


T = TypeVar("T")


def first_not_none(*values: T | None) -> T | None:
    for value in values:
        if value is not None:
            return value
    return None


# ---------------------------------------------------------------------------
# .env loading
# ---------------------------------------------------------------------------


def load_dotenv_files(cwd: Path | None = None) -> list[Path]:
    """Load ``.env`` files into ``os.environ``.

    Reads ``~/.config/sigfetch/.env`` first, then ``.env`` in ``cwd``
    (the working directory by default).  Variables already in the
    environment are never overwritten, so the real environment wins over
    both files and the XDG file wins over the local one.  Calling this
    again is harmless for the same reason.

    Returns:
        The files that were loaded, in order.
    """
    loaded: list[Path] = []
    for path in (get_dotenv_path(), (cwd or Path.cwd()) / ".env"):
        if path.exists():
            load_dotenv(path, override=False)
            logger.debug("Loaded .env from %s", path)
            loaded.append(path)
    return loaded
