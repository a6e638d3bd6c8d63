# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Error types raised by the request pipeline.

Every error carries a human-readable message and is reported once by the
caller.  Builder and signer errors are raised before any network I/O;
transport errors wrap the underlying client's exception; decode errors
surface on the first read of the response body.
"""


class FetchError(Exception):
    """Base exception for all pipeline errors."""


class UrlError(FetchError):
    """URL could not be parsed or uses an unsupported scheme."""


class MethodError(FetchError):
    """HTTP method is not a valid token."""


class HeaderError(FetchError):
    """Header name or value has invalid syntax."""


class BodyConflictError(FetchError):
    """A body was attached to a method that cannot carry one."""


class SigV4ConfigError(FetchError):
    """SigV4 specifier is malformed or credentials are missing."""


class AuthError(FetchError):
    """Authentication options are malformed or conflict."""


class ConfigError(FetchError):
    """Configuration file is missing or invalid."""


class TransportError(FetchError):
    """Connection, TLS, timeout or file read failure."""


class DecodeError(FetchError):
    """Compressed response stream is malformed."""
