# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Request model and builder.

The builder collects the caller's URL, method, headers, query pairs, body,
timeout, HTTP version pin and content type, validates them, and produces
a :class:`Request`.  All validation happens here, before the request can
reach the network.
"""

from __future__ import annotations

import base64
import logging
import math
import urllib.parse
from dataclasses import dataclass, field
from enum import Enum

from sigfetch._version import __version__
from sigfetch.body import Body
from sigfetch.errors import (
    AuthError,
    BodyConflictError,
    HeaderError,
    MethodError,
    UrlError,
)
from sigfetch.headers import (
    TOKEN_RE,
    HeaderMap,
    parse_headers,
    parse_query,
    validate_header,
)


logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = f"sigfetch/{__version__}"

#: Codecs the decoder supports, offered when the caller sets no preference.
DEFAULT_ACCEPT_ENCODING = "gzip, deflate, br, zstd"

_SUPPORTED_SCHEMES = ("http", "https")

_WELL_KNOWN_METHODS = frozenset(
    {
        "GET",
        "HEAD",
        "POST",
        "PUT",
        "DELETE",
        "CONNECT",
        "OPTIONS",
        "TRACE",
        "PATCH",
    }
)

# The transport silently drops a streamed body for these methods
_BODYLESS_METHODS = frozenset({"GET", "HEAD", "TRACE"})


class HttpVersion(Enum):
    """HTTP protocol version pin."""

    HTTP1 = "1"
    HTTP2 = "2"


@dataclass(frozen=True)
class Request:
    """A fully built HTTP request.

    Attributes are fixed once built; the header map is the only part that
    changes afterwards, and only the signer touches it.

    Attributes:
        method: Method token.
        url: Absolute URL including the query string.
        headers: Request headers.
        body: Payload, always None for GET/HEAD/TRACE.
        version: HTTP version pin, if any.
        timeout: Total timeout in seconds, if any.
        encoding_requested: True if the pipeline added Accept-Encoding
            itself, which authorizes response decoding.
    """

    method: str
    url: str
    headers: HeaderMap = field(default_factory=HeaderMap)
    body: Body | None = None
    version: HttpVersion | None = None
    timeout: float | None = None
    encoding_requested: bool = False

    @property
    def authority(self) -> str:
        """Host and non-default port of the URL."""
        return url_authority(self.url)


def parse_url(raw: str) -> str:
    """Parse and normalize a user-supplied URL.

    Bare hosts (``example.com/path``) and scheme-relative URLs
    (``//example.com``) are assumed to be ``https``.

    Args:
        raw: URL as typed by the user.

    Returns:
        Normalized absolute URL.  An empty path becomes ``/``.

    Raises:
        UrlError: If the URL has no host, an invalid port, or a scheme
            other than http/https.
    """
    value = raw.strip()
    if value.startswith("//"):
        value = "https:" + value
    elif "://" not in value:
        value = "https://" + value

    try:
        parts = urllib.parse.urlsplit(value)
        # Accessing .port validates it
        parts.port  # noqa: B018
    except ValueError as e:
        raise UrlError(f"parsing url: {e}") from e

    scheme = parts.scheme.lower()
    if scheme not in _SUPPORTED_SCHEMES:
        raise UrlError(f"url scheme '{scheme}' not supported")
    if not parts.hostname:
        raise UrlError(f"parsing url: empty host in '{raw}'")

    path = parts.path or "/"
    return urllib.parse.urlunsplit(
        (scheme, parts.netloc, path, parts.query, parts.fragment)
    )


def url_authority(url: str) -> str:
    """Return ``host[:port]`` of a URL, omitting the scheme's default port."""
    parts = urllib.parse.urlsplit(url)
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    port = parts.port
    default = 443 if parts.scheme == "https" else 80
    if port is None or port == default:
        return host
    return f"{host}:{port}"


def parse_method(raw: str | None) -> str:
    """Parse an HTTP method, defaulting to GET.

    Well-known methods are upper-cased; extension methods keep their case.

    Raises:
        MethodError: If the method is not a valid token.
    """
    if raw is None:
        return "GET"
    if not TOKEN_RE.fullmatch(raw):
        raise MethodError(f"invalid method: {raw}")
    upper = raw.upper()
    return upper if upper in _WELL_KNOWN_METHODS else raw


def append_query(url: str, pairs: list[tuple[str, str]]) -> str:
    """Append form-encoded pairs after any query already in ``url``."""
    if not pairs:
        return url
    parts = urllib.parse.urlsplit(url)
    extra = urllib.parse.urlencode(pairs)
    query = f"{parts.query}&{extra}" if parts.query else extra
    return urllib.parse.urlunsplit(parts._replace(query=query))


def basic_authorization(credentials: str) -> str:
    """Build a Basic ``Authorization`` value from ``USER:PASS``.

    Raises:
        AuthError: If there is no ``:`` separator.
    """
    user, sep, password = credentials.partition(":")
    if not sep:
        # The value may be a bare secret, so it is not echoed
        raise AuthError("basic auth must be given as USER:PASS")
    token = base64.b64encode(f"{user}:{password}".encode()).decode("ascii")
    return f"Basic {token}"


def bearer_authorization(token: str) -> str:
    """Build a Bearer ``Authorization`` value.

    Raises:
        AuthError: If the token is empty or not a valid header value.
    """
    if not token:
        raise AuthError("bearer token must not be empty")
    value = f"Bearer {token}"
    try:
        validate_header("Authorization", value)
    except HeaderError as e:
        raise AuthError("bearer token contains invalid characters") from e
    return value


def normalize_timeout(value: float | None) -> float | None:
    """Treat zero, negative and infinite timeouts as no timeout."""
    if value is None or value <= 0 or math.isinf(value) or math.isnan(value):
        return None
    return float(value)


class RequestBuilder:
    """Fluent builder for :class:`Request`.

    Inputs are parsed as they are supplied, so malformed URLs, methods and
    headers fail immediately.  :meth:`build` performs the cross-field
    checks.

    Example:
        request = (
            RequestBuilder("example.com/items")
            .with_method("POST")
            .with_headers(["x-trace: 1"])
            .with_body(Body.from_bytes(b"{}"))
            .with_content_type("application/json")
            .build()
        )
    """

    def __init__(
        self, url: str, *, user_agent: str = DEFAULT_USER_AGENT
    ) -> None:
        self._url = parse_url(url)
        self._user_agent = user_agent
        self._method = "GET"
        self._headers = HeaderMap()
        self._query: list[tuple[str, str]] = []
        self._body: Body | None = None
        self._timeout: float | None = None
        self._version: HttpVersion | None = None
        self._content_type: str | None = None
        self._authorization: str | None = None

    def with_method(self, method: str | None) -> RequestBuilder:
        self._method = parse_method(method)
        return self

    def with_headers(self, raw_headers: list[str]) -> RequestBuilder:
        for name, value in parse_headers(raw_headers):
            self._headers.add(name, value)
        return self

    def with_query(self, raw_query: list[str]) -> RequestBuilder:
        self._query.extend(parse_query(raw_query))
        return self

    def with_body(self, body: Body | None) -> RequestBuilder:
        self._body = body
        return self

    def with_timeout(self, timeout: float | None) -> RequestBuilder:
        self._timeout = normalize_timeout(timeout)
        return self

    def with_version(self, version: HttpVersion | None) -> RequestBuilder:
        self._version = version
        return self

    def with_content_type(self, content_type: str | None) -> RequestBuilder:
        """Set the content type explicitly, overriding any inferred one."""
        self._content_type = content_type
        return self

    def with_authorization(self, value: str | None) -> RequestBuilder:
        """Set the ``Authorization`` header, replacing any caller value."""
        self._authorization = value
        return self

    def build(self) -> Request:
        """Validate the inputs and assemble the request.

        Raises:
            BodyConflictError: If a body is attached to GET, HEAD or TRACE.
        """
        if self._body is not None and self._method in _BODYLESS_METHODS:
            raise BodyConflictError(
                f"cannot include a body with a {self._method} request"
            )

        headers = HeaderMap()
        if "Accept" not in self._headers:
            headers.add("Accept", "*/*")
        if "User-Agent" not in self._headers:
            headers.add("User-Agent", self._user_agent)
        for name, value in self._headers:
            headers.add(name, value)

        if "Content-Type" not in headers:
            content_type = self._content_type
            if content_type is None and self._body is not None:
                content_type = self._body.content_type
            if content_type is not None:
                headers.add("Content-Type", content_type)

        if self._authorization is not None:
            headers.set("Authorization", self._authorization)

        if self._body is not None and self._body.length is not None:
            headers.set("Content-Length", str(self._body.length))

        encoding_requested = headers.setdefault(
            "Accept-Encoding", DEFAULT_ACCEPT_ENCODING
        )

        url = append_query(self._url, self._query)
        logger.debug("Built request %s %s", self._method, url)
        return Request(
            method=self._method,
            url=url,
            headers=headers,
            body=self._body,
            version=self._version,
            timeout=self._timeout,
            encoding_requested=encoding_requested,
        )
