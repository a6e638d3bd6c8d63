# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Request execution over the network.

:class:`HttpxTransport` sends a :class:`~sigfetch.request.Request` with
``httpx`` and returns a :class:`Response` whose body is still the raw
byte stream from the wire.  ``httpx`` never decodes content here; the
response's :meth:`Response.reader` applies the codec negotiated by the
pipeline.
"""

from __future__ import annotations

import io
import logging
import time
from collections.abc import Callable, Iterator
from typing import Protocol

import httpx

from sigfetch.config import Context
from sigfetch.decoder import ContentEncoding, open_decoder, select_encoding
from sigfetch.errors import TransportError
from sigfetch.headers import HeaderMap
from sigfetch.request import HttpVersion, Request


logger = logging.getLogger(__name__)

_MAX_REDIRECTS = 10


class Response:
    """Response with a raw, not yet decoded body.

    Attributes:
        status: HTTP status code.
        version: Protocol version string, e.g. ``HTTP/1.1``.
        headers: Response headers.
        encoding_requested: True if the pipeline negotiated the encoding,
            which is the only case where the body is decoded.
    """

    def __init__(
        self,
        status: int,
        version: str,
        headers: HeaderMap,
        stream: Iterator[bytes],
        *,
        encoding_requested: bool,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        self.status = status
        self.version = version
        self.headers = headers
        self.encoding_requested = encoding_requested
        self._stream = stream
        self._on_close = on_close
        self._closed = False

    @property
    def is_success(self) -> bool:
        """True for 2xx and 3xx statuses."""
        return 200 <= self.status < 400

    @property
    def encoding(self) -> ContentEncoding:
        """Codec the body will be decoded with."""
        return select_encoding(
            self.encoding_requested, self.headers.get("Content-Encoding")
        )

    def reader(self) -> io.BufferedReader:
        """Return the decoded body stream.

        Closing the reader closes the response.
        """
        return open_decoder(self._stream, self.encoding, self.close)

    def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        if not self._closed:
            self._closed = True
            if self._on_close is not None:
                self._on_close()

    def __enter__(self) -> Response:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Response(status={self.status}, version={self.version!r})"


class Transport(Protocol):
    """Executes requests."""

    def send(self, request: Request) -> Response: ...


class HttpxTransport:
    """Transport backed by a blocking ``httpx.Client``.

    A fresh client is created for every request and closed together with
    the response.

    Args:
        context: Process-wide settings (connect timeout).
        proxy: Proxy URL, if any.
        transport: Custom ``httpx`` transport, e.g. ``httpx.MockTransport``
            in tests.
    """

    def __init__(
        self,
        context: Context,
        *,
        proxy: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._context = context
        self._proxy = proxy
        self._transport = transport

    def _client(self, request: Request) -> httpx.Client:
        connect = self._context.connect_timeout
        if request.timeout is not None:
            connect = min(connect, request.timeout)
        timeout = httpx.Timeout(request.timeout, connect=connect)
        return httpx.Client(
            timeout=timeout,
            http1=request.version is not HttpVersion.HTTP2,
            http2=request.version is HttpVersion.HTTP2,
            proxy=self._proxy,
            transport=self._transport,
            follow_redirects=True,
            max_redirects=_MAX_REDIRECTS,
        )

    def send(self, request: Request) -> Response:
        """Send ``request`` and return the streaming response.

        Raises:
            TransportError: On connection, TLS, timeout, proxy or body
                errors.
        """
        deadline = None
        if request.timeout is not None:
            deadline = time.monotonic() + request.timeout

        try:
            client = self._client(request)
        except (httpx.InvalidURL, ValueError) as e:
            # Malformed proxy URLs fail when the client is created
            raise TransportError(f"configuring client: {e}") from e

        content = request.body.content() if request.body is not None else None
        try:
            http_request = client.build_request(
                request.method,
                request.url,
                headers=request.headers.items(),
                content=content,
            )
            logger.info("Sending %s %s", request.method, request.url)
            http_response = client.send(http_request, stream=True)
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            client.close()
            raise TransportError(_describe(e)) from e
        except httpx.StreamError as e:
            # A streamed body is consumed by the first hop of a 307/308
            client.close()
            raise TransportError(f"resending streamed request body: {e}") from e
        except BaseException:
            client.close()
            raise

        logger.info(
            "Received %s %s",
            http_response.http_version,
            http_response.status_code,
        )

        def close() -> None:
            http_response.close()
            client.close()

        return Response(
            status=http_response.status_code,
            version=http_response.http_version,
            headers=HeaderMap(http_response.headers.multi_items()),
            stream=_raw_stream(http_response, deadline),
            encoding_requested=request.encoding_requested,
            on_close=close,
        )


def _raw_stream(
    response: httpx.Response, deadline: float | None
) -> Iterator[bytes]:
    """Yield raw body chunks, enforcing the total timeout."""
    try:
        for chunk in response.iter_raw():
            if deadline is not None and time.monotonic() > deadline:
                raise TransportError("request timed out reading response body")
            yield chunk
    except (httpx.HTTPError, httpx.StreamError, OSError) as e:
        raise TransportError(_describe(e)) from e


def _describe(error: Exception) -> str:
    """Message of an httpx error followed by its cause, if any."""
    message = str(error) or type(error).__name__
    cause = error.__cause__ or error.__context__
    if cause is not None and str(cause) and str(cause) not in message:
        message = f"{message}: {cause}"
    return message
