# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for the httpx-backed transport and Response."""

import gzip
import io
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from sigfetch.body import Body
from sigfetch.config import Context
from sigfetch.decoder import ContentEncoding
from sigfetch.errors import TransportError
from sigfetch.headers import HeaderMap
from sigfetch.request import Request, RequestBuilder
from sigfetch.transport import HttpxTransport, Response


MakeResponse = Callable[..., httpx.Response]


def _transport(
    context: Context, handler: Callable[[httpx.Request], httpx.Response]
) -> HttpxTransport:
    return HttpxTransport(context, transport=httpx.MockTransport(handler))


class TestHttpxTransport:
    """Tests for HttpxTransport.send."""

    def test_sends_method_url_headers_and_body(
        self, context: Context, make_response: MakeResponse
    ) -> None:
        """The request goes out as built."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return make_response(201, b"created")

        request = (
            RequestBuilder("https://example.com/items?a=1")
            .with_method("POST")
            .with_headers(["X-Trace: 7"])
            .with_body(Body.from_text("payload"))
            .build()
        )
        with _transport(context, handler).send(request) as response:
            assert response.status == 201
            assert response.reader().read() == b"created"

        sent = seen[0]
        assert sent.method == "POST"
        assert str(sent.url) == "https://example.com/items?a=1"
        assert sent.headers["x-trace"] == "7"
        assert sent.headers["content-length"] == "7"
        assert sent.headers["accept-encoding"] == "gzip, deflate, br, zstd"
        assert sent.content == b"payload"

    def test_streams_unsized_body(
        self, context: Context, make_response: MakeResponse
    ) -> None:
        """Unsized stream bodies are sent in full."""
        seen: list[bytes] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.read())
            return make_response(200)

        request = (
            RequestBuilder("https://example.com/")
            .with_method("PUT")
            .with_body(Body.from_stream(io.BytesIO(b"x" * 100_000)))
            .build()
        )
        _transport(context, handler).send(request).close()
        assert seen == [b"x" * 100_000]

    def test_decodes_when_requested(
        self, context: Context, make_response: MakeResponse
    ) -> None:
        """Compressed bodies are decoded when the pipeline asked for it."""
        compressed = gzip.compress(b"hello")

        def handler(request: httpx.Request) -> httpx.Response:
            return make_response(
                200, compressed, {"Content-Encoding": "gzip"}
            )

        request = RequestBuilder("https://example.com/").build()
        with _transport(context, handler).send(request) as response:
            assert response.encoding is ContentEncoding.GZIP
            assert response.reader().read() == b"hello"

    def test_raw_bytes_when_not_requested(
        self, context: Context, make_response: MakeResponse
    ) -> None:
        """A caller-set Accept-Encoding gets the wire bytes back."""
        compressed = gzip.compress(b"hello")

        def handler(request: httpx.Request) -> httpx.Response:
            return make_response(
                200, compressed, {"Content-Encoding": "gzip"}
            )

        request = (
            RequestBuilder("https://example.com/")
            .with_headers(["Accept-Encoding: gzip"])
            .build()
        )
        with _transport(context, handler).send(request) as response:
            assert response.encoding is ContentEncoding.IDENTITY
            assert response.reader().read() == compressed

    def test_response_headers_and_version(
        self, context: Context, make_response: MakeResponse
    ) -> None:
        """Status line and headers are exposed."""

        def handler(request: httpx.Request) -> httpx.Response:
            return make_response(404, b"", {"X-Reason": "gone"})

        request = RequestBuilder("https://example.com/").build()
        with _transport(context, handler).send(request) as response:
            assert response.version == "HTTP/1.1"
            assert response.headers.get("X-Reason") == "gone"
            assert not response.is_success

    def test_follows_redirects(
        self, context: Context, make_response: MakeResponse
    ) -> None:
        """Redirects are followed to the final response."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return make_response(301, b"", {"Location": "/new"})
            return make_response(200, b"moved")

        request = RequestBuilder("https://example.com/old").build()
        with _transport(context, handler).send(request) as response:
            assert response.status == 200
            assert response.reader().read() == b"moved"

    def test_connect_error(self, context: Context) -> None:
        """Client errors become TransportError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        request = RequestBuilder("https://example.com/").build()
        with pytest.raises(TransportError, match="connection refused"):
            _transport(context, handler).send(request)

    def test_timeout_error(self, context: Context) -> None:
        """Timeouts become TransportError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        request = RequestBuilder("https://example.com/").build()
        with pytest.raises(TransportError, match="timed out"):
            _transport(context, handler).send(request)

    def test_redirect_cannot_resend_file_body(
        self, context: Context, tmp_path: Path, make_response: MakeResponse
    ) -> None:
        """A 307 for a streamed file body is a transport error."""
        path = tmp_path / "upload.bin"
        path.write_bytes(b"payload")

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return make_response(307, b"", {"Location": "/new"})
            return make_response(200)

        request = (
            RequestBuilder("https://example.com/old")
            .with_method("PUT")
            .with_body(Body.from_file(path))
            .build()
        )
        with pytest.raises(TransportError, match="resending streamed"):
            _transport(context, handler).send(request)

    def test_redirect_resends_buffered_body(
        self, context: Context, make_response: MakeResponse
    ) -> None:
        """A 307 for a buffered body is followed with the same body."""
        seen: list[bytes] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.read())
            if request.url.path == "/old":
                return make_response(307, b"", {"Location": "/new"})
            return make_response(200)

        request = (
            RequestBuilder("https://example.com/old")
            .with_method("PUT")
            .with_body(Body.from_text("payload"))
            .build()
        )
        with _transport(context, handler).send(request) as response:
            assert response.status == 200
        assert seen == [b"payload", b"payload"]

    def test_invalid_proxy(self, context: Context) -> None:
        """Malformed proxy URLs are a transport error."""
        transport = HttpxTransport(context, proxy="notaproxy")
        request = RequestBuilder("https://example.com/").build()
        with pytest.raises(TransportError, match="configuring client"):
            transport.send(request)

    def test_client_timeouts(self) -> None:
        """The connect timeout never exceeds the total timeout."""
        transport = HttpxTransport(Context(connect_timeout=60.0))
        request = RequestBuilder("https://example.com/").with_timeout(5).build()
        client = transport._client(request)
        try:
            assert client.timeout.connect == 5.0
            assert client.timeout.read == 5.0
        finally:
            client.close()

    def test_no_timeout(self) -> None:
        """Without a total timeout only the connect timeout applies."""
        transport = HttpxTransport(Context(connect_timeout=10.0))
        request = RequestBuilder("https://example.com/").build()
        client = transport._client(request)
        try:
            assert client.timeout.connect == 10.0
            assert client.timeout.read is None
        finally:
            client.close()


class TestResponse:
    """Tests for Response."""

    def test_is_success_range(self) -> None:
        """2xx and 3xx are success, everything else is not."""

        def status(code: int) -> bool:
            return Response(
                code, "HTTP/1.1", HeaderMap(), iter(()), encoding_requested=True
            ).is_success

        assert status(200)
        assert status(399)
        assert not status(199)
        assert not status(400)
        assert not status(500)

    def test_close_idempotent(self) -> None:
        """close runs the callback once."""
        calls: list[None] = []
        response = Response(
            200,
            "HTTP/1.1",
            HeaderMap(),
            iter(()),
            encoding_requested=False,
            on_close=lambda: calls.append(None),
        )
        response.close()
        response.close()
        assert calls == [None]

    def test_closing_reader_closes_response(self) -> None:
        """The reader releases the response when closed."""
        calls: list[None] = []
        response = Response(
            200,
            "HTTP/1.1",
            HeaderMap([("Content-Encoding", "gzip")]),
            iter([gzip.compress(b"abc")]),
            encoding_requested=True,
            on_close=lambda: calls.append(None),
        )
        with response.reader() as reader:
            assert reader.read() == b"abc"
        assert calls == [None]

    def test_repr(self) -> None:
        """repr shows status and version."""
        request = Request(method="GET", url="https://example.com/")
        response = Response(
            200, "HTTP/2", request.headers, iter(()), encoding_requested=False
        )
        assert repr(response) == "Response(status=200, version='HTTP/2')"
