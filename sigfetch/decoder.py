# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Transparent decompression of response bodies.

The codec is chosen from two inputs only: whether the pipeline itself
asked for compressed content, and the response's ``Content-Encoding``.
When the caller set ``Accept-Encoding`` explicitly, the body is passed
through untouched so it is never decoded twice.

Every codec sits behind the same :class:`io.RawIOBase` interface, so
callers read plaintext without knowing which codec was used.  Malformed
compressed data raises :class:`~sigfetch.errors.DecodeError` when it is
read, never earlier.
"""

from __future__ import annotations

import io
import logging
import zlib
from collections.abc import Callable, Iterable, Iterator
from enum import Enum
from typing import Protocol

import brotli
import zstandard

from sigfetch.errors import DecodeError


logger = logging.getLogger(__name__)

_BUFFER_SIZE = 1 << 14


class ContentEncoding(Enum):
    """Supported response codecs."""

    IDENTITY = "identity"
    GZIP = "gzip"
    DEFLATE = "deflate"
    BROTLI = "br"
    ZSTD = "zstd"


_TOKENS = {
    "gzip": ContentEncoding.GZIP,
    "x-gzip": ContentEncoding.GZIP,
    "deflate": ContentEncoding.DEFLATE,
    "br": ContentEncoding.BROTLI,
    "zstd": ContentEncoding.ZSTD,
}


def select_encoding(
    encoding_requested: bool, content_encoding: str | None
) -> ContentEncoding:
    """Pick the codec for a response.

    Args:
        encoding_requested: True if the pipeline added Accept-Encoding.
        content_encoding: The response's Content-Encoding value, if any.

    Returns:
        The codec to decode with; IDENTITY when decoding is not
        authorized or the token is absent or unknown.
    """
    if not encoding_requested or not content_encoding:
        return ContentEncoding.IDENTITY
    token = content_encoding.strip().lower()
    return _TOKENS.get(token, ContentEncoding.IDENTITY)


class _Decompressor(Protocol):
    def decompress(self, data: bytes) -> bytes: ...

    def flush(self) -> bytes: ...


class _Passthrough:
    def decompress(self, data: bytes) -> bytes:
        return data

    def flush(self) -> bytes:
        return b""


class _Gzip:
    """gzip member decoder; trailing members are decoded too."""

    def __init__(self) -> None:
        self._obj = zlib.decompressobj(zlib.MAX_WBITS | 16)

    def decompress(self, data: bytes) -> bytes:
        out = self._obj.decompress(data)
        while self._obj.eof and self._obj.unused_data:
            rest = self._obj.unused_data
            self._obj = zlib.decompressobj(zlib.MAX_WBITS | 16)
            out += self._obj.decompress(rest)
        return out

    def flush(self) -> bytes:
        out = self._obj.flush()
        if not self._obj.eof:
            raise zlib.error("incomplete gzip stream")
        return out


class _Deflate:
    """zlib-wrapped deflate, falling back to raw deflate.

    Servers disagree on what ``deflate`` means, so a stream without a
    zlib header is retried as raw deflate.
    """

    def __init__(self) -> None:
        self._first_attempt = True
        self._obj = zlib.decompressobj()

    def decompress(self, data: bytes) -> bytes:
        was_first_attempt = self._first_attempt
        self._first_attempt = False
        try:
            return self._obj.decompress(data)
        except zlib.error:
            if not was_first_attempt:
                raise
            self._obj = zlib.decompressobj(-zlib.MAX_WBITS)
            return self._obj.decompress(data)

    def flush(self) -> bytes:
        return self._obj.flush()


class _Brotli:
    def __init__(self) -> None:
        self._obj = brotli.Decompressor()

    def decompress(self, data: bytes) -> bytes:
        return self._obj.process(data)

    def flush(self) -> bytes:
        if not self._obj.is_finished():
            raise brotli.error("incomplete brotli stream")
        return b""


class _Zstd:
    def __init__(self) -> None:
        self._obj = zstandard.ZstdDecompressor().decompressobj()

    def decompress(self, data: bytes) -> bytes:
        return self._obj.decompress(data)

    def flush(self) -> bytes:
        return self._obj.flush()


def _new_decompressor(encoding: ContentEncoding) -> _Decompressor:
    match encoding:
        case ContentEncoding.IDENTITY:
            return _Passthrough()
        case ContentEncoding.GZIP:
            return _Gzip()
        case ContentEncoding.DEFLATE:
            return _Deflate()
        case ContentEncoding.BROTLI:
            return _Brotli()
        case ContentEncoding.ZSTD:
            return _Zstd()


_DECODE_ERRORS: tuple[type[Exception], ...] = (
    zlib.error,
    brotli.error,
    zstandard.ZstdError,
)


class DecodingReader(io.RawIOBase):
    """Readable stream of decoded bytes over raw response chunks.

    Args:
        chunks: Raw (possibly compressed) body chunks.
        encoding: Codec to decode with.
        on_close: Called once when the reader is closed, typically to
            release the underlying connection.
    """

    def __init__(
        self,
        chunks: Iterable[bytes],
        encoding: ContentEncoding,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        super().__init__()
        self.encoding = encoding
        self._chunks: Iterator[bytes] = iter(chunks)
        self._decompressor = _new_decompressor(encoding)
        self._pending = b""
        self._exhausted = False
        self._received = False
        self._on_close = on_close

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: bytearray | memoryview) -> int:
        """Fill ``buffer`` with decoded bytes.

        Returns:
            Number of bytes written; 0 at end of stream.

        Raises:
            DecodeError: If the compressed data is malformed.
        """
        while not self._pending and not self._exhausted:
            self._pending = self._next_decoded()
        n = min(len(buffer), len(self._pending))
        buffer[:n] = self._pending[:n]
        self._pending = self._pending[n:]
        return n

    def close(self) -> None:
        if not self.closed and self._on_close is not None:
            self._on_close()
        super().close()

    def _next_decoded(self) -> bytes:
        try:
            chunk = next(self._chunks, None)
            if chunk is None:
                self._exhausted = True
                # An empty body is valid whatever the declared encoding
                if not self._received:
                    return b""
                return self._decompressor.flush()
            if chunk:
                self._received = True
            return self._decompressor.decompress(chunk)
        except _DECODE_ERRORS as e:
            self._exhausted = True
            raise DecodeError(
                f"decoding {self.encoding.value} response body: {e}"
            ) from e


def open_decoder(
    chunks: Iterable[bytes],
    encoding: ContentEncoding,
    on_close: Callable[[], None] | None = None,
) -> io.BufferedReader:
    """Wrap raw chunks in a buffered, decoding reader."""
    logger.debug("Decoding response body as %s", encoding.value)
    return io.BufferedReader(
        DecodingReader(chunks, encoding, on_close), buffer_size=_BUFFER_SIZE
    )
