# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for response decoding."""

import gzip
import zlib

import brotli
import pytest
import zstandard

from sigfetch.decoder import (
    ContentEncoding,
    DecodingReader,
    open_decoder,
    select_encoding,
)
from sigfetch.errors import DecodeError


PLAINTEXT = b"The quick brown fox jumps over the lazy dog.\n" * 200


def _chunks(data: bytes, size: int = 7) -> list[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]


def _raw_deflate(data: bytes) -> bytes:
    obj = zlib.compressobj(wbits=-zlib.MAX_WBITS)
    return obj.compress(data) + obj.flush()


class TestSelectEncoding:
    """Tests for select_encoding."""

    @pytest.mark.parametrize(
        ("header", "expected"),
        [
            ("gzip", ContentEncoding.GZIP),
            ("x-gzip", ContentEncoding.GZIP),
            (" GZIP ", ContentEncoding.GZIP),
            ("deflate", ContentEncoding.DEFLATE),
            ("br", ContentEncoding.BROTLI),
            ("zstd", ContentEncoding.ZSTD),
            ("compress", ContentEncoding.IDENTITY),
            ("gzip, br", ContentEncoding.IDENTITY),
            (None, ContentEncoding.IDENTITY),
            ("", ContentEncoding.IDENTITY),
        ],
    )
    def test_requested(
        self, header: str | None, expected: ContentEncoding
    ) -> None:
        """Known tokens map to their codec when decoding is requested."""
        assert select_encoding(True, header) is expected

    @pytest.mark.parametrize("header", ["gzip", "br", "zstd", "deflate"])
    def test_not_requested(self, header: str) -> None:
        """Without a pipeline-added Accept-Encoding, nothing is decoded."""
        assert select_encoding(False, header) is ContentEncoding.IDENTITY


class TestDecodingReader:
    """Tests for each codec behind the shared reader."""

    @pytest.mark.parametrize(
        ("encoding", "compressed"),
        [
            (ContentEncoding.IDENTITY, PLAINTEXT),
            (ContentEncoding.GZIP, gzip.compress(PLAINTEXT)),
            (ContentEncoding.DEFLATE, zlib.compress(PLAINTEXT)),
            (ContentEncoding.DEFLATE, _raw_deflate(PLAINTEXT)),
            (ContentEncoding.BROTLI, brotli.compress(PLAINTEXT)),
            (
                ContentEncoding.ZSTD,
                zstandard.ZstdCompressor().compress(PLAINTEXT),
            ),
        ],
    )
    def test_decodes_in_small_chunks(
        self, encoding: ContentEncoding, compressed: bytes
    ) -> None:
        """Every codec decodes a body split across many chunks."""
        with open_decoder(_chunks(compressed), encoding) as reader:
            assert reader.read() == PLAINTEXT

    def test_gzip_multiple_members(self) -> None:
        """Concatenated gzip members decode to the concatenated data."""
        data = gzip.compress(b"first ") + gzip.compress(b"second")
        with open_decoder([data], ContentEncoding.GZIP) as reader:
            assert reader.read() == b"first second"

    def test_passthrough_keeps_compressed_bytes(self) -> None:
        """IDENTITY returns the wire bytes unchanged."""
        compressed = gzip.compress(PLAINTEXT)
        with open_decoder([compressed], ContentEncoding.IDENTITY) as reader:
            assert reader.read() == compressed

    @pytest.mark.parametrize("encoding", list(ContentEncoding))
    def test_empty_body(self, encoding: ContentEncoding) -> None:
        """An empty body decodes to nothing for every codec."""
        with open_decoder([], encoding) as reader:
            assert reader.read() == b""

    def test_empty_chunks_skipped(self) -> None:
        """Empty chunks between data are harmless."""
        compressed = gzip.compress(b"abc")
        chunks = [b"", compressed[:5], b"", compressed[5:]]
        with open_decoder(chunks, ContentEncoding.GZIP) as reader:
            assert reader.read() == b"abc"

    @pytest.mark.parametrize(
        "encoding",
        [
            ContentEncoding.GZIP,
            ContentEncoding.DEFLATE,
            ContentEncoding.BROTLI,
            ContentEncoding.ZSTD,
        ],
    )
    def test_malformed_raises_on_read(self, encoding: ContentEncoding) -> None:
        """Garbage fails on read, not when the reader is opened."""
        reader = open_decoder([b"\xff\xfe not compressed data"], encoding)
        with pytest.raises(DecodeError, match=encoding.value):
            reader.read()
        reader.close()

    def test_truncated_gzip(self) -> None:
        """A gzip stream cut short is an error."""
        compressed = gzip.compress(PLAINTEXT)[:-10]
        reader = open_decoder([compressed], ContentEncoding.GZIP)
        with pytest.raises(DecodeError, match="incomplete"):
            reader.read()
        reader.close()

    def test_truncated_brotli(self) -> None:
        """A brotli stream cut short is an error."""
        compressed = brotli.compress(PLAINTEXT)[:-4]
        reader = open_decoder([compressed], ContentEncoding.BROTLI)
        with pytest.raises(DecodeError):
            reader.read()
        reader.close()

    def test_on_close_called_once(self) -> None:
        """Closing the reader runs the callback exactly once."""
        calls: list[None] = []
        reader = open_decoder(
            [b"x"], ContentEncoding.IDENTITY, lambda: calls.append(None)
        )
        reader.close()
        reader.close()
        assert calls == [None]

    def test_readinto_partial(self) -> None:
        """Small reads return the data piece by piece."""
        reader = DecodingReader([b"abcdef"], ContentEncoding.IDENTITY)
        buffer = bytearray(4)
        assert reader.readinto(buffer) == 4
        assert bytes(buffer) == b"abcd"
        assert reader.readinto(buffer) == 2
        assert bytes(buffer[:2]) == b"ef"
        assert reader.readinto(buffer) == 0
