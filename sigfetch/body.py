# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Request body sources.

A body is either an in-memory buffer or a byte stream (file handle, stdin)
whose length may or may not be known.  Streams are read lazily: they are
only pulled into memory when something needs the whole payload (such as
the SigV4 payload hash), and once read the bytes are cached and reused
for transmission.
"""

from __future__ import annotations

import logging
import mimetypes
import os
import stat
import urllib.parse
from collections.abc import Iterator
from enum import Enum
from pathlib import Path
from typing import BinaryIO

from sigfetch.errors import TransportError


logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

_CHUNK_SIZE = 64 * 1024


class BodyKind(Enum):
    """Body variant."""

    BUFFER = "buffer"
    SIZED_STREAM = "sized-stream"
    UNSIZED_STREAM = "unsized-stream"


class Body:
    """Request payload.

    Use the ``from_*`` constructors rather than instantiating directly.

    Attributes:
        kind: Which variant this body is.
        content_type: Content type inferred from the source, if any.
    """

    __slots__ = ("kind", "content_type", "_data", "_handle", "_length")

    def __init__(
        self,
        kind: BodyKind,
        *,
        data: bytes | None = None,
        handle: BinaryIO | None = None,
        length: int | None = None,
        content_type: str | None = None,
    ) -> None:
        if kind is BodyKind.BUFFER:
            if data is None:
                raise ValueError("buffer body requires data")
            length = len(data)
        elif handle is None:
            raise ValueError("stream body requires a handle")
        elif kind is BodyKind.SIZED_STREAM and length is None:
            raise ValueError("sized stream body requires a length")
        elif kind is BodyKind.UNSIZED_STREAM:
            length = None
        self.kind = kind
        self.content_type = content_type
        self._data = data
        self._handle = handle
        self._length = length

    @classmethod
    def from_bytes(cls, data: bytes, content_type: str | None = None) -> Body:
        return cls(BodyKind.BUFFER, data=data, content_type=content_type)

    @classmethod
    def from_text(cls, text: str, content_type: str | None = None) -> Body:
        return cls.from_bytes(text.encode("utf-8"), content_type)

    @classmethod
    def from_stream(
        cls,
        handle: BinaryIO,
        length: int | None = None,
        content_type: str | None = None,
    ) -> Body:
        """Wrap a readable binary handle.

        Args:
            handle: Readable binary file-like object.
            length: Total number of bytes, or None when unknown.
            content_type: Content type of the payload, if known.
        """
        if length is None:
            kind = BodyKind.UNSIZED_STREAM
        else:
            kind = BodyKind.SIZED_STREAM
        return cls(
            kind, handle=handle, length=length, content_type=content_type
        )

    @classmethod
    def from_file(cls, path: str | Path) -> Body:
        """Open a file as a sized stream.

        The length comes from ``fstat`` and the content type is guessed
        from the file extension.  Non-regular files (pipes, character
        devices) become unsized streams.

        Raises:
            TransportError: If the file cannot be opened.
        """
        try:
            # Closed once the body has been read
            handle = open(path, "rb")  # noqa: SIM115
            st = os.fstat(handle.fileno())
        except OSError as e:
            raise TransportError(f"reading body from '{path}': {e}") from e
        length = st.st_size if stat.S_ISREG(st.st_mode) else None
        content_type, _ = mimetypes.guess_type(str(path))
        logger.debug("Body from file %s (length=%s)", path, length)
        return cls.from_stream(handle, length, content_type)

    @classmethod
    def from_form(cls, pairs: list[tuple[str, str]]) -> Body:
        """URL-encode form pairs into a buffer body."""
        data = urllib.parse.urlencode(pairs).encode("ascii")
        return cls.from_bytes(data, FORM_CONTENT_TYPE)

    @property
    def length(self) -> int | None:
        """Number of bytes in the body, or None when unknown."""
        if self._data is not None:
            return len(self._data)
        return self._length

    @property
    def is_materialized(self) -> bool:
        """True once the bytes are held in memory."""
        return self._data is not None

    def materialize(self) -> bytes:
        """Return the whole payload, reading a stream at most once.

        Raises:
            TransportError: If reading the stream fails.
        """
        if self._data is None:
            assert self._handle is not None
            try:
                self._data = self._handle.read()
            except OSError as e:
                raise TransportError(f"reading request body: {e}") from e
            finally:
                self.close()
            logger.debug("Buffered %d byte stream body", len(self._data))
        return self._data

    def content(self) -> bytes | Iterator[bytes]:
        """Return the payload in the form the transport sends.

        Buffers (and materialized streams) return bytes; streams return an
        iterator that reads the handle in chunks.
        """
        if self._data is not None:
            return self._data
        return self._iter_chunks()

    def close(self) -> None:
        """Close the underlying handle, if any."""
        if self._handle is not None:
            self._handle.close()

    def _iter_chunks(self) -> Iterator[bytes]:
        assert self._handle is not None
        try:
            while chunk := self._handle.read(_CHUNK_SIZE):
                yield chunk
        except OSError as e:
            raise TransportError(f"reading request body: {e}") from e
        finally:
            self.close()

    def __repr__(self) -> str:
        return f"Body(kind={self.kind.value}, length={self.length})"
