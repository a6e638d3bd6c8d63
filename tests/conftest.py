# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures."""

from collections.abc import Callable, Iterator

import httpx
import pytest

from sigfetch.config import Context
from sigfetch.logging import SecretFilter


class ChunkStream(httpx.SyncByteStream):
    """Response stream that yields fixed chunks.

    Unlike ``content=``, it is not read eagerly, so ``iter_raw`` still
    sees the bytes as sent.
    """

    def __init__(self, *chunks: bytes) -> None:
        self._chunks = chunks

    def __iter__(self) -> Iterator[bytes]:
        yield from self._chunks


@pytest.fixture(autouse=True)
def _reset_global_state() -> Iterator[None]:
    """Clear registered secrets around each test."""
    SecretFilter.clear_secrets()
    yield
    SecretFilter.clear_secrets()


@pytest.fixture
def context() -> Context:
    """A non-interactive process context."""
    return Context(user_agent="sigfetch/test")


@pytest.fixture
def make_response() -> Callable[..., httpx.Response]:
    """Factory for streamed ``httpx`` responses."""

    def _make(
        status: int = 200,
        body: bytes = b"",
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        return httpx.Response(
            status, headers=headers or {}, stream=ChunkStream(body)
        )

    return _make
