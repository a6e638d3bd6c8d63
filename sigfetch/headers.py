# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Header multi-map and parsing of raw header/query strings.

Header strings arrive as ``"name: value"`` and query strings as
``"key=value"``.  Headers are stored in a case-insensitive multi-map that
keeps insertion order, so repeated names survive until the signer or the
transport decides how to combine them.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator

from sigfetch.errors import HeaderError


# RFC 7230 token: the syntax of header names and methods
TOKEN_RE = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")

# Visible ASCII plus space and tab; httpx encodes header values as ASCII
_VALUE_RE = re.compile(r"[\x20-\x7e\t]*")


class HeaderMap:
    """Case-insensitive, order-preserving header multi-map.

    Names keep the case they were first added with; lookups ignore case.
    A name may hold several values, kept in the order they were added.
    """

    __slots__ = ("_items",)

    def __init__(self, items: Iterable[tuple[str, str]] = ()) -> None:
        self._items: list[tuple[str, str]] = []
        for name, value in items:
            self.add(name, value)

    def add(self, name: str, value: str) -> None:
        """Append a value for ``name``, keeping existing values."""
        self._items.append((name, value))

    def set(self, name: str, value: str) -> None:
        """Replace every value of ``name`` with a single value.

        The new value takes the position of the first existing one, or is
        appended when the name is not present.
        """
        key = name.lower()
        for i, (existing, _) in enumerate(self._items):
            if existing.lower() == key:
                self._items[i] = (name, value)
                self._items[i + 1 :] = [
                    item
                    for item in self._items[i + 1 :]
                    if item[0].lower() != key
                ]
                return
        self._items.append((name, value))

    def setdefault(self, name: str, value: str) -> bool:
        """Add ``name`` only if absent.

        Returns:
            True if the value was added.
        """
        if name in self:
            return False
        self._items.append((name, value))
        return True

    def get(self, name: str, default: str | None = None) -> str | None:
        """Return the first value of ``name``."""
        key = name.lower()
        for existing, value in self._items:
            if existing.lower() == key:
                return value
        return default

    def get_all(self, name: str) -> list[str]:
        """Return all values of ``name`` in insertion order."""
        key = name.lower()
        return [v for n, v in self._items if n.lower() == key]

    def remove(self, name: str) -> None:
        """Remove every value of ``name``."""
        key = name.lower()
        self._items = [item for item in self._items if item[0].lower() != key]

    def items(self) -> list[tuple[str, str]]:
        """Return ``(name, value)`` pairs in insertion order."""
        return list(self._items)

    def names(self) -> list[str]:
        """Return distinct lower-case names in first-seen order."""
        seen: dict[str, None] = {}
        for name, _ in self._items:
            seen.setdefault(name.lower(), None)
        return list(seen)

    def copy(self) -> HeaderMap:
        return HeaderMap(self._items)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        key = name.lower()
        return any(n.lower() == key for n, _ in self._items)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HeaderMap):
            return NotImplemented
        return [(n.lower(), v) for n, v in self._items] == [
            (n.lower(), v) for n, v in other._items
        ]

    def __repr__(self) -> str:
        return f"HeaderMap({self._items!r})"


def validate_header(name: str, value: str) -> None:
    """Check header syntax.

    Raises:
        HeaderError: If the name is not a token or the value holds
            anything but visible ASCII, space and tab.
    """
    if not TOKEN_RE.fullmatch(name):
        raise HeaderError(f"invalid header name: {name!r}")
    if not _VALUE_RE.fullmatch(value):
        raise HeaderError(f"invalid value for header '{name}'")


def parse_header(raw: str) -> tuple[str, str]:
    """Parse one ``"name: value"`` string.

    A string without ``:`` is a header with an empty value.  Whitespace
    around both name and value is trimmed.

    Raises:
        HeaderError: If the result is not a valid header.
    """
    name, sep, value = raw.partition(":")
    name = name.strip()
    value = value.strip() if sep else ""
    validate_header(name, value)
    return name, value


def parse_headers(raw_headers: Iterable[str]) -> HeaderMap:
    """Parse raw header strings into a :class:`HeaderMap`."""
    headers = HeaderMap()
    for raw in raw_headers:
        name, value = parse_header(raw)
        headers.add(name, value)
    return headers


def parse_query(raw_query: Iterable[str]) -> list[tuple[str, str]]:
    """Parse raw ``"key=value"`` strings, keeping their order.

    A pair without ``=`` has an empty value.
    """
    pairs: list[tuple[str, str]] = []
    for raw in raw_query:
        key, _, value = raw.partition("=")
        pairs.append((key, value))
    return pairs
