"""Incremental decoding of gzip-compressed JSON array exports.

The registry's bulk export is a single JSON array holding every entity of a
partition, gzip-compressed. Decompressed it runs to several gigabytes, so
the decoder never holds more than the current element in memory: it
decompresses chunk by chunk, scans for the boundaries of top-level array
elements and hands each complete element to ``msgspec`` as soon as its
closing brace arrives.

Example
-------
>>> async for record in iter_records(response.aiter_raw()):
...     print(record["organisasjonsnummer"])

"""

from __future__ import annotations

import re
import typing as typ
import zlib

import msgspec

from .errors import DecodeError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

# 16 + MAX_WBITS selects the gzip container.
_GZIP_WBITS = 16 + zlib.MAX_WBITS

_STRUCTURAL = re.compile(rb'["{}\[\]]')
_STRING_END = re.compile(rb'["\\]')
_WHITESPACE = b" \t\r\n"

_record_decoder = msgspec.json.Decoder(dict[str, typ.Any])

# What the array may hold next: the first element or "]", an element after a
# comma, or a comma or "]" after an element.
_EXPECT_FIRST = "first"
_EXPECT_ELEMENT = "element"
_EXPECT_SEPARATOR = "separator"


class _ArrayScanner:
    """Split a byte stream holding one JSON array into its object elements.

    Only the nesting depth, string/escape state and the comma between
    elements are tracked; validating the element content is left to
    ``msgspec``. Bytes before the start of
    the current element are discarded after every ``feed`` call.
    """

    __slots__ = (
        "_buffer",
        "_closed",
        "_consumed",
        "_depth",
        "_element_start",
        "_escaped",
        "_expect",
        "_in_string",
        "_opened",
        "_pos",
    )

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._pos = 0
        self._consumed = 0
        self._depth = 0
        self._in_string = False
        self._escaped = False
        self._opened = False
        self._closed = False
        self._element_start: int | None = None
        self._expect = _EXPECT_FIRST

    def feed(self, data: bytes) -> list[bytes]:
        """Append ``data`` and return every element it completed."""
        if not data:
            return []
        self._buffer += data
        elements: list[bytes] = []
        while self._pos < len(self._buffer):
            if self._in_string:
                if not self._scan_string():
                    break
                continue
            match = _STRUCTURAL.search(self._buffer, self._pos)
            end = match.start() if match else len(self._buffer)
            self._check_gap(self._pos, end)
            if match is None:
                self._pos = end
                break
            self._pos = match.end()
            element = self._on_structural(match.group(), match.start())
            if element is not None:
                elements.append(element)
        self._compact()
        return elements

    def close(self) -> None:
        """Validate that the input ended after a complete array."""
        if not self._closed:
            raise DecodeError.truncated()

    def _scan_string(self) -> bool:
        """Advance through a string literal; return False if more input is needed."""
        while True:
            if self._escaped:
                if self._pos >= len(self._buffer):
                    return False
                self._pos += 1
                self._escaped = False
            match = _STRING_END.search(self._buffer, self._pos)
            if match is None:
                self._pos = len(self._buffer)
                return False
            self._pos = match.end()
            if match.group() == b"\\":
                self._escaped = True
                continue
            self._in_string = False
            return True

    def _check_gap(self, start: int, end: int) -> None:
        """Reject anything but separators between top-level tokens."""
        if start >= end or self._depth > 1:
            return
        gap = bytes(self._buffer[start:end])
        allowed = _WHITESPACE + b"," if self._depth == 1 else _WHITESPACE
        if gap.strip(allowed):
            what = "trailing data" if self._closed else "non-object array element"
            if not self._opened:
                what = "data before the top-level array"
            raise DecodeError.unexpected(what, self._consumed + start)
        if self._depth == 1:
            self._check_separators(gap, start)

    def _check_separators(self, gap: bytes, start: int) -> None:
        """Require exactly one comma between consecutive elements."""
        for index, byte in enumerate(gap):
            if byte != ord(","):
                continue
            if self._expect != _EXPECT_SEPARATOR:
                raise DecodeError.unexpected(
                    "misplaced comma", self._consumed + start + index
                )
            self._expect = _EXPECT_ELEMENT

    def _on_structural(self, token: bytes, index: int) -> bytes | None:
        offset = self._consumed + index
        if self._closed:
            raise DecodeError.unexpected("trailing data", offset)
        if token == b'"':
            if self._depth <= 1:
                raise DecodeError.unexpected("non-object array element", offset)
            self._in_string = True
            return None
        if token in {b"{", b"["}:
            return self._open(token, index, offset)
        return self._close(token, index, offset)

    def _open(self, token: bytes, index: int, offset: int) -> None:
        if self._depth == 0:
            if token != b"[":
                raise DecodeError.unexpected("non-array top-level value", offset)
            self._opened = True
        elif self._depth == 1:
            if token != b"{":
                raise DecodeError.unexpected("non-object array element", offset)
            if self._expect == _EXPECT_SEPARATOR:
                raise DecodeError.unexpected("missing comma between elements", offset)
            self._element_start = index
        self._depth += 1

    def _close(self, token: bytes, index: int, offset: int) -> bytes | None:
        if self._depth == 0:
            raise DecodeError.unexpected(f"closing {token.decode()}", offset)
        self._depth -= 1
        if self._depth == 0:
            if token != b"]":
                raise DecodeError.unexpected("mismatched closing brace", offset)
            if self._expect == _EXPECT_ELEMENT:
                raise DecodeError.unexpected("trailing comma", offset)
            self._closed = True
            return None
        if self._depth == 1 and self._element_start is not None:
            element = bytes(self._buffer[self._element_start : index + 1])
            self._element_start = None
            self._expect = _EXPECT_SEPARATOR
            return element
        return None

    def _compact(self) -> None:
        keep_from = self._pos if self._element_start is None else self._element_start
        if keep_from:
            del self._buffer[:keep_from]
            self._consumed += keep_from
            self._pos -= keep_from
            if self._element_start is not None:
                self._element_start = 0


def _decode_element(raw: bytes) -> dict[str, typ.Any]:
    try:
        return _record_decoder.decode(raw)
    except msgspec.DecodeError as exc:
        raise DecodeError.invalid_record(exc) from exc


class _GzipInflater:
    """Decompress a gzip stream that may hold several concatenated members."""

    __slots__ = ("_decompressor",)

    def __init__(self) -> None:
        self._decompressor = zlib.decompressobj(_GZIP_WBITS)

    def feed(self, chunk: bytes) -> bytes:
        out: list[bytes] = []
        try:
            while chunk:
                if self._decompressor.eof:
                    self._decompressor = zlib.decompressobj(_GZIP_WBITS)
                out.append(self._decompressor.decompress(chunk))
                eof = self._decompressor.eof
                chunk = self._decompressor.unused_data if eof else b""
        except zlib.error as exc:
            raise DecodeError.bad_compression(exc) from exc
        return b"".join(out)

    def finish(self) -> bytes:
        try:
            tail = self._decompressor.flush()
        except zlib.error as exc:
            raise DecodeError.bad_compression(exc) from exc
        if not self._decompressor.eof:
            raise DecodeError.truncated()
        return tail


async def iter_records(
    chunks: cabc.AsyncIterable[bytes],
) -> cabc.AsyncIterator[dict[str, typ.Any]]:
    """Yield the objects of a gzip-compressed top-level JSON array lazily.

    Parameters
    ----------
    chunks
        Compressed bytes in arrival order, for example
        ``httpx.Response.aiter_raw()``.

    Yields
    ------
    dict[str, Any]
        Each top-level array element, in source order, as soon as its
        closing brace has been decompressed.

    Raises
    ------
    DecodeError
        If the input is not valid gzip, is truncated, or is not a JSON
        array of objects. Records yielded before the failure are
        best-effort only.

    """
    inflater = _GzipInflater()
    scanner = _ArrayScanner()
    async for chunk in chunks:
        for raw in scanner.feed(inflater.feed(chunk)):
            yield _decode_element(raw)
    for raw in scanner.feed(inflater.finish()):
        yield _decode_element(raw)
    scanner.close()


async def iter_chunks(
    data: bytes, chunk_size: int = 64 * 1024
) -> cabc.AsyncIterator[bytes]:
    """Yield ``data`` in fixed-size chunks, for decoding in-memory payloads."""
    for start in range(0, len(data), chunk_size):
        yield data[start : start + chunk_size]
