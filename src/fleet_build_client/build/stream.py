"""Incremental decoding of a JSON array delivered in arbitrary chunks."""

import codecs
import json
from typing import Any, Iterator, Optional

from ..exceptions import BuildStreamError

_WHITESPACE = " \t\r\n"
_SCALAR_DELIMITERS = ",]}" + _WHITESPACE
_FRAGMENT_LENGTH = 80


class _Pending:
    """Marker for "no complete value buffered yet"."""

    def __repr__(self) -> str:
        return "PENDING"

    def __bool__(self) -> bool:
        return False


PENDING = _Pending()


class ArrayStreamParser:
    """Pull-based parser for a JSON array that arrives piece by piece.

    ``extend`` appends raw bytes; ``try_next`` returns the next complete
    element or ``PENDING``. Undecoded bytes stay buffered across calls, and the
    closing ``]`` is optional since streams may simply stop.

    Each character is scanned once: an incomplete value is set aside along
    with the scanner state, and scanning resumes on the next chunk.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""
        self._position = 0
        self._pending: list[str] = []
        self._opened = False
        self._closed = False
        self._eof = False
        self._reset_scan()

    def _reset_scan(self) -> None:
        self._kind: Optional[str] = None
        self._scan = 0
        self._depth = 0
        self._in_string = False
        self._escaped = False

    @property
    def buffered(self) -> str:
        """Text received but not yet returned as a value."""
        return "".join(self._pending) + self._buffer[self._position :]

    def extend(self, data: bytes) -> None:
        """Append a chunk of the response body.

        Raises:
            BuildStreamError: If the chunk is not valid UTF-8
        """
        if self._eof:
            raise BuildStreamError("Data received after end of stream")
        try:
            text = self._decoder.decode(data)
        except UnicodeDecodeError as e:
            fragment = data[max(e.start - 16, 0) : e.end + 16]
            raise BuildStreamError(
                "Build log chunk is not valid UTF-8",
                fragment.decode("utf-8", "backslashreplace"),
            ) from e
        self._append(text)

    def feed_eof(self) -> None:
        """Mark the end of input.

        A trailing scalar becomes decodable; an unfinished value makes the
        next ``try_next`` call fail.
        """
        try:
            text = self._decoder.decode(b"", final=True)
        except UnicodeDecodeError as e:
            raise BuildStreamError("Build log ends inside a UTF-8 sequence") from e
        self._append(text)
        self._eof = True

    def _append(self, text: str) -> None:
        if self._position:
            self._buffer = self._buffer[self._position :]
            self._scan = max(self._scan - self._position, 0)
            self._position = 0
        self._buffer += text

    def _skip_separators(self) -> None:
        buffer = self._buffer
        position = self._position
        while position < len(buffer):
            char = buffer[position]
            if char in _WHITESPACE:
                position += 1
            elif self._closed:
                break
            elif char == "[" and not self._opened:
                self._opened = True
                position += 1
            elif char == "," and self._opened:
                position += 1
            else:
                break
        self._position = position

    def _begin_value(self) -> None:
        first = self._buffer[self._position]
        self._scan = self._position
        if first in "{[":
            self._kind = "container"
        elif first == '"':
            self._kind = "string"
        else:
            self._kind = "scalar"
            self._scan += 1

    def _scan_value(self) -> Optional[int]:
        """Advance the scanner; return the end offset once the value is complete.

        The span is only delimited here; validating it is left to the JSON
        decoder.
        """
        buffer = self._buffer
        index = self._scan

        if self._kind == "scalar":
            # Numbers and literals end at the next delimiter, which may not
            # have arrived yet: "12" could still become "123".
            while index < len(buffer) and buffer[index] not in _SCALAR_DELIMITERS:
                index += 1
            self._scan = index
            return index if index < len(buffer) else None

        while index < len(buffer):
            char = buffer[index]
            index += 1
            if self._in_string:
                if self._escaped:
                    self._escaped = False
                elif char == "\\":
                    self._escaped = True
                elif char == '"':
                    self._in_string = False
                    if self._kind == "string":
                        return index
            elif char == '"':
                self._in_string = True
            elif char in "{[":
                self._depth += 1
            elif char in "}]":
                self._depth -= 1
                if self._depth == 0:
                    return index

        self._scan = index
        return None

    def _set_aside(self) -> None:
        self._pending.append(self._buffer[self._position :])
        self._buffer = ""
        self._position = 0
        self._scan = 0

    def try_next(self) -> Any:
        """Return the next complete value, or ``PENDING`` if there is none yet.

        Raises:
            BuildStreamError: If the buffered content is not valid JSON, or
                input ended inside a value
        """
        if self._kind is None:
            self._skip_separators()

            if self._position == len(self._buffer):
                self._buffer = ""
                self._position = 0
                return PENDING

            if self._closed:
                raise BuildStreamError(
                    "Unexpected content after end of array",
                    self._buffer[self._position : self._position + _FRAGMENT_LENGTH],
                )

            if self._opened and self._buffer[self._position] == "]":
                self._closed = True
                self._position += 1
                return self.try_next()

            self._begin_value()

        end = self._scan_value()
        if end is None:
            if not self._eof:
                self._set_aside()
                return PENDING
            if self._kind != "scalar":
                raise BuildStreamError(
                    "Build log ended inside a value", self.buffered[:_FRAGMENT_LENGTH]
                )
            end = len(self._buffer)

        text = "".join(self._pending) + self._buffer[self._position : end]
        self._pending = []
        self._position = end
        self._reset_scan()
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise BuildStreamError(
                f"Malformed build log value: {e.msg}", text[:_FRAGMENT_LENGTH]
            ) from e

    def values(self) -> Iterator[Any]:
        """Yield every value that is complete in the current buffer."""
        while True:
            value = self.try_next()
            if value is PENDING:
                return
            yield value
