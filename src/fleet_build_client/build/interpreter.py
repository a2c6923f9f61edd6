"""Rendering of builder control messages."""

import json
import sys
from typing import Any, Optional, Protocol, TextIO

from ..exceptions import BuildStreamError

CURSOR_UP = "\x1b[1A"
CLEAR_LINE = "\x1b[2K\r"


class BuildLogSink(Protocol):
    """Destination for rendered build log lines."""

    def write_line(self, text: str) -> None: ...

    def erase_line(self) -> None: ...


class TerminalSink:
    """Renders onto a terminal using ANSI cursor control."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream if stream is not None else sys.stdout

    def write_line(self, text: str) -> None:
        self.stream.write(text + "\n")
        self.stream.flush()

    def erase_line(self) -> None:
        self.stream.write(CURSOR_UP + CLEAR_LINE)
        self.stream.flush()


class LineBufferSink:
    """Keeps the visible lines in memory, for non-terminal output."""

    def __init__(self) -> None:
        self.lines: list[str] = []

    def write_line(self, text: str) -> None:
        self.lines.append(text)

    def erase_line(self) -> None:
        if self.lines:
            self.lines.pop()


def _fragment(value: Any) -> str:
    return json.dumps(value)[:120]


def _field(message: dict, name: str, expected: type) -> Any:
    value = message[name]
    if not isinstance(value, expected):
        raise BuildStreamError(
            f"Message {name} property is not a {expected.__name__}", _fragment(message)
        )
    return value


class BuildLogInterpreter:
    """Applies build log control messages to a sink and tracks the verdict.

    Recognized fields: ``isSuccess`` (last value wins), ``message`` with an
    optional ``replace`` flag, and ``resource: "cursor"`` with
    ``value: "erase"``. Anything else is ignored.
    """

    def __init__(self, sink: BuildLogSink) -> None:
        self.sink = sink
        self.success = False

    def feed(self, message: Any) -> None:
        """Apply one decoded message.

        Raises:
            BuildStreamError: If the message is not an object or a known field
                has the wrong type
        """
        if not isinstance(message, dict):
            raise BuildStreamError("Build log value is not an object", _fragment(message))

        if "isSuccess" in message:
            self.success = _field(message, "isSuccess", bool)

        if "message" in message:
            text = _field(message, "message", str)
            if "replace" in message and _field(message, "replace", bool):
                self.sink.erase_line()
            self.sink.write_line(text)

        if "resource" in message and _field(message, "resource", str) == "cursor":
            if "value" not in message:
                raise BuildStreamError("Cursor message has no value", _fragment(message))
            if _field(message, "value", str) == "erase":
                self.sink.erase_line()
