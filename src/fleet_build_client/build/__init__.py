"""Remote build trigger and build log stream handling."""

from .interpreter import BuildLogInterpreter, BuildLogSink, LineBufferSink, TerminalSink
from .stream import PENDING, ArrayStreamParser
from .trigger import interpret_stream, trigger_build

__all__ = [
    "PENDING",
    "ArrayStreamParser",
    "BuildLogInterpreter",
    "BuildLogSink",
    "LineBufferSink",
    "TerminalSink",
    "interpret_stream",
    "trigger_build",
]
