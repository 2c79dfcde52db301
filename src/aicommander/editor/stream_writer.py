"""Incremental writer that streams generated text into a document buffer.

The writer is split in two layers. :class:`LineAssembler` is a small state
machine that turns arbitrarily chunked fragments into ``append``/``newline``
events while holding only the current partial line. The
:class:`StreamingDocumentWriter` applies those events to a
:class:`~aicommander.editor.buffer.DocumentBuffer`, keeping a moving insertion
cursor and the host's visible cursor in sync.

Layout of a finished session::

    <existing text>
    <blank separator line>
    <generated line 1>
    ...
    <generated line n>
    <trailing blank line>
    <existing text that followed the insertion point>
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterable, List

from .buffer import DocumentBuffer, Position, is_blank

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Line assembly
# -----------------------------------------------------------------------------


class LineEventKind(Enum):
    APPEND = "append"
    NEWLINE = "newline"


@dataclass(slots=True, frozen=True)
class LineEvent:
    """One step produced by :class:`LineAssembler`."""

    kind: LineEventKind
    text: str = ""

    @classmethod
    def append(cls, text: str) -> "LineEvent":
        return cls(LineEventKind.APPEND, text)

    @classmethod
    def newline(cls) -> "LineEvent":
        return cls(LineEventKind.NEWLINE)


class AssemblerState(Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    CLOSED = "closed"


class LineAssembler:
    """Split a fragment stream on newline boundaries.

    ``feed`` never drops, reorders or trims characters: concatenating the
    text of every ``append`` event, with ``"\\n"`` for every ``newline`` event,
    reproduces the concatenation of the fed fragments exactly.
    """

    def __init__(self, initial: str = "") -> None:
        self._current = initial
        self._state = AssemblerState.IDLE
        self._lines_closed = 0

    @property
    def current(self) -> str:
        """Text of the line currently being assembled."""

        return self._current

    @property
    def state(self) -> AssemblerState:
        return self._state

    @property
    def lines_closed(self) -> int:
        return self._lines_closed

    def feed(self, fragment: str) -> List[LineEvent]:
        if self._state is AssemblerState.CLOSED:
            raise RuntimeError("LineAssembler is closed")
        self._state = AssemblerState.ACCUMULATING
        events: List[LineEvent] = []
        if not fragment:
            return events
        head, *rest = fragment.split("\n")
        if head:
            self._current += head
            events.append(LineEvent.append(head))
        for segment in rest:
            self._current = segment
            self._lines_closed += 1
            events.append(LineEvent.newline())
            if segment:
                events.append(LineEvent.append(segment))
        return events

    def close(self) -> str:
        """Stop accepting fragments and return the final partial line."""

        self._state = AssemblerState.CLOSED
        return self._current


# -----------------------------------------------------------------------------
# Document writer
# -----------------------------------------------------------------------------


def find_insertion_line(buffer: DocumentBuffer, origin_line: int) -> int:
    """Return the first blank line at or after ``origin_line``.

    When the scan reaches the last line without finding a blank line an empty
    line is appended and its index returned, so the caller never has to
    overwrite existing content.
    """

    last = buffer.last_line()
    line = max(0, min(origin_line, last))
    while line <= last:
        if is_blank(buffer.get_line(line)):
            return line
        line += 1
    buffer.insert_line(last + 1, "")
    return last + 1


@dataclass(slots=True, frozen=True)
class WriteSummary:
    """Where a finished session wrote and what it wrote."""

    start_line: int
    end_line: int
    text: str

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1


class StreamingDocumentWriter:
    """Apply a stream of text fragments to a document buffer, line by line."""

    def __init__(self, buffer: DocumentBuffer, origin_line: int) -> None:
        self._buffer = buffer
        self._origin_line = origin_line
        self._separate = True
        self._assembler = LineAssembler()
        self._start_line: int | None = None
        self._write_line: int | None = None
        self._line_text = ""
        self._chunks: List[str] = []
        self._finished = False

    @classmethod
    def append_to_line(cls, buffer: DocumentBuffer, line: int) -> "StreamingDocumentWriter":
        """Return a writer that continues the existing text of ``line``.

        No separator line is inserted; the trailing blank line still is.
        """

        writer = cls(buffer, line)
        writer._separate = False
        return writer

    @property
    def started(self) -> bool:
        return self._write_line is not None

    @property
    def write_line(self) -> int | None:
        """Index of the line receiving characters, ``None`` before :meth:`begin`."""

        return self._write_line

    @property
    def start_line(self) -> int | None:
        return self._start_line

    @property
    def text(self) -> str:
        """Everything written so far."""

        return "".join(self._chunks)

    def begin(self) -> int:
        """Prepare the buffer and return the first line that will receive text."""

        if self._write_line is not None:
            return self._write_line
        buffer = self._buffer
        if self._separate:
            separator = find_insertion_line(buffer, self._origin_line)
            first = separator + 1
            buffer.insert_line(first, "")
            LOGGER.debug("Streaming into line %s (separator at %s)", first, separator)
        else:
            first = max(0, min(self._origin_line, buffer.last_line()))
            LOGGER.debug("Streaming onto the end of line %s", first)
        self._line_text = buffer.get_line(first)
        self._assembler = LineAssembler(self._line_text)
        self._start_line = first
        self._write_line = first
        self._move_cursor()
        return first

    def write(self, fragment: str) -> None:
        if self._finished:
            raise RuntimeError("StreamingDocumentWriter has already finished")
        if not fragment:
            return
        if self._write_line is None:
            self.begin()
        assert self._write_line is not None
        buffer = self._buffer
        for event in self._assembler.feed(fragment):
            if event.kind is LineEventKind.NEWLINE:
                buffer.insert_line(self._write_line + 1, "")
                self._write_line += 1
                self._line_text = ""
            else:
                self._line_text += event.text
                buffer.set_line(self._write_line, self._line_text)
        self._chunks.append(fragment)
        self._move_cursor()

    def finish(self) -> WriteSummary | None:
        """Insert the trailing blank line and return what was written.

        Returns ``None`` when nothing was ever written; the buffer is left
        untouched in that case.
        """

        if self._finished:
            raise RuntimeError("StreamingDocumentWriter has already finished")
        self._finished = True
        self._assembler.close()
        if self._write_line is None or self._start_line is None:
            return None
        self._buffer.insert_line(self._write_line + 1, "")
        self._move_cursor()
        summary = WriteSummary(
            start_line=self._start_line,
            end_line=self._write_line,
            text=self.text,
        )
        LOGGER.debug(
            "Streaming finished: %s line(s), %s character(s)",
            summary.line_count,
            len(summary.text),
        )
        return summary

    async def consume(self, stream: AsyncIterable[str]) -> WriteSummary | None:
        """Write every fragment of ``stream`` in order, then :meth:`finish`.

        Errors raised by the stream propagate unchanged; text already written
        stays in the buffer.
        """

        async for fragment in stream:
            self.write(fragment)
        return self.finish()

    def write_all(self, text: str) -> WriteSummary | None:
        """Write a complete, non-streamed result in one step."""

        self.write(text)
        return self.finish()

    def _move_cursor(self) -> None:
        if self._write_line is None:
            return
        line_text = self._buffer.get_line(self._write_line)
        self._buffer.set_cursor(Position(self._write_line, len(line_text)))


__all__ = [
    "LineAssembler",
    "LineEvent",
    "LineEventKind",
    "AssemblerState",
    "StreamingDocumentWriter",
    "WriteSummary",
    "find_insertion_line",
]
