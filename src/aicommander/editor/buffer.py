"""Line-addressed document buffer used as the write target for generations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Protocol, Sequence, runtime_checkable


@dataclass(slots=True, frozen=True, order=True)
class Position:
    """Cursor position expressed as zero-based line and character offsets."""

    line: int = 0
    ch: int = 0


@dataclass(slots=True)
class Selection:
    """Represents the current selection; ``anchor == head`` means no selection."""

    anchor: Position = field(default_factory=Position)
    head: Position = field(default_factory=Position)

    @property
    def start(self) -> Position:
        return min(self.anchor, self.head)

    @property
    def end(self) -> Position:
        return max(self.anchor, self.head)

    @property
    def is_empty(self) -> bool:
        return self.anchor == self.head


@runtime_checkable
class DocumentBuffer(Protocol):
    """Operations the generation pipeline needs from a host editor buffer."""

    @property
    def line_count(self) -> int:
        ...

    def last_line(self) -> int:
        ...

    def get_line(self, index: int) -> str:
        ...

    def set_line(self, index: int, text: str) -> None:
        ...

    def insert_line(self, index: int, text: str = "") -> None:
        ...

    def get_cursor(self) -> Position:
        ...

    def set_cursor(self, position: Position) -> None:
        ...

    def get_selection_range(self) -> Selection:
        ...

    def get_selection(self) -> str:
        ...

    def replace_selection(self, text: str) -> None:
        ...

    def get_range(self, start: Position, end: Position) -> str:
        ...


class LineBuffer:
    """In-memory :class:`DocumentBuffer` backed by a list of lines.

    The buffer always holds at least one (possibly empty) line. Lines never
    contain newline characters; multi-line text must be inserted line by line
    or through :meth:`replace_selection`.
    """

    def __init__(self, lines: Iterable[str] | None = None) -> None:
        self._lines: List[str] = list(lines) if lines is not None else [""]
        if not self._lines:
            self._lines = [""]
        for index, line in enumerate(self._lines):
            self._check_line_text(line, index)
        self._selection = Selection()

    @classmethod
    def from_text(cls, text: str) -> "LineBuffer":
        return cls(text.split("\n"))

    @property
    def text(self) -> str:
        return "\n".join(self._lines)

    @property
    def lines(self) -> Sequence[str]:
        """Return the current lines without exposing internal mutability."""

        return tuple(self._lines)

    @property
    def line_count(self) -> int:
        return len(self._lines)

    def last_line(self) -> int:
        return len(self._lines) - 1

    def get_line(self, index: int) -> str:
        self._check_index(index)
        return self._lines[index]

    def set_line(self, index: int, text: str) -> None:
        self._check_index(index)
        self._check_line_text(text, index)
        self._lines[index] = text

    def insert_line(self, index: int, text: str = "") -> None:
        """Insert ``text`` as a new line at ``index`` (``line_count`` appends)."""

        if index < 0 or index > len(self._lines):
            raise IndexError(f"Line {index} is outside 0..{len(self._lines)}")
        self._check_line_text(text, index)
        self._lines.insert(index, text)

    def get_cursor(self) -> Position:
        return self._selection.head

    def set_cursor(self, position: Position) -> None:
        clamped = self._clamp(position)
        self._selection = Selection(anchor=clamped, head=clamped)

    def set_selection(self, anchor: Position, head: Position) -> None:
        self._selection = Selection(anchor=self._clamp(anchor), head=self._clamp(head))

    def get_selection_range(self) -> Selection:
        return self._selection

    def get_selection(self) -> str:
        if self._selection.is_empty:
            return ""
        return self.get_range(self._selection.start, self._selection.end)

    def replace_selection(self, text: str) -> None:
        start = self._selection.start
        end = self._selection.end
        prefix = self._lines[start.line][: start.ch]
        suffix = self._lines[end.line][end.ch :]
        replacement = (prefix + text + suffix).split("\n")
        self._lines[start.line : end.line + 1] = replacement
        last = replacement[-1]
        self.set_cursor(Position(start.line + len(replacement) - 1, len(last) - len(suffix)))

    def get_range(self, start: Position, end: Position) -> str:
        start = self._clamp(start)
        end = self._clamp(end)
        if end < start:
            start, end = end, start
        if start.line == end.line:
            return self._lines[start.line][start.ch : end.ch]
        parts = [self._lines[start.line][start.ch :]]
        parts.extend(self._lines[start.line + 1 : end.line])
        parts.append(self._lines[end.line][: end.ch])
        return "\n".join(parts)

    def offset_of(self, position: Position) -> int:
        """Return the character offset of ``position`` within :attr:`text`."""

        position = self._clamp(position)
        return sum(len(line) + 1 for line in self._lines[: position.line]) + position.ch

    def _clamp(self, position: Position) -> Position:
        line = max(0, min(position.line, len(self._lines) - 1))
        ch = max(0, min(position.ch, len(self._lines[line])))
        return Position(line, ch)

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= len(self._lines):
            raise IndexError(f"Line {index} is outside 0..{len(self._lines) - 1}")

    @staticmethod
    def _check_line_text(text: str, index: int) -> None:
        if "\n" in text:
            raise ValueError(f"Line {index} text must not contain newlines")


def is_blank(text: str) -> bool:
    return not text.strip()


__all__ = ["Position", "Selection", "DocumentBuffer", "LineBuffer", "is_blank"]
