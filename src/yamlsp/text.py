"""Offset ↔ line/column arithmetic over an immutable text."""
from __future__ import annotations

from bisect import bisect_right


class TextBuffer:
    """Line index over *text*.

    Lines are split on ``\\n``; a trailing ``\\r`` is not part of the line
    content.  Columns are string indices within the line (0-based).
    """

    def __init__(self, text: str):
        self.text = text
        self._line_starts = [0]
        for i, ch in enumerate(text):
            if ch == '\n':
                self._line_starts.append(i + 1)

    @property
    def line_count(self) -> int:
        return len(self._line_starts)

    def position(self, offset: int) -> tuple[int, int]:
        """Return ``(line, column)`` for *offset*, clamped to the text."""
        offset = max(0, min(offset, len(self.text)))
        line = bisect_right(self._line_starts, offset) - 1
        return line, offset - self._line_starts[line]

    def offset(self, line: int, column: int) -> int:
        if line >= len(self._line_starts):
            return len(self.text)
        start = self._line_starts[line]
        return min(start + column, start + len(self.line_content(line)))

    def line_content(self, line: int) -> str:
        if line < 0 or line >= len(self._line_starts):
            return ''
        start = self._line_starts[line]
        end = self._line_starts[line + 1] - 1 if line + 1 < len(self._line_starts) else len(self.text)
        return self.text[start:end].rstrip('\r')

    def line_end_offset(self, line: int) -> int:
        return self.offset(line, len(self.line_content(line)))


def indentation(line_content: str, column: int) -> int:
    """Width of the leading whitespace of *line_content*, looking at most up to *column*.

    Equals *column* exactly when everything before the cursor is blank.
    """
    if len(line_content) < column - 1:
        return 0
    for i in range(column):
        if i >= len(line_content) or line_content[i] not in ' \t':
            return i
    return column
