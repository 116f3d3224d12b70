"""Editable text region shared by every form field."""

from __future__ import annotations

from dataclasses import dataclass

_UNDO_LIMIT = 200


@dataclass(frozen=True)
class BufferSnapshot:
    """Read-only view of a buffer for the render surface."""

    lines: tuple[str, ...]
    cursor: tuple[int, int]
    selection: tuple[int, int, int, int] | None = None


class FieldBuffer:
    """Lines of text with a cursor and an optional selection anchor.

    Positions are ``(row, col)``; most editing helpers also accept flat
    offsets into ``"\\n".join(lines)`` so motions can cross line ends.
    """

    def __init__(
        self,
        text: str = "",
        *,
        single_line: bool = False,
        read_only: bool = False,
    ) -> None:
        self.single_line: bool = single_line
        self.read_only: bool = read_only
        self.lines: list[str] = self._split(text)
        self.cursor_row: int = 0
        self.cursor_col: int = 0
        self.anchor: tuple[int, int] | None = None
        self.undo_stack: list[tuple[list[str], int, int]] = []
        self.redo_stack: list[tuple[list[str], int, int]] = []

    def __repr__(self) -> str:
        return f"FieldBuffer({self.get_content()!r})"

    def _split(self, text: str) -> list[str]:
        if self.single_line:
            return [text.replace("\r", "").replace("\n", "")]
        return text.split("\n") if text else [""]

    # -- Content -----------------------------------------------------------

    def get_content(self) -> str:
        return "\n".join(self.lines)

    def set_content(self, content: str) -> None:
        """Replace the whole text; the cursor keeps its place where it can."""
        self.lines = self._split(content)
        self.anchor = None
        self.clamp()

    def is_empty(self) -> bool:
        return self.lines == [""]

    def clamp(self, allow_eol: bool = False) -> None:
        self.cursor_row = max(0, min(self.cursor_row, len(self.lines) - 1))
        line_len = len(self.lines[self.cursor_row])
        if allow_eol:
            max_col = line_len
        else:
            max_col = max(0, line_len - 1)
        self.cursor_col = max(0, min(self.cursor_col, max_col))
        if self.anchor is not None:
            ar = max(0, min(self.anchor[0], len(self.lines) - 1))
            ac = max(0, min(self.anchor[1], len(self.lines[ar])))
            self.anchor = (ar, ac)

    def move_to_end(self) -> None:
        self.cursor_row = len(self.lines) - 1
        self.cursor_col = len(self.lines[self.cursor_row])

    # -- Offsets -----------------------------------------------------------

    def offset(self, row: int | None = None, col: int | None = None) -> int:
        """Flat offset of ``(row, col)``, defaulting to the cursor."""
        if row is None:
            row = self.cursor_row
        if col is None:
            col = self.cursor_col
        return sum(len(line) + 1 for line in self.lines[:row]) + col

    def position(self, offset: int) -> tuple[int, int]:
        offset = max(0, offset)
        for row, line in enumerate(self.lines):
            if offset <= len(line):
                return row, offset
            offset -= len(line) + 1
        last = len(self.lines) - 1
        return last, len(self.lines[last])

    def set_cursor_offset(self, offset: int) -> None:
        self.cursor_row, self.cursor_col = self.position(offset)

    def text_range(self, start: int, end: int) -> str:
        return self.get_content()[start:end]

    def delete_range(self, start: int, end: int) -> str:
        """Remove ``[start, end)`` and return the removed text."""
        content = self.get_content()
        start = max(0, min(start, len(content)))
        end = max(start, min(end, len(content)))
        removed = content[start:end]
        self.lines = self._split(content[:start] + content[end:])
        self.set_cursor_offset(start)
        return removed

    def insert_text(self, offset: int, text: str) -> None:
        """Insert *text* at *offset* and leave the cursor just after it."""
        if self.single_line:
            text = text.replace("\r", "").replace("\n", "")
        content = self.get_content()
        offset = max(0, min(offset, len(content)))
        self.lines = self._split(content[:offset] + text + content[offset:])
        self.set_cursor_offset(offset + len(text))

    # -- Selection ---------------------------------------------------------

    def start_selection(self) -> None:
        self.anchor = (self.cursor_row, self.cursor_col)

    def cancel_selection(self) -> None:
        self.anchor = None

    def selection_range(self) -> tuple[int, int, int, int] | None:
        """Ordered ``(start_row, start_col, end_row, end_col)``, end inclusive."""
        if self.anchor is None:
            return None
        ar, ac = self.anchor
        cr, cc = self.cursor_row, self.cursor_col
        if (ar, ac) <= (cr, cc):
            return (ar, ac, cr, cc)
        return (cr, cc, ar, ac)

    def selection_offsets(self) -> tuple[int, int] | None:
        """Selection as a half-open flat range."""
        sel = self.selection_range()
        if sel is None:
            return None
        sr, sc, er, ec = sel
        end = self.offset(er, ec)
        if ec < len(self.lines[er]):
            end += 1
        return self.offset(sr, sc), end

    # -- Undo --------------------------------------------------------------

    def save_undo(self) -> None:
        self.undo_stack.append((self.lines[:], self.cursor_row, self.cursor_col))
        if len(self.undo_stack) > _UNDO_LIMIT:
            self.undo_stack.pop(0)
        if self.redo_stack:
            self.redo_stack.clear()

    def undo(self) -> bool:
        if not self.undo_stack:
            return False
        self.redo_stack.append((self.lines[:], self.cursor_row, self.cursor_col))
        self.lines, self.cursor_row, self.cursor_col = self.undo_stack.pop()
        self.anchor = None
        return True

    def redo(self) -> bool:
        if not self.redo_stack:
            return False
        self.undo_stack.append((self.lines[:], self.cursor_row, self.cursor_col))
        self.lines, self.cursor_row, self.cursor_col = self.redo_stack.pop()
        self.anchor = None
        return True

    def snapshot(self) -> BufferSnapshot:
        return BufferSnapshot(
            lines=tuple(self.lines),
            cursor=(self.cursor_row, self.cursor_col),
            selection=self.selection_range(),
        )
