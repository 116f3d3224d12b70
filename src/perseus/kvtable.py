"""Ordered key/value rows with two-dimensional focus."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum, auto

logger = logging.getLogger(__name__)


class RowKind(Enum):
    TEXT = auto()
    FILE = auto()


class KvColumn(Enum):
    KEY = auto()
    VALUE = auto()
    TYPE = auto()  # multipart tables only


@dataclass
class KvRow:
    key: str = ""
    value: str = ""
    enabled: bool = True
    kind: RowKind = RowKind.TEXT

    def is_empty(self) -> bool:
        return self.key == "" and self.value == ""


@dataclass(frozen=True)
class TableSnapshot:
    rows: tuple[KvRow, ...]
    focus_row: int
    focus_column: KvColumn
    typed: bool


class KvTable:
    """Key/value rows that always end with an empty row to type into.

    Every mutating method restores the trailing-empty-row invariant and
    re-clamps focus, so callers never have to.
    """

    def __init__(self, rows: list[KvRow] | None = None, *, typed: bool = False) -> None:
        self.typed: bool = typed
        self.rows: list[KvRow] = [replace(r) for r in rows] if rows else []
        self.focus_row: int = 0
        self.focus_column: KvColumn = KvColumn.KEY
        self.ensure_trailing_row()

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def columns(self) -> tuple[KvColumn, ...]:
        if self.typed:
            return (KvColumn.KEY, KvColumn.VALUE, KvColumn.TYPE)
        return (KvColumn.KEY, KvColumn.VALUE)

    # -- Invariants --------------------------------------------------------

    def ensure_trailing_row(self) -> None:
        if not self.rows or not self.rows[-1].is_empty():
            self.rows.append(KvRow())
        # Collapse a run of empty rows at the end down to one.
        while len(self.rows) > 1 and self.rows[-1].is_empty() and self.rows[-2].is_empty():
            self.rows.pop()
        self._clamp_focus()

    def _clamp_focus(self) -> None:
        self.focus_row = max(0, min(self.focus_row, len(self.rows) - 1))
        if self.focus_column not in self.columns:
            self.focus_column = KvColumn.VALUE

    def _index(self, row: int | None) -> int | None:
        if row is None:
            row = self.focus_row
        if 0 <= row < len(self.rows):
            return row
        logger.debug("row %d out of range (%d rows)", row, len(self.rows))
        return None

    # -- Cells -------------------------------------------------------------

    def cell_text(self, row: int | None = None, column: KvColumn | None = None) -> str:
        idx = self._index(row)
        if idx is None:
            return ""
        column = column or self.focus_column
        r = self.rows[idx]
        if column == KvColumn.KEY:
            return r.key
        if column == KvColumn.VALUE:
            return r.value
        return "file" if r.kind == RowKind.FILE else "text"

    def set_cell(self, row: int | None, column: KvColumn, text: str) -> bool:
        """Write a cell; returns ``True`` when the row changed."""
        idx = self._index(row)
        if idx is None or column == KvColumn.TYPE:
            return False
        r = self.rows[idx]
        if column == KvColumn.KEY:
            changed = r.key != text
            r.key = text
        else:
            changed = r.value != text
            r.value = text
        self.ensure_trailing_row()
        return changed

    def toggle_enabled(self, row: int | None = None) -> bool:
        idx = self._index(row)
        if idx is None or self.rows[idx].is_empty():
            return False
        self.rows[idx].enabled = not self.rows[idx].enabled
        return True

    def toggle_kind(self, row: int | None = None) -> bool:
        idx = self._index(row)
        if idx is None or not self.typed:
            return False
        r = self.rows[idx]
        r.kind = RowKind.TEXT if r.kind == RowKind.FILE else RowKind.FILE
        return True

    def delete_row(self, row: int | None = None) -> bool:
        idx = self._index(row)
        if idx is None:
            return False
        removed = self.rows.pop(idx)
        self.ensure_trailing_row()
        return not removed.is_empty()

    def replace_rows(self, rows: list[KvRow]) -> None:
        self.rows = [replace(r) for r in rows]
        self.ensure_trailing_row()

    # -- Focus -------------------------------------------------------------

    def move_row(self, delta: int) -> bool:
        """Move focus by *delta* rows; ``False`` at a table boundary."""
        target = self.focus_row + delta
        if not 0 <= target < len(self.rows):
            return False
        self.focus_row = target
        return True

    def move_column(self, delta: int) -> bool:
        """Move focus across columns, wrapping onto the next/previous row."""
        cols = self.columns
        pos = cols.index(self.focus_column) + delta
        row = self.focus_row
        if pos >= len(cols):
            if row + 1 >= len(self.rows):
                return False
            row, pos = row + 1, 0
        elif pos < 0:
            if row == 0:
                return False
            row, pos = row - 1, len(cols) - 1
        self.focus_row = row
        self.focus_column = cols[pos]
        return True

    def focus_last(self) -> None:
        self.focus_row = len(self.rows) - 1
        self.focus_column = KvColumn.KEY

    # -- Views -------------------------------------------------------------

    def enabled_pairs(self) -> list[tuple[str, str]]:
        return [(r.key, r.value) for r in self.rows if r.enabled and r.key]

    def enabled_rows(self) -> list[KvRow]:
        return [r for r in self.rows if r.enabled and r.key]

    def filled_rows(self) -> list[KvRow]:
        return [r for r in self.rows if not r.is_empty()]

    def snapshot(self) -> TableSnapshot:
        return TableSnapshot(
            rows=tuple(replace(r) for r in self.rows),
            focus_row=self.focus_row,
            focus_column=self.focus_column,
            typed=self.typed,
        )
