"""Tests for the key/value table."""

import random

from perseus.kvtable import KvColumn, KvRow, KvTable, RowKind
from perseus.sync import build_query


def _assert_invariants(table):
    assert len(table.rows) >= 1
    assert table.rows[-1].is_empty()
    if len(table.rows) > 1:
        assert not table.rows[-2].is_empty()
    assert 0 <= table.focus_row < len(table.rows)
    assert table.focus_column in table.columns


class TestTrailingRow:
    """The table always ends with exactly one empty row."""

    def test_new_table_has_one_empty_row(self):
        table = KvTable()
        assert len(table) == 1
        assert table.rows[0].is_empty()

    def test_typing_into_last_row_appends_another(self):
        table = KvTable()
        table.set_cell(0, KvColumn.KEY, "a")
        assert len(table) == 2
        assert table.rows[0].key == "a"
        assert table.rows[1].is_empty()

    def test_clearing_last_filled_row_collapses(self):
        table = KvTable([KvRow("a", "b")])
        assert len(table) == 2
        table.set_cell(0, KvColumn.KEY, "")
        assert len(table) == 2
        table.set_cell(0, KvColumn.VALUE, "")
        assert len(table) == 1

    def test_middle_empty_row_is_kept(self):
        table = KvTable([KvRow("a", "1"), KvRow("b", "2")])
        table.set_cell(0, KvColumn.KEY, "")
        table.set_cell(0, KvColumn.VALUE, "")
        assert [r.key for r in table.rows] == ["", "b", ""]

    def test_constructor_copies_rows(self):
        rows = [KvRow("a", "1")]
        table = KvTable(rows)
        table.set_cell(0, KvColumn.VALUE, "2")
        assert rows[0].value == "1"

    def test_set_cell_reports_change(self):
        table = KvTable([KvRow("a", "1")])
        assert table.set_cell(0, KvColumn.VALUE, "2") is True
        assert table.set_cell(0, KvColumn.VALUE, "2") is False

    def test_set_cell_out_of_range(self):
        table = KvTable()
        assert table.set_cell(5, KvColumn.KEY, "x") is False
        assert len(table) == 1


class TestDelete:
    """Row deletion re-establishes the invariants."""

    def test_delete_only_row(self):
        table = KvTable()
        assert table.delete_row() is False
        assert len(table) == 1

    def test_delete_filled_row(self):
        table = KvTable([KvRow("a", "1"), KvRow("b", "2")])
        assert table.delete_row(0) is True
        assert [r.key for r in table.rows] == ["b", ""]

    def test_delete_last_filled_row_clamps_focus(self):
        table = KvTable([KvRow("a", "1"), KvRow("b", "2")])
        table.focus_row = 2
        table.delete_row(1)
        assert table.focus_row == 1
        assert len(table) == 2


class TestToggles:
    """Enable/disable and text/file toggles."""

    def test_toggle_enabled(self):
        table = KvTable([KvRow("a", "b")])
        assert table.toggle_enabled(0) is True
        assert table.rows[0].enabled is False
        assert table.enabled_pairs() == []

    def test_toggle_enabled_on_empty_row(self):
        table = KvTable()
        assert table.toggle_enabled() is False
        assert table.rows[0].enabled is True

    def test_toggle_kind_needs_typed_table(self):
        table = KvTable([KvRow("f", "a.txt")])
        assert table.toggle_kind(0) is False
        typed = KvTable([KvRow("f", "a.txt")], typed=True)
        assert typed.toggle_kind(0) is True
        assert typed.rows[0].kind == RowKind.FILE
        assert typed.cell_text(0, KvColumn.TYPE) == "file"

    def test_disable_then_enable_scenario(self):
        table = KvTable()
        table.set_cell(0, KvColumn.KEY, "a")
        table.set_cell(0, KvColumn.VALUE, "b")
        table.toggle_enabled(0)
        assert build_query(table.enabled_pairs()) == ""
        table.toggle_enabled(0)
        assert build_query(table.enabled_pairs()) == "a=b"


class TestFocus:
    """Row and column focus movement."""

    def test_move_row_at_boundaries(self):
        table = KvTable([KvRow("a", "1")])
        assert table.move_row(-1) is False
        assert table.move_row(1) is True
        assert table.focus_row == 1
        assert table.move_row(1) is False
        assert table.focus_row == 1

    def test_move_column_wraps_to_next_row(self):
        table = KvTable([KvRow("a", "1")])
        table.focus_column = KvColumn.VALUE
        assert table.move_column(1) is True
        assert (table.focus_row, table.focus_column) == (1, KvColumn.KEY)

    def test_move_column_wraps_to_previous_row(self):
        table = KvTable([KvRow("a", "1")], typed=True)
        table.focus_row = 1
        assert table.move_column(-1) is True
        assert (table.focus_row, table.focus_column) == (0, KvColumn.TYPE)

    def test_move_column_stops_at_table_ends(self):
        table = KvTable()
        assert table.move_column(-1) is False
        table.focus_column = KvColumn.VALUE
        assert table.move_column(1) is False

    def test_focus_last(self):
        table = KvTable([KvRow("a", "1"), KvRow("b", "2")])
        table.focus_column = KvColumn.VALUE
        table.focus_last()
        assert (table.focus_row, table.focus_column) == (2, KvColumn.KEY)

    def test_untyping_moves_focus_off_type_column(self):
        table = KvTable([KvRow("a", "1")], typed=True)
        table.focus_column = KvColumn.TYPE
        table.typed = False
        table.ensure_trailing_row()
        assert table.focus_column == KvColumn.VALUE


class TestViews:
    """Derived views over the rows."""

    def test_enabled_pairs_skip_keyless_rows(self):
        table = KvTable([KvRow("", "orphan"), KvRow("a", "1"), KvRow("b", "2", enabled=False)])
        assert table.enabled_pairs() == [("a", "1")]
        assert len(table.filled_rows()) == 3

    def test_snapshot_is_detached(self):
        table = KvTable([KvRow("a", "1")])
        snap = table.snapshot()
        table.set_cell(0, KvColumn.KEY, "z")
        assert snap.rows[0].key == "a"
        assert snap.focus_column == KvColumn.KEY


class TestRandomOperations:
    """Invariants hold after arbitrary operation sequences."""

    def test_invariants(self):
        rng = random.Random(1234)
        for typed in (False, True):
            table = KvTable(typed=typed)
            for _ in range(500):
                op = rng.randrange(7)
                if op == 0:
                    column = rng.choice([KvColumn.KEY, KvColumn.VALUE])
                    table.set_cell(rng.randrange(len(table) + 1), column, rng.choice(["", "x", "y"]))
                elif op == 1:
                    table.delete_row(rng.randrange(len(table)))
                elif op == 2:
                    table.toggle_enabled(rng.randrange(len(table)))
                elif op == 3:
                    table.toggle_kind()
                elif op == 4:
                    table.move_row(rng.choice([-1, 1]))
                elif op == 5:
                    table.move_column(rng.choice([-1, 1]))
                else:
                    table.focus_last()
                _assert_invariants(table)
