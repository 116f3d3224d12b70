"""Modal (vim-style) key handling for form fields."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from perseus import _motions as m
from perseus._modes import Effect, VimMode
from perseus._visual import VisualMixin
from perseus.buffer import FieldBuffer
from perseus.clipboard import ClipboardError

logger = logging.getLogger(__name__)


@dataclass
class Register:
    text: str = ""
    linewise: bool = False


class ModalEditor(VisualMixin):
    """Translates key events into FieldBuffer mutations.

    The editor keeps mode, pending operator and the yank register; the
    buffer is handed in on every call so it always acts on whichever
    field currently has focus.

    Supported keys:
      NORMAL:   h j k l  w b e  0 ^ $  gg G  i a I A o O  x X D C
                p P  u ctrl+r  v  c d y  Esc
      INSERT:   typing / Backspace / Delete / Enter / Tab / arrows / ctrl+v
      VISUAL:   motions, d x y c, Esc
      OPERATOR: motions, iw aw i" a" i' a', doubled operator for the line
    """

    _MOTION_KEYS = {"left", "right", "up", "down", "home", "end"}
    _MOTION_CHARS = set("hjklwbe0^$G")

    def __init__(self, *, clipboard=None, tab_size: int = 2) -> None:
        self.mode: VimMode = VimMode.NORMAL
        self.operator: str = ""
        self.pending: str = ""
        self.register: Register = Register()
        self.clipboard = clipboard
        self.tab_size: int = tab_size
        self.status_msg: str = ""

    @property
    def mode_label(self) -> str:
        if self.mode == VimMode.OPERATOR:
            return f"OPERATOR({self.operator})"
        return self.mode.name

    def reset(self) -> None:
        self.mode = VimMode.NORMAL
        self.operator = ""
        self.pending = ""
        self.status_msg = ""

    def begin(self, buf: FieldBuffer, *, insert: bool = False) -> None:
        """Start editing *buf*, optionally in Insert mode at the end."""
        self.reset()
        buf.cancel_selection()
        if insert and not buf.read_only:
            buf.move_to_end()
            self._enter_insert()
        buf.clamp(allow_eol=self.mode == VimMode.INSERT)

    # -- Dispatch ----------------------------------------------------------

    def apply_key(self, buf: FieldBuffer, event) -> Effect:
        key = event.key
        char = event.character or ""

        if self.mode == VimMode.INSERT:
            effect = self._handle_insert(buf, key, char)
        elif self.mode == VimMode.VISUAL:
            effect = self._handle_visual(buf, key, char)
        elif self.mode == VimMode.OPERATOR:
            effect = self._handle_operator(buf, key, char)
        else:
            effect = self._handle_normal(buf, key, char)

        if effect == Effect.EXIT_EDITING:
            buf.cancel_selection()
            self.reset()
        buf.clamp(allow_eol=self.mode == VimMode.INSERT)
        return effect

    # -- Shared helpers ----------------------------------------------------

    def _enter_insert(self) -> None:
        self.mode = VimMode.INSERT
        self.status_msg = "-- INSERT --"

    def _cancel_operator(self) -> None:
        self.mode = VimMode.NORMAL
        self.operator = ""
        self.pending = ""
        self.status_msg = ""

    def _set_register(self, text: str, linewise: bool = False) -> None:
        self.register = Register(text, linewise)
        if self.clipboard is None:
            return
        try:
            self.clipboard.set_text(text)
        except ClipboardError as exc:
            logger.warning("clipboard copy unavailable: %s", exc)

    def _clipboard_text(self) -> str:
        if self.clipboard is not None:
            try:
                return self.clipboard.get_text()
            except ClipboardError as exc:
                logger.warning("clipboard paste unavailable: %s", exc)
        return self.register.text

    def _motion(self, buf: FieldBuffer, key: str, char: str) -> tuple[int, int] | None:
        """New cursor position for a motion key, or ``None``."""
        row, col = buf.cursor_row, buf.cursor_col
        if char == "h" or key == "left":
            return (row, col - 1)
        if char == "l" or key == "right":
            return (row, col + 1)
        if char == "j" or key == "down":
            return (min(row + 1, len(buf.lines) - 1), col)
        if char == "k" or key == "up":
            return (max(row - 1, 0), col)
        if char == "0" or key == "home":
            return (row, 0)
        if char == "^":
            text = buf.get_content()
            return buf.position(m.first_non_blank(text, buf.offset()))
        if char == "$" or key == "end":
            return (row, max(0, len(buf.lines[row]) - 1))
        if char == "G":
            return (len(buf.lines) - 1, 0)
        if char in ("w", "b", "e"):
            text = buf.get_content()
            i = buf.offset()
            if char == "w":
                target = m.word_forward(text, i)
                if target >= len(text):
                    target = max(0, len(text) - 1)
            elif char == "b":
                target = m.word_backward(text, i)
            else:
                target = m.word_end(text, i)
            return buf.position(target)
        return None

    # -- NORMAL ------------------------------------------------------------

    def _handle_normal(self, buf: FieldBuffer, key: str, char: str) -> Effect:
        if self.pending == "g":
            self.pending = ""
            if char == "g":
                buf.cursor_row = 0
                buf.cursor_col = 0
            return Effect.CONSUMED

        if key == "escape":
            return Effect.EXIT_EDITING
        if key == "enter":
            if buf.single_line:
                return Effect.EXIT_EDITING
            buf.cursor_row = min(buf.cursor_row + 1, len(buf.lines) - 1)
            buf.cursor_col = 0
            return Effect.CONSUMED
        if key == "ctrl+r":
            return self._undo_redo(buf, redo=True)

        target = self._motion(buf, key, char)
        if target is not None:
            buf.cursor_row, buf.cursor_col = target
            return Effect.CONSUMED

        if char == "g":
            self.pending = "g"
            return Effect.CONSUMED
        if char == "v":
            self._enter_visual(buf)
            return Effect.CONSUMED
        if char == "y":
            self.mode = VimMode.OPERATOR
            self.operator = char
            return Effect.CONSUMED
        if char == "p":
            return self._paste(buf, after=True)
        if char == "P":
            return self._paste(buf, after=False)

        if char not in ("i", "a", "I", "A", "o", "O", "x", "X", "D", "C", "u", "c", "d"):
            return Effect.REJECTED
        if buf.read_only:
            self.status_msg = "[readonly]"
            return Effect.REJECTED

        if char in ("c", "d"):
            self.mode = VimMode.OPERATOR
            self.operator = char
        elif char == "i":
            self._enter_insert()
        elif char == "a":
            if buf.lines[buf.cursor_row]:
                buf.cursor_col += 1
            self._enter_insert()
        elif char == "I":
            buf.cursor_col = 0
            self._enter_insert()
        elif char == "A":
            buf.cursor_col = len(buf.lines[buf.cursor_row])
            self._enter_insert()
        elif char in ("o", "O"):
            if buf.single_line:
                return Effect.REJECTED
            buf.save_undo()
            row = buf.cursor_row + 1 if char == "o" else buf.cursor_row
            buf.lines.insert(row, "")
            buf.cursor_row = row
            buf.cursor_col = 0
            self._enter_insert()
        elif char == "x":
            return self._delete_chars(buf, buf.offset(), buf.offset() + 1)
        elif char == "X":
            start = m.line_start(buf.get_content(), buf.offset())
            return self._delete_chars(buf, max(start, buf.offset() - 1), buf.offset())
        elif char in ("D", "C"):
            text = buf.get_content()
            i = buf.offset()
            self._delete_chars(buf, i, m.line_end(text, i))
            if char == "C":
                self._enter_insert()
        elif char == "u":
            return self._undo_redo(buf, redo=False)
        return Effect.CONSUMED

    def _delete_chars(self, buf: FieldBuffer, start: int, end: int) -> Effect:
        text = buf.get_content()
        end = min(end, m.line_end(text, start))
        if start >= end:
            return Effect.CONSUMED
        buf.save_undo()
        self._set_register(buf.delete_range(start, end))
        return Effect.CONSUMED

    def _undo_redo(self, buf: FieldBuffer, redo: bool) -> Effect:
        if buf.read_only:
            self.status_msg = "[readonly]"
            return Effect.REJECTED
        if redo:
            self.status_msg = "redone" if buf.redo() else "nothing to redo"
        else:
            self.status_msg = "undone" if buf.undo() else "nothing to undo"
        return Effect.CONSUMED

    def _paste(self, buf: FieldBuffer, after: bool) -> Effect:
        if buf.read_only:
            self.status_msg = "[readonly]"
            return Effect.REJECTED
        reg = self.register
        if not reg.text and not reg.linewise:
            return Effect.CONSUMED
        buf.save_undo()
        if reg.linewise and not buf.single_line:
            row = buf.cursor_row + 1 if after else buf.cursor_row
            buf.lines[row:row] = reg.text.split("\n")
            buf.cursor_row = row
            buf.cursor_col = 0
            return Effect.CONSUMED
        offset = buf.offset()
        if after and buf.lines[buf.cursor_row]:
            offset += 1
        text = reg.text.replace("\n", "") if buf.single_line else reg.text
        buf.insert_text(offset, text)
        if text:
            buf.set_cursor_offset(offset + len(text) - 1)
        return Effect.CONSUMED

    # -- OPERATOR ----------------------------------------------------------

    def _handle_operator(self, buf: FieldBuffer, key: str, char: str) -> Effect:
        op = self.operator
        if key == "escape" or not char:
            self._cancel_operator()
            return Effect.CONSUMED

        text = buf.get_content()
        i = buf.offset()

        if self.pending in ("i", "a"):
            around = self.pending == "a"
            self.pending = ""
            if char == "w":
                rng = m.a_word(text, i) if around else m.inner_word(text, i)
            elif char in ('"', "'", "`"):
                rng = m.quoted(text, i, char, around)
            else:
                rng = None
            if rng is None:
                self._cancel_operator()
                return Effect.CONSUMED
            return self._apply_operator(buf, op, *rng)

        if char in ("i", "a"):
            self.pending = char
            return Effect.CONSUMED

        if char == op:
            return self._apply_linewise(buf, op, buf.cursor_row, buf.cursor_row)
        if char in ("j", "k") and not buf.single_line:
            other = buf.cursor_row + (1 if char == "j" else -1)
            if not 0 <= other < len(buf.lines):
                self._cancel_operator()
                return Effect.CONSUMED
            return self._apply_linewise(
                buf, op, min(buf.cursor_row, other), max(buf.cursor_row, other)
            )

        rng = self._operator_range(text, i, op, char)
        if rng is None:
            self._cancel_operator()
            return Effect.CONSUMED
        return self._apply_operator(buf, op, *rng)

    def _operator_range(self, text: str, i: int, op: str, char: str) -> tuple[int, int] | None:
        """Half-open range a motion covers from offset *i*."""
        start_of_line = m.line_start(text, i)
        end_of_line = m.line_end(text, i)
        if char == "w":
            on_word = i < len(text) and m.char_class(text[i]) != m.BLANK
            if op == "c" and on_word:
                # cw changes to the end of the word, like ce
                return (i, m.word_end(text, i) + 1)
            return (i, min(m.word_forward(text, i), end_of_line))
        if char == "e":
            return (i, min(m.word_end(text, i) + 1, len(text)))
        if char == "b":
            return (m.word_backward(text, i), i)
        if char == "h":
            return (max(start_of_line, i - 1), i)
        if char == "l":
            return (i, min(i + 1, end_of_line))
        if char == "0":
            return (start_of_line, i)
        if char == "^":
            first = m.first_non_blank(text, i)
            return (min(first, i), max(first, i))
        if char == "$":
            return (i, end_of_line)
        return None

    def _apply_operator(self, buf: FieldBuffer, op: str, start: int, end: int) -> Effect:
        if start > end:
            start, end = end, start
        self.operator = ""
        self.pending = ""
        self.mode = VimMode.NORMAL
        self._set_register(buf.text_range(start, end))
        if op == "y":
            buf.set_cursor_offset(start)
            self.status_msg = "yanked"
            return Effect.CONSUMED
        buf.save_undo()
        buf.delete_range(start, end)
        if op == "c":
            self._enter_insert()
        else:
            self.status_msg = ""
        return Effect.CONSUMED

    def _apply_linewise(self, buf: FieldBuffer, op: str, first: int, last: int) -> Effect:
        self.operator = ""
        self.pending = ""
        self.mode = VimMode.NORMAL
        self._set_register("\n".join(buf.lines[first : last + 1]), linewise=True)
        if op == "y":
            self.status_msg = "line yanked"
            return Effect.CONSUMED
        buf.save_undo()
        if op == "c":
            buf.lines[first : last + 1] = [""]
            buf.cursor_row = first
            buf.cursor_col = 0
            self._enter_insert()
            return Effect.CONSUMED
        del buf.lines[first : last + 1]
        if not buf.lines:
            buf.lines = [""]
        buf.cursor_row = min(first, len(buf.lines) - 1)
        buf.cursor_col = 0
        self.status_msg = "line deleted"
        return Effect.CONSUMED

    # -- INSERT ------------------------------------------------------------

    def _handle_insert(self, buf: FieldBuffer, key: str, char: str) -> Effect:
        if key == "escape":
            self.mode = VimMode.NORMAL
            buf.cursor_col = max(0, buf.cursor_col - 1)
            self.status_msg = ""
            return Effect.CONSUMED

        if key == "enter":
            if buf.single_line:
                return Effect.EXIT_EDITING
            line = buf.lines[buf.cursor_row]
            indent = line[: len(line) - len(line.lstrip(" "))]
            buf.save_undo()
            buf.insert_text(buf.offset(), "\n" + indent)
            return Effect.CONSUMED

        if key == "backspace":
            i = buf.offset()
            if i > 0:
                buf.save_undo()
                buf.delete_range(i - 1, i)
            return Effect.CONSUMED

        if key == "delete":
            i = buf.offset()
            if i < len(buf.get_content()):
                buf.save_undo()
                buf.delete_range(i, i + 1)
                buf.set_cursor_offset(i)
            return Effect.CONSUMED

        if key == "tab":
            if buf.single_line:
                return Effect.REJECTED
            buf.save_undo()
            buf.insert_text(buf.offset(), " " * self.tab_size)
            return Effect.CONSUMED

        if key == "ctrl+v":
            text = self._clipboard_text()
            if text:
                buf.save_undo()
                buf.insert_text(buf.offset(), text)
            return Effect.CONSUMED

        if key in self._MOTION_KEYS:
            if key == "end":
                buf.cursor_col = len(buf.lines[buf.cursor_row])
            else:
                buf.cursor_row, buf.cursor_col = self._motion(buf, key, "")
            return Effect.CONSUMED

        if char and char.isprintable():
            buf.save_undo()
            buf.insert_text(buf.offset(), char)
            return Effect.CONSUMED

        return Effect.REJECTED
