"""Visual mode mixin for ModalEditor."""

from __future__ import annotations

from perseus._modes import Effect, VimMode


class VisualMixin:
    """Charwise selection handling for ModalEditor."""

    def _enter_visual(self, buf) -> None:
        buf.start_selection()
        self.mode = VimMode.VISUAL
        self.status_msg = "-- VISUAL --"

    def _leave_visual(self, buf) -> None:
        buf.cancel_selection()
        self.mode = VimMode.NORMAL
        self.status_msg = ""

    def _handle_visual(self, buf, key: str, char: str) -> Effect:
        if key == "escape" or char == "v":
            self._leave_visual(buf)
            return Effect.CONSUMED
        if char in ("d", "x", "y", "c"):
            return self._execute_visual_operator(buf, "d" if char == "x" else char)
        target = self._motion(buf, key, char)
        if target is None:
            return Effect.REJECTED
        buf.cursor_row, buf.cursor_col = target
        return Effect.CONSUMED

    def _execute_visual_operator(self, buf, op: str) -> Effect:
        """Apply d/y/c to the inclusive selection."""
        offsets = buf.selection_offsets()
        buf.cancel_selection()
        self.mode = VimMode.NORMAL
        if offsets is None:
            return Effect.CONSUMED
        start, end = offsets
        if op in ("d", "c") and buf.read_only:
            self.status_msg = "[readonly]"
            return Effect.REJECTED
        self._set_register(buf.text_range(start, end))
        if op == "y":
            buf.set_cursor_offset(start)
            self.status_msg = "yanked"
            return Effect.CONSUMED
        buf.save_undo()
        buf.delete_range(start, end)
        if op == "c":
            self.mode = VimMode.INSERT
            self.status_msg = "-- INSERT --"
        else:
            self.status_msg = "deleted"
        return Effect.CONSUMED
