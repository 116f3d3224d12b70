"""Textual widgets that draw the request form and the response area."""

from __future__ import annotations

from dataclasses import dataclass

from rich.text import Text
from textual import events
from textual.message import Message
from textual.widget import Widget

from perseus.buffer import BufferSnapshot, FieldBuffer
from perseus.draft import AuthType, BodyMode
from perseus.kvtable import KvColumn, KvTable
from perseus.navigation import (
    AUTH_FIELDS,
    Action,
    AuthField,
    BodyField,
    FocusState,
    Interaction,
    NavigationController,
    Panel,
    RequestField,
    RequestTab,
    ResponseTab,
)
from perseus.popup import PopupKind
from perseus.vim import VimMode

_FOCUS_STYLE = "bold black on yellow"
_SELECTION_STYLE = "on dark_blue"
_MODE_STYLE = {
    VimMode.NORMAL: "bold white on dark_green",
    VimMode.INSERT: "bold white on dark_blue",
    VimMode.VISUAL: "bold white on dark_orange",
    VimMode.OPERATOR: "bold white on dark_red",
}
_NAV_STYLE = "bold white on grey37"

_AUTH_LABELS = {
    AuthField.TOKEN: "Token",
    AuthField.USERNAME: "Username",
    AuthField.PASSWORD: "Password",
    AuthField.KEY_NAME: "Key",
    AuthField.KEY_VALUE: "Value",
}

_POPUP_TITLES = {
    PopupKind.METHOD: "Method",
    PopupKind.AUTH_TYPE: "Auth Type",
    PopupKind.BODY_TYPE: "Body Type",
    PopupKind.ENVIRONMENT: "Environment",
    PopupKind.CUSTOM_INPUT: "Custom Method",
}


def _in_selection(sel: tuple[int, int, int, int] | None, row: int, col: int) -> bool:
    if sel is None:
        return False
    sr, sc, er, ec = sel
    return (sr, sc) <= (row, col) <= (er, ec)


def append_line(result: Text, snap: BufferSnapshot, row: int, *, show_cursor: bool) -> None:
    """Append one buffer line, batching runs of equal style."""
    line = snap.lines[row]
    cursor_row, cursor_col = snap.cursor
    is_cursor_line = show_cursor and row == cursor_row

    def style_at(col: int) -> str:
        style = _SELECTION_STYLE if _in_selection(snap.selection, row, col) else ""
        if is_cursor_line and col == cursor_col:
            style = f"reverse {style}".strip()
        return style

    col = 0
    while col < len(line):
        sty = style_at(col)
        end = col + 1
        while end < len(line) and style_at(end) == sty:
            end += 1
        result.append(line[col:end], style=sty)
        col = end
    # Cursor block at end of line (insert mode)
    if is_cursor_line and cursor_col >= len(line):
        result.append(" ", style="reverse")


def visible_rows(total: int, cursor_row: int, height: int) -> range:
    """Window of at most *height* rows that keeps the cursor row visible."""
    height = max(1, height)
    top = max(0, min(cursor_row - height + 1, total - height))
    top = max(0, min(top, cursor_row))
    return range(top, min(total, top + height))


class RequestPanel(Widget, can_focus=True):
    """Method/URL/Send row, the four request tabs, popups and a status bar.

    Every key is handed to the NavigationController; the app hears about
    the outcome through :class:`StateChanged`.
    """

    DEFAULT_CSS = """
    RequestPanel {
        height: 1fr;
        background: $surface;
        padding: 0 1;
    }
    """

    @dataclass
    class StateChanged(Message):
        action: Action

    def __init__(
        self,
        controller: NavigationController,
        *,
        name: str | None = None,
        id: str | None = None,
        classes: str | None = None,
    ) -> None:
        super().__init__(name=name, id=id, classes=classes)
        self.controller = controller

    def on_key(self, event: events.Key) -> None:
        event.prevent_default()
        event.stop()
        action = self.controller.handle_key(event)
        self.refresh()
        self.post_message(self.StateChanged(action))

    # -- Rendering ---------------------------------------------------------

    def _is_focused(self, state: FocusState, field: RequestField) -> bool:
        return state.panel == Panel.REQUEST and state.request_field == field

    def _editing_here(self, state: FocusState, field: RequestField) -> bool:
        return self._is_focused(state, field) and state.interaction == Interaction.EDITING

    def _append_field(self, result: Text, buf: FieldBuffer, focused: bool, editing: bool) -> None:
        if editing:
            append_line(result, buf.snapshot(), 0, show_cursor=True)
        else:
            result.append(buf.get_content() or " ", style=_FOCUS_STYLE if focused else "")

    def render(self) -> Text:
        width = self.content_region.width
        height = self.content_region.height
        if height < 6 or width < 20:
            return Text("(too small)")

        ctl = self.controller
        state = ctl.snapshot()
        draft = ctl.draft
        result = Text()

        # Method / URL / Send row
        method_focus = self._is_focused(state, RequestField.METHOD)
        result.append(f" {draft.method} ", style=_FOCUS_STYLE if method_focus else "bold cyan")
        result.append(" ")
        self._append_field(
            result,
            draft.url,
            self._is_focused(state, RequestField.URL),
            self._editing_here(state, RequestField.URL),
        )
        result.append("  ")
        send_focus = self._is_focused(state, RequestField.SEND)
        label = " Sending… " if ctl.loading else " Send "
        result.append(label, style=_FOCUS_STYLE if send_focus else "bold white on dark_green")
        result.append("\n\n")

        # Tab bar
        for tab in RequestTab:
            style = "bold underline" if tab == state.active_tab else "dim"
            result.append(f" {tab.name.title()} ", style=style)
        result.append("\n")

        content_height = height - 5
        content = Text()
        if state.active_tab == RequestTab.PARAMS:
            self._render_table(content, draft.params, state, content_height)
        elif state.active_tab == RequestTab.HEADERS:
            self._render_text(content, draft.headers, state, content_height)
        elif state.active_tab == RequestTab.AUTH:
            self._render_auth(content, state)
        else:
            self._render_body(content, state, content_height)
        result.append_text(content)

        if ctl.popup is not None:
            self._render_popup(result)
        result.append("\n")
        self._render_status(result, state, width)
        return result

    def _content_focused(self, state: FocusState) -> bool:
        return self._is_focused(state, RequestField.CONTENT)

    def _render_text(self, result: Text, buf: FieldBuffer, state: FocusState, height: int) -> None:
        focused = self._content_focused(state)
        editing = focused and state.interaction == Interaction.EDITING
        snap = buf.snapshot()
        if not editing and buf.is_empty():
            result.append("(empty)\n", style=_FOCUS_STYLE if focused else "dim italic")
            return
        for row in visible_rows(len(snap.lines), snap.cursor[0], height):
            gutter_style = "bold yellow" if focused and not editing else "dim cyan"
            result.append(f"{row + 1:>3} ", style=gutter_style)
            append_line(result, snap, row, show_cursor=editing)
            result.append("\n")

    def _render_table(self, result: Text, table: KvTable, state: FocusState, height: int) -> None:
        focused = self._content_focused(state)
        editing = focused and state.interaction == Interaction.EDITING
        cell_buffer = self.controller.active_buffer() if editing else None
        for idx in visible_rows(len(table.rows), table.focus_row, height):
            row = table.rows[idx]
            mark = "[x]" if row.enabled else "[ ]"
            result.append(f"{mark} ", style="green" if row.enabled else "dim")
            for column in table.columns:
                is_cell = focused and idx == table.focus_row and column == table.focus_column
                if is_cell and cell_buffer is not None:
                    append_line(result, cell_buffer.snapshot(), 0, show_cursor=True)
                    result.append(" │ ", style="dim")
                    continue
                text = table.cell_text(idx, column)
                if column == KvColumn.TYPE:
                    text = f"[{text}]"
                if not text and row.is_empty() and column != KvColumn.TYPE:
                    text = column.name.lower()
                    style = "dim italic"
                else:
                    style = "" if row.enabled else "dim strike"
                if is_cell:
                    style = _FOCUS_STYLE
                result.append(text or " ", style=style)
                result.append(" │ ", style="dim")
            result.append("\n")

    def _render_auth(self, result: Text, state: FocusState) -> None:
        draft = self.controller.draft
        focused = self._content_focused(state)
        editing = focused and state.interaction == Interaction.EDITING
        for field in AUTH_FIELDS[draft.auth_type]:
            here = focused and state.auth_field == field
            if field == AuthField.TYPE:
                result.append("Type: ", style="bold")
                result.append(draft.auth_type.label, style=_FOCUS_STYLE if here else "cyan")
            elif field == AuthField.KEY_LOCATION:
                result.append("Add to: ", style="bold")
                result.append(draft.api_key_location.value, style=_FOCUS_STYLE if here else "cyan")
            else:
                result.append(f"{_AUTH_LABELS[field]}: ", style="bold")
                buf = self.controller.active_buffer() if here else None
                if here and editing and buf is not None:
                    append_line(result, buf.snapshot(), 0, show_cursor=True)
                else:
                    text = _auth_value(draft, field)
                    result.append(text or " ", style=_FOCUS_STYLE if here else "")
            result.append("\n")
        if draft.auth_type == AuthType.NONE:
            result.append("This request does not use authorization.\n", style="dim italic")

    def _render_body(self, result: Text, state: FocusState, height: int) -> None:
        draft = self.controller.draft
        focused = self._content_focused(state)
        mode_focus = focused and state.body_field == BodyField.MODE
        result.append("Mode: ", style="bold")
        result.append(draft.body_mode.label, style=_FOCUS_STYLE if mode_focus else "cyan")
        valid = draft.json_valid()
        if valid is True:
            result.append("  ✓ valid JSON", style="green")
        elif valid is False:
            result.append("  ✗ invalid JSON", style="red")
        result.append("\n")

        content_state = state
        if state.body_field != BodyField.CONTENT:
            content_state = FocusState(panel=Panel.RESPONSE)
        if draft.body_mode.is_text:
            self._render_text(result, draft.body_text, content_state, height - 1)
        elif draft.body_mode == BodyMode.FORM_URLENCODED:
            self._render_table(result, draft.form, content_state, height - 1)
        elif draft.body_mode == BodyMode.MULTIPART:
            self._render_table(result, draft.multipart, content_state, height - 1)
        else:
            result.append("File: ", style="bold")
            here = self._content_focused(content_state)
            if here and state.interaction == Interaction.EDITING:
                append_line(result, draft.body_file.snapshot(), 0, show_cursor=True)
            else:
                path = draft.body_file.get_content()
                result.append(path or "(no file)", style=_FOCUS_STYLE if here else "dim italic")
            result.append("\n")

    def _render_popup(self, result: Text) -> None:
        snap = self.controller.popup.snapshot()
        result.append(f"\n┌ {_POPUP_TITLES[snap.kind]} ┐\n", style="bold magenta")
        if snap.text is not None:
            line = snap.text
            result.append("│ ", style="bold magenta")
            result.append(line[: snap.cursor])
            result.append(line[snap.cursor : snap.cursor + 1] or " ", style="reverse")
            result.append(line[snap.cursor + 1 :])
            result.append("\n")
            return
        for idx, item in enumerate(snap.items):
            result.append("│ ", style="bold magenta")
            style = "bold black on magenta" if idx == snap.highlighted else ""
            result.append(f" {item} ", style=style)
            result.append("\n")

    def _render_status(self, result: Text, state: FocusState, width: int) -> None:
        ctl = self.controller
        if state.interaction == Interaction.EDITING:
            mode_label = f" {ctl.editor.mode_label} "
            mode_style = _MODE_STYLE[ctl.editor.mode]
            status_msg = ctl.editor.status_msg
        elif state.interaction == Interaction.POPUP:
            mode_label = " POPUP "
            mode_style = "bold white on dark_magenta"
            status_msg = ""
        else:
            mode_label = " NAV "
            mode_style = _NAV_STYLE
            status_msg = ctl.status_msg
        result.append(mode_label, style=mode_style)
        buf = ctl.active_buffer()
        if buf is not None and buf.read_only:
            result.append(" RO ", style="bold white on grey37")
        pending = ctl.editor.operator + ctl.editor.pending
        if pending:
            result.append(f"  {pending}", style="bold yellow")
        env = ctl.active_environment.name if ctl.active_environment else "no env"
        right = f" {env} "
        result.append(f"  {status_msg}")
        spacer = max(0, width - len(mode_label) - len(status_msg) - len(right) - 2 - len(pending))
        result.append(" " * spacer)
        result.append(right, style="bold")


def _auth_value(draft, field: AuthField) -> str:
    if field == AuthField.PASSWORD:
        return "•" * len(draft.basic_password.get_content())
    return {
        AuthField.TOKEN: draft.bearer_token,
        AuthField.USERNAME: draft.basic_username,
        AuthField.KEY_NAME: draft.api_key_name,
        AuthField.KEY_VALUE: draft.api_key_value,
    }[field].get_content()


class ResponsePanel(Widget):
    """Status line plus the read-only body/headers of the last response."""

    DEFAULT_CSS = """
    ResponsePanel {
        height: 1fr;
        background: $surface;
        padding: 0 1;
    }
    """

    def __init__(
        self,
        controller: NavigationController,
        *,
        name: str | None = None,
        id: str | None = None,
        classes: str | None = None,
    ) -> None:
        super().__init__(name=name, id=id, classes=classes)
        self.controller = controller

    def render(self) -> Text:
        height = self.content_region.height
        ctl = self.controller
        state = ctl.snapshot()
        focused = state.panel == Panel.RESPONSE
        result = Text()

        title_style = _FOCUS_STYLE if focused and state.interaction == Interaction.NAVIGATION else "bold"
        result.append(" Response ", style=title_style)
        if ctl.loading:
            result.append("  sending…", style="yellow italic")
        elif ctl.response is not None:
            resp = ctl.response
            result.append(f"  {resp.status_line}", style=_status_style(resp.status))
            result.append(f"  {resp.duration_ms} ms", style="dim")
        elif ctl.response_error is not None:
            result.append("  error", style="bold red")
        result.append("   ")
        for tab in ResponseTab:
            style = "bold underline" if tab == state.response_tab else "dim"
            result.append(f" {tab.name.title()} ", style=style)
        result.append("\n")

        if ctl.response_error is not None and not ctl.loading:
            result.append(ctl.response_error.message, style="red")
            return result

        buf = ctl.response_headers if state.response_tab == ResponseTab.HEADERS else ctl.response_body
        editing = focused and state.interaction == Interaction.EDITING
        snap = buf.snapshot()
        for row in visible_rows(len(snap.lines), snap.cursor[0], height - 1):
            append_line(result, snap, row, show_cursor=editing)
            result.append("\n")
        return result


def _status_style(status: int) -> str:
    if status >= 500:
        return "bold red"
    if status >= 400:
        return "bold yellow"
    if status >= 300:
        return "bold cyan"
    return "bold green"
