"""Focus & navigation: routes every key to the field, table or popup that owns it."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Optional, Sequence

from perseus.buffer import FieldBuffer
from perseus.config import Config
from perseus.draft import STANDARD_METHODS, ApiKeyLocation, AuthType, BodyMode, RequestDraft
from perseus.environment import Environment, resolve_variables
from perseus.http import ErrorKind, RequestDispatcher, RequestError, ResponseData
from perseus.kvtable import KvColumn, KvTable
from perseus.popup import Popup, PopupKind, PopupResult
from perseus.vim import Effect, ModalEditor

logger = logging.getLogger(__name__)

CUSTOM_METHOD_ITEM = "Custom..."
NO_ENVIRONMENT_ITEM = "No Environment"


class Panel(Enum):
    REQUEST = auto()
    RESPONSE = auto()


class RequestField(Enum):
    METHOD = auto()
    URL = auto()
    SEND = auto()
    CONTENT = auto()  # the active tab's content


class RequestTab(Enum):
    PARAMS = auto()
    HEADERS = auto()
    AUTH = auto()
    BODY = auto()


class ResponseTab(Enum):
    BODY = auto()
    HEADERS = auto()


class AuthField(Enum):
    TYPE = auto()
    TOKEN = auto()
    USERNAME = auto()
    PASSWORD = auto()
    KEY_NAME = auto()
    KEY_VALUE = auto()
    KEY_LOCATION = auto()


AUTH_FIELDS = {
    AuthType.NONE: (AuthField.TYPE,),
    AuthType.BEARER: (AuthField.TYPE, AuthField.TOKEN),
    AuthType.BASIC: (AuthField.TYPE, AuthField.USERNAME, AuthField.PASSWORD),
    AuthType.API_KEY: (
        AuthField.TYPE,
        AuthField.KEY_NAME,
        AuthField.KEY_VALUE,
        AuthField.KEY_LOCATION,
    ),
}


class BodyField(Enum):
    MODE = auto()
    CONTENT = auto()


class Interaction(Enum):
    NAVIGATION = auto()
    EDITING = auto()
    POPUP = auto()


class Action(Enum):
    """What the application shell should do after a key."""

    NONE = auto()
    SEND = auto()
    QUIT = auto()
    SAVE = auto()


_ROW_FIELDS = (RequestField.METHOD, RequestField.URL, RequestField.SEND)
_TABS = tuple(RequestTab)


@dataclass
class FocusState:
    panel: Panel = Panel.REQUEST
    request_field: RequestField = RequestField.URL
    active_tab: RequestTab = RequestTab.PARAMS
    auth_field: AuthField = AuthField.TYPE
    body_field: BodyField = BodyField.MODE
    response_tab: ResponseTab = ResponseTab.BODY
    interaction: Interaction = Interaction.NAVIGATION
    popup_kind: Optional[PopupKind] = None

    @property
    def sub_field(self) -> AuthField | BodyField | None:
        if self.active_tab == RequestTab.AUTH:
            return self.auth_field
        if self.active_tab == RequestTab.BODY:
            return self.body_field
        return None


class NavigationController:
    """Top-level key router for one request draft.

    Keys go to the open popup first, then to the modal editor while a
    field is being edited, and otherwise to the navigation keymap below.
    Buffers are always looked up from the focus state through
    :meth:`active_buffer`; nothing holds on to "the current field".

    Navigation keys:
      h/l, tab/shift+tab   method / URL / send row, table columns
      j/k                  row -> tab content -> response panel
      ] / [                next / previous tab
      Enter, i             edit the focused field (i: Insert at end)
      space, x, t, o       toggle row, delete row, toggle Text/File, new row
      E                    environment picker
      s                    send;  ctrl+c cancel;  ctrl+s save;  q quit
    """

    def __init__(
        self,
        draft: Optional[RequestDraft] = None,
        *,
        config: Optional[Config] = None,
        clipboard=None,
        dispatcher: Optional[RequestDispatcher] = None,
        environments: Sequence[Environment] = (),
    ) -> None:
        self.config = config or Config()
        self.draft = draft or RequestDraft()
        self.editor = ModalEditor(clipboard=clipboard, tab_size=self.config.editor.tab_size)
        self.dispatcher = dispatcher or RequestDispatcher()
        self.environments: list[Environment] = list(environments)
        self.active_environment: Optional[Environment] = None
        self.focus = FocusState()
        self.popup: Optional[Popup] = None
        self.status_msg: str = ""

        self._cell_buffer: Optional[FieldBuffer] = None
        self._cell_table: Optional[KvTable] = None

        self.response: Optional[ResponseData] = None
        self.response_error: Optional[RequestError] = None
        self.response_body = FieldBuffer(read_only=True)
        self.response_headers = FieldBuffer(read_only=True)

    # -- Accessors ---------------------------------------------------------

    @property
    def loading(self) -> bool:
        return self.dispatcher.in_flight

    @property
    def editing(self) -> bool:
        return self.focus.interaction == Interaction.EDITING

    def focused_table(self) -> Optional[KvTable]:
        """The key-value table under focus, if any."""
        f = self.focus
        if f.panel != Panel.REQUEST or f.request_field != RequestField.CONTENT:
            return None
        if f.active_tab == RequestTab.PARAMS:
            return self.draft.params
        if f.active_tab == RequestTab.BODY and f.body_field == BodyField.CONTENT:
            if self.draft.body_mode == BodyMode.FORM_URLENCODED:
                return self.draft.form
            if self.draft.body_mode == BodyMode.MULTIPART:
                return self.draft.multipart
        return None

    def active_buffer(self) -> Optional[FieldBuffer]:
        """Buffer of the focused field, resolved from the focus state."""
        if self._cell_buffer is not None:
            return self._cell_buffer
        f = self.focus
        d = self.draft
        if f.panel == Panel.RESPONSE:
            if f.response_tab == ResponseTab.HEADERS:
                return self.response_headers
            return self.response_body
        if f.request_field == RequestField.URL:
            return d.url
        if f.request_field != RequestField.CONTENT:
            return None
        if f.active_tab == RequestTab.HEADERS:
            return d.headers
        if f.active_tab == RequestTab.AUTH:
            return {
                AuthField.TOKEN: d.bearer_token,
                AuthField.USERNAME: d.basic_username,
                AuthField.PASSWORD: d.basic_password,
                AuthField.KEY_NAME: d.api_key_name,
                AuthField.KEY_VALUE: d.api_key_value,
            }.get(f.auth_field)
        if f.active_tab == RequestTab.BODY and f.body_field == BodyField.CONTENT:
            if d.body_mode.is_text:
                return d.body_text
            if d.body_mode == BodyMode.BINARY:
                return d.body_file
        return None

    def variables(self) -> dict[str, str]:
        return resolve_variables(self.active_environment)

    def snapshot(self) -> FocusState:
        state = replace(self.focus)
        state.popup_kind = self.popup.kind if self.popup is not None else None
        return state

    # -- Dispatch ----------------------------------------------------------

    def handle_key(self, event) -> Action:
        if self.popup is not None:
            self._handle_popup(event)
            return Action.NONE

        key = event.key
        if key == "ctrl+c":
            self.cancel_request()
            return Action.NONE
        if key == "ctrl+s":
            self._finish_editing()
            return Action.SAVE

        if self.focus.interaction == Interaction.EDITING:
            self._handle_editing(event)
            return Action.NONE
        return self._handle_navigation(event)

    # -- Editing -----------------------------------------------------------

    def start_editing(self, *, insert: bool = False) -> bool:
        table = self.focused_table()
        if table is not None:
            if table.focus_column == KvColumn.TYPE:
                self._toggle_kind(table)
                return False
            self._cell_table = table
            self._cell_buffer = FieldBuffer(table.cell_text(), single_line=True)
        buf = self.active_buffer()
        if buf is None:
            return False
        if buf.read_only and insert:
            insert = False
        self.editor.begin(buf, insert=insert)
        self.focus.interaction = Interaction.EDITING
        return True

    def _handle_editing(self, event) -> None:
        buf = self.active_buffer()
        if buf is None:
            self._finish_editing()
            return
        effect = self.editor.apply_key(buf, event)
        if effect == Effect.EXIT_EDITING:
            self._finish_editing()
        elif effect == Effect.REJECTED:
            logger.debug("key %r rejected in %s", event.key, self.editor.mode_label)

    def _finish_editing(self) -> None:
        if self.focus.interaction != Interaction.EDITING:
            return
        f = self.focus
        if self._cell_buffer is not None and self._cell_table is not None:
            table = self._cell_table
            changed = table.set_cell(None, table.focus_column, self._cell_buffer.get_content())
            if changed and table is self.draft.params:
                self.draft.sync_url_from_params()
        elif f.panel == Panel.REQUEST and f.request_field == RequestField.URL:
            self.draft.sync_params_from_url()
        self._cell_buffer = None
        self._cell_table = None
        self.editor.reset()
        f.interaction = Interaction.NAVIGATION

    # -- Navigation --------------------------------------------------------

    def _handle_navigation(self, event) -> Action:
        key = event.key
        char = event.character or ""
        f = self.focus
        table = self.focused_table()
        self.status_msg = ""

        if char == "q":
            return Action.QUIT
        if char == "s":
            self.send()
            return Action.SEND
        if char == "E":
            self.open_popup(PopupKind.ENVIRONMENT)
            return Action.NONE
        if char == "]":
            self.cycle_tab(1)
            return Action.NONE
        if char == "[":
            self.cycle_tab(-1)
            return Action.NONE
        if char == "j" or key == "down":
            self.move_vertical(1)
            return Action.NONE
        if char == "k" or key == "up":
            self.move_vertical(-1)
            return Action.NONE

        if table is not None:
            if self._handle_table_key(table, key, char):
                return Action.NONE
        elif f.panel == Panel.REQUEST and f.request_field in _ROW_FIELDS:
            if char == "h" or key in ("left", "shift+tab"):
                self._move_row_field(-1)
                return Action.NONE
            if char == "l" or key in ("right", "tab"):
                self._move_row_field(1)
                return Action.NONE

        if key == "enter" or char == "i":
            return self._activate(insert=char == "i")
        logger.debug("unmapped navigation key %r", key)
        return Action.NONE

    def _activate(self, *, insert: bool) -> Action:
        f = self.focus
        if f.panel == Panel.REQUEST:
            if f.request_field == RequestField.METHOD:
                self.open_popup(PopupKind.METHOD)
                return Action.NONE
            if f.request_field == RequestField.SEND:
                self.send()
                return Action.SEND
            if f.request_field == RequestField.CONTENT:
                if f.active_tab == RequestTab.AUTH:
                    if f.auth_field == AuthField.TYPE:
                        self.open_popup(PopupKind.AUTH_TYPE)
                        return Action.NONE
                    if f.auth_field == AuthField.KEY_LOCATION:
                        self._toggle_key_location()
                        return Action.NONE
                if f.active_tab == RequestTab.BODY and f.body_field == BodyField.MODE:
                    self.open_popup(PopupKind.BODY_TYPE)
                    return Action.NONE
        self.start_editing(insert=insert)
        return Action.NONE

    def _handle_table_key(self, table: KvTable, key: str, char: str) -> bool:
        if char == "h" or key in ("left", "shift+tab"):
            table.move_column(-1)
        elif char == "l" or key in ("right", "tab"):
            table.move_column(1)
        elif key == "space":
            if table.toggle_enabled():
                self._table_changed(table)
        elif char == "x":
            if table.delete_row():
                self._table_changed(table)
        elif char == "t":
            self._toggle_kind(table)
        elif char == "o":
            table.focus_last()
            self.start_editing(insert=True)
        else:
            return False
        return True

    def _table_changed(self, table: KvTable) -> None:
        if table is self.draft.params:
            self.draft.sync_url_from_params()

    def _toggle_kind(self, table: KvTable) -> None:
        if not table.toggle_kind():
            self.status_msg = "Text/File applies to multipart fields only"

    def _toggle_key_location(self) -> None:
        d = self.draft
        d.api_key_location = (
            ApiKeyLocation.QUERY
            if d.api_key_location == ApiKeyLocation.HEADER
            else ApiKeyLocation.HEADER
        )

    def _move_row_field(self, delta: int) -> None:
        idx = _ROW_FIELDS.index(self.focus.request_field) + delta
        if 0 <= idx < len(_ROW_FIELDS):
            self.focus.request_field = _ROW_FIELDS[idx]

    def move_vertical(self, delta: int) -> None:
        """j/k: method/URL/send row <-> tab content <-> response panel."""
        f = self.focus
        if f.panel == Panel.RESPONSE:
            if delta < 0:
                f.panel = Panel.REQUEST
                f.request_field = RequestField.CONTENT
            return
        if f.request_field in _ROW_FIELDS:
            if delta > 0:
                f.request_field = RequestField.CONTENT
            return
        if not self._move_within_tab(delta):
            if delta > 0:
                f.panel = Panel.RESPONSE
            else:
                f.request_field = RequestField.URL

    def _move_within_tab(self, delta: int) -> bool:
        """Move inside the active tab's content; ``False`` when at its edge."""
        f = self.focus
        table = self.focused_table()
        if table is not None and table.move_row(delta):
            return True
        if f.active_tab == RequestTab.AUTH:
            fields = AUTH_FIELDS[self.draft.auth_type]
            idx = fields.index(f.auth_field) + delta
            if 0 <= idx < len(fields):
                f.auth_field = fields[idx]
                return True
            return False
        if f.active_tab == RequestTab.BODY:
            if delta > 0 and f.body_field == BodyField.MODE:
                f.body_field = BodyField.CONTENT
                return True
            if delta < 0 and f.body_field == BodyField.CONTENT:
                f.body_field = BodyField.MODE
                return True
        return False

    def cycle_tab(self, delta: int) -> None:
        f = self.focus
        if f.panel == Panel.RESPONSE:
            tabs = tuple(ResponseTab)
            f.response_tab = tabs[(tabs.index(f.response_tab) + delta) % len(tabs)]
            return
        f.active_tab = _TABS[(_TABS.index(f.active_tab) + delta) % len(_TABS)]
        self._sync_sub_field()

    def _sync_sub_field(self) -> None:
        """Make the remembered per-tab sub-field legal again."""
        f = self.focus
        if f.auth_field not in AUTH_FIELDS[self.draft.auth_type]:
            f.auth_field = AuthField.TYPE

    # -- Popups ------------------------------------------------------------

    def open_popup(self, kind: PopupKind) -> Popup:
        """Open *kind*, force-closing any popup already open."""
        if self.popup is not None:
            logger.debug("closing %s popup for %s", self.popup.kind.name, kind.name)
        self._finish_editing()
        d = self.draft
        if kind == PopupKind.METHOD:
            items = [*STANDARD_METHODS, CUSTOM_METHOD_ITEM]
            current = items.index(d.method) if d.method in items else len(items) - 1
            popup = Popup(kind, items, current)
        elif kind == PopupKind.AUTH_TYPE:
            popup = Popup(kind, [a.label for a in AuthType], list(AuthType).index(d.auth_type))
        elif kind == PopupKind.BODY_TYPE:
            popup = Popup(kind, [b.label for b in BodyMode], list(BodyMode).index(d.body_mode))
        elif kind == PopupKind.ENVIRONMENT:
            items = [NO_ENVIRONMENT_ITEM, *(e.name for e in self.environments)]
            current = 0
            if self.active_environment is not None:
                current = self.environments.index(self.active_environment) + 1
            popup = Popup(kind, items, current)
        else:
            popup = Popup(kind, text=d.method if d.is_custom_method else "")
        self.popup = popup
        self.focus.interaction = Interaction.POPUP
        return popup

    def close_popup(self) -> None:
        self.popup = None
        self.focus.interaction = Interaction.NAVIGATION

    def _handle_popup(self, event) -> None:
        popup = self.popup
        result = popup.handle_key(event)
        if result == PopupResult.PENDING:
            return
        self.close_popup()
        if result == PopupResult.CONFIRMED:
            self._confirm_popup(popup)

    def _confirm_popup(self, popup: Popup) -> None:
        d = self.draft
        idx = popup.highlighted
        if popup.kind == PopupKind.METHOD:
            if popup.selected == CUSTOM_METHOD_ITEM:
                self.open_popup(PopupKind.CUSTOM_INPUT)
            else:
                d.set_method(popup.selected)
        elif popup.kind == PopupKind.CUSTOM_INPUT:
            text = (popup.selected or "").strip()
            if text:
                d.set_method(text)
        elif popup.kind == PopupKind.AUTH_TYPE:
            d.auth_type = list(AuthType)[idx]
            self._sync_sub_field()
        elif popup.kind == PopupKind.BODY_TYPE:
            d.set_body_mode(list(BodyMode)[idx])
        elif popup.kind == PopupKind.ENVIRONMENT:
            self.active_environment = None if idx == 0 else self.environments[idx - 1]
            name = self.active_environment.name if self.active_environment else "none"
            self.status_msg = f"environment: {name}"

    # -- Request lifecycle -------------------------------------------------

    def send(self) -> None:
        prepared = self.draft.prepare(self.variables())
        if prepared.unresolved:
            logger.info("unresolved variables: %s", ", ".join(prepared.unresolved))
            self.status_msg = f"unresolved: {', '.join(prepared.unresolved)}"
        self.response = None
        self.response_error = None
        self.dispatcher.start(prepared, self.config)

    def cancel_request(self) -> bool:
        if not self.dispatcher.cancel():
            return False
        self.status_msg = "request cancelled"
        return True

    def poll_response(self) -> bool:
        """Pick up a finished request; ``True`` when the response area changed."""
        result = self.dispatcher.poll()
        if result is None:
            return False
        if result.cancelled:
            self._show_error(RequestError(ErrorKind.CANCELLED, "Request cancelled"))
        elif result.error is not None:
            self._show_error(result.error)
        else:
            self._show_response(result.response)
        return True

    def _show_error(self, error: RequestError) -> None:
        self.response = None
        self.response_error = error
        self.response_body.set_content(error.message)
        self.response_headers.set_content("")

    def _show_response(self, response: ResponseData) -> None:
        self.response = response
        self.response_error = None
        self.response_body.set_content(_display_body(response))
        self.response_headers.set_content(
            "\n".join(f"{k}: {v}" for k, v in response.headers)
        )

    def load_draft(self, draft: RequestDraft) -> None:
        """Replace the draft being edited, dropping any in-flight request."""
        if self.dispatcher.cancel():
            self.dispatcher.poll()
        self.popup = None
        self._cell_buffer = None
        self._cell_table = None
        self.editor.reset()
        self.draft = draft
        self.focus = FocusState()
        self.response = None
        self.response_error = None
        self.response_body.set_content("")
        self.response_headers.set_content("")
        self.status_msg = ""


def _display_body(response: ResponseData) -> str:
    content_type = next(
        (v for k, v in response.headers if k.lower() == "content-type"), ""
    )
    if "json" not in content_type.lower():
        return response.body
    try:
        return json.dumps(json.loads(response.body), indent=2, ensure_ascii=False)
    except ValueError:
        return response.body
