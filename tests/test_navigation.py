"""Tests for focus, navigation and the request lifecycle."""

import threading
import time
from types import SimpleNamespace

from perseus.draft import ApiKeyLocation, AuthType, BodyMode, RequestDraft
from perseus.environment import Environment, EnvironmentVariable
from perseus.http import ErrorKind, RequestDispatcher, RequestError, ResponseData
from perseus.kvtable import KvColumn, RowKind
from perseus.navigation import (
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

SPACE = SimpleNamespace(key="space", character=" ")


def _key(char, key=None):
    return SimpleNamespace(key=key or char, character=char)


def _special(key):
    return SimpleNamespace(key=key, character=None)


def _press(ctl, *keys):
    for k in keys:
        event = _special(k) if len(k) > 1 else _key(k)
        ctl.handle_key(event)


def _type(ctl, text):
    for ch in text:
        ctl.handle_key(_key(ch))


def _controller(url="", **kwargs):
    draft = RequestDraft()
    if url:
        draft.set_url(url)
    return NavigationController(draft, **kwargs)


def _drain(ctl, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if ctl.poll_response():
            return True
        time.sleep(0.01)
    return False


class TestVerticalMovement:
    """j/k walk row fields, tab content and the response panel."""

    def test_initial_focus(self):
        ctl = _controller()
        assert ctl.focus == FocusState()
        assert ctl.focus.request_field == RequestField.URL
        assert ctl.active_buffer() is ctl.draft.url

    def test_down_through_content_to_response(self):
        ctl = _controller()
        _press(ctl, "j")
        assert ctl.focus.request_field == RequestField.CONTENT
        assert ctl.focused_table() is ctl.draft.params
        _press(ctl, "j")
        assert ctl.focus.panel == Panel.RESPONSE
        _press(ctl, "j")
        assert ctl.focus.panel == Panel.RESPONSE

    def test_up_from_response_back_to_url(self):
        ctl = _controller()
        _press(ctl, "j", "j", "k")
        assert ctl.focus.panel == Panel.REQUEST
        assert ctl.focus.request_field == RequestField.CONTENT
        _press(ctl, "k")
        assert ctl.focus.request_field == RequestField.URL
        _press(ctl, "k")
        assert ctl.focus.request_field == RequestField.URL

    def test_rows_before_leaving_table(self):
        ctl = _controller("https://x?a=1&b=2")
        _press(ctl, "j", "j", "j")
        assert ctl.draft.params.focus_row == 2
        assert ctl.focus.panel == Panel.REQUEST
        _press(ctl, "j")
        assert ctl.focus.panel == Panel.RESPONSE

    def test_row_fields(self):
        ctl = _controller()
        _press(ctl, "h")
        assert ctl.focus.request_field == RequestField.METHOD
        _press(ctl, "h")
        assert ctl.focus.request_field == RequestField.METHOD
        _press(ctl, "tab", "tab")
        assert ctl.focus.request_field == RequestField.SEND
        _press(ctl, "l")
        assert ctl.focus.request_field == RequestField.SEND


class TestTabs:
    """Tab cycling and remembered sub-fields."""

    def test_cycle_request_tabs(self):
        ctl = _controller()
        _press(ctl, "]")
        assert ctl.focus.active_tab == RequestTab.HEADERS
        _press(ctl, "]", "]", "]")
        assert ctl.focus.active_tab == RequestTab.PARAMS
        _press(ctl, "[")
        assert ctl.focus.active_tab == RequestTab.BODY

    def test_cycle_response_tabs(self):
        ctl = _controller()
        _press(ctl, "j", "j", "]")
        assert ctl.focus.response_tab == ResponseTab.HEADERS
        assert ctl.active_buffer() is ctl.response_headers
        assert ctl.focus.active_tab == RequestTab.PARAMS

    def test_sub_field_reset_when_no_longer_legal(self):
        ctl = _controller()
        ctl.draft.auth_type = AuthType.BASIC
        _press(ctl, "]", "]", "j", "j", "j")
        assert ctl.focus.auth_field == AuthField.PASSWORD
        assert ctl.focus.sub_field == AuthField.PASSWORD
        _press(ctl, "]")
        ctl.draft.auth_type = AuthType.BEARER
        _press(ctl, "[")
        assert ctl.focus.auth_field == AuthField.TYPE

    def test_sub_field_none_outside_auth_and_body(self):
        ctl = _controller()
        assert ctl.focus.sub_field is None


class TestUrlEditing:
    """Editing the URL keeps the params table in step."""

    def test_enter_starts_normal_mode(self):
        ctl = _controller("https://x")
        action = ctl.handle_key(_special("enter"))
        assert action == Action.NONE
        assert ctl.editing
        assert ctl.editor.mode == VimMode.NORMAL

    def test_typed_url_fills_params(self):
        ctl = _controller()
        _press(ctl, "i")
        assert ctl.editor.mode == VimMode.INSERT
        _type(ctl, "https://x?a=1")
        _press(ctl, "escape", "escape")
        assert ctl.focus.interaction == Interaction.NAVIGATION
        assert ctl.draft.params.enabled_pairs() == [("a", "1")]

    def test_disabled_row_survives_url_edit(self):
        ctl = _controller("https://x?k=v")
        _press(ctl, "j")
        ctl.handle_key(SPACE)
        assert ctl.draft.url.get_content() == "https://x"
        _press(ctl, "k", "i")
        _type(ctl, "?q=1")
        _press(ctl, "escape", "escape")
        rows = [(r.key, r.value, r.enabled) for r in ctl.draft.params.filled_rows()]
        assert rows == [("q", "1", True), ("k", "v", False)]

    def test_q_is_text_while_editing(self):
        ctl = _controller()
        _press(ctl, "i")
        assert ctl.handle_key(_key("q")) == Action.NONE
        assert ctl.draft.url.get_content() == "q"

    def test_ctrl_s_commits_and_saves(self):
        ctl = _controller()
        _press(ctl, "i")
        _type(ctl, "?a=1")
        assert ctl.handle_key(_special("ctrl+s")) == Action.SAVE
        assert not ctl.editing
        assert ctl.draft.params.enabled_pairs() == [("a", "1")]


class TestParamsTable:
    """Cell editing and row keys in the params table."""

    def test_cell_edits_rewrite_url(self):
        ctl = _controller("https://x")
        _press(ctl, "j", "enter")
        assert ctl.editing
        assert ctl.active_buffer() is not ctl.draft.url
        _press(ctl, "i", "a", "enter")
        assert not ctl.editing
        assert ctl.draft.url.get_content() == "https://x?a="
        _press(ctl, "l")
        assert ctl.draft.params.focus_column == KvColumn.VALUE
        _press(ctl, "enter", "i", "b", "enter")
        assert ctl.draft.url.get_content() == "https://x?a=b"
        assert len(ctl.draft.params) == 2

    def test_escape_in_cell_commits(self):
        ctl = _controller("https://x")
        _press(ctl, "j", "i")
        _type(ctl, "k")
        _press(ctl, "escape", "escape")
        assert ctl.draft.url.get_content() == "https://x?k="

    def test_o_adds_row_in_insert_mode(self):
        ctl = _controller("https://x?a=b")
        _press(ctl, "j", "o")
        assert ctl.editing
        assert ctl.editor.mode == VimMode.INSERT
        assert ctl.draft.params.focus_row == 1
        _type(ctl, "c")
        _press(ctl, "enter")
        assert ctl.draft.url.get_content() == "https://x?a=b&c="

    def test_delete_row(self):
        ctl = _controller("https://x?a=1&b=2")
        _press(ctl, "j", "x")
        assert ctl.draft.url.get_content() == "https://x?b=2"

    def test_toggle_row(self):
        ctl = _controller("https://x?a=1")
        _press(ctl, "j")
        ctl.handle_key(SPACE)
        assert ctl.draft.url.get_content() == "https://x"
        ctl.handle_key(SPACE)
        assert ctl.draft.url.get_content() == "https://x?a=1"

    def test_t_outside_multipart(self):
        ctl = _controller("https://x?a=1")
        _press(ctl, "j", "t")
        assert ctl.status_msg == "Text/File applies to multipart fields only"
        assert ctl.draft.params.rows[0].kind == RowKind.TEXT


class TestPopups:
    """Method, auth, body and environment pickers."""

    def test_pick_method(self):
        ctl = _controller()
        _press(ctl, "h", "enter")
        assert ctl.popup.kind == PopupKind.METHOD
        assert ctl.focus.interaction == Interaction.POPUP
        _press(ctl, "j", "enter")
        assert ctl.draft.method == "POST"
        assert ctl.popup is None
        assert ctl.focus.interaction == Interaction.NAVIGATION

    def test_custom_method(self):
        ctl = _controller()
        _press(ctl, "h", "enter", "G", "enter")
        assert ctl.popup.kind == PopupKind.CUSTOM_INPUT
        _type(ctl, "purge")
        _press(ctl, "enter")
        assert ctl.draft.method == "PURGE"
        assert ctl.popup is None

    def test_empty_custom_method_ignored(self):
        ctl = _controller()
        _press(ctl, "h", "enter", "G", "enter", "enter")
        assert ctl.draft.method == "GET"

    def test_cancel_method_popup(self):
        ctl = _controller()
        _press(ctl, "h", "enter", "j", "escape")
        assert ctl.draft.method == "GET"
        assert ctl.popup is None

    def test_one_popup_at_a_time(self):
        ctl = _controller()
        ctl.open_popup(PopupKind.METHOD)
        ctl.open_popup(PopupKind.ENVIRONMENT)
        assert ctl.snapshot().popup_kind == PopupKind.ENVIRONMENT
        assert ctl.handle_key(_key("q")) == Action.NONE
        assert ctl.popup is not None

    def test_popup_closes_editing(self):
        ctl = _controller()
        _press(ctl, "i")
        _type(ctl, "https://x?a=1")
        ctl.open_popup(PopupKind.ENVIRONMENT)
        assert ctl.draft.params.enabled_pairs() == [("a", "1")]
        assert ctl.focus.interaction == Interaction.POPUP

    def test_auth_type_and_fields(self):
        ctl = _controller()
        _press(ctl, "]", "]", "j", "enter")
        assert ctl.popup.kind == PopupKind.AUTH_TYPE
        _press(ctl, "j", "j", "enter")
        assert ctl.draft.auth_type == AuthType.BASIC
        _press(ctl, "j")
        assert ctl.focus.auth_field == AuthField.USERNAME
        assert ctl.active_buffer() is ctl.draft.basic_username
        _press(ctl, "i")
        _type(ctl, "admin")
        _press(ctl, "enter")
        assert ctl.draft.basic_username.get_content() == "admin"
        _press(ctl, "j", "j")
        assert ctl.focus.panel == Panel.RESPONSE

    def test_api_key_location_toggle(self):
        ctl = _controller()
        _press(ctl, "]", "]", "j", "enter", "G", "enter")
        assert ctl.draft.auth_type == AuthType.API_KEY
        _press(ctl, "j", "j", "j")
        assert ctl.focus.auth_field == AuthField.KEY_LOCATION
        _press(ctl, "enter")
        assert ctl.draft.api_key_location == ApiKeyLocation.QUERY
        assert not ctl.editing

    def test_body_mode_shares_text(self):
        ctl = _controller()
        _press(ctl, "[", "j")
        assert ctl.focus.body_field == BodyField.MODE
        _press(ctl, "j", "i")
        _type(ctl, '{"a": 1}')
        _press(ctl, "escape", "escape", "k", "enter")
        assert ctl.popup.kind == PopupKind.BODY_TYPE
        _press(ctl, "j", "enter")
        assert ctl.draft.body_mode == BodyMode.JSON
        assert ctl.draft.body_text.get_content() == '{"a": 1}'
        assert ctl.draft.json_valid() is True

    def test_form_body_table(self):
        ctl = _controller()
        _press(ctl, "[", "j", "enter", "j", "j", "j", "enter")
        assert ctl.draft.body_mode == BodyMode.FORM_URLENCODED
        _press(ctl, "j")
        assert ctl.focused_table() is ctl.draft.form
        _press(ctl, "i", "f", "enter")
        assert ctl.draft.form.rows[0].key == "f"
        assert ctl.draft.url.get_content() == ""

    def test_multipart_type_column(self):
        ctl = _controller()
        ctl.draft.set_body_mode(BodyMode.MULTIPART)
        _press(ctl, "[", "j", "j", "l", "l")
        assert ctl.draft.multipart.focus_column == KvColumn.TYPE
        _press(ctl, "enter")
        assert not ctl.editing
        assert ctl.draft.multipart.rows[0].kind == RowKind.FILE

    def test_environment_picker(self):
        envs = [Environment(name="dev"), Environment(name="prod")]
        ctl = _controller(environments=envs)
        _press(ctl, "E", "G", "enter")
        assert ctl.active_environment is envs[1]
        assert ctl.status_msg == "environment: prod"
        _press(ctl, "E")
        assert ctl.popup.highlighted == 2
        _press(ctl, "g", "enter")
        assert ctl.active_environment is None


class TestRequestLifecycle:
    """Sending, responses, errors and cancellation."""

    def test_send_with_environment(self):
        sent = []

        def send(prepared, config, session):
            sent.append(prepared)
            return ResponseData(
                200, "OK", headers=[("Content-Type", "application/json")], body='{"a":1}'
            )

        env = Environment(
            name="dev",
            values=[EnvironmentVariable(key="host", value="https://api.example.com")],
        )
        ctl = _controller(
            "{{host}}/ping", dispatcher=RequestDispatcher(send=send), environments=[env]
        )
        _press(ctl, "E", "j", "enter")
        assert ctl.handle_key(_key("s")) == Action.SEND
        assert _drain(ctl)
        assert sent[0].url == "https://api.example.com/ping"
        assert ctl.draft.url.get_content() == "{{host}}/ping"
        assert ctl.response.status == 200
        assert ctl.response_body.get_content() == '{\n  "a": 1\n}'
        assert ctl.response_headers.get_content() == "Content-Type: application/json"
        assert not ctl.loading

    def test_send_button(self):
        ctl = _controller(
            "https://x", dispatcher=RequestDispatcher(send=lambda p, c, s: ResponseData(204, "No Content"))
        )
        _press(ctl, "l")
        assert ctl.handle_key(_special("enter")) == Action.SEND
        assert _drain(ctl)
        assert ctl.response.status_line == "204 No Content"

    def test_unresolved_variables_reported(self):
        ctl = _controller(
            "{{host}}/ping", dispatcher=RequestDispatcher(send=lambda p, c, s: ResponseData(200, "OK"))
        )
        _press(ctl, "s")
        assert ctl.status_msg == "unresolved: host"
        assert _drain(ctl)

    def test_error_shown_in_response_area(self):
        def send(prepared, config, session):
            raise RequestError(ErrorKind.CONNECTION, "Connection failed: x")

        ctl = _controller("https://x", dispatcher=RequestDispatcher(send=send))
        _press(ctl, "s")
        assert _drain(ctl)
        assert ctl.response is None
        assert ctl.response_error.kind == ErrorKind.CONNECTION
        assert ctl.response_body.get_content() == "Connection failed: x"

    def test_cancel(self):
        gate = threading.Event()

        def send(prepared, config, session):
            gate.wait(5)
            return ResponseData(200, "OK")

        ctl = _controller("https://x", dispatcher=RequestDispatcher(send=send))
        _press(ctl, "s")
        assert ctl.loading
        ctl.handle_key(_special("ctrl+c"))
        assert not ctl.loading
        assert ctl.poll_response()
        gate.set()
        assert ctl.response_error.kind == ErrorKind.CANCELLED
        assert ctl.response_body.get_content() == "Request cancelled"

    def test_cancel_when_idle(self):
        ctl = _controller()
        assert ctl.cancel_request() is False

    def test_load_draft_drops_in_flight_request(self):
        gate = threading.Event()

        def send(prepared, config, session):
            gate.wait(5)
            return ResponseData(200, "OK")

        ctl = _controller("https://x", dispatcher=RequestDispatcher(send=send))
        _press(ctl, "]", "s")
        replacement = RequestDraft()
        ctl.load_draft(replacement)
        gate.set()
        assert ctl.draft is replacement
        assert not ctl.loading
        assert ctl.poll_response() is False
        assert ctl.focus == FocusState()

    def test_non_json_body_left_as_is(self):
        body = '{"a":1}'
        ctl = _controller(
            "https://x",
            dispatcher=RequestDispatcher(
                send=lambda p, c, s: ResponseData(200, "OK", headers=[("Content-Type", "text/plain")], body=body)
            ),
        )
        _press(ctl, "s")
        assert _drain(ctl)
        assert ctl.response_body.get_content() == body


class TestResponseArea:
    """Response buffers are read-only."""

    def test_read_only_editing(self):
        ctl = _controller()
        ctl.response_body.set_content("hello world")
        _press(ctl, "j", "j", "i")
        assert ctl.editing
        assert ctl.editor.mode == VimMode.NORMAL
        _press(ctl, "x", "d", "d")
        assert ctl.response_body.get_content() == "hello world"
        _press(ctl, "v", "e", "y")
        assert ctl.editor.register.text == "hello"
        _press(ctl, "escape")
        assert not ctl.editing

    def test_q_quits_from_navigation(self):
        ctl = _controller()
        assert ctl.handle_key(_key("q")) == Action.QUIT


class TestMultiLineFields:
    """Headers and text bodies keep newlines."""

    def test_headers(self):
        ctl = _controller()
        _press(ctl, "]", "j")
        assert ctl.active_buffer() is ctl.draft.headers
        _press(ctl, "i")
        _type(ctl, "A: 1")
        _press(ctl, "enter")
        assert ctl.editing
        _type(ctl, "B: 2")
        _press(ctl, "escape", "escape")
        assert ctl.draft.headers.get_content() == "A: 1\nB: 2"
