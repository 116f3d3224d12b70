"""Terminal application wrapping the request editor."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from textual.app import App, ComposeResult
from textual.widgets import Header

from perseus.clipboard import ClipboardProvider
from perseus.config import ConfigError, load_config
from perseus.draft import RequestDraft
from perseus.environment import load_environments
from perseus.http import ErrorKind
from perseus.navigation import Action, NavigationController
from perseus.postman import (
    draft_from_request,
    find_request,
    load_collection,
    new_collection,
    new_id,
    save_request,
    write_collection,
)
from perseus.widget import RequestPanel, ResponsePanel

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.1


class PerseusApp(App):
    """TUI app that wraps the request and response panels."""

    CSS = """
    #request {
        height: 3fr;
        border: round $primary;
    }
    #request:focus {
        border: round $accent;
    }
    #response {
        height: 2fr;
        border: round $secondary;
    }
    """
    TITLE = "perseus"
    BINDINGS = []
    ENABLE_COMMAND_PALETTE = False

    def __init__(
        self,
        controller: NavigationController,
        collection: Optional[dict[str, Any]] = None,
        collection_path: str = "",
        item_id: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.controller = controller
        self.collection = collection if collection is not None else new_collection("perseus")
        self.collection_path = collection_path
        self.item_id = item_id

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield RequestPanel(self.controller, id="request")
        yield ResponsePanel(self.controller, id="response")

    def on_mount(self) -> None:
        self.query_one(RequestPanel).focus()
        self._update_title()
        self.set_interval(_POLL_INTERVAL, self._poll_response)

    def _update_title(self) -> None:
        name = self.collection.get("info", {}).get("name", "")
        self.sub_title = f"{name} [{self.collection_path}]" if self.collection_path else name

    def _refresh_panels(self) -> None:
        self.query_one(RequestPanel).refresh()
        self.query_one(ResponsePanel).refresh()

    def _poll_response(self) -> None:
        if not self.controller.poll_response():
            if self.controller.loading:
                self.query_one(ResponsePanel).refresh()
            return
        error = self.controller.response_error
        if error is not None:
            severity = "warning" if error.kind == ErrorKind.CANCELLED else "error"
            self.notify(error.message, severity=severity, timeout=6)
        self._refresh_panels()

    def on_request_panel_state_changed(self, event: RequestPanel.StateChanged) -> None:
        if event.action == Action.QUIT:
            self.controller.cancel_request()
            self.exit()
            return
        if event.action == Action.SAVE:
            self._save()
        self.query_one(ResponsePanel).refresh()

    def _save(self) -> None:
        if not self.collection_path:
            self.notify("No collection file; start with: perseus <file.json>", severity="warning")
            return
        item = save_request(self.collection, self.item_id, self.controller.draft)
        self.item_id = item["id"]
        try:
            write_collection(self.collection_path, self.collection)
        except OSError as exc:
            logger.warning("save failed: %s", exc)
            self.notify(f"Save failed: {exc}", severity="error", timeout=6)
            return
        self.notify(f"Saved: {self.collection_path}", severity="information")


def _configure_logging(log_file: str) -> None:
    # The TUI owns the terminal, so logs only go to an explicit file.
    if not log_file:
        logging.getLogger().addHandler(logging.NullHandler())
        return
    logging.basicConfig(
        filename=log_file,
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="perseus",
        description="Modal HTTP request editor in Textual",
    )
    parser.add_argument(
        "collection",
        nargs="?",
        default="",
        help="Postman v2.1 collection file to open",
    )
    parser.add_argument(
        "-r", "--request",
        default=None,
        help="name, folder/name path or id of the request to open",
    )
    parser.add_argument(
        "-e", "--env",
        action="append",
        default=[],
        help="Postman environment file (repeatable)",
    )
    parser.add_argument(
        "--log-file",
        default="",
        help="write debug logs to this file",
    )
    args = parser.parse_args()
    _configure_logging(args.log_file)

    try:
        config = load_config()
    except ConfigError as exc:
        for message in exc.messages:
            print(f"perseus: {message}", file=sys.stderr)
        sys.exit(1)

    collection_path: str = args.collection
    if collection_path and Path(collection_path).exists():
        try:
            collection = load_collection(collection_path)
        except (OSError, ValueError) as exc:
            print(f"perseus: cannot open {collection_path}: {exc}", file=sys.stderr)
            sys.exit(1)
    else:
        # Written on first save.
        stem = Path(collection_path).stem if collection_path else "perseus"
        collection = new_collection(stem)

    item = find_request(collection, args.request)
    if args.request and item is None:
        print(f"perseus: no request named {args.request!r}", file=sys.stderr)
        sys.exit(1)
    draft = draft_from_request(item.get("request")) if item else RequestDraft()

    controller = NavigationController(
        draft,
        config=config,
        clipboard=ClipboardProvider(),
        environments=load_environments(args.env),
    )
    app = PerseusApp(
        controller,
        collection=collection,
        collection_path=collection_path,
        item_id=item.setdefault("id", new_id()) if item else None,
    )
    app.run()


if __name__ == "__main__":
    main()
