"""Host clipboard access."""

from __future__ import annotations

import logging

import pyperclip

logger = logging.getLogger(__name__)


class ClipboardError(Exception):
    """Clipboard unavailable or an operation on it failed."""

    def __init__(self, kind: str, cause: Exception) -> None:
        super().__init__(f"{kind} failed: {cause}")
        self.kind = kind
        self.cause = cause


class ClipboardProvider:
    """Plain-text copy/paste through pyperclip."""

    def get_text(self) -> str:
        try:
            return pyperclip.paste()
        except pyperclip.PyperclipException as exc:
            raise ClipboardError("read", exc) from exc

    def set_text(self, text: str) -> None:
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as exc:
            raise ClipboardError("write", exc) from exc
        logger.debug("copied %d chars to clipboard", len(text))
