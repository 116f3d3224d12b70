"""Small modal pickers layered over the request form."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto

from perseus.buffer import FieldBuffer


class PopupKind(Enum):
    METHOD = auto()
    AUTH_TYPE = auto()
    BODY_TYPE = auto()
    ENVIRONMENT = auto()
    CUSTOM_INPUT = auto()


class PopupResult(Enum):
    PENDING = auto()
    CONFIRMED = auto()
    CANCELLED = auto()


@dataclass(frozen=True)
class PopupSnapshot:
    kind: PopupKind
    items: tuple[str, ...]
    highlighted: int
    text: str | None
    cursor: int


class Popup:
    """A list picker, or a one-line text prompt for ``CUSTOM_INPUT``.

    j/k (or the arrows) move the highlight modulo the item count, Enter
    confirms and Esc cancels. The prompt variant owns its own single-line
    buffer with plain typing, Backspace and left/right.
    """

    def __init__(
        self,
        kind: PopupKind,
        items: list[str] | tuple[str, ...] = (),
        highlighted: int = 0,
        text: str | None = None,
    ) -> None:
        self.kind = kind
        self.items: tuple[str, ...] = tuple(items)
        self.highlighted = max(0, min(highlighted, len(self.items) - 1)) if self.items else 0
        self.input: FieldBuffer | None = None
        if kind == PopupKind.CUSTOM_INPUT:
            self.input = FieldBuffer(text or "", single_line=True)
            self.input.move_to_end()

    @property
    def selected(self) -> str | None:
        if self.input is not None:
            return self.input.get_content()
        if not self.items:
            return None
        return self.items[self.highlighted]

    def handle_key(self, event) -> PopupResult:
        key = event.key
        if key == "escape":
            return PopupResult.CANCELLED
        if key == "enter":
            return PopupResult.CONFIRMED
        if self.input is not None:
            self._edit(key, event.character)
        elif self.items:
            if key in ("j", "down", "tab"):
                self.highlighted = (self.highlighted + 1) % len(self.items)
            elif key in ("k", "up", "shift+tab"):
                self.highlighted = (self.highlighted - 1) % len(self.items)
            elif key in ("g", "home"):
                self.highlighted = 0
            elif key in ("G", "end"):
                self.highlighted = len(self.items) - 1
        return PopupResult.PENDING

    def _edit(self, key: str, char: str | None) -> None:
        buf = self.input
        line = buf.lines[0]
        col = buf.cursor_col
        if key == "backspace":
            if col > 0:
                buf.lines[0] = line[: col - 1] + line[col:]
                buf.cursor_col = col - 1
        elif key == "delete":
            buf.lines[0] = line[:col] + line[col + 1 :]
        elif key == "left":
            buf.cursor_col = max(0, col - 1)
        elif key == "right":
            buf.cursor_col = min(len(line), col + 1)
        elif key == "home":
            buf.cursor_col = 0
        elif key == "end":
            buf.cursor_col = len(line)
        elif char and char.isprintable():
            buf.lines[0] = line[:col] + char + line[col:]
            buf.cursor_col = col + len(char)

    def snapshot(self) -> PopupSnapshot:
        return PopupSnapshot(
            kind=self.kind,
            items=self.items,
            highlighted=self.highlighted,
            text=self.input.get_content() if self.input is not None else None,
            cursor=self.input.cursor_col if self.input is not None else 0,
        )
