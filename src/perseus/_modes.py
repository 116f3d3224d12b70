"""Editor mode and key-effect enums shared by ModalEditor and its mixins."""

from __future__ import annotations

from enum import Enum, auto


class VimMode(Enum):
    NORMAL = auto()
    INSERT = auto()
    VISUAL = auto()
    OPERATOR = auto()


class Effect(Enum):
    """What the caller should do after a key was applied."""

    CONSUMED = auto()
    EXIT_EDITING = auto()
    REJECTED = auto()
