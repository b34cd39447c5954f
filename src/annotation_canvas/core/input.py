"""Explicit input state passed into the viewport and editor."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from PyQt6.QtCore import Qt


class MouseButton(str, Enum):
    """Pointer button of a press/release event."""

    LEFT = "left"
    RIGHT = "right"
    MIDDLE = "middle"

    @classmethod
    def from_qt(cls, button: Qt.MouseButton) -> MouseButton:
        if button == Qt.MouseButton.RightButton:
            return cls.RIGHT
        if button == Qt.MouseButton.MiddleButton:
            return cls.MIDDLE
        return cls.LEFT


@dataclass(frozen=True)
class InputModifiers:
    """
    Keyboard modifiers held during an input event.

    Passed explicitly with every event instead of being tracked globally,
    so the canvas logic can be driven without real key events.
    """

    shift: bool = False
    ctrl: bool = False
    meta: bool = False
    alt: bool = False

    def matches(self, name: str) -> bool:
        """
        Check a configured modifier name against this state.

        ``ctrl`` also matches the meta (command) key.
        """
        if name == "shift":
            return self.shift
        if name == "ctrl":
            return self.ctrl or self.meta
        if name == "alt":
            return self.alt
        return False

    @classmethod
    def from_qt(cls, modifiers: Qt.KeyboardModifier) -> InputModifiers:
        """Build from a Qt modifier flag set."""
        return cls(
            shift=bool(modifiers & Qt.KeyboardModifier.ShiftModifier),
            ctrl=bool(modifiers & Qt.KeyboardModifier.ControlModifier),
            meta=bool(modifiers & Qt.KeyboardModifier.MetaModifier),
            alt=bool(modifiers & Qt.KeyboardModifier.AltModifier),
        )


NO_MODIFIERS = InputModifiers()
