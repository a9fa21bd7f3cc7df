"""
Unified pointer input.

The editors consume a single `PointerEvent` type. Each input source (browser
style mouse events, multi-touch, OpenCV HighGUI callbacks) gets a thin adapter
that produces it, so mouse and touch are handled identically downstream.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import cv2

logger = logging.getLogger(__name__)


class PointerKind(Enum):
    DOWN = "down"
    MOVE = "move"
    UP = "up"


@dataclass(frozen=True)
class PointerEvent:
    """
    One normalized pointer event.

    Attributes:
        kind: down, move or up
        x, y: Screen position of the pointer
        target: Tag of the handle/shape under the pointer on pointer-down
            (a `Corner` or `RectHandle`), None for empty space
    """
    kind: PointerKind
    x: float
    y: float
    target: Enum | None = None


_MOUSE_KINDS: dict[str, PointerKind] = {
    "mousedown": PointerKind.DOWN,
    "mousemove": PointerKind.MOVE,
    "mouseup": PointerKind.UP,
}


def from_mouse(event_type: str, client_x: float, client_y: float,
               target: Enum | None = None) -> PointerEvent:
    """
    Adapt a mouse event ("mousedown", "mousemove", "mouseup").

    Raises:
        ValueError: If the event type is not a mouse event
    """
    try:
        kind = _MOUSE_KINDS[event_type]
    except KeyError:
        raise ValueError(f"Unknown mouse event type: {event_type}") from None
    return PointerEvent(kind, client_x, client_y, target)


@dataclass(frozen=True)
class Touch:
    """A single touch point as reported by the input source."""
    identifier: int
    client_x: float
    client_y: float


class TouchTracker:
    """
    Adapts multi-touch events to single-pointer events.

    The first touch to go down becomes the active pointer; every other touch
    is ignored until the active one lifts or is cancelled.
    """

    def __init__(self) -> None:
        self.active_id: int | None = None

    def translate(self, event_type: str, changed: Sequence[Touch],
                  target: Enum | None = None) -> PointerEvent | None:
        """
        Convert a touch event to a pointer event.

        Args:
            event_type: "touchstart", "touchmove", "touchend" or "touchcancel"
            changed: Touches that changed in this event
            target: Tag under the touch on touchstart

        Returns:
            A PointerEvent for the active touch, or None if the event only
            concerns touches that are being ignored
        """
        if event_type == "touchstart":
            if not changed:
                return None
            if self.active_id is not None:
                logger.debug("Ignoring touch %d while touch %d is active",
                             changed[0].identifier, self.active_id)
                return None
            first = changed[0]
            self.active_id = first.identifier
            return PointerEvent(PointerKind.DOWN, first.client_x, first.client_y, target)

        active = self._find_active(changed)
        if active is None:
            return None

        if event_type == "touchmove":
            return PointerEvent(PointerKind.MOVE, active.client_x, active.client_y)
        if event_type in ("touchend", "touchcancel"):
            self.active_id = None
            return PointerEvent(PointerKind.UP, active.client_x, active.client_y)
        raise ValueError(f"Unknown touch event type: {event_type}")

    def _find_active(self, touches: Sequence[Touch]) -> Touch | None:
        for touch in touches:
            if touch.identifier == self.active_id:
                return touch
        return None


_CV2_KINDS: dict[int, PointerKind] = {
    cv2.EVENT_LBUTTONDOWN: PointerKind.DOWN,
    cv2.EVENT_MOUSEMOVE: PointerKind.MOVE,
    cv2.EVENT_LBUTTONUP: PointerKind.UP,
}


def from_cv2_mouse(event: int, x: int, y: int,
                   target: Enum | None = None) -> PointerEvent | None:
    """Adapt an OpenCV HighGUI mouse callback; other buttons are ignored."""
    kind = _CV2_KINDS.get(event)
    if kind is None:
        return None
    return PointerEvent(kind, float(x), float(y), target)
