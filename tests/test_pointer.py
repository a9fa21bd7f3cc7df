"""
Unit tests for the pointer adapters (mouse, touch and OpenCV callbacks).
"""

import cv2
import pytest

from pagescan.geometry import Corner
from pagescan.pointer import (
    PointerEvent,
    PointerKind,
    Touch,
    TouchTracker,
    from_cv2_mouse,
    from_mouse,
)


# ============================================================================
# Mouse Adapter Tests
# ============================================================================

@pytest.mark.parametrize("event_type,kind", [
    ("mousedown", PointerKind.DOWN),
    ("mousemove", PointerKind.MOVE),
    ("mouseup", PointerKind.UP),
])
def test_from_mouse(event_type: str, kind: PointerKind):
    event = from_mouse(event_type, 12.5, 40, Corner.TOP_LEFT)
    assert event == PointerEvent(kind, 12.5, 40, Corner.TOP_LEFT)


def test_from_mouse_unknown_type():
    with pytest.raises(ValueError):
        from_mouse("click", 0, 0)


# ============================================================================
# Touch Adapter Tests
# ============================================================================

def test_touch_sequence_matches_mouse_sequence():
    """start/move/end produce the same events as down/move/up."""
    tracker = TouchTracker()

    down = tracker.translate("touchstart", [Touch(7, 10, 20)], Corner.TOP_RIGHT)
    move = tracker.translate("touchmove", [Touch(7, 15, 25)])
    up = tracker.translate("touchend", [Touch(7, 15, 25)])

    assert down == from_mouse("mousedown", 10, 20, Corner.TOP_RIGHT)
    assert move == from_mouse("mousemove", 15, 25)
    assert up == from_mouse("mouseup", 15, 25)
    assert tracker.active_id is None


def test_touch_only_first_touch_is_tracked():
    """A second finger is ignored while the first is down."""
    tracker = TouchTracker()
    tracker.translate("touchstart", [Touch(1, 0, 0), Touch(2, 50, 50)])

    assert tracker.active_id == 1
    assert tracker.translate("touchstart", [Touch(3, 5, 5)]) is None
    assert tracker.translate("touchmove", [Touch(2, 60, 60)]) is None

    event = tracker.translate("touchmove", [Touch(2, 60, 60), Touch(1, 4, 4)])
    assert event == PointerEvent(PointerKind.MOVE, 4, 4)


def test_touch_cancel_ends_drag():
    tracker = TouchTracker()
    tracker.translate("touchstart", [Touch(1, 0, 0)])
    event = tracker.translate("touchcancel", [Touch(1, 3, 3)])

    assert event is not None
    assert event.kind is PointerKind.UP
    assert tracker.active_id is None

    # A new touch can start afterwards
    assert tracker.translate("touchstart", [Touch(2, 1, 1)]) is not None


def test_touch_ending_other_finger_keeps_active():
    tracker = TouchTracker()
    tracker.translate("touchstart", [Touch(1, 0, 0)])
    assert tracker.translate("touchend", [Touch(2, 0, 0)]) is None
    assert tracker.active_id == 1


def test_touch_empty_start():
    assert TouchTracker().translate("touchstart", []) is None


def test_touch_unknown_type():
    tracker = TouchTracker()
    tracker.translate("touchstart", [Touch(1, 0, 0)])
    with pytest.raises(ValueError):
        tracker.translate("touchwiggle", [Touch(1, 0, 0)])


# ============================================================================
# OpenCV Adapter Tests
# ============================================================================

def test_from_cv2_mouse_buttons():
    assert from_cv2_mouse(cv2.EVENT_LBUTTONDOWN, 3, 4).kind is PointerKind.DOWN
    assert from_cv2_mouse(cv2.EVENT_MOUSEMOVE, 3, 4).kind is PointerKind.MOVE
    assert from_cv2_mouse(cv2.EVENT_LBUTTONUP, 3, 4).kind is PointerKind.UP


def test_from_cv2_mouse_ignores_other_events():
    assert from_cv2_mouse(cv2.EVENT_RBUTTONDOWN, 3, 4) is None
