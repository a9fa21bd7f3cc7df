"""
Tests for the OpenCV front end that do not need a window.
"""

import cv2
import numpy as np
import pytest
from numpy.typing import NDArray

from pagescan.coordinates import DisplayRect
from pagescan.editors import QuadrilateralEditor, RectangleEditor
from pagescan.geometry import Point, Quadrilateral, RectHandle, Rectangle
from pagescan.interactive import (
    OVERLAY_COLOR,
    CornerChoice,
    CornerChoiceWindow,
    EditorWindow,
    MouseBridge,
    ThresholdTuner,
    TuneResult,
    block_size_from_position,
    block_size_position,
    compose_side_by_side,
    constant_from_position,
    constant_position,
    draw_quad_overlay,
    fit_scale,
)
from pagescan.pipeline import PipelineContext


# ============================================================================
# Test Fixtures
# ============================================================================

@pytest.fixture
def photo() -> NDArray[np.uint8]:
    return np.full((1500, 2000, 3), 200, dtype=np.uint8)


@pytest.fixture
def page_ctx() -> PipelineContext:
    """Context thresholded with the default parameters."""
    img = np.full((240, 320, 3), 230, dtype=np.uint8)
    cv2.rectangle(img, (40, 60), (280, 70), (30, 30, 30), -1)
    ctx = PipelineContext()
    ctx.load(img)
    ctx.skip_corners()
    ctx.skip_crop()
    ctx.threshold()
    return ctx


# ============================================================================
# Scaling Tests
# ============================================================================

def test_fit_scale():
    assert fit_scale(2000, 1500, 1000) == 0.5
    assert fit_scale(800, 600, 1000) == 1.0


# ============================================================================
# MouseBridge Tests
# ============================================================================

def test_mouse_bridge_drags_corner():
    """Pointer-down on a handle starts a drag in logical coordinates."""
    editor = QuadrilateralEditor(2000, 1500)
    bridge = MouseBridge(editor, DisplayRect(0, 0, 1000, 750))

    assert bridge(cv2.EVENT_LBUTTONDOWN, 3, 2)
    bridge(cv2.EVENT_MOUSEMOVE, 100, 50)
    bridge(cv2.EVENT_LBUTTONUP, 100, 50)

    assert editor.get_corners().top_left == Point(200, 100)


def test_mouse_bridge_miss_does_nothing():
    editor = QuadrilateralEditor(2000, 1500)
    bridge = MouseBridge(editor, DisplayRect(0, 0, 1000, 750))

    assert not bridge(cv2.EVENT_LBUTTONDOWN, 500, 375)
    assert not bridge(cv2.EVENT_MOUSEMOVE, 10, 10)


def test_mouse_bridge_moves_rectangle_body():
    editor = RectangleEditor(2000, 1500)
    editor.rectangle = Rectangle(200, 150, 1600, 1200)
    bridge = MouseBridge(editor, DisplayRect(0, 0, 1000, 750))

    bridge(cv2.EVENT_LBUTTONDOWN, 500, 375)
    assert editor.session.mode is RectHandle.BODY
    bridge(cv2.EVENT_MOUSEMOVE, 450, 375)
    assert editor.get_rectangle() == Rectangle(100, 150, 1600, 1200)


def test_mouse_bridge_ignores_right_button():
    editor = QuadrilateralEditor(100, 100)
    bridge = MouseBridge(editor, DisplayRect(0, 0, 100, 100))
    assert not bridge(cv2.EVENT_RBUTTONDOWN, 0, 0)


# ============================================================================
# EditorWindow Tests
# ============================================================================

def test_window_scales_large_image(photo: NDArray[np.uint8]):
    window = EditorWindow("test", photo, QuadrilateralEditor(2000, 1500), max_dimension=1000)
    assert window.frame.shape == (750, 1000, 3)
    assert window.display == DisplayRect(0, 0, 1000, 750)
    assert window.scale == (0.5, 0.5)


def test_window_render_draws_overlay(photo: NDArray[np.uint8]):
    window = EditorWindow("test", photo, QuadrilateralEditor(2000, 1500), max_dimension=1000)
    frame = window.render()

    assert frame.shape == (750, 1000, 3)
    # Outline and handles are drawn in the overlay color, the base frame is untouched
    assert tuple(frame[0, 0]) == OVERLAY_COLOR
    assert tuple(window.frame[0, 0]) == (200, 200, 200)


def test_window_tracks_editor_updates(photo: NDArray[np.uint8]):
    editor = QuadrilateralEditor(2000, 1500)
    window = EditorWindow("test", photo, editor, max_dimension=1000)

    window.bridge(cv2.EVENT_LBUTTONDOWN, 0, 0)
    window.bridge(cv2.EVENT_MOUSEMOVE, 200, 100)
    assert window.overlay.polygon[0] == Point(400, 200)


@pytest.mark.parametrize("key,expected", [
    (13, True),
    (10, True),
    (32, True),
    (27, False),
    (ord("x"), None),
])
def test_window_keys(photo: NDArray[np.uint8], key: int, expected):
    window = EditorWindow("test", photo, QuadrilateralEditor(2000, 1500))
    assert window.handle_key(key) is expected


def test_window_reset_key(photo: NDArray[np.uint8]):
    editor = RectangleEditor(2000, 1500)
    window = EditorWindow("test", photo, editor)
    editor.rectangle = Rectangle(0, 0, 100, 100)

    assert window.handle_key(ord("r")) is None
    assert editor.get_rectangle() == Rectangle.centered(2000, 1500)


def test_window_accepts_bgra_and_gray():
    rgba = np.zeros((100, 100, 4), dtype=np.uint8)
    gray = np.zeros((100, 100), dtype=np.uint8)
    assert EditorWindow("a", rgba, QuadrilateralEditor(100, 100)).frame.shape == (100, 100, 3)
    assert EditorWindow("b", gray, QuadrilateralEditor(100, 100)).frame.shape == (100, 100, 3)


def test_draw_quad_overlay_returns_copy():
    frame = np.zeros((100, 100, 3), dtype=np.uint8)
    editor = QuadrilateralEditor(100, 100)
    out = draw_quad_overlay(frame, editor.overlay(), (1.0, 1.0))
    assert out is not frame
    assert frame.max() == 0
    assert out.max() > 0


# ============================================================================
# Corner Choice Tests
# ============================================================================

def test_compose_side_by_side():
    left = np.zeros((100, 50, 3), dtype=np.uint8)
    right = np.full((200, 300), 255, dtype=np.uint8)
    frame = compose_side_by_side(left, right, 100, gap=10)

    assert frame.shape == (100, 50 + 10 + 150, 3)
    assert frame[:, :50].max() == 0
    assert frame[:, 60:].min() == 255


def test_corner_choice_window(page_ctx: PipelineContext):
    corners = Quadrilateral(Point(20, 20), Point(300, 30), Point(290, 220), Point(30, 210))
    preview = page_ctx.preview_corners(corners)
    window = CornerChoiceWindow(preview, max_dimension=400)

    assert max(window.render().shape[:2]) <= 400
    assert window.handle_key(ord("1")) is CornerChoice.CROPPED
    assert window.handle_key(ord("2")) is CornerChoice.CORRECTED
    assert window.handle_key(13) is CornerChoice.CORRECTED
    assert window.handle_key(27) is CornerChoice.CANCEL
    assert window.handle_key(ord("x")) is None


# ============================================================================
# Threshold Tuner Tests
# ============================================================================

def test_trackbar_positions():
    assert block_size_from_position(0) == 3
    assert block_size_from_position(4) == 11
    assert block_size_position(11) == 4
    assert block_size_position(501) == 49
    assert constant_from_position(22) == 2
    assert constant_position(2) == 22
    assert constant_position(-100) == 0


def test_tuner_requires_binary():
    ctx = PipelineContext()
    ctx.load(np.zeros((10, 10, 3), dtype=np.uint8))
    with pytest.raises(RuntimeError):
        ThresholdTuner(ctx)


def test_tuner_rethresholds_on_trackbar_change(page_ctx: PipelineContext):
    tuner = ThresholdTuner(page_ctx)
    before = page_ctx.binary

    tuner.set_block_size(20)
    assert tuner.block_size == 43
    assert page_ctx.binary is not before

    tuner.set_constant(40)
    assert tuner.constant_c == 20
    # A mean minus 20 leaves the flat background white
    assert page_ctx.binary[0, 0, 0] == 255
    assert page_ctx.gray is not None


def test_tuner_render_fits_display(page_ctx: PipelineContext):
    tuner = ThresholdTuner(page_ctx, max_dimension=160)
    assert tuner.render().shape == (120, 160, 3)


@pytest.mark.parametrize("key,expected", [
    (13, TuneResult.ACCEPT),
    (32, TuneResult.ACCEPT),
    (ord("b"), TuneResult.BACK),
    (27, TuneResult.CANCEL),
    (ord("x"), None),
])
def test_tuner_keys(page_ctx: PipelineContext, key: int, expected):
    assert ThresholdTuner(page_ctx).handle_key(key) is expected
