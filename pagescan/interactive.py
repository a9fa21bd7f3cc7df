"""
OpenCV HighGUI front end for the shape editors.

The image is shown scaled to fit the screen, so pointer positions arrive in
display pixels; the editors map them back to logical image pixels. Keys:

    Enter / Space  confirm
    r              reset the shape
    Esc            cancel

After the corner step the cropped and corrected images are shown side by
side (1 or 2 to choose). The threshold window has trackbars for the block
size and C; b goes back to the crop step.
"""

import logging
from dataclasses import replace
from enum import Enum
from typing import Any, Callable, TypeVar

import cv2
import numpy as np
from cv2.typing import MatLike

from .coordinates import CoordinateMapper, DisplayRect
from .editors import (
    Handle,
    QuadOverlay,
    QuadrilateralEditor,
    RectOverlay,
    RectangleEditor,
    ShapeEditor,
)
from .geometry import Quadrilateral, Rectangle
from .pipeline import CornerPreview, PipelineContext
from .pointer import PointerKind, from_cv2_mouse

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT")

OVERLAY_COLOR = (255, 120, 0)  # BGR for #0078ff
HANDLE_OUTLINE = (255, 255, 255)
FILL_ALPHA = 0.1

KEY_ENTER = (10, 13)
KEY_SPACE = 32
KEY_ESC = 27
KEY_BACK = ord("b")


def fit_scale(width: int, height: int, max_dimension: int) -> float:
    """Downscale factor that fits an image into max_dimension (never upscales)."""
    return min(1.0, max_dimension / max(width, height))


class MouseBridge:
    """
    HighGUI mouse callback feeding an editor.

    On pointer-down the editor is hit-tested at the logical cursor position
    to find the handle (or body) under the pointer.
    """

    def __init__(self, editor: ShapeEditor[Any, Any], display: DisplayRect):
        self.editor = editor
        self.display = display

    def __call__(self, event: int, x: int, y: int, flags: int = 0, param: Any = None) -> bool:
        pointer = from_cv2_mouse(event, x, y)
        if pointer is None:
            return False

        if pointer.kind is PointerKind.DOWN:
            mapper = CoordinateMapper(self.display, self.editor.image_width,
                                      self.editor.image_height)
            cursor = mapper.to_logical(pointer.x, pointer.y)
            pointer = replace(pointer, target=self.editor.target_at(cursor.x, cursor.y))

        return self.editor.handle_event(pointer, self.display)


def _display_frame(image: MatLike, width: int, height: int) -> MatLike:
    frame = image
    if frame.ndim == 2:
        frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
    elif frame.shape[2] == 4:
        frame = cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)
    if frame.shape[1] != width or frame.shape[0] != height:
        frame = cv2.resize(frame, (width, height), interpolation=cv2.INTER_AREA)
    return np.ascontiguousarray(frame)


def _event_loop(title: str, render: Callable[[], MatLike],
                handle_key: Callable[[int], ResultT | None]) -> ResultT | None:
    """
    Show frames until `handle_key` returns a result; None if the window is closed.

    The window must already exist; it is destroyed on return.
    """
    try:
        while True:
            cv2.imshow(title, render())
            key = cv2.waitKey(20)
            if key != -1:
                result = handle_key(key & 0xFF)
                if result is not None:
                    return result
            if cv2.getWindowProperty(title, cv2.WND_PROP_VISIBLE) < 1:
                return None
    finally:
        cv2.destroyWindow(title)


def _to_display(x: float, y: float, scale: tuple[float, float]) -> tuple[int, int]:
    return int(round(x * scale[0])), int(round(y * scale[1]))


def _draw_handle(frame: MatLike, handle: Handle, scale: tuple[float, float]) -> None:
    cx, cy = _to_display(handle.x, handle.y, scale)
    size = max(3, int(round(handle.size * min(scale))))
    if handle.shape == "square":
        cv2.rectangle(frame, (cx - size, cy - size), (cx + size, cy + size), OVERLAY_COLOR, -1)
        cv2.rectangle(frame, (cx - size, cy - size), (cx + size, cy + size), HANDLE_OUTLINE, 1)
    else:
        cv2.circle(frame, (cx, cy), size, OVERLAY_COLOR, -1, cv2.LINE_AA)
        cv2.circle(frame, (cx, cy), size, HANDLE_OUTLINE, 2, cv2.LINE_AA)


def _draw_shape(frame: MatLike, points: np.ndarray) -> MatLike:
    fill = frame.copy()
    cv2.fillPoly(fill, [points], OVERLAY_COLOR)
    out = cv2.addWeighted(fill, FILL_ALPHA, frame, 1 - FILL_ALPHA, 0)
    cv2.polylines(out, [points], True, OVERLAY_COLOR, 2, cv2.LINE_AA)
    return out


def draw_quad_overlay(frame: MatLike, overlay: QuadOverlay, scale: tuple[float, float]) -> MatLike:
    """Paint the corner polygon and handles onto a copy of a display frame."""
    points = np.array([_to_display(p.x, p.y, scale) for p in overlay.polygon], dtype=np.int32)
    out = _draw_shape(frame, points)
    for handle in overlay.handles:
        _draw_handle(out, handle, scale)
    return out


def draw_rect_overlay(frame: MatLike, overlay: RectOverlay, scale: tuple[float, float]) -> MatLike:
    """Paint the crop rectangle and its 8 handles onto a copy of a display frame."""
    r = overlay.rectangle
    corners = [(r.x, r.y), (r.right, r.y), (r.right, r.bottom), (r.x, r.bottom)]
    points = np.array([_to_display(x, y, scale) for x, y in corners], dtype=np.int32)
    out = _draw_shape(frame, points)
    for handle in overlay.handles:
        _draw_handle(out, handle, scale)
    return out


class EditorWindow:
    """Shows an image with an editor overlay and routes mouse input to it."""

    def __init__(self, title: str, image: MatLike, editor: ShapeEditor[Any, Any],
                 max_dimension: int = 1000):
        self.title = title
        self.editor = editor
        height, width = image.shape[:2]
        factor = fit_scale(width, height, max_dimension)
        display_width = max(1, int(round(width * factor)))
        display_height = max(1, int(round(height * factor)))

        self.frame = _display_frame(image, display_width, display_height)
        self.display = DisplayRect(0, 0, display_width, display_height)
        self.scale = (display_width / width, display_height / height)
        self.overlay = editor.overlay()
        editor.on_render = self._on_render
        self.bridge = MouseBridge(editor, self.display)

    def _on_render(self, overlay: QuadOverlay | RectOverlay) -> None:
        self.overlay = overlay

    def render(self) -> MatLike:
        if isinstance(self.overlay, QuadOverlay):
            return draw_quad_overlay(self.frame, self.overlay, self.scale)
        return draw_rect_overlay(self.frame, self.overlay, self.scale)

    def handle_key(self, key: int) -> bool | None:
        """Return True to confirm, False to cancel, None to keep editing."""
        if key in KEY_ENTER or key == KEY_SPACE:
            return True
        if key == KEY_ESC:
            return False
        if key == ord("r"):
            self.editor.reset()
        return None

    def run(self) -> bool:
        """Run the event loop until the user confirms (True) or cancels (False)."""
        cv2.namedWindow(self.title, cv2.WINDOW_AUTOSIZE)
        cv2.setMouseCallback(self.title, self.bridge)
        result = _event_loop(self.title, self.render, self.handle_key)
        return bool(result)


def edit_corners(image: MatLike, max_dimension: int = 1000) -> Quadrilateral | None:
    """Let the user drag the document corners; None if cancelled."""
    height, width = image.shape[:2]
    editor = QuadrilateralEditor(width, height)
    window = EditorWindow("Identify corners - Enter to confirm, r to reset, Esc to cancel",
                          image, editor, max_dimension)
    if not window.run():
        logger.info("Corner selection cancelled")
        return None
    return editor.get_corners()


def edit_rectangle(image: MatLike, max_dimension: int = 1000,
                   min_size: float = 50.0, margin: float = 0.1) -> Rectangle | None:
    """Let the user move/resize the crop rectangle; None if cancelled."""
    height, width = image.shape[:2]
    editor = RectangleEditor(width, height, min_size=min_size, margin=margin)
    window = EditorWindow("Crop - Enter to confirm, r to reset, Esc to cancel",
                          image, editor, max_dimension)
    if not window.run():
        logger.info("Rectangular crop cancelled")
        return None
    return editor.get_rectangle()


# ============================================================================
# Corner result choice
# ============================================================================

class CornerChoice(Enum):
    CROPPED = "cropped"
    CORRECTED = "corrected"
    CANCEL = "cancel"


def compose_side_by_side(left: MatLike, right: MatLike, height: int, gap: int = 10) -> MatLike:
    """Scale two images to a common height and place them next to each other."""
    panels = []
    for image in (left, right):
        h, w = image.shape[:2]
        panels.append(_display_frame(image, max(1, int(round(w * height / h))), height))
    spacer = np.full((height, gap, 3), 255, dtype=np.uint8)
    return np.hstack([panels[0], spacer, panels[1]])


class CornerChoiceWindow:
    """Shows the cropped and corrected results of the corner step side by side."""

    def __init__(self, preview: CornerPreview, max_dimension: int = 1000,
                 title: str = "Choose result - 1 cropped, 2 corrected, Esc to cancel"):
        self.title = title
        self.preview = preview
        height = min(max(preview.cropped.shape[0], preview.corrected.shape[0]), max_dimension)
        frame = compose_side_by_side(preview.cropped, preview.corrected, height)
        factor = fit_scale(frame.shape[1], frame.shape[0], max_dimension)
        self.frame = _display_frame(frame,
                                    max(1, int(round(frame.shape[1] * factor))),
                                    max(1, int(round(frame.shape[0] * factor))))

        left_width = preview.cropped.shape[1] * height / preview.cropped.shape[0]
        right_x = int(round(left_width * factor)) + 20
        right_label = "2: Corrected" if preview.warped else "2: Cropped (transform failed)"
        for text, x in (("1: Cropped", 10), (right_label, right_x)):
            cv2.putText(self.frame, text, (x, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.8,
                        OVERLAY_COLOR, 2, cv2.LINE_AA)

    def render(self) -> MatLike:
        return self.frame

    def handle_key(self, key: int) -> CornerChoice | None:
        if key == ord("1"):
            return CornerChoice.CROPPED
        if key == ord("2") or key in KEY_ENTER or key == KEY_SPACE:
            return CornerChoice.CORRECTED
        if key == KEY_ESC:
            return CornerChoice.CANCEL
        return None

    def run(self) -> CornerChoice:
        cv2.namedWindow(self.title, cv2.WINDOW_AUTOSIZE)
        result = _event_loop(self.title, self.render, self.handle_key)
        return CornerChoice.CANCEL if result is None else result


def choose_corner_result(preview: CornerPreview, max_dimension: int = 1000) -> CornerChoice:
    """Ask the user whether to keep the cropped or the corrected image."""
    choice = CornerChoiceWindow(preview, max_dimension).run()
    logger.info("Corner result: %s", choice.value)
    return choice


# ============================================================================
# Threshold tuning
# ============================================================================

BLOCK_SIZE_MAX_POSITION = 49  # block sizes 3..101
C_OFFSET = 20  # C in [-20, 20]


def block_size_from_position(position: int) -> int:
    return 3 + 2 * position


def block_size_position(block_size: int) -> int:
    return min(BLOCK_SIZE_MAX_POSITION, max(0, (block_size - 3) // 2))


def constant_from_position(position: int) -> int:
    return position - C_OFFSET


def constant_position(c: int) -> int:
    return min(2 * C_OFFSET, max(0, c + C_OFFSET))


class TuneResult(Enum):
    ACCEPT = "accept"
    BACK = "back"
    CANCEL = "cancel"


class ThresholdTuner:
    """
    Re-thresholds the pipeline's grayscale image as the trackbars move.

    The context must already hold a binary result; each trackbar change
    replaces it with one computed from the new parameters.
    """

    def __init__(self, ctx: PipelineContext, max_dimension: int = 1000,
                 block_size: int | None = None, c: int | None = None,
                 title: str = "Threshold - Enter to accept, b back to crop, Esc to cancel"):
        if ctx.binary is None:
            raise RuntimeError("Threshold the image before tuning it")
        self.title = title
        self.ctx = ctx
        self.block_size = ctx.config.block_size if block_size is None else block_size
        self.constant_c = ctx.config.constant_c if c is None else c
        height, width = ctx.binary.shape[:2]
        factor = fit_scale(width, height, max_dimension)
        self.display_size = (max(1, int(round(width * factor))),
                             max(1, int(round(height * factor))))

    def apply(self) -> bool:
        """Re-run the threshold; the previous result stays on failure."""
        if self.ctx.threshold(self.block_size, self.constant_c) is None:
            logger.warning("Threshold failed for block size %d, C %d",
                           self.block_size, self.constant_c)
            return False
        return True

    def set_block_size(self, position: int) -> None:
        self.block_size = block_size_from_position(position)
        self.apply()

    def set_constant(self, position: int) -> None:
        self.constant_c = constant_from_position(position)
        self.apply()

    def render(self) -> MatLike:
        assert self.ctx.binary is not None
        return _display_frame(self.ctx.binary, *self.display_size)

    def handle_key(self, key: int) -> TuneResult | None:
        if key in KEY_ENTER or key == KEY_SPACE:
            return TuneResult.ACCEPT
        if key == KEY_BACK:
            return TuneResult.BACK
        if key == KEY_ESC:
            return TuneResult.CANCEL
        return None

    def run(self) -> TuneResult:
        cv2.namedWindow(self.title, cv2.WINDOW_AUTOSIZE)
        cv2.createTrackbar("Block size", self.title, block_size_position(self.block_size),
                           BLOCK_SIZE_MAX_POSITION, self.set_block_size)
        cv2.createTrackbar("C", self.title, constant_position(self.constant_c),
                           2 * C_OFFSET, self.set_constant)
        result = _event_loop(self.title, self.render, self.handle_key)
        return TuneResult.CANCEL if result is None else result


def tune_threshold(ctx: PipelineContext, max_dimension: int = 1000,
                   block_size: int | None = None,
                   c: int | None = None) -> tuple[TuneResult, int, int]:
    """
    Let the user adjust block size and C while watching the result.

    `block_size` and `c` are the parameters the current binary image was
    computed with (default: the configured ones).

    Returns:
        (result, block_size, c) with the parameters of the current binary image
    """
    tuner = ThresholdTuner(ctx, max_dimension, block_size, c)
    result = tuner.run()
    logger.info("Threshold tuning %s (block size %d, C %d)",
                result.value, tuner.block_size, tuner.constant_c)
    return result, tuner.block_size, tuner.constant_c
