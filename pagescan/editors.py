"""
Pointer-driven shape editors for geometric correction.

Two state machines share the same event plumbing:

- QuadrilateralEditor: four freely draggable corners (perspective correction)
- RectangleEditor: one axis-aligned rectangle with 8 resize handles plus a
  draggable body (rectangular crop)

Both consume `PointerEvent`s together with the display rectangle the image is
currently painted in, map positions to logical pixels with a fresh
`CoordinateMapper`, and enforce their geometric invariants on every update.
After every mutation the full overlay (shape + handles) is recomputed and
passed to the render hook.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, TypeVar

from .coordinates import CoordinateMapper, DisplayRect
from .geometry import Corner, Point, Quadrilateral, RectHandle, Rectangle
from .pointer import PointerEvent, PointerKind

logger = logging.getLogger(__name__)

MIN_CROP_SIZE = 50.0
DEFAULT_CROP_MARGIN = 0.1

# Handle sizes in logical pixels (the overlay is drawn in image space)
CORNER_HANDLE_RADIUS = 20.0
RESIZE_HANDLE_RADIUS = 16.0
EDGE_HANDLE_HALF_SIZE = 4.0


class EditorState(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    MOVING = "moving"
    RESIZING = "resizing"


@dataclass(frozen=True)
class Handle:
    """A grabbable overlay element, tagged with what it controls."""
    tag: Enum
    x: float
    y: float
    size: float
    shape: str = "circle"  # "circle" (size = radius) or "square" (size = half side)

    def hit(self, x: float, y: float) -> bool:
        if self.shape == "square":
            return abs(x - self.x) <= self.size and abs(y - self.y) <= self.size
        return math.hypot(x - self.x, y - self.y) <= self.size


@dataclass(frozen=True)
class QuadOverlay:
    polygon: tuple[Point, ...]
    handles: tuple[Handle, ...]


@dataclass(frozen=True)
class RectOverlay:
    rectangle: Rectangle
    handles: tuple[Handle, ...]


ShapeT = TypeVar("ShapeT", Quadrilateral, Rectangle)
OverlayT = TypeVar("OverlayT", QuadOverlay, RectOverlay)


@dataclass(frozen=True)
class DragSession(Generic[ShapeT]):
    """
    State captured between pointer-down and the matching pointer-up.

    Attributes:
        mode: Corner being dragged, or rectangle handle/body
        anchor: Logical cursor position at pointer-down
        start: Shape as it was at pointer-down
    """
    mode: Enum
    anchor: Point
    start: ShapeT


def move_rectangle(start: Rectangle, dx: float, dy: float,
                   image_width: float, image_height: float) -> Rectangle:
    """Translate a rectangle by (dx, dy), keeping it inside the image."""
    x = max(0.0, min(start.x + dx, image_width - start.width))
    y = max(0.0, min(start.y + dy, image_height - start.height))
    return Rectangle(x, y, start.width, start.height)


def constrain_rectangle(rect: Rectangle, image_width: float, image_height: float,
                        min_size: float = MIN_CROP_SIZE) -> Rectangle:
    """
    Fit a rectangle from outside the editor (e.g. typed coordinates) into the
    image under the editor's rules.

    Dimensions are raised to `min_size` (capped at the image size) and the
    rectangle is shifted, never truncated, until it lies inside the image.

    Raises:
        ValueError: If a coordinate is not finite
    """
    values = (rect.x, rect.y, rect.width, rect.height)
    if not all(math.isfinite(v) for v in values):
        raise ValueError(f"Rectangle is not finite: {rect}")

    width = min(max(rect.width, min_size), image_width)
    height = min(max(rect.height, min_size), image_height)
    x = max(0.0, min(rect.x, image_width - width))
    y = max(0.0, min(rect.y, image_height - height))
    return Rectangle(x, y, width, height)


def resize_rectangle(start: Rectangle, handle: RectHandle, dx: float, dy: float,
                     image_width: float, image_height: float,
                     min_size: float = MIN_CROP_SIZE) -> Rectangle:
    """
    Resize a rectangle by dragging one of its 8 handles.

    Always computed from the rectangle as it was when the drag started, so
    repeated moves do not accumulate drift. The side opposite the dragged one
    stays fixed, dimensions never drop below `min_size` and the dragged side
    never leaves the image.

    Args:
        start: Rectangle at the beginning of the drag
        handle: Handle being dragged (not BODY)
        dx, dy: Cursor displacement since the drag started, in logical pixels
        image_width, image_height: Image bounds
        min_size: Minimum width and height

    Returns:
        The resized rectangle
    """
    if not handle.is_resize:
        raise ValueError("BODY is not a resize handle")

    # A rectangle that already starts below the minimum (tiny images) cannot shrink further
    min_width = min(min_size, start.width)
    min_height = min(min_size, start.height)

    x, y, width, height = start.x, start.y, start.width, start.height

    if handle in (RectHandle.TOP_LEFT, RectHandle.BOTTOM_LEFT, RectHandle.LEFT):
        x = max(0.0, min(start.x + dx, start.right - min_width))
        width = start.width - (x - start.x)
    elif handle in (RectHandle.TOP_RIGHT, RectHandle.BOTTOM_RIGHT, RectHandle.RIGHT):
        width = max(min_width, min(start.width + dx, image_width - start.x))

    if handle in (RectHandle.TOP_LEFT, RectHandle.TOP_RIGHT, RectHandle.TOP):
        y = max(0.0, min(start.y + dy, start.bottom - min_height))
        height = start.height - (y - start.y)
    elif handle in (RectHandle.BOTTOM_LEFT, RectHandle.BOTTOM_RIGHT, RectHandle.BOTTOM):
        height = max(min_height, min(start.height + dy, image_height - start.y))

    return Rectangle(x, y, width, height)


class ShapeEditor(ABC, Generic[ShapeT, OverlayT]):
    """
    Common pointer handling for the shape editors.

    At most one drag session exists at a time; a pointer-down while a session
    is active is ignored (single-pointer interaction model).
    """

    def __init__(self,
                 image_width: float,
                 image_height: float,
                 on_render: Callable[[OverlayT], None] | None = None):
        self.on_render = on_render
        self.session: DragSession[ShapeT] | None = None
        self.load(image_width, image_height)

    def load(self, image_width: float, image_height: float) -> None:
        """Start editing a new image, discarding any shape and session."""
        if image_width <= 0 or image_height <= 0:
            raise ValueError(f"Invalid image size: {image_width}x{image_height}")
        self.image_width = float(image_width)
        self.image_height = float(image_height)
        self.reset()

    def reset(self) -> None:
        """Restore the default shape for the current image and return to idle."""
        self.session = None
        self._set_default_shape()
        self._render()

    @property
    def state(self) -> EditorState:
        if self.session is None:
            return EditorState.IDLE
        return self._active_state(self.session)

    def handle_event(self, event: PointerEvent, display: DisplayRect) -> bool:
        """
        Feed one pointer event to the editor.

        Args:
            event: Normalized pointer event in screen coordinates
            display: Screen rectangle the image currently occupies

        Returns:
            True if the event changed the editor's state or shape
        """
        if event.kind is PointerKind.UP:
            return self._end()

        if display.is_empty:
            logger.debug("Ignoring %s event on an empty display", event.kind.value)
            return False

        mapper = CoordinateMapper(display, self.image_width, self.image_height)
        cursor = mapper.to_logical(event.x, event.y)

        if event.kind is PointerKind.DOWN:
            if self.session is not None or not self._accepts(event.target):
                return False
            assert event.target is not None
            self.session = DragSession(
                mode=event.target,
                anchor=cursor,
                start=self._shape(),
            )
            logger.debug("%s: %s started at (%.1f, %.1f)",
                         type(self).__name__, event.target.value, cursor.x, cursor.y)
            return True

        if self.session is None:
            return False
        self._drag(self.session, cursor)
        self._render()
        return True

    def target_at(self, x: float, y: float) -> Enum | None:
        """Return the tag of the topmost overlay element at a logical position."""
        for handle in reversed(self.overlay().handles):
            if handle.hit(x, y):
                return handle.tag
        return self._body_at(x, y)

    def _end(self) -> bool:
        if self.session is None:
            return False
        logger.debug("%s: %s finished", type(self).__name__, self.session.mode.value)
        self.session = None
        return True

    def _render(self) -> None:
        if self.on_render is not None:
            self.on_render(self.overlay())

    def _body_at(self, x: float, y: float) -> Enum | None:
        return None

    @abstractmethod
    def overlay(self) -> OverlayT:
        """Compute the full overlay for the current shape."""

    @abstractmethod
    def _set_default_shape(self) -> None: ...

    @abstractmethod
    def _shape(self) -> ShapeT: ...

    @abstractmethod
    def _accepts(self, target: Enum | None) -> bool: ...

    @abstractmethod
    def _active_state(self, session: DragSession[ShapeT]) -> EditorState: ...

    @abstractmethod
    def _drag(self, session: DragSession[ShapeT], cursor: Point) -> None: ...


class QuadrilateralEditor(ShapeEditor[Quadrilateral, QuadOverlay]):
    """
    Four draggable corners forming an arbitrary quadrilateral.

    A drag moves exactly one corner to the cursor, clamped to the image; the
    other three corners are never touched. No convexity is enforced.
    """

    def _set_default_shape(self) -> None:
        self.corners = Quadrilateral.from_image_size(self.image_width, self.image_height)

    def _shape(self) -> Quadrilateral:
        return self.corners

    def get_corners(self) -> Quadrilateral:
        return self.corners

    @property
    def active_corner(self) -> Corner | None:
        if self.session is None:
            return None
        assert isinstance(self.session.mode, Corner)
        return self.session.mode

    def overlay(self) -> QuadOverlay:
        handles = tuple(
            Handle(name, self.corners.corner(name).x, self.corners.corner(name).y,
                   CORNER_HANDLE_RADIUS)
            for name in Corner
        )
        return QuadOverlay(polygon=self.corners.points(), handles=handles)

    def _accepts(self, target: Enum | None) -> bool:
        return isinstance(target, Corner)

    def _active_state(self, session: DragSession[Quadrilateral]) -> EditorState:
        return EditorState.DRAGGING

    def _drag(self, session: DragSession[Quadrilateral], cursor: Point) -> None:
        assert isinstance(session.mode, Corner)
        self.corners = self.corners.with_corner(
            session.mode, cursor.clamped(self.image_width, self.image_height)
        )


class RectangleEditor(ShapeEditor[Rectangle, RectOverlay]):
    """
    A movable, resizable crop rectangle.

    Invariant after every update: width and height >= min_size and the
    rectangle lies inside the image.
    """

    def __init__(self,
                 image_width: float,
                 image_height: float,
                 on_render: Callable[[RectOverlay], None] | None = None,
                 min_size: float = MIN_CROP_SIZE,
                 margin: float = DEFAULT_CROP_MARGIN):
        self.min_size = min_size
        self.margin = margin
        super().__init__(image_width, image_height, on_render)

    def _set_default_shape(self) -> None:
        self.rectangle = Rectangle.centered(self.image_width, self.image_height, self.margin)

    def _shape(self) -> Rectangle:
        return self.rectangle

    def get_rectangle(self) -> Rectangle:
        return self.rectangle

    def overlay(self) -> RectOverlay:
        r = self.rectangle
        mid_x = r.x + r.width / 2
        mid_y = r.y + r.height / 2
        handles = (
            Handle(RectHandle.TOP_LEFT, r.x, r.y, RESIZE_HANDLE_RADIUS),
            Handle(RectHandle.TOP_RIGHT, r.right, r.y, RESIZE_HANDLE_RADIUS),
            Handle(RectHandle.BOTTOM_LEFT, r.x, r.bottom, RESIZE_HANDLE_RADIUS),
            Handle(RectHandle.BOTTOM_RIGHT, r.right, r.bottom, RESIZE_HANDLE_RADIUS),
            Handle(RectHandle.TOP, mid_x, r.y, EDGE_HANDLE_HALF_SIZE, "square"),
            Handle(RectHandle.BOTTOM, mid_x, r.bottom, EDGE_HANDLE_HALF_SIZE, "square"),
            Handle(RectHandle.LEFT, r.x, mid_y, EDGE_HANDLE_HALF_SIZE, "square"),
            Handle(RectHandle.RIGHT, r.right, mid_y, EDGE_HANDLE_HALF_SIZE, "square"),
        )
        return RectOverlay(rectangle=r, handles=handles)

    def _body_at(self, x: float, y: float) -> Enum | None:
        return RectHandle.BODY if self.rectangle.contains(x, y) else None

    def _accepts(self, target: Enum | None) -> bool:
        return isinstance(target, RectHandle)

    def _active_state(self, session: DragSession[Rectangle]) -> EditorState:
        return EditorState.MOVING if session.mode is RectHandle.BODY else EditorState.RESIZING

    def _drag(self, session: DragSession[Rectangle], cursor: Point) -> None:
        dx = cursor.x - session.anchor.x
        dy = cursor.y - session.anchor.y
        assert isinstance(session.mode, RectHandle)

        if session.mode is RectHandle.BODY:
            self.rectangle = move_rectangle(
                session.start, dx, dy, self.image_width, self.image_height
            )
        else:
            self.rectangle = resize_rectangle(
                session.start, session.mode, dx, dy,
                self.image_width, self.image_height, self.min_size,
            )
