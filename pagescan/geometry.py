"""
Geometric primitives shared by the editors and the correction stages.

All coordinates are logical pixels of the source image, independent of the
scale at which the image is displayed.
"""

import math
from dataclasses import dataclass, replace
from enum import Enum


@dataclass(frozen=True)
class Point:
    """A point in logical pixel coordinates."""
    x: float
    y: float

    def distance_to(self, other: "Point") -> float:
        return math.hypot(other.x - self.x, other.y - self.y)

    def clamped(self, width: float, height: float) -> "Point":
        """Clamp both axes independently to [0, width] x [0, height]."""
        return Point(max(0.0, min(width, self.x)), max(0.0, min(height, self.y)))

    @property
    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)


class Corner(Enum):
    """Tags carried by the four quadrilateral corner handles."""
    TOP_LEFT = "topLeft"
    TOP_RIGHT = "topRight"
    BOTTOM_RIGHT = "bottomRight"
    BOTTOM_LEFT = "bottomLeft"


# Corner tag -> Quadrilateral field name
_CORNER_FIELDS: dict[Corner, str] = {
    Corner.TOP_LEFT: "top_left",
    Corner.TOP_RIGHT: "top_right",
    Corner.BOTTOM_RIGHT: "bottom_right",
    Corner.BOTTOM_LEFT: "bottom_left",
}


@dataclass(frozen=True)
class Quadrilateral:
    """
    Four named corners.

    No convexity or ordering is enforced: a user may drag the corners into a
    self-intersecting or degenerate shape.
    """
    top_left: Point
    top_right: Point
    bottom_right: Point
    bottom_left: Point

    @classmethod
    def from_image_size(cls, width: float, height: float) -> "Quadrilateral":
        """Quadrilateral covering the whole image (its four extreme corners)."""
        return cls(
            top_left=Point(0.0, 0.0),
            top_right=Point(float(width), 0.0),
            bottom_right=Point(float(width), float(height)),
            bottom_left=Point(0.0, float(height)),
        )

    def corner(self, name: Corner) -> Point:
        return getattr(self, _CORNER_FIELDS[name])

    def with_corner(self, name: Corner, point: Point) -> "Quadrilateral":
        """Return a copy with a single corner replaced."""
        return replace(self, **{_CORNER_FIELDS[name]: point})

    def points(self) -> tuple[Point, Point, Point, Point]:
        """Corners in top-left, top-right, bottom-right, bottom-left order."""
        return (self.top_left, self.top_right, self.bottom_right, self.bottom_left)

    @property
    def is_finite(self) -> bool:
        return all(p.is_finite for p in self.points())

    def clamped(self, width: float, height: float) -> "Quadrilateral":
        """Clamp every corner into the image, as the corner editor does."""
        return Quadrilateral(*(p.clamped(width, height) for p in self.points()))

    def bounding_box(self) -> tuple[float, float, float, float]:
        """Return (min_x, min_y, max_x, max_y) over the four corners."""
        xs = [p.x for p in self.points()]
        ys = [p.y for p in self.points()]
        return min(xs), min(ys), max(xs), max(ys)

    def side_lengths(self) -> tuple[float, float, float, float]:
        """Return (top, right, bottom, left) edge lengths."""
        return (
            self.top_left.distance_to(self.top_right),
            self.top_right.distance_to(self.bottom_right),
            self.bottom_left.distance_to(self.bottom_right),
            self.top_left.distance_to(self.bottom_left),
        )


class RectHandle(Enum):
    """Tags carried by the crop rectangle's handles and body."""
    TOP_LEFT = "tl"
    TOP_RIGHT = "tr"
    BOTTOM_LEFT = "bl"
    BOTTOM_RIGHT = "br"
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"
    BODY = "body"

    @property
    def is_resize(self) -> bool:
        return self is not RectHandle.BODY


@dataclass(frozen=True)
class Rectangle:
    """Axis-aligned region in logical pixel coordinates."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @classmethod
    def centered(cls, image_width: float, image_height: float,
                 margin: float = 0.1) -> "Rectangle":
        """
        Default crop rectangle: centred, leaving `margin` of each dimension
        free on every side (80% of the image for the default 0.1).
        """
        return cls(
            x=image_width * margin,
            y=image_height * margin,
            width=image_width * (1 - 2 * margin),
            height=image_height * (1 - 2 * margin),
        )

    def contains(self, x: float, y: float) -> bool:
        return self.x <= x <= self.right and self.y <= y <= self.bottom
