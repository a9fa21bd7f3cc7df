"""
Display-to-logical coordinate mapping.

The image is usually shown scaled (zoom, window layout, HiDPI), so pointer
positions arrive in display units and must be mapped back to logical pixels
of the source image before the editors can use them.
"""

import math
from dataclasses import dataclass

from .geometry import Point


@dataclass(frozen=True)
class DisplayRect:
    """Screen rectangle currently occupied by the display surface."""
    left: float
    top: float
    width: float
    height: float

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


class CoordinateMapper:
    """
    Maps screen positions on a display surface to logical image pixels.

    Build a new mapper for every interaction: the display rectangle can change
    between events. A zero-size display yields infinite scale factors rather
    than an exception; check `DisplayRect.is_empty` before using the result.
    """

    def __init__(self, display: DisplayRect, image_width: float, image_height: float):
        self.display = display
        self.scale_x = _ratio(image_width, display.width)
        self.scale_y = _ratio(image_height, display.height)

    @property
    def scale(self) -> tuple[float, float]:
        return self.scale_x, self.scale_y

    def to_logical(self, screen_x: float, screen_y: float) -> Point:
        return Point(
            (screen_x - self.display.left) * self.scale_x,
            (screen_y - self.display.top) * self.scale_y,
        )


def _ratio(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return math.copysign(math.inf, numerator) if numerator else math.nan
    return numerator / denominator
