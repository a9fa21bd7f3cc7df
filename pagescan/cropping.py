"""Axis-aligned crops driven by the editors' shapes."""

import math

import numpy as np
from cv2.typing import MatLike

from .errors import GeometryDegenerate
from .geometry import Quadrilateral, Rectangle


def _pixel_span(start: float, end: float, limit: int) -> tuple[int, int]:
    """Whole-pixel range covering [start, end], clipped to [0, limit], at least 1 px."""
    lo = max(0, min(limit - 1, math.floor(start)))
    hi = max(lo + 1, min(limit, math.ceil(end)))
    return lo, hi


def crop_to_bounding_box(image: MatLike, corners: Quadrilateral) -> MatLike:
    """
    Crop to the axis-aligned bounding box of the four corners.

    Works for any corner arrangement, including collapsed and
    self-intersecting quadrilaterals; the result is never smaller than 1x1.

    Args:
        image: Source image
        corners: Quadrilateral in logical pixel coordinates

    Returns:
        New image containing the bounding box region

    Raises:
        GeometryDegenerate: If a corner is not a finite position
    """
    if not corners.is_finite:
        raise GeometryDegenerate(f"Corners are not finite: {corners}")

    height, width = image.shape[:2]
    min_x, min_y, max_x, max_y = corners.bounding_box()
    x0, x1 = _pixel_span(min_x, max_x, width)
    y0, y1 = _pixel_span(min_y, max_y, height)
    return np.array(image[y0:y1, x0:x1], copy=True)


def crop_rectangle(image: MatLike, rect: Rectangle) -> MatLike:
    """
    Crop a rectangle, rounded to whole pixels.

    Args:
        image: Source image
        rect: Crop region in logical pixel coordinates

    Returns:
        New image containing the region
    """
    height, width = image.shape[:2]
    x0, x1 = _pixel_span(round(rect.x), round(rect.right), width)
    y0, y1 = _pixel_span(round(rect.y), round(rect.bottom), height)
    return np.array(image[y0:y1, x0:x1], copy=True)
