"""
Perspective correction.

The corner quadrilateral picked by the user is mapped onto an upright
rectangle by a warp provider. If the provider cannot compute a transform
(collapsed or otherwise degenerate corners) the bounding-box crop of the same
corners is used instead.
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import Sequence

import cv2
import numpy as np
from cv2.typing import MatLike
from numpy.typing import NDArray

from .cropping import crop_to_bounding_box
from .errors import GeometryDegenerate
from .geometry import Point, Quadrilateral

logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def estimate_output_size(corners: Quadrilateral) -> tuple[int, int]:
    """
    Output size for a perspective warp.

    Width is the average of the top and bottom edge lengths, height the
    average of the left and right edge lengths, both rounded.

    Returns:
        (width, height) in pixels

    Raises:
        GeometryDegenerate: If a corner is not a finite position
    """
    if not corners.is_finite:
        raise GeometryDegenerate(f"Corners are not finite: {corners}")
    top, right, bottom, left = corners.side_lengths()
    return _round_half_up((top + bottom) / 2), _round_half_up((left + right) / 2)


def destination_points(width: int, height: int) -> tuple[Point, Point, Point, Point]:
    """Corners of the upright output rectangle (pixel centres)."""
    return (
        Point(0.0, 0.0),
        Point(float(width - 1), 0.0),
        Point(float(width - 1), float(height - 1)),
        Point(0.0, float(height - 1)),
    )


class WarpProvider(ABC):
    """Abstract base class for perspective warp implementations."""

    @abstractmethod
    def warp(self,
             image: MatLike,
             src: Sequence[Point],
             dst: Sequence[Point],
             size: tuple[int, int]) -> MatLike:
        """
        Warp the quadrilateral `src` of `image` onto `dst`.

        Args:
            image: Source image
            src: Four source corners (TL, TR, BR, BL)
            dst: Four destination corners (TL, TR, BR, BL)
            size: Output (width, height)

        Returns:
            Warped image of the requested size

        Raises:
            GeometryDegenerate: If no transform can be computed
        """
        pass


class OpenCVWarpProvider(WarpProvider):
    """Homography warp using OpenCV."""

    def __init__(self,
                 interpolation: int = cv2.INTER_LINEAR,
                 border_value: int = 255,
                 min_determinant: float = 1e-9):
        """
        Initialize the OpenCV warp provider.

        Args:
            interpolation: cv2 interpolation flag for resampling
            border_value: Fill value for pixels mapped from outside the image
            min_determinant: Homographies with |det| below this are rejected
        """
        self.interpolation = interpolation
        self.border_value = border_value
        self.min_determinant = min_determinant

    def warp(self,
             image: MatLike,
             src: Sequence[Point],
             dst: Sequence[Point],
             size: tuple[int, int]) -> MatLike:
        width, height = size
        if width < 1 or height < 1:
            raise GeometryDegenerate(f"Output size {width}x{height} is empty")

        src_pts = _as_array(src)
        dst_pts = _as_array(dst)

        try:
            matrix: NDArray[np.float64] = cv2.getPerspectiveTransform(src_pts, dst_pts)
        except cv2.error as e:
            raise GeometryDegenerate(f"Could not compute homography: {e}") from e

        if not np.all(np.isfinite(matrix)) or abs(np.linalg.det(matrix)) < self.min_determinant:
            raise GeometryDegenerate("Homography is singular")

        border = (self.border_value,) * 4
        return cv2.warpPerspective(
            image, matrix, (width, height),
            flags=self.interpolation,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=border,
        )


def _as_array(points: Sequence[Point]) -> NDArray[np.float32]:
    if len(points) != 4:
        raise GeometryDegenerate(f"Expected 4 points, got {len(points)}")
    return np.array([[p.x, p.y] for p in points], dtype=np.float32)


def correct_perspective(image: MatLike,
                        corners: Quadrilateral,
                        provider: WarpProvider | None = None) -> tuple[MatLike, bool]:
    """
    Straighten the document outlined by `corners`.

    Self-intersecting corner arrangements are passed to the provider as-is;
    whatever it produces is used, and its failure path triggers the fallback.

    Args:
        image: Source image
        corners: Document corners in logical pixel coordinates
        provider: Warp implementation (default: OpenCVWarpProvider)

    Returns:
        Tuple of (image, warped) where warped is False when the bounding-box
        crop fallback was used

    Raises:
        GeometryDegenerate: If the corners are not finite, so neither the warp
            nor the fallback crop can be computed
    """
    if provider is None:
        provider = OpenCVWarpProvider()

    try:
        size = estimate_output_size(corners)
        dst = destination_points(*size)
        return provider.warp(image, corners.points(), dst, size), True
    except GeometryDegenerate as e:
        logger.warning("Perspective transform failed, using bounding-box crop: %s", e)
        return crop_to_bounding_box(image, corners), False
