"""
Camera orientation handling.

Photos carry an EXIF orientation code (1-8) describing how the sensor image
must be rotated/flipped to appear upright. This module provides:

- read_orientation: extract the code from the raw file bytes
- orientation_plan: the canvas size and ordered drawing operations a
  rendering surface must apply before painting the raw image
- normalize_orientation: the same correction applied directly to pixels
"""

import io
import logging
from dataclasses import dataclass
from typing import Union

import cv2
import numpy as np
from cv2.typing import MatLike
from numpy.typing import NDArray
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

EXIF_ORIENTATION_TAG = 0x0112
VALID_ORIENTATIONS = range(1, 9)

# Exact (cos, sin) for quarter turns, keyed by degrees modulo 360
_QUARTER_TURNS: dict[int, tuple[int, int]] = {
    0: (1, 0),
    90: (0, 1),
    180: (-1, 0),
    270: (0, -1),
}


@dataclass(frozen=True)
class Translate:
    dx: float
    dy: float

    def matrix(self) -> NDArray[np.float64]:
        return np.array([[1, 0, self.dx], [0, 1, self.dy], [0, 0, 1]], dtype=np.float64)


@dataclass(frozen=True)
class Rotate:
    """Rotation by a multiple of 90 degrees (positive = clockwise on screen)."""
    degrees: int

    def matrix(self) -> NDArray[np.float64]:
        try:
            cos, sin = _QUARTER_TURNS[self.degrees % 360]
        except KeyError:
            raise ValueError(f"Only quarter turns are supported, got {self.degrees}") from None
        return np.array([[cos, -sin, 0], [sin, cos, 0], [0, 0, 1]], dtype=np.float64)


@dataclass(frozen=True)
class Scale:
    """Axis scaling; -1 on an axis is a flip."""
    sx: float
    sy: float

    def matrix(self) -> NDArray[np.float64]:
        return np.array([[self.sx, 0, 0], [0, self.sy, 0], [0, 0, 1]], dtype=np.float64)


Operation = Union[Translate, Rotate, Scale]


@dataclass(frozen=True)
class OrientationPlan:
    """
    How to draw a raw image so it appears upright.

    Operations are applied to the drawing context in order (each one
    post-multiplies the current transform, as on a 2D canvas), then the raw
    image is drawn at the origin.
    """
    code: int
    canvas_width: int
    canvas_height: int
    operations: tuple[Operation, ...]

    @property
    def swaps_dimensions(self) -> bool:
        return self.code >= 5

    @property
    def matrix(self) -> NDArray[np.float64]:
        """Composed 3x3 affine transform from raw image to canvas coordinates."""
        result = np.eye(3, dtype=np.float64)
        for op in self.operations:
            result = result @ op.matrix()
        return result

    def map_point(self, x: float, y: float) -> tuple[float, float]:
        mapped = self.matrix @ np.array([x, y, 1.0])
        return float(mapped[0]), float(mapped[1])


def normalize_code(code: int | None) -> int:
    """Unknown or missing orientation codes mean "no transform"."""
    if code is None or code not in VALID_ORIENTATIONS:
        return 1
    return int(code)


def orientation_plan(code: int | None, width: int, height: int) -> OrientationPlan:
    """
    Build the drawing plan for a raw image of the given size.

    Args:
        code: EXIF orientation code (1-8); anything else is treated as 1
        width, height: Raw (decoded) image size

    Returns:
        OrientationPlan with canvas size (swapped for codes 5-8) and operations
    """
    code = normalize_code(code)
    if code >= 5:
        cw, ch = height, width
    else:
        cw, ch = width, height

    operations: tuple[Operation, ...]
    if code == 2:
        operations = (Translate(cw, 0), Scale(-1, 1))
    elif code == 3:
        operations = (Translate(cw, ch), Rotate(180))
    elif code == 4:
        operations = (Translate(0, ch), Scale(1, -1))
    elif code == 5:
        # Transpose: the rotation and flip already land inside the canvas
        operations = (Rotate(-90), Scale(-1, 1))
    elif code == 6:
        operations = (Translate(cw, 0), Rotate(90))
    elif code == 7:
        operations = (Translate(cw, ch), Rotate(90), Scale(-1, 1))
    elif code == 8:
        operations = (Translate(0, ch), Rotate(-90))
    else:
        operations = ()

    return OrientationPlan(code, cw, ch, operations)


def normalize_orientation(image: MatLike, code: int | None) -> MatLike:
    """
    Apply an orientation correction to pixels.

    Produces exactly the image a canvas following `orientation_plan` would
    paint. The input is never modified.

    Args:
        image: Raw decoded image (any channel count)
        code: EXIF orientation code

    Returns:
        New upright image
    """
    code = normalize_code(code)

    if code == 2:
        return cv2.flip(image, 1)
    elif code == 3:
        return cv2.rotate(image, cv2.ROTATE_180)
    elif code == 4:
        return cv2.flip(image, 0)
    elif code == 5:
        return cv2.rotate(cv2.flip(image, 1), cv2.ROTATE_90_COUNTERCLOCKWISE)
    elif code == 6:
        return cv2.rotate(image, cv2.ROTATE_90_CLOCKWISE)
    elif code == 7:
        return cv2.rotate(cv2.flip(image, 1), cv2.ROTATE_90_CLOCKWISE)
    elif code == 8:
        return cv2.rotate(image, cv2.ROTATE_90_COUNTERCLOCKWISE)
    return image.copy()


def read_orientation(data: bytes) -> int | None:
    """
    Extract the EXIF orientation code from encoded image bytes.

    Args:
        data: Raw file contents (JPEG, PNG, ...)

    Returns:
        Orientation code 1-8, or None if the file has no usable tag
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            value = img.getexif().get(EXIF_ORIENTATION_TAG)
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        logger.warning("Could not read EXIF data: %s", e)
        return None

    if isinstance(value, int) and value in VALID_ORIENTATIONS:
        return value
    return None
