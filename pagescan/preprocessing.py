import logging
import os

import cv2
import numpy as np
from numpy.typing import NDArray
from cv2.typing import MatLike

from .config import MAX_FILE_SIZE
from .errors import InputError, ProcessingError

logger = logging.getLogger(__name__)

# Perceptual luminance weights (ITU-R BT.601)
LUMA_R = 0.299
LUMA_G = 0.587
LUMA_B = 0.114

_JPEG_MAGIC = b"\xff\xd8\xff"
_PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def read_image_file(image_path: str, max_size: int = MAX_FILE_SIZE) -> bytes:
    """
    Read and validate an image file before it enters the pipeline.

    Only JPEG and PNG files up to `max_size` bytes are accepted.

    Args:
        image_path: Path to the image file
        max_size: Maximum accepted file size in bytes

    Returns:
        Raw file contents

    Raises:
        FileNotFoundError: If the image file doesn't exist
        InputError: If the file is too large or not a JPEG/PNG image
    """
    if not os.path.exists(image_path):
        raise FileNotFoundError(f"Image file not found: {image_path}")

    size = os.path.getsize(image_path)
    if size > max_size:
        size_mb = size / (1024 * 1024)
        limit_mb = max_size / (1024 * 1024)
        raise InputError(
            f"File is too large ({size_mb:.1f}MB). Please use an image under {limit_mb:.0f}MB."
        )

    with open(image_path, "rb") as f:
        data = f.read()

    if not is_supported_image(data):
        raise InputError(f"Please select a JPEG or PNG image: {image_path}")

    return data


def is_supported_image(data: bytes) -> bool:
    """Check the file signature for JPEG or PNG."""
    return data.startswith(_JPEG_MAGIC) or data.startswith(_PNG_MAGIC)


def decode_image(data: bytes) -> MatLike:
    """
    Decode encoded image bytes to a BGR (or BGRA) array.

    Camera orientation is NOT applied here; see orientation.normalize_orientation.

    Raises:
        InputError: If the bytes are not a decodable image
    """
    if not data:
        raise InputError("Empty image file")

    buffer: NDArray[np.uint8] = np.frombuffer(data, dtype=np.uint8)
    # IMREAD_UNCHANGED keeps alpha and ignores the EXIF orientation tag
    img = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)

    if img is None:
        raise InputError("Invalid image format or corrupted file")

    # Drop 16-bit depth and expand single-channel PNGs to the BGR layout
    if img.dtype != np.uint8:
        img = (img / 257).astype(np.uint8)
    if img.ndim == 2:
        img = cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)

    return img


def load_image(image_path: str, max_size: int = MAX_FILE_SIZE) -> MatLike:
    """
    Load an image from the specified path.

    Args:
        image_path: Path to the image file
        max_size: Maximum accepted file size in bytes

    Returns:
        numpy array containing the image data in BGR(A) format

    Raises:
        FileNotFoundError: If the image file doesn't exist
        InputError: If the file is rejected or isn't a valid image
    """
    return decode_image(read_image_file(image_path, max_size))


def _check_buffer(img: MatLike | None) -> NDArray[np.uint8]:
    """Validate a pixel buffer; raise ProcessingError if it can't be read."""
    if img is None:
        raise ProcessingError("No image to process")
    arr = np.asarray(img)
    if arr.dtype != np.uint8:
        raise ProcessingError(f"Unsupported pixel type: {arr.dtype}")
    if arr.size == 0:
        raise ProcessingError("Image has no pixels")
    if arr.ndim == 3 and arr.shape[2] in (3, 4):
        return arr
    if arr.ndim == 2:
        return arr
    raise ProcessingError(f"Unsupported image shape: {arr.shape}")


def grayscale(img: MatLike) -> MatLike:
    """
    Convert a color image to grayscale with the luminance formula
    0.299 R + 0.587 G + 0.114 B.

    The gray value is written back into all three color channels so the
    result keeps the input's layout; alpha is left untouched. A 2-D image is
    already gray and is returned as a copy.

    Args:
        img: BGR or BGRA image

    Returns:
        New image of the same shape with R = G = B

    Raises:
        ProcessingError: If the pixel buffer can't be read
    """
    arr = _check_buffer(img)
    if arr.ndim == 2:
        return arr.copy()

    b = arr[..., 0].astype(np.float64)
    g = arr[..., 1].astype(np.float64)
    r = arr[..., 2].astype(np.float64)
    # Round half to even, like storing into an 8-bit clamped buffer
    gray = np.clip(np.rint(LUMA_R * r + LUMA_G * g + LUMA_B * b), 0, 255).astype(np.uint8)

    result = arr.copy()
    result[..., 0] = gray
    result[..., 1] = gray
    result[..., 2] = gray
    return result


def gray_channel(img: MatLike) -> NDArray[np.uint8]:
    """Extract the single gray plane (R channel) of a grayscale image."""
    arr = _check_buffer(img)
    if arr.ndim == 2:
        return arr
    return arr[..., 2]


def build_integral_image(gray: NDArray[np.uint8]) -> NDArray[np.int64]:
    """
    Build a summed-area table.

    S[y, x] = sum of gray[y', x'] for y' <= y, x' <= x, computed row by row as
    the running row sum plus the entry above: S[y, x] = rowsum + S[y-1, x].

    Args:
        gray: 2-D grayscale plane

    Returns:
        int64 table of the same shape
    """
    row_sums = np.cumsum(gray, axis=1, dtype=np.int64)
    return np.cumsum(row_sums, axis=0, dtype=np.int64)


def region_sum(integral: NDArray[np.int64], x1: int, y1: int, x2: int, y2: int) -> int:
    """
    Sum of the inclusive region [x1..x2] x [y1..y2] in O(1).

    sum = D - B - C + A, with A = top-left, B = top-right, C = bottom-left and
    D = bottom-right corners of the table; corners outside the table count as 0.
    """
    a = int(integral[y1 - 1, x1 - 1]) if x1 > 0 and y1 > 0 else 0
    b = int(integral[y1 - 1, x2]) if y1 > 0 else 0
    c = int(integral[y2, x1 - 1]) if x1 > 0 else 0
    d = int(integral[y2, x2])
    return d - b - c + a


def binarize_adaptive(gray_img: MatLike,
                      block_size: int = 11,
                      c: int = 2) -> MatLike:
    """
    Apply mean adaptive thresholding to produce a pure black & white image.

    Each pixel is compared with the mean of the block_size x block_size window
    around it (clipped at the image border); it becomes white (255) when
    brighter than mean - c, black (0) otherwise. Window sums come from an
    integral image, so the cost is O(width * height) whatever the block size.

    Args:
        gray_img: Grayscale image (2-D, or BGR/BGRA with R = G = B)
        block_size: Size of pixel neighborhood (odd, >= 3; even values are bumped)
        c: Constant subtracted from the mean (may be negative)

    Returns:
        New image of the same shape; color channels are 0 or 255, alpha unchanged

    Raises:
        ValueError: If block_size is below 3
        ProcessingError: If the pixel buffer can't be read
    """
    if block_size % 2 == 0:
        block_size += 1  # Ensure odd block size
    if block_size < 3:
        raise ValueError(f"block_size must be at least 3, got {block_size}")

    gray = gray_channel(gray_img)
    height, width = gray.shape
    half = block_size // 2

    integral = build_integral_image(gray)
    # One row/column of zeros in front makes out-of-range corners read 0
    padded = np.zeros((height + 1, width + 1), dtype=np.int64)
    padded[1:, 1:] = integral

    xs = np.arange(width)
    ys = np.arange(height)
    x1 = np.maximum(xs - half, 0)
    x2 = np.minimum(xs + half, width - 1)
    y1 = np.maximum(ys - half, 0)
    y2 = np.minimum(ys + half, height - 1)

    d = padded[np.ix_(y2 + 1, x2 + 1)]
    b = padded[np.ix_(y1, x2 + 1)]
    c_ = padded[np.ix_(y2 + 1, x1)]
    a = padded[np.ix_(y1, x1)]
    sums = d - b - c_ + a
    counts = np.outer(y2 - y1 + 1, x2 - x1 + 1).astype(np.int64)

    # gray > sum / count - c, evaluated exactly in integers
    white = (gray.astype(np.int64) + c) * counts > sums
    levels = np.where(white, 255, 0).astype(np.uint8)

    result = np.array(gray_img, dtype=np.uint8, copy=True)
    if result.ndim == 2:
        result[...] = levels
    else:
        result[..., 0] = levels
        result[..., 1] = levels
        result[..., 2] = levels

    logger.debug("Binarized %dx%d image (block_size=%d, c=%d): %.1f%% white",
                 width, height, block_size, c, 100.0 * float(white.mean()))
    return result
