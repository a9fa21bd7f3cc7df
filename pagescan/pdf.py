"""
Page assembly: place the final bitmap on a fixed-size PDF page.

The image is scaled to fit the page while keeping its aspect ratio and is
centred on it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

import cv2
import fitz  # PyMuPDF
from cv2.typing import MatLike

from .config import DEFAULT_JPEG_QUALITY

logger = logging.getLogger(__name__)

MM_TO_PT = 72.0 / 25.4


@dataclass(frozen=True)
class PageSize:
    """Physical page dimensions in millimetres (portrait)."""
    name: str
    width: float
    height: float


PAGE_SIZES: dict[str, PageSize] = {
    "a4": PageSize("a4", 210.0, 297.0),
    "letter": PageSize("letter", 215.9, 279.4),
}


@dataclass(frozen=True)
class Placement:
    """Image position and size on the page, in millimetres."""
    x: float
    y: float
    width: float
    height: float


def get_page_size(name: str) -> PageSize:
    try:
        return PAGE_SIZES[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown page size: {name}") from None


def fit_to_page(image_width: int, image_height: int, page: PageSize) -> Placement:
    """
    Scale an image to fit the page and centre it.

    scale = min(page_width / image_width, page_height / image_height)
    """
    if image_width <= 0 or image_height <= 0:
        raise ValueError(f"Invalid image size: {image_width}x{image_height}")

    ratio = min(page.width / image_width, page.height / image_height)
    scaled_width = image_width * ratio
    scaled_height = image_height * ratio
    return Placement(
        x=(page.width - scaled_width) / 2,
        y=(page.height - scaled_height) / 2,
        width=scaled_width,
        height=scaled_height,
    )


class PageAssembler(ABC):
    """Abstract base class for single-page document writers."""

    @abstractmethod
    def add_image(self, data: bytes, x: float, y: float, width: float, height: float) -> None:
        """
        Place encoded image bytes on the page.

        Args:
            data: JPEG or PNG bytes
            x, y: Top-left position in millimetres
            width, height: Placed size in millimetres
        """
        pass

    @abstractmethod
    def to_bytes(self) -> bytes:
        """Serialize the finished document."""
        pass

    def close(self) -> None:
        """Release the document; safe to call more than once."""


class PyMuPDFAssembler(PageAssembler):
    """Single portrait PDF page written with PyMuPDF."""

    def __init__(self, page: PageSize):
        self.page_size = page
        self.doc = fitz.open()
        self.page = self.doc.new_page(width=page.width * MM_TO_PT,
                                      height=page.height * MM_TO_PT)

    def add_image(self, data: bytes, x: float, y: float, width: float, height: float) -> None:
        rect = fitz.Rect(x * MM_TO_PT, y * MM_TO_PT,
                         (x + width) * MM_TO_PT, (y + height) * MM_TO_PT)
        self.page.insert_image(rect, stream=data)

    def to_bytes(self) -> bytes:
        return self.doc.tobytes()

    def close(self) -> None:
        if not self.doc.is_closed:
            self.doc.close()


def encode_jpeg(image: MatLike, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """Encode an image as JPEG bytes."""
    ok, buffer = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise ValueError("Could not encode image as JPEG")
    return buffer.tobytes()


def build_pdf(image: MatLike,
              page_size: str = "a4",
              quality: int = DEFAULT_JPEG_QUALITY,
              assembler: PageAssembler | None = None) -> bytes:
    """
    Build a one-page PDF containing the image, fitted and centred.

    Args:
        image: Final page image (BGR, BGRA or grayscale)
        page_size: "a4" or "letter"
        quality: JPEG quality (1-100)
        assembler: Page writer (default: PyMuPDFAssembler for the page size)

    Returns:
        PDF document bytes
    """
    page = get_page_size(page_size)
    height, width = image.shape[:2]
    placement = fit_to_page(width, height, page)

    if image.ndim == 3 and image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)  # JPEG has no alpha

    data = encode_jpeg(image, quality)
    if assembler is None:
        assembler = PyMuPDFAssembler(page)
    try:
        assembler.add_image(data,
                            placement.x, placement.y, placement.width, placement.height)
        logger.info("Placed %dx%d image on %s page at (%.1f, %.1f) mm, %.1fx%.1f mm",
                    width, height, page.name, placement.x, placement.y,
                    placement.width, placement.height)
        return assembler.to_bytes()
    finally:
        assembler.close()


def default_pdf_name(now: datetime | None = None) -> str:
    """File name like document_2024-01-31T12-30-00.pdf."""
    stamp = (now or datetime.now()).strftime("%Y-%m-%dT%H-%M-%S")
    return f"document_{stamp}.pdf"
