"""
Unit tests for page placement and PDF assembly.
"""

from datetime import datetime

import fitz
import numpy as np
import pytest

import pagescan.pdf
from pagescan.pdf import (
    MM_TO_PT,
    PAGE_SIZES,
    PageAssembler,
    build_pdf,
    default_pdf_name,
    encode_jpeg,
    fit_to_page,
    get_page_size,
)


class RecordingAssembler(PageAssembler):
    """Captures the placement instead of writing a document."""

    def __init__(self):
        self.placed: list[tuple[bytes, float, float, float, float]] = []
        self.closed = False

    def add_image(self, data, x, y, width, height):
        self.placed.append((data, x, y, width, height))

    def to_bytes(self):
        return b"%PDF-recorded"

    def close(self):
        self.closed = True


# ============================================================================
# Placement Tests
# ============================================================================

def test_fit_wide_image_on_a4():
    """A 1000x500 image fills the A4 width and is centred vertically."""
    placement = fit_to_page(1000, 500, PAGE_SIZES["a4"])
    assert placement.width == pytest.approx(210)
    assert placement.height == pytest.approx(105)
    assert placement.x == pytest.approx(0)
    assert placement.y == pytest.approx(96)


def test_fit_tall_image_on_letter():
    placement = fit_to_page(500, 2000, PAGE_SIZES["letter"])
    assert placement.height == pytest.approx(279.4)
    assert placement.width == pytest.approx(69.85)
    assert placement.x == pytest.approx((215.9 - 69.85) / 2)
    assert placement.y == pytest.approx(0)


def test_fit_keeps_aspect_ratio():
    placement = fit_to_page(1234, 987, PAGE_SIZES["a4"])
    assert placement.width / placement.height == pytest.approx(1234 / 987)
    assert placement.width <= 210 + 1e-9
    assert placement.height <= 297 + 1e-9


def test_fit_rejects_empty_image():
    with pytest.raises(ValueError):
        fit_to_page(0, 100, PAGE_SIZES["a4"])


def test_get_page_size():
    assert get_page_size("A4") is PAGE_SIZES["a4"]
    with pytest.raises(ValueError):
        get_page_size("tabloid")


# ============================================================================
# PDF Assembly Tests
# ============================================================================

def test_build_pdf_uses_assembler():
    image = np.full((500, 1000), 255, dtype=np.uint8)
    assembler = RecordingAssembler()

    assert build_pdf(image, "a4", assembler=assembler) == b"%PDF-recorded"

    data, x, y, width, height = assembler.placed[0]
    assert data.startswith(b"\xff\xd8\xff")
    assert (x, y, width, height) == pytest.approx((0, 96, 210, 105))
    assert assembler.closed


def test_build_pdf_a4_document():
    """The PDF reopens as a single A4 page containing one image."""
    image = np.zeros((400, 300, 3), dtype=np.uint8)
    image[100:300, 50:250] = 255

    pdf_bytes = build_pdf(image, "a4")
    assert pdf_bytes.startswith(b"%PDF")

    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        assert doc.page_count == 1
        page = doc[0]
        assert page.rect.width == pytest.approx(210 * MM_TO_PT, abs=0.01)
        assert page.rect.height == pytest.approx(297 * MM_TO_PT, abs=0.01)
        assert len(page.get_images()) == 1


def test_build_pdf_letter_document():
    image = np.full((100, 100, 3), 255, dtype=np.uint8)
    with fitz.open(stream=build_pdf(image, "letter"), filetype="pdf") as doc:
        assert doc[0].rect.width == pytest.approx(612, abs=0.01)
        assert doc[0].rect.height == pytest.approx(792, abs=0.01)


def test_build_pdf_drops_alpha():
    image = np.full((20, 20, 4), 255, dtype=np.uint8)
    assembler = RecordingAssembler()
    build_pdf(image, assembler=assembler)
    assert len(assembler.placed) == 1


def test_build_pdf_unknown_page_size():
    with pytest.raises(ValueError):
        build_pdf(np.zeros((10, 10), dtype=np.uint8), "a3")


def test_build_pdf_encode_failure_opens_no_document(monkeypatch: pytest.MonkeyPatch):
    opened = []

    def fail_encode(image, quality=95):
        raise ValueError("Could not encode image as JPEG")

    class TrackingAssembler(RecordingAssembler):
        def __init__(self, page):
            super().__init__()
            opened.append(page)

    monkeypatch.setattr(pagescan.pdf, "encode_jpeg", fail_encode)
    monkeypatch.setattr(pagescan.pdf, "PyMuPDFAssembler", TrackingAssembler)

    with pytest.raises(ValueError, match="encode"):
        build_pdf(np.zeros((10, 10), dtype=np.uint8))
    assert opened == []


def test_build_pdf_closes_assembler_on_failure():
    class BrokenAssembler(RecordingAssembler):
        def add_image(self, data, x, y, width, height):
            raise RuntimeError("page full")

    assembler = BrokenAssembler()
    with pytest.raises(RuntimeError):
        build_pdf(np.zeros((10, 10), dtype=np.uint8), assembler=assembler)
    assert assembler.closed


def test_encode_jpeg():
    data = encode_jpeg(np.zeros((8, 8, 3), dtype=np.uint8), quality=80)
    assert data.startswith(b"\xff\xd8\xff")


def test_default_pdf_name():
    name = default_pdf_name(datetime(2024, 1, 31, 12, 30, 5))
    assert name == "document_2024-01-31T12-30-05.pdf"
