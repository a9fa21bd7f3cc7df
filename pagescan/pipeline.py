"""
Scanning pipeline state.

`PipelineContext` holds the output of every stage of one scanning session:

    decoded image -> orientation -> corner correction -> crop -> grayscale
    -> adaptive threshold -> page

Each stage reads the previous stage's output and stores a new read-only
buffer; re-running a stage discards everything downstream of it, so the
context never mixes results computed from different inputs.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

import numpy as np
from cv2.typing import MatLike

from .config import ScanConfig
from .cropping import crop_rectangle, crop_to_bounding_box
from .editors import QuadOverlay, QuadrilateralEditor, RectOverlay, RectangleEditor
from .errors import ProcessingError
from .geometry import Quadrilateral, Rectangle
from .orientation import normalize_code, normalize_orientation, read_orientation
from .pdf import build_pdf
from .preprocessing import binarize_adaptive, decode_image, grayscale, read_image_file
from .warp import WarpProvider, correct_perspective

logger = logging.getLogger(__name__)

# Stage outputs in pipeline order
_STAGES = ("source", "crop_target", "cropped", "gray", "binary")


def _freeze(image: MatLike) -> MatLike:
    """Mark a buffer read-only once it is owned by the context."""
    arr = np.asarray(image)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class CornerPreview:
    """Both candidate results of the corner step."""
    corners: Quadrilateral
    cropped: MatLike
    corrected: MatLike
    warped: bool  # False when `corrected` is the bounding-box fallback


@dataclass
class PipelineContext:
    """Single-owner state of one scanning session."""
    config: ScanConfig = field(default_factory=ScanConfig)
    warp_provider: WarpProvider | None = None
    orientation: int = 1
    source: MatLike | None = None
    crop_target: MatLike | None = None
    cropped: MatLike | None = None
    gray: MatLike | None = None
    binary: MatLike | None = None

    @classmethod
    def from_file(cls, image_path: str, config: ScanConfig | None = None,
                  warp_provider: WarpProvider | None = None) -> "PipelineContext":
        """
        Start a session from an image file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            InputError: If the file is rejected (type, size, corrupt)
        """
        config = config or ScanConfig()
        data = read_image_file(image_path, config.max_file_size)
        return cls.from_bytes(data, config, warp_provider)

    @classmethod
    def from_bytes(cls, data: bytes, config: ScanConfig | None = None,
                   warp_provider: WarpProvider | None = None) -> "PipelineContext":
        """Start a session from encoded image bytes, applying EXIF orientation."""
        ctx = cls(config=config or ScanConfig(), warp_provider=warp_provider)
        ctx.load(decode_image(data), read_orientation(data))
        return ctx

    def load(self, image: MatLike, orientation: int | None = None) -> MatLike:
        """Replace the session's image, normalizing its orientation."""
        self.orientation = normalize_code(orientation)
        upright = normalize_orientation(image, orientation)
        self._set("source", upright)
        height, width = upright.shape[:2]
        logger.info("Loaded %dx%d image (orientation %d)", width, height, self.orientation)
        return self.source

    # ------------------------------------------------------------------
    # Corner step
    # ------------------------------------------------------------------

    def corner_editor(self,
                      on_render: Callable[[QuadOverlay], None] | None = None) -> QuadrilateralEditor:
        """Create a corner editor for the current source image."""
        source = self._require("source")
        height, width = source.shape[:2]
        return QuadrilateralEditor(width, height, on_render)

    def preview_corners(self, corners: Quadrilateral) -> CornerPreview:
        """
        Compute both the bounding-box crop and the perspective-corrected
        image for a set of corners. Nothing is stored until one is chosen.
        """
        source = self._require("source")
        started = time.perf_counter()
        cropped = crop_to_bounding_box(source, corners)
        corrected, warped = correct_perspective(source, corners, self.warp_provider)
        logger.debug("Corner preview computed in %.3fs", time.perf_counter() - started)
        return CornerPreview(corners, cropped, corrected, warped)

    def use_corner_result(self, preview: CornerPreview, corrected: bool = True) -> MatLike:
        """Make the chosen corner result the input of the crop step."""
        return self._set("crop_target", preview.corrected if corrected else preview.cropped)

    def skip_corners(self) -> MatLike:
        """Use the upright source image unchanged as the crop step's input."""
        return self._set("crop_target", self._require("source"))

    # ------------------------------------------------------------------
    # Crop step
    # ------------------------------------------------------------------

    def crop_editor(self,
                    on_render: Callable[[RectOverlay], None] | None = None) -> RectangleEditor:
        """Create a crop rectangle editor for the crop step's input."""
        target = self._require("crop_target")
        height, width = target.shape[:2]
        return RectangleEditor(width, height, on_render,
                               min_size=self.config.min_crop_size,
                               margin=self.config.crop_margin)

    def confirm_crop(self, rect: Rectangle) -> MatLike | None:
        """Crop the crop step's input and convert the result to grayscale."""
        cropped = crop_rectangle(self._require("crop_target"), rect)
        self._set("cropped", cropped)
        return self._to_grayscale()

    def skip_crop(self) -> MatLike | None:
        """Use the whole crop step input and convert it to grayscale."""
        self._set("cropped", self._require("crop_target"))
        return self._to_grayscale()

    # ------------------------------------------------------------------
    # Grayscale / threshold / page
    # ------------------------------------------------------------------

    def _to_grayscale(self) -> MatLike | None:
        try:
            gray = grayscale(self._require("cropped"))
        except ProcessingError as e:
            logger.error("Error converting to grayscale: %s", e)
            return None
        return self._set("gray", gray)

    def threshold(self, block_size: int | None = None, c: int | None = None) -> MatLike | None:
        """
        Apply adaptive thresholding to the grayscale image.

        May be called again with different parameters; each call replaces the
        previous binary result. On failure the previous result is kept and
        None is returned.
        """
        block_size = self.config.block_size if block_size is None else block_size
        c = self.config.constant_c if c is None else c

        started = time.perf_counter()
        try:
            binary = binarize_adaptive(self._require("gray"), block_size, c)
        except ProcessingError as e:
            logger.error("Error applying threshold: %s", e)
            return None
        logger.debug("Threshold computed in %.3fs", time.perf_counter() - started)
        return self._set("binary", binary)

    def to_pdf(self, page_size: str | None = None) -> bytes:
        """Assemble the binary image onto a PDF page."""
        return build_pdf(self._require("binary"),
                         page_size or self.config.page_size,
                         self.config.jpeg_quality)

    # ------------------------------------------------------------------

    def _require(self, stage: str) -> MatLike:
        image = getattr(self, stage)
        if image is None:
            raise RuntimeError(f"Pipeline stage '{stage}' has not been produced yet")
        return image

    def _set(self, stage: str, image: MatLike) -> MatLike:
        """Store a stage output and drop every result downstream of it."""
        frozen = _freeze(image)
        setattr(self, stage, frozen)
        for later in _STAGES[_STAGES.index(stage) + 1:]:
            setattr(self, later, None)
        return frozen
