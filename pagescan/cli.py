"""
Command-line document scanner.

Turns a photo of a document into a black-and-white page:
- Applies the camera's EXIF orientation
- Corrects perspective from four corners (or crops to their bounding box)
- Crops to a rectangle
- Converts to grayscale and applies adaptive thresholding
- Writes a PDF page (A4 or Letter) or an image file

Corners and crop can be given on the command line or picked interactively
in an OpenCV window.
"""

import math
import sys
import logging
from pathlib import Path
import argparse

import cv2

from .config import ScanConfig
from .editors import constrain_rectangle
from .errors import GeometryDegenerate, InputError
from .geometry import Point, Quadrilateral, Rectangle
from .pdf import PAGE_SIZES, default_pdf_name
from .pipeline import PipelineContext

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff")


def print_header() -> None:
    """Print CLI header."""
    print("\n" + "=" * 60)
    print("📄 Document Scanner")
    print("=" * 60 + "\n")


def print_separator() -> None:
    """Print section separator."""
    print("\n" + "-" * 60 + "\n")


def parse_corners(text: str) -> Quadrilateral:
    """
    Parse "x,y;x,y;x,y;x,y" (top-left, top-right, bottom-right, bottom-left).

    Raises:
        argparse.ArgumentTypeError: If the text is malformed or not finite
    """
    parts = [p for p in text.replace(" ", ";").split(";") if p]
    if len(parts) != 4:
        raise argparse.ArgumentTypeError("expected 4 corners as x,y;x,y;x,y;x,y")
    try:
        points = [Point(*(float(v) for v in part.split(","))) for part in parts]
    except (TypeError, ValueError):
        raise argparse.ArgumentTypeError(f"invalid corner list: {text}") from None
    corners = Quadrilateral(*points)
    if not corners.is_finite:
        raise argparse.ArgumentTypeError(f"corners must be finite numbers: {text}")
    return corners


def parse_rectangle(text: str) -> Rectangle:
    """
    Parse "x,y,width,height".

    Raises:
        argparse.ArgumentTypeError: If the text is malformed or not finite
    """
    try:
        values = [float(v) for v in text.split(",")]
        x, y, width, height = values
    except ValueError:
        raise argparse.ArgumentTypeError("expected crop as x,y,width,height") from None
    if not all(math.isfinite(v) for v in values):
        raise argparse.ArgumentTypeError(f"crop must be finite numbers: {text}")
    if width <= 0 or height <= 0:
        raise argparse.ArgumentTypeError("crop width and height must be positive")
    return Rectangle(x, y, width, height)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Document Scanner - turn a document photo into a clean black & white page"
    )
    parser.add_argument("source", help="JPEG or PNG photo of the document")
    parser.add_argument(
        "-o", "--output",
        help="Output file (.pdf, .png or .jpg). Default: document_<timestamp>.pdf"
    )
    parser.add_argument(
        "--corners",
        type=parse_corners,
        help="Document corners as x,y;x,y;x,y;x,y (TL, TR, BR, BL) in image pixels"
    )
    parser.add_argument(
        "--bbox",
        action="store_true",
        help="Crop to the corners' bounding box instead of correcting perspective"
    )
    parser.add_argument(
        "--crop",
        type=parse_rectangle,
        help="Rectangular crop as x,y,width,height (after corner correction)"
    )
    parser.add_argument(
        "-i", "--interactive",
        action="store_true",
        help="Pick corners, crop and threshold in windows (corners and crop unless given)"
    )
    parser.add_argument(
        "--block-size",
        type=int,
        help="Adaptive threshold neighborhood size (odd, default: 11)"
    )
    parser.add_argument(
        "-C", "--constant-c",
        type=int,
        help="Constant subtracted from the local mean (default: 2)"
    )
    parser.add_argument(
        "--page-size",
        choices=sorted(PAGE_SIZES),
        help="PDF page size (default: a4)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show processing details"
    )
    return parser


def run_corner_step(ctx: PipelineContext, args: argparse.Namespace) -> bool:
    """Apply corner correction from args, interactively, or skip it."""
    assert ctx.source is not None
    height, width = ctx.source.shape[:2]

    corners: Quadrilateral | None = args.corners
    if corners is not None:
        clamped = corners.clamped(width, height)
        if clamped != corners:
            print("⚠️  Corners clamped to the image")
        corners = clamped
    elif args.interactive:
        from .interactive import edit_corners
        corners = edit_corners(ctx.source, ctx.config.display_max_dimension)

    if corners is None:
        print("⏭️  Skipping corner correction")
        ctx.skip_corners()
        return True

    try:
        preview = ctx.preview_corners(corners)
    except GeometryDegenerate as e:
        print(f"❌ {e}")
        return False

    if args.bbox:
        print("✂️  Cropping to corner bounding box")
        ctx.use_corner_result(preview, corrected=False)
        return True

    if not preview.warped:
        print("⚠️  Perspective transform failed, using cropped version")

    if args.interactive:
        from .interactive import CornerChoice, choose_corner_result
        choice = choose_corner_result(preview, ctx.config.display_max_dimension)
        if choice is CornerChoice.CANCEL:
            print("⏭️  Skipping corner correction")
            ctx.skip_corners()
            return True
        if choice is CornerChoice.CROPPED:
            print("✂️  Using cropped version")
            ctx.use_corner_result(preview, corrected=False)
            return True

    if preview.warped:
        print("📐 Perspective corrected")
    ctx.use_corner_result(preview, corrected=True)
    return True


def run_crop_step(ctx: PipelineContext, args: argparse.Namespace, reedit: bool = False) -> bool:
    """
    Apply the rectangular crop from args, interactively, or skip it.

    With `reedit` the crop editor is shown even when --crop was given.
    """
    assert ctx.crop_target is not None
    height, width = ctx.crop_target.shape[:2]

    rect: Rectangle | None = None if reedit else args.crop
    if rect is not None:
        constrained = constrain_rectangle(rect, width, height, ctx.config.min_crop_size)
        if constrained != rect:
            print("⚠️  Crop adjusted to fit the image")
        rect = constrained
    elif args.interactive:
        from .interactive import edit_rectangle
        rect = edit_rectangle(ctx.crop_target, ctx.config.display_max_dimension,
                              ctx.config.min_crop_size, ctx.config.crop_margin)

    if rect is None:
        gray = ctx.skip_crop()
    else:
        print(f"✂️  Cropping to {rect.width:.0f}x{rect.height:.0f} at ({rect.x:.0f}, {rect.y:.0f})")
        gray = ctx.confirm_crop(rect)

    if gray is None:
        print("❌ Error converting to grayscale")
        return False
    return True


def run_threshold_step(ctx: PipelineContext, args: argparse.Namespace) -> None:
    """
    Threshold the page; in interactive mode let the user tune it, possibly
    going back to the crop step first. Exits on failure or cancel.
    """
    config = ctx.config
    block_size, c = config.block_size, config.constant_c
    reedit = False
    while True:
        if not run_crop_step(ctx, args, reedit):
            sys.exit(1)

        print(f"🔲 Thresholding (block size {block_size}, C {c})")
        try:
            binary = ctx.threshold(block_size, c)
        except ValueError as e:
            print(f"❌ {e}")
            sys.exit(1)
        if binary is None:
            print("❌ Error applying threshold")
            sys.exit(1)

        if not args.interactive:
            return

        from .interactive import TuneResult, tune_threshold
        result, block_size, c = tune_threshold(ctx, config.display_max_dimension,
                                                block_size, c)
        if result is TuneResult.ACCEPT:
            print(f"🔲 Using block size {block_size}, C {c}")
            return
        if result is TuneResult.CANCEL:
            print("❌ Cancelled")
            sys.exit(1)
        print("↩️  Back to crop")
        reedit = True


def write_output(ctx: PipelineContext, output: Path) -> None:
    """Write the binary page as a PDF or an image file."""
    if output.suffix.lower() == ".pdf":
        output.write_bytes(ctx.to_pdf())
    elif output.suffix.lower() in IMAGE_SUFFIXES:
        assert ctx.binary is not None
        if not cv2.imwrite(str(output), ctx.binary):
            raise ValueError(f"Could not write image: {output}")
    else:
        raise ValueError(f"Unsupported output format: {output.suffix}")


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = ScanConfig.from_env().with_overrides(
            block_size=args.block_size,
            constant_c=args.constant_c,
            page_size=args.page_size,
        )
    except ValueError as e:
        print(f"❌ {e}")
        sys.exit(1)

    print_header()
    print(f"📄 Source: {args.source}")

    try:
        ctx = PipelineContext.from_file(args.source, config)
    except (FileNotFoundError, InputError) as e:
        print(f"❌ {e}")
        sys.exit(1)

    assert ctx.source is not None
    height, width = ctx.source.shape[:2]
    print(f"✅ Loaded {width}x{height} image (orientation {ctx.orientation})")
    print_separator()

    if not run_corner_step(ctx, args):
        sys.exit(1)
    run_threshold_step(ctx, args)

    output = Path(args.output) if args.output else Path(default_pdf_name())
    try:
        write_output(ctx, output)
    except (OSError, ValueError) as e:
        print(f"❌ Error writing output: {e}")
        sys.exit(1)

    print_separator()
    print(f"✅ Saved {output}")


if __name__ == "__main__":
    main()
