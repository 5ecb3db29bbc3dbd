#!/usr/bin/env python3
"""
Lithophane Generator - Command line entry point

Convert one or more images into lithophane STL files.

Usage:
    python src/run_lithophane.py photo.jpg --width 100 --height 80 --thickness 3
    python src/run_lithophane.py photos/*.png --config settings.json --frame --output outputs
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Add src to path
sys.path.insert(0, str(Path(__file__).parent))

from common.config import (
    LithophaneSettings,
    Orientation,
    SmoothingMethod,
    DEFAULT_SETTINGS,
    smoothing_from_dict,
)
from common.io import save_stl
from common.mesh_ops import compute_mesh_stats
from lithophane.build import generate_lithophane, GenerationResult

logger = logging.getLogger(__name__)


def settings_from_args(args: argparse.Namespace) -> LithophaneSettings:
    """
    Start from --config (or defaults) and apply explicit overrides.
    """
    if args.config:
        settings = LithophaneSettings.from_json(args.config)
    else:
        settings = LithophaneSettings.from_dict(DEFAULT_SETTINGS.to_dict())

    overrides = {
        "width": args.width,
        "height": args.height,
        "thickness": args.thickness,
        "first_layer_thickness": args.first_layer,
        "resolution_multiplier": args.resolution,
        "frame_width": args.frame_width,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(settings, name, value)

    if args.layers is not None:
        settings.number_of_layers = args.layers
    if args.continuous:
        settings.number_of_layers = None
    if args.frame:
        settings.frame_enabled = True
    if args.negative:
        settings.negative = True
    if args.orientation:
        settings.orientation = Orientation(args.orientation)

    if args.smoothing or args.strength is not None or args.passes is not None:
        smoothing = settings.smoothing.to_dict()
        if args.smoothing and args.smoothing != smoothing["method"]:
            smoothing = {"method": args.smoothing}
        if args.strength is not None:
            smoothing["strength"] = args.strength
        if args.passes is not None:
            smoothing["passes"] = args.passes
        settings.smoothing = smoothing_from_dict(smoothing)

    return settings


def run_one(
    image: Path,
    settings: LithophaneSettings,
    output_dir: Path,
    with_stats: bool = False
) -> GenerationResult:
    """Generate and save one lithophane; returns the generation result."""
    result = generate_lithophane(image, settings)
    if not result.success:
        logger.error(f"{image}: {result.message}: {result.error}")
        return result

    output_path = output_dir / f"{image.stem}_{result.suggested_filename}"
    save_stl(result.stl_content, output_path, result.metadata)

    if with_stats:
        document = result.document
        stats = compute_mesh_stats(document.vertices, document.normals)
        logger.info(f"Mesh stats: {json.dumps(stats, indent=2)}")

    return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Lithophane Generator - Convert grayscale images to printable STL"
    )
    parser.add_argument(
        "images",
        nargs="+",
        type=Path,
        help="Image files to convert"
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        help="JSON settings file"
    )
    parser.add_argument("--width", type=float, help="Panel width (mm)")
    parser.add_argument("--height", type=float, help="Panel height (mm)")
    parser.add_argument("--thickness", "-t", type=float, help="Total thickness (mm)")
    parser.add_argument("--first-layer", type=float, help="First layer thickness (mm)")
    parser.add_argument(
        "--resolution", "-r",
        type=int,
        help="Resolution multiplier (pixels per mm, 1-10)"
    )
    parser.add_argument("--layers", "-l", type=int, help="Number of discrete layers")
    parser.add_argument(
        "--continuous",
        action="store_true",
        help="Map brightness to height continuously instead of in layers"
    )
    parser.add_argument(
        "--smoothing", "-s",
        choices=[m.value for m in SmoothingMethod],
        help="Smoothing method"
    )
    parser.add_argument("--strength", type=float, help="Laplacian smoothing strength")
    parser.add_argument("--passes", type=int, help="Smoothing passes")
    parser.add_argument("--frame", action="store_true", help="Add a frame around the panel")
    parser.add_argument("--frame-width", type=float, help="Frame width (mm)")
    parser.add_argument(
        "--negative",
        action="store_true",
        help="Invert: bright regions thick, dark regions thin"
    )
    parser.add_argument(
        "--orientation",
        choices=[o.value for o in Orientation],
        help="Print orientation (recorded in metadata)"
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=Path("outputs"),
        help="Output directory"
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Log mesh statistics after generation"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging"
    )
    return parser


def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)

    # Setup logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    settings = settings_from_args(args)
    for problem in settings.validate():
        logger.warning(f"Setting out of range: {problem}")

    logger.info(f"Processing {len(args.images)} images")
    logger.info(f"Settings: {json.dumps(settings.to_dict())}")
    logger.info(f"Output: {args.output}")

    n_errors = 0
    for image in args.images:
        result = run_one(image, settings, args.output, with_stats=args.stats)
        if not result.success:
            n_errors += 1

    logger.info(f"COMPLETE: {len(args.images) - n_errors} successful, {n_errors} errors")

    if n_errors > 0:
        sys.exit(1)


if __name__ == "__main__":
    main()
