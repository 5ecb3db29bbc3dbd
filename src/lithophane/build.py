"""
Lithophane generation pipeline.

Pixels → brightness → unsharp mask → heights → smoothing →
renormalization → mesh → ASCII STL, in one synchronous pass.

``build_lithophane`` is the core and raises on bad input;
``generate_lithophane`` is the outer boundary that always returns a
GenerationResult and never a partial mesh.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from common.config import (
    LithophaneSettings,
    MeshMetadata,
    WARN_GRID_CELLS,
    MAX_GRID_CELLS,
)
from common.errors import ResourceLimitError, SettingsError
from common.io import load_grayscale_buffer
from .brightness import PixelBuffer, preprocess_brightness, unsharp_mask
from .heights import HeightField, map_heights, renormalize_thickness
from .smoothing import apply_smoothing
from .mesh import MeshDocument, build_mesh
from .stl import DEFAULT_SOLID_NAME, serialize_ascii_stl

logger = logging.getLogger(__name__)

ImageLoader = Callable[[Union[str, Path], int, int], bytes]


@dataclass
class LithophaneBuild:
    """Everything the core produces for one request."""
    heights: HeightField
    document: MeshDocument
    stl_content: str
    metadata: MeshMetadata


@dataclass
class GenerationResult:
    """
    Outcome handed back to the caller.

    On success ``stl_content``, ``suggested_filename`` and the built
    ``document`` are set; on failure ``message`` says what went wrong and
    ``error`` carries detail.
    """
    success: bool
    message: str
    stl_content: Optional[str] = None
    suggested_filename: Optional[str] = None
    error: Optional[str] = None
    metadata: Optional[MeshMetadata] = None
    processed_image_data: Optional[bytes] = None
    document: Optional[MeshDocument] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "suggested_filename": self.suggested_filename,
            "error": self.error,
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }


def check_resource_budget(
    settings: LithophaneSettings,
    warn_cells: int = WARN_GRID_CELLS,
    max_cells: int = MAX_GRID_CELLS
) -> None:
    """
    Refuse grids that cannot be built, before anything is allocated.

    Memory grows with (size × resolution)²: several float64 buffers of
    ``grid_cells`` samples are alive at once, and the mesh holds ~2
    triangles (96 bytes each) per cell.
    """
    n_x, n_y = settings.internal_width, settings.internal_height

    if n_x < 2 or n_y < 2:
        raise SettingsError(
            f"Grid {n_x}x{n_y} too small: need at least 2x2 samples "
            f"(size {settings.width}x{settings.height}mm at {settings.resolution_multiplier}x)"
        )

    cells = settings.grid_cells
    if cells > max_cells:
        raise ResourceLimitError(
            f"Grid {n_x}x{n_y} ({cells:,} cells) exceeds the limit of {max_cells:,}; "
            f"lower the resolution multiplier or the physical size"
        )
    if cells > warn_cells:
        logger.warning(f"Large grid {n_x}x{n_y} ({cells:,} cells), expect high memory use")


def generate_height_field(buffer: PixelBuffer, settings: LithophaneSettings) -> HeightField:
    """
    Run the numeric stages: preprocess, enhance, map, smooth, renormalize.

    Args:
        buffer: internal_width * internal_height grayscale bytes
        settings: Generation settings

    Returns:
        Final height field in mm
    """
    n_x, n_y = settings.internal_width, settings.internal_height

    source = preprocess_brightness(buffer, n_x, n_y)
    enhanced = unsharp_mask(source)

    heights = map_heights(enhanced, source, settings)
    apply_smoothing(heights, settings.smoothing)
    renormalize_thickness(heights, settings.first_layer_thickness, settings.thickness)

    return heights


def build_metadata(
    document: MeshDocument,
    heights: HeightField,
    settings: LithophaneSettings,
    name: str = DEFAULT_SOLID_NAME
) -> MeshMetadata:
    lo, hi = document.bounds
    return MeshMetadata(
        name=name,
        n_triangles=len(document),
        triangle_counts=dict(document.part_counts),
        bounds={"min": lo.tolist(), "max": hi.tolist()},
        height_range=list(heights.range),
        grid_size=[heights.width, heights.height],
        settings=settings.to_dict()
    )


def build_lithophane(
    buffer: PixelBuffer,
    settings: LithophaneSettings,
    name: str = DEFAULT_SOLID_NAME
) -> LithophaneBuild:
    """
    Build a lithophane mesh from a raw grayscale buffer.

    Args:
        buffer: internal_width * internal_height grayscale bytes
        settings: Generation settings
        name: Solid name written into the STL

    Returns:
        LithophaneBuild with height field, mesh, STL text and metadata
    """
    check_resource_budget(settings)

    logger.info(
        f"Generating lithophane: {settings.width}x{settings.height}x{settings.thickness}mm, "
        f"grid {settings.internal_width}x{settings.internal_height} "
        f"({settings.resolution_multiplier}x resolution)"
    )

    heights = generate_height_field(buffer, settings)
    document = build_mesh(heights, settings)
    stl_content = serialize_ascii_stl(document, name)
    metadata = build_metadata(document, heights, settings, name)

    return LithophaneBuild(
        heights=heights,
        document=document,
        stl_content=stl_content,
        metadata=metadata
    )


def process_image(
    image_path: Union[str, Path],
    settings: LithophaneSettings,
    loader: ImageLoader = load_grayscale_buffer
) -> GenerationResult:
    """
    Decode and resize an image to the internal grid, without meshing.

    Returns:
        GenerationResult carrying ``processed_image_data`` on success
    """
    try:
        check_resource_budget(settings)
        buffer = loader(image_path, settings.internal_width, settings.internal_height)
    except Exception as e:
        logger.error(f"Failed to process image {image_path}: {e}")
        return GenerationResult(
            success=False,
            message="Failed to process image",
            error=str(e)
        )

    return GenerationResult(
        success=True,
        message="Image processed successfully",
        processed_image_data=buffer
    )


def generate_lithophane(
    source: Union[str, Path, PixelBuffer],
    settings: LithophaneSettings,
    loader: ImageLoader = load_grayscale_buffer
) -> GenerationResult:
    """
    Generate STL text from an image path or a raw pixel buffer.

    Never raises: every failure, expected or not, becomes a failure
    result with a message and error detail.

    Args:
        source: Image file path, or internal_width * internal_height bytes
        settings: Generation settings
        loader: Decodes image paths into grayscale buffers

    Returns:
        GenerationResult
    """
    if isinstance(source, (str, Path)):
        processed = process_image(source, settings, loader)
        if not processed.success:
            return processed
        buffer = processed.processed_image_data
    else:
        buffer = source

    try:
        result = build_lithophane(buffer, settings)
    except MemoryError:
        logger.exception("Out of memory while generating lithophane")
        return GenerationResult(
            success=False,
            message="Failed to generate STL",
            error=(
                f"Out of memory for a {settings.internal_width}x{settings.internal_height} grid"
            )
        )
    except Exception as e:
        logger.exception("Failed to generate STL")
        return GenerationResult(
            success=False,
            message="Failed to generate STL",
            error=str(e) or type(e).__name__
        )

    return GenerationResult(
        success=True,
        message="STL file generated successfully",
        stl_content=result.stl_content,
        suggested_filename=settings.suggested_filename,
        metadata=result.metadata,
        document=result.document
    )
