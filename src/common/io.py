"""
Data I/O utilities.

Handles decoding source images into raw grayscale buffers, saving STL
text with a metadata sidecar, and reading STL back through trimesh.
"""

import json
import logging
from io import BytesIO
from pathlib import Path
from typing import Optional, Tuple, Union

from .config import MeshMetadata
from .errors import ImageMetadataError

logger = logging.getLogger(__name__)

try:
    from PIL import Image, UnidentifiedImageError
    PIL_AVAILABLE = True
except ImportError:
    PIL_AVAILABLE = False
    logger.warning("Pillow not available")

try:
    import trimesh
    TRIMESH_AVAILABLE = True
except ImportError:
    TRIMESH_AVAILABLE = False
    logger.warning("trimesh not available")


def read_image_size(path: Union[str, Path]) -> Tuple[int, int]:
    """
    Read (width, height) of an image without decoding its pixels.

    Raises:
        ImageMetadataError: file missing, unreadable, or without dimensions
    """
    if not PIL_AVAILABLE:
        raise ImportError("Pillow required for reading images")

    path = Path(path)
    try:
        with Image.open(path) as img:
            width, height = img.size
    except (OSError, UnidentifiedImageError) as e:
        raise ImageMetadataError(f"Could not read image dimensions from {path}: {e}") from e

    if not width or not height:
        raise ImageMetadataError(f"Image {path} reports no dimensions")

    return width, height


def load_grayscale_buffer(
    path: Union[str, Path],
    width: int,
    height: int
) -> bytes:
    """
    Decode an image to 8-bit grayscale at exactly width x height.

    The image is stretched to the target size (no aspect preservation),
    so the relief always covers the full physical rectangle.

    Args:
        path: Source image file
        width: Target width in pixels
        height: Target height in pixels

    Returns:
        width * height bytes, row-major
    """
    source_width, source_height = read_image_size(path)

    with Image.open(path) as img:
        gray = img.convert("L").resize((width, height), Image.Resampling.LANCZOS)
        buffer = gray.tobytes()

    logger.info(
        f"Loaded {path}: {source_width}x{source_height} → {width}x{height} grayscale"
    )
    return buffer


def save_stl(
    stl_text: str,
    path: Path,
    metadata: Optional[MeshMetadata] = None
) -> Path:
    """
    Write ASCII STL text, plus a .json metadata sidecar when given.

    Args:
        stl_text: Serialized mesh
        path: Output path (should end in .stl)
        metadata: MeshMetadata saved next to the mesh

    Returns:
        The STL path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    path.write_text(stl_text)
    logger.info(f"Saved mesh: {path} ({len(stl_text) / 1e6:.1f} MB)")

    if metadata is not None:
        meta_path = path.with_suffix('.json')
        metadata.save(meta_path)
        logger.info(f"Saved metadata: {meta_path}")

    return path


def read_stl_text(stl_text: str) -> "trimesh.Trimesh":
    """
    Parse ASCII STL text into a triangle soup.

    Facets keep their order and winding; nothing is welded or repaired.

    Raises:
        ValueError: text holds no facets
    """
    if not TRIMESH_AVAILABLE:
        raise ImportError("trimesh required for reading STL")

    mesh = trimesh.load(BytesIO(stl_text.encode()), file_type="stl", process=False)
    if not isinstance(mesh, trimesh.Trimesh):
        raise ValueError("STL text contains no facets")
    return mesh


def load_stl(path: Path) -> Tuple["trimesh.Trimesh", Optional[MeshMetadata]]:
    """
    Load an STL file and its metadata sidecar.

    Returns:
        Tuple of (mesh, metadata) - metadata may be None if not found
    """
    if not TRIMESH_AVAILABLE:
        raise ImportError("trimesh required for loading meshes")

    path = Path(path)
    mesh = trimesh.load(str(path), file_type="stl", process=False)

    meta_path = path.with_suffix('.json')
    metadata = None
    if meta_path.exists():
        with open(meta_path) as f:
            metadata = MeshMetadata.from_dict(json.load(f))

    return mesh, metadata
