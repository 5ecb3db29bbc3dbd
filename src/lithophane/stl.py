"""
ASCII STL serialization.

Layout:
    solid <name>
      facet normal nx ny nz
        outer loop
          vertex x y z   (x3)
        endloop
      endfacet
    endsolid <name>

Every number is written with 6 decimals so output is reproducible.
"""

import logging

import numpy as np

from .mesh import MeshDocument

logger = logging.getLogger(__name__)

DEFAULT_SOLID_NAME = "lithophane"
DECIMALS = 6

_FACET_TEMPLATE = (
    "  facet normal {:.6f} {:.6f} {:.6f}\n"
    "    outer loop\n"
    "      vertex {:.6f} {:.6f} {:.6f}\n"
    "      vertex {:.6f} {:.6f} {:.6f}\n"
    "      vertex {:.6f} {:.6f} {:.6f}\n"
    "    endloop\n"
    "  endfacet\n"
)


def serialize_ascii_stl(document: MeshDocument, name: str = DEFAULT_SOLID_NAME) -> str:
    """
    Render a mesh document as ASCII STL text.

    Args:
        document: Triangles to write, in order
        name: Solid name for the header and footer

    Returns:
        Complete STL text, newline-terminated
    """
    # 12 numbers per facet: normal, then three vertices. Rounding first and
    # adding 0.0 turns -0.0 and tiny negatives into 0.0, so zero components
    # never print as "-0.000000".
    rows = np.round(
        np.concatenate([document.normals, document.vertices.reshape(-1, 9)], axis=1),
        DECIMALS
    ) + 0.0

    parts = [f"solid {name}\n"]
    parts.extend(_FACET_TEMPLATE.format(*row) for row in rows.tolist())
    parts.append(f"endsolid {name}\n")

    text = "".join(parts)
    logger.info(f"Serialized {len(document)} facets ({len(text) / 1e6:.1f} MB)")
    return text
