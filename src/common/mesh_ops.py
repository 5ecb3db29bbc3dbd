"""
Mesh inspection utilities.

Statistics and sanity checks for triangle soups: (N, 3, 3) vertex
arrays with one declared normal per triangle.
"""

import numpy as np
from typing import Dict, Any
import logging

logger = logging.getLogger(__name__)

try:
    import trimesh
    TRIMESH_AVAILABLE = True
except ImportError:
    TRIMESH_AVAILABLE = False


def to_trimesh(vertices: np.ndarray, merge: bool = True) -> "trimesh.Trimesh":
    """
    Convert a triangle soup into a Trimesh.

    Args:
        vertices: (N, 3, 3) triangle vertices
        merge: Weld coincident vertices (needed for topology queries)

    Returns:
        Trimesh with faces in the same order and winding
    """
    if not TRIMESH_AVAILABLE:
        raise ImportError("trimesh required for mesh conversion")

    vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3, 3)
    return trimesh.Trimesh(**trimesh.triangles.to_kwargs(vertices), process=merge)


def winding_agreement(vertices: np.ndarray, normals: np.ndarray) -> float:
    """
    Fraction of triangles whose right-hand-rule normal points the same
    way as the declared normal.

    1.0 means every facet is wound consistently with its normal.
    """
    vertices = np.asarray(vertices).reshape(-1, 3, 3)
    if len(vertices) == 0:
        return 1.0
    cross = np.cross(vertices[:, 1] - vertices[:, 0], vertices[:, 2] - vertices[:, 0])
    agree = np.einsum("ij,ij->i", cross, np.asarray(normals).reshape(-1, 3)) > 0
    return float(agree.mean())


def closure_residual(vertices: np.ndarray) -> float:
    """
    Length of the summed area vectors of all triangles.

    For a closed, consistently wound surface the area vectors cancel,
    so the residual is ~0 even when edges meet at T-junctions.
    """
    vertices = np.asarray(vertices).reshape(-1, 3, 3)
    cross = np.cross(vertices[:, 1] - vertices[:, 0], vertices[:, 2] - vertices[:, 0])
    return float(np.linalg.norm(cross.sum(axis=0)) / 2.0)


def signed_volume(vertices: np.ndarray) -> float:
    """Enclosed volume by the divergence theorem (positive when outward-wound)."""
    vertices = np.asarray(vertices).reshape(-1, 3, 3)
    v0, v1, v2 = vertices[:, 0], vertices[:, 1], vertices[:, 2]
    return float(np.einsum("ij,ij->i", v0, np.cross(v1, v2)).sum() / 6.0)


def compute_mesh_stats(vertices: np.ndarray, normals: np.ndarray) -> Dict[str, Any]:
    """
    Compute mesh statistics.

    Args:
        vertices: (N, 3, 3) triangle vertices
        normals: (N, 3) declared normals

    Returns:
        Dictionary of mesh statistics
    """
    mesh = to_trimesh(vertices)
    bounds = mesh.bounds
    extents = mesh.extents

    stats = {
        "n_triangles": int(len(vertices)),
        "n_vertices": len(mesh.vertices),
        "bounds": {
            "min": bounds[0].tolist(),
            "max": bounds[1].tolist()
        },
        "extents": extents.tolist(),
        "volume": signed_volume(vertices),
        "surface_area": float(mesh.area),
        "closure_residual": closure_residual(vertices),
        "winding_agreement": winding_agreement(vertices, normals),
    }
    logger.debug(f"Mesh stats: {stats}")
    return stats
