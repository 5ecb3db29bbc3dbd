"""
Triangulation of a height field into a closed lithophane solid.

Parts:
- top: relief surface, two triangles per grid cell, normal +Z
- base: flat rectangle at z=0, normal -Z
- walls: one quad strip per grid edge, normals -X, +X, -Y, +Y
- frame (optional): wedge ramp around the relief

Grid sample (i, j) sits at x = (i - (n_x - 1) / 2) / res and
y = (j - (n_y - 1) / 2) / res, so the grid is centred on the origin.
The base, walls and frame use the grid's own boundary rectangle, so
every edge of the relief meets another part. That rectangle is one
sample pitch (1 / res) narrower than the requested width and height.

The result is a triangle soup: no shared vertices, one flat normal per
triangle.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, NamedTuple, Tuple

import numpy as np

from common.config import LithophaneSettings, FRAME_EXTRA_HEIGHT
from common.errors import SettingsError
from .heights import HeightField

logger = logging.getLogger(__name__)

TRIANGLE_DTYPE = np.dtype([
    ("normal", np.float64, (3,)),
    ("vertices", np.float64, (3, 3)),
])

PART_ORDER = ("top", "base", "wall_left", "wall_right", "wall_front", "wall_back", "frame")

NORMAL_UP = np.array([0.0, 0.0, 1.0])
NORMAL_DOWN = np.array([0.0, 0.0, -1.0])
NORMAL_LEFT = np.array([-1.0, 0.0, 0.0])
NORMAL_RIGHT = np.array([1.0, 0.0, 0.0])
NORMAL_FRONT = np.array([0.0, -1.0, 0.0])
NORMAL_BACK = np.array([0.0, 1.0, 0.0])


class Triangle(NamedTuple):
    """One facet: three (x, y, z) vertices in mm and its flat normal."""
    vertices: np.ndarray  # (3, 3)
    normal: np.ndarray  # (3,)


@dataclass(frozen=True)
class MeshDocument:
    """
    Immutable, ordered triangle soup.

    ``triangles`` is a read-only structured array of TRIANGLE_DTYPE
    records; ``part_counts`` says how many of them each part contributed.
    """
    triangles: np.ndarray
    part_counts: Dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.triangles)

    def __iter__(self) -> Iterator[Triangle]:
        for record in self.triangles:
            yield Triangle(vertices=record["vertices"], normal=record["normal"])

    @property
    def vertices(self) -> np.ndarray:
        """(N, 3, 3) vertex coordinates."""
        return self.triangles["vertices"]

    @property
    def normals(self) -> np.ndarray:
        """(N, 3) declared facet normals."""
        return self.triangles["normal"]

    @property
    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return (min_corner, max_corner) in mm."""
        points = self.vertices.reshape(-1, 3)
        return points.min(axis=0), points.max(axis=0)

    def part(self, name: str) -> np.ndarray:
        """Structured records belonging to one part."""
        start = 0
        for part_name in PART_ORDER:
            count = self.part_counts.get(part_name, 0)
            if part_name == name:
                return self.triangles[start:start + count]
            start += count
        raise KeyError(name)


class MeshBuilder:
    """Append-only collector of triangle blocks, frozen by ``build``."""

    def __init__(self):
        self._blocks: List[np.ndarray] = []
        self._counts: Dict[str, int] = {}

    def add(self, part: str, vertices: np.ndarray, normals: np.ndarray) -> None:
        """
        Append triangles.

        Args:
            part: Name from PART_ORDER
            vertices: (N, 3, 3) array
            normals: (N, 3) array, or a single (3,) normal shared by all N
        """
        vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3, 3)
        block = np.empty(len(vertices), dtype=TRIANGLE_DTYPE)
        block["vertices"] = vertices
        block["normal"] = np.broadcast_to(normals, (len(vertices), 3))

        self._blocks.append(block)
        self._counts[part] = self._counts.get(part, 0) + len(block)

    def build(self) -> MeshDocument:
        if self._blocks:
            triangles = np.concatenate(self._blocks)
        else:
            triangles = np.empty(0, dtype=TRIANGLE_DTYPE)
        triangles.flags.writeable = False
        return MeshDocument(triangles=triangles, part_counts=dict(self._counts))


def face_normals(vertices: np.ndarray) -> np.ndarray:
    """
    Unit normals implied by winding (right-hand rule).

    Degenerate triangles get a zero vector.
    """
    vertices = np.asarray(vertices).reshape(-1, 3, 3)
    cross = np.cross(vertices[:, 1] - vertices[:, 0], vertices[:, 2] - vertices[:, 0])
    length = np.linalg.norm(cross, axis=1, keepdims=True)
    return np.divide(cross, length, out=np.zeros_like(cross), where=length > 0)


def grid_coordinates(
    n_x: int,
    n_y: int,
    settings: LithophaneSettings
) -> Tuple[np.ndarray, np.ndarray]:
    """Physical x and y (mm) of grid columns and rows, centred on the origin."""
    res = settings.resolution_multiplier
    xs = (np.arange(n_x) - (n_x - 1) / 2) / res
    ys = (np.arange(n_y) - (n_y - 1) / 2) / res
    return xs, ys


def _quad_strip(bottom: np.ndarray, top: np.ndarray, flip: bool) -> np.ndarray:
    """
    Two triangles per segment between a bottom and a top polyline.

    With ``flip`` False the facets face left of the direction of travel
    (seen from above); with ``flip`` True they face right.
    """
    b0, b1 = bottom[:-1], bottom[1:]
    t0, t1 = top[:-1], top[1:]

    if flip:
        first = np.stack([b0, b1, t0], axis=1)
        second = np.stack([b1, t1, t0], axis=1)
    else:
        first = np.stack([b0, t0, b1], axis=1)
        second = np.stack([b1, t0, t1], axis=1)

    return np.stack([first, second], axis=1).reshape(-1, 3, 3)


def top_surface(points: np.ndarray) -> np.ndarray:
    """
    Two counter-clockwise triangles for every 2x2 block of grid points.

    Args:
        points: (H, W, 3) surface points

    Returns:
        (2 * (H-1) * (W-1), 3, 3) vertices
    """
    v00 = points[:-1, :-1]
    v10 = points[:-1, 1:]
    v01 = points[1:, :-1]
    v11 = points[1:, 1:]

    first = np.stack([v00, v10, v01], axis=-2)
    second = np.stack([v10, v11, v01], axis=-2)
    return np.stack([first, second], axis=-3).reshape(-1, 3, 3)


def base_rectangle(x0: float, x1: float, y0: float, y1: float) -> np.ndarray:
    """Two triangles covering the footprint at z=0, wound to face down."""
    bottom_left = (x0, y0, 0.0)
    bottom_right = (x1, y0, 0.0)
    top_left = (x0, y1, 0.0)
    top_right = (x1, y1, 0.0)
    return np.array([
        [bottom_left, top_left, bottom_right],
        [bottom_right, top_left, top_right],
    ])


def side_walls(points: np.ndarray) -> Dict[str, np.ndarray]:
    """
    Quad strips from z=0 up to the boundary of the surface.

    Args:
        points: (H, W, 3) surface points

    Returns:
        Wall vertices keyed by part name
    """
    def floor_of(edge: np.ndarray) -> np.ndarray:
        bottom = edge.copy()
        bottom[:, 2] = 0.0
        return bottom

    left = points[:, 0]
    right = points[:, -1]
    front = points[0, :]
    back = points[-1, :]

    return {
        "wall_left": _quad_strip(floor_of(left), left, flip=False),
        "wall_right": _quad_strip(floor_of(right), right, flip=True),
        "wall_front": _quad_strip(floor_of(front), front, flip=True),
        "wall_back": _quad_strip(floor_of(back), back, flip=False),
    }


def frame_ring(
    x0: float,
    x1: float,
    y0: float,
    y1: float,
    frame_width: float,
    frame_height: float
) -> np.ndarray:
    """
    Wedge-shaped ramp around the relief footprint.

    This is not a raised rim: there is no vertical inner wall. The
    cross-section is a triangle made of a bottom ring at z=0, an outer
    wall rising to ``frame_height``, and a top ring sloping from that
    outer crest down to z=0 at the relief's boundary. Only the outer
    edge reaches ``frame_height``. Each ring is four quads (one per
    side), two triangles each.

    Returns:
        (24, 3, 3) vertices
    """
    outer = np.array([
        (x0 - frame_width, y0 - frame_width),
        (x1 + frame_width, y0 - frame_width),
        (x1 + frame_width, y1 + frame_width),
        (x0 - frame_width, y1 + frame_width),
    ])
    inner = np.array([(x0, y0), (x1, y0), (x1, y1), (x0, y1)])

    def lift(corner: np.ndarray, z: float) -> np.ndarray:
        return np.array([corner[0], corner[1], z])

    bottom, wall, top = [], [], []
    for i in range(4):
        n = (i + 1) % 4
        o_i, o_n = lift(outer[i], 0.0), lift(outer[n], 0.0)
        oh_i, oh_n = lift(outer[i], frame_height), lift(outer[n], frame_height)
        in_i, in_n = lift(inner[i], 0.0), lift(inner[n], 0.0)

        bottom += [(o_i, in_i, o_n), (o_n, in_i, in_n)]
        wall += [(o_i, o_n, oh_i), (o_n, oh_n, oh_i)]
        top += [(oh_i, oh_n, in_i), (oh_n, in_n, in_i)]

    return np.array(bottom + wall + top)


def build_mesh(heights: HeightField, settings: LithophaneSettings) -> MeshDocument:
    """
    Triangulate the final height field into a closed solid.

    The solid is centred on the origin and spans (n - 1) / res in each
    direction, one sample pitch short of the requested width and height.

    Args:
        heights: Final (renormalized) height field
        settings: Physical size, resolution and frame options

    Returns:
        MeshDocument with parts in PART_ORDER
    """
    n_y, n_x = heights.values.shape
    if n_x < 2 or n_y < 2:
        raise SettingsError(f"Need at least a 2x2 grid to build a mesh, got {n_x}x{n_y}")

    xs, ys = grid_coordinates(n_x, n_y, settings)
    grid_x, grid_y = np.meshgrid(xs, ys)
    points = np.stack([grid_x, grid_y, heights.values], axis=-1)

    x0, x1 = float(xs[0]), float(xs[-1])
    y0, y1 = float(ys[0]), float(ys[-1])

    builder = MeshBuilder()
    builder.add("top", top_surface(points), NORMAL_UP)
    builder.add("base", base_rectangle(x0, x1, y0, y1), NORMAL_DOWN)

    walls = side_walls(points)
    builder.add("wall_left", walls["wall_left"], NORMAL_LEFT)
    builder.add("wall_right", walls["wall_right"], NORMAL_RIGHT)
    builder.add("wall_front", walls["wall_front"], NORMAL_FRONT)
    builder.add("wall_back", walls["wall_back"], NORMAL_BACK)

    if settings.frame_enabled:
        frame_height = settings.thickness + FRAME_EXTRA_HEIGHT
        frame = frame_ring(x0, x1, y0, y1, settings.frame_width, frame_height)
        builder.add("frame", frame, face_normals(frame))

    document = builder.build()
    logger.info(f"Mesh built: {len(document)} triangles {document.part_counts}")
    return document
