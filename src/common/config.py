"""
Configuration and constants for lithophane generation.

Unit Model:
- All physical dimensions are millimetres.
- Internal grid = physical size × resolution multiplier (pixels per mm).
- Heights (Z) are millimetres above the print bed (z=0).
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Union
import json
from pathlib import Path


# Discrete layer count used when the caller does not pick one
DEFAULT_NUMBER_OF_LAYERS = 8

DEFAULT_RESOLUTION_MULTIPLIER = 4
DEFAULT_FRAME_WIDTH = 2.0

# Frame crest sits this far above the relief's full thickness
FRAME_EXTRA_HEIGHT = 1.0

# Brightest pixels keep at least this much material in the continuous policy
CONTINUOUS_MIN_MARGIN = 0.2

# Grid budgets (cells = internal_width * internal_height)
WARN_GRID_CELLS = 4_000_000
MAX_GRID_CELLS = 25_000_000

# Accepted ranges, in the units of each field
SETTINGS_RANGES = {
    "width": (1.0, 1000.0),
    "height": (1.0, 1000.0),
    "thickness": (0.1, 10.0),
    "first_layer_thickness": (0.1, 5.0),
    "resolution_multiplier": (1, 10),
}
SMOOTHING_STRENGTH_RANGE = (0.01, 1.0)


class Orientation(Enum):
    """
    How the panel is meant to stand when printed.

    Descriptive only: recorded in metadata, never changes geometry.
    """
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


class SmoothingMethod(Enum):
    GEOMETRIC = "geometric"
    LAPLACIAN = "laplacian"
    NONE = "none"


@dataclass(frozen=True)
class GeometricSmoothing:
    """5x5 distance-weighted averaging."""
    passes: int = 2

    method = SmoothingMethod.GEOMETRIC

    def to_dict(self) -> Dict[str, Any]:
        return {"method": self.method.value, "passes": self.passes}


@dataclass(frozen=True)
class LaplacianSmoothing:
    """Discrete Laplacian relaxation over 4-connected neighbours."""
    strength: float = 0.1
    passes: int = 3

    method = SmoothingMethod.LAPLACIAN

    def to_dict(self) -> Dict[str, Any]:
        return {"method": self.method.value, "strength": self.strength, "passes": self.passes}


@dataclass(frozen=True)
class NoSmoothing:
    """Leave the height field untouched."""

    method = SmoothingMethod.NONE

    def to_dict(self) -> Dict[str, Any]:
        return {"method": self.method.value}


SmoothingSpec = Union[GeometricSmoothing, LaplacianSmoothing, NoSmoothing]


def smoothing_from_dict(data: Optional[Dict[str, Any]]) -> SmoothingSpec:
    """
    Build a smoothing variant from its config-file form.

    Missing or falsy ``passes``/``strength`` fall back to the variant's
    defaults, so ``{"method": "laplacian"}`` is a valid spec.
    """
    if not data:
        return GeometricSmoothing()

    method = SmoothingMethod(data.get("method", SmoothingMethod.GEOMETRIC.value))

    if method is SmoothingMethod.GEOMETRIC:
        return GeometricSmoothing(passes=int(data.get("passes") or 2))
    if method is SmoothingMethod.LAPLACIAN:
        return LaplacianSmoothing(
            strength=float(data.get("strength") or 0.1),
            passes=int(data.get("passes") or 3)
        )
    return NoSmoothing()


def _format_dimension(value: float) -> str:
    """Render 10.0 as '10' and 0.8 as '0.8' for file names."""
    return f"{value:g}"


@dataclass
class MeshMetadata:
    """
    Metadata sidecar written next to every exported STL.

    Records the settings that produced the mesh plus the measured result,
    so a print can be traced back to its parameters.
    """
    name: str
    n_triangles: int
    triangle_counts: Dict[str, int]
    bounds: Dict[str, List[float]]
    height_range: List[float]
    grid_size: List[int]
    settings: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "n_triangles": self.n_triangles,
            "triangle_counts": self.triangle_counts,
            "bounds": self.bounds,
            "height_range": self.height_range,
            "grid_size": self.grid_size,
            "settings": self.settings
        }

    def save(self, path: Path) -> None:
        """Save metadata to JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MeshMetadata":
        return cls(**data)


@dataclass
class LithophaneSettings:
    """
    Everything the pipeline needs to turn pixels into a printable panel.

    ``number_of_layers`` selects the height policy: an integer quantizes
    heights into printer layers, ``None`` maps brightness continuously.
    """

    # Physical size of the relief (mm)
    width: float = 100.0
    height: float = 100.0

    # Total thickness and the thickness of the thinnest (brightest) region
    thickness: float = 3.0
    first_layer_thickness: float = 0.4

    # Pixels per mm of the internal grid
    resolution_multiplier: int = DEFAULT_RESOLUTION_MULTIPLIER

    number_of_layers: Optional[int] = DEFAULT_NUMBER_OF_LAYERS

    frame_enabled: bool = False
    frame_width: float = DEFAULT_FRAME_WIDTH

    smoothing: SmoothingSpec = field(default_factory=GeometricSmoothing)

    # Swap which brightness extreme gets the thinnest material
    negative: bool = False

    orientation: Orientation = Orientation.HORIZONTAL

    @property
    def internal_width(self) -> int:
        return int(round(self.width * self.resolution_multiplier))

    @property
    def internal_height(self) -> int:
        return int(round(self.height * self.resolution_multiplier))

    @property
    def grid_cells(self) -> int:
        """
        Number of height samples.

        Grows with (size × resolution)²; three float buffers of this size
        are alive at once during generation.
        """
        return self.internal_width * self.internal_height

    @property
    def suggested_filename(self) -> str:
        return (
            f"lithophane_{_format_dimension(self.width)}x"
            f"{_format_dimension(self.height)}x"
            f"{_format_dimension(self.thickness)}mm.stl"
        )

    def validate(self) -> List[str]:
        """
        Check every field against its accepted range.

        Returns:
            Human-readable problems, empty when the settings are in range
        """
        problems = []

        for name, (low, high) in SETTINGS_RANGES.items():
            value = getattr(self, name)
            if not low <= value <= high:
                problems.append(f"{name}={value} outside [{low}, {high}]")

        if self.first_layer_thickness >= self.thickness:
            problems.append(
                f"first_layer_thickness={self.first_layer_thickness} must be "
                f"less than thickness={self.thickness}"
            )

        if self.number_of_layers is not None and self.number_of_layers < 1:
            problems.append(f"number_of_layers={self.number_of_layers} must be at least 1")

        if self.frame_enabled and self.frame_width <= 0:
            problems.append(f"frame_width={self.frame_width} must be positive")

        if isinstance(self.smoothing, LaplacianSmoothing):
            low, high = SMOOTHING_STRENGTH_RANGE
            if not low <= self.smoothing.strength <= high:
                problems.append(
                    f"smoothing strength={self.smoothing.strength} outside [{low}, {high}]"
                )

        return problems

    def to_dict(self) -> Dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "thickness": self.thickness,
            "first_layer_thickness": self.first_layer_thickness,
            "resolution_multiplier": self.resolution_multiplier,
            "number_of_layers": self.number_of_layers,
            "frame_enabled": self.frame_enabled,
            "frame_width": self.frame_width,
            "smoothing": self.smoothing.to_dict(),
            "negative": self.negative,
            "orientation": self.orientation.value
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LithophaneSettings":
        data = dict(data)
        if "smoothing" in data:
            data["smoothing"] = smoothing_from_dict(data["smoothing"])
        if "orientation" in data:
            data["orientation"] = Orientation(data["orientation"])
        return cls(**data)

    @classmethod
    def from_json(cls, path: Path) -> "LithophaneSettings":
        """Load settings from JSON file."""
        with open(path) as f:
            data = json.load(f)
        return cls.from_dict(data)

    def save(self, path: Path) -> None:
        """Save settings to JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


# Global default settings
DEFAULT_SETTINGS = LithophaneSettings()
