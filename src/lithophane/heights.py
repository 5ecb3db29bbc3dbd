"""
Brightness → height mapping and thickness renormalization.

Bright regions must let light through, so they get the thinnest
material (first layer); dark regions get the full thickness.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from common.config import LithophaneSettings, CONTINUOUS_MIN_MARGIN
from .brightness import BrightnessField

logger = logging.getLogger(__name__)

RENORMALIZE_EPSILON = 1e-6


@dataclass
class HeightField:
    """
    Per-sample thickness in millimetres, row-major (height, width).

    Mutated in place by smoothing and renormalization only.
    """
    values: np.ndarray

    @property
    def width(self) -> int:
        return self.values.shape[1]

    @property
    def height(self) -> int:
        return self.values.shape[0]

    @property
    def flat(self) -> np.ndarray:
        return self.values.reshape(-1)

    @property
    def range(self) -> Tuple[float, float]:
        return float(self.values.min()), float(self.values.max())

    def copy(self) -> "HeightField":
        return HeightField(values=self.values.copy())


def normalized_darkness(
    enhanced: BrightnessField,
    source: BrightnessField,
    negative: bool = False
) -> np.ndarray:
    """
    Rank every sample in [0, 1], 0 for the brightest and 1 for the darkest.

    The rank is relative to the source field's brightness range. ``negative``
    inverts it once. A flat source (max == min) has no range to rank
    against, so the absolute brightness is used instead: all-black maps
    to 0, all-white to 1.
    """
    lo, hi = source.min_brightness, source.max_brightness

    if hi > lo:
        normalized = 1.0 - (enhanced.values - lo) / (hi - lo)
    else:
        logger.warning(
            f"Flat brightness field ({lo:.3f}), using absolute brightness for heights"
        )
        normalized = enhanced.values.copy()

    np.clip(normalized, 0.0, 1.0, out=normalized)

    if negative:
        normalized = 1.0 - normalized

    return normalized


def map_discrete_layers(
    normalized: np.ndarray,
    first_layer_thickness: float,
    thickness: float,
    number_of_layers: int
) -> np.ndarray:
    """
    Snap normalized values to printer layers.

    The first layer is always present; the remaining thickness is split
    into ``max(1, number_of_layers - 1)`` equal steps. The top step is
    pinned to exactly ``thickness``.

    Args:
        normalized: Values in [0, 1], 0 = thinnest
        first_layer_thickness: Thickness of layer 0 (mm)
        thickness: Total thickness (mm)
        number_of_layers: Layers including the first

    Returns:
        Heights in mm, same shape as ``normalized``
    """
    n_steps = max(1, number_of_layers - 1)
    increment = (thickness - first_layer_thickness) / n_steps

    layer_index = np.floor(normalized * (n_steps + 1)).astype(np.int64)
    np.clip(layer_index, 0, n_steps, out=layer_index)

    heights = first_layer_thickness + layer_index * increment
    heights[layer_index == n_steps] = thickness
    heights[layer_index == 0] = first_layer_thickness

    return heights


def map_continuous(
    normalized: np.ndarray,
    first_layer_thickness: float,
    thickness: float,
    min_margin: float = CONTINUOUS_MIN_MARGIN
) -> np.ndarray:
    """
    Linear brightness → height mapping without quantization.

    The brightest sample gets ``first_layer_thickness + margin`` so it still
    has printable volume; the darkest gets ``thickness``.
    """
    margin = min(min_margin, max(0.0, thickness - first_layer_thickness))
    effective = thickness - first_layer_thickness - margin
    return first_layer_thickness + margin + normalized * effective


def map_heights(
    enhanced: BrightnessField,
    source: BrightnessField,
    settings: LithophaneSettings
) -> HeightField:
    """
    Convert enhanced brightness to a height field.

    Uses discrete layers when ``settings.number_of_layers`` is set, the
    continuous mapping otherwise. Samples missing from the input buffer
    get the first-layer thickness.
    """
    normalized = normalized_darkness(enhanced, source, settings.negative)

    if settings.number_of_layers is not None:
        heights = map_discrete_layers(
            normalized,
            settings.first_layer_thickness,
            settings.thickness,
            settings.number_of_layers
        )
        policy = f"{settings.number_of_layers} discrete layers"
    else:
        heights = map_continuous(normalized, settings.first_layer_thickness, settings.thickness)
        policy = "continuous"

    heights[~enhanced.valid] = settings.first_layer_thickness

    field = HeightField(values=heights)
    lo, hi = field.range
    logger.info(f"Height map ({policy}): {lo:.3f}mm to {hi:.3f}mm")
    return field


def renormalize_thickness(
    heights: HeightField,
    first_layer_thickness: float,
    thickness: float,
    epsilon: float = RENORMALIZE_EPSILON
) -> HeightField:
    """
    Stretch the height field back to [first_layer_thickness, thickness].

    Smoothing compresses the range; this restores it. A near-flat field
    (span <= epsilon) is only clamped into range. Operates in place.

    Returns:
        The same HeightField, for chaining
    """
    values = heights.values
    current_min, current_max = heights.range
    span = current_max - current_min

    if span > epsilon:
        scale = (thickness - first_layer_thickness) / span
        values -= current_min
        values *= scale
        values += first_layer_thickness
        np.clip(values, first_layer_thickness, thickness, out=values)
        logger.info(
            f"Renormalized {current_min:.3f}-{current_max:.3f}mm → "
            f"{first_layer_thickness:.3f}-{thickness:.3f}mm"
        )
    else:
        np.clip(values, first_layer_thickness, thickness, out=values)
        logger.info(f"Near-flat height field (span={span:.2e}mm), clamped only")

    return heights
