"""
Height-field smoothing.

Each SmoothingSpec variant has one handler registered in ``SMOOTHERS``;
adding a method means adding a variant in ``common.config`` and a handler
here. Every pass reads a snapshot of the previous pass and writes a new
buffer, and a uniform field comes out unchanged.
"""

import logging
from typing import Callable, Dict, Type

import numpy as np
from scipy.ndimage import correlate

from common.config import (
    SmoothingSpec,
    GeometricSmoothing,
    LaplacianSmoothing,
    NoSmoothing,
)
from .heights import HeightField

logger = logging.getLogger(__name__)

GEOMETRIC_CENTER_WEIGHT = 8.0
GEOMETRIC_FALLOFF = 0.3


def geometric_kernel(radius: int = 2) -> np.ndarray:
    """
    Distance-weighted averaging kernel.

    Weight is 8 at the centre and 1 / (1 + 0.3 * d) elsewhere.
    """
    offsets = np.arange(-radius, radius + 1)
    kx, ky = np.meshgrid(offsets, offsets)
    distance = np.sqrt(kx ** 2 + ky ** 2)
    kernel = 1.0 / (1.0 + distance * GEOMETRIC_FALLOFF)
    kernel[radius, radius] = GEOMETRIC_CENTER_WEIGHT
    return kernel


_CROSS = np.array([
    [0.0, 1.0, 0.0],
    [1.0, 0.0, 1.0],
    [0.0, 1.0, 0.0],
])


def _in_bounds_sum(values: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    """Weighted neighbourhood sum that ignores samples outside the grid."""
    return correlate(values, kernel, mode="constant", cval=0.0)


def smooth_geometric(heights: HeightField, spec: GeometricSmoothing) -> None:
    """Weighted 5x5 average, normalized by the weights that fall in bounds."""
    kernel = geometric_kernel()
    weight_total = _in_bounds_sum(np.ones_like(heights.values), kernel)

    current = heights.values
    for _ in range(spec.passes):
        current = _in_bounds_sum(current, kernel) / weight_total

    heights.values[...] = current
    logger.info(f"Applied geometric smoothing: {spec.passes} passes with 5x5 kernel")


def smooth_laplacian(heights: HeightField, spec: LaplacianSmoothing) -> None:
    """
    Relax along the discrete Laplacian: new = old - strength * lap.

    lap = k * centre - (sum of in-bounds 4-neighbours), where k counts
    those neighbours, so border samples are treated like interior ones.
    """
    neighbour_count = _in_bounds_sum(np.ones_like(heights.values), _CROSS)

    current = heights.values
    for _ in range(spec.passes):
        laplacian = neighbour_count * current - _in_bounds_sum(current, _CROSS)
        current = current - spec.strength * laplacian

    heights.values[...] = current
    logger.info(
        f"Applied Laplacian smoothing: {spec.passes} passes with strength {spec.strength}"
    )


def smooth_none(heights: HeightField, spec: NoSmoothing) -> None:
    logger.info("No smoothing applied - preserving maximum detail")


SMOOTHERS: Dict[Type, Callable[[HeightField, SmoothingSpec], None]] = {
    GeometricSmoothing: smooth_geometric,
    LaplacianSmoothing: smooth_laplacian,
    NoSmoothing: smooth_none,
}


def apply_smoothing(heights: HeightField, spec: SmoothingSpec) -> HeightField:
    """
    Smooth the height field in place with the method ``spec`` names.

    Returns:
        The same HeightField, for chaining
    """
    try:
        smoother = SMOOTHERS[type(spec)]
    except KeyError:
        raise ValueError(f"Unknown smoothing method: {spec!r}") from None

    smoother(heights, spec)
    return heights
