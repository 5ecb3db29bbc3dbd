"""
Brightness preprocessing and edge enhancement.

Raw 8-bit grayscale pixels → float brightness in [0, 1] → unsharp-masked
brightness. Fields are row-major (height, width) arrays, so sample (x, y)
lives at flat index y * width + x.
"""

import logging
from dataclasses import dataclass
from typing import Union

import numpy as np
from scipy.ndimage import correlate1d

from common.errors import ImageBufferError

logger = logging.getLogger(__name__)

PixelBuffer = Union[bytes, bytearray, memoryview, np.ndarray]

# Unsharp mask constants
UNSHARP_AMOUNT = 1.0
UNSHARP_RADIUS = 1
UNSHARP_THRESHOLD = 0.02

_KERNEL_3 = np.array([1.0, 2.0, 1.0]) / 4.0
_KERNEL_5 = np.array([1.0, 4.0, 6.0, 4.0, 1.0]) / 16.0


@dataclass
class BrightnessField:
    """
    Brightness samples in [0, 1] with cached global statistics.

    ``valid`` marks samples that were present in the input buffer;
    ``min_brightness``/``max_brightness`` only consider those.
    """
    values: np.ndarray  # (height, width) float64
    valid: np.ndarray  # (height, width) bool
    min_brightness: float
    max_brightness: float

    @property
    def width(self) -> int:
        return self.values.shape[1]

    @property
    def height(self) -> int:
        return self.values.shape[0]

    @property
    def flat(self) -> np.ndarray:
        """Row-major view of the samples."""
        return self.values.reshape(-1)

    @property
    def is_degenerate(self) -> bool:
        """True when every supplied sample has the same brightness."""
        return not self.max_brightness > self.min_brightness

    @classmethod
    def from_values(cls, values: np.ndarray, valid: np.ndarray) -> "BrightnessField":
        if valid.any():
            supplied = values[valid]
            lo, hi = float(supplied.min()), float(supplied.max())
        else:
            lo = hi = 0.0
        return cls(values=values, valid=valid, min_brightness=lo, max_brightness=hi)


def preprocess_brightness(
    buffer: PixelBuffer,
    width: int,
    height: int
) -> BrightnessField:
    """
    Normalize a raw grayscale buffer into a brightness field.

    One byte per pixel, row-major. A short buffer is padded: missing
    samples read as 0 and are marked invalid. Only an empty buffer is
    rejected. Trailing extra bytes are ignored.

    Args:
        buffer: Raw 8-bit pixels
        width: Grid width in samples
        height: Grid height in samples

    Returns:
        BrightnessField of shape (height, width)
    """
    if isinstance(buffer, np.ndarray):
        pixels = np.asarray(buffer, dtype=np.uint8).reshape(-1)
    else:
        pixels = np.frombuffer(buffer, dtype=np.uint8)

    n_cells = width * height
    shortfall = n_cells - len(pixels)

    if len(pixels) == 0:
        raise ImageBufferError(f"Empty pixel buffer for a {width}x{height} grid")
    if shortfall > 0:
        logger.warning(
            f"Pixel buffer holds {len(pixels)} bytes, expected {n_cells} "
            f"for a {width}x{height} grid; padding {shortfall} samples with black"
        )

    flat = np.zeros(n_cells, dtype=np.float64)
    n_supplied = min(n_cells, len(pixels))
    flat[:n_supplied] = pixels[:n_supplied] / 255.0
    np.clip(flat, 0.0, 1.0, out=flat)

    valid = np.zeros(n_cells, dtype=bool)
    valid[:n_supplied] = True

    field = BrightnessField.from_values(flat.reshape(height, width), valid.reshape(height, width))
    logger.info(
        f"Brightness field {width}x{height}: "
        f"min={field.min_brightness:.3f}, max={field.max_brightness:.3f}"
    )
    return field


def separable_blur(values: np.ndarray, radius: int = 1) -> np.ndarray:
    """
    Gaussian-like blur as two 1D passes (horizontal, then vertical).

    radius <= 1 uses [1, 2, 1] / 4, larger radii use [1, 4, 6, 4, 1] / 16.
    Borders replicate the edge sample.
    """
    kernel = _KERNEL_3 if radius <= 1 else _KERNEL_5
    horizontal = correlate1d(values, kernel, axis=1, mode="nearest")
    return correlate1d(horizontal, kernel, axis=0, mode="nearest")


def unsharp_mask(
    field: BrightnessField,
    amount: float = UNSHARP_AMOUNT,
    radius: int = UNSHARP_RADIUS,
    threshold: float = UNSHARP_THRESHOLD
) -> BrightnessField:
    """
    Boost edges by adding back the high-frequency residual.

    Residuals smaller than ``threshold`` are treated as noise and dropped.
    The input field is left untouched.

    Args:
        field: Source brightness
        amount: Edge boost factor
        radius: Blur radius in pixels
        threshold: Noise floor on |original - blurred|

    Returns:
        New BrightnessField, clamped to [0, 1]
    """
    original = field.values
    blurred = separable_blur(original, radius)

    high_freq = original - blurred
    boost = np.where(np.abs(high_freq) < threshold, 0.0, high_freq)
    enhanced = np.clip(original + amount * boost, 0.0, 1.0)

    return BrightnessField.from_values(enhanced, field.valid.copy())
