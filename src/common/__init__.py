"""
Common modules shared by the lithophane pipeline.

Unit Model:
- Physical dimensions and heights are millimetres
- Internal grid = physical size × resolution multiplier
- Model is centred on the origin in X/Y, base at z=0
"""

from .config import (
    LithophaneSettings, Orientation, MeshMetadata,
    SmoothingMethod, GeometricSmoothing, LaplacianSmoothing, NoSmoothing,
    smoothing_from_dict,
)
from .errors import (
    LithophaneError, ImageMetadataError, ImageBufferError,
    SettingsError, ResourceLimitError,
)
from .io import load_grayscale_buffer, read_image_size, save_stl, load_stl, read_stl_text
from .mesh_ops import compute_mesh_stats, winding_agreement, closure_residual, signed_volume

__all__ = [
    'LithophaneSettings', 'Orientation', 'MeshMetadata',
    'SmoothingMethod', 'GeometricSmoothing', 'LaplacianSmoothing', 'NoSmoothing',
    'smoothing_from_dict',
    'LithophaneError', 'ImageMetadataError', 'ImageBufferError',
    'SettingsError', 'ResourceLimitError',
    'load_grayscale_buffer', 'read_image_size', 'save_stl', 'load_stl', 'read_stl_text',
    'compute_mesh_stats', 'winding_agreement', 'closure_residual', 'signed_volume',
]
