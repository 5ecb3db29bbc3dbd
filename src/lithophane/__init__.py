"""
Lithophane: brightness field → height field → closed STL solid.

Main entry point: generate_lithophane(source, settings)
"""

from .build import (
    GenerationResult,
    LithophaneBuild,
    build_lithophane,
    generate_lithophane,
    generate_height_field,
    process_image,
    check_resource_budget,
)
from .brightness import BrightnessField, preprocess_brightness, unsharp_mask, separable_blur
from .heights import HeightField, map_heights, renormalize_thickness
from .smoothing import apply_smoothing
from .mesh import MeshDocument, Triangle, build_mesh
from .stl import serialize_ascii_stl

__all__ = [
    'GenerationResult', 'LithophaneBuild',
    'build_lithophane', 'generate_lithophane', 'generate_height_field',
    'process_image', 'check_resource_budget',
    'BrightnessField', 'preprocess_brightness', 'unsharp_mask', 'separable_blur',
    'HeightField', 'map_heights', 'renormalize_thickness',
    'apply_smoothing',
    'MeshDocument', 'Triangle', 'build_mesh',
    'serialize_ascii_stl',
]
