"""
Lithophane Generator - grayscale images to printable STL relief panels.

Pipeline:
- Brightness normalization and unsharp masking
- Brightness → height mapping (discrete printer layers or continuous)
- Height-field smoothing and thickness renormalization
- Closed mesh (relief, base, walls, optional frame) → ASCII STL

Usage:
    python src/run_lithophane.py photo.jpg --width 100 --height 80 --thickness 3
"""

__version__ = "1.0.0"
