"""
Exceptions raised by the lithophane pipeline.

Every stage raises; only the outermost entry point
(``lithophane.build.generate_lithophane``) turns them into failure results.
"""


class LithophaneError(ValueError):
    """Base class for input and resource problems the caller can act on."""


class ImageMetadataError(LithophaneError):
    """The source image cannot be read or reports no dimensions."""


class ImageBufferError(LithophaneError):
    """The decoded pixel buffer is empty."""


class SettingsError(LithophaneError):
    """Settings that cannot produce a mesh (e.g. a grid under 2x2 samples)."""


class ResourceLimitError(LithophaneError):
    """The requested grid would not fit the memory budget."""
