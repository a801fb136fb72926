"""
Exceptions raised by pygeomorpher.
"""


class GeoMorpherError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(GeoMorpherError, ValueError):
    """
    Raised when inputs or options cannot be turned into a morph.

    Examples are a missing geometry input, an unsupported cartogram input
    shape, a degenerate grid row/column range or an extent that cannot
    be resolved.
    """


class NotPreparedError(GeoMorpherError, RuntimeError):
    """Raised when an accessor is used before ``GeoMorpher.prepare()``."""
