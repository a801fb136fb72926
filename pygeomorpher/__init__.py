"""
pygeomorpher - Morph regular geographies into cartograms.

This package joins tabular data onto a regular geography and a cartogram
of it, projects both to longitude/latitude and interpolates every region
between its true shape and its cartogram shape.
"""

from .geomorpher import GeoMorpher, geo_morpher, EASING_FUNCTIONS
from .exceptions import GeoMorpherError, ConfigurationError, NotPreparedError
from .projection import (
    Projection,
    IdentityProjection,
    WebMercatorProjection,
    OSGBProjection,
    CartopyProjection,
    OSGB,
    transform_coordinates,
    transform_geometry,
    to_wgs84_feature_collection,
    is_likely_wgs84,
)
from .cartogram import (
    GridOptions,
    GeometryInput,
    RecordRows,
    DelimitedText,
    RecordsWrapper,
    sniff_cartogram_input,
    parse_csv,
    create_grid_cartogram_feature_collection,
    normalize_cartogram_input,
)
from .enrichment import (
    AGGREGATION_KINDS,
    enrich_geo_data,
    create_lookup,
)
from .interpolation import (
    GeometryInterpolator,
    RingInterpolator,
    build_interpolators,
)
from .tools import (
    enrich_ring_with_points,
    enrich_ring_to_n_points,
    coarse_grain_ring,
    feature_centroid,
)

__version__ = "0.1.0"

__all__ = [
    # Main morpher
    "GeoMorpher",
    "geo_morpher",
    "EASING_FUNCTIONS",
    # Errors
    "GeoMorpherError",
    "ConfigurationError",
    "NotPreparedError",
    # Projections
    "Projection",
    "IdentityProjection",
    "WebMercatorProjection",
    "OSGBProjection",
    "CartopyProjection",
    "OSGB",
    "transform_coordinates",
    "transform_geometry",
    "to_wgs84_feature_collection",
    "is_likely_wgs84",
    # Cartogram inputs
    "GridOptions",
    "GeometryInput",
    "RecordRows",
    "DelimitedText",
    "RecordsWrapper",
    "sniff_cartogram_input",
    "parse_csv",
    "create_grid_cartogram_feature_collection",
    "normalize_cartogram_input",
    # Data enrichment
    "AGGREGATION_KINDS",
    "enrich_geo_data",
    "create_lookup",
    # Interpolation
    "GeometryInterpolator",
    "RingInterpolator",
    "build_interpolators",
    # Utility functions
    "enrich_ring_with_points",
    "enrich_ring_to_n_points",
    "coarse_grain_ring",
    "feature_centroid",
]
