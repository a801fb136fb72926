"""
Coordinate projections into geographic longitude/latitude.

Every projection exposes a single operation, ``to_geo([x, y]) -> [lng, lat]``.
The helpers in this module apply a projection coordinate-wise to whole
geometries and feature collections. Projections are stateless, so a
single instance can be shared between morphers.

Available projections:
- IdentityProjection: input is already WGS84
- WebMercatorProjection: EPSG:3857 metres
- OSGBProjection: British National Grid eastings/northings
- CartopyProjection: any cartopy coordinate reference system
"""

from __future__ import annotations

from copy import deepcopy
from typing import Any, Sequence

import cartopy.crs as ccrs


class Projection:
    """
    Map source coordinates to geographic [longitude, latitude].

    Subclasses implement ``to_geo``. The output range is not validated;
    a projection returning nonsense produces nonsense geometry.
    """

    name = 'Projection'

    def to_geo(self, coord: Sequence[float]) -> list[float]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class IdentityProjection(Projection):
    """Projection for data already in WGS84 longitude/latitude."""

    name = 'WGS84 (Identity)'

    def to_geo(self, coord):
        return [coord[0], coord[1]]


class CartopyProjection(Projection):
    """
    Projection backed by a cartopy coordinate reference system.

    Parameters
    ----------
    source_crs : cartopy.crs.CRS
        CRS the input coordinates are expressed in.
    target_crs : cartopy.crs.CRS, optional
        Geographic CRS of the output (default: PlateCarree/WGS84).
    name : str, optional
        Human readable name.

    Examples
    --------
    >>> projection = CartopyProjection(ccrs.UTM(zone=33, southern_hemisphere=False))
    >>> lng, lat = projection.to_geo([389612.8, 5822146.7])
    """

    def __init__(
        self,
        source_crs: ccrs.CRS,
        target_crs: ccrs.CRS | None = None,
        name: str | None = None,
    ) -> None:
        self.source_crs = source_crs
        self.target_crs = ccrs.PlateCarree() if target_crs is None else target_crs
        self.name = name if name is not None else f"cartopy: {type(source_crs).__name__}"

    @classmethod
    def from_proj4(cls, definition: str) -> CartopyProjection:
        """Build a projection from a PROJ string such as ``'+proj=utm +zone=33 +datum=WGS84'``."""
        return cls(ccrs.CRS(definition), name=f"proj4: {definition}")

    def to_geo(self, coord):
        lng, lat = self.target_crs.transform_point(coord[0], coord[1], self.source_crs)
        return [float(lng), float(lat)]


class WebMercatorProjection(CartopyProjection):
    """Inverse spherical Web Mercator (EPSG:3857)."""

    def __init__(self) -> None:
        super().__init__(ccrs.Mercator.GOOGLE, name='Web Mercator (EPSG:3857)')


class OSGBProjection(CartopyProjection):
    """
    British National Grid (EPSG:27700) to WGS84.

    Uses the exact transverse Mercator of cartopy's ``OSGB`` CRS together
    with the OSGB36 to WGS84 datum shift applied by PROJ.
    """

    def __init__(self) -> None:
        super().__init__(ccrs.OSGB(approx=False), name='OSGB (British National Grid)')


OSGB = OSGBProjection()


def transform_coordinates(coords: Sequence[Any], projection: Projection) -> list[Any]:
    """
    Apply ``projection`` to a coordinate or a nested coordinate array.
    """
    if len(coords) == 0:
        return []
    if isinstance(coords[0], (list, tuple)):
        return [transform_coordinates(child, projection) for child in coords]
    lng, lat = projection.to_geo(coords)[:2]
    return [lng, lat]


def transform_geometry(geometry: dict[str, Any] | None, projection: Projection) -> dict[str, Any] | None:
    """
    Return a projected copy of a GeoJSON geometry.

    Geometry collections are transformed member by member.
    """
    if not geometry:
        return geometry

    if geometry.get('type') == 'GeometryCollection':
        transformed = dict(geometry)
        transformed['geometries'] = [
            transform_geometry(geom, projection) for geom in geometry.get('geometries') or []
        ]
        return transformed

    transformed = dict(geometry)
    transformed['coordinates'] = transform_coordinates(geometry.get('coordinates') or [], projection)
    return transformed


def to_wgs84_feature_collection(geojson: dict[str, Any] | None, projection: Projection) -> dict[str, Any] | None:
    """
    Project a FeatureCollection, Feature or bare geometry to WGS84.

    Parameters
    ----------
    geojson : dict
        GeoJSON object in source coordinates. It is not modified.
    projection : Projection
        Projection from source coordinates to longitude/latitude.

    Returns
    -------
    dict
        A new FeatureCollection in longitude/latitude. Single features
        and bare geometries are wrapped.
    """
    if geojson is None:
        return None

    cloned = deepcopy(geojson)
    gtype = cloned.get('type')

    if gtype == 'FeatureCollection':
        for feature in cloned.get('features') or []:
            feature['geometry'] = transform_geometry(feature.get('geometry'), projection)
        return cloned

    if gtype == 'Feature':
        cloned['geometry'] = transform_geometry(cloned.get('geometry'), projection)
        return {'type': 'FeatureCollection', 'features': [cloned]}

    return {
        'type': 'FeatureCollection',
        'features': [
            {'type': 'Feature', 'geometry': transform_geometry(cloned, projection), 'properties': {}},
        ],
    }


def is_likely_wgs84(geojson: dict[str, Any] | None) -> str | None:
    """
    Guess the coordinate system of a FeatureCollection from its first vertex.

    Returns
    -------
    str or None
        'WGS84' for longitude/latitude-looking data, 'OSGB' for British
        National Grid-looking data, 'UNKNOWN' if both or neither fit,
        and None if the collection holds no coordinates.
    """
    try:
        point = geojson['features'][0]['geometry']['coordinates']
    except (KeyError, IndexError, TypeError):
        return None
    if not point:
        return None

    while isinstance(point[0], (list, tuple)):
        point = point[0]

    x, y = point[0], point[1]

    in_wgs84_range = -180 <= x <= 180 and -90 <= y <= 90
    # eastings ~0-700000, northings ~0-1300000
    in_osgb_range = 0 <= x <= 800000 and 0 <= y <= 1400000

    if in_wgs84_range and not in_osgb_range:
        return 'WGS84'
    elif in_osgb_range and not in_wgs84_range:
        return 'OSGB'
    else:
        return 'UNKNOWN'
