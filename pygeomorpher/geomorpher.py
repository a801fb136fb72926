"""
Morphing between a regular geography and its cartogram.

This module provides the GeoMorpher class, which joins tabular data onto
both geographies, projects them to longitude/latitude and builds one
interpolator per region, so that any intermediate state between the
regular map (factor 0) and the cartogram (factor 1) can be requested.
"""

from __future__ import annotations

import inspect
from copy import deepcopy
from typing import Any, Awaitable, Callable, Mapping

import geopandas as gpd
import pandas as pd
from easing_functions import QuadEaseInOut, CubicEaseInOut

from pygeomorpher.cartogram import GridOptions, is_geojson, normalize_cartogram_input
from pygeomorpher.enrichment import create_lookup, enrich_geo_data, join_key
from pygeomorpher.exceptions import ConfigurationError, NotPreparedError
from pygeomorpher.interpolation import (
    DEFAULT_MAX_SEGMENT_LENGTH,
    build_interpolators,
    clamp_factor,
)
from pygeomorpher.projection import OSGB, Projection, to_wgs84_feature_collection
from pygeomorpher.tools import feature_centroid, to_number


EASING_FUNCTIONS = {
    'QuadEaseInOut': QuadEaseInOut,
    'CubicEaseInOut': CubicEaseInOut,
}


def with_centroid(feature: dict) -> dict:
    """Shallow copy of ``feature`` with a ``centroid`` entry."""
    result = dict(feature)
    result['centroid'] = feature_centroid(feature.get('geometry'))
    return result


class GeoMorpher:
    """
    Interpolate between a regular geography and a cartogram of it.

    Both geographies are enriched with the same tabular data, projected
    to WGS84 and keyed by a join property. After ``prepare()`` every
    accessor returns a fresh deep copy, so results can be modified freely.

    ``prepare()`` must not run concurrently on the same instance. Once it
    has finished, the accessors may be called from several threads.

    Parameters
    ----------
    regular_geojson : dict
        FeatureCollection with the true shapes, in source coordinates.
    cartogram_geojson : dict, list or str
        The cartogram as GeoJSON, grid records, CSV text or a mapping
        with a ``records`` list (see ``normalize_cartogram_input``).
    data : list of dict or pandas.DataFrame, optional
        Tabular rows to join onto the regions.
    get_data : callable, optional
        Zero-argument loader, sync or async, used if ``data`` is None.
        Its result is kept for later preparations.
    join_column : str, optional
        Join column of the tabular rows (default: 'lsoa').
    geojson_join_column : str, optional
        Join property of the features and grid cells (default: 'code').
    aggregations : dict, optional
        Column name -> aggregation kind or reducer callable.
    normalize : bool, optional
        Min-max normalize numeric aggregates (default: True).
    projection : Projection, optional
        Source coordinates -> longitude/latitude (default: OSGB).
    cartogram_grid_options : GridOptions or dict, optional
        Layout options for grid cartogram inputs.
    primary_metric : str, optional
        Property reported as ``primary_metric`` by ``get_key_data()``
        (default: 'population').
    max_segment_length : float or None, optional
        Densify ring edges longer than this before morphing, in output
        coordinate units (default: 10). None disables densification.
    simplify_threshold : float, optional
        Simplify rings with Visvalingam-Whyatt before morphing.

    Examples
    --------
    >>> morpher = GeoMorpher(regular, cartogram, data=rows,
    ...                      aggregations={'population': 'sum'},
    ...                      projection=IdentityProjection())
    >>> asyncio.run(morpher.prepare())
    >>> tween = morpher.get_interpolated_feature_collection(0.25)
    """

    def __init__(
        self,
        regular_geojson: dict,
        cartogram_geojson: Any,
        data: list | pd.DataFrame | None = None,
        get_data: Callable[[], list | Awaitable[list]] | None = None,
        join_column: str = 'lsoa',
        geojson_join_column: str = 'code',
        aggregations: Mapping[str, Any] | None = None,
        normalize: bool = True,
        projection: Projection = OSGB,
        cartogram_grid_options: GridOptions | Mapping[str, Any] | None = None,
        primary_metric: str = 'population',
        max_segment_length: float | None = DEFAULT_MAX_SEGMENT_LENGTH,
        simplify_threshold: float | None = None,
    ) -> None:
        if not is_geojson(regular_geojson):
            raise ConfigurationError("regular_geojson must be a GeoJSON object")
        if cartogram_geojson is None:
            raise ConfigurationError("Cartogram input is required")
        if not callable(getattr(projection, 'to_geo', None)):
            raise ConfigurationError("projection must provide to_geo([x, y])")

        self.regular_geojson = regular_geojson
        self.cartogram_geojson = cartogram_geojson
        self.data = data
        self.get_data = get_data
        self.join_column = join_column
        self.geojson_join_column = geojson_join_column
        self.aggregations = dict(aggregations or {})
        self.normalize = normalize
        self.projection = projection
        self.cartogram_grid_options = cartogram_grid_options
        self.primary_metric = primary_metric
        self.max_segment_length = max_segment_length
        self.simplify_threshold = simplify_threshold

        self._state = None

    def _feature_key(self, feature: dict) -> Any:
        return (feature.get('properties') or {}).get(self.geojson_join_column)

    async def load_data(self) -> list | pd.DataFrame:
        """
        Return the tabular rows, calling ``get_data`` on first use.
        """
        if self.data is not None:
            return self.data
        if callable(self.get_data):
            result = self.get_data()
            if inspect.isawaitable(result):
                result = await result
            self.data = result
            return result
        return []

    async def prepare(self, verbose: bool = False) -> GeoMorpher:
        """
        Build all derived collections, lookups and interpolators.

        Calling it again rebuilds everything from the inputs. If any step
        fails, the previously prepared state is kept.

        Parameters
        ----------
        verbose : bool, optional
            Print progress (default: False).

        Returns
        -------
        GeoMorpher
            ``self``.
        """
        model_data = await self.load_data()

        if verbose:
            print("enriching regular geography ...")
        regular_enriched = enrich_geo_data(
            model_data,
            self.regular_geojson,
            join_column=self.join_column,
            geojson_join_column=self.geojson_join_column,
            aggregations=self.aggregations,
            normalize=self.normalize,
        )

        if verbose:
            print("normalizing and enriching cartogram ...")
        base_cartogram = normalize_cartogram_input(
            self.cartogram_geojson,
            regular_geojson=self.regular_geojson,
            join_property=self.geojson_join_column,
            grid_options=self.cartogram_grid_options,
        )
        cartogram_enriched = enrich_geo_data(
            model_data,
            base_cartogram,
            join_column=self.join_column,
            geojson_join_column=self.geojson_join_column,
            aggregations=self.aggregations,
            normalize=self.normalize,
        )

        if verbose:
            print(f"projecting with {getattr(self.projection, 'name', self.projection)} ...")
        regular_wgs84 = to_wgs84_feature_collection(regular_enriched, self.projection)
        cartogram_wgs84 = to_wgs84_feature_collection(cartogram_enriched, self.projection)

        regular_wgs84['features'] = [with_centroid(feature) for feature in regular_wgs84['features']]
        cartogram_wgs84['features'] = [with_centroid(feature) for feature in cartogram_wgs84['features']]

        geography_lookup = create_lookup(regular_wgs84['features'], self._feature_key)
        cartogram_lookup = create_lookup(cartogram_wgs84['features'], self._feature_key)

        key_data = {}
        for feature in regular_enriched.get('features') or []:
            code = join_key(self._feature_key(feature))
            if code is None:
                continue
            value = (feature.get('properties') or {}).get(self.primary_metric)
            key_data[code] = {
                'id': code,
                'primary_metric': 0. if value is None else to_number(value),
                'feature': feature,
            }

        interpolators = build_interpolators(
            geography_lookup,
            cartogram_lookup,
            max_segment_length=self.max_segment_length,
            simplify_threshold=self.simplify_threshold,
            verbose=verbose,
        )
        if verbose:
            print()
            print(f"prepared {len(interpolators)} region interpolators")

        self._state = {
            'regular_wgs84': regular_wgs84,
            'cartogram_wgs84': cartogram_wgs84,
            'geography_lookup': geography_lookup,
            'cartogram_lookup': cartogram_lookup,
            'key_data': key_data,
            'interpolators': interpolators,
        }
        return self

    def is_prepared(self) -> bool:
        return self._state is not None

    def _assert_prepared(self):
        if not self.is_prepared():
            raise NotPreparedError("GeoMorpher.prepare() must be called before accessing data")

    def get_key_data(self) -> dict[str, dict]:
        """Join key -> ``{'id', 'primary_metric', 'feature'}`` for the regular geography."""
        self._assert_prepared()
        return deepcopy(self._state['key_data'])

    def get_regular_feature_collection(self) -> dict:
        """Enriched regular geography in WGS84, with centroids."""
        self._assert_prepared()
        return deepcopy(self._state['regular_wgs84'])

    def get_cartogram_feature_collection(self) -> dict:
        """Enriched cartogram in WGS84, with centroids."""
        self._assert_prepared()
        return deepcopy(self._state['cartogram_wgs84'])

    def get_geography_lookup(self) -> dict[str, dict]:
        self._assert_prepared()
        return deepcopy(self._state['geography_lookup'])

    def get_cartogram_lookup(self) -> dict[str, dict]:
        self._assert_prepared()
        return deepcopy(self._state['cartogram_lookup'])

    @staticmethod
    def _ease(factor: float, ease: str | None) -> float:
        if ease is None:
            return factor
        if ease not in EASING_FUNCTIONS:
            raise ConfigurationError(
                f"Unknown easing function {ease!r}, choose from {sorted(EASING_FUNCTIONS)}"
            )
        return clamp_factor(EASING_FUNCTIONS[ease]()(factor))

    def get_interpolated_feature_collection(self, factor: float = 0.5, ease: str | None = None) -> dict:
        """
        Regions morphed to ``factor``.

        Parameters
        ----------
        factor : float, optional
            Morph factor, clamped to [0, 1]. 0 is the regular geography,
            1 the cartogram (default: 0.5).
        ease : str, optional
            'QuadEaseInOut' or 'CubicEaseInOut' to ease the factor.

        Returns
        -------
        dict
            FeatureCollection with the regular properties plus
            ``morph_factor``, and a centroid per feature. Regions without
            a visible ring at this factor are left out.
        """
        self._assert_prepared()
        factor = clamp_factor(factor)
        eased = self._ease(factor, ease)

        features = []
        for code, interpolator in self._state['interpolators'].items():
            base_feature = self._state['geography_lookup'].get(code)
            if base_feature is None:
                continue

            geometry = interpolator.to_geometry(eased)
            if geometry is None:
                continue

            feature = {
                'type': 'Feature',
                'properties': {
                    **deepcopy(base_feature.get('properties') or {}),
                    'morph_factor': factor,
                },
                'geometry': geometry,
            }
            if 'id' in base_feature:
                feature['id'] = deepcopy(base_feature['id'])
            features.append(with_centroid(feature))

        return {'type': 'FeatureCollection', 'features': features}

    def get_interpolated_lookup(self, factor: float = 0.5, ease: str | None = None) -> dict[str, dict]:
        collection = self.get_interpolated_feature_collection(factor, ease)
        return create_lookup(collection['features'], self._feature_key)

    @staticmethod
    def _get_geo_df(collection: dict) -> gpd.GeoDataFrame:
        if not collection['features']:
            return gpd.GeoDataFrame(columns=['geometry', 'centroid'], geometry='geometry', crs='EPSG:4326')
        gdf = gpd.GeoDataFrame.from_features(collection['features'], crs='EPSG:4326')
        gdf['centroid'] = pd.Series(
            [feature.get('centroid') for feature in collection['features']],
            index=gdf.index,
            dtype=object,
        )
        return gdf

    def get_regular_geo_df(self) -> gpd.GeoDataFrame:
        """Regular geography as a GeoDataFrame in EPSG:4326."""
        return self._get_geo_df(self.get_regular_feature_collection())

    def get_cartogram_geo_df(self) -> gpd.GeoDataFrame:
        """Cartogram as a GeoDataFrame in EPSG:4326."""
        return self._get_geo_df(self.get_cartogram_feature_collection())

    def get_interpolated_geo_df(self, factor: float = 0.5, ease: str | None = None) -> gpd.GeoDataFrame:
        """Morphed regions as a GeoDataFrame in EPSG:4326."""
        return self._get_geo_df(self.get_interpolated_feature_collection(factor, ease))


async def geo_morpher(morph_factor: float = 0.5, verbose: bool = False, **options: Any) -> dict[str, Any]:
    """
    Build and prepare a GeoMorpher in one call.

    Parameters
    ----------
    morph_factor : float, optional
        Factor of the returned ``tween_lookup`` (default: 0.5).
    verbose : bool, optional
        Print progress while preparing (default: False).
    **options
        Keyword arguments for ``GeoMorpher``.

    Returns
    -------
    dict
        The prepared ``morpher`` together with its key data, regular and
        cartogram collections and lookups, and the interpolated lookup.
    """
    morpher = GeoMorpher(**options)
    await morpher.prepare(verbose=verbose)
    return {
        'morpher': morpher,
        'key_data': morpher.get_key_data(),
        'regular_lookup': morpher.get_geography_lookup(),
        'regular_collection': morpher.get_regular_feature_collection(),
        'cartogram_lookup': morpher.get_cartogram_lookup(),
        'cartogram_collection': morpher.get_cartogram_feature_collection(),
        'tween_lookup': morpher.get_interpolated_lookup(morph_factor),
    }
