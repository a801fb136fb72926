"""
Joining tabular data onto geographies.

Rows are grouped by a join column, aggregated per group according to a
mapping of column names to aggregation kinds, optionally min-max normalized
across groups and merged into the properties of the features sharing the join key.

Aggregation kinds:
- 'sum': numeric sum, values that are not numbers count as 0
- 'mean', 'min', 'max': over numeric values only
- 'count': number of rows with a value
- 'unique_count': number of distinct values
- 'array': distinct values in order of appearance
- 'categories': one ``{column}_{value}`` count per distinct value
- a callable ``reducer(values, feature)``

Unknown kinds leave the column out of the result. Missing values,
``None``, NaN and empty strings are dropped before aggregating.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from copy import deepcopy
from typing import Any, Callable, Iterable

import numpy as np
import pandas as pd

from pygeomorpher.tools import is_finite_number, to_number


AGGREGATION_KINDS = (
    'sum',
    'mean',
    'min',
    'max',
    'count',
    'unique_count',
    'array',
    'categories',
)


def join_key(value: Any) -> str | None:
    """
    Canonical string form of a join value, or None for empty values.

    Integral floats lose their decimal part so that ``1.0`` joins ``'1'``.
    """
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return str(int(value))
    if isinstance(value, str) and value == '':
        return None
    return str(value)


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    if isinstance(value, str) and value == '':
        return False
    return True


def _numeric_values(values: pd.Series) -> pd.Series:
    numeric = values.map(to_number).astype(float)
    return numeric[np.isfinite(numeric)]


def _aggregate_sum(column, values):
    numeric = values.map(to_number).astype(float)
    return {column: float(numeric.where(np.isfinite(numeric), 0.).sum())}


def _aggregate_mean(column, values):
    numeric = _numeric_values(values)
    return {column: float(numeric.mean())} if len(numeric) else {}


def _aggregate_min(column, values):
    numeric = _numeric_values(values)
    return {column: float(numeric.min())} if len(numeric) else {}


def _aggregate_max(column, values):
    numeric = _numeric_values(values)
    return {column: float(numeric.max())} if len(numeric) else {}


def _aggregate_count(column, values):
    return {column: int(len(values))}


def _distinct_values(values):
    """Distinct values in first-seen order. Unhashable values are compared with ``==``."""
    seen = set()
    distinct = []
    for value in values:
        try:
            if value in seen:
                continue
            seen.add(value)
        except TypeError:
            if any(value == other for other in distinct):
                continue
        distinct.append(value)
    return distinct


def _aggregate_unique_count(column, values):
    return {column: len(_distinct_values(values))}


def _aggregate_array(column, values):
    return {column: _distinct_values(values)}


def _aggregate_categories(column, values):
    counts = {}
    for value in values:
        key = f"{column}_{value}"
        counts[key] = counts.get(key, 0) + 1
    return counts


_AGGREGATORS = {
    'sum': _aggregate_sum,
    'mean': _aggregate_mean,
    'min': _aggregate_min,
    'max': _aggregate_max,
    'count': _aggregate_count,
    'unique_count': _aggregate_unique_count,
    'array': _aggregate_array,
    'categories': _aggregate_categories,
}


def group_by_join_column(rows: Iterable[Mapping[str, Any]], join_column: str) -> dict[str, pd.DataFrame]:
    """
    Group rows by the canonical form of their join column.

    Rows without a usable join value are skipped.

    Returns
    -------
    dict
        Join key -> DataFrame of that key's rows, in order of first
        appearance. Cells keep their original Python objects.
    """
    records = [row for row in rows if isinstance(row, Mapping)]
    if not records:
        return {}

    frame = pd.DataFrame(records, dtype=object)
    if join_column not in frame.columns:
        return {}

    keys = frame[join_column].map(join_key)
    mask = keys.notna()
    frame = frame[mask]
    return {key: group for key, group in frame.groupby(keys[mask], sort=False)}


def aggregate_group(
    group: pd.DataFrame,
    aggregations: Mapping[str, str | Callable[[list, Any], Any]],
    feature: dict | None = None,
) -> dict[str, Any]:
    """
    Aggregate the rows of one join key.

    Parameters
    ----------
    group : pandas.DataFrame
        Rows sharing a join key.
    aggregations : dict
        Column name -> aggregation kind or reducer callable.
    feature : dict, optional
        Feature carrying this join key, handed to reducer callables.

    Returns
    -------
    dict
        Aggregated properties. Columns without any present value, and
        columns with an unknown kind, are left out.
    """
    result = {}
    for column, kind in aggregations.items():
        if column not in group.columns:
            continue

        column_values = group[column]
        values = column_values[column_values.map(_is_present)]
        if values.empty:
            continue

        if callable(kind):
            result[column] = kind(values.tolist(), feature)
            continue

        aggregator = _AGGREGATORS.get(kind)
        if aggregator is None:
            # not in AGGREGATION_KINDS: nothing to add for this column
            continue
        result.update(aggregator(column, values))

    return result


def normalize_aggregated_data(aggregated: Mapping[str, Mapping[str, Any]]) -> dict[str, dict[str, Any]]:
    """
    Min-max normalize every numeric property across join keys.

    Values are mapped to [0, 1]; a property with the same value for
    every key maps to 0.5. Non-numeric values are left untouched.
    """
    numeric = pd.DataFrame.from_dict(
        {
            code: {key: value for key, value in values.items() if is_finite_number(value)}
            for code, values in aggregated.items()
        },
        orient='index',
        dtype=float,
    )
    minima = numeric.min()
    maxima = numeric.max()

    normalized = {}
    for code, values in aggregated.items():
        result = dict(values)
        for key, value in values.items():
            if not is_finite_number(value):
                continue
            low, high = float(minima[key]), float(maxima[key])
            result[key] = 0.5 if low == high else (float(value) - low) / (high - low)
        normalized[code] = result
    return normalized


def enrich_geo_data(
    data: Any,
    geojson: dict | None,
    join_column: str = 'lsoa',
    geojson_join_column: str = 'code',
    aggregations: Mapping[str, Any] | None = None,
    normalize: bool = True,
) -> dict:
    """
    Merge aggregated tabular data into the properties of a FeatureCollection.

    Parameters
    ----------
    data : list of dict or pandas.DataFrame
        Tabular rows.
    geojson : dict
        FeatureCollection to enrich. It is not modified.
    join_column : str, optional
        Join column of the rows (default: 'lsoa').
    geojson_join_column : str, optional
        Join property of the features (default: 'code').
    aggregations : dict, optional
        Column name -> aggregation kind or reducer callable.
    normalize : bool, optional
        Min-max normalize numeric aggregates across keys (default: True).

    Returns
    -------
    dict
        Enriched deep copy of ``geojson``. Features without matching
        rows keep their original properties.

    Examples
    --------
    >>> rows = [{'code': 'A', 'pop': 1000}, {'code': 'A', 'pop': 600}]
    >>> enriched = enrich_geo_data(rows, collection, join_column='code',
    ...                            aggregations={'pop': 'sum'}, normalize=False)
    """
    if isinstance(data, pd.DataFrame):
        data = data.to_dict('records')

    if geojson is None:
        return {'type': 'FeatureCollection', 'features': []}

    if not data or not geojson.get('features'):
        return deepcopy(geojson)

    features_by_key = {}
    for feature in geojson['features']:
        key = join_key((feature.get('properties') or {}).get(geojson_join_column))
        if key is not None:
            features_by_key.setdefault(key, deepcopy(feature))

    groups = group_by_join_column(data, join_column)
    aggregated = {
        code: aggregate_group(group, aggregations or {}, features_by_key.get(code))
        for code, group in groups.items()
    }

    if normalize:
        aggregated = normalize_aggregated_data(aggregated)

    enriched = deepcopy(geojson)
    for feature in enriched['features']:
        properties = feature.get('properties') or {}
        key = join_key(properties.get(geojson_join_column))
        if key is None or key not in aggregated:
            continue
        feature['properties'] = {**properties, **aggregated[key]}

    return enriched


def create_lookup(features: Iterable[dict], key_accessor: Callable[[dict], Any]) -> dict[str, dict]:
    """
    Map the canonical join key of each feature to the feature.

    Features without a usable key are skipped; later duplicates win.
    """
    lookup = {}
    for feature in features:
        key = join_key(key_accessor(feature))
        if key is None:
            continue
        lookup[key] = feature
    return lookup
