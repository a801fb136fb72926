"""
Normalization of cartogram inputs into GeoJSON.

A cartogram geography can be supplied as GeoJSON or as a grid: a list of
records carrying a row, a column and a join key, optionally as CSV text
or wrapped in an object with a ``records`` list. Grids are turned into
one square polygon per record, laid out over an extent in the same
coordinate space as the regular geography.
"""

from __future__ import annotations

import io
import math
from collections.abc import Mapping
from copy import deepcopy
from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Union

import geopandas as gpd
import pandas as pd

from pygeomorpher.exceptions import ConfigurationError
from pygeomorpher.tools import is_finite_number, to_number


GEOJSON_TYPES = frozenset([
    'FeatureCollection',
    'Feature',
    'GeometryCollection',
    'Polygon',
    'MultiPolygon',
])

ROW_ORIENTATIONS = ('top', 'bottom')
COL_ORIENTATIONS = ('left', 'right')
MAX_CELL_PADDING = 0.49


@dataclass(frozen=True)
class GeometryInput:
    """Cartogram already given as GeoJSON."""
    geojson: dict


@dataclass(frozen=True)
class RecordRows:
    """Cartogram given as a list of grid records."""
    records: list


@dataclass(frozen=True)
class DelimitedText:
    """Cartogram given as CSV text with a header row."""
    text: str


@dataclass(frozen=True)
class RecordsWrapper:
    """Cartogram given as an object holding a ``records`` list."""
    records: list


CartogramInput = Union[GeometryInput, RecordRows, DelimitedText, RecordsWrapper]


def is_geojson(value: Any) -> bool:
    """True if ``value`` is a mapping whose ``type`` is a supported GeoJSON type."""
    return isinstance(value, Mapping) and isinstance(value.get('type'), str) \
        and value['type'] in GEOJSON_TYPES


def sniff_cartogram_input(raw: Any) -> CartogramInput:
    """
    Classify a raw cartogram input.

    Parameters
    ----------
    raw : dict, list or str
        GeoJSON, a list of record mappings, CSV text or a mapping with a
        ``records`` list.

    Returns
    -------
    GeometryInput, RecordRows, DelimitedText or RecordsWrapper

    Raises
    ------
    ConfigurationError
        If the input is missing or has none of the supported shapes.
    """
    if isinstance(raw, (GeometryInput, RecordRows, DelimitedText, RecordsWrapper)):
        return raw

    if raw is None or raw == '':
        raise ConfigurationError("Cartogram input is required")

    if is_geojson(raw):
        return GeometryInput(raw)

    if isinstance(raw, (list, tuple)):
        if len(raw) == 0:
            raise ConfigurationError("Cartogram input array is empty")
        if isinstance(raw[0], Mapping):
            return RecordRows(list(raw))
        raise ConfigurationError("Unsupported cartogram array format. Provide mappings with row/col values.")

    if isinstance(raw, str):
        return DelimitedText(raw)

    if isinstance(raw, Mapping) and isinstance(raw.get('records'), (list, tuple)):
        return RecordsWrapper(list(raw['records']))

    raise ConfigurationError("Unsupported cartogram input format")


@dataclass
class GridOptions:
    """
    Layout options for grid cartograms.

    Attributes
    ----------
    row_field, col_field : str
        Record fields holding the grid row and column.
    id_field : str, optional
        Record field holding the join key (default: the join property).
    include_source_properties : bool
        Copy every record field into the cell properties.
    cell_padding : float
        Fraction of each cell's width/height left empty, in [0, 0.49].
    row_orientation : {'top', 'bottom'}
        Edge of the extent where the smallest row index is placed.
    col_orientation : {'left', 'right'}
        Edge of the extent where the smallest column index is placed.
    extent : sequence of 4 floats, optional
        [min_x, min_y, max_x, max_y]; defaults to the bounds of the
        regular geography.
    property_mapper : callable, optional
        Called as ``property_mapper(source=..., join_value=..., row=...,
        col=...)``; a returned mapping is merged into the cell properties.
    """

    row_field: str = 'row'
    col_field: str = 'col'
    id_field: str | None = None
    include_source_properties: bool = True
    cell_padding: float = 0.08
    row_orientation: str = 'top'
    col_orientation: str = 'left'
    extent: Any = None
    property_mapper: Callable[..., Any] | None = None

    @classmethod
    def from_options(cls, options: GridOptions | Mapping[str, Any] | None, join_property: str | None = None) -> GridOptions:
        """
        Build validated options from a mapping or another ``GridOptions``.

        Unknown orientations fall back to the defaults, the padding is
        clamped to [0, 0.49] and the id field defaults to ``join_property``.
        """
        if options is None:
            options = {}
        if isinstance(options, GridOptions):
            merged = replace(options)
        else:
            known = {f.name for f in fields(cls)}
            merged = cls(**{key: value for key, value in options.items() if key in known})

        if merged.id_field is None:
            merged.id_field = join_property if join_property is not None else 'id'
        if merged.row_orientation not in ROW_ORIENTATIONS:
            merged.row_orientation = cls.row_orientation
        if merged.col_orientation not in COL_ORIENTATIONS:
            merged.col_orientation = cls.col_orientation
        merged.cell_padding = _clamp_padding(merged.cell_padding)
        return merged


def _clamp_padding(value: Any) -> float:
    if not is_finite_number(value):
        return 0.
    return min(max(float(value), 0.), MAX_CELL_PADDING)


def parse_csv(text: str, delimiter: str = ',', trim: bool = True, headers: bool = True) -> list:
    """
    Tokenize delimited text into records.

    Fields may be quoted with double quotes (``""`` escapes a quote),
    lines may end with LF or CRLF. All values are kept as strings.
    Rows longer than the first row are cut to its width, shorter rows
    are padded with empty strings.

    Parameters
    ----------
    text : str
        Delimited text.
    delimiter : str, optional
        Field delimiter (default: ',').
    trim : bool, optional
        Strip whitespace around header names and values (default: True).
    headers : bool, optional
        If True, the first row names the columns and a list of dicts is
        returned; otherwise a list of field lists (default: True).

    Returns
    -------
    list
        Records; rows with only blank fields are dropped.

    Raises
    ------
    ConfigurationError
        If the text cannot be tokenized, e.g. an unterminated quote.
    """
    if not isinstance(text, str):
        raise TypeError("parse_csv expects a string input")

    cleaned = text.strip()
    if not cleaned:
        return []

    read_options = dict(
        sep=delimiter,
        header=None,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        engine='python',
    )
    try:
        n_columns = pd.read_csv(io.StringIO(cleaned), nrows=1, **read_options).shape[1]
        # fields beyond the width of the first row are dropped
        frame = pd.read_csv(
            io.StringIO(cleaned),
            on_bad_lines=lambda fields: fields[:n_columns],
            **read_options,
        )
    except pd.errors.ParserError as e:
        raise ConfigurationError(f"Unable to parse cartogram CSV: {e}") from e
    frame = frame.fillna('')
    rows = [
        [value.strip() if trim else value for value in row]
        for row in frame.itertuples(index=False, name=None)
    ]
    rows = [row for row in rows if any(value.strip() for value in row)]

    if not headers:
        return rows

    if not rows:
        return []

    header = rows[0]
    return [dict(zip(header, row)) for row in rows[1:]]


def _bare_features(geojson: Mapping[str, Any]) -> list[dict]:
    gtype = geojson.get('type')
    if gtype == 'FeatureCollection':
        geometries = [feature.get('geometry') for feature in geojson.get('features') or []]
    elif gtype == 'Feature':
        geometries = [geojson.get('geometry')]
    else:
        geometries = [geojson]
    return [
        {'type': 'Feature', 'geometry': geometry, 'properties': {}}
        for geometry in geometries if geometry
    ]


def resolve_extent(extent: Any, regular_geojson: Mapping[str, Any] | None) -> list[float]:
    """
    Return the grid extent [min_x, min_y, max_x, max_y].

    An explicit extent of four finite numbers wins; otherwise the total
    bounds of the regular geography are used.

    Raises
    ------
    ConfigurationError
        If neither source yields four finite numbers.
    """
    if isinstance(extent, (list, tuple)) and len(extent) == 4:
        values = [to_number(value) for value in extent]
        if all(math.isfinite(value) for value in values):
            return values

    if is_geojson(regular_geojson):
        features = _bare_features(regular_geojson)
        if features:
            bounds = gpd.GeoDataFrame.from_features(features).total_bounds
            if all(math.isfinite(value) for value in bounds):
                return [float(value) for value in bounds]

    raise ConfigurationError(
        "Unable to determine extent for grid cartogram. "
        "Provide `extent` in the grid options or a valid regular geography."
    )


def _integral(value: float) -> float | int:
    return int(value) if float(value).is_integer() else value


def normalize_records(records: list, options: GridOptions) -> list[dict]:
    """
    Validate grid records and extract id, row and column.

    Raises
    ------
    ConfigurationError
        If there are no records, a record has no id, or row/column are
        not numeric.
    """
    if not records:
        raise ConfigurationError("Grid cartogram input is empty")

    entries = []
    for index, record in enumerate(records):
        source = record if isinstance(record, Mapping) else {}
        id_value = source.get(options.id_field)
        if id_value is None or id_value == '':
            raise ConfigurationError(
                f"Grid cartogram row {index} is missing identifier column \"{options.id_field}\""
            )

        row = to_number(source.get(options.row_field))
        col = to_number(source.get(options.col_field))
        if not (math.isfinite(row) and math.isfinite(col)):
            raise ConfigurationError(
                f"Grid cartogram row {index} must contain numeric "
                f"\"{options.row_field}\" and \"{options.col_field}\" values"
            )

        entries.append({
            'id': id_value,
            'row': _integral(row),
            'col': _integral(col),
            'source': source,
        })
    return entries


def derive_grid_metrics(entries: list[dict]) -> dict[str, float]:
    """Row/column ranges and counts observed in the records."""
    rows = [entry['row'] for entry in entries]
    cols = [entry['col'] for entry in entries]

    min_row, max_row = min(rows), max(rows)
    min_col, max_col = min(cols), max(cols)
    row_count = max_row - min_row + 1
    col_count = max_col - min_col + 1

    if not (math.isfinite(row_count) and row_count > 0 and math.isfinite(col_count) and col_count > 0):
        raise ConfigurationError("Invalid row/column range detected in grid cartogram input")

    return {
        'min_row': min_row,
        'max_row': max_row,
        'min_col': min_col,
        'max_col': max_col,
        'row_count': row_count,
        'col_count': col_count,
    }


def compute_cell_bounds(entry: dict, metrics: dict, extent: list[float], options: GridOptions) -> tuple[float, float, float, float]:
    """
    Bounds (x0, y0, x1, y1) of the padded cell of one record.
    """
    min_x, min_y, max_x, max_y = extent
    cell_width = (max_x - min_x) / metrics['col_count']
    cell_height = (max_y - min_y) / metrics['row_count']

    pad_x = cell_width * options.cell_padding
    pad_y = cell_height * options.cell_padding
    inner_width = cell_width - pad_x
    inner_height = cell_height - pad_y

    col_index = entry['col'] - metrics['min_col']
    row_index = entry['row'] - metrics['min_row']

    if options.col_orientation == 'left':
        x0 = min_x + col_index * cell_width + pad_x / 2
        x1 = x0 + inner_width
    else:
        x1 = max_x - col_index * cell_width - pad_x / 2
        x0 = x1 - inner_width

    if options.row_orientation == 'top':
        y1 = max_y - row_index * cell_height - pad_y / 2
        y0 = y1 - inner_height
    else:
        y0 = min_y + row_index * cell_height + pad_y / 2
        y1 = y0 + inner_height

    return x0, y0, x1, y1


def create_square_feature(entry: dict, bounds: tuple[float, float, float, float], join_property: str, options: GridOptions) -> dict:
    """Square polygon feature for one grid record."""
    x0, y0, x1, y1 = bounds
    ring = [
        [x0, y0],
        [x1, y0],
        [x1, y1],
        [x0, y1],
        [x0, y0],
    ]

    properties = deepcopy(dict(entry['source'])) if options.include_source_properties else {}
    properties[join_property] = entry['id']
    properties['grid_row'] = entry['row']
    properties['grid_col'] = entry['col']

    if callable(options.property_mapper):
        extra = options.property_mapper(
            source=entry['source'],
            join_value=entry['id'],
            row=entry['row'],
            col=entry['col'],
        )
        if isinstance(extra, Mapping):
            properties.update(extra)

    return {
        'type': 'Feature',
        'id': entry['id'],
        'properties': properties,
        'geometry': {'type': 'Polygon', 'coordinates': [ring]},
    }


def create_grid_cartogram_feature_collection(
    records: list,
    regular_geojson: Mapping[str, Any] | None = None,
    join_property: str = 'code',
    grid_options: GridOptions | Mapping[str, Any] | None = None,
) -> dict:
    """
    Lay out grid records as square polygons.

    Parameters
    ----------
    records : list of dict
        Records with row, column and join key fields.
    regular_geojson : dict, optional
        Regular geography, used for the extent if none is given.
    join_property : str, optional
        Property name the join key is stored under (default: 'code').
    grid_options : GridOptions or dict, optional
        Layout options, see ``GridOptions``.

    Returns
    -------
    dict
        FeatureCollection with one square per record, in record order.

    Examples
    --------
    >>> records = [{'code': 'A', 'row': 0, 'col': 0}, {'code': 'B', 'row': 0, 'col': 1}]
    >>> collection = create_grid_cartogram_feature_collection(
    ...     records, grid_options={'extent': [0, 0, 2, 1], 'cell_padding': 0})
    """
    options = GridOptions.from_options(grid_options, join_property)
    extent = resolve_extent(options.extent, regular_geojson)

    entries = normalize_records(records, options)
    metrics = derive_grid_metrics(entries)

    features = []
    for entry in entries:
        bounds = compute_cell_bounds(entry, metrics, extent, options)
        features.append(create_square_feature(entry, bounds, join_property, options))

    return {'type': 'FeatureCollection', 'features': features}


def normalize_cartogram_input(
    cartogram_input: Any,
    regular_geojson: Mapping[str, Any] | None = None,
    join_property: str = 'code',
    grid_options: GridOptions | Mapping[str, Any] | None = None,
) -> dict:
    """
    Turn any supported cartogram input into GeoJSON.

    Parameters
    ----------
    cartogram_input : CartogramInput or raw value
        Tagged input or a raw value classified by ``sniff_cartogram_input``.
    regular_geojson : dict, optional
        Regular geography in source coordinates (grid extent fallback).
    join_property : str, optional
        Property name for the join key on grid cells (default: 'code').
    grid_options : GridOptions or dict, optional
        Layout options for grid inputs.

    Returns
    -------
    dict
        A deep copy of GeoJSON input, or a FeatureCollection of grid cells.

    Raises
    ------
    ConfigurationError
        For missing, empty or unsupported inputs and invalid grids.
    """
    tagged = sniff_cartogram_input(cartogram_input)

    if isinstance(tagged, GeometryInput):
        return deepcopy(tagged.geojson)

    if isinstance(tagged, DelimitedText):
        records = parse_csv(tagged.text)
        if not records:
            raise ConfigurationError("Parsed cartogram CSV is empty")
    else:
        records = tagged.records

    return create_grid_cartogram_feature_collection(
        records,
        regular_geojson=regular_geojson,
        join_property=join_property,
        grid_options=grid_options,
    )
