import math

import pandas as pd
import pytest

from pygeomorpher.enrichment import (
    aggregate_group,
    create_lookup,
    enrich_geo_data,
    group_by_join_column,
    join_key,
    normalize_aggregated_data,
)


def _collection(*codes):
    return {
        'type': 'FeatureCollection',
        'features': [
            {'type': 'Feature', 'properties': {'code': code, 'name': f'region {code}'},
             'geometry': {'type': 'Point', 'coordinates': [i, 0]}}
            for i, code in enumerate(codes)
        ],
    }


ROWS = [
    {'lsoa': 'A', 'population': 1000, 'households': 400},
    {'lsoa': 'A', 'population': 600, 'households': 200},
    {'lsoa': 'B', 'population': 800, 'households': 300},
]


def _properties(collection):
    return {feature['properties']['code']: feature['properties'] for feature in collection['features']}


def test_join_key():
    assert join_key('A') == 'A'
    assert join_key(1.0) == '1'
    assert join_key(1.5) == '1.5'
    assert join_key(0) == '0'
    assert join_key(None) is None
    assert join_key(math.nan) is None
    assert join_key('') is None


def test_group_by_join_column_canonicalizes_keys():
    rows = [{'id': 1.0, 'v': 1}, {'id': '1', 'v': 2}, {'id': None, 'v': 3}, {'v': 4}, {'id': 0, 'v': 5}]
    groups = group_by_join_column(rows, 'id')
    assert list(groups) == ['1', '0']
    assert groups['1']['v'].tolist() == [1, 2]
    assert group_by_join_column([], 'id') == {}
    assert group_by_join_column([{'other': 1}], 'id') == {}


def test_enrich_sum_without_normalization():
    enriched = enrich_geo_data(
        ROWS, _collection('A', 'B', 'C'),
        aggregations={'population': 'sum', 'households': 'sum'},
        normalize=False,
    )
    properties = _properties(enriched)
    assert properties['A']['population'] == 1600
    assert properties['A']['households'] == 600
    assert properties['B']['population'] == 800
    assert properties['A']['name'] == 'region A'
    assert properties['C'] == {'code': 'C', 'name': 'region C'}


def test_enrich_normalizes_across_keys():
    rows = ROWS + [{'lsoa': 'C', 'population': 1200, 'households': 300}]
    enriched = enrich_geo_data(
        rows, _collection('A', 'B', 'C'),
        aggregations={'population': 'sum'},
    )
    properties = _properties(enriched)
    assert properties['A']['population'] == pytest.approx(1.)
    assert properties['B']['population'] == pytest.approx(0.)
    assert properties['C']['population'] == pytest.approx(0.5)


def test_normalize_aggregated_data_min_max():
    normalized = normalize_aggregated_data({
        'A': {'population': 0},
        'B': {'population': 1600},
        'C': {'population': 800},
    })
    assert [normalized[code]['population'] for code in 'ABC'] == [0., 1., 0.5]


def test_normalize_aggregated_data_constant_column():
    normalized = normalize_aggregated_data({
        'A': {'x': 3, 'label': 'a'},
        'B': {'x': 3, 'label': 'b'},
    })
    assert normalized['A'] == {'x': 0.5, 'label': 'a'}
    assert normalized['B'] == {'x': 0.5, 'label': 'b'}
    assert normalize_aggregated_data({}) == {}


def test_numeric_aggregations():
    rows = [
        {'lsoa': 'A', 'value': 2, 'kind': 'x'},
        {'lsoa': 'A', 'value': '4', 'kind': 'y'},
        {'lsoa': 'A', 'value': 'n/a', 'kind': 'x'},
        {'lsoa': 'A', 'value': None, 'kind': ''},
    ]
    group = group_by_join_column(rows, 'lsoa')['A']

    assert aggregate_group(group, {'value': 'sum'}) == {'value': 6.}
    assert aggregate_group(group, {'value': 'mean'}) == {'value': 3.}
    assert aggregate_group(group, {'value': 'min'}) == {'value': 2.}
    assert aggregate_group(group, {'value': 'max'}) == {'value': 4.}
    assert aggregate_group(group, {'value': 'count'}) == {'value': 3}
    assert aggregate_group(group, {'kind': 'unique_count'}) == {'kind': 2}


def test_array_and_categories():
    rows = [
        {'lsoa': 'A', 'tenure': 'owned'},
        {'lsoa': 'A', 'tenure': 'rented'},
        {'lsoa': 'A', 'tenure': 'owned'},
    ]
    enriched = enrich_geo_data(
        rows, _collection('A'),
        aggregations={'tenure': 'array'},
        normalize=False,
    )
    assert _properties(enriched)['A']['tenure'] == ['owned', 'rented']

    enriched = enrich_geo_data(
        rows, _collection('A'),
        aggregations={'tenure': 'categories'},
        normalize=False,
    )
    properties = _properties(enriched)['A']
    assert properties['tenure_owned'] == 2
    assert properties['tenure_rented'] == 1
    assert 'tenure' not in properties


def test_unknown_kind_and_missing_column_are_skipped():
    enriched = enrich_geo_data(
        ROWS, _collection('A'),
        aggregations={'population': 'median', 'missing': 'sum'},
        normalize=False,
    )
    assert _properties(enriched)['A'] == {'code': 'A', 'name': 'region A'}


def test_reducer_receives_values_and_feature():
    calls = []

    def reducer(values, feature):
        calls.append((values, feature['properties']['code'] if feature else None))
        return max(values)

    enriched = enrich_geo_data(
        ROWS, _collection('A', 'B'),
        aggregations={'population': reducer},
        normalize=False,
    )
    assert _properties(enriched)['A']['population'] == 1000
    assert calls[0] == ([1000, 600], 'A')


def test_enrich_without_data_returns_copy():
    collection = _collection('A')
    for data in (None, []):
        enriched = enrich_geo_data(data, collection, aggregations={'population': 'sum'})
        assert enriched == collection
        assert enriched is not collection

    assert enrich_geo_data(ROWS, None) == {'type': 'FeatureCollection', 'features': []}


def test_enrich_accepts_dataframe_and_numeric_codes():
    frame = pd.DataFrame([
        {'lsoa': 1, 'population': 5},
        {'lsoa': 1, 'population': 7},
    ])
    collection = {
        'type': 'FeatureCollection',
        'features': [{'type': 'Feature', 'properties': {'code': '1'}, 'geometry': None}],
    }
    enriched = enrich_geo_data(frame, collection, aggregations={'population': 'sum'}, normalize=False)
    assert enriched['features'][0]['properties']['population'] == 12


def test_enrich_does_not_modify_input():
    collection = _collection('A')
    enrich_geo_data(ROWS, collection, aggregations={'population': 'sum'})
    assert 'population' not in collection['features'][0]['properties']


def test_create_lookup():
    features = _collection('A', 'B')['features'] + [
        {'type': 'Feature', 'properties': {}, 'geometry': None},
    ]
    lookup = create_lookup(features, lambda feature: feature['properties'].get('code'))
    assert list(lookup) == ['A', 'B']
    assert lookup['B'] is features[1]


def test_unique_count_and_array_with_unhashable_values():
    rows = [
        {'lsoa': 'A', 'tags': ['x', 'y'], 'meta': {'k': 1}},
        {'lsoa': 'A', 'tags': ['x', 'y'], 'meta': {'k': 1}},
        {'lsoa': 'A', 'tags': ['z'], 'meta': {'k': 2}},
    ]
    group = group_by_join_column(rows, 'lsoa')['A']

    assert aggregate_group(group, {'meta': 'unique_count'}) == {'meta': 2}
    assert aggregate_group(group, {'tags': 'unique_count'}) == {'tags': 2}
    assert aggregate_group(group, {'tags': 'array'}) == {'tags': [['x', 'y'], ['z']]}
    assert aggregate_group(group, {'meta': 'array'}) == {'meta': [{'k': 1}, {'k': 2}]}


def test_reducer_cannot_modify_input_features():
    def reducer(values, feature):
        feature['properties']['touched'] = True
        return sum(values)

    collection = _collection('A', 'B')
    enriched = enrich_geo_data(ROWS, collection, aggregations={'population': reducer}, normalize=False)

    assert all('touched' not in feature['properties'] for feature in collection['features'])
    assert _properties(enriched)['A']['population'] == 1600
