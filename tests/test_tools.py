import math

import numpy as np
import pytest

from pygeomorpher.tools import (
    align_ring_start,
    close_ring,
    coarse_grain_ring,
    enrich_ring_to_n_points,
    enrich_ring_with_points,
    feature_centroid,
    is_finite_number,
    open_ring,
    pair_iterate,
    ring_bounds,
    ring_centroid,
    signed_ring_area,
    to_number,
)


UNIT_SQUARE = [[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]


def test_pair_iterate():
    assert list(pair_iterate([1, 2, 3, 4])) == [(1, 2), (2, 3), (3, 4)]
    assert list(pair_iterate([1])) == []


def test_to_number():
    assert to_number(3) == 3.
    assert to_number('12.5') == 12.5
    assert to_number(' 7 ') == 7.
    assert to_number('') == 0.
    assert to_number(True) == 1.
    assert math.isnan(to_number('abc'))
    assert math.isnan(to_number(None))
    assert math.isnan(to_number([1]))


def test_is_finite_number():
    assert is_finite_number(1)
    assert is_finite_number(np.float64(2.5))
    assert not is_finite_number(True)
    assert not is_finite_number(math.nan)
    assert not is_finite_number(math.inf)
    assert not is_finite_number('1')


def test_close_ring():
    assert close_ring([[0, 0], [1, 0], [1, 1]]) == [[0, 0], [1, 0], [1, 1], [0, 0]]
    assert close_ring(UNIT_SQUARE) == UNIT_SQUARE
    assert close_ring([]) == []
    assert close_ring(None) == []
    assert close_ring([5, [1, 2]]) == []


def test_close_ring_returns_copy():
    ring = [[0, 0], [1, 0], [1, 1]]
    closed = close_ring(ring)
    closed[0][0] = 99
    assert ring[0][0] == 0


def test_ring_centroid_counts_every_vertex():
    cx, cy = ring_centroid(UNIT_SQUARE)
    assert cx == pytest.approx(0.4)
    assert cy == pytest.approx(0.4)


def test_ring_centroid_ignores_non_finite_vertices():
    assert ring_centroid([[0, 0], [2, 2], [math.nan, 1]]) == (1., 1.)
    assert ring_centroid([]) == (0., 0.)


def test_ring_bounds():
    assert ring_bounds([[0, 0], [4, 1], [2, 3]]) == (4., 3.)
    assert ring_bounds(None) == (0., 0.)


def test_open_ring_and_signed_area():
    points = open_ring(UNIT_SQUARE)
    assert points.shape == (4, 2)
    assert signed_ring_area(points) == pytest.approx(1.)
    assert signed_ring_area(points[::-1]) == pytest.approx(-1.)


def test_enrich_ring_with_points_limits_segment_length():
    square = np.array([[0, 0], [2, 0], [2, 2], [0, 2]], dtype=float)
    enriched = enrich_ring_with_points(square, 1.)

    assert len(enriched) == 8
    closed = np.vstack([enriched, enriched[:1]])
    lengths = np.linalg.norm(np.diff(closed, axis=0), axis=1)
    assert lengths.max() <= 1. + 1e-9


def test_enrich_ring_to_n_points_splits_longest_segments_first():
    square = np.array([[0, 0], [1, 0], [1, 1], [0, 1]], dtype=float)
    enriched = enrich_ring_to_n_points(square, 6)

    np.testing.assert_allclose(enriched, [
        [0, 0], [0.5, 0], [1, 0], [1, 0.5], [1, 1], [0, 1],
    ])


def test_enrich_ring_to_n_points_keeps_larger_rings():
    square = np.array([[0, 0], [1, 0], [1, 1], [0, 1]], dtype=float)
    assert len(enrich_ring_to_n_points(square, 3)) == 4


def test_align_ring_start_fixes_winding_and_offset():
    reference = np.array([[0, 0], [1, 0], [1, 1], [0, 1]], dtype=float)
    clockwise = np.array([[1, 1], [1, 0], [0, 0], [0, 1]], dtype=float)

    np.testing.assert_allclose(align_ring_start(reference, clockwise), reference)


def test_coarse_grain_ring_keeps_rings_that_would_collapse():
    assert coarse_grain_ring(UNIT_SQUARE, 1e9) == UNIT_SQUARE
    triangle = [[0, 0], [1, 0], [0, 1]]
    assert coarse_grain_ring(triangle, 0.1) == triangle


def test_coarse_grain_ring_removes_small_details():
    ring = [[0, 0], [5, 0.001], [10, 0], [10, 10], [0, 10], [0, 0]]
    simplified = coarse_grain_ring(ring, 0.1)
    assert [5., 0.001] not in simplified
    assert simplified[0] == simplified[-1]


def test_feature_centroid():
    assert feature_centroid({'type': 'Polygon', 'coordinates': [UNIT_SQUARE]}) == [0.5, 0.5]
    assert feature_centroid({'type': 'Point', 'coordinates': [3, 4]}) == [3., 4.]
    assert feature_centroid({
        'type': 'MultiPolygon',
        'coordinates': [
            [UNIT_SQUARE],
            [[[2, 0], [3, 0], [3, 1], [2, 1], [2, 0]]],
        ],
    }) == [1.5, 0.5]
    assert feature_centroid(None) is None
    assert feature_centroid({'type': 'Polygon', 'coordinates': []}) is None
