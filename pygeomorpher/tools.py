"""
Utility functions for ring handling and morph preparation.

This module provides helper functions for:
- Closing, measuring and locating polygon rings
- Enriching rings with additional vertices for smoother morphs
- Aligning two rings so their vertices correspond one to one
- Simplifying ring boundaries
- Computing feature centroids and coercing tabular values to numbers
"""

from __future__ import annotations

import math
import numbers
from typing import Any, Generator, Iterator, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray
from shapely.geometry import LineString
import visvalingamwyatt as vw


Ring = list[list[float]]


def pair_iterate(l: Sequence[Any]) -> Generator[tuple[Any, Any], None, None]:
    """
    Iterate over consecutive pairs of elements in a sequence.

    Parameters
    ----------
    l : sequence
        Input sequence to iterate over.

    Yields
    ------
    tuple
        Consecutive pairs (l[i-1], l[i]) for i in range(1, len(l)).

    Examples
    --------
    >>> list(pair_iterate([1, 2, 3, 4]))
    [(1, 2), (2, 3), (3, 4)]
    """
    for i in range(1, len(l)):
        yield l[i-1], l[i]


def to_number(value: Any) -> float:
    """
    Coerce a tabular value to a float.

    Booleans count as 0/1, numeric strings are parsed, blank strings
    are 0 and everything else is NaN.
    """
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, numbers.Real):
        return float(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return 0.0
        try:
            return float(stripped)
        except ValueError:
            return math.nan
    return math.nan


def is_finite_number(value: Any) -> bool:
    """Return True for finite real numbers (booleans excluded)."""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    return math.isfinite(value)


def _is_coordinate(coordinate: Any) -> bool:
    return isinstance(coordinate, (list, tuple)) and len(coordinate) >= 2


def close_ring(ring: Sequence[Sequence[float]] | None) -> Ring:
    """
    Return a copy of ``ring`` whose last vertex equals its first.

    Parameters
    ----------
    ring : sequence of [x, y]
        Ring coordinates, closed or open.

    Returns
    -------
    list of list
        Closed ring, or an empty list if ``ring`` is empty or its first
        or last entry is not a coordinate.
    """
    if ring is None or len(ring) == 0:
        return []
    first, last = ring[0], ring[-1]
    if not _is_coordinate(first) or not _is_coordinate(last):
        return []
    closed = [list(coordinate) for coordinate in ring]
    if first[0] == last[0] and first[1] == last[1]:
        return closed
    closed.append(list(first))
    return closed


def _finite_vertices(ring: Sequence[Sequence[float]] | None) -> NDArray[np.floating]:
    vertices = [
        (coordinate[0], coordinate[1])
        for coordinate in ring or []
        if _is_coordinate(coordinate)
        and is_finite_number(coordinate[0])
        and is_finite_number(coordinate[1])
    ]
    return np.array(vertices, dtype=float).reshape(-1, 2)


def ring_centroid(ring: Sequence[Sequence[float]] | None) -> tuple[float, float]:
    """
    Arithmetic mean of the finite vertices of a ring.

    Every vertex counts, including a closing vertex. Returns (0, 0) when
    the ring has no finite vertex.
    """
    vertices = _finite_vertices(ring)
    if len(vertices) == 0:
        return 0., 0.
    cx, cy = vertices.mean(axis=0)
    return float(cx), float(cy)


def ring_bounds(ring: Sequence[Sequence[float]] | None) -> tuple[float, float]:
    """
    Width and height of the bounding box of the finite vertices of a ring.

    Returns (0, 0) when the ring has no finite vertex.
    """
    vertices = _finite_vertices(ring)
    if len(vertices) == 0:
        return 0., 0.
    width, height = vertices.max(axis=0) - vertices.min(axis=0)
    return float(max(width, 0.)), float(max(height, 0.))


def open_ring(ring: Sequence[Sequence[float]]) -> NDArray[np.floating]:
    """
    Convert a ring to an (n, 2) array without its closing vertex.
    """
    points = np.array([coordinate[:2] for coordinate in ring], dtype=float).reshape(-1, 2)
    if len(points) > 1 and np.array_equal(points[0], points[-1]):
        points = points[:-1]
    return points


def signed_ring_area(points: ArrayLike) -> float:
    """
    Signed area of an open ring (positive for counter-clockwise winding).
    """
    points = np.asarray(points, dtype=float)
    if len(points) < 3:
        return 0.
    x = points[:, 0]
    y = points[:, 1]
    return 0.5 * float(np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y))


def enrich_ring_with_points(points: ArrayLike, delta: float) -> NDArray[np.floating]:
    """
    Add interpolated points along ring edges at regular intervals.

    Every edge of the (implicitly closed) ring is split so that no
    resulting segment is longer than ``delta``.

    Parameters
    ----------
    points : array-like of shape (n, 2)
        Open ring (no closing vertex).
    delta : float
        Maximum distance between consecutive points along edges.

    Returns
    -------
    numpy.ndarray
        Open ring with additional interpolated vertices.
    """
    points = np.asarray(points, dtype=float)
    closed = np.vstack([points, points[:1]])
    coords = []
    for seg_start, seg_end in pair_iterate(closed):
        segment = LineString([seg_start, seg_end])
        n_vals = int(np.ceil(segment.length / delta))
        if n_vals > 1:
            # Interpolate points along the segment
            interpol_vals = np.linspace(0, 1, n_vals + 1)
            for val in interpol_vals[:-1]:
                P = segment.interpolate(val, normalized=True)
                coords.append(P.coords[0])
        else:
            coords.append(tuple(seg_start))
    return np.array(coords, dtype=float).reshape(-1, 2)


def enrich_ring_to_n_points(points: ArrayLike, n_total: int) -> NDArray[np.floating]:
    """
    Enrich a ring to have exactly ``n_total`` vertices.

    New points go to the segments that are longest after splitting, so
    that long edges are subdivided first. Used for matching vertex counts
    between two rings before blending them.

    Parameters
    ----------
    points : array-like of shape (n, 2)
        Open ring (no closing vertex).
    n_total : int
        Target total number of vertices.

    Returns
    -------
    numpy.ndarray
        Open ring with exactly ``n_total`` vertices, or the input if it
        already has >= ``n_total`` vertices.
    """
    points = np.asarray(points, dtype=float)
    n_points = len(points)
    new_points = n_total - n_points

    if new_points <= 0:
        return points

    closed = np.vstack([points, points[:1]])
    lengths = np.linalg.norm(np.diff(closed, axis=0), axis=1)

    points_per_segment = np.zeros(n_points, dtype=int)
    while new_points > 0:
        current_segment = int(np.argmax(lengths / (points_per_segment + 1)))
        points_per_segment[current_segment] += 1
        new_points -= 1

    coords = []
    for (seg_start, seg_end), n_extra in zip(pair_iterate(closed), points_per_segment):
        for val in np.linspace(0, 1, n_extra + 2)[:-1]:
            coords.append(seg_start + val * (seg_end - seg_start))

    return np.array(coords, dtype=float)


def align_ring_start(reference: ArrayLike, ring: ArrayLike) -> NDArray[np.floating]:
    """
    Reorder ``ring`` so that its vertices correspond to ``reference``.

    Both rings must be open and have the same vertex count. The winding
    of ``ring`` is flipped if it differs from the winding of ``reference``,
    then ``ring`` is rotated to the start offset with the smallest summed
    squared distance to ``reference``.
    """
    reference = np.asarray(reference, dtype=float)
    ring = np.asarray(ring, dtype=float)

    if signed_ring_area(reference) * signed_ring_area(ring) < 0:
        ring = ring[::-1]

    best_offset = 0
    best_distance = np.inf
    for offset in range(len(ring)):
        distance = np.sum((reference - np.roll(ring, -offset, axis=0))**2)
        if distance < best_distance:
            best_distance = distance
            best_offset = offset

    return np.roll(ring, -best_offset, axis=0)


def coarse_grain_ring(ring: Ring, th: float) -> Ring:
    """
    Simplify a closed ring using the Visvalingam-Whyatt algorithm.

    Parameters
    ----------
    ring : list of [x, y]
        Closed ring.
    th : float
        Simplification threshold. Higher values = more simplification.

    Returns
    -------
    list of list
        Simplified closed ring, or the input ring if simplification would
        leave fewer than 4 vertices.
    """
    if len(ring) < 4:
        return ring
    simplified = vw.Simplifier(ring).simplify(threshold=th)
    if len(simplified) < 4:
        return ring
    return [[float(x), float(y)] for x, y in simplified]


def _iter_centroid_coordinates(geometry: dict[str, Any]) -> Iterator[Sequence[float]]:
    gtype = geometry.get('type')
    coordinates = geometry.get('coordinates') or []
    if gtype == 'GeometryCollection':
        for geom in geometry.get('geometries') or []:
            yield from _iter_centroid_coordinates(geom)
    elif gtype == 'Point':
        yield coordinates
    elif gtype in ('MultiPoint', 'LineString'):
        yield from coordinates
    elif gtype == 'MultiLineString':
        for line in coordinates:
            yield from line
    elif gtype == 'Polygon':
        # closing vertices would count the first vertex twice
        for ring in coordinates:
            yield from ring[:-1]
    elif gtype == 'MultiPolygon':
        for polygon in coordinates:
            for ring in polygon:
                yield from ring[:-1]


def feature_centroid(geometry: dict[str, Any] | None) -> list[float] | None:
    """
    Mean position of all vertices of a GeoJSON geometry.

    Closing vertices of polygon rings are skipped.

    Parameters
    ----------
    geometry : dict
        GeoJSON geometry.

    Returns
    -------
    list of float or None
        [x, y] centroid, or None if the geometry has no vertices.
    """
    if not geometry:
        return None
    vertices = _finite_vertices(list(_iter_centroid_coordinates(geometry)))
    if len(vertices) == 0:
        return None
    cx, cy = vertices.mean(axis=0)
    return [float(cx), float(cy)]
