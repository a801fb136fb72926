"""
Ring-based geometry interpolation between two geographies.

For every region the outer rings of the regular geometry are paired with
the outer rings of the cartogram geometry by nearest centroid. Paired
rings are morphed along their boundaries. A ring without a partner
morphs to (or from) a small placeholder square at its own centroid and
is hidden right at the end of the morph where it would only be a dot.

Holes are not modeled; only outer boundaries take part in the morph.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

import numpy as np
import progressbar
from scipy.spatial.distance import cdist

from pygeomorpher.tools import (
    Ring,
    align_ring_start,
    close_ring,
    coarse_grain_ring,
    enrich_ring_to_n_points,
    enrich_ring_with_points,
    is_finite_number,
    open_ring,
    ring_bounds,
    ring_centroid,
)


RING_VISIBILITY_EPSILON = 1e-3
PLACEHOLDER_SCALE = 0.02
MIN_PLACEHOLDER_SIZE = 1e-4
DEFAULT_MAX_SEGMENT_LENGTH = 10.


def clamp_factor(value: Any) -> float:
    """Clamp a morph factor to [0, 1]; anything that is not a finite number is 0."""
    if not is_finite_number(value):
        return 0.
    return min(max(float(value), 0.), 1.)


def extract_outer_rings(geometry: dict[str, Any] | None) -> list[Ring]:
    """
    Closed outer rings of a Polygon or MultiPolygon.

    Rings with fewer than 3 vertices are dropped, as are all other
    geometry types.
    """
    if not geometry:
        return []

    gtype = geometry.get('type')
    coordinates = geometry.get('coordinates') or []
    if gtype == 'Polygon':
        candidates = [coordinates[0]] if coordinates else []
    elif gtype == 'MultiPolygon':
        candidates = [polygon[0] for polygon in coordinates if polygon]
    else:
        return []

    rings = [close_ring(ring) for ring in candidates]
    return [ring for ring in rings if len(ring) >= 3]


def create_placeholder_ring(reference_ring: Ring) -> Ring | None:
    """
    Small square centered on the centroid of ``reference_ring``.

    The half side is 2% of the larger bounding-box side of the reference
    ring, but at least ``MIN_PLACEHOLDER_SIZE``.
    """
    if not reference_ring:
        return None
    cx, cy = ring_centroid(reference_ring)
    width, height = ring_bounds(reference_ring)
    offset = max(max(width, height) * PLACEHOLDER_SCALE, MIN_PLACEHOLDER_SIZE)

    return close_ring([
        [cx - offset, cy - offset],
        [cx + offset, cy - offset],
        [cx + offset, cy + offset],
        [cx - offset, cy + offset],
    ])


@dataclass(frozen=True)
class RingPair:
    """A regular ring and its cartogram partner; at most one side is None."""
    from_ring: Ring | None
    to_ring: Ring | None


def match_ring_pairs(from_rings: list[Ring], to_rings: list[Ring]) -> list[RingPair]:
    """
    Pair rings greedily by nearest centroid.

    Each ring of ``from_rings``, in order, claims the closest unclaimed
    ring of ``to_rings`` (squared Euclidean distance between centroids).
    On equal distances the ring that comes first in ``to_rings`` wins.
    Unmatched rings of either side are paired with None, leftover
    ``to_rings`` last.

    Parameters
    ----------
    from_rings : list of rings
        Rings of the regular geometry.
    to_rings : list of rings
        Rings of the cartogram geometry.

    Returns
    -------
    list of RingPair
    """
    pairs = []
    claimed = np.zeros(len(to_rings), dtype=bool)

    if from_rings and to_rings:
        from_centroids = np.array([ring_centroid(ring) for ring in from_rings])
        to_centroids = np.array([ring_centroid(ring) for ring in to_rings])
        distances = cdist(from_centroids, to_centroids, 'sqeuclidean')

    for i, ring in enumerate(from_rings):
        best_index = -1
        if to_rings and not claimed.all():
            candidates = np.where(claimed, np.inf, distances[i])
            # argmin returns the first minimum, keeping scan order on ties
            best_index = int(np.argmin(candidates))
            if not candidates[best_index] < np.inf:
                best_index = -1

        if best_index >= 0:
            claimed[best_index] = True
            pairs.append(RingPair(ring, to_rings[best_index]))
        else:
            pairs.append(RingPair(ring, None))

    for index, ring in enumerate(to_rings):
        if not claimed[index]:
            pairs.append(RingPair(None, ring))

    return pairs


class BoundaryMorph:
    """
    Linear morph between two rings with corresponding vertices.

    Both rings are densified so that no edge is longer than
    ``max_segment_length``, brought to the same vertex count, and the
    target ring is re-wound and rotated to line up with the source ring.
    Factors 0 and 1 give back the exact (closed) input rings.

    Parameters
    ----------
    from_ring, to_ring : list of [x, y]
        Source and target rings.
    max_segment_length : float or None, optional
        Densification threshold in coordinate units; None disables it.
    """

    def __init__(self, from_ring: Ring, to_ring: Ring, max_segment_length: float | None = DEFAULT_MAX_SEGMENT_LENGTH) -> None:
        self.from_ring = close_ring(from_ring)
        self.to_ring = close_ring(to_ring)

        start = open_ring(self.from_ring)
        end = open_ring(self.to_ring)

        if max_segment_length:
            start = enrich_ring_with_points(start, max_segment_length)
            end = enrich_ring_with_points(end, max_segment_length)

        n_points = max(len(start), len(end))
        start = enrich_ring_to_n_points(start, n_points)
        end = enrich_ring_to_n_points(end, n_points)

        self._start = start
        self._end = align_ring_start(start, end)

    def __call__(self, factor: float) -> Ring:
        if factor <= 0:
            return [list(coordinate) for coordinate in self.from_ring]
        if factor >= 1:
            return [list(coordinate) for coordinate in self.to_ring]

        blended = (1 - factor) * self._start + factor * self._end
        ring = blended.tolist()
        ring.append(list(ring[0]))
        return ring


def _always_visible(factor: float) -> bool:
    return True


def _visible_before_end(factor: float) -> bool:
    return factor < 1 - RING_VISIBILITY_EPSILON


def _visible_after_start(factor: float) -> bool:
    return factor > RING_VISIBILITY_EPSILON


class RingInterpolator:
    """
    Morph of one ring pair, with a visibility rule.

    Attributes
    ----------
    morph : callable
        factor -> ring.
    visibility : callable
        factor -> bool.
    """

    def __init__(self, morph: Callable[[float], Ring], visibility: Callable[[float], bool] = _always_visible) -> None:
        self.morph = morph
        self.visibility = visibility

    @classmethod
    def from_pair(cls, pair: RingPair, max_segment_length: float | None = DEFAULT_MAX_SEGMENT_LENGTH) -> RingInterpolator | None:
        """
        Build the interpolator for a ring pair.

        A ring that only exists in the regular geometry shrinks towards a
        placeholder and is hidden above ``1 - RING_VISIBILITY_EPSILON``; a
        ring that only exists in the cartogram grows out of a placeholder
        and is hidden below ``RING_VISIBILITY_EPSILON``.
        """
        if pair.from_ring is not None and pair.to_ring is not None:
            return cls(BoundaryMorph(pair.from_ring, pair.to_ring, max_segment_length))

        if pair.from_ring is not None:
            placeholder = create_placeholder_ring(pair.from_ring)
            return cls(
                BoundaryMorph(pair.from_ring, placeholder, max_segment_length),
                _visible_before_end,
            )

        if pair.to_ring is not None:
            placeholder = create_placeholder_ring(pair.to_ring)
            return cls(
                BoundaryMorph(placeholder, pair.to_ring, max_segment_length),
                _visible_after_start,
            )

        return None

    def interpolate(self, factor: float) -> Ring:
        return self.morph(factor)

    def is_visible(self, factor: float) -> bool:
        return self.visibility(factor)


class GeometryInterpolator:
    """
    Morph of a whole region geometry.

    Parameters
    ----------
    ring_interpolators : list of RingInterpolator
        One interpolator per ring pair of the region.
    geometry_type : {'Polygon', 'MultiPolygon'}
        Output geometry type.

    Examples
    --------
    >>> interpolator = GeometryInterpolator.from_geometries(regular_geometry, cartogram_geometry)
    >>> interpolator.to_geometry(0.5)
    {'type': 'Polygon', 'coordinates': [[...]]}
    """

    def __init__(self, ring_interpolators: list[RingInterpolator], geometry_type: str) -> None:
        self.ring_interpolators = ring_interpolators
        self.geometry_type = geometry_type

    @classmethod
    def from_geometries(
        cls,
        from_geometry: dict[str, Any] | None,
        to_geometry: dict[str, Any] | None,
        max_segment_length: float | None = DEFAULT_MAX_SEGMENT_LENGTH,
        simplify_threshold: float | None = None,
    ) -> GeometryInterpolator | None:
        """
        Pair the outer rings of two geometries and build their morphs.

        Parameters
        ----------
        from_geometry : dict or None
            Regular geometry (Polygon or MultiPolygon).
        to_geometry : dict or None
            Cartogram geometry (Polygon or MultiPolygon).
        max_segment_length : float or None, optional
            Densification threshold passed to ``BoundaryMorph``.
        simplify_threshold : float, optional
            Visvalingam-Whyatt threshold applied to all rings first.

        Returns
        -------
        GeometryInterpolator or None
            None if neither geometry has a ring with 3 or more vertices.
        """
        from_rings = extract_outer_rings(from_geometry)
        to_rings = extract_outer_rings(to_geometry)

        if simplify_threshold is not None:
            from_rings = [coarse_grain_ring(ring, simplify_threshold) for ring in from_rings]
            to_rings = [coarse_grain_ring(ring, simplify_threshold) for ring in to_rings]

        if not from_rings and not to_rings:
            return None

        ring_interpolators = [
            RingInterpolator.from_pair(pair, max_segment_length)
            for pair in match_ring_pairs(from_rings, to_rings)
        ]
        ring_interpolators = [entry for entry in ring_interpolators if entry is not None]

        if not ring_interpolators:
            return None

        any_multi = any(
            geometry is not None and geometry.get('type') == 'MultiPolygon'
            for geometry in (from_geometry, to_geometry)
        )
        geometry_type = 'Polygon' if len(ring_interpolators) == 1 and not any_multi else 'MultiPolygon'

        return cls(ring_interpolators, geometry_type)

    def interpolate(self, factor: float) -> list[Ring]:
        """
        Visible rings at ``factor``.

        The factor is clamped to [0, 1]. Every ring is closed; rings with
        fewer than 4 vertices after closing are dropped.
        """
        factor = clamp_factor(factor)
        rings = []
        for entry in self.ring_interpolators:
            if not entry.is_visible(factor):
                continue
            ring = close_ring(entry.interpolate(factor))
            if len(ring) >= 4:
                rings.append(ring)
        return rings

    def coordinates(self, factor: float) -> list | None:
        """GeoJSON coordinates at ``factor``, or None if no ring is visible."""
        rings = self.interpolate(factor)
        if not rings:
            return None
        if self.geometry_type == 'Polygon':
            return [rings[0]]
        return [[ring] for ring in rings]

    def to_geometry(self, factor: float) -> dict[str, Any] | None:
        """GeoJSON geometry at ``factor``, or None if no ring is visible."""
        coordinates = self.coordinates(factor)
        if coordinates is None:
            return None
        return {'type': self.geometry_type, 'coordinates': coordinates}


def build_interpolators(
    geography_lookup: dict[str, dict],
    cartogram_lookup: dict[str, dict],
    max_segment_length: float | None = DEFAULT_MAX_SEGMENT_LENGTH,
    simplify_threshold: float | None = None,
    verbose: bool = False,
) -> dict[str, GeometryInterpolator]:
    """
    Build one geometry interpolator per region of the regular geography.

    Regions only present in the cartogram lookup are not visited.

    Parameters
    ----------
    geography_lookup : dict
        Join key -> regular feature, in output coordinates.
    cartogram_lookup : dict
        Join key -> cartogram feature, in output coordinates.
    max_segment_length : float or None, optional
        Densification threshold for boundary morphs.
    simplify_threshold : float, optional
        Visvalingam-Whyatt threshold for the rings.
    verbose : bool, optional
        Show progress (default: False).

    Returns
    -------
    dict
        Join key -> GeometryInterpolator, in regular-geography order.
    """
    if verbose:
        bar = progressbar.ProgressBar(
            max_value = max(len(geography_lookup), 1),
            widgets = [
                progressbar.SimpleProgress(), " ",
                progressbar.ETA(), " building ring interpolators ...",
            ]
        )

    interpolators = {}
    for i, (code, feature) in enumerate(geography_lookup.items()):
        cartogram_feature = cartogram_lookup.get(code) or {}
        interpolator = GeometryInterpolator.from_geometries(
            feature.get('geometry'),
            cartogram_feature.get('geometry'),
            max_segment_length=max_segment_length,
            simplify_threshold=simplify_threshold,
        )
        if interpolator is not None:
            interpolators[code] = interpolator

        if verbose:
            bar.update(i + 1)

    return interpolators
