import cartopy.crs as ccrs
import pytest

from pygeomorpher.projection import (
    OSGB,
    CartopyProjection,
    IdentityProjection,
    OSGBProjection,
    WebMercatorProjection,
    is_likely_wgs84,
    to_wgs84_feature_collection,
    transform_coordinates,
    transform_geometry,
)


class ShiftProjection(IdentityProjection):
    name = 'shift'

    def to_geo(self, coord):
        return [coord[0] + 1, coord[1] + 2]


def test_identity_projection():
    assert IdentityProjection().to_geo([-1.25, 51.75]) == [-1.25, 51.75]


def test_web_mercator_projection():
    projection = WebMercatorProjection()
    assert projection.to_geo([0, 0]) == pytest.approx([0, 0], abs=1e-9)
    lng, lat = projection.to_geo([10018754.17, 0])
    assert lng == pytest.approx(90, abs=1e-6)
    assert lat == pytest.approx(0, abs=1e-6)
    lng, lat = projection.to_geo([0, 20037508.34])
    assert lat == pytest.approx(85.0511288, abs=1e-6)


def test_osgb_projection_oxford():
    lng, lat = OSGB.to_geo([451000, 206000])
    # 1e-5 degrees is about a metre
    assert lng == pytest.approx(-1.26114, abs=2e-5)
    assert lat == pytest.approx(51.74992, abs=2e-5)


def test_osgb_projection_inverts_forward_transform():
    osgb = ccrs.OSGB(approx=False)
    for lng, lat in [(-1.2577, 51.752), (1.7162, 52.658), (-3.1883, 55.9533)]:
        easting, northing = osgb.transform_point(lng, lat, ccrs.PlateCarree())
        assert OSGBProjection().to_geo([easting, northing]) == pytest.approx([lng, lat], abs=1e-6)


def test_cartopy_projection():
    projection = CartopyProjection(ccrs.UTM(zone=33))
    lng, lat = projection.to_geo([500000, 0])
    assert lng == pytest.approx(15, abs=1e-6)
    assert lat == pytest.approx(0, abs=1e-6)
    assert 'UTM' in projection.name


def test_transform_coordinates_nested():
    coords = [[[0, 0], [1, 1]], [[2, 2]]]
    assert transform_coordinates(coords, ShiftProjection()) == [[[1, 2], [2, 3]], [[3, 4]]]
    assert transform_coordinates([], ShiftProjection()) == []


def test_transform_geometry_collection():
    geometry = {
        'type': 'GeometryCollection',
        'geometries': [
            {'type': 'Point', 'coordinates': [0, 0]},
            {'type': 'LineString', 'coordinates': [[0, 0], [1, 0]]},
        ],
    }
    transformed = transform_geometry(geometry, ShiftProjection())
    assert transformed['geometries'][0]['coordinates'] == [1, 2]
    assert transformed['geometries'][1]['coordinates'] == [[1, 2], [2, 2]]
    assert geometry['geometries'][0]['coordinates'] == [0, 0]
    assert transform_geometry(None, ShiftProjection()) is None


def test_to_wgs84_feature_collection_does_not_modify_input():
    collection = {
        'type': 'FeatureCollection',
        'features': [
            {'type': 'Feature', 'properties': {'code': 'A'},
             'geometry': {'type': 'Point', 'coordinates': [0, 0]}},
        ],
    }
    projected = to_wgs84_feature_collection(collection, ShiftProjection())
    assert projected['features'][0]['geometry']['coordinates'] == [1, 2]
    assert projected['features'][0]['properties'] == {'code': 'A'}
    assert collection['features'][0]['geometry']['coordinates'] == [0, 0]


def test_to_wgs84_feature_collection_wraps_features_and_geometries():
    feature = {'type': 'Feature', 'properties': {'code': 'A'},
               'geometry': {'type': 'Point', 'coordinates': [0, 0]}}
    wrapped = to_wgs84_feature_collection(feature, ShiftProjection())
    assert wrapped['type'] == 'FeatureCollection'
    assert wrapped['features'][0]['properties'] == {'code': 'A'}

    bare = to_wgs84_feature_collection({'type': 'Point', 'coordinates': [0, 0]}, ShiftProjection())
    assert bare['features'][0]['geometry']['coordinates'] == [1, 2]
    assert bare['features'][0]['properties'] == {}

    assert to_wgs84_feature_collection(None, ShiftProjection()) is None


def _collection(coordinates):
    return {
        'type': 'FeatureCollection',
        'features': [{'type': 'Feature', 'properties': {},
                      'geometry': {'type': 'Polygon', 'coordinates': coordinates}}],
    }


def test_is_likely_wgs84():
    assert is_likely_wgs84(_collection([[[-1.25, 51.75], [-1.2, 51.7]]])) == 'WGS84'
    assert is_likely_wgs84(_collection([[[451300, 206100], [451400, 206200]]])) == 'OSGB'
    assert is_likely_wgs84(_collection([[[1, 1], [2, 2]]])) == 'UNKNOWN'
    assert is_likely_wgs84(_collection([])) is None
    assert is_likely_wgs84({'type': 'FeatureCollection', 'features': []}) is None
    assert is_likely_wgs84(None) is None
