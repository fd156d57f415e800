from __future__ import annotations

from geo.aoi import BBox, valid_lat, valid_lon
from geo.view import (
    MapCamera,
    fit_view_to_listings,
    listing_coords,
    moved_significantly,
    zoom_for_span,
)


def test_moved_significantly_thresholds():
    base = MapCamera(lat=42.0, lon=-71.0, zoom=13.0)
    assert moved_significantly(None, base)
    assert not moved_significantly(base, MapCamera(lat=42.0005, lon=-71.0, zoom=13.0))
    assert not moved_significantly(base, MapCamera(lat=42.0, lon=-71.0009, zoom=13.9))
    assert moved_significantly(base, MapCamera(lat=42.002, lon=-71.0, zoom=13.0))
    assert moved_significantly(base, MapCamera(lat=42.0, lon=-70.998, zoom=13.0))
    assert moved_significantly(base, MapCamera(lat=42.0, lon=-71.0, zoom=12.0))


def test_moved_significantly_custom_thresholds():
    base = MapCamera(lat=42.0, lon=-71.0, zoom=13.0)
    cur = MapCamera(lat=42.002, lon=-71.0, zoom=13.0)
    assert not moved_significantly(base, cur, center_threshold_deg=0.01)


def test_bbox_nsew_roundtrip_and_center():
    b = BBox.from_nsew(north=42.4, south=42.3, east=-71.0, west=-71.2)
    assert b.as_nsew() == {"north": 42.4, "south": 42.3, "east": -71.0, "west": -71.2}
    lat, lon = b.center
    assert abs(lat - 42.35) < 1e-9
    assert abs(lon + 71.1) < 1e-9
    assert b.contains(-71.1, 42.35)
    assert not b.contains(-71.3, 42.35)


def test_coordinate_validation():
    assert valid_lat(91.0) is None
    assert valid_lat(float("nan")) is None
    assert valid_lat(42.0) == 42.0
    assert valid_lon(-181.0) is None
    assert valid_lon(float("inf")) is None
    assert valid_lon(-71.0) == -71.0


def test_fit_view_contains_all_listings():
    rows = [
        {"Latitude": 42.30, "Longitude": -71.20},
        {"Latitude": 42.40, "Longitude": -71.00},
        {"lat": 42.35, "lng": -71.10},
        {"Latitude": None, "Longitude": -71.0},
    ]
    assert len(listing_coords(rows)) == 3
    cam = fit_view_to_listings(rows, viewport={"width": 1024, "height": 768})
    assert cam is not None
    assert 42.30 < cam.lat < 42.40
    assert -71.20 < cam.lon < -71.00
    assert 8.0 < cam.zoom < 14.0


def test_fit_view_without_coordinates():
    assert fit_view_to_listings([{"ListingId": "x"}], viewport=None) is None


def test_zoom_for_span():
    world = zoom_for_span(-180.0, -85.0, 180.0, 85.0, width=256, height=256)
    assert abs(world) < 0.01
    wide = zoom_for_span(-71.2, 42.30, -71.0, 42.31, width=800, height=4000)
    narrow = zoom_for_span(-71.1, 42.30, -71.0, 42.31, width=800, height=4000)
    assert abs((narrow - wide) - 1.0) < 1e-9


def test_fit_view_single_listing_is_capped():
    cam = fit_view_to_listings([{"Latitude": 42.36, "Longitude": -71.06}], viewport=None)
    assert cam is not None
    assert abs(cam.lat - 42.36) < 1e-9
    assert abs(cam.lon + 71.06) < 1e-9
    assert cam.zoom <= 18.0
