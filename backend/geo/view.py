from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable


@dataclass(frozen=True)
class MapCamera:
    lat: float
    lon: float
    zoom: float


def moved_significantly(
    prev: MapCamera | None,
    cur: MapCamera,
    *,
    center_threshold_deg: float = 0.001,
    zoom_threshold: float = 1.0,
) -> bool:
    """
    True when the camera moved enough to warrant a new listings query.

    Center must move strictly more than the threshold on either axis; zoom counts once a
    full level (or `zoom_threshold`) has changed.
    """
    if prev is None:
        return True
    center_changed = (
        abs(cur.lat - prev.lat) > center_threshold_deg
        or abs(cur.lon - prev.lon) > center_threshold_deg
    )
    zoom_changed = abs(cur.zoom - prev.zoom) >= zoom_threshold
    return center_changed or zoom_changed


def listing_coords(listings: Iterable[dict[str, Any]]) -> list[tuple[float, float]]:
    """
    (lon, lat) of every listing that carries usable coordinates.

    Listings are opaque server rows; both `Longitude`/`Latitude` (MLS casing) and
    `lng`/`lat` are accepted.
    """
    out: list[tuple[float, float]] = []
    for row in listings:
        lon = row.get("Longitude", row.get("lng"))
        lat = row.get("Latitude", row.get("lat"))
        try:
            lon_f = float(lon)
            lat_f = float(lat)
        except (TypeError, ValueError):
            continue
        if math.isfinite(lon_f) and math.isfinite(lat_f):
            out.append((lon_f, lat_f))
    return out


TILE_PX = 256.0
MAX_FIT_ZOOM = 18.0


def _mercator_y(lat: float) -> float:
    # Clamp to the WebMercator limit so poles stay finite.
    phi = math.radians(max(-85.0511, min(85.0511, lat)))
    return math.log(math.tan(math.pi / 4.0 + phi / 2.0))


def zoom_for_span(
    min_lon: float,
    min_lat: float,
    max_lon: float,
    max_lat: float,
    *,
    width: int,
    height: int,
) -> float:
    """
    Largest WebMercator zoom at which the span fits a `width` x `height` px viewport.
    """
    lon_frac = max(max_lon - min_lon, 1e-9) / 360.0
    lat_frac = max(_mercator_y(max_lat) - _mercator_y(min_lat), 1e-9) / (2.0 * math.pi)
    return min(
        math.log2(width / TILE_PX / lon_frac),
        math.log2(height / TILE_PX / lat_frac),
    )


def fit_view_to_listings(
    listings: Iterable[dict[str, Any]],
    *,
    viewport: dict[str, int] | None,
    padding: float = 0.1,
) -> MapCamera | None:
    """
    Camera that shows every listing with `padding` (fraction of the span) on each side.

    A single listing, or listings on one spot, get a minimum span of ~300 m.
    """
    coords = listing_coords(listings)
    if not coords:
        return None
    lons = [lon for lon, _ in coords]
    lats = [lat for _, lat in coords]
    pad_lon = max(0.003, (max(lons) - min(lons)) * padding)
    pad_lat = max(0.003, (max(lats) - min(lats)) * padding)
    west, east = min(lons) - pad_lon, max(lons) + pad_lon
    south, north = max(-85.0, min(lats) - pad_lat), min(85.0, max(lats) + pad_lat)

    vp = viewport or {}
    zoom = zoom_for_span(
        west,
        south,
        east,
        north,
        width=int(vp.get("width") or 900),
        height=int(vp.get("height") or 600),
    )
    return MapCamera(
        lat=(south + north) / 2.0,
        lon=(west + east) / 2.0,
        zoom=max(0.0, min(MAX_FIT_ZOOM, zoom)),
    )
