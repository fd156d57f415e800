from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class BBox:
    """
    WGS84 bounding box in lon/lat degrees.

    Convention used throughout this repo:
    - minLon, minLat, maxLon, maxLat internally
    - north/south/east/west on the wire (the listings endpoint speaks that dialect)
    """

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @classmethod
    def from_nsew(cls, *, north: float, south: float, east: float, west: float) -> "BBox":
        return cls(min_lon=west, min_lat=south, max_lon=east, max_lat=north).normalized()

    def normalized(self) -> "BBox":
        min_lon = min(self.min_lon, self.max_lon)
        max_lon = max(self.min_lon, self.max_lon)
        min_lat = min(self.min_lat, self.max_lat)
        max_lat = max(self.min_lat, self.max_lat)
        return BBox(min_lon=min_lon, min_lat=min_lat, max_lon=max_lon, max_lat=max_lat)

    @property
    def center(self) -> tuple[float, float]:
        # (lat, lon)
        b = self.normalized()
        return (b.min_lat + b.max_lat) / 2.0, (b.min_lon + b.max_lon) / 2.0

    def contains(self, lon: float, lat: float) -> bool:
        b = self.normalized()
        return b.min_lon <= lon <= b.max_lon and b.min_lat <= lat <= b.max_lat

    def as_nsew(self) -> dict[str, float]:
        b = self.normalized()
        return {
            "north": b.max_lat,
            "south": b.min_lat,
            "east": b.max_lon,
            "west": b.min_lon,
        }

    def rounded_key(self, decimals: int = 4) -> tuple[float, float, float, float]:
        """
        A stable, hashable key for caching bbox-derived computations.

        decimals=4 is ~11m-ish in latitude, which is good enough for interactive map caching.
        """
        b = self.normalized()
        return (
            round(b.min_lon, decimals),
            round(b.min_lat, decimals),
            round(b.max_lon, decimals),
            round(b.max_lat, decimals),
        )


def valid_lat(v: float | None) -> float | None:
    if v is None or not math.isfinite(v) or v < -90.0 or v > 90.0:
        return None
    return float(v)


def valid_lon(v: float | None) -> float | None:
    if v is None or not math.isfinite(v) or v < -180.0 or v > 180.0:
        return None
    return float(v)
