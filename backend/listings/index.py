from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from shapely.geometry import Point
from shapely.geometry import box as shapely_box
from shapely.strtree import STRtree

from geo.aoi import BBox
from listings.types import Listing


@dataclass
class ListingIndex:
    """
    STRtree over listing coordinates (EPSG:4326) for viewport slicing.
    """

    listings: list[Listing]
    _tree: STRtree | None = field(default=None, repr=False)
    _slice_cache: dict[tuple[float, float, float, float], list[Listing]] = field(
        default_factory=dict, repr=False
    )

    def __post_init__(self) -> None:
        geoms = [Point(float(x.lon), float(x.lat)) for x in self.listings]
        self._tree = STRtree(geoms) if geoms else None

    def __len__(self) -> int:
        return len(self.listings)

    def in_bbox(self, bbox: BBox | None, *, decimals: int = 5) -> list[Listing]:
        """
        Listings inside `bbox` (all listings when bbox is None), in index order.
        """
        if bbox is None:
            return list(self.listings)
        if self._tree is None:
            return []
        key = bbox.rounded_key(decimals)
        cached = self._slice_cache.get(key)
        if cached is not None:
            return cached

        b = bbox.normalized()
        idxs = _to_int_list(self._tree.query(shapely_box(b.min_lon, b.min_lat, b.max_lon, b.max_lat)))
        out = [self.listings[i] for i in sorted(idxs)]
        _bounded_cache_put(self._slice_cache, key, out, max_items=128)
        return out


def build_listing_index(listings: Iterable[Listing]) -> ListingIndex:
    return ListingIndex(listings=list(listings))


def _to_int_list(idxs: Any) -> list[int]:
    if idxs is None:
        return []
    return [int(i) for i in idxs]


def _bounded_cache_put(cache: dict, key, value, *, max_items: int) -> None:
    cache[key] = value
    if len(cache) > max_items:
        oldest = next(iter(cache.keys()))
        if oldest != key:
            cache.pop(oldest, None)
