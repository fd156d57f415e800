from __future__ import annotations

from collections import Counter
from typing import Any, Iterable

from geo.aoi import BBox
from listings.index import ListingIndex
from listings.types import Listing

# Filter key -> listing column for the "one of these values" filters.
_IN_FILTERS = {
    "City": "City",
    "home_type": "PropertySubType",
    "status": "StandardStatus",
    "structure_type": "StructureType",
    "architectural_style": "ArchitecturalStyle",
}

OPTION_COLUMNS = ("PropertySubType", "StandardStatus", "StructureType", "ArchitecturalStyle")


def max_listings_for_zoom(zoom: int) -> int:
    # Zoomed-out views get fewer pins; the sidebar shows the total anyway.
    z = int(zoom)
    if z <= 10:
        return 200
    if z <= 13:
        return 500
    return 1000


def _as_list(v: Any) -> list[str]:
    if v is None:
        return []
    if isinstance(v, (list, tuple, set)):
        return [str(x) for x in v if x not in (None, "")]
    s = str(v).strip()
    return [s] if s else []


def _num(v: Any) -> float | None:
    if v in (None, ""):
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def matches(listing: Listing, filters: dict[str, Any] | None) -> bool:
    if not filters:
        return True
    p = listing.props

    price = listing.price
    lo = _num(filters.get("price_min"))
    hi = _num(filters.get("price_max"))
    if lo is not None and (price is None or price < lo):
        return False
    if hi is not None and (price is None or price > hi):
        return False

    beds_min = _num(filters.get("beds_min"))
    if beds_min is not None and (_num(p.get("BedroomsTotal")) or 0) < beds_min:
        return False
    baths_min = _num(filters.get("baths_min"))
    if baths_min is not None and (_num(p.get("BathroomsTotalInteger")) or 0) < baths_min:
        return False

    for key, column in _IN_FILTERS.items():
        wanted = _as_list(filters.get(key))
        if wanted and str(p.get(column) or "") not in wanted:
            return False
    return True


def filter_listings(listings: Iterable[Listing], filters: dict[str, Any] | None) -> list[Listing]:
    return [x for x in listings if matches(x, filters)]


def listings_for_map(
    index: ListingIndex,
    *,
    bbox: BBox | None,
    filters: dict[str, Any] | None,
    zoom: int,
    is_new_filter: bool = False,
) -> dict[str, Any]:
    """
    `{listings, total}` for the map. New-filter requests ignore the viewport so the
    client can fit the camera to every match.
    """
    scope = index.in_bbox(None if is_new_filter else bbox)
    matched = filter_listings(scope, filters)
    cap = max_listings_for_zoom(zoom)
    return {
        "listings": [x.to_row() for x in matched[:cap]],
        "total": len(matched),
    }


def filtered_count(index: ListingIndex, filters: dict[str, Any] | None) -> int:
    return len(filter_listings(index.listings, filters))


def filter_options(index: ListingIndex, filters: dict[str, Any] | None) -> dict[str, list[dict[str, Any]]]:
    """
    Distinct values (with counts) for each option column, within the other filters.
    """
    matched = filter_listings(index.listings, filters)
    out: dict[str, list[dict[str, Any]]] = {}
    for column in OPTION_COLUMNS:
        counts = Counter(str(x.props.get(column)) for x in matched if x.props.get(column))
        out[column] = [
            {"value": value, "count": n} for value, n in sorted(counts.items())
        ]
    return out


def price_distribution(
    index: ListingIndex, filters: dict[str, Any] | None, *, buckets: int = 20
) -> dict[str, Any]:
    prices = sorted(
        p for p in (x.price for x in filter_listings(index.listings, filters)) if p is not None
    )
    if not prices:
        return {"min": 0, "max": 0, "display_max": 0, "distribution": []}
    lo, hi = prices[0], prices[-1]
    # Ignore the top 5% outliers for the slider's upper bound.
    display_max = prices[min(len(prices) - 1, int(len(prices) * 0.95))]
    width = max(1.0, (display_max - lo) / buckets)
    counts = [0] * buckets
    for p in prices:
        if p > display_max:
            continue
        counts[min(buckets - 1, int((p - lo) // width))] += 1
    return {
        "min": lo,
        "max": hi,
        "display_max": display_max,
        "distribution": counts,
    }


def autocomplete(index: ListingIndex, term: str, *, limit: int = 10) -> list[dict[str, str]]:
    t = (term or "").strip().lower()
    if len(t) < 2:
        return []
    seen: set[tuple[str, str]] = set()
    out: list[dict[str, str]] = []
    for x in index.listings:
        for kind, column in (("City", "City"), ("Address", "StreetAddress"), ("Postal Code", "PostalCode")):
            value = str(x.props.get(column) or "")
            if value and t in value.lower() and (kind, value) not in seen:
                seen.add((kind, value))
                out.append({"type": kind, "value": value})
        if len(out) >= limit:
            break
    return out[:limit]
