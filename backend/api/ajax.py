from __future__ import annotations

import json
import logging
from typing import Any, Callable, Mapping

from geo.aoi import BBox, valid_lat, valid_lon
from listings import query as lq
from listings.index import ListingIndex

logger = logging.getLogger(__name__)

Handler = Callable[[Mapping[str, Any], ListingIndex], Any]


def success(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}


def error(message: str) -> dict[str, Any]:
    return {"success": False, "data": {"message": message}}


def _float(v: Any) -> float | None:
    if v in (None, ""):
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def _flag(form: Mapping[str, Any], key: str) -> bool:
    return str(form.get(key) or "").strip().lower() == "true"


def decode_filters(raw: Any) -> dict[str, Any] | None:
    if raw in (None, ""):
        return None
    try:
        v = json.loads(raw) if isinstance(raw, str) else raw
    except ValueError:
        return None
    return v if isinstance(v, dict) else None


def request_bbox(form: Mapping[str, Any]) -> BBox | None:
    # Out-of-range or non-finite edges are dropped, and a partial box means no box.
    north = valid_lat(_float(form.get("north")))
    south = valid_lat(_float(form.get("south")))
    east = valid_lon(_float(form.get("east")))
    west = valid_lon(_float(form.get("west")))
    if None in (north, south, east, west):
        return None
    return BBox.from_nsew(north=north, south=south, east=east, west=west)  # type: ignore[arg-type]


def map_listings(form: Mapping[str, Any], index: ListingIndex) -> Any:
    try:
        zoom = int(float(form.get("zoom") or 13))
    except (TypeError, ValueError):
        zoom = 13
    is_initial = _flag(form, "is_initial_load")
    return lq.listings_for_map(
        index,
        bbox=None if is_initial else request_bbox(form),
        filters=decode_filters(form.get("filters")),
        zoom=zoom,
        is_new_filter=_flag(form, "is_new_filter"),
    )


def filter_options(form: Mapping[str, Any], index: ListingIndex) -> Any:
    return lq.filter_options(index, decode_filters(form.get("filters")))


def price_distribution(form: Mapping[str, Any], index: ListingIndex) -> Any:
    return lq.price_distribution(index, decode_filters(form.get("filters")))


def filtered_count(form: Mapping[str, Any], index: ListingIndex) -> Any:
    return lq.filtered_count(index, decode_filters(form.get("filters")))


def autocomplete_suggestions(form: Mapping[str, Any], index: ListingIndex) -> Any:
    return lq.autocomplete(index, str(form.get("term") or ""))


ACTIONS: dict[str, Handler] = {
    "get_map_listings": map_listings,
    "get_filter_options": filter_options,
    "get_price_distribution": price_distribution,
    "get_filtered_count": filtered_count,
    "get_autocomplete_suggestions": autocomplete_suggestions,
}


def handle_ajax(
    form: Mapping[str, Any], *, index: ListingIndex, security: str
) -> tuple[int, dict[str, Any]]:
    """
    Route one admin-ajax style request. Returns (status_code, body).
    """
    action = str(form.get("action") or "")
    handler = ACTIONS.get(action)
    if handler is None:
        return 400, error(f"Unknown action: {action or '(missing)'}")
    if str(form.get("security") or "") != security:
        return 403, error("Invalid security token")
    try:
        return 200, success(handler(form, index))
    except Exception:
        logger.exception("AJAX action %s failed", action)
        return 200, error("An error occurred while fetching listings. Please try again.")
