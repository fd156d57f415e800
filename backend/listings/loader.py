from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from listings.types import Listing


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def listings_path() -> Path:
    return Path(
        os.getenv("MLD_LISTINGS_PATH")
        or (_repo_root() / "data" / "listings" / "sample.yaml")
    )


def parse_listings(rows: list[dict[str, Any]]) -> list[Listing]:
    out: list[Listing] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        props = dict(row)
        lid = props.pop("ListingId", None) or props.pop("listing_id", None)
        lat = props.pop("Latitude", None)
        lon = props.pop("Longitude", None)
        if lid is None or lat is None or lon is None:
            continue
        try:
            out.append(Listing(id=str(lid), lon=float(lon), lat=float(lat), props=props))
        except (TypeError, ValueError):
            continue
    return out


def load_listings_file(path: Path) -> list[Listing]:
    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict) or not isinstance(data.get("listings"), list):
        raise ValueError(f"Invalid listings yaml (expected a `listings` list): {path}")
    return parse_listings(data["listings"])


@lru_cache(maxsize=2)
def load_listings(path: str | None = None) -> tuple[Listing, ...]:
    return tuple(load_listings_file(Path(path) if path else listings_path()))
