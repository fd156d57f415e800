from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Listing:
    """
    One MLS listing as the map endpoint serves it.

    `props` carries the MLS columns verbatim (ListPrice, City, PropertySubType, ...);
    the map client treats rows as opaque.
    """

    id: str
    lon: float
    lat: float
    props: dict[str, Any]

    @property
    def price(self) -> float | None:
        v = self.props.get("ListPrice")
        try:
            return float(v) if v is not None else None
        except (TypeError, ValueError):
            return None

    def to_row(self) -> dict[str, Any]:
        return {
            **self.props,
            "ListingId": self.id,
            "Latitude": self.lat,
            "Longitude": self.lon,
        }
