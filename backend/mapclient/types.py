from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal, Mapping

from geo.aoi import BBox
from geo.view import MapCamera

RequestOutcome = Literal["success", "server_error", "network_error", "aborted", "stale"]


def _frozen_filters(filters: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(filters or {}))


@dataclass(frozen=True)
class ViewportQuery:
    """
    Parameters of one listings fetch.

    Immutable: every map move or filter change produces a new query.
    """

    camera: MapCamera
    bounds: BBox | None = None
    filters: Mapping[str, Any] = field(default_factory=dict)
    is_new_filter: bool = False
    is_initial_load: bool = False
    is_state_restoration: bool = False
    # Caller wants the camera to fit whatever comes back.
    fit_to_results: bool = False

    # Filters are a read-only mapping, so queries compare by value but are not hashable.
    __hash__ = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        object.__setattr__(self, "filters", _frozen_filters(self.filters))

    @property
    def zoom(self) -> int:
        return int(round(self.camera.zoom))

    @property
    def has_filters(self) -> bool:
        return bool(self.filters)

    def to_form(self, *, action: str, security: str, request_id: int) -> dict[str, str]:
        """
        Form fields for the listings endpoint.

        Bounds are omitted on initial load; filters are omitted when empty.
        """
        data: dict[str, str] = {
            "action": action,
            "security": security,
            "zoom": str(self.zoom),
            "is_new_filter": _bool(self.is_new_filter),
            "is_initial_load": _bool(self.is_initial_load),
            "is_state_restoration": _bool(self.is_state_restoration),
            "request_id": str(int(request_id)),
        }
        if self.bounds is not None and not self.is_initial_load:
            data.update({k: str(v) for k, v in self.bounds.as_nsew().items()})
        if self.filters:
            data["filters"] = json.dumps(dict(self.filters), ensure_ascii=False)
        return data


def _bool(v: bool) -> str:
    return "true" if v else "false"


@dataclass
class PendingRequest:
    """
    The single in-flight listings request.
    """

    sequence: int
    query: ViewportQuery
    task: asyncio.Task | None = None
    attempt: int = 0

    def cancel(self) -> None:
        if self.task is not None and not self.task.done():
            self.task.cancel()


@dataclass
class RetryState:
    """
    Attempt counter for one logical query. A new query always starts from zero.
    """

    max_retries: int
    base_delay_ms: int
    attempt: int = 0

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_retries

    def next_delay_ms(self) -> int:
        self.attempt += 1
        return self.base_delay_ms * self.attempt


@dataclass(frozen=True)
class FetchResult:
    """
    What one successful, non-stale listings fetch produced.
    """

    sequence: int
    query: ViewportQuery
    listings: list[dict[str, Any]]
    total: int
    should_fit_bounds: bool = False
    forced: bool = False
    attempts: int = 1


@dataclass
class DispatcherState:
    """
    Mutable state owned by one dispatcher instance.

    Times are milliseconds on the dispatcher's clock.
    """

    last_sent_ms: float | None = None
    sequence: int = 0
    queued: ViewportQuery | None = None
    queue_timer: asyncio.Task | None = None
    in_flight: PendingRequest | None = None
    last_accepted: MapCamera | None = None
    # Marker layer state, used for the "first load" leg of the fit-bounds decision.
    has_rendered: bool = False

    def next_sequence(self) -> int:
        self.sequence += 1
        return self.sequence
