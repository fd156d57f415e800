from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Protocol

from geo.aoi import BBox
from geo.view import MapCamera, fit_view_to_listings
from mapclient.dispatcher import ViewportQueryClient
from mapclient.interval import is_mobile_width
from mapclient.types import FetchResult, ViewportQuery

logger = logging.getLogger(__name__)


class MapViewSource(Protocol):
    """
    The live map widget. The read methods may return None while the map boots.
    """

    def camera(self) -> MapCamera | None: ...

    def bounds(self) -> BBox | None: ...

    def viewport(self) -> dict[str, int] | None: ...

    def set_camera(self, camera: MapCamera) -> None: ...


class FilterStateProvider(Protocol):
    def combined_filters(self) -> dict[str, Any]: ...


class MarkerRenderer(Protocol):
    def render(self, listings: list[dict[str, Any]]) -> None: ...


class SidebarList(Protocol):
    def update(self, listings: list[dict[str, Any]]) -> None: ...


class CountIndicator(Protocol):
    def update(self, shown: int, total: int) -> None: ...


class BoundsFitter(Protocol):
    def fit(self, listings: list[dict[str, Any]]) -> None: ...


class CameraBoundsFitter:
    """
    Default fitter: moves the map camera so every returned listing is visible.
    """

    def __init__(self, map_view: MapViewSource):
        self.map_view = map_view

    def fit(self, listings: list[dict[str, Any]]) -> None:
        camera = fit_view_to_listings(listings, viewport=self.map_view.viewport())
        if camera is None:
            logger.debug("No listing coordinates to fit")
            return
        self.map_view.set_camera(camera)


class EventSink(Protocol):
    def emit(self, name: str, detail: dict[str, Any]) -> None: ...


class Navigator(Protocol):
    def redirect(self, url: str) -> None: ...


@dataclass
class MapAppState:
    """
    Page-level flags the refresh logic consults.
    """

    is_initial_load: bool = True
    unit_focus_mode: bool = False
    is_specific_property_search: bool = False
    nearby_search_active: bool = False
    restoring_visitor_state: bool = False
    state_restoration_in_progress: bool = False
    # Set while the camera is being moved to fit results; map-move events are ignored.
    adjusting_map_bounds: bool = False


@dataclass
class MapCollaborators:
    markers: MarkerRenderer
    sidebar: SidebarList
    count: CountIndicator
    # None fits the map camera itself (CameraBoundsFitter).
    fitter: BoundsFitter | None = None
    events: EventSink | None = None
    navigator: Navigator | None = None


@dataclass
class _BoundsRetry:
    attempt: int = 0
    task: asyncio.Task | None = field(default=None, repr=False)


class MapListingsController:
    """
    Turns map movement and filter changes into listings queries, and routes results
    to the rendering collaborators.
    """

    def __init__(
        self,
        client: ViewportQueryClient,
        *,
        map_view: MapViewSource,
        filters: FilterStateProvider,
        collaborators: MapCollaborators,
        app: MapAppState | None = None,
    ):
        self.client = client
        self.map_view = map_view
        self.filters = filters
        if collaborators.fitter is None:
            collaborators = replace(collaborators, fitter=CameraBoundsFitter(map_view))
        self.ui = collaborators
        self.app = app or MapAppState()
        self._bounds_retry = _BoundsRetry()

        client.on_result = self.on_result
        client.on_failure = self.on_failure
        client.fit_suppressed = self._fit_suppressed

    @property
    def settings(self):
        return self.client.settings

    def _fit_suppressed(self) -> bool:
        return self.app.nearby_search_active or self.app.restoring_visitor_state

    def on_map_moved(self) -> asyncio.Task | None:
        """
        Map `idle`/`moveend` handler.
        """
        if self.app.adjusting_map_bounds:
            logger.debug("Ignoring map move while fitting bounds")
            return None
        return self.refresh()

    def apply_filters(self, *, fit_to_results: bool = False) -> asyncio.Task | None:
        return self.refresh(force=True, fit_to_results=fit_to_results)

    def refresh(
        self, force: bool = False, fit_to_results: bool = False, *, _bounds_attempt: int = 0
    ) -> asyncio.Task | None:
        if self.app.unit_focus_mode:
            logger.debug("Skipping refresh - unit focus mode active")
            return None

        bounds = self.map_view.bounds()
        br = self.settings.boundsRetry
        if bounds is None and not force and _bounds_attempt < br.maxAttempts:
            delay_ms = br.baseDelayMs + _bounds_attempt * br.stepMs
            logger.warning(
                "Unable to get map bounds, retrying... (attempt %d)", _bounds_attempt + 1
            )
            self._schedule_bounds_retry(fit_to_results, _bounds_attempt + 1, delay_ms)
            return None
        self._cancel_bounds_retry()

        query = self.build_query(force=force, fit_to_results=fit_to_results, bounds=bounds)
        return self.client.dispatch(query, forced=force)

    def _schedule_bounds_retry(self, fit_to_results: bool, attempt: int, delay_ms: int) -> None:
        self._cancel_bounds_retry()

        async def _later() -> None:
            await asyncio.sleep(delay_ms / 1000.0)
            self._bounds_retry.task = None
            self.refresh(False, fit_to_results, _bounds_attempt=attempt)

        self._bounds_retry.attempt = attempt
        self._bounds_retry.task = asyncio.get_running_loop().create_task(_later())

    def _cancel_bounds_retry(self) -> None:
        task = self._bounds_retry.task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        self._bounds_retry = _BoundsRetry()

    def build_query(
        self, *, force: bool, fit_to_results: bool, bounds: BBox | None
    ) -> ViewportQuery:
        s = self.settings
        camera = self.map_view.camera() or MapCamera(
            lat=s.fallbackCenter["lat"],
            lon=s.fallbackCenter["lon"],
            zoom=float(s.fallbackZoom),
        )
        filters = dict(self.filters.combined_filters() or {})
        has_filters = bool(filters)
        is_initial = self.app.is_initial_load
        is_state_restoration = (force and not is_initial) or self.app.state_restoration_in_progress
        is_new_filter = force and has_filters

        query_bounds: BBox | None = None
        if is_initial:
            # Initial load fetches everything so the map can centre itself on the results.
            is_new_filter = True
        elif not is_new_filter:
            if bounds is not None:
                query_bounds = bounds
            elif is_mobile_width(self.client.env.viewport_width, s.interval) and has_filters:
                # List view on mobile: there is no map to bound the query.
                is_new_filter = True
            else:
                logger.warning(
                    "No bounds available for map query, fetching without spatial filter"
                )

        # Restoration and plain forced refreshes keep the viewport, unless the caller
        # wants to see every match.
        if bounds is not None and not fit_to_results:
            if is_state_restoration:
                query_bounds = bounds
            elif force and not is_initial and query_bounds is None and not is_new_filter:
                query_bounds = bounds

        return ViewportQuery(
            camera=camera,
            bounds=query_bounds,
            filters=filters,
            is_new_filter=is_new_filter,
            is_initial_load=is_initial,
            is_state_restoration=is_state_restoration,
            fit_to_results=fit_to_results,
        )

    def on_result(self, result: FetchResult) -> None:
        listings = result.listings

        if self.app.is_specific_property_search and len(listings) == 1:
            listing_id = listings[0].get("listing_id") or listings[0].get("ListingId")
            if listing_id and self.ui.navigator is not None:
                self.app.is_specific_property_search = False
                self.ui.navigator.redirect(f"/property/{listing_id}/")
                return
        self.app.is_specific_property_search = False

        self.ui.markers.render(listings)
        self.ui.sidebar.update(listings)
        self.ui.count.update(len(listings), result.total)

        q = result.query
        if (result.forced or q.is_initial_load) and q.has_filters and self.ui.events is not None:
            self.ui.events.emit(
                "search_execute", {"filters": dict(q.filters), "count": result.total}
            )

        if result.should_fit_bounds:
            self._fit(listings)
        else:
            self.app.adjusting_map_bounds = False

        if self.app.is_initial_load:
            logger.debug("Initial load complete, clearing flag")
            self.app.is_initial_load = False

    def _fit(self, listings: list[dict[str, Any]]) -> None:
        # The camera move would otherwise trigger another refresh.
        self.app.adjusting_map_bounds = True
        self.ui.fitter.fit(listings)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.app.adjusting_map_bounds = False
            return
        loop.call_later(0.1, self._end_fit)

    def _end_fit(self) -> None:
        self.app.adjusting_map_bounds = False

    def on_failure(self, exc: Exception) -> None:
        self.ui.count.update(0, 0)

    def close(self) -> None:
        self._cancel_bounds_retry()
        self.client.close()
