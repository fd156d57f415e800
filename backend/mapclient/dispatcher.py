from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from geo.view import moved_significantly
from mapclient.errors import NetworkFailure, RequestAborted, ServerFailure
from mapclient.interval import NetworkEnvironment, adaptive_interval_ms
from mapclient.signals import UiSignals
from mapclient.transport import Transport, parse_listings, unwrap
from mapclient.types import (
    DispatcherState,
    FetchResult,
    PendingRequest,
    RequestOutcome,
    RetryState,
    ViewportQuery,
)
from settings.types import ClientSettings

logger = logging.getLogger(__name__)

LISTINGS_ACTION = "get_map_listings"


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class ViewportQueryClient:
    """
    Fetches viewport-scoped listings without flooding the endpoint.

    - throttles to one request per adaptive interval, coalescing everything that arrives
      inside the window into a single follow-up request carrying the latest query;
    - cancels the in-flight request when a newer one is sent;
    - tags each request with a sequence number and drops responses that are not the
      latest issued;
    - retries connectivity failures with linear backoff, surfaces everything else.

    All state lives on the instance; use one client per map.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        env: NetworkEnvironment,
        settings: ClientSettings | None = None,
        signals: UiSignals | None = None,
        on_result: Callable[[FetchResult], None] | None = None,
        on_failure: Callable[[Exception], None] | None = None,
        fit_suppressed: Callable[[], bool] | None = None,
        telemetry: Any | None = None,
        clock: Callable[[], float] = _monotonic_ms,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.transport = transport
        self.env = env
        self.settings = settings or ClientSettings()
        self.signals = signals or UiSignals()
        self.on_result = on_result
        self.on_failure = on_failure
        self.fit_suppressed = fit_suppressed or (lambda: False)
        self._telemetry = telemetry
        self._clock = clock
        self._sleep = sleep
        self.state = DispatcherState()

    def interval_ms(self) -> int:
        return adaptive_interval_ms(self.env, self.settings.interval)

    def dispatch(self, query: ViewportQuery, *, forced: bool = False) -> asyncio.Task | None:
        """
        Entry point for every viewport change or filter application.

        Returns the task running the request when one was sent immediately, else None
        (ignored as insignificant, or queued behind the throttle). Must be called from
        the event loop thread; no exception escapes.
        """
        bypass = forced or query.is_initial_load
        if not bypass:
            sig = self.settings.significance
            if not moved_significantly(
                self.state.last_accepted,
                query.camera,
                center_threshold_deg=sig.centerDeltaDeg,
                zoom_threshold=sig.zoomDelta,
            ):
                logger.debug("Map state not changed significantly, skipping refresh")
                return None
        # Check-and-set stays synchronous: no await between the check above and this write.
        self.state.last_accepted = query.camera
        return self._throttle(query, forced=forced, bypass=bypass)

    def _throttle(self, query: ViewportQuery, *, forced: bool, bypass: bool) -> asyncio.Task | None:
        if not bypass and self.state.last_sent_ms is not None:
            interval = self.interval_ms()
            elapsed = self._clock() - self.state.last_sent_ms
            if elapsed < interval:
                self.state.queued = query
                if self.state.queue_timer is None:
                    wait_ms = interval - elapsed
                    logger.debug("Queueing request, will process in %.0fms", wait_ms)
                    self.state.queue_timer = asyncio.get_running_loop().create_task(
                        self._process_queue(wait_ms)
                    )
                else:
                    logger.debug("Request queued (timer already pending)")
                return None
        return self._send(query, forced=forced)

    async def _process_queue(self, wait_ms: float) -> None:
        await self._sleep(wait_ms / 1000.0)
        self.state.queue_timer = None
        query = self.state.queued
        self.state.queued = None
        if query is not None:
            logger.debug("Processing queued request")
            self._throttle(query, forced=False, bypass=False)

    def _clear_queue(self) -> None:
        timer = self.state.queue_timer
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()
        self.state.queue_timer = None
        self.state.queued = None

    def _send(self, query: ViewportQuery, *, forced: bool) -> asyncio.Task:
        # Anything still queued is older than this query.
        self._clear_queue()
        if self.state.in_flight is not None:
            logger.debug("Cancelling pending request %s", self.state.in_flight.sequence)
            self.state.in_flight.cancel()
            self.state.in_flight = None

        retry = RetryState(
            max_retries=self.settings.retry.maxRetries,
            base_delay_ms=self.settings.retry.baseDelayMs,
        )
        pending = PendingRequest(sequence=0, query=query)
        # Sequence and send time are taken before yielding to the loop, so a dispatch
        # arriving before the task first runs already sees this request.
        self._mark_sent(pending)
        pending.task = asyncio.get_running_loop().create_task(
            self._run(pending, forced=forced, retry=retry)
        )
        self.state.in_flight = pending
        return pending.task

    def _mark_sent(self, pending: PendingRequest) -> None:
        pending.sequence = self.state.next_sequence()
        self.state.last_sent_ms = self._clock()
        self.signals.request_sent()

    def _is_current(self, sequence: int) -> bool:
        return sequence == self.state.sequence

    async def _run(
        self, pending: PendingRequest, *, forced: bool, retry: RetryState
    ) -> FetchResult | None:
        query = pending.query
        started_ms = self._clock()
        while True:
            seq = pending.sequence
            pending.attempt = retry.attempt + 1
            form = query.to_form(
                action=LISTINGS_ACTION,
                security=self.settings.endpoint.security,
                request_id=seq,
            )
            logger.debug("Making listings request %s: %s", seq, form)
            try:
                payload = await self.transport.post(form)
                if not self._is_current(seq):
                    return self._stale(pending, started_ms)
                listings, total = parse_listings(unwrap(payload))
            except asyncio.CancelledError:
                logger.debug("Request %s was aborted", seq)
                self._record(pending, "aborted", started_ms)
                raise
            except RequestAborted:
                logger.debug("Request %s was aborted by the transport", seq)
                if self._is_current(seq):
                    self._release(pending)
                    self.signals.request_settled()
                self._record(pending, "aborted", started_ms)
                return None
            except NetworkFailure as e:
                if not self._is_current(seq):
                    return self._stale(pending, started_ms)
                if not retry.exhausted:
                    delay_ms = retry.next_delay_ms()
                    logger.warning(
                        "Network error, retrying in %dms (attempt %d/%d): %s",
                        delay_ms,
                        retry.attempt,
                        retry.max_retries,
                        e,
                    )
                    await self._sleep(delay_ms / 1000.0)
                    # A fresh in-flight request for the same logical query.
                    self._mark_sent(pending)
                    continue
                self._fail(pending, e, network=True, started_ms=started_ms)
                return None
            except ServerFailure as e:
                if not self._is_current(seq):
                    return self._stale(pending, started_ms)
                self._fail(pending, e, network=False, started_ms=started_ms)
                return None
            except Exception as e:
                # Anything the transport failed to classify is reported like a server error.
                if not self._is_current(seq):
                    return self._stale(pending, started_ms)
                logger.exception("Unexpected error in listings request %s", seq)
                self._fail(pending, e, network=False, started_ms=started_ms)
                return None

            should_fit = bool(listings) and (
                query.fit_to_results
                or (
                    (forced or query.is_initial_load or not self.state.has_rendered)
                    and not self.fit_suppressed()
                )
            )
            result = FetchResult(
                sequence=seq,
                query=query,
                listings=listings,
                total=total,
                should_fit_bounds=should_fit,
                forced=forced,
                attempts=pending.attempt,
            )
            self._release(pending)
            self.state.has_rendered = bool(listings)
            self.signals.request_settled()
            logger.debug("Listings response %s: %d of %d", seq, len(listings), total)
            self._record(pending, "success", started_ms, listings=len(listings))
            if self.on_result is not None:
                try:
                    self.on_result(result)
                except Exception:
                    logger.exception("Listings result handler failed")
            return result

    def _stale(self, pending: PendingRequest, started_ms: float) -> None:
        logger.debug(
            "Ignoring stale response %s (current %s)", pending.sequence, self.state.sequence
        )
        self._record(pending, "stale", started_ms)
        return None

    def _release(self, pending: PendingRequest) -> None:
        if self.state.in_flight is pending:
            self.state.in_flight = None

    def _fail(
        self, pending: PendingRequest, exc: Exception, *, network: bool, started_ms: float
    ) -> None:
        self._release(pending)
        self.signals.request_settled()
        banner = self.settings.banner
        if network:
            logger.error(
                "Listings request %s failed after %d attempts: %s",
                pending.sequence,
                pending.attempt,
                exc,
            )
            self.signals.show_error(banner.networkMessage, banner.networkDurationMs)
            self._record(pending, "network_error", started_ms)
        else:
            logger.error("Listings request %s failed: %s", pending.sequence, exc)
            self.signals.show_error(banner.serverMessage, banner.serverDurationMs)
            self._record(pending, "server_error", started_ms)
        if self.on_failure is not None:
            try:
                self.on_failure(exc)
            except Exception:
                logger.exception("Listings failure handler failed")

    def _record(
        self,
        pending: PendingRequest,
        outcome: RequestOutcome,
        started_ms: float,
        *,
        listings: int | None = None,
    ) -> None:
        # Best-effort: telemetry never affects the request lifecycle.
        if self._telemetry is None:
            return
        q = pending.query
        try:
            self._telemetry.record(
                endpoint=LISTINGS_ACTION,
                outcome=outcome,
                request_id=pending.sequence,
                attempts=pending.attempt,
                duration_ms=self._clock() - started_ms,
                view_zoom=q.camera.zoom,
                bounds=q.bounds.as_nsew() if q.bounds is not None else None,
                stats={
                    "listings": listings,
                    "isInitialLoad": q.is_initial_load,
                    "isNewFilter": q.is_new_filter,
                    "filters": len(q.filters),
                },
            )
        except Exception:
            logger.debug("Dropping telemetry event", exc_info=True)

    async def wait_idle(self) -> None:
        """
        Wait until nothing is queued or in flight. Used by tests and on shutdown.
        """
        while True:
            pending = [
                t
                for t in (
                    self.state.queue_timer,
                    self.state.in_flight.task if self.state.in_flight else None,
                )
                if t is not None and not t.done()
            ]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def close(self) -> None:
        self._clear_queue()
        if self.state.in_flight is not None:
            self.state.in_flight.cancel()
            self.state.in_flight = None
            # The cancelled task never settles itself; nothing replaces it after close.
            self.signals.request_settled()
        self.signals.dismiss_error()
