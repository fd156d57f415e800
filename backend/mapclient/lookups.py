from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from mapclient.errors import MapClientError, RequestAborted
from mapclient.transport import Transport, unwrap
from settings.types import ClientSettings

logger = logging.getLogger(__name__)


class ListingLookups:
    """
    The small side requests the filter UI makes against the listings endpoint.

    None of these throttle or retry: a failure is logged and reported as `None`.
    """

    def __init__(self, transport: Transport, *, settings: ClientSettings | None = None):
        self.transport = transport
        self.settings = settings or ClientSettings()
        self._autocomplete: asyncio.Task | None = None

    async def _call(self, action: str, **fields: str) -> Any:
        form = {"action": action, "security": self.settings.endpoint.security, **fields}
        return unwrap(await self.transport.post(form))

    async def _call_logged(self, action: str, what: str, **fields: str) -> Any:
        try:
            return await self._call(action, **fields)
        except MapClientError as e:
            logger.error("Failed to fetch %s: %s", what, e)
            return None

    async def filter_options(self, filters: dict[str, Any]) -> dict[str, Any] | None:
        """
        Distinct values for the dynamic filter widgets (home types, statuses, amenities...),
        given the other active filters.
        """
        data = await self._call_logged(
            "get_filter_options", "dynamic filter options", filters=_encode(filters)
        )
        return data if isinstance(data, dict) else None

    async def price_distribution(self, filters: dict[str, Any]) -> dict[str, Any] | None:
        # Callers exclude the price fields themselves so the slider range stays dynamic.
        data = await self._call_logged(
            "get_price_distribution", "price distribution data", filters=_encode(filters)
        )
        return data if isinstance(data, dict) else None

    async def filtered_count(self, filters: dict[str, Any]) -> int | None:
        data = await self._call_logged(
            "get_filtered_count", "filter count", filters=_encode(filters)
        )
        try:
            return int(data) if data is not None else None
        except (TypeError, ValueError):
            logger.error("Unexpected filter count payload: %r", data)
            return None

    async def autocomplete(self, term: str) -> list[Any] | None:
        """
        Suggestions for the search box. A newer call aborts the previous one; the
        aborted call returns None without logging an error.
        """
        prev = self._autocomplete
        if prev is not None and not prev.done():
            prev.cancel()
        task = asyncio.get_running_loop().create_task(
            self._call("get_autocomplete_suggestions", term=term)
        )
        self._autocomplete = task
        try:
            data = await task
        except asyncio.CancelledError:
            if self._autocomplete is not task:
                # Superseded by a newer term.
                return None
            raise
        except RequestAborted:
            return None
        except MapClientError as e:
            logger.error("Autocomplete suggestion request failed: %s", e)
            return None
        finally:
            if self._autocomplete is task:
                self._autocomplete = None
        return data if isinstance(data, list) else []


def _encode(filters: dict[str, Any]) -> str:
    return json.dumps(filters or {}, ensure_ascii=False)
