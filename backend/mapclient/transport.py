from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from mapclient.errors import NetworkFailure, ServerFailure

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """
    One form-encoded POST against the listings endpoint.

    Returns the decoded JSON envelope. Raises `NetworkFailure` for connectivity problems
    and `ServerFailure` when the endpoint answered with an error. Cancellation of the
    awaiting task is the abort mechanism.
    """

    async def post(self, form: dict[str, str]) -> Any: ...


class HttpxTransport:
    def __init__(
        self,
        url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_s: float | None = None,
    ):
        self.url = url
        self._owns_client = client is None
        if client is None:
            client = (
                httpx.AsyncClient(timeout=timeout_s)
                if timeout_s is not None
                else httpx.AsyncClient()
            )
        self._client = client

    async def post(self, form: dict[str, str]) -> Any:
        try:
            resp = await self._client.post(self.url, data=form)
        except httpx.TimeoutException as e:
            raise NetworkFailure(f"timeout: {e}") from e
        except httpx.DecodingError as e:
            # The endpoint answered, but with a body we cannot read.
            raise ServerFailure(f"undecodable response: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkFailure(f"{type(e).__name__}: {e}") from e

        if not resp.is_success:
            # No body: the request never reached the application (proxy/gateway hiccup).
            if not resp.content:
                raise NetworkFailure(f"HTTP {resp.status_code} with empty body")
            raise ServerFailure(
                _error_message(_try_json(resp)) or f"HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        payload = _try_json(resp)
        if payload is None:
            raise ServerFailure("Malformed response body", status_code=resp.status_code)
        return payload

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _try_json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        logger.debug("Non-JSON response body: %s", resp.text[:200])
        return None


def _error_message(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, str):
        return data or None
    if isinstance(data, dict):
        msg = data.get("message")
        return str(msg) if msg else None
    return None


def unwrap(payload: Any) -> Any:
    """
    Return `data` from a `{success, data}` envelope, or raise `ServerFailure`.
    """
    if not isinstance(payload, dict) or "success" not in payload:
        raise ServerFailure("Malformed response envelope")
    if not payload.get("success"):
        raise ServerFailure(_error_message(payload) or "Request failed")
    return payload.get("data")


def parse_listings(data: Any) -> tuple[list[dict[str, Any]], int]:
    """
    `(listings, total)` from the `data` of a successful `get_map_listings` response.
    """
    if not isinstance(data, dict):
        raise ServerFailure("Missing listings data")
    listings = data.get("listings") or []
    if not isinstance(listings, list):
        raise ServerFailure("Malformed listings payload")
    try:
        total = int(data.get("total") or 0)
    except (TypeError, ValueError):
        total = len(listings)
    return [row for row in listings if isinstance(row, dict)], total
