from __future__ import annotations

import asyncio
from urllib.parse import parse_qs

import httpx
import pytest

from mapclient.errors import NetworkFailure, ServerFailure
from mapclient.transport import HttpxTransport, parse_listings, unwrap

URL = "http://listings.test/wp-admin/admin-ajax.php"


def _post(handler, form=None):
    async def run():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = HttpxTransport(URL, client=client)
        try:
            return await transport.post(form or {"action": "get_map_listings"})
        finally:
            await client.aclose()

    return asyncio.run(run())


def test_posts_form_encoded_body():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["ctype"] = request.headers["content-type"]
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"success": True, "data": {"listings": [], "total": 0}})

    payload = _post(handler, {"action": "get_map_listings", "zoom": "13"})
    assert payload["success"] is True
    assert seen["method"] == "POST"
    assert seen["ctype"].startswith("application/x-www-form-urlencoded")
    assert seen["form"] == {"action": ["get_map_listings"], "zoom": ["13"]}


def test_connect_error_is_network_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkFailure):
        _post(handler)


def test_timeout_is_network_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(NetworkFailure):
        _post(handler)


def test_empty_error_response_is_network_failure():
    with pytest.raises(NetworkFailure):
        _post(lambda request: httpx.Response(503))


def test_error_response_with_body_is_server_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"success": False, "data": {"message": "db down"}})

    with pytest.raises(ServerFailure) as ei:
        _post(handler)
    assert ei.value.status_code == 500
    assert "db down" in str(ei.value)


def test_undecodable_body_is_server_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip at all")

    with pytest.raises(ServerFailure, match="undecodable"):
        _post(handler)


def test_other_request_errors_are_network_failures():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.TooManyRedirects("redirect loop", request=request)

    with pytest.raises(NetworkFailure):
        _post(handler)


def test_non_json_success_body_is_server_failure():
    with pytest.raises(ServerFailure):
        _post(lambda request: httpx.Response(200, text="<html>oops</html>"))


def test_unwrap_envelope():
    assert unwrap({"success": True, "data": [1]}) == [1]
    with pytest.raises(ServerFailure, match="nope"):
        unwrap({"success": False, "data": "nope"})
    with pytest.raises(ServerFailure, match="bad filter"):
        unwrap({"success": False, "data": {"message": "bad filter"}})
    with pytest.raises(ServerFailure):
        unwrap(["not", "an", "envelope"])


def test_parse_listings():
    rows, total = parse_listings({"listings": [{"ListingId": "1"}, "junk"], "total": "40"})
    assert rows == [{"ListingId": "1"}]
    assert total == 40

    rows, total = parse_listings({"listings": [{"ListingId": "1"}], "total": "n/a"})
    assert total == 1

    with pytest.raises(ServerFailure):
        parse_listings(None)
    with pytest.raises(ServerFailure):
        parse_listings({"listings": "nope"})
