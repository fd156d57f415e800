from __future__ import annotations

import asyncio
import json
import logging

from fakes import FakeTransport
from mapclient.errors import NetworkFailure
from mapclient.lookups import ListingLookups


def test_filter_options_posts_encoded_filters():
    transport = FakeTransport({"success": True, "data": {"PropertySubType": []}})
    lookups = ListingLookups(transport)
    out = asyncio.run(lookups.filter_options({"City": ["Boston"]}))
    assert out == {"PropertySubType": []}
    form = transport.calls[0]
    assert form["action"] == "get_filter_options"
    assert form["security"] == "dev-nonce"
    assert json.loads(form["filters"]) == {"City": ["Boston"]}


def test_filtered_count_coerces_to_int():
    lookups = ListingLookups(FakeTransport({"success": True, "data": "12"}))
    assert asyncio.run(lookups.filtered_count({})) == 12


def test_lookup_failures_are_logged_and_return_none(caplog):
    lookups = ListingLookups(FakeTransport(NetworkFailure("offline")))
    with caplog.at_level(logging.ERROR, logger="mapclient.lookups"):
        assert asyncio.run(lookups.price_distribution({})) is None
    assert "price distribution" in caplog.text

    lookups = ListingLookups(FakeTransport({"success": False, "data": {"message": "nope"}}))
    assert asyncio.run(lookups.filtered_count({})) is None


class _SlowFirstTransport:
    """The first autocomplete request hangs until cancelled; later ones answer at once."""

    def __init__(self):
        self.terms: list[str] = []
        self.cancelled: list[str] = []

    async def post(self, form):
        term = form["term"]
        self.terms.append(term)
        if len(self.terms) == 1:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled.append(term)
                raise
        return {"success": True, "data": [{"type": "City", "value": "Boston"}]}


def test_newer_autocomplete_aborts_the_previous_one():
    async def run():
        transport = _SlowFirstTransport()
        lookups = ListingLookups(transport)
        first = asyncio.ensure_future(lookups.autocomplete("Bo"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        second = await lookups.autocomplete("Bos")
        return transport, await first, second

    transport, first, second = asyncio.run(run())
    assert transport.terms == ["Bo", "Bos"]
    assert transport.cancelled == ["Bo"]
    assert first is None
    assert second == [{"type": "City", "value": "Boston"}]
