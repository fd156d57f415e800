from __future__ import annotations

import asyncio

from fakes import RecordingChrome
from mapclient.signals import UiSignals


def test_banner_expires_after_its_duration():
    async def run():
        chrome = RecordingChrome()
        signals = UiSignals(chrome)
        signals.show_error("Unable to load listings.", duration_ms=20)
        shown = signals.error_message
        await asyncio.sleep(0.06)
        return chrome, signals, shown

    chrome, signals, shown = asyncio.run(run())
    assert shown == "Unable to load listings."
    assert signals.error_message is None
    assert chrome.events == [("show_error", "Unable to load listings."), ("hide_error", None)]


def test_new_banner_replaces_the_old_one():
    async def run():
        chrome = RecordingChrome()
        signals = UiSignals(chrome)
        signals.show_error("first", duration_ms=30)
        signals.show_error("second", duration_ms=1000)
        # Past the first banner's expiry: the replaced timer must not hide the second.
        await asyncio.sleep(0.06)
        message = signals.error_message
        signals.dismiss_error()
        return chrome, message

    chrome, message = asyncio.run(run())
    assert message == "second"
    assert chrome.events == [
        ("show_error", "first"),
        ("hide_error", None),
        ("show_error", "second"),
        ("hide_error", None),
    ]


def test_zero_duration_banner_stays_until_dismissed():
    async def run():
        chrome = RecordingChrome()
        signals = UiSignals(chrome)
        signals.show_error("sticky", duration_ms=0)
        await asyncio.sleep(0.03)
        still_shown = signals.error_message
        signals.dismiss_error()
        signals.dismiss_error()
        return chrome, signals, still_shown

    chrome, signals, still_shown = asyncio.run(run())
    assert still_shown == "sticky"
    assert signals.error_message is None
    # A second dismiss is a no-op.
    assert chrome.events == [("show_error", "sticky"), ("hide_error", None)]


def test_loading_flag_tracks_requests():
    chrome = RecordingChrome()
    signals = UiSignals(chrome)
    signals.request_sent()
    assert signals.loading is True
    signals.request_settled()
    assert signals.loading is False
    assert chrome.events == [("show_loading", None), ("hide_loading", None)]
