from __future__ import annotations

import asyncio
import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class MapChrome(Protocol):
    """
    The bits of map UI the client drives: a spinner and an error banner.
    """

    def show_loading(self) -> None: ...

    def hide_loading(self) -> None: ...

    def show_error(self, message: str) -> None: ...

    def hide_error(self) -> None: ...


class NullChrome:
    def show_loading(self) -> None:
        pass

    def hide_loading(self) -> None:
        pass

    def show_error(self, message: str) -> None:
        pass

    def hide_error(self) -> None:
        pass


class UiSignals:
    """
    Loading/error signalling, correlated with the request lifecycle.

    Purely observational: nothing here feeds back into dispatch decisions.
    """

    def __init__(self, chrome: MapChrome | None = None):
        self.chrome = chrome or NullChrome()
        self.loading = False
        self.error_message: str | None = None
        self._expiry: asyncio.TimerHandle | None = None

    def request_sent(self) -> None:
        self.loading = True
        self.chrome.show_loading()

    def request_settled(self) -> None:
        self.loading = False
        self.chrome.hide_loading()

    def show_error(self, message: str, duration_ms: int = 5000) -> None:
        """
        Replace any visible banner. `duration_ms=0` keeps it until dismissed.
        """
        self.dismiss_error()
        self.error_message = message
        self.chrome.show_error(message)
        if duration_ms > 0:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running loop; banner will not auto-expire")
                return
            self._expiry = loop.call_later(duration_ms / 1000.0, self.dismiss_error)

    def dismiss_error(self) -> None:
        if self._expiry is not None:
            self._expiry.cancel()
            self._expiry = None
        if self.error_message is None:
            return
        self.error_message = None
        self.chrome.hide_error()
