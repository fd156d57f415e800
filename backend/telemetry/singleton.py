from __future__ import annotations

import logging
import threading
from pathlib import Path

import duckdb

from telemetry.config import telemetry_enabled, telemetry_path
from telemetry.store import TelemetryStore

logger = logging.getLogger(__name__)

_STORE: TelemetryStore | None = None
_STORE_LOCK = threading.RLock()


def open_store(path: Path) -> TelemetryStore:
    """
    Open (creating if needed) the request-events database at `path` and start its writer.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    store = TelemetryStore(path=path, conn=duckdb.connect(str(path)))
    store.ensure_schema()
    store.start()
    logger.debug("Telemetry store opened at %s", path)
    return store


def _close(store: TelemetryStore) -> None:
    store.stop(timeout_s=2.0)
    try:
        store.conn.close()
    except duckdb.Error:
        logger.debug("Closing telemetry store failed", exc_info=True)


def get_store() -> TelemetryStore | None:
    """
    Process-wide store, or None when telemetry is switched off.
    """
    global _STORE
    if not telemetry_enabled():
        return None
    path = telemetry_path()
    with _STORE_LOCK:
        # Env overrides (tests, dev sessions) can move the database; follow them.
        if _STORE is not None and _STORE.path.resolve() != path.resolve():
            _close(_STORE)
            _STORE = None
        if _STORE is None:
            _STORE = open_store(path)
        return _STORE


def reset_store() -> None:
    global _STORE
    with _STORE_LOCK:
        if _STORE is not None:
            _STORE.reset()
            _STORE = None
            return
    try:
        telemetry_path().unlink(missing_ok=True)
    except OSError:
        logger.debug("Telemetry reset failed", exc_info=True)
