from __future__ import annotations

import json
import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import duckdb

from telemetry.sql import (
    CREATE_EVENTS_TABLE_SQL,
    EVENT_COLUMNS,
    INSERT_EVENTS_SQL,
    SLOWEST_SQL_TEMPLATE,
    SUMMARY_SQL_TEMPLATE,
)

logger = logging.getLogger(__name__)

MAX_BATCH = 250
FLUSH_EVERY_S = 0.5


def _safe_float(v) -> float | None:
    try:
        if v is None:
            return None
        return float(v)
    except (TypeError, ValueError):
        return None


@dataclass
class TelemetryStore:
    """
    Request lifecycle events (one row per settled or aborted listings request).
    """

    path: Path
    conn: duckdb.DuckDBPyConnection
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    _q: "queue.Queue[dict[str, Any]]" = field(default_factory=queue.Queue, repr=False)
    _stop: threading.Event = field(default_factory=threading.Event, repr=False)
    _worker: threading.Thread | None = field(default=None, repr=False)

    def ensure_schema(self) -> None:
        with self._lock:
            self.conn.execute(CREATE_EVENTS_TABLE_SQL)

    def start(self) -> None:
        if self._worker is not None:
            return
        self._stop.clear()
        self._worker = threading.Thread(
            target=self._run, name="telemetry-writer", daemon=True
        )
        self._worker.start()

    def stop(self, *, timeout_s: float = 2.0) -> None:
        """
        Stop the writer thread and prevent further flushes.
        """
        self._stop.set()
        w = self._worker
        if w is not None and w.is_alive():
            w.join(timeout=timeout_s)
        self._worker = None

    def record(
        self,
        *,
        endpoint: str,
        outcome: str,
        request_id: int,
        attempts: int,
        duration_ms: float,
        view_zoom: float,
        bounds: dict[str, float] | None,
        stats: dict[str, Any],
    ) -> None:
        # Non-blocking: enqueue and return.
        self.start()
        b = bounds or {}
        try:
            self._q.put_nowait(
                {
                    "ts_ms": int(time.time() * 1000),
                    "endpoint": str(endpoint),
                    "outcome": str(outcome),
                    "request_id": int(request_id),
                    "attempts": int(attempts),
                    "duration_ms": float(duration_ms),
                    "view_zoom": float(view_zoom),
                    "north": _safe_float(b.get("north")),
                    "south": _safe_float(b.get("south")),
                    "east": _safe_float(b.get("east")),
                    "west": _safe_float(b.get("west")),
                    "stats_json": json.dumps(stats, ensure_ascii=False, default=str),
                }
            )
        except queue.Full:
            # drop telemetry on overload
            pass

    def flush(self, *, timeout_s: float = 2.0) -> None:
        """
        Wait until queued events are written (used by tests).
        """
        if self._worker is None:
            return
        deadline = time.time() + timeout_s
        while time.time() < deadline:
            if self._q.unfinished_tasks == 0:
                break
            time.sleep(0.01)
        # The writer flushes on a timer; give it one full period plus a poll.
        time.sleep(FLUSH_EVERY_S + 0.15)

    def query(self, sql: str, params: list[Any] | None = None) -> list[tuple]:
        """
        Run a read query inside the owning process.

        DuckDB holds a file lock while this process writes; reading through the API
        avoids opening the file from a second process.
        """
        with self._lock:
            if params:
                return self.conn.execute(sql, params).fetchall()
            return self.conn.execute(sql).fetchall()

    def summary(
        self,
        *,
        endpoint: str | None = None,
        outcome: str | None = None,
        since_ms: int | None = None,
    ) -> list[dict[str, Any]]:
        where = []
        params: list[Any] = []
        if endpoint:
            where.append("endpoint = ?")
            params.append(endpoint)
        if outcome:
            where.append("outcome = ?")
            params.append(outcome)
        if since_ms is not None:
            where.append("ts_ms >= ?")
            params.append(int(since_ms))

        where_sql = f"WHERE {' AND '.join(where)}" if where else ""

        rows = self.query(SUMMARY_SQL_TEMPLATE.format(where_sql=where_sql), params)

        out: list[dict[str, Any]] = []
        for endpoint_v, outcome_v, n, avg_ms, p50, p95, avg_attempts, avg_listings in rows:
            out.append(
                {
                    "endpoint": endpoint_v,
                    "outcome": outcome_v,
                    "n": int(n),
                    "avgMs": _safe_float(avg_ms),
                    "p50Ms": _safe_float(p50),
                    "p95Ms": _safe_float(p95),
                    "avgAttempts": _safe_float(avg_attempts),
                    "avgListings": _safe_float(avg_listings),
                }
            )
        return out

    def slowest(
        self,
        *,
        endpoint: str | None = None,
        limit: int = 25,
    ) -> list[dict[str, Any]]:
        where = ["duration_ms IS NOT NULL"]
        params: list[Any] = []
        if endpoint:
            where.append("endpoint = ?")
            params.append(endpoint)
        params.append(int(max(1, min(200, limit))))

        rows = self.query(
            SLOWEST_SQL_TEMPLATE.format(where_sql=" AND ".join(where)),
            params,
        )
        out: list[dict[str, Any]] = []
        for ts_ms, endpoint_v, outcome_v, request_id, attempts, duration_ms, zoom in rows:
            out.append(
                {
                    "tsMs": int(ts_ms),
                    "endpoint": endpoint_v,
                    "outcome": outcome_v,
                    "requestId": int(request_id),
                    "attempts": int(attempts),
                    "durationMs": _safe_float(duration_ms),
                    "viewZoom": _safe_float(zoom),
                }
            )
        return out

    def reset(self) -> None:
        # Stop the writer first so it can't write to a closed connection.
        self.stop(timeout_s=2.0)
        with self._lock:
            try:
                self.conn.close()
            except duckdb.Error:
                logger.debug("Closing telemetry connection failed", exc_info=True)
            self.path.unlink(missing_ok=True)

    def _write(self, batch: list[dict[str, Any]]) -> None:
        if not batch:
            return
        rows = [tuple(e[c] for c in EVENT_COLUMNS) for e in batch]
        with self._lock:
            self.conn.executemany(INSERT_EVENTS_SQL, rows)
            # Readers on the same connection see the rows right away.
            self.conn.execute("CHECKPOINT;")

    def _run(self) -> None:
        self.ensure_schema()
        batch: list[dict[str, Any]] = []
        flushed_at = time.time()

        while not self._stop.is_set():
            try:
                batch.append(self._q.get(timeout=0.1))
                self._q.task_done()
            except queue.Empty:
                pass

            if len(batch) >= MAX_BATCH or (batch and time.time() - flushed_at >= FLUSH_EVERY_S):
                self._write(batch)
                batch = []
                flushed_at = time.time()

        while True:
            try:
                batch.append(self._q.get_nowait())
            except queue.Empty:
                break
            self._q.task_done()
        self._write(batch)
