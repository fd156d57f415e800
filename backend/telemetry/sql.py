from __future__ import annotations

CREATE_EVENTS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS request_events (
  ts_ms BIGINT,
  endpoint TEXT,
  outcome TEXT,
  request_id BIGINT,
  attempts INTEGER,
  duration_ms DOUBLE,
  view_zoom DOUBLE,
  north DOUBLE,
  south DOUBLE,
  east DOUBLE,
  west DOUBLE,
  stats_json TEXT
);
"""

SUMMARY_SQL_TEMPLATE = """
SELECT
  endpoint,
  outcome,
  COUNT(*) AS n,
  AVG(duration_ms) AS avg_ms,
  quantile_cont(duration_ms, 0.50) AS p50_ms,
  quantile_cont(duration_ms, 0.95) AS p95_ms,
  AVG(attempts) AS avg_attempts,
  AVG(try_cast(json_extract(stats_json, '$.listings') AS DOUBLE)) AS avg_listings
FROM request_events
{where_sql}
GROUP BY endpoint, outcome
ORDER BY endpoint, outcome
"""

SLOWEST_SQL_TEMPLATE = """
SELECT
  ts_ms,
  endpoint,
  outcome,
  request_id,
  attempts,
  duration_ms,
  view_zoom
FROM request_events
WHERE {where_sql}
ORDER BY duration_ms DESC
LIMIT ?
"""

EVENT_COLUMNS = (
    "ts_ms",
    "endpoint",
    "outcome",
    "request_id",
    "attempts",
    "duration_ms",
    "view_zoom",
    "north",
    "south",
    "east",
    "west",
    "stats_json",
)

INSERT_EVENTS_SQL = (
    f"INSERT INTO request_events ({', '.join(EVENT_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in EVENT_COLUMNS)})"
)
