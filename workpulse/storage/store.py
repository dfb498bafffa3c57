"""
Analytics Store

SQLite persistence for committed pipeline runs.

Tables:
    runs      - one row per committed run (period bounds, normalization stats)
    sessions  - work sessions, one row each, tagged with their run
    metrics   - BehavioralMetrics JSON per run
    insights  - PeriodInsight JSON per run

Writes are append-only: re-running a period adds a new run. Metrics and
insights come from the newest run per period (current_runs view). Sessions
come from the newest run covering their start time (current_sessions view),
so a week run committed after a day run replaces that day's sessions.
A run is written in one transaction, so a failure or cancellation leaves
nothing behind.

Range queries return rows ascending by start (sessions) or generation time
(insights) and paginate on (time, id), so consecutive pages never skip or
repeat a row.

Usage:
    from workpulse.storage.store import AnalyticsStore

    store = AnalyticsStore(db_path)
    run_id = store.commit_run(result)
    page = store.query_sessions(start, end, limit=100)
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from contextlib import closing
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator

from workpulse import DB_PATH
from workpulse.analytics.models import BehavioralMetrics, PeriodInsight, WorkSession, parse_timestamp
from workpulse.logging_config import get_logger

if TYPE_CHECKING:
    from workpulse.analytics.pipeline import PipelineResult

logger = get_logger(__name__)


class StoreError(Exception):
    """A write to the analytics store failed and was rolled back."""


def format_ts(value: datetime) -> str:
    """Fixed-width UTC text so lexical order matches time order."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


_SCHEMA = """
CREATE TABLE IF NOT EXISTS runs (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT UNIQUE NOT NULL,
    period_start TEXT NOT NULL,
    period_end TEXT NOT NULL,
    committed_at TEXT NOT NULL,
    used_fallback_grouping INTEGER DEFAULT 0,
    normalization TEXT
);

CREATE TABLE IF NOT EXISTS sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id TEXT NOT NULL REFERENCES runs(id) ON DELETE CASCADE,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    app_id TEXT NOT NULL,
    window_title TEXT,
    duration REAL NOT NULL,
    event_count INTEGER NOT NULL,
    category TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS metrics (
    run_id TEXT PRIMARY KEY REFERENCES runs(id) ON DELETE CASCADE,
    period_start TEXT NOT NULL,
    period_end TEXT NOT NULL,
    data TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS insights (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id TEXT UNIQUE NOT NULL REFERENCES runs(id) ON DELETE CASCADE,
    period_start TEXT NOT NULL,
    period_end TEXT NOT NULL,
    generated_at TEXT NOT NULL,
    data TEXT NOT NULL
);

CREATE VIEW IF NOT EXISTS current_runs AS
    SELECT r.* FROM runs r
    WHERE r.seq = (
        SELECT MAX(r2.seq) FROM runs r2
        WHERE r2.period_start = r.period_start AND r2.period_end = r.period_end
    );

-- A session is current unless a newer run covers its start time, so runs over
-- overlapping periods (a day and the week containing it) never repeat sessions
CREATE VIEW IF NOT EXISTS current_sessions AS
    SELECT s.* FROM sessions s
    JOIN runs r ON r.id = s.run_id
    WHERE NOT EXISTS (
        SELECT 1 FROM runs newer
        WHERE newer.seq > r.seq
          AND newer.period_start <= s.start_time AND s.start_time < newer.period_end
    );

CREATE INDEX IF NOT EXISTS idx_runs_period ON runs(period_start, period_end);
CREATE INDEX IF NOT EXISTS idx_sessions_start ON sessions(start_time, id);
CREATE INDEX IF NOT EXISTS idx_sessions_run ON sessions(run_id);
CREATE INDEX IF NOT EXISTS idx_insights_generated ON insights(generated_at, id);
"""


@dataclass(frozen=True)
class Page:
    """One page of a range query. next_cursor is None on the last page."""

    items: list[Any]
    next_cursor: str | None = None


def _encode_cursor(ts: str, row_id: int) -> str:
    return f"{ts}|{row_id}"


def _decode_cursor(cursor: str) -> tuple[str, int]:
    try:
        ts, row_id = cursor.rsplit("|", 1)
        return ts, int(row_id)
    except ValueError as e:
        raise ValueError(f"Invalid cursor: {cursor!r}") from e


def _row_to_session(row: sqlite3.Row) -> WorkSession:
    return WorkSession.from_dict(
        {
            "start": row["start_time"],
            "end": row["end_time"],
            "app_id": row["app_id"],
            "window_title": row["window_title"] or "",
            "duration": row["duration"],
            "event_count": row["event_count"],
            "category": row["category"],
        }
    )


class AnalyticsStore:
    """
    SQLite-backed store for sessions, metrics and insights.

    Args:
        db_path: Database file (created on first use)
        read_only: Open connections in SQLite read-only mode
    """

    def __init__(self, db_path: Path | str | None = None, read_only: bool = False):
        self.db_path = Path(db_path) if db_path else DB_PATH
        self.read_only = read_only
        if not read_only:
            self._initialize()

    def _initialize(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with closing(self.get_connection()) as conn:
            conn.executescript(_SCHEMA)
            conn.commit()

    def get_connection(self) -> sqlite3.Connection:
        if self.read_only:
            conn = sqlite3.connect(f"file:{self.db_path}?mode=ro", uri=True)
        else:
            conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def commit_run(self, result: PipelineResult) -> str:
        """
        Persist a finished pipeline run atomically.

        Returns:
            The new run id

        Raises:
            StoreError: the transaction failed and was rolled back
        """
        if self.read_only:
            raise StoreError("Store opened read-only")

        run_id = str(uuid.uuid4())
        insight = result.insight
        period_start = format_ts(result.period_start)
        period_end = format_ts(result.period_end)

        try:
            with closing(self.get_connection()) as conn, conn:
                conn.execute(
                    """
                    INSERT INTO runs (id, period_start, period_end, committed_at, used_fallback_grouping, normalization)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        run_id,
                        period_start,
                        period_end,
                        format_ts(datetime.now(timezone.utc)),
                        int(result.used_fallback_grouping),
                        json.dumps(result.normalization.to_dict()),
                    ),
                )
                conn.executemany(
                    """
                    INSERT INTO sessions (run_id, start_time, end_time, app_id, window_title, duration, event_count, category)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            run_id,
                            format_ts(s.start),
                            format_ts(s.end),
                            s.app_id,
                            s.window_title,
                            s.duration,
                            s.event_count,
                            s.category.value,
                        )
                        for s in result.sessions
                    ],
                )
                conn.execute(
                    "INSERT INTO metrics (run_id, period_start, period_end, data) VALUES (?, ?, ?, ?)",
                    (run_id, period_start, period_end, json.dumps(result.metrics.to_dict())),
                )
                conn.execute(
                    """
                    INSERT INTO insights (run_id, period_start, period_end, generated_at, data)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (run_id, period_start, period_end, format_ts(insight.generated_at), json.dumps(insight.to_dict())),
                )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to commit run for {period_start}: {e}") from e

        logger.debug("run_committed", run_id=run_id, period_start=period_start, sessions=len(result.sessions))
        return run_id

    def delete_before(self, cutoff: datetime) -> dict[str, int]:
        """Delete every run whose period ended at or before cutoff."""
        if self.read_only:
            raise StoreError("Store opened read-only")

        cutoff_ts = format_ts(cutoff)
        try:
            with closing(self.get_connection()) as conn, conn:
                run_ids = [r["id"] for r in conn.execute("SELECT id FROM runs WHERE period_end <= ?", (cutoff_ts,))]
                if not run_ids:
                    return {"runs": 0, "sessions": 0}
                placeholders = ",".join("?" * len(run_ids))
                sessions = conn.execute(
                    f"SELECT COUNT(*) FROM sessions WHERE run_id IN ({placeholders})", run_ids
                ).fetchone()[0]
                conn.execute(f"DELETE FROM runs WHERE id IN ({placeholders})", run_ids)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to delete runs before {cutoff_ts}: {e}") from e

        logger.info("runs_purged", runs=len(run_ids), sessions=sessions, cutoff=cutoff_ts)
        return {"runs": len(run_ids), "sessions": sessions}

    # -------------------------------------------------------------------------
    # Reads (current runs only)
    # -------------------------------------------------------------------------

    def query_sessions(
        self,
        start: datetime,
        end: datetime,
        limit: int = 500,
        cursor: str | None = None,
    ) -> Page:
        """Sessions starting in [start, end), ascending by start time."""
        params: list[Any] = [format_ts(start), format_ts(end)]
        after = ""
        if cursor:
            ts, row_id = _decode_cursor(cursor)
            after = "AND (s.start_time > ? OR (s.start_time = ? AND s.id > ?))"
            params += [ts, ts, row_id]
        params.append(limit + 1)

        with closing(self.get_connection()) as conn:
            rows = conn.execute(
                f"""
                SELECT s.* FROM current_sessions s
                WHERE s.start_time >= ? AND s.start_time < ? {after}
                ORDER BY s.start_time, s.id
                LIMIT ?
                """,
                params,
            ).fetchall()

        has_more = len(rows) > limit
        rows = rows[:limit]
        next_cursor = _encode_cursor(rows[-1]["start_time"], rows[-1]["id"]) if has_more else None
        return Page(items=[_row_to_session(r) for r in rows], next_cursor=next_cursor)

    def iter_sessions(self, start: datetime, end: datetime, page_size: int = 500) -> Iterator[WorkSession]:
        cursor = None
        while True:
            page = self.query_sessions(start, end, limit=page_size, cursor=cursor)
            yield from page.items
            if page.next_cursor is None:
                return
            cursor = page.next_cursor

    def get_metrics(self, period_start: datetime, period_end: datetime) -> BehavioralMetrics | None:
        """Metrics of the newest run for exactly this period."""
        with closing(self.get_connection()) as conn:
            row = conn.execute(
                """
                SELECT m.data FROM metrics m
                JOIN current_runs r ON r.id = m.run_id
                WHERE m.period_start = ? AND m.period_end = ?
                """,
                (format_ts(period_start), format_ts(period_end)),
            ).fetchone()
        return BehavioralMetrics.from_dict(json.loads(row["data"])) if row else None

    def get_insight(self, period_start: datetime, period_end: datetime) -> PeriodInsight | None:
        with closing(self.get_connection()) as conn:
            row = conn.execute(
                """
                SELECT i.data FROM insights i
                JOIN current_runs r ON r.id = i.run_id
                WHERE i.period_start = ? AND i.period_end = ?
                """,
                (format_ts(period_start), format_ts(period_end)),
            ).fetchone()
        return PeriodInsight.from_dict(json.loads(row["data"])) if row else None

    def query_insights(
        self,
        start: datetime,
        end: datetime,
        limit: int = 100,
        cursor: str | None = None,
    ) -> Page:
        """Insights generated in [start, end), ascending by generation time."""
        params: list[Any] = [format_ts(start), format_ts(end)]
        after = ""
        if cursor:
            ts, row_id = _decode_cursor(cursor)
            after = "AND (i.generated_at > ? OR (i.generated_at = ? AND i.id > ?))"
            params += [ts, ts, row_id]
        params.append(limit + 1)

        with closing(self.get_connection()) as conn:
            rows = conn.execute(
                f"""
                SELECT i.id, i.generated_at, i.data FROM insights i
                JOIN current_runs r ON r.id = i.run_id
                WHERE i.generated_at >= ? AND i.generated_at < ? {after}
                ORDER BY i.generated_at, i.id
                LIMIT ?
                """,
                params,
            ).fetchall()

        has_more = len(rows) > limit
        rows = rows[:limit]
        next_cursor = _encode_cursor(rows[-1]["generated_at"], rows[-1]["id"]) if has_more else None
        return Page(items=[PeriodInsight.from_dict(json.loads(r["data"])) for r in rows], next_cursor=next_cursor)

    def list_runs(self) -> list[dict[str, Any]]:
        with closing(self.get_connection()) as conn:
            rows = conn.execute("SELECT * FROM current_runs ORDER BY period_start").fetchall()
        return [
            {
                "id": r["id"],
                "period_start": parse_timestamp(r["period_start"]),
                "period_end": parse_timestamp(r["period_end"]),
                "committed_at": parse_timestamp(r["committed_at"]),
                "used_fallback_grouping": bool(r["used_fallback_grouping"]),
                "normalization": json.loads(r["normalization"]) if r["normalization"] else None,
            }
            for r in rows
        ]
