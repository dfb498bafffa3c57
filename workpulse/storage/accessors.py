"""
Read-only accessors for presentation layers.

Dashboards and APIs read through AnalyticsReader. It only exposes query
methods, opens the database read-only, and only sees committed runs (a
run's rows become visible together when its transaction commits).
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from workpulse.analytics.models import BehavioralMetrics, PeriodInsight, WorkSession
from workpulse.storage.store import AnalyticsStore, Page


class AnalyticsReader:
    def __init__(self, db_path: Path | str | None = None, page_size: int = 500):
        self._store = AnalyticsStore(db_path, read_only=True)
        self.page_size = page_size

    def sessions(self, start: datetime, end: datetime, cursor: str | None = None) -> Page:
        return self._store.query_sessions(start, end, limit=self.page_size, cursor=cursor)

    def all_sessions(self, start: datetime, end: datetime) -> list[WorkSession]:
        return list(self._store.iter_sessions(start, end, page_size=self.page_size))

    def metrics(self, period_start: datetime, period_end: datetime) -> BehavioralMetrics | None:
        return self._store.get_metrics(period_start, period_end)

    def insight(self, period_start: datetime, period_end: datetime) -> PeriodInsight | None:
        return self._store.get_insight(period_start, period_end)

    def insights(self, start: datetime, end: datetime, cursor: str | None = None) -> Page:
        return self._store.query_insights(start, end, limit=self.page_size, cursor=cursor)
