"""Persistence for committed pipeline runs."""

from .accessors import AnalyticsReader
from .store import AnalyticsStore, Page, StoreError

__all__ = ["AnalyticsReader", "AnalyticsStore", "Page", "StoreError"]
