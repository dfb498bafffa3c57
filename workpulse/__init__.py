"""
WorkPulse - Behavioral analytics over desktop activity

Turns a stream of raw activity observations into work sessions, focus and
context-switch metrics, and a small set of recommendations grounded in
those metrics.

Components:
- analytics/: the deterministic pipeline (normalize, sessionize, analyze,
  aggregate, recommend, assemble)
- narrative/: text-generation providers for period summaries
- storage/: SQLite persistence for committed pipeline runs
- cli.py: command line entry point

Usage:
    from workpulse.analytics.pipeline import AnalyticsPipeline

    pipeline = AnalyticsPipeline()
    result = await pipeline.analyze_period(observations, start, end)
"""

from pathlib import Path

# Path constants
PROJECT_ROOT = Path(__file__).parent.parent
PACKAGE_ROOT = Path(__file__).parent
DATA_DIR = PROJECT_ROOT / "data"
ARGS_DIR = PROJECT_ROOT / "args"
CONFIG_PATH = ARGS_DIR / "analytics.yaml"

# Database paths
DB_PATH = DATA_DIR / "workpulse.db"

__version__ = "0.3.0"

__all__ = [
    "ARGS_DIR",
    "CONFIG_PATH",
    "DATA_DIR",
    "DB_PATH",
    "PACKAGE_ROOT",
    "PROJECT_ROOT",
    "__version__",
]
