#!/usr/bin/env python3
"""
WorkPulse Command Line Interface

Main entry point for the `workpulse` command.

Usage:
    workpulse analyze --events day.jsonl --start 2026-10-19 --end 2026-10-20
    workpulse backfill --events week.jsonl --days 7
    workpulse sessions --start 2026-10-19 --end 2026-10-20
    workpulse insights --start 2026-10-12 --end 2026-10-20
    workpulse purge --before 2026-07-01
    workpulse --version

Events files hold one JSON observation per line:
    {"app_id": "Code", "window_title": "main.py", "timestamp": "...", "duration": 42.0}

Output:
    JSON on stdout; logs on stderr
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

from workpulse import __version__


def _parse_time(value: str) -> datetime:
    from workpulse.analytics.models import parse_timestamp

    try:
        return parse_timestamp(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _load_events(path: str) -> list:
    records = []
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError:
                # Kept so the normalizer counts it as malformed
                records.append({"raw": line})
    return records


def _print(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _load_config(args):
    from workpulse.config_models import load_analytics_config

    return load_analytics_config(Path(args.config) if args.config else None)


def _open_store(config, args):
    from workpulse.storage.store import AnalyticsStore

    db_path = args.db or config.storage.db_path
    return AnalyticsStore(db_path)


def _open_reader(config, args):
    from workpulse.storage.accessors import AnalyticsReader

    db_path = args.db or config.storage.db_path
    return AnalyticsReader(db_path, page_size=config.storage.page_size)


async def _analyze_only(pipeline, source, start, end):
    records = await source.fetch(start, end)
    return await pipeline.analyze_period(records, start, end)


def cmd_analyze(args):
    """Analyze one period from an events file."""
    from workpulse.analytics.pipeline import AnalyticsPipeline, InMemoryEventSource

    config = _load_config(args)
    store = None if args.no_store else _open_store(config, args)
    pipeline = AnalyticsPipeline(config, store=store)
    source = InMemoryEventSource(_load_events(args.events))

    if store is None:
        result = asyncio.run(_analyze_only(pipeline, source, args.start, args.end))
    else:
        result = asyncio.run(pipeline.run_period(source, args.start, args.end))

    _print(result.to_dict() if args.full else result.insight.to_dict())
    return 0


def cmd_backfill(args):
    """Analyze several consecutive days concurrently."""
    from workpulse.analytics.pipeline import AnalyticsPipeline, InMemoryEventSource, day_bounds

    config = _load_config(args)
    pipeline = AnalyticsPipeline(config, store=_open_store(config, args))
    source = InMemoryEventSource(_load_events(args.events))

    end = args.end or day_bounds(datetime.now(timezone.utc))[0]
    results = asyncio.run(pipeline.backfill(source, end=end, periods=args.days))

    _print(
        {
            "success": True,
            "periods": [
                {
                    "period_start": r.period_start,
                    "active_time": r.metrics.active_time,
                    "focus_percentage": round(r.metrics.focus_percentage, 1),
                    "sessions": len(r.sessions),
                    "low_confidence": r.insight.low_confidence,
                    "narrative_source": r.insight.narrative_source.value,
                }
                for r in results
            ],
        }
    )
    return 0


def cmd_sessions(args):
    """List committed sessions in a time range."""
    config = _load_config(args)
    page = _open_reader(config, args).sessions(args.start, args.end, cursor=args.cursor)
    _print({"sessions": [s.to_dict() for s in page.items], "next_cursor": page.next_cursor})
    return 0


def cmd_insights(args):
    """List committed insights generated in a time range."""
    config = _load_config(args)
    page = _open_reader(config, args).insights(args.start, args.end, cursor=args.cursor)
    _print({"insights": [i.to_dict() for i in page.items], "next_cursor": page.next_cursor})
    return 0


def cmd_purge(args):
    """Delete runs older than the retention window (or --before)."""
    config = _load_config(args)
    cutoff = args.before or datetime.now(timezone.utc) - timedelta(days=config.storage.retention_days)
    deleted = _open_store(config, args).delete_before(cutoff)
    _print({"success": True, "cutoff": cutoff, "deleted": deleted})
    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="workpulse",
        description="WorkPulse - behavioral analytics over desktop activity",
    )
    parser.add_argument("--version", "-V", action="store_true", help="Show version and exit")
    parser.add_argument("--config", help="Path to analytics.yaml (default: args/analytics.yaml)")
    parser.add_argument("--db", help="Database path (overrides storage.db_path)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    analyze_parser = subparsers.add_parser("analyze", help="Analyze one period")
    analyze_parser.add_argument("--events", required=True, help="JSONL events file")
    analyze_parser.add_argument("--start", required=True, type=_parse_time, help="Period start (ISO-8601)")
    analyze_parser.add_argument("--end", required=True, type=_parse_time, help="Period end (ISO-8601)")
    analyze_parser.add_argument("--no-store", action="store_true", help="Don't persist the run")
    analyze_parser.add_argument("--full", action="store_true", help="Print every stage's output")
    analyze_parser.set_defaults(func=cmd_analyze)

    backfill_parser = subparsers.add_parser("backfill", help="Analyze several past days")
    backfill_parser.add_argument("--events", required=True, help="JSONL events file")
    backfill_parser.add_argument("--days", type=int, default=7, help="Number of days (default: 7)")
    backfill_parser.add_argument("--end", type=_parse_time, help="End of the last day (default: today 00:00 UTC)")
    backfill_parser.set_defaults(func=cmd_backfill)

    for name, func, help_text in (
        ("sessions", cmd_sessions, "List committed sessions"),
        ("insights", cmd_insights, "List committed insights"),
    ):
        query_parser = subparsers.add_parser(name, help=help_text)
        query_parser.add_argument("--start", required=True, type=_parse_time)
        query_parser.add_argument("--end", required=True, type=_parse_time)
        query_parser.add_argument("--cursor", help="Cursor from a previous page")
        query_parser.set_defaults(func=func)

    purge_parser = subparsers.add_parser("purge", help="Apply the retention window")
    purge_parser.add_argument("--before", type=_parse_time, help="Delete runs ending before this time")
    purge_parser.set_defaults(func=cmd_purge)

    args = parser.parse_args(argv)

    if args.version:
        print(f"workpulse {__version__}")
        return 0

    if not args.command:
        parser.print_help()
        return 1

    from workpulse.logging_config import setup_logging

    setup_logging()
    return args.func(args) or 0


if __name__ == "__main__":
    sys.exit(main())
