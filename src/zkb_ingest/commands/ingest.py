"""
Ingest CLI Commands.

Commands for running the killmail ingest pipeline against the live
RedisQ stream or a zKillboard history range, and for inspecting the store.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
from collections.abc import AsyncIterable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..core.formatters import get_utc_timestamp, parse_day
from ..core.logging import get_logger

if TYPE_CHECKING:
    from ..services.ingest import PipelineStats
    from ..services.redisq.models import KillEvent

logger = get_logger(__name__)


def _install_stop_handlers(stop) -> list[signal.Signals]:
    """Route SIGINT/SIGTERM to the pipeline's stop entry point."""
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Windows doesn't support add_signal_handler
            pass
    return installed


def _remove_stop_handlers(installed: list[signal.Signals]) -> None:
    loop = asyncio.get_running_loop()
    for sig in installed:
        loop.remove_signal_handler(sig)


async def run_pipeline(
    source: AsyncIterable[KillEvent],
    settings: Any,
    db_path: Path,
    workers: int,
    queue_size: int,
) -> PipelineStats:
    """
    Open the store and fetcher, run a pipeline over source, and close everything.

    SIGINT and SIGTERM request a cooperative stop.
    """
    from ..services.ingest import IngestPipeline
    from ..services.killmail_store import SQLiteKillmailStore
    from ..services.redisq.fetcher import KillmailFetcher

    store = SQLiteKillmailStore(db_path=db_path)
    await store.initialize()
    try:
        async with KillmailFetcher.from_settings(settings) as fetcher:
            pipeline = IngestPipeline(
                source,
                fetcher,
                store,
                workers=workers,
                queue_size=queue_size,
            )
            installed = _install_stop_handlers(pipeline.request_stop)
            try:
                return await pipeline.run()
            finally:
                _remove_stop_handlers(installed)
    finally:
        close_source = getattr(source, "close", None)
        if close_source is not None:
            await close_source()
        await store.close()


def _resolve_common(args: argparse.Namespace):
    from ..core.config import get_settings

    settings = get_settings()
    db_path = Path(args.database) if args.database else settings.killmail_db_path
    workers = args.workers if args.workers else settings.workers
    queue_size = args.queue_size if args.queue_size else settings.queue_size
    return settings, db_path, workers, queue_size


def cmd_stream(args: argparse.Namespace) -> dict:
    """
    Ingest the live RedisQ stream.

    Runs as a foreground process until SIGINT or SIGTERM. A second signal
    cancels the events still in flight.
    """
    from ..services.redisq.models import RedisQConfig
    from ..services.redisq.poller import RedisQEventSource

    settings, db_path, workers, queue_size = _resolve_common(args)
    config = RedisQConfig.from_settings(settings, queue_id=args.queue_id or "")
    source = RedisQEventSource(config)

    logger.info("Streaming RedisQ queue %s into %s", config.queue_id, db_path)
    stats = asyncio.run(run_pipeline(source, settings, db_path, workers, queue_size))

    return {
        "status": "stopped",
        "queue_id": config.queue_id,
        "database": str(db_path),
        "stats": stats.to_dict(),
        "query_timestamp": get_utc_timestamp(),
    }


def cmd_backfill(args: argparse.Namespace) -> dict:
    """
    Ingest every kill of a range of days from zKillboard history.
    """
    from ..services.redisq.history import HistoryEventSource

    try:
        first = parse_day(args.first)
        last = parse_day(args.last) if args.last else first
    except ValueError as e:
        return {
            "error": "invalid_date",
            "message": str(e),
            "query_timestamp": get_utc_timestamp(),
        }

    if last < first:
        return {
            "error": "invalid_range",
            "message": f"--last {last.isoformat()} is before --first {first.isoformat()}",
            "query_timestamp": get_utc_timestamp(),
        }

    settings, db_path, workers, queue_size = _resolve_common(args)
    source = HistoryEventSource.from_settings(settings, first, last)

    logger.info("Backfilling %s..%s into %s", first, last, db_path)
    stats = asyncio.run(run_pipeline(source, settings, db_path, workers, queue_size))

    return {
        "status": "complete",
        "first": first.isoformat(),
        "last": last.isoformat(),
        "database": str(db_path),
        "stats": stats.to_dict(),
        "query_timestamp": get_utc_timestamp(),
    }


def cmd_status(args: argparse.Namespace) -> dict:
    """
    Show killmail store statistics.
    """
    from ..core.config import get_settings
    from ..services.killmail_store import SQLiteKillmailStore

    db_path = Path(args.database) if args.database else get_settings().killmail_db_path
    if not db_path.exists():
        return {
            "error": "no_database",
            "message": f"No killmail database at {db_path}",
            "hint": "Run 'zkb-ingest stream' or 'zkb-ingest backfill' first",
            "query_timestamp": get_utc_timestamp(),
        }

    async def read_stats():
        store = SQLiteKillmailStore(db_path=db_path, read_only=True)
        await store.initialize()
        try:
            return await store.get_stats()
        finally:
            await store.close()

    stats = asyncio.run(read_stats())
    return {
        "database": str(db_path),
        **stats.to_dict(),
        "query_timestamp": get_utc_timestamp(),
    }


# =============================================================================
# Parser Registration
# =============================================================================


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--database",
        help="SQLite database path (default: ZKB_DATABASE or cache/killmails.db)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Concurrent pipeline workers (default: ZKB_WORKERS or 4)",
    )
    parser.add_argument(
        "--queue-size",
        type=int,
        help="Intake queue capacity (default: ZKB_QUEUE_SIZE or 100)",
    )


def register_parsers(subparsers) -> None:
    """Register ingest command parsers."""

    # stream
    stream_parser = subparsers.add_parser(
        "stream",
        help="Ingest the live zKillboard RedisQ stream",
    )
    _add_common_arguments(stream_parser)
    stream_parser.add_argument(
        "--queue-id",
        help="RedisQ queue identifier (default: ZKB_REDISQ_QUEUE_ID or generated)",
    )
    stream_parser.set_defaults(func=cmd_stream)

    # backfill
    backfill_parser = subparsers.add_parser(
        "backfill",
        help="Ingest kills from zKillboard daily history",
    )
    _add_common_arguments(backfill_parser)
    backfill_parser.add_argument(
        "--first",
        required=True,
        help="First day to ingest (YYYY-MM-DD)",
    )
    backfill_parser.add_argument(
        "--last",
        help="Last day to ingest, inclusive (default: same as --first)",
    )
    backfill_parser.set_defaults(func=cmd_backfill)

    # status
    status_parser = subparsers.add_parser(
        "status",
        help="Show killmail store statistics",
    )
    status_parser.add_argument(
        "--database",
        help="SQLite database path (default: ZKB_DATABASE or cache/killmails.db)",
    )
    status_parser.set_defaults(func=cmd_status)
