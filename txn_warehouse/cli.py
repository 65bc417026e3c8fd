"""
Command-line interface.

Usage:
    txn-warehouse init-db
    txn-warehouse load data/raw/transactions.csv --workers 8
    txn-warehouse load data/raw/transactions.csv --resume-from 200001
    txn-warehouse refresh
    txn-warehouse export data/aggregates
"""

import argparse
import asyncio
import json
import signal
import sys
from typing import Awaitable, Callable, List, Optional

import structlog

from txn_warehouse.aggregation import AggregateMaintainer, export_aggregates
from txn_warehouse.config import get_settings
from txn_warehouse.config.logging import LOG_FORMATS, configure_logging
from txn_warehouse.database import close_database, create_schema, init_database
from txn_warehouse.errors import AggregateRefreshError
from txn_warehouse.ingestion.batch_loader import BatchLoader, LoadStatus
from txn_warehouse.ingestion.pipeline import TransactionPipeline

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_STOPPED = 3


async def _with_database(command: Callable[[argparse.Namespace], Awaitable[int]], args: argparse.Namespace) -> int:
    await init_database(args.database_url)
    try:
        return await command(args)
    finally:
        await close_database()


async def cmd_init_db(args: argparse.Namespace) -> int:
    await create_schema()
    print(json.dumps({"status": "ok"}))
    return EXIT_OK


async def cmd_load(args: argparse.Namespace) -> int:
    loader = BatchLoader(batch_size=args.batch_size, max_workers=args.workers)
    pipeline = TransactionPipeline(loader=loader)

    # First Ctrl-C drains in-flight batches, the second one kills the process
    loop = asyncio.get_running_loop()

    def on_interrupt() -> None:
        logger.warning("Interrupt received, finishing in-flight batches")
        pipeline.request_stop()
        loop.remove_signal_handler(signal.SIGINT)

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
    except NotImplementedError:
        logger.debug("Signal handlers unsupported on this platform")

    refresh = False if args.no_refresh else None
    report = await pipeline.run(args.file, start_line=args.resume_from, refresh=refresh)
    print(report.model_dump_json(indent=2))

    if report.status == LoadStatus.FAILED or report.refresh_error:
        return EXIT_FAILED
    if report.status == LoadStatus.STOPPED:
        return EXIT_STOPPED
    return EXIT_OK


async def cmd_refresh(args: argparse.Namespace) -> int:
    try:
        result = await AggregateMaintainer().refresh()
    except AggregateRefreshError as e:
        print(json.dumps({"status": "failed", "aggregate": e.aggregate, "error": str(e)}, indent=2))
        return EXIT_FAILED
    print(result.model_dump_json(indent=2))
    return EXIT_OK


async def cmd_export(args: argparse.Namespace) -> int:
    directory = args.directory or get_settings().etl.export_path
    written = await export_aggregates(directory)
    print(json.dumps({name: str(path) for name, path in written.items()}, indent=2))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="txn-warehouse",
        description="Load raw transaction exports and maintain summary tables",
    )
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-format", choices=LOG_FORMATS, default=None, help="Override LOG_FORMAT")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_db = subparsers.add_parser("init-db", help="Create the warehouse schema")
    init_db.set_defaults(handler=cmd_init_db)

    load = subparsers.add_parser("load", help="Load a raw transaction export")
    load.add_argument("file", help="Delimited transaction file")
    load.add_argument("--batch-size", type=int, default=None, help="Records per batch")
    load.add_argument("--workers", type=int, default=None, help="Concurrent batch workers")
    load.add_argument("--resume-from", type=int, default=1, help="First source line to load")
    load.add_argument("--no-refresh", action="store_true", help="Skip the aggregate refresh")
    load.set_defaults(handler=cmd_load)

    refresh = subparsers.add_parser("refresh", help="Recompute every summary table")
    refresh.set_defaults(handler=cmd_refresh)

    export = subparsers.add_parser("export", help="Write summary tables as Parquet")
    export.add_argument("directory", nargs="?", default=None, help="Output directory")
    export.set_defaults(handler=cmd_export)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_format)
    return asyncio.run(_with_database(args.handler, args))


if __name__ == "__main__":
    sys.exit(main())
