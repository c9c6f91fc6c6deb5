"""
Syncline command line.

    syncline run job.json        Run one job in-process from JSON job arguments
    syncline start CONNECTION    Start the orchestration for a stored connection
    syncline abort CONNECTION    Free the run token of a stuck or failed run
    syncline worker              Run the Temporal worker
    syncline init-db             Create database tables
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from typing import Optional, Sequence

from syncline.core.config import get_settings
from syncline.core.errors import SynclineError
from syncline.core.structured_logging import configure_logging
from syncline.ingestion.job import JobArgs, build_job
from syncline.ingestion.registry import ConnectorRegistry, load_connector_modules

logger = logging.getLogger("syncline.cli")


def _load_job_args(path: str) -> JobArgs:
    if path == "-":
        data = json.load(sys.stdin)
    else:
        with open(path, encoding="utf-8") as handle:
            data = json.load(handle)
    data.setdefault("job_id", str(uuid.uuid4()))
    return JobArgs(**data)


async def _run_job(args: argparse.Namespace) -> int:
    settings = get_settings()
    registry = load_connector_modules(ConnectorRegistry(), settings.connector_modules + args.connector)
    job = build_job(
        _load_job_args(args.job_file),
        registry,
        timeout=settings.http_timeout_seconds,
        max_retries=settings.max_fetch_retries,
    )
    result = await job.run()
    print(json.dumps(result.to_dict(), indent=2))
    return 0


async def _start(args: argparse.Namespace) -> int:
    from syncline.core.orchestrator import start_connection
    from syncline.core.temporal_client import get_temporal_client
    from syncline.stores import make_sql_stores

    client = await get_temporal_client()
    workflow_id = await start_connection(client, args.connection_id, make_sql_stores().connections)
    print(workflow_id)
    return 0


async def _abort(args: argparse.Namespace) -> int:
    from syncline.core.orchestrator import abort_connection
    from syncline.stores import make_sql_stores

    if await abort_connection(make_sql_stores().connections, args.connection_id):
        print(f"Connection {args.connection_id}: run token released")
    else:
        print(f"Connection {args.connection_id}: no run token held")
    return 0


async def _worker(args: argparse.Namespace) -> int:
    from syncline.worker.worker_main import run_worker

    registry = load_connector_modules(ConnectorRegistry(), args.connector)
    await run_worker(registry=registry)
    return 0


async def _init_db(args: argparse.Namespace) -> int:
    from syncline.db import init_db

    await init_db()
    print("Database tables created")
    return 0


def _build_command_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="syncline",
        description="Scheduled API-to-destination sync runner.",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    run_parser = subparsers.add_parser("run", help="Run one job in-process")
    run_parser.add_argument("job_file", help="Path to a JSON file with job arguments, or - for stdin")
    run_parser.add_argument(
        "--connector",
        action="append",
        default=[],
        metavar="MODULE",
        help="Connector module exposing register(registry); repeatable",
    )
    run_parser.set_defaults(func=_run_job)

    start_parser = subparsers.add_parser("start", help="Start orchestrating a connection")
    start_parser.add_argument("connection_id")
    start_parser.set_defaults(func=_start)

    abort_parser = subparsers.add_parser("abort", help="Release a connection's run token")
    abort_parser.add_argument("connection_id")
    abort_parser.set_defaults(func=_abort)

    worker_parser = subparsers.add_parser("worker", help="Run the Temporal worker")
    worker_parser.add_argument("--connector", action="append", default=[], metavar="MODULE")
    worker_parser.set_defaults(func=_worker)

    init_parser = subparsers.add_parser("init-db", help="Create database tables")
    init_parser.set_defaults(func=_init_db)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_command_parser().parse_args(argv)
    configure_logging(get_settings().log_level)
    try:
        return asyncio.run(args.func(args))
    except SynclineError as e:
        logger.error(json.dumps(e.to_dict()))
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
