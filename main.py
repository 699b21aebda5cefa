# fieldsync/main.py
from __future__ import annotations

import argparse
import asyncio
import importlib
import json
import sys
from typing import Optional, Sequence

from core.settings import APP_NAME, SERVER, SYNC, SYNC_LOG_PATH
from core.logs import read_log_tail
from datetime_utils import from_ms, to_rfc3339_utc


def _load_dispatcher(target: Optional[str]):
    from server.dispatcher import OperationDispatcher

    if not target:
        return OperationDispatcher()
    module_name, _, attr = target.partition(":")
    module = importlib.import_module(module_name)
    dispatcher = getattr(module, attr or "dispatcher")
    if not isinstance(dispatcher, OperationDispatcher):
        raise SystemExit(f"{target} is not an OperationDispatcher")
    return dispatcher


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from server.app import create_app

    app = create_app(_load_dispatcher(args.dispatcher))
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def _queue():
    from services.operation_queue import OperationQueue
    from storage.db import init_db

    init_db()
    return OperationQueue()


def cmd_status(args: argparse.Namespace) -> int:
    queue = _queue()
    status = queue.summary(is_online=True)
    print(json.dumps({"pending": status.pending, "failed": status.failed}))
    if args.failed:
        for op in queue.list_failed():
            queued_at = to_rfc3339_utc(from_ms(op.timestamp))
            print(f"#{op.id} {op.action} queued {queued_at} retries={op.retries}: {op.last_error or '-'}")
    return 0


async def _drain_once(server_url: str, token: Optional[str]) -> int:
    from services.connectivity import ConnectivityMonitor
    from services.sync_client import BatchTransport, SyncApiClient
    from services.sync_controller import SyncController

    queue = _queue()
    async with SyncApiClient(server_url, token) as client:
        online = await client.ping()
        controller = SyncController(
            queue,
            connectivity=ConnectivityMonitor(initial=online),
            transport=BatchTransport(client),
        )
        report = await controller.drain()
    if report is None:
        return 1
    print(
        f"attempted={report.attempted} synced={report.synced} "
        f"retried={report.retried} failed={report.failed}"
    )
    return 0 if not report.stopped_early else 2


def cmd_drain(args: argparse.Namespace) -> int:
    return asyncio.run(_drain_once(args.server, args.token))


def cmd_retry_failed(args: argparse.Namespace) -> int:
    count = _queue().requeue_failed()
    print(f"{count} failed operation(s) moved back to pending")
    return 0


def cmd_log(args: argparse.Namespace) -> int:
    print(read_log_tail(SYNC_LOG_PATH, args.lines))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=APP_NAME.lower(), description="Offline mutation queue and sync server")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the sync server")
    serve.add_argument("--host", default=SERVER.host)
    serve.add_argument("--port", type=int, default=SERVER.port)
    serve.add_argument("--dispatcher", help="module:attribute of an OperationDispatcher")
    serve.set_defaults(func=cmd_serve)

    status = sub.add_parser("status", help="show queue counts")
    status.add_argument("--failed", action="store_true", help="also list failed operations")
    status.set_defaults(func=cmd_status)

    drain = sub.add_parser("drain", help="upload pending operations once")
    drain.add_argument("--server", default=SYNC.server_url)
    drain.add_argument("--token", default=SYNC.api_token)
    drain.set_defaults(func=cmd_drain)

    retry = sub.add_parser("retry-failed", help="give failed operations another attempt")
    retry.set_defaults(func=cmd_retry_failed)

    log = sub.add_parser("log", help="print the tail of the sync log")
    log.add_argument("--lines", type=int, default=100)
    log.set_defaults(func=cmd_log)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
