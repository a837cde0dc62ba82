from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import Callable

import structlog
from mediapool_sync.client import MediaPoolClient
from mediapool_sync.core import (
    LOG_FORMATS,
    ConfigError,
    EventValidationError,
    Settings,
    SyncError,
    bind,
    configure_logging,
    load_settings,
)
from mediapool_sync.events import Event, flatten_webhook, parse_event
from mediapool_sync.queue import SpoolQueue
from mediapool_sync.store import LocalFileStore
from mediapool_sync.sync import Dispatcher
from mediapool_sync.worker import SyncWorker, new_run_id
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

console = Console()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2


class InputError(Exception):
    pass


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mediapool-sync")
    p.add_argument("--log-level", default=None, help="Override MEDIAPOOL_SYNC_LOG_LEVEL")
    p.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=None,
        help="Override MEDIAPOOL_SYNC_LOG_FORMAT",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("hook", help="Flatten a webhook request body and enqueue its events")
    sp.add_argument("file", help="Webhook body JSON file, or - for stdin")

    sp = sub.add_parser("enqueue", help="Validate a single event and enqueue it")
    sp.add_argument("file", help="Event JSON file, or - for stdin")

    sp = sub.add_parser("sync", help="Synchronize a single event immediately")
    sp.add_argument("file", help="Event JSON file, or - for stdin")

    sp = sub.add_parser("consume", help="Drain the spool through the dispatcher")
    sp.add_argument("--limit", type=int, default=None, help="Process at most N events")
    sp.add_argument("--run-id", default=None, help="Run id (default: random)")

    sub.add_parser("requeue", help="Move failed events back to pending")
    return p


def _read_input(name: str) -> str:
    if name == "-":
        return sys.stdin.read()
    try:
        return Path(name).read_text(encoding="utf-8")
    except OSError as e:
        raise InputError(f"cannot read {name}: {e}") from e


def _install_signal_handlers(cancel: threading.Event) -> None:
    def _handler(signum, frame) -> None:
        console.print(f"[yellow]signal {signum}: stopping after the current event[/yellow]")
        cancel.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _handler)


def _build_dispatcher(s: Settings, cancel: threading.Event) -> tuple[Dispatcher, MediaPoolClient]:
    client = MediaPoolClient.from_settings(s, cancel=cancel)
    store = LocalFileStore(s.base_path)
    return Dispatcher(client, store, sync_channels=s.sync_channel_set), client


def _events_table(events: list[Event], title: str) -> Table:
    tbl = Table(title=title, show_header=True, box=None)
    tbl.add_column("kind")
    tbl.add_column("asset")
    tbl.add_column("event time")
    tbl.add_column("channels")
    for e in events:
        tbl.add_row(
            e.kind.value,
            e.asset_id or "-",
            e.event_time.isoformat(),
            ",".join(e.channel_ids()) or "-",
        )
    return tbl


def cmd_hook(args: argparse.Namespace, s: Settings) -> int:
    events = flatten_webhook(_read_input(args.file))
    queue = SpoolQueue(s.spool_dir)
    for e in events:
        queue.send(e)
    console.print(_events_table(events, f"Enqueued {len(events)} event(s)"))
    return EXIT_OK


def cmd_enqueue(args: argparse.Namespace, s: Settings) -> int:
    event = parse_event(_read_input(args.file))
    path = SpoolQueue(s.spool_dir).send(event)
    console.print(_events_table([event], "Enqueued"))
    console.print(f"spool file: {path}")
    return EXIT_OK


def cmd_sync(args: argparse.Namespace, s: Settings) -> int:
    event = parse_event(_read_input(args.file))
    cancel = threading.Event()
    dispatcher, client = _build_dispatcher(s, cancel)
    _install_signal_handlers(cancel)
    bind(event_kind=event.kind.value, asset_id=event.asset_id)

    with client:
        try:
            result = dispatcher.dispatch(event)
        except EventValidationError:
            raise
        except SyncError as e:
            console.print(f"[red]failed[/red] {type(e).__name__}: {escape(str(e))}")
            return EXIT_FAILED

    tbl = Table(title="Result", show_header=True, box=None)
    tbl.add_row("status", "[green]ok[/green]")
    tbl.add_row("kind", result.kind)
    tbl.add_row("actions", ", ".join(a.value for a in result.performed) or "-")
    if result.skipped:
        tbl.add_row("skipped", result.skipped)
    console.print(tbl)
    return EXIT_OK


def cmd_consume(args: argparse.Namespace, s: Settings) -> int:
    if args.limit is not None and args.limit < 1:
        raise InputError("--limit must be at least 1")

    run_id = args.run_id or new_run_id()
    bind(run_id=run_id, command="consume")
    cancel = threading.Event()
    dispatcher, client = _build_dispatcher(s, cancel)
    _install_signal_handlers(cancel)
    worker = SyncWorker(dispatcher, SpoolQueue(s.spool_dir), cancel=cancel)

    console.print(
        Panel.fit(
            Text(f"mediapool-sync - consume\nrun_id={run_id}\nspool={s.spool_dir}", style="bold"),
            title="Run",
        )
    )

    with client:
        exit_code, report, report_path = worker.run(
            run_root=Path(s.run_root),
            run_id=run_id,
            limit=args.limit,
        )

    counts = report.counts
    tbl = Table(title="Result", show_header=True, box=None)
    tbl.add_row("status", "[green]ok[/green]" if exit_code == 0 else f"[red]{report.status}[/red]")
    tbl.add_row("succeeded", str(counts["success"]))
    tbl.add_row("failed", str(counts["failed"]))
    tbl.add_row("rejected", str(counts["rejected"]))
    tbl.add_row("report", str(report_path))
    console.print(tbl)
    return int(exit_code)


def cmd_requeue(args: argparse.Namespace, s: Settings) -> int:
    n = SpoolQueue(s.spool_dir).requeue_failed()
    console.print(f"requeued {n} event(s)")
    return EXIT_OK


_COMMANDS: dict[str, Callable[[argparse.Namespace, Settings], int]] = {
    "hook": cmd_hook,
    "enqueue": cmd_enqueue,
    "sync": cmd_sync,
    "consume": cmd_consume,
    "requeue": cmd_requeue,
}


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        s = load_settings()
    except ValidationError as e:
        console.print(f"[red]configuration error[/red]\n{escape(str(e))}")
        return EXIT_INVALID

    configure_logging(
        level=args.log_level or s.log_level,
        fmt=args.log_format or s.log_format,
    )
    log = structlog.get_logger(__name__)

    try:
        return _COMMANDS[args.cmd](args, s)
    except (EventValidationError, InputError) as e:
        console.print(f"[red]invalid input[/red]\n{escape(str(e))}")
        return EXIT_INVALID
    except ConfigError as e:
        log.error("cli.config_error", error=str(e))
        console.print(f"[red]configuration error[/red]: {escape(str(e))}")
        return EXIT_INVALID
    except SyncError as e:
        log.error("cli.failed", exc_type=type(e).__name__, error=str(e))
        console.print(f"[red]failed[/red] {type(e).__name__}: {escape(str(e))}")
        return EXIT_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
