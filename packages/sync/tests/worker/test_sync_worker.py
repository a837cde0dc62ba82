from __future__ import annotations

import json
import threading
from pathlib import Path

from mediapool_sync.events import Event, parse_event
from mediapool_sync.queue import SpoolQueue
from mediapool_sync.store import LocalFileStore
from mediapool_sync.sync import Action, DispatchResult, Dispatcher
from mediapool_sync.worker import SyncWorker


class ScriptedDispatcher:
    def __init__(self) -> None:
        self.seen: list[str] = []

    def dispatch(self, event: Event) -> DispatchResult:
        self.seen.append(event.asset_id)
        if event.asset_id == "boom":
            raise RuntimeError("dispatcher exploded")
        return DispatchResult(kind=event.kind.value, performed=(Action.DELETE_FILES,))


def _read_events(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_run_reports_each_delivery(tmp_path: Path, make_event_payload) -> None:
    queue = SpoolQueue(tmp_path / "spool")
    queue.send(parse_event(make_event_payload("ASSET_DELETED", asset_id="1")))
    queue.send(parse_event(make_event_payload("ASSET_DELETED", asset_id="boom")))
    queue.pending_dir.joinpath("0000000000000-broken.json").write_text("{not json", encoding="utf-8")

    dispatcher = ScriptedDispatcher()
    worker = SyncWorker(dispatcher, queue)
    code, report, report_path = worker.run(run_root=tmp_path / "runs", run_id="r1")

    assert code == 1
    assert report.status == "failed"
    assert report.counts == {"success": 1, "failed": 1, "rejected": 1}
    assert [r.status for r in report.events] == ["rejected", "success", "failed"]
    assert report.events[1].actions == ["delete_files"]
    assert report.events[2].error.exc_type == "RuntimeError"
    assert dispatcher.seen == ["1", "boom"]

    assert queue.pending() == []
    assert len(queue.failed()) == 2

    saved = json.loads(report_path.read_text(encoding="utf-8"))
    assert saved["run_id"] == "r1"
    assert saved["counts"]["rejected"] == 1

    types = [e["type"] for e in _read_events(tmp_path / "runs" / "r1" / "events.jsonl")]
    assert types[0] == "run.env"
    assert types[1] == "run.start"
    assert types[-1] == "run.finish"
    assert types.count("event.success") == 1
    assert types.count("event.failed") == 1
    assert types.count("event.rejected") == 1


def test_clean_run_exits_zero(tmp_path: Path, make_event_payload) -> None:
    queue = SpoolQueue(tmp_path / "spool")
    queue.send(parse_event(make_event_payload("ASSET_DELETED", asset_id="1")))

    code, report, _ = SyncWorker(ScriptedDispatcher(), queue).run(run_root=tmp_path / "runs")

    assert code == 0
    assert report.status == "success"
    assert queue.pending() == []


def test_cancelled_run_leaves_messages_pending(tmp_path: Path, make_event_payload) -> None:
    queue = SpoolQueue(tmp_path / "spool")
    queue.send(parse_event(make_event_payload("ASSET_DELETED", asset_id="1")))
    cancel = threading.Event()
    cancel.set()

    dispatcher = ScriptedDispatcher()
    code, report, _ = SyncWorker(dispatcher, queue, cancel=cancel).run(run_root=tmp_path / "runs")

    assert code == 1
    assert report.status == "cancelled"
    assert dispatcher.seen == []
    assert len(queue.pending()) == 1


def test_end_to_end_publish(tmp_path: Path, dam_client, now, make_event_payload) -> None:
    queue = SpoolQueue(tmp_path / "spool")
    queue.send(parse_event(make_event_payload("PUBLISHED", channels=[("PUBLIC_LINKS", 12)])))
    store = LocalFileStore(tmp_path / "assets")
    dispatcher = Dispatcher(dam_client, store, sync_channels={"PUBLIC_LINKS"}, clock=lambda: now)

    code, report, _ = SyncWorker(dispatcher, queue).run(run_root=tmp_path / "runs", limit=5)

    assert code == 0
    asset_dir = tmp_path / "assets" / "cust1" / "sys1" / "3467"
    assert (asset_dir / "metadata.json").is_file()
    assert (asset_dir / "manual.pdf").read_bytes() == b"%PDF-1.4 rendition"
    assert report.events[0].actions == [
        "fetch_metadata",
        "fetch_binary",
        "persist_metadata",
        "persist_binary",
    ]


def test_unrepresentable_event_time_does_not_stop_the_run(
    tmp_path: Path, make_event_payload
) -> None:
    queue = SpoolQueue(tmp_path / "spool")
    queue.send(parse_event(make_event_payload("ASSET_DELETED", asset_id="1")))
    bad = make_event_payload("TEST", asset_id=None, eventTime=10**30)
    queue.pending_dir.joinpath("0000000000000-far-future.json").write_text(
        json.dumps(bad), encoding="utf-8"
    )

    dispatcher = ScriptedDispatcher()
    code, report, report_path = SyncWorker(dispatcher, queue).run(run_root=tmp_path / "runs")

    assert code == 1
    assert [r.status for r in report.events] == ["rejected", "success"]
    assert dispatcher.seen == ["1"]
    assert report_path.is_file()
    assert queue.pending() == []
    assert [p.name for p in queue.failed()] == ["0000000000000-far-future.json"]
