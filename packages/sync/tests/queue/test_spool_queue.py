from __future__ import annotations

import json
from pathlib import Path

from mediapool_sync.core.errors import EventError
from mediapool_sync.events import parse_event
from mediapool_sync.queue import SpoolQueue


def _send(queue: SpoolQueue, make_event_payload, asset_id: str) -> Path:
    return queue.send(parse_event(make_event_payload("PUBLISHED", asset_id=asset_id)))


def test_messages_come_back_in_arrival_order(tmp_path: Path, make_event_payload) -> None:
    queue = SpoolQueue(tmp_path)
    for asset_id in ("1", "2", "3"):
        _send(queue, make_event_payload, asset_id)

    assert [d.load()["assetId"] for d in queue.consume()] == ["1", "2", "3"]
    assert [d.load()["assetId"] for d in queue.consume(limit=2)] == ["1", "2"]


def test_sent_message_is_the_wire_form(tmp_path: Path, make_event_payload) -> None:
    queue = SpoolQueue(tmp_path)
    path = _send(queue, make_event_payload, "3467")

    body = json.loads(path.read_text(encoding="utf-8"))
    assert body["eventType"] == "PUBLISHED"
    assert body["eventTime"] == 1714564800000
    assert parse_event(body).asset_id == "3467"


def test_ack_removes_the_message(tmp_path: Path, make_event_payload) -> None:
    queue = SpoolQueue(tmp_path)
    _send(queue, make_event_payload, "1")

    delivery = next(queue.consume())
    queue.ack(delivery)

    assert queue.pending() == []
    assert queue.failed() == []


def test_reject_keeps_message_and_error(tmp_path: Path, make_event_payload) -> None:
    queue = SpoolQueue(tmp_path)
    _send(queue, make_event_payload, "1")

    delivery = next(queue.consume())
    dst = queue.reject(delivery, EventError(exc_type="RemoteError", message="HTTP 500", traceback=""))

    assert queue.pending() == []
    assert queue.failed() == [dst]
    err = json.loads(dst.with_name(dst.name + ".err").read_text(encoding="utf-8"))
    assert err == {"exc_type": "RemoteError", "message": "HTTP 500"}


def test_requeue_moves_failed_back(tmp_path: Path, make_event_payload) -> None:
    queue = SpoolQueue(tmp_path)
    _send(queue, make_event_payload, "1")
    _send(queue, make_event_payload, "2")
    for delivery in list(queue.consume()):
        queue.reject(delivery, EventError(exc_type="X", message="x", traceback=""))

    assert queue.requeue_failed() == 2
    assert queue.failed() == []
    assert list(queue.failed_dir.iterdir()) == []
    assert [d.load()["assetId"] for d in queue.consume()] == ["1", "2"]


def test_empty_spool(tmp_path: Path) -> None:
    queue = SpoolQueue(tmp_path / "nowhere")
    assert list(queue.consume()) == []
    assert queue.requeue_failed() == 0
