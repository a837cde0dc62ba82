from __future__ import annotations

import threading
import uuid
from pathlib import Path
from typing import Any, Optional

import structlog
from mediapool_sync.core.errors import (
    EventValidationError,
    RenderTaskCancelledError,
    event_error_from_exc,
)
from mediapool_sync.core.logging import bind, clear_bindings
from mediapool_sync.core.time import monotonic_ms, utc_now_iso
from mediapool_sync.events import Event, parse_event
from mediapool_sync.queue import Delivery, SpoolQueue
from mediapool_sync.sync import Dispatcher

from .events import EventSink, RunEventType, make_run_event
from .report import EventResult, RunReport, build_run_report, format_duration_ms

log = structlog.get_logger(__name__)


def new_run_id() -> str:
    return uuid.uuid4().hex


class SyncWorker:
    """
    Drains the spool one event at a time through the dispatcher.

    Every delivery ends acked (success), in failed/ (validation or
    processing failure), or untouched in pending/ when the run is cancelled
    mid-event. Nothing raised while processing one event stops the run.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        queue: SpoolQueue,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.queue = queue
        self.cancel = cancel or threading.Event()

    def run(
        self,
        *,
        run_root: Path,
        run_id: str | None = None,
        limit: int | None = None,
        meta: dict[str, Any] | None = None,
    ) -> tuple[int, RunReport, Path]:
        """
        Writes {run_root}/{run_id}/events.jsonl and run_report.json.

        Returns: (exit_code, report, report_path)
        """
        meta = meta or {}
        rid = run_id or new_run_id()
        run_dir = Path(run_root) / rid
        run_dir.mkdir(parents=True, exist_ok=True)

        events_path = run_dir / "events.jsonl"
        sink = EventSink(events_path)

        started_at = utc_now_iso()
        t0 = monotonic_ms()
        log.info("worker.start", run_id=rid, spool=str(self.queue.root), limit=limit)
        sink.emit(make_run_event(event_type=RunEventType.RUN_START, run_id=rid, limit=limit, **meta))

        results: list[EventResult] = []
        cancelled = False
        for delivery in self.queue.consume(limit=limit):
            if self.cancel.is_set():
                cancelled = True
                break
            res = self.process(delivery, run_id=rid, sink=sink)
            results.append(res)
            if self.cancel.is_set():
                cancelled = True
                break

        if cancelled:
            log.warning("worker.cancelled", run_id=rid, processed=len(results))
            sink.emit(make_run_event(event_type=RunEventType.RUN_CANCELLED, run_id=rid))

        duration = monotonic_ms() - t0
        report = build_run_report(
            run_id=rid,
            started_at_utc=started_at,
            finished_at_utc=utc_now_iso(),
            duration_ms=duration,
            results=results,
            events_jsonl=str(events_path),
            cancelled=cancelled,
            meta=meta,
        )
        report_path = run_dir / "run_report.json"
        report.write_json(report_path)

        sink.emit(
            make_run_event(
                event_type=RunEventType.RUN_FINISH,
                run_id=rid,
                status=report.status,
                duration_ms=duration,
                report_json=str(report_path),
                **report.counts,
            )
        )
        log.info(
            "worker.finish",
            run_id=rid,
            status=report.status,
            duration=format_duration_ms(duration),
            report=str(report_path),
            **report.counts,
        )

        exit_code = 0 if report.status == "success" else 1
        return exit_code, report, report_path

    def process(self, delivery: Delivery, *, run_id: str, sink: EventSink) -> EventResult:
        t0 = monotonic_ms()
        started_at = utc_now_iso()
        mid = delivery.message_id

        def _result(status, event: Event | None = None, **kw: Any) -> EventResult:
            return EventResult(
                message_id=mid,
                status=status,
                started_at_utc=started_at,
                finished_at_utc=utc_now_iso(),
                duration_ms=monotonic_ms() - t0,
                kind=event.kind.value if event else None,
                asset_id=event.asset_id if event else None,
                **kw,
            )

        clear_bindings()
        bind(run_id=run_id, message_id=mid)
        try:
            try:
                event = parse_event(delivery.load())
            except (EventValidationError, OSError, ValueError) as e:
                err = event_error_from_exc(e)
                self.queue.reject(delivery, err)
                sink.emit(
                    make_run_event(
                        event_type=RunEventType.EVENT_REJECTED,
                        run_id=run_id,
                        message_id=mid,
                        exc_type=err.exc_type,
                        message=err.message,
                    )
                )
                log.warning("worker.rejected", error=err.message)
                return _result("rejected", error=err)

            bind(event_kind=event.kind.value, asset_id=event.asset_id)
            sink.emit(
                make_run_event(
                    event_type=RunEventType.EVENT_START,
                    run_id=run_id,
                    message_id=mid,
                    kind=event.kind.value,
                    asset_id=event.asset_id,
                )
            )

            try:
                outcome = self.dispatcher.dispatch(event)
            except RenderTaskCancelledError as e:
                # stays in pending/ for the next run
                err = event_error_from_exc(e)
                log.warning("worker.event_interrupted", error=err.message)
                sink.emit(
                    make_run_event(
                        event_type=RunEventType.EVENT_FAILED,
                        run_id=run_id,
                        message_id=mid,
                        exc_type=err.exc_type,
                        message=err.message,
                    )
                )
                return _result("failed", event, error=err)
            except Exception as e:
                err = event_error_from_exc(e)
                status = "rejected" if isinstance(e, EventValidationError) else "failed"
                self.queue.reject(delivery, err)
                sink.emit(
                    make_run_event(
                        event_type=(
                            RunEventType.EVENT_REJECTED
                            if status == "rejected"
                            else RunEventType.EVENT_FAILED
                        ),
                        run_id=run_id,
                        message_id=mid,
                        exc_type=err.exc_type,
                        message=err.message,
                    )
                )
                log.error("worker.event_failed", exc_type=err.exc_type, error=err.message)
                return _result(status, event, error=err)

            self.queue.ack(delivery)
            actions = [a.value for a in outcome.performed]
            sink.emit(
                make_run_event(
                    event_type=RunEventType.EVENT_SUCCESS,
                    run_id=run_id,
                    message_id=mid,
                    actions=actions,
                    skipped=outcome.skipped,
                )
            )
            return _result("success", event, actions=actions, skipped=outcome.skipped)
        finally:
            clear_bindings()
