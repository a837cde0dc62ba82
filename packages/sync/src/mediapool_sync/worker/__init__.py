from .events import EventSink, RunEvent, RunEventType, make_run_event
from .report import EventResult, RunReport, build_run_report, format_duration_ms
from .runner import SyncWorker, new_run_id

__all__ = [
    "EventResult",
    "EventSink",
    "RunEvent",
    "RunEventType",
    "RunReport",
    "SyncWorker",
    "build_run_report",
    "format_duration_ms",
    "make_run_event",
    "new_run_id",
]
