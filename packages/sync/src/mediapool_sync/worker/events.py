from __future__ import annotations

import json
import os
import socket
import threading
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from mediapool_sync.core.time import utc_now_iso


class RunEventType(str, Enum):
    RUN_ENV = "run.env"
    RUN_START = "run.start"
    RUN_FINISH = "run.finish"
    RUN_CANCELLED = "run.cancelled"

    EVENT_START = "event.start"
    EVENT_SUCCESS = "event.success"
    EVENT_FAILED = "event.failed"
    EVENT_REJECTED = "event.rejected"


@dataclass(frozen=True, slots=True)
class RunEvent:
    """
    One line of events.jsonl.
    """

    type: str
    ts_utc: str
    run_id: str
    message_id: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)


class EventSink:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

        self.emit(
            RunEvent(
                type=RunEventType.RUN_ENV.value,
                ts_utc=utc_now_iso(),
                run_id="__init__",
                data={
                    "hostname": socket.gethostname(),
                    "pid": os.getpid(),
                    "cwd": str(Path.cwd()),
                },
            )
        )

    def emit(self, event: RunEvent) -> None:
        line = json.dumps(asdict(event), ensure_ascii=False, default=str)
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)
                f.write("\n")


def make_run_event(
    *,
    event_type: RunEventType | str,
    run_id: str,
    message_id: Optional[str] = None,
    **data: Any,
) -> RunEvent:
    type_value = event_type.value if isinstance(event_type, RunEventType) else str(event_type)
    return RunEvent(
        type=type_value,
        ts_utc=utc_now_iso(),
        run_id=run_id,
        message_id=message_id,
        data=dict(data),
    )
