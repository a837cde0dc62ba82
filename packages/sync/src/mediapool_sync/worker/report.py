from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional

from mediapool_sync.core.errors import EventError
from mediapool_sync.core.json import atomic_write_json

EventStatus = Literal["success", "failed", "rejected"]


def format_duration_ms(ms: int) -> str:
    """Return a short human-readable duration string."""
    if ms < 1000:
        return f"{ms} ms"
    return f"{ms / 1000:.2f} s"


@dataclass(slots=True)
class EventResult:
    message_id: str
    status: EventStatus
    started_at_utc: str
    finished_at_utc: str
    duration_ms: int

    kind: Optional[str] = None
    asset_id: Optional[str] = None
    actions: list[str] = field(default_factory=list)
    skipped: Optional[str] = None
    error: Optional[EventError] = None


@dataclass(slots=True)
class RunReport:
    run_id: str
    started_at_utc: str
    finished_at_utc: str
    status: str  # "success" | "failed" | "cancelled"
    duration_ms: int

    events: list[EventResult] = field(default_factory=list)
    events_jsonl: Optional[str] = None
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def counts(self) -> dict[str, int]:
        out = {"success": 0, "failed": 0, "rejected": 0}
        for r in self.events:
            out[r.status] += 1
        return out

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["counts"] = self.counts
        return d

    def write_json(self, path: Path) -> None:
        atomic_write_json(Path(path), self.to_dict())


def build_run_report(
    *,
    run_id: str,
    started_at_utc: str,
    finished_at_utc: str,
    duration_ms: int,
    results: list[EventResult],
    events_jsonl: str | None,
    cancelled: bool = False,
    meta: dict[str, Any] | None = None,
) -> RunReport:
    if cancelled:
        status = "cancelled"
    else:
        status = "success" if all(r.status == "success" for r in results) else "failed"
    return RunReport(
        run_id=run_id,
        started_at_utc=started_at_utc,
        finished_at_utc=finished_at_utc,
        status=status,
        duration_ms=duration_ms,
        events=results,
        events_jsonl=events_jsonl,
        meta=meta or {},
    )
