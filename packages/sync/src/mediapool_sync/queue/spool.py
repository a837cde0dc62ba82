from __future__ import annotations

import itertools
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Optional

import structlog
from mediapool_sync.core.errors import EventError, StoreError
from mediapool_sync.core.fs import atomic_move, safe_unlink
from mediapool_sync.core.json import atomic_write_json, read_json
from mediapool_sync.core.time import to_epoch_ms, utc_now
from mediapool_sync.events import Event

log = structlog.get_logger(__name__)

PENDING = "pending"
FAILED = "failed"
ERROR_SUFFIX = ".err"


@dataclass(frozen=True, slots=True)
class Delivery:
    path: Path
    message_id: str

    def load(self) -> Any:
        return read_json(self.path)


class SpoolQueue:
    """
    Directory-backed event queue with at-least-once delivery.

    Messages are JSON files in pending/ named so that lexical order is
    arrival order. A message leaves pending/ only when acked (deleted) or
    rejected (moved to failed/).
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.pending_dir = self.root / PENDING
        self.failed_dir = self.root / FAILED
        # orders messages sent within the same millisecond
        self._seq = itertools.count()

    def _ensure_dirs(self) -> None:
        self.pending_dir.mkdir(parents=True, exist_ok=True)
        self.failed_dir.mkdir(parents=True, exist_ok=True)

    def send(self, event: Event) -> Path:
        self._ensure_dirs()
        message_id = f"{to_epoch_ms(utc_now()):013d}-{next(self._seq):06d}-{uuid.uuid4().hex[:12]}"
        path = self.pending_dir / f"{message_id}.json"
        try:
            atomic_write_json(path, event.to_wire())
        except OSError as e:
            raise StoreError(f"enqueue to {path} failed: {e}") from e
        log.info("queue.sent", message_id=message_id, kind=event.kind.value, asset_id=event.asset_id)
        return path

    def pending(self) -> list[Path]:
        if not self.pending_dir.is_dir():
            return []
        return sorted(self.pending_dir.glob("*.json"))

    def failed(self) -> list[Path]:
        if not self.failed_dir.is_dir():
            return []
        return sorted(self.failed_dir.glob("*.json"))

    def consume(self, *, limit: Optional[int] = None) -> Iterator[Delivery]:
        """
        Yield pending messages oldest first. Messages sent while consuming
        are picked up on the next call.
        """
        n = 0
        for path in self.pending():
            if limit is not None and n >= limit:
                return
            if not path.exists():
                continue
            n += 1
            yield Delivery(path=path, message_id=path.stem)

    def ack(self, delivery: Delivery) -> None:
        safe_unlink(delivery.path)
        log.debug("queue.acked", message_id=delivery.message_id)

    def reject(self, delivery: Delivery, error: EventError | None = None) -> Path:
        """Move to failed/, with the error alongside when given."""
        self._ensure_dirs()
        dst = self.failed_dir / delivery.path.name
        atomic_move(delivery.path, dst)
        if error is not None:
            atomic_write_json(
                dst.with_name(dst.name + ERROR_SUFFIX),
                {"exc_type": error.exc_type, "message": error.message},
            )
        log.warning("queue.rejected", message_id=delivery.message_id)
        return dst

    def requeue_failed(self) -> int:
        self._ensure_dirs()
        moved = 0
        for path in self.failed():
            atomic_move(path, self.pending_dir / path.name)
            safe_unlink(path.with_name(path.name + ERROR_SUFFIX))
            moved += 1
        log.info("queue.requeued", count=moved)
        return moved
