from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Optional

from mediapool_sync.core.time import to_iso
from mediapool_sync.events import AssetKey

if TYPE_CHECKING:
    from mediapool_sync.client.render import RenderTask

ASSET_ID_PREFIX = "M-"


class AssetState(StrEnum):
    READY = "ready"
    FAULT = "fault"
    MISSING = "missing"


def split_asset_id(raw: str) -> tuple[str, int]:
    """
    "M-3467" -> ("M-3467", 3467); "3467" -> ("3467", 3467).
    Raises ValueError when the remainder is not numeric.
    """
    s = str(raw).strip()
    digits = s[len(ASSET_ID_PREFIX) :] if s.startswith(ASSET_ID_PREFIX) else s
    return s, int(digits)


@dataclass(frozen=True, slots=True)
class AssetSnapshot:
    """
    The remote asset's state as needed for the local mirror.

    Built once per synchronization pass and discarded afterwards. Only
    READY snapshots may be read beyond `key`, `state` and `reason`.
    """

    key: AssetKey
    state: AssetState = AssetState.FAULT
    reason: Optional[str] = None

    id: Optional[str] = None
    numeric_id: Optional[int] = None

    title: Optional[str] = None
    titles: dict[str, str] = field(default_factory=dict)
    description: Optional[str] = None
    descriptions: dict[str, str] = field(default_factory=dict)
    category_ids: frozenset[str] = frozenset()
    container_id: Optional[int] = None
    container_names: dict[str, str] = field(default_factory=dict)

    filename: Optional[str] = None
    generated_filename: Optional[str] = None
    suffix: Optional[str] = None
    mime_type: Optional[str] = None
    compression_type: Optional[str] = None
    width: Optional[str] = None
    height: Optional[str] = None
    units: Optional[str] = None
    size_kilobytes: Optional[int] = None
    version: Optional[str] = None

    channels: dict[str, int] = field(default_factory=dict)

    last_update_time: Optional[datetime] = None
    last_upload_time: Optional[datetime] = None

    # transient, present only while a render task is outstanding
    render_task: Optional[RenderTask] = None

    @classmethod
    def fault(cls, key: AssetKey, reason: str) -> "AssetSnapshot":
        return cls(key=key, state=AssetState.FAULT, reason=reason)

    @classmethod
    def missing(cls, key: AssetKey, reason: str) -> "AssetSnapshot":
        return cls(key=key, state=AssetState.MISSING, reason=reason)

    @property
    def is_ready(self) -> bool:
        return self.state is AssetState.READY

    @property
    def download_url(self) -> str | None:
        return self.render_task.download_url if self.render_task else None

    @property
    def download_task_id(self) -> str | None:
        return self.render_task.task_id if self.render_task else None

    def with_render_task(self, task: RenderTask | None) -> "AssetSnapshot":
        return replace(self, render_task=task)

    def as_fault(self, reason: str) -> "AssetSnapshot":
        return replace(self, state=AssetState.FAULT, reason=reason, render_task=None)

    def binary_name(self) -> str:
        stem = self.filename or self.generated_filename or str(self.numeric_id or self.key.asset_id)
        suffix = (self.suffix or "").lstrip(".")
        if not suffix or stem.lower().endswith("." + suffix.lower()):
            return stem
        return f"{stem}.{suffix}"

    def to_dict(self) -> dict[str, Any]:
        """
        Persistent view for metadata.json. Empty values and transient render
        task fields are left out.
        """
        d: dict[str, Any] = {
            "id": self.id,
            "asset_id": self.key.asset_id,
            "customer_id": self.key.customer_id,
            "system_id": self.key.system_id,
            "title": self.title,
            "titles": dict(self.titles),
            "description": self.description,
            "descriptions": dict(self.descriptions),
            "category_ids": sorted(self.category_ids),
            "container_id": self.container_id,
            "container_names": dict(self.container_names),
            "filename": self.filename,
            "generated_filename": self.generated_filename,
            "suffix": self.suffix,
            "mime_type": self.mime_type,
            "compression_type": self.compression_type,
            "width": self.width,
            "height": self.height,
            "units": self.units,
            "size_kilobytes": self.size_kilobytes,
            "version": self.version,
            "channels": dict(self.channels),
            "last_update_time": to_iso(self.last_update_time) if self.last_update_time else None,
            "last_upload_time": to_iso(self.last_upload_time) if self.last_upload_time else None,
        }
        return {k: v for k, v in d.items() if v is not None and v != {} and v != []}
