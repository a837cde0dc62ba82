from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Optional


class RenderState(StrEnum):
    REQUESTED = "requested"
    READY = "ready"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(slots=True)
class RenderTask:
    """
    One outstanding file-generation task on the DAM.

    Created in REQUESTED state by `MediaPoolClient.create_render_task`;
    polling moves it to READY, FAILED or TIMED_OUT. Never persisted.
    """

    task_id: str
    download_url: str
    asset_id: str
    version: str
    rendering_scheme_id: int
    state: RenderState = RenderState.REQUESTED
    attempts: int = 0
    status_code: Optional[int] = None

    @property
    def retries(self) -> int:
        return max(self.attempts - 1, 0)
