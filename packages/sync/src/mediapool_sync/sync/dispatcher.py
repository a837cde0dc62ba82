from __future__ import annotations

from contextlib import ExitStack
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Collection, Optional

import httpx
import structlog
from mediapool_sync.asset import AssetSnapshot, AssetState, build_snapshot
from mediapool_sync.client import MediaPoolClient, RenderState
from mediapool_sync.core.errors import (
    AssetNotFoundError,
    EventValidationError,
    RemoteError,
    RenderTaskTimeoutError,
    SyncError,
)
from mediapool_sync.core.time import utc_now
from mediapool_sync.events import Event
from mediapool_sync.store import FileStore

from .actions import SYNTHESIZED_CHANNEL_KINDS, Action, Plan, plan_for

log = structlog.get_logger(__name__)


class SnapshotUnavailableError(RemoteError):
    def __init__(self, snapshot: AssetSnapshot) -> None:
        super().__init__(
            f"asset {snapshot.key.asset_id} is {snapshot.state.value}: {snapshot.reason or '-'}"
        )
        self.state = snapshot.state


@dataclass(frozen=True, slots=True)
class DispatchResult:
    kind: str
    performed: tuple[Action, ...] = ()
    skipped: Optional[str] = None


class Dispatcher:
    """
    Maps one validated event onto fetch / persist / delete actions.

    No retry happens here; a failed event is left to the queue's
    redelivery.
    """

    def __init__(
        self,
        client: MediaPoolClient,
        store: FileStore,
        *,
        sync_channels: Collection[str],
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client = client
        self._store = store
        self._sync_channels = frozenset(sync_channels)
        self._clock = clock

    def synchronize(self, event: Event) -> bool:
        """True when the event was handled (including deliberate no-ops)."""
        try:
            self.dispatch(event)
            return True
        except RenderTaskTimeoutError as e:
            log.error("sync.render_timeout", asset_id=event.asset_id, attempts=e.attempts, error=str(e))
            return False
        except SyncError as e:
            log.error(
                "sync.failed",
                kind=event.kind.value,
                asset_id=event.asset_id,
                exc_type=type(e).__name__,
                error=str(e),
            )
            return False

    def dispatch(self, event: Event) -> DispatchResult:
        plan = plan_for(event.kind)

        if plan.is_noop:
            if plan.logged:
                log.info("sync.test_event", customer_id=event.customer_id, system_id=event.system_id)
            else:
                log.debug("sync.unhandled_kind", kind=event.kind.value, asset_id=event.asset_id)
            return DispatchResult(kind=event.kind.value, skipped="no action for this kind")

        if not event.asset_id:
            raise EventValidationError(f"{event.kind.value} event without assetId")

        log.info("sync.dispatch", kind=event.kind.value, asset_id=event.asset_id)

        snapshot: Optional[AssetSnapshot] = None
        if plan.fetches:
            snapshot = self.load_snapshot(event)
            if not snapshot.is_ready:
                raise SnapshotUnavailableError(snapshot)
            if event.kind in SYNTHESIZED_CHANNEL_KINDS or not event.channel_entries:
                event = event.with_channels(snapshot.channels)

        if plan.channel_gated and not event.is_my_channel(self._sync_channels):
            log.info(
                "sync.not_my_channel",
                kind=event.kind.value,
                asset_id=event.asset_id,
                channels=event.channel_ids(),
            )
            return DispatchResult(kind=event.kind.value, skipped="no synchronized channel")

        with ExitStack() as stack:
            rendition: Optional[httpx.Response] = None
            if snapshot is not None and event.needs_binary():
                snapshot, rendition = self._prepare_render(event, snapshot, stack)
            return self._execute(event, plan, snapshot, rendition)

    def load_snapshot(self, event: Event) -> AssetSnapshot:
        """
        Search and version lookups plus the snapshot build. Remote failures
        yield a FAULT (or MISSING) snapshot rather than an exception; auth
        errors propagate.
        """
        key = event.key
        try:
            search = self._client.search_asset(event)
            version = self._client.fetch_version_info(event)
        except AssetNotFoundError as e:
            return AssetSnapshot.missing(key, str(e))
        except RemoteError as e:
            log.error("sync.fetch_failed", asset_id=event.asset_id, error=str(e))
            return AssetSnapshot.fault(key, str(e))

        if version is None:
            log.warning("sync.no_versions", asset_id=event.asset_id)

        return build_snapshot(
            search,
            version,
            key=key,
            sync_channels=self._sync_channels,
            now=self._clock(),
        )

    def _prepare_render(
        self, event: Event, snapshot: AssetSnapshot, stack: ExitStack
    ) -> tuple[AssetSnapshot, Optional[httpx.Response]]:
        """
        Create the render task and poll it to READY before anything is
        written. The open rendition is registered with `stack`.
        """
        scheme = event.effective_rendering_scheme()
        if snapshot.numeric_id is None or snapshot.version is None or scheme is None:
            log.warning(
                "sync.render_skipped",
                asset_id=event.asset_id,
                numeric_id=snapshot.numeric_id,
                version=snapshot.version,
                rendering_scheme=scheme,
            )
            return snapshot, None

        try:
            task = self._client.create_render_task(
                event.service_url,
                asset_id=snapshot.id or event.asset_id or "",
                numeric_id=snapshot.numeric_id,
                version=snapshot.version,
                rendering_scheme_id=scheme,
            )
        except RemoteError as e:
            raise SnapshotUnavailableError(snapshot.as_fault(f"render task not created: {e}")) from e

        # timeout and failure propagate from here, ahead of every persist step
        rendition = stack.enter_context(self._client.open_rendition(task))
        return snapshot.with_render_task(task), rendition

    def _execute(
        self,
        event: Event,
        plan: Plan,
        snapshot: Optional[AssetSnapshot],
        rendition: Optional[httpx.Response],
    ) -> DispatchResult:
        performed: list[Action] = [a for a in plan.actions if a not in plan.side_effects]
        persists = {Action.PERSIST_METADATA, Action.PERSIST_BINARY} & set(plan.side_effects)
        if persists and (snapshot is None or snapshot.state is not AssetState.READY):
            raise SyncError(f"{event.kind.value}: nothing fetched to persist")

        for action in plan.side_effects:
            if action is Action.DELETE_FILES:
                self._store.delete_files(event)
            elif action is Action.PERSIST_METADATA:
                self._store.store_metadata(snapshot)
            elif action is Action.PERSIST_BINARY:
                task = snapshot.render_task
                if rendition is None or task is None or task.state is not RenderState.READY:
                    log.warning("sync.no_rendition", asset_id=event.asset_id)
                    continue
                self._store.store_binary(snapshot, rendition)
            performed.append(action)

        log.info(
            "sync.done",
            kind=event.kind.value,
            asset_id=event.asset_id,
            actions=[a.value for a in performed],
        )
        return DispatchResult(kind=event.kind.value, performed=tuple(performed))
