from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Mapping

from mediapool_sync.events import BINARY_KINDS, EventKind


class Action(StrEnum):
    FETCH_METADATA = "fetch_metadata"
    FETCH_BINARY = "fetch_binary"
    PERSIST_METADATA = "persist_metadata"
    PERSIST_BINARY = "persist_binary"
    DELETE_FILES = "delete_files"


@dataclass(frozen=True, slots=True)
class Plan:
    actions: tuple[Action, ...] = ()
    channel_gated: bool = True
    logged: bool = False

    @property
    def is_noop(self) -> bool:
        return not self.actions

    @property
    def fetches(self) -> bool:
        return Action.FETCH_METADATA in self.actions

    @property
    def side_effects(self) -> tuple[Action, ...]:
        return tuple(
            a for a in self.actions if a not in (Action.FETCH_METADATA, Action.FETCH_BINARY)
        )


NOOP = Plan(channel_gated=False)

_FULL = Plan(
    (Action.FETCH_METADATA, Action.FETCH_BINARY, Action.PERSIST_METADATA, Action.PERSIST_BINARY)
)
_VERSION = Plan(
    (Action.FETCH_METADATA, Action.FETCH_BINARY, Action.PERSIST_BINARY, Action.PERSIST_METADATA)
)
_METADATA = Plan((Action.FETCH_METADATA, Action.PERSIST_METADATA))
_DELETE = Plan((Action.DELETE_FILES,))
# the asset itself has to be readable before its local copy goes
_FETCH_THEN_DELETE = Plan((Action.FETCH_METADATA, Action.DELETE_FILES))
# the asset may no longer exist remotely
_DELETE_UNGATED = Plan((Action.DELETE_FILES,), channel_gated=False)

# version changes land the file before its metadata
_BINARY_FIRST: frozenset[EventKind] = frozenset(
    {EventKind.VERSION_ADDED, EventKind.VERSION_OFFICIAL}
)

PLANS: Mapping[EventKind, Plan] = MappingProxyType(
    {
        **{kind: _VERSION if kind in _BINARY_FIRST else _FULL for kind in BINARY_KINDS},
        EventKind.METADATA_CHANGED: _METADATA,
        EventKind.PUBLISHING_END: _DELETE,
        EventKind.DEPUBLISHED: _DELETE,
        EventKind.VERSION_DELETED: _FETCH_THEN_DELETE,
        EventKind.VERSION_UNOFFICIAL: _FETCH_THEN_DELETE,
        EventKind.ASSET_DELETED: _DELETE_UNGATED,
        EventKind.ASSET_REMOVED: _DELETE_UNGATED,
        EventKind.ASSET_ARCHIVED: _FETCH_THEN_DELETE,
        EventKind.TEST: Plan(channel_gated=False, logged=True),
    }
)

# channel entries for these kinds always come from the fetched snapshot
SYNTHESIZED_CHANNEL_KINDS: frozenset[EventKind] = frozenset(
    {EventKind.SYNCHRONIZE, EventKind.METADATA_CHANGED}
)


def plan_for(kind: EventKind) -> Plan:
    """Recognized kinds without an entry (categories, variants, ...) are no-ops."""
    return PLANS.get(kind, NOOP)
