from __future__ import annotations

import json
from datetime import datetime
from enum import StrEnum
from typing import Any, Iterable, Optional
from urllib.parse import urlsplit

from mediapool_sync.core.config import CHANNEL_PUBLIC_LINKS, CHANNEL_SHARE
from mediapool_sync.core.time import from_epoch_ms, parse_rfc3339, to_epoch_ms
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)


class EventKind(StrEnum):
    SYNCHRONIZE = "SYNCHRONIZE"
    TEST = "TEST"
    CREATED = "CREATED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PUBLISHED = "PUBLISHED"
    PUBLISHING_START = "PUBLISHING_START"
    PUBLISHING_END = "PUBLISHING_END"
    DEPUBLISHED = "DEPUBLISHED"
    METADATA_CHANGED = "METADATA_CHANGED"
    VERSION_ADDED = "VERSION_ADDED"
    VERSION_DELETED = "VERSION_DELETED"
    VERSION_OFFICIAL = "VERSION_OFFICIAL"
    VERSION_UNOFFICIAL = "VERSION_UNOFFICIAL"
    VARIANT_ADDED = "VARIANT_ADDED"
    VARIANT_REMOVED = "VARIANT_REMOVED"
    RELATION_ADDED = "RELATION_ADDED"
    RELATION_REMOVED = "RELATION_REMOVED"
    ASSET_REMOVED = "ASSET_REMOVED"
    ASSET_ARCHIVED = "ASSET_ARCHIVED"
    ASSET_REACTIVATED = "ASSET_REACTIVATED"
    CATEGORY_ADD = "CATEGORY_ADD"
    CATEGORY_REMOVE = "CATEGORY_REMOVE"
    CATEGORY_MOVE = "CATEGORY_MOVE"
    ASSET_DELETED = "ASSET_DELETED"
    TREE_CHANGED = "TREE_CHANGED"


# kinds whose file content must be (re)materialized
BINARY_KINDS: frozenset[EventKind] = frozenset(
    {
        EventKind.PUBLISHED,
        EventKind.PUBLISHING_START,
        EventKind.VERSION_ADDED,
        EventKind.VERSION_OFFICIAL,
        EventKind.ASSET_REACTIVATED,
        EventKind.SYNCHRONIZE,
    }
)

PRIVILEGED_CHANNELS: tuple[str, ...] = (CHANNEL_PUBLIC_LINKS, CHANNEL_SHARE)


class ChannelEntry(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    channel_id: str = Field(alias="channelId", min_length=1)
    rendering_scheme_id: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("renderingScheme", "renderingSchemeId"),
        serialization_alias="renderingScheme",
    )
    valid_from: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("validFrom", "startDate"),
        serialization_alias="validFrom",
    )
    valid_to: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("validTo", "endDate"),
        serialization_alias="validTo",
    )

    @field_validator("valid_from", "valid_to", mode="before")
    @classmethod
    def _parse_time(cls, v: Any) -> Any:
        if v is None or isinstance(v, datetime):
            return v
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return from_epoch_ms(v)
        if isinstance(v, str):
            return parse_rfc3339(v)
        return v

    def is_valid_at(self, when: datetime) -> bool:
        if self.valid_from is not None and self.valid_from > when:
            return False
        if self.valid_to is not None and self.valid_to < when:
            return False
        return True


class AssetKey(BaseModel):
    """customer / system / asset triple addressing one local asset directory"""

    model_config = ConfigDict(frozen=True)

    customer_id: str
    system_id: str
    asset_id: str


class Event(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    tenant_id: Optional[int] = Field(default=None, alias="tenantId")
    customer_id: str = Field(alias="customerId", min_length=1)
    system_id: str = Field(alias="systemId", min_length=1)
    base_url: str = Field(alias="baseUrl", min_length=1)
    asset_id: Optional[str] = Field(default=None, alias="assetId")
    kind: EventKind = Field(alias="eventType")
    event_time: datetime = Field(alias="eventTime")
    channel_entries: tuple[ChannelEntry, ...] = Field(
        default=(), alias="eventData"
    )
    signature: Optional[str] = None

    @field_validator("kind", mode="before")
    @classmethod
    def _strict_kind(cls, v: Any) -> Any:
        # exact, case-sensitive match against the closed set
        if isinstance(v, EventKind):
            return v
        if not isinstance(v, str) or v not in EventKind.__members__:
            raise ValueError(f"Unknown event type: {v!r}")
        return EventKind(v)

    @field_validator("asset_id", mode="before")
    @classmethod
    def _asset_id_as_str(cls, v: Any) -> Any:
        if v is None:
            return None
        if isinstance(v, bool):
            raise ValueError("assetId must be a number or string")
        if isinstance(v, (int, float)):
            return str(int(v))
        if isinstance(v, str):
            s = v.strip()
            return s or None
        return v

    @field_validator("event_time", mode="before")
    @classmethod
    def _event_time(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("eventTime must be epoch millis")
        if isinstance(v, (int, float)):
            return from_epoch_ms(v)
        if isinstance(v, str) and v.strip().lstrip("-").isdigit():
            return from_epoch_ms(int(v))
        if isinstance(v, str):
            return parse_rfc3339(v)
        return v

    @field_validator("channel_entries", mode="before")
    @classmethod
    def _event_data(cls, v: Any) -> Any:
        if v is None:
            return ()
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return ()
            v = json.loads(s)
        if isinstance(v, dict):
            v = [v]
        return v

    @field_validator("base_url")
    @classmethod
    def _base_url(cls, v: str) -> str:
        parts = urlsplit(v.strip())
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError(f"baseUrl is not an http(s) URL: {v!r}")
        return v.strip()

    @field_serializer("event_time")
    def _ser_event_time(self, v: datetime) -> int:
        return to_epoch_ms(v)

    @property
    def service_url(self) -> str:
        """scheme://host[:port] of baseUrl; REST paths are appended to this"""
        parts = urlsplit(self.base_url)
        host = parts.hostname or ""
        if ":" in host:
            host = f"[{host}]"
        port = f":{parts.port}" if parts.port else ""
        return f"{parts.scheme}://{host}{port}"

    @property
    def key(self) -> AssetKey:
        return AssetKey(
            customer_id=self.customer_id,
            system_id=self.system_id,
            asset_id=self.asset_id or "",
        )

    def needs_binary(self) -> bool:
        return self.kind in BINARY_KINDS

    def channel_ids(self) -> list[str]:
        return [c.channel_id for c in self.channel_entries]

    def is_my_channel(self, sync_channels: Iterable[str]) -> bool:
        wanted = set(sync_channels)
        return any(c in wanted for c in self.channel_ids())

    def effective_rendering_scheme(self) -> int | None:
        """
        Rendering scheme of the first entry, in payload order, whose channel is
        one of the privileged channels. None when no entry matches.
        """
        for entry in self.channel_entries:
            if entry.channel_id in PRIVILEGED_CHANNELS and entry.rendering_scheme_id is not None:
                return entry.rendering_scheme_id
        return None

    def with_channels(self, channels: dict[str, int]) -> "Event":
        entries = tuple(
            ChannelEntry(channel_id=cid, rendering_scheme_id=scheme)
            for cid, scheme in channels.items()
        )
        return self.model_copy(update={"channel_entries": entries})

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
