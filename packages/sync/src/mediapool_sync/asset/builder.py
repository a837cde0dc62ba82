"""
Map the DAM's search and version responses onto an `AssetSnapshot`.

Each top-level field is described once in a table of (path, target,
decoder). Only the asset id and the shape of the search result are
required; any other field that fails to decode is logged and left unset.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Collection, Mapping, Optional

import structlog
from mediapool_sync.core.errors import PathError
from mediapool_sync.core.time import parse_rfc3339, utc_now
from mediapool_sync.events import AssetKey, ChannelEntry
from mediapool_sync.extract import (
    Missing,
    MultiLang,
    ObjectSet,
    Scalar,
    Variant,
    decode_node,
    resolve,
)

from .models import AssetSnapshot, AssetState, split_asset_id

log = structlog.get_logger(__name__)

Decoder = Callable[[Variant], Any]


class DecodeError(ValueError):
    pass


def as_text(v: Variant) -> str:
    if isinstance(v, Scalar):
        return str(v.value)
    raise DecodeError(f"expected scalar, got {type(v).__name__}")


def as_int(v: Variant) -> int:
    if isinstance(v, Scalar) and not isinstance(v.value, bool):
        try:
            return int(v.value)
        except (TypeError, ValueError) as e:
            raise DecodeError(f"not an integer: {v.value!r}") from e
    raise DecodeError(f"expected integer scalar, got {type(v).__name__}")


def as_langs(v: Variant) -> dict[str, str]:
    if isinstance(v, MultiLang):
        return dict(v.values)
    raise DecodeError(f"expected multilang, got {type(v).__name__}")


def as_timestamp(v: Variant) -> datetime:
    text = as_text(v)
    try:
        dt = parse_rfc3339(text)
    except ValueError as e:
        raise DecodeError(f"not an RFC 3339 timestamp: {text!r}") from e
    if dt is None:
        raise DecodeError("empty timestamp")
    return dt


@dataclass(frozen=True, slots=True)
class FieldMap:
    path: str
    target: str
    decode: Decoder
    default: Any = None


SEARCH_FIELDS: tuple[FieldMap, ...] = (
    FieldMap("title", "title", as_text),
    FieldMap("title_multi", "titles", as_langs),
    FieldMap("description", "description", as_text),
    FieldMap("description_multi", "descriptions", as_langs),
    FieldMap("lastUpdatedTime", "last_update_time", as_timestamp),
    FieldMap("uploadDate", "last_upload_time", as_timestamp),
    FieldMap("vdb.fields.id", "container_id", as_int),
    FieldMap("vdb.fields.name_multi", "container_names", as_langs),
)

FILE_FIELDS: tuple[FieldMap, ...] = (
    FieldMap("fileResource.fileName", "filename", as_text),
    FieldMap("fileResource.generatedName", "generated_filename", as_text),
    FieldMap("fileResource.compression", "compression_type", as_text),
    FieldMap("fileResource.fileSize", "size_kilobytes", as_int),
    FieldMap("fileResource.mimeType", "mime_type", as_text),
    FieldMap("fileResource.suffix", "suffix", as_text),
    FieldMap("fileResource.width", "width", as_text),
    FieldMap("fileResource.height", "height", as_text),
    FieldMap("fileResource.units", "units", as_text),
)

VERSION_FIELDS: tuple[FieldMap, ...] = (
    FieldMap("versionNumber", "version", as_text, default="0"),
    # overrides the search result's uploadDate
    FieldMap("insertedTime", "last_upload_time", as_timestamp),
)


def _apply(
    out: dict[str, Any],
    document: Mapping[str, Any],
    table: tuple[FieldMap, ...],
    *,
    asset_id: str,
) -> None:
    for fm in table:
        try:
            v = resolve(document, fm.path)
        except PathError as e:
            log.warning("asset.field_unreachable", asset_id=asset_id, path=fm.path, error=str(e))
            continue
        if isinstance(v, Missing):
            if fm.default is not None:
                out[fm.target] = fm.default
            continue
        try:
            out[fm.target] = fm.decode(v)
        except DecodeError as e:
            log.warning("asset.field_invalid", asset_id=asset_id, path=fm.path, error=str(e))


def search_fields(search_result: Mapping[str, Any]) -> Mapping[str, Any]:
    """
    `items[0].fields` of a search response. Raises PathError when the
    response does not have that shape.
    """
    items = search_result.get("items") if isinstance(search_result, Mapping) else None
    if not isinstance(items, list) or not items:
        raise PathError("search result has no items")
    first = items[0]
    if not isinstance(first, Mapping) or not isinstance(first.get("fields"), Mapping):
        raise PathError("search result item has no fields object")
    return first["fields"]


def map_channels(
    fields: Mapping[str, Any],
    *,
    sync_channels: Collection[str],
    now: datetime,
    asset_id: str = "",
) -> dict[str, int]:
    """
    channelId -> renderingScheme for every publication in a synchronized
    channel whose window contains `now`. Entries without a scheme are
    skipped.
    """
    v = resolve(fields, "channelPublications")
    if not isinstance(v, ObjectSet):
        return {}

    channels: dict[str, int] = {}
    for item in v.items:
        if not isinstance(item, Mapping):
            continue
        try:
            channel_id = as_text(resolve(item, "fields.channelId"))
        except (PathError, DecodeError):
            log.debug("asset.channel_without_id", asset_id=asset_id)
            continue
        if channel_id not in sync_channels:
            continue

        try:
            published_from = _optional(resolve(item, "fields.publishedFrom"), as_timestamp)
            published_to = _optional(resolve(item, "fields.publishedTo"), as_timestamp)
            scheme = _optional(resolve(item, "fields.renderingScheme"), as_int)
        except (PathError, DecodeError) as e:
            log.warning("asset.channel_invalid", asset_id=asset_id, channel=channel_id, error=str(e))
            continue

        entry = ChannelEntry(
            channel_id=channel_id,
            rendering_scheme_id=scheme,
            valid_from=published_from,
            valid_to=published_to,
        )
        if not entry.is_valid_at(now):
            log.debug(
                "asset.channel_outside_window",
                asset_id=asset_id,
                channel=channel_id,
                published_from=published_from,
                published_to=published_to,
            )
            continue
        if entry.rendering_scheme_id is None:
            log.warning("asset.channel_without_scheme", asset_id=asset_id, channel=channel_id)
            continue

        channels[channel_id] = entry.rendering_scheme_id
    return channels


def map_categories(fields: Mapping[str, Any], *, asset_id: str = "") -> frozenset[str]:
    v = resolve(fields, "themes")
    if not isinstance(v, ObjectSet):
        return frozenset()
    ids: set[str] = set()
    for item in v.items:
        if not isinstance(item, Mapping):
            continue
        try:
            ids.add(as_text(resolve(item, "fields.id")))
        except (PathError, DecodeError) as e:
            log.debug("asset.category_invalid", asset_id=asset_id, error=str(e))
    return frozenset(ids)


def _optional(v: Variant, decode: Decoder) -> Any:
    if isinstance(v, Missing):
        return None
    return decode(v)


def build_snapshot(
    search_result: Mapping[str, Any],
    version_result: Optional[Mapping[str, Any]],
    *,
    key: AssetKey,
    sync_channels: Collection[str],
    now: Optional[datetime] = None,
) -> AssetSnapshot:
    """
    Returns a READY snapshot, or a FAULT snapshot with `reason` set when a
    required part of the search result is unusable.
    """
    now = now or utc_now()

    try:
        fields = search_fields(search_result)
        raw_id = resolve(fields, "id")
        if isinstance(raw_id, Missing):
            raise PathError("search result item has no id")
        asset_id, numeric_id = split_asset_id(as_text(raw_id))
    except (PathError, DecodeError, ValueError) as e:
        log.error("asset.build_failed", asset_id=key.asset_id, error=str(e))
        return AssetSnapshot.fault(key, str(e))

    out: dict[str, Any] = {"id": asset_id, "numeric_id": numeric_id}
    _apply(out, fields, SEARCH_FIELDS, asset_id=asset_id)

    try:
        out["channels"] = map_channels(fields, sync_channels=sync_channels, now=now, asset_id=asset_id)
        out["category_ids"] = map_categories(fields, asset_id=asset_id)
    except PathError as e:
        log.warning("asset.object_sets_unreachable", asset_id=asset_id, error=str(e))

    if version_result is not None:
        if "fileResource" in version_result:
            _apply(out, version_result, FILE_FIELDS, asset_id=asset_id)
        _apply(out, version_result, VERSION_FIELDS, asset_id=asset_id)

    return AssetSnapshot(key=key, state=AssetState.READY, **out)


def select_version(versions: list[Any]) -> Optional[Mapping[str, Any]]:
    """
    Pick the version whose file we mirror. The last version flagged
    official wins; otherwise the first one carrying the highest
    versionNumber. None for an empty list.
    """
    official: Optional[Mapping[str, Any]] = None
    highest: Optional[Mapping[str, Any]] = None
    highest_number = -1

    for version in versions:
        if not isinstance(version, Mapping):
            continue
        if version.get("official") is True:
            official = version
        number = _version_number(version)
        if number > highest_number:
            highest_number = number
            highest = version

    return official if official is not None else highest


def _version_number(version: Mapping[str, Any]) -> int:
    raw = version.get("versionNumber")
    if raw is None:
        return 0
    v = decode_node(raw, path="versionNumber")
    try:
        return as_int(v)
    except DecodeError:
        return 0
