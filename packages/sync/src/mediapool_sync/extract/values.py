"""
Typed-path extraction over the DAM's self-describing JSON.

Search results wrap every field in an object carrying an ``@type``
discriminator::

    "title":       {"@type": "text", "value": "Brochure"}
    "title_multi": {"@type": "multilang", "value": {"EN": "Brochure"}}
    "id":          {"@type": "long", "value": 3467}
    "themes":      {"@type": "object_set", "items": [{"@type": "object", "fields": {...}}]}

`resolve()` walks a dotted path and decodes the final node into one of the
closed set of variants below. Intermediate segments must resolve to objects
(`PathError` otherwise). Anything odd at the leaf degrades to `Missing`
plus a log line, since the remote schema evolves independently of us.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union

import structlog
from mediapool_sync.core.errors import PathError

log = structlog.get_logger(__name__)

ScalarValue = Union[str, int, float, bool]

TYPE_KEY = "@type"


@dataclass(frozen=True, slots=True)
class Scalar:
    value: ScalarValue


@dataclass(frozen=True, slots=True)
class MultiLang:
    values: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ObjectSet:
    items: tuple[Any, ...] = ()


@dataclass(frozen=True, slots=True)
class Missing:
    reason: str | None = None


Variant = Union[Scalar, MultiLang, ObjectSet, Missing]

MISSING = Missing()


def split_path(path: str) -> list[str]:
    parts = path.split(".")
    if not path or any(not p for p in parts):
        raise ValueError(f"invalid path: {path!r}")
    return parts


def resolve(document: Mapping[str, Any], path: str) -> Variant:
    parts = split_path(path)
    node: Any = document

    for depth, key in enumerate(parts[:-1]):
        if not isinstance(node, Mapping):
            raise PathError(
                f"{path}: segment {'.'.join(parts[:depth]) or '<root>'} is "
                f"{type(node).__name__}, expected object"
            )
        if key not in node:
            raise PathError(f"{path}: missing segment {'.'.join(parts[: depth + 1])}")
        node = node[key]

    if not isinstance(node, Mapping):
        raise PathError(
            f"{path}: parent of {parts[-1]!r} is {type(node).__name__}, expected object"
        )

    leaf = parts[-1]
    if leaf not in node:
        return MISSING

    return decode_node(node[leaf], path=path)


def decode_node(node: Any, *, path: str = "<node>") -> Variant:
    if node is None:
        return MISSING

    if isinstance(node, (str, int, float, bool)):
        return Scalar(node)

    if isinstance(node, list):
        return ObjectSet(tuple(node))

    if not isinstance(node, Mapping):
        log.warning("extract.unsupported_node", path=path, node_type=type(node).__name__)
        return Missing("unsupported node")

    type_tag = node.get(TYPE_KEY)

    if type_tag == "multilang" and isinstance(node.get("value"), Mapping):
        langs: dict[str, str] = {}
        for lang, text in node["value"].items():
            if text is None:
                continue
            langs[str(lang)] = str(text)
        return MultiLang(langs)

    if type_tag == "object_set":
        items = node.get("items")
        if isinstance(items, list):
            return ObjectSet(tuple(items))
        log.warning("extract.object_set_without_items", path=path)
        return Missing("object_set without items")

    if type_tag == "long" and "value" in node:
        raw = node["value"]
        if raw is None:
            return MISSING
        try:
            if isinstance(raw, bool):
                raise ValueError("bool is not a long")
            return Scalar(int(raw))
        except (TypeError, ValueError):
            log.warning("extract.bad_long", path=path, value=repr(raw))
            return Missing("bad long")

    if "value" in node:
        raw = node["value"]
        if raw is None:
            return MISSING
        if isinstance(raw, (str, int, float, bool)):
            return Scalar(raw)
        log.warning(
            "extract.unsupported_value",
            path=path,
            type_tag=type_tag,
            value_type=type(raw).__name__,
        )
        return Missing("unsupported value")

    log.warning("extract.unrecognized", path=path, type_tag=type_tag)
    return Missing("unrecognized")
