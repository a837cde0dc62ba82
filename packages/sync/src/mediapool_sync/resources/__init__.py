from __future__ import annotations

import copy
import json
from functools import lru_cache
from importlib.resources import files
from typing import Any, Final

from mediapool_sync.core.errors import ConfigError

PKG: Final[str] = "mediapool_sync.resources"

SEARCH_REQUEST_REL: Final[str] = "search_request.json"


def read_text(rel_path: str) -> str:
    try:
        return files(PKG).joinpath(rel_path).read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigError(f"Missing packaged resource: {rel_path}") from e


def read_json(rel_path: str) -> dict[str, Any]:
    raw = read_text(rel_path)
    try:
        obj = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in packaged resource: {rel_path}: {e}") from e
    if not isinstance(obj, dict):
        raise ConfigError(f"Expected JSON object in {rel_path}, got {type(obj).__name__}")
    return obj


@lru_cache(maxsize=1)
def _search_template() -> dict[str, Any]:
    return read_json(SEARCH_REQUEST_REL)


def search_request(asset_id: str) -> dict[str, Any]:
    """
    The asset search body with the id match criterion filled in.
    Everything except that value is fixed.
    """
    body = copy.deepcopy(_search_template())
    _fill_match(body["criteria"], asset_id)
    return body


def _fill_match(criteria: dict[str, Any], asset_id: str) -> bool:
    if criteria.get("@type") == "match" and criteria.get("fields") == ["id"]:
        criteria["value"] = asset_id
        return True
    return any(_fill_match(sub, asset_id) for sub in criteria.get("subs", []))
