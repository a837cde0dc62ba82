from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Any, Iterable, Optional

import structlog
from mediapool_sync.core.json import atomic_write_json, read_json
from mediapool_sync.core.time import utc_now

log = structlog.get_logger(__name__)


@dataclass(slots=True)
class StoredCookie:
    name: str
    value: str
    path: Optional[str] = None
    expires: Optional[str] = None
    # remaining attributes, lowercased; flags map to None
    attributes: dict[str, Optional[str]] = field(default_factory=dict)

    def matches_path(self, target: str) -> bool:
        if self.path is None or self.path == "/":
            return True
        return target.startswith(self.path)

    def is_expired(self, now: datetime) -> bool:
        """
        No expires attribute never expires; an unparseable one counts as
        expired.
        """
        if self.expires is None:
            return False
        when = parse_cookie_date(self.expires)
        if when is None:
            return True
        return when < now


def parse_cookie_date(value: str) -> datetime | None:
    for candidate in (value, value.replace("-", " ")):
        try:
            dt = parsedate_to_datetime(candidate)
        except (TypeError, ValueError, IndexError):
            continue
        if dt is None:
            continue
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    return None


def parse_set_cookie(header: str) -> StoredCookie | None:
    parts = [p.strip() for p in header.split(";")]
    if not parts or "=" not in parts[0]:
        return None
    name, _, value = parts[0].partition("=")
    name = name.strip()
    if not name:
        return None

    attrs: dict[str, Optional[str]] = {}
    for token in parts[1:]:
        if not token:
            continue
        if "=" in token:
            k, _, v = token.partition("=")
            attrs[k.strip().lower()] = v.strip()
        else:
            attrs[token.lower()] = None

    path = attrs.pop("path", None)
    expires = attrs.pop("expires", None)
    return StoredCookie(name=name, value=value.strip(), path=path, expires=expires, attributes=attrs)


class CookieJar:
    """
    Process-wide cookie store keyed by host.

    Access to one host's cookies is serialized by a per-host lock. When
    `store_path` is set, the jar is loaded from and written back to that JSON
    file on every update.
    """

    def __init__(self, store_path: Path | None = None) -> None:
        self._store_path = store_path
        self._hosts: dict[str, dict[str, StoredCookie]] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()
        self._persist_lock = threading.Lock()
        if store_path is not None:
            self._load(store_path)

    def _lock_for(self, host: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(host)
            if lock is None:
                lock = self._locks[host] = threading.Lock()
            return lock

    def _load(self, path: Path) -> None:
        if not path.exists():
            return
        try:
            raw = read_json(path)
        except (OSError, ValueError) as e:
            log.warning("cookies.load_failed", path=str(path), error=str(e))
            return
        if not isinstance(raw, dict):
            log.warning("cookies.load_failed", path=str(path), error="not an object")
            return
        for host, cookies in raw.items():
            if not isinstance(cookies, dict):
                continue
            bucket: dict[str, StoredCookie] = {}
            for name, c in cookies.items():
                if not isinstance(c, dict) or "value" not in c:
                    continue
                bucket[name] = StoredCookie(
                    name=name,
                    value=str(c["value"]),
                    path=c.get("path"),
                    expires=c.get("expires"),
                    attributes=dict(c.get("attributes") or {}),
                )
            self._hosts[host] = bucket
        log.debug("cookies.loaded", path=str(path), hosts=len(self._hosts))

    def _persist(self) -> None:
        if self._store_path is None:
            return
        with self._persist_lock:
            snapshot: dict[str, Any] = {}
            for host in list(self._hosts):
                with self._lock_for(host):
                    snapshot[host] = {
                        name: {k: v for k, v in asdict(c).items() if k != "name"}
                        for name, c in self._hosts[host].items()
                    }
            atomic_write_json(self._store_path, snapshot)

    def store(self, host: str, set_cookie_headers: Iterable[str]) -> int:
        stored = 0
        with self._lock_for(host):
            bucket = self._hosts.setdefault(host, {})
            for header in set_cookie_headers:
                cookie = parse_set_cookie(header)
                if cookie is None:
                    log.debug("cookies.unparseable", host=host)
                    continue
                bucket[cookie.name] = cookie
                stored += 1
        if stored:
            self._persist()
        return stored

    def header_for(self, host: str, path: str, *, now: datetime | None = None) -> str | None:
        """Cookie header value for a request to host+path, or None."""
        now = now or utc_now()
        with self._lock_for(host):
            bucket = self._hosts.get(host)
            if not bucket:
                return None
            pairs = [
                f"{c.name}={c.value}"
                for c in bucket.values()
                if c.matches_path(path or "/") and not c.is_expired(now)
            ]
        return "; ".join(pairs) or None

    def cookies_for(self, host: str) -> dict[str, StoredCookie]:
        with self._lock_for(host):
            return dict(self._hosts.get(host, {}))
