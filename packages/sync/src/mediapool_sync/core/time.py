from __future__ import annotations

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat().replace("+00:00", "Z")


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


def from_epoch_ms(value: int | float | str) -> datetime:
    """Raises ValueError for values outside the representable range."""
    try:
        return datetime.fromtimestamp(int(value) / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError) as e:
        raise ValueError(f"epoch millis out of range: {value!r}") from e


def to_epoch_ms(value: datetime) -> int:
    return int(round(value.timestamp() * 1000))


def to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_rfc3339(value: str | None) -> datetime | None:
    """
    Parse the timestamps the DAM emits, e.g. "2018-02-16T08:06:11+01:00",
    "2020-02-12T21:11:27Z" or with fractional seconds.

    Returns None for empty input; raises ValueError for anything unparseable.
    Naive timestamps are taken as UTC.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    if s.endswith(("Z", "z")):
        s = s[:-1] + "+00:00"
    # "+0100" -> "+01:00"
    if len(s) > 5 and s[-5] in "+-" and s[-4:].isdigit():
        s = s[:-2] + ":" + s[-2:]
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
