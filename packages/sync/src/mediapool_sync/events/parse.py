from __future__ import annotations

import json
from typing import Any, Iterable, Mapping

import structlog
from mediapool_sync.core.errors import EventValidationError
from pydantic import ValidationError

from .models import Event

log = structlog.get_logger(__name__)

# copied from the webhook envelope onto every event in the batch
ENVELOPE_FIELDS: tuple[str, ...] = ("customerId", "systemId", "baseUrl")


def format_errors(errors: Iterable[Mapping[str, Any]]) -> str:
    lines: list[str] = []
    for e in errors:
        loc = ".".join(str(p) for p in e.get("loc", ())) or "<root>"
        lines.append(f"- {loc}: {e.get('msg', 'invalid')}")
    return "\n".join(lines)


def _load_object(raw: Mapping[str, Any] | str | bytes, *, what: str) -> dict[str, Any]:
    if isinstance(raw, (str, bytes)):
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise EventValidationError(f"{what} is not valid JSON: {e}") from e
    if not isinstance(raw, Mapping):
        raise EventValidationError(
            f"{what} must be a JSON object, got {type(raw).__name__}"
        )
    return dict(raw)


def parse_event(raw: Mapping[str, Any] | str | bytes) -> Event:
    """
    Validate one event payload.

    Required: customerId, systemId, baseUrl, eventType, eventTime.
    Optional: tenantId, assetId, eventData, signature.
    An eventType outside the closed set is a hard failure.
    """
    obj = _load_object(raw, what="event")
    try:
        return Event.model_validate(obj)
    except ValidationError as e:
        msg = "Invalid event:\n" + format_errors(e.errors())
        log.info(
            "event.rejected",
            event_type=obj.get("eventType"),
            asset_id=obj.get("assetId"),
            errors=len(e.errors()),
        )
        raise EventValidationError(msg) from e


def flatten_webhook(body: Mapping[str, Any] | str | bytes) -> list[Event]:
    """
    Turn a webhook request body into validated events.

    The body is ``{"data": ..., "signature": ...}`` where ``data`` (an
    object or a JSON string) carries the origin fields and an ``events``
    array. Origin fields are copied onto each element unless the element
    already has them. The signature is kept on each event but not verified.
    """
    envelope = _load_object(body, what="webhook body")
    if "data" not in envelope:
        raise EventValidationError("webhook body: missing parameter: data")

    data = _load_object(envelope["data"], what="webhook data")
    events_raw = data.get("events")
    if not isinstance(events_raw, list):
        raise EventValidationError("webhook data: 'events' must be an array")

    signature = envelope.get("signature")
    out: list[Event] = []
    for n, element in enumerate(events_raw, start=1):
        if not isinstance(element, Mapping):
            raise EventValidationError(
                f"webhook event #{n} must be an object, got {type(element).__name__}"
            )
        merged = dict(element)
        for prop in ENVELOPE_FIELDS:
            if prop in data and prop not in merged:
                merged[prop] = data[prop]
        if signature is not None and "signature" not in merged:
            merged["signature"] = signature
        try:
            out.append(parse_event(merged))
        except EventValidationError as e:
            raise EventValidationError(f"webhook event #{n}: {e}") from e

    log.info("webhook.flattened", events=len(out))
    return out
