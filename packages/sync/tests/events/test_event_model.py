from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest
from mediapool_sync.core.errors import EventValidationError
from mediapool_sync.events import ChannelEntry, EventKind, flatten_webhook, parse_event


@pytest.mark.parametrize("kind", [k.value for k in EventKind])
def test_every_known_kind_parses(make_event_payload, kind: str) -> None:
    event = parse_event(make_event_payload(kind=kind))
    assert event.kind is EventKind(kind)


@pytest.mark.parametrize("kind", ["published", "PUBLISH", "", "UNKNOWN_KIND", 7])
def test_unknown_kind_is_rejected(make_event_payload, kind) -> None:
    with pytest.raises(EventValidationError, match="eventType"):
        parse_event(make_event_payload(kind=kind))


@pytest.mark.parametrize("missing", ["customerId", "systemId", "baseUrl", "eventType", "eventTime"])
def test_required_fields(make_event_payload, missing: str) -> None:
    payload = make_event_payload()
    del payload[missing]
    with pytest.raises(EventValidationError):
        parse_event(payload)


def test_wire_variants_are_normalised(make_event_payload) -> None:
    payload = make_event_payload(
        asset_id=3467,
        eventData=json.dumps({"channelId": "SHARE", "renderingScheme": 4, "startDate": 0}),
        tenantId=12,
    )
    event = parse_event(json.dumps(payload))
    assert event.asset_id == "3467"
    assert event.tenant_id == 12
    assert event.event_time == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert event.channel_ids() == ["SHARE"]
    assert event.channel_entries[0].valid_from == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert event.service_url == "https://dam.example.com"


def test_service_url_keeps_port(make_event_payload) -> None:
    event = parse_event(make_event_payload(baseUrl="http://dam.local:8080/mp/x?y=1"))
    assert event.service_url == "http://dam.local:8080"


def test_base_url_must_be_http(make_event_payload) -> None:
    with pytest.raises(EventValidationError):
        parse_event(make_event_payload(baseUrl="ftp://dam.example.com"))


def test_effective_rendering_scheme_follows_payload_order(make_event_payload) -> None:
    share_first = parse_event(make_event_payload(channels=[("SHARE", 4), ("PUBLIC_LINKS", 12)]))
    links_first = parse_event(make_event_payload(channels=[("PUBLIC_LINKS", 12), ("SHARE", 4)]))
    other = parse_event(make_event_payload(channels=[("INTRANET", 99)]))

    assert share_first.effective_rendering_scheme() == 4
    assert links_first.effective_rendering_scheme() == 12
    assert other.effective_rendering_scheme() is None


def test_channel_predicates(make_event_payload) -> None:
    event = parse_event(make_event_payload(channels=[("INTRANET", 1), ("SHARE", 4)]))
    assert event.is_my_channel({"SHARE"})
    assert not event.is_my_channel({"PUBLIC_LINKS"})
    assert not parse_event(make_event_payload()).is_my_channel({"SHARE"})


def test_needs_binary(make_event_payload) -> None:
    binary = {
        "PUBLISHED",
        "PUBLISHING_START",
        "VERSION_ADDED",
        "VERSION_OFFICIAL",
        "ASSET_REACTIVATED",
        "SYNCHRONIZE",
    }
    for kind in EventKind:
        event = parse_event(make_event_payload(kind=kind.value))
        assert event.needs_binary() is (kind.value in binary), kind


def test_with_channels_and_wire_form(make_event_payload) -> None:
    event = parse_event(make_event_payload(kind="METADATA_CHANGED"))
    updated = event.with_channels({"PUBLIC_LINKS": 12})
    assert event.channel_entries == ()
    assert updated.effective_rendering_scheme() == 12

    wire = updated.to_wire()
    assert wire["eventType"] == "METADATA_CHANGED"
    assert wire["eventTime"] == 1714564800000
    assert wire["eventData"] == [{"channelId": "PUBLIC_LINKS", "renderingScheme": 12}]
    assert parse_event(wire) == updated


def test_flatten_webhook_copies_origin_fields() -> None:
    data = {
        "customerId": "cust1",
        "systemId": "sys1",
        "baseUrl": "https://dam.example.com/mp",
        "events": [
            {"eventType": "PUBLISHED", "eventTime": 1714564800000, "assetId": 1},
            {"eventType": "TEST", "eventTime": 1714564800001, "systemId": "other"},
        ],
    }
    events = flatten_webhook({"data": json.dumps(data), "signature": "abc"})

    assert [e.kind for e in events] == [EventKind.PUBLISHED, EventKind.TEST]
    assert events[0].customer_id == "cust1"
    assert events[0].system_id == "sys1"
    assert events[1].system_id == "other"
    assert all(e.signature == "abc" for e in events)


def test_flatten_webhook_rejects_batch_with_bad_element() -> None:
    body = {
        "data": {
            "customerId": "c",
            "systemId": "s",
            "baseUrl": "https://dam.example.com",
            "events": [
                {"eventType": "PUBLISHED", "eventTime": 1},
                {"eventType": "NOPE", "eventTime": 1},
            ],
        }
    }
    with pytest.raises(EventValidationError, match="webhook event #2"):
        flatten_webhook(body)


@pytest.mark.parametrize("body", ["not json", "[]", {"signature": "x"}, {"data": {"events": {}}}])
def test_flatten_webhook_envelope_errors(body) -> None:
    with pytest.raises(EventValidationError):
        flatten_webhook(body)


@pytest.mark.parametrize("event_time", [10**30, str(10**30), -(10**30), float("inf")])
def test_event_time_out_of_range_is_rejected(make_event_payload, event_time) -> None:
    with pytest.raises(EventValidationError):
        parse_event(make_event_payload(eventTime=event_time))


def test_channel_window_out_of_range_is_rejected(make_event_payload) -> None:
    payload = make_event_payload(
        eventData=[{"channelId": "PUBLIC_LINKS", "renderingScheme": 12, "validTo": 10**30}]
    )
    with pytest.raises(EventValidationError):
        parse_event(payload)


def test_channel_entry_window(now, window) -> None:
    open_ended = ChannelEntry(channel_id="SHARE")
    running = ChannelEntry(channel_id="SHARE", valid_from=window(-1), valid_to=window(1))
    upcoming = ChannelEntry(channel_id="SHARE", valid_from=window(1))
    ended = ChannelEntry(channel_id="SHARE", valid_to=window(-1))

    assert open_ended.is_valid_at(now)
    assert running.is_valid_at(now)
    assert not upcoming.is_valid_at(now)
    assert not ended.is_valid_at(now)
