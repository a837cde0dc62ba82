from __future__ import annotations

from datetime import datetime, timezone

import pytest
from mediapool_sync.asset import (
    AssetSnapshot,
    AssetState,
    build_snapshot,
    select_version,
    split_asset_id,
)
from mediapool_sync.client.render import RenderTask
from mediapool_sync.events import AssetKey

KEY = AssetKey(customer_id="cust1", system_id="sys1", asset_id="3467")
SYNC = frozenset({"PUBLIC_LINKS", "SHARE"})


def _build(search, version=None, *, now):
    return build_snapshot(search, version, key=KEY, sync_channels=SYNC, now=now)


def test_channel_validity_window(make_search_result, window, now) -> None:
    search = make_search_result(
        channels=[
            ("PUBLIC_LINKS", 12, window(1), None),
            ("SHARE", 4, None, window(-1)),
        ]
    )
    assert _build(search, now=now).channels == {}

    search = make_search_result(
        channels=[
            ("PUBLIC_LINKS", 12, None, None),
            ("SHARE", 4, window(-1), window(1)),
            ("INTRANET", 7, None, None),
        ]
    )
    assert _build(search, now=now).channels == {"PUBLIC_LINKS": 12, "SHARE": 4}


def test_channel_without_scheme_is_skipped(make_search_result, now) -> None:
    search = make_search_result(channels=[("SHARE", None, None, None)])
    assert _build(search, now=now).channels == {}


def test_identity_and_descriptive_fields(make_search_result, now) -> None:
    snap = _build(make_search_result(asset_id="M-3467"), now=now)

    assert snap.state is AssetState.READY
    assert snap.id == "M-3467"
    assert snap.numeric_id == 3467
    assert snap.title == "Administration Manual"
    assert snap.titles == {"EN": "Administration Manual", "DE": "Handbuch"}
    assert snap.descriptions == {"EN": ""}
    assert snap.description is None
    assert snap.category_ids == frozenset({"551", "90"})
    assert snap.container_id == 1001
    assert snap.container_names == {"EN": "test data (playground)"}
    assert snap.last_update_time == datetime(2019, 3, 28, 15, 3, 8, tzinfo=timezone.utc)
    assert snap.last_upload_time == datetime(2019, 3, 12, 9, 52, 57, tzinfo=timezone.utc)


def test_version_fields_override_upload_time(make_search_result, make_version, now) -> None:
    snap = _build(make_search_result(), make_version(number=2), now=now)

    assert snap.version == "2"
    assert snap.filename == "manual"
    assert snap.generated_filename == "manual_3467_2"
    assert snap.suffix == "pdf"
    assert snap.mime_type == "application/pdf"
    assert snap.compression_type == "Undefined"
    assert snap.size_kilobytes == 1653
    assert (snap.width, snap.height) == ("210", "297")
    assert snap.last_upload_time == datetime(2020, 2, 12, 21, 11, 27, tzinfo=timezone.utc)
    assert snap.binary_name() == "manual.pdf"


def test_version_number_defaults_to_zero(make_search_result, now) -> None:
    snap = _build(make_search_result(), {"official": True}, now=now)
    assert snap.version == "0"
    assert snap.filename is None


def test_bad_optional_field_is_left_unset(make_search_result, now) -> None:
    search = make_search_result()
    search["items"][0]["fields"]["title_multi"] = {"@type": "text", "value": "flat"}
    search["items"][0]["fields"]["lastUpdatedTime"] = {"@type": "date", "value": "soon"}

    snap = _build(search, now=now)
    assert snap.state is AssetState.READY
    assert snap.titles == {}
    assert snap.last_update_time is None


@pytest.mark.parametrize(
    "search",
    [
        {"items": [], "totalHits": 0},
        {"totalHits": 1},
        {"items": [{"@type": "object"}]},
        {"items": [{"fields": {"title": {"@type": "text", "value": "x"}}}]},
        {"items": [{"fields": {"id": {"@type": "text", "value": "M-abc"}}}]},
    ],
)
def test_unusable_search_result_is_a_fault(search, now) -> None:
    snap = _build(search, now=now)
    assert snap.state is AssetState.FAULT
    assert snap.reason
    assert not snap.is_ready


def test_select_version_prefers_official() -> None:
    versions = [
        {"versionNumber": 0, "official": False},
        {"versionNumber": 2, "official": True},
        {"versionNumber": 5, "official": False},
    ]
    assert select_version(versions)["versionNumber"] == 2


def test_select_version_last_official_wins() -> None:
    versions = [
        {"versionNumber": 1, "official": True, "tag": "a"},
        {"versionNumber": 3, "official": True, "tag": "b"},
        {"versionNumber": 2, "official": False},
    ]
    assert select_version(versions)["tag"] == "b"


def test_select_version_highest_first_encountered() -> None:
    versions = [
        {"versionNumber": 1},
        {"versionNumber": 5, "tag": "first"},
        {"versionNumber": 5, "tag": "second"},
    ]
    assert select_version(versions)["tag"] == "first"
    assert select_version([]) is None


def test_split_asset_id() -> None:
    assert split_asset_id("M-3467") == ("M-3467", 3467)
    assert split_asset_id("27518") == ("27518", 27518)
    with pytest.raises(ValueError):
        split_asset_id("M-")


def test_to_dict_leaves_out_render_task(make_search_result, make_version, now) -> None:
    snap = _build(make_search_result(), make_version(), now=now)
    task = RenderTask(
        task_id="t1",
        download_url="https://dam.example.com/rest/mp/v1.2/download/file-generation-task/t1",
        asset_id="3467",
        version="2",
        rendering_scheme_id=12,
    )
    with_task = snap.with_render_task(task)

    assert with_task.download_task_id == "t1"
    assert with_task.to_dict() == snap.to_dict()

    d = snap.to_dict()
    assert "render_task" not in d and "download_url" not in d
    assert d["category_ids"] == ["551", "90"]
    assert d["channels"] == {"PUBLIC_LINKS": 12}
    assert d["last_upload_time"] == "2020-02-12T21:11:27Z"
    assert "description" not in d


def test_fault_and_missing_constructors() -> None:
    assert AssetSnapshot.missing(KEY, "gone").state is AssetState.MISSING
    assert AssetSnapshot.fault(KEY, "bad").reason == "bad"
