"""Shared payload builders and a fake DAM for the sync tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx
import pytest
from mediapool_sync.client import BasicAuthenticator, MediaPoolClient, make_http_client

BASE_URL = "https://dam.example.com/mp/webhooks"
SERVICE_URL = "https://dam.example.com"
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_event_payload() -> Callable[..., dict[str, Any]]:
    def _make(
        kind: str = "PUBLISHED",
        asset_id: Any = "3467",
        channels: list[tuple[str, int]] | None = None,
        **extra: Any,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "customerId": "cust1",
            "systemId": "sys1",
            "baseUrl": BASE_URL,
            "eventType": kind,
            "eventTime": 1714564800000,
        }
        if asset_id is not None:
            payload["assetId"] = asset_id
        if channels is not None:
            payload["eventData"] = [
                {"channelId": cid, "renderingScheme": scheme} for cid, scheme in channels
            ]
        payload.update(extra)
        return payload

    return _make


@pytest.fixture
def make_search_result() -> Callable[..., dict[str, Any]]:
    """
    A one-hit search response in the DAM's @type-tagged field format.
    `channels` entries: (channelId, renderingScheme, publishedFrom, publishedTo)
    with datetimes or None.
    """

    def _make(
        asset_id: Any = 3467,
        channels: list[tuple[str, int | None, datetime | None, datetime | None]] | None = None,
        themes: list[int] = (551, 90),
        total_hits: int = 1,
    ) -> dict[str, Any]:
        publications = []
        for cid, scheme, pub_from, pub_to in channels or [("PUBLIC_LINKS", 12, None, None)]:
            fields: dict[str, Any] = {"channelId": {"@type": "text", "value": cid}}
            if scheme is not None:
                fields["renderingScheme"] = {"@type": "long", "value": scheme}
            if pub_from is not None:
                fields["publishedFrom"] = {"@type": "date", "value": _iso(pub_from)}
            if pub_to is not None:
                fields["publishedTo"] = {"@type": "date", "value": _iso(pub_to)}
            publications.append({"@type": "object", "fields": fields})

        id_node = (
            {"@type": "long", "value": asset_id}
            if isinstance(asset_id, int)
            else {"@type": "text", "value": asset_id}
        )
        return {
            "items": [
                {
                    "@type": "object",
                    "fields": {
                        "id": id_node,
                        "title": {"@type": "text", "value": "Administration Manual"},
                        "title_multi": {
                            "@type": "multilang",
                            "value": {"EN": "Administration Manual", "DE": "Handbuch"},
                        },
                        "description_multi": {"@type": "multilang", "value": {"EN": ""}},
                        "lastUpdatedTime": {"@type": "date", "value": "2019-03-28T15:03:08Z"},
                        "uploadDate": {"@type": "date", "value": "2019-03-12T09:52:57Z"},
                        "themes": {
                            "@type": "object_set",
                            "items": [
                                {"@type": "object", "fields": {"id": {"@type": "long", "value": t}}}
                                for t in themes
                            ],
                        },
                        "vdb": {
                            "@type": "object",
                            "fields": {
                                "id": {"@type": "long", "value": 1001},
                                "name_multi": {
                                    "@type": "multilang",
                                    "value": {"EN": "test data (playground)"},
                                },
                            },
                        },
                        "channelPublications": {"@type": "object_set", "items": publications},
                        "hideIfNotValid": {"@type": "bool", "value": False},
                    },
                }
            ],
            "totalHits": total_hits,
        }

    return _make


@pytest.fixture
def make_version() -> Callable[..., dict[str, Any]]:
    def _make(number: int = 2, official: bool = True, **file_fields: Any) -> dict[str, Any]:
        file_resource = {
            "fileName": "manual",
            "generatedName": "manual_3467_2",
            "compression": "Undefined",
            "fileSize": 1653,
            "mimeType": "application/pdf",
            "suffix": "pdf",
            "width": 210,
            "height": 297,
        }
        file_resource.update(file_fields)
        return {
            "versionNumber": number,
            "official": official,
            "insertedTime": "2020-02-12T21:11:27Z",
            "fileResource": file_resource,
        }

    return _make


@pytest.fixture
def window() -> Callable[[int], datetime]:
    """NOW shifted by whole days."""

    def _shift(days: int) -> datetime:
        return NOW + timedelta(days=days)

    return _shift


class FakeDam:
    """
    In-process stand-in for the DAM REST API, served through
    httpx.MockTransport. Attributes may be changed between requests.
    """

    def __init__(self, search: dict[str, Any], versions: list[Any]) -> None:
        self.search = search
        self.search_status = 200
        self.versions = versions
        self.task_id = "t1"
        self.pending_polls = 0
        self.render_status = 200
        self.rendition = b"%PDF-1.4 rendition"
        self.requests: list[tuple[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.requests.append((method, path))
        if method == "POST" and path == "/rest/mp/v1.1/search":
            return httpx.Response(self.search_status, json=self.search)
        if method == "GET" and path.startswith("/rest/mp/versions/assets/"):
            return httpx.Response(200, json=self.versions)
        if method == "POST" and path == "/rest/mp/v1.2/file-generation-task":
            return httpx.Response(201, json={"id": self.task_id})
        if method == "GET" and path.startswith("/rest/mp/v1.2/download/file-generation-task/"):
            if self.pending_polls:
                self.pending_polls -= 1
                return httpx.Response(202)
            return httpx.Response(self.render_status, content=self.rendition)
        return httpx.Response(404, text="no such route")


@pytest.fixture
def dam(make_search_result, make_version) -> FakeDam:
    return FakeDam(make_search_result(), [make_version()])


@pytest.fixture
def dam_client(dam: FakeDam):
    client = MediaPoolClient(
        make_http_client(transport=httpx.MockTransport(dam)),
        BasicAuthenticator("u", "p"),
        poll_interval_s=0.01,
        sleep=lambda s: None,
    )
    yield client
    client.close()
