from __future__ import annotations

from pathlib import Path
from typing import Protocol

import httpx
import structlog
from mediapool_sync.asset import AssetSnapshot
from mediapool_sync.core.errors import RemoteError, StoreError
from mediapool_sync.core.fs import atomic_write_chunks, remove_tree
from mediapool_sync.core.json import atomic_write_json
from mediapool_sync.events import AssetKey, Event

log = structlog.get_logger(__name__)

METADATA_FILENAME = "metadata.json"
CHUNK_BYTES = 1024 * 128


class FileStore(Protocol):
    def store_metadata(self, snapshot: AssetSnapshot) -> Path: ...

    def store_binary(self, snapshot: AssetSnapshot, rendition: httpx.Response) -> Path: ...

    def delete_files(self, event: Event) -> bool: ...


def _component(value: str, what: str) -> str:
    v = str(value).strip()
    if not v or v in (".", "..") or "/" in v or "\\" in v or "\x00" in v:
        raise StoreError(f"unusable {what} for a directory name: {value!r}")
    return v


class LocalFileStore:
    """
    Mirror layout: {base_path}/{customerId}/{systemId}/{assetId}/ holding
    metadata.json and the rendition file.
    """

    def __init__(self, base_path: Path) -> None:
        self.base_path = Path(base_path)

    def asset_dir(self, key: AssetKey) -> Path:
        return (
            self.base_path
            / _component(key.customer_id, "customer id")
            / _component(key.system_id, "system id")
            / _component(key.asset_id, "asset id")
        )

    def store_metadata(self, snapshot: AssetSnapshot) -> Path:
        path = self.asset_dir(snapshot.key) / METADATA_FILENAME
        try:
            atomic_write_json(path, snapshot.to_dict())
        except OSError as e:
            raise StoreError(f"writing {path} failed: {e}") from e
        log.info("store.metadata_written", asset_id=snapshot.key.asset_id, path=str(path))
        return path

    def store_binary(self, snapshot: AssetSnapshot, rendition: httpx.Response) -> Path:
        """
        Stream a ready rendition response into the asset directory under the
        snapshot's file name. The caller owns (and closes) the response.
        """
        path = self.asset_dir(snapshot.key) / _component(snapshot.binary_name(), "file name")
        try:
            size = atomic_write_chunks(path, rendition.iter_bytes(chunk_size=CHUNK_BYTES))
        except OSError as e:
            raise StoreError(f"writing {path} failed: {e}") from e
        except httpx.HTTPError as e:
            raise RemoteError(f"download of {rendition.url} broke off: {e!r}") from e

        log.info(
            "store.binary_written",
            asset_id=snapshot.key.asset_id,
            path=str(path),
            bytes=size,
        )
        return path

    def delete_files(self, event: Event) -> bool:
        d = self.asset_dir(event.key)
        try:
            removed = remove_tree(d)
        except OSError as e:
            raise StoreError(f"removing {d} failed: {e}") from e
        log.info("store.deleted", asset_id=event.asset_id, path=str(d), removed=removed)
        return removed
