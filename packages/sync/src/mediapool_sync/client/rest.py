from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional
from urllib.parse import urlsplit

import httpx
import structlog
from mediapool_sync.asset.builder import select_version
from mediapool_sync.core.config import Settings
from mediapool_sync.core.errors import (
    AmbiguousAssetError,
    AssetNotFoundError,
    RemoteError,
    RenderTaskCancelledError,
    RenderTaskFailedError,
    RenderTaskTimeoutError,
)
from mediapool_sync.core.time import monotonic_ms
from mediapool_sync.events import Event
from mediapool_sync.resources import search_request
from tenacity import (
    RetryError,
    Retrying,
    retry_if_result,
    stop_after_attempt,
    stop_when_event_set,
    wait_fixed,
)

from .auth import Authenticator, make_authenticator
from .cookies import CookieJar
from .http import json_body, make_http_client, send
from .render import RenderState, RenderTask

log = structlog.get_logger(__name__)

SEARCH_PATH = "/rest/mp/v1.1/search"
VERSIONS_PATH = "/rest/mp/versions/assets/{asset_id}"
RENDER_TASK_PATH = "/rest/mp/v1.2/file-generation-task"
RENDER_DOWNLOAD_PATH = "/rest/mp/v1.2/download/file-generation-task/{task_id}"

STATUS_PROCESSING = 202


class MediaPoolClient:
    """
    Authenticated access to the DAM's REST API.

    One instance is shared by every event a worker processes: the
    authenticator (and its token store) and the cookie jar live here.
    `cancel` aborts an in-flight render poll.
    """

    def __init__(
        self,
        http: httpx.Client,
        authenticator: Authenticator,
        *,
        cookies: Optional[CookieJar] = None,
        poll_interval_s: float = 5.0,
        poll_max_attempts: int = 360,
        sleep: Optional[Callable[[float], None]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self._http = http
        self._auth = authenticator
        self._cookies = cookies or CookieJar()
        self.poll_interval_s = poll_interval_s
        self.poll_max_attempts = poll_max_attempts
        self.cancel = cancel or threading.Event()
        # waiting on the cancel event lets shutdown cut a poll sleep short
        self._sleep = sleep or self.cancel.wait

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.BaseTransport | None = None,
        cancel: Optional[threading.Event] = None,
    ) -> "MediaPoolClient":
        http = make_http_client(
            timeout_s=settings.http_timeout_s,
            user_agent=settings.user_agent,
            transport=transport,
        )
        return cls(
            http,
            make_authenticator(settings, http),
            cookies=CookieJar(settings.cookie_store_path if settings.persist_cookies else None),
            poll_interval_s=settings.render_poll_interval_s,
            poll_max_attempts=settings.render_poll_max_attempts,
            cancel=cancel,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "MediaPoolClient":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # --- plumbing ---

    def _headers(self, url: str) -> dict[str, str]:
        parts = urlsplit(url)
        headers = {
            "Authorization": self._auth.authorization(),
            "Content-Type": "application/json",
        }
        cookie = self._cookies.header_for(parts.hostname or "", parts.path or "/")
        if cookie:
            headers["Cookie"] = cookie
        return headers

    def _remember_cookies(self, resp: httpx.Response) -> None:
        set_cookies = resp.headers.get_list("set-cookie")
        if set_cookies:
            self._cookies.store(resp.url.host, set_cookies)

    def _call(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        allowed_statuses: Iterable[int] = (200,),
    ) -> httpx.Response:
        resp = send(
            self._http,
            method=method,
            url=url,
            headers=self._headers(url),
            json=json,
            allowed_statuses=allowed_statuses,
        )
        self._remember_cookies(resp)
        return resp

    # --- operations ---

    def search_asset(self, event: Event) -> dict[str, Any]:
        """
        Search result holding exactly one item for the event's asset.
        Zero hits raise AssetNotFoundError, more than one AmbiguousAssetError.
        """
        url = event.service_url + SEARCH_PATH
        resp = self._call("POST", url, json=search_request(event.asset_id or ""))
        body = json_body(resp)

        try:
            hits = int(body.get("totalHits", 0))
        except (TypeError, ValueError) as e:
            raise RemoteError(f"{url}: totalHits is not a number") from e

        if hits == 0:
            log.error("rest.asset_not_found", asset_id=event.asset_id)
            raise AssetNotFoundError(f"asset {event.asset_id} not found")
        if hits > 1:
            log.error("rest.asset_ambiguous", asset_id=event.asset_id, hits=hits)
            raise AmbiguousAssetError(f"asset {event.asset_id} matched {hits} assets")

        log.debug("rest.search", asset_id=event.asset_id)
        return body

    def fetch_versions(self, event: Event) -> list[Any]:
        url = event.service_url + VERSIONS_PATH.format(asset_id=event.asset_id)
        return json_body(self._call("GET", url), expect=list)

    def fetch_version_info(self, event: Event) -> Optional[Mapping[str, Any]]:
        """The official version, else the highest numbered one; None if there are none."""
        versions = self.fetch_versions(event)
        chosen = select_version(versions)
        log.debug(
            "rest.version_selected",
            asset_id=event.asset_id,
            versions=len(versions),
            version=chosen.get("versionNumber") if chosen else None,
        )
        return chosen

    def create_render_task(
        self,
        service_url: str,
        *,
        asset_id: str,
        numeric_id: int,
        version: str,
        rendering_scheme_id: int,
    ) -> RenderTask:
        url = service_url + RENDER_TASK_PATH
        body = {
            "@type": "published_asset",
            "assetId": numeric_id,
            "versionNumber": int(version) if version.isdigit() else version,
            "renderingSchemeId": rendering_scheme_id,
        }
        # only 201 Created counts as success
        resp = self._call("POST", url, json=body, allowed_statuses=(201,))
        task_id = json_body(resp).get("id")
        if task_id in (None, ""):
            raise RemoteError(f"{url}: render task response carries no id")

        task = RenderTask(
            task_id=str(task_id),
            download_url=service_url + RENDER_DOWNLOAD_PATH.format(task_id=task_id),
            asset_id=asset_id,
            version=version,
            rendering_scheme_id=rendering_scheme_id,
        )
        log.info(
            "render.task_created",
            asset_id=asset_id,
            task_id=task.task_id,
            version=version,
            rendering_scheme=rendering_scheme_id,
        )
        return task

    def poll_render_task(self, task: RenderTask) -> httpx.Response:
        """
        Poll the task's download URL every `poll_interval_s` while it answers
        202. Returns the open, streaming 200 response (caller closes it).

        Raises RenderTaskFailedError for any other terminal status,
        RenderTaskTimeoutError once `poll_max_attempts` polls all answered
        202, and RenderTaskCancelledError when `cancel` is set.
        """
        url = task.download_url
        started = monotonic_ms()

        def _poll() -> httpx.Response:
            if self.cancel.is_set():
                raise RenderTaskCancelledError(f"render task {url} cancelled")
            task.attempts += 1
            request = self._http.build_request("GET", url, headers=self._headers(url))
            try:
                resp = self._http.send(request, stream=True)
            except httpx.HTTPError as e:
                task.state = RenderState.FAILED
                raise RemoteError(f"GET {url} failed: {e!r}") from e
            self._remember_cookies(resp)
            task.status_code = resp.status_code
            if resp.status_code == STATUS_PROCESSING:
                resp.close()
            return resp

        def _before_sleep(retry_state) -> None:
            log.info(
                "render.poll",
                task_id=task.task_id,
                attempt=retry_state.attempt_number,
                sleep_s=self.poll_interval_s,
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.poll_max_attempts) | stop_when_event_set(self.cancel),
            wait=wait_fixed(self.poll_interval_s),
            retry=retry_if_result(lambda r: r.status_code == STATUS_PROCESSING),
            sleep=self._sleep,
            before_sleep=_before_sleep,
        )

        try:
            resp = retrying(_poll)
        except RetryError:
            waited_s = (monotonic_ms() - started) / 1000.0
            if self.cancel.is_set():
                task.state = RenderState.FAILED
                raise RenderTaskCancelledError(f"render task {url} cancelled") from None
            task.state = RenderState.TIMED_OUT
            log.error(
                "render.timeout",
                task_id=task.task_id,
                attempts=task.attempts,
                waited_s=waited_s,
            )
            raise RenderTaskTimeoutError(url=url, attempts=task.attempts, waited_s=waited_s) from None
        except RenderTaskCancelledError:
            task.state = RenderState.FAILED
            raise

        if resp.status_code != 200:
            resp.close()
            task.state = RenderState.FAILED
            log.error("render.failed", task_id=task.task_id, status=resp.status_code)
            raise RenderTaskFailedError(url=url, status_code=resp.status_code)

        task.state = RenderState.READY
        log.info(
            "render.ready",
            task_id=task.task_id,
            retries=task.retries,
            elapsed_ms=monotonic_ms() - started,
        )
        return resp

    @contextmanager
    def open_rendition(self, task: RenderTask) -> Iterator[httpx.Response]:
        resp = self.poll_render_task(task)
        try:
            yield resp
        finally:
            resp.close()
