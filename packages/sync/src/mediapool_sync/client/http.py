from __future__ import annotations

from typing import Any, Iterable, Mapping

import httpx
import structlog
from mediapool_sync.core.errors import RemoteError

log = structlog.get_logger(__name__)


class HttpStatusError(RemoteError):
    """
    The DAM answered with a status outside the accepted set.
    """

    def __init__(
        self,
        *,
        method: str,
        url: str,
        status_code: int,
        body_snippet: str | None,
    ) -> None:
        msg = f"HTTP {status_code} for {method} {url}"
        if body_snippet:
            msg += f" (body: {body_snippet})"
        super().__init__(msg)
        self.method = method
        self.url = url
        self.status_code = status_code


class HttpTransportError(RemoteError):
    def __init__(self, *, method: str, url: str, error: BaseException) -> None:
        super().__init__(f"{method} {url} failed: {error!r}")
        self.method = method
        self.url = url


def make_http_client(
    *,
    timeout_s: float = 180.0,
    follow_redirects: bool = True,
    user_agent: str = "mediapool-sync/0.1",
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    t = httpx.Timeout(timeout_s, connect=min(timeout_s, 30.0))
    return httpx.Client(
        timeout=t,
        follow_redirects=follow_redirects,
        headers={"User-Agent": user_agent, "Accept": "application/json"},
        transport=transport,
    )


def _body_snippet(resp: httpx.Response, *, limit: int = 200) -> str | None:
    """
    Bounded snippet of the response body for error messages.
    Streaming responses are read only up to a small chunk.
    """
    try:
        if resp.is_stream_consumed or resp.is_closed:
            s = (resp.text or "")[:limit].strip()
            return s or None
        buf = bytearray()
        for chunk in resp.iter_bytes(chunk_size=min(4096, limit * 4)):
            if not chunk:
                continue
            buf.extend(chunk)
            if len(buf) >= limit * 4:
                break
        s = bytes(buf).decode("utf-8", errors="replace")[:limit].strip()
        return s or None
    except (httpx.HTTPError, UnicodeDecodeError):
        return None


def check_status(
    resp: httpx.Response,
    *,
    method: str,
    allowed_statuses: Iterable[int] = (200,),
) -> httpx.Response:
    if resp.status_code in set(allowed_statuses):
        return resp
    snippet = _body_snippet(resp)
    resp.close()
    raise HttpStatusError(
        method=method,
        url=str(resp.request.url) if resp.request else "",
        status_code=resp.status_code,
        body_snippet=snippet,
    )


def send(
    client: httpx.Client,
    *,
    method: str,
    url: str,
    headers: Mapping[str, str] | None = None,
    json: Any = None,
    data: Mapping[str, str] | None = None,
    allowed_statuses: Iterable[int] = (200,),
) -> httpx.Response:
    """
    One request, no retry. Transport failures become HttpTransportError and
    any status outside `allowed_statuses` becomes HttpStatusError.
    """
    try:
        resp = client.request(method, url, headers=headers, json=json, data=data)
    except httpx.HTTPError as e:
        log.warning("http.transport_error", method=method, url=url, error=repr(e))
        raise HttpTransportError(method=method, url=url, error=e) from e

    log.debug("http.response", method=method, url=url, status=resp.status_code)
    return check_status(resp, method=method, allowed_statuses=allowed_statuses)


def json_body(resp: httpx.Response, *, expect: type = dict) -> Any:
    try:
        body = resp.json()
    except ValueError as e:
        raise RemoteError(f"{resp.request.url}: response is not JSON") from e
    if not isinstance(body, expect):
        raise RemoteError(
            f"{resp.request.url}: expected JSON {expect.__name__}, got {type(body).__name__}"
        )
    return body
