from __future__ import annotations

import traceback
from dataclasses import dataclass


class SyncError(RuntimeError):
    """Base error"""


@dataclass(frozen=True, slots=True)
class EventError:
    """
    A normalized error record for a failed event.
    """

    exc_type: str
    message: str
    traceback: str


def event_error_from_exc(exc: BaseException) -> EventError:
    return EventError(
        exc_type=type(exc).__name__,
        message=str(exc),
        traceback=traceback.format_exc(),
    )


class ConfigError(SyncError):
    """Missing or contradictory configuration"""


class EventValidationError(SyncError):
    """
    Non-retryable: the event payload is malformed (missing required field,
    unknown event type, unparseable values)
    """


class PathError(SyncError):
    """An intermediate path segment is missing or not an object"""


class RemoteError(SyncError):
    """The DAM answered with something we cannot use"""


class AssetNotFoundError(RemoteError):
    """Search returned zero hits"""


class AmbiguousAssetError(RemoteError):
    """Search returned more than one hit"""


class AuthError(SyncError):
    """Authentication could not be established"""


class CredentialsError(AuthError):
    """
    OAuth credential record missing or corrupt. This is a configuration
    problem, not something a retry will fix.
    """


class TokensExpiredError(AuthError):
    """Access and refresh token are both expired"""


class TokenRefreshError(AuthError):
    """Token endpoint rejected the refresh"""


class RenderTaskError(SyncError):
    """Render task could not deliver a rendition"""


class RenderTaskFailedError(RenderTaskError, RemoteError):
    def __init__(self, *, url: str, status_code: int) -> None:
        super().__init__(f"render task {url} failed with HTTP {status_code}")
        self.url = url
        self.status_code = status_code


class RenderTaskTimeoutError(RenderTaskError):
    def __init__(self, *, url: str, attempts: int, waited_s: float) -> None:
        super().__init__(
            f"render task {url} still processing after {attempts} polls ({waited_s:.0f}s)"
        )
        self.url = url
        self.attempts = attempts
        self.waited_s = waited_s


class RenderTaskCancelledError(RenderTaskError):
    """Polling was interrupted by shutdown"""


class StoreError(SyncError):
    """Local file store failure"""
