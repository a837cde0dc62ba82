from .config import Settings, load_settings
from .errors import (
    AmbiguousAssetError,
    AssetNotFoundError,
    AuthError,
    ConfigError,
    CredentialsError,
    EventError,
    EventValidationError,
    PathError,
    RemoteError,
    RenderTaskCancelledError,
    RenderTaskError,
    RenderTaskFailedError,
    RenderTaskTimeoutError,
    StoreError,
    SyncError,
    TokenRefreshError,
    TokensExpiredError,
    event_error_from_exc,
)
from .fs import (
    atomic_move,
    atomic_write_chunks,
    atomic_write_text,
    ensure_parent,
    remove_tree,
    safe_unlink,
)
from .json import atomic_write_json, read_json, stable_json_dumps
from .logging import LOG_FORMATS, bind, clear_bindings, configure_logging
from .time import (
    from_epoch_ms,
    monotonic_ms,
    parse_rfc3339,
    to_epoch_ms,
    to_iso,
    utc_now,
    utc_now_iso,
)

__all__ = [
    "LOG_FORMATS",
    "AmbiguousAssetError",
    "AssetNotFoundError",
    "AuthError",
    "ConfigError",
    "CredentialsError",
    "EventError",
    "EventValidationError",
    "PathError",
    "RemoteError",
    "RenderTaskCancelledError",
    "RenderTaskError",
    "RenderTaskFailedError",
    "RenderTaskTimeoutError",
    "Settings",
    "StoreError",
    "SyncError",
    "TokenRefreshError",
    "TokensExpiredError",
    "atomic_move",
    "atomic_write_chunks",
    "atomic_write_json",
    "atomic_write_text",
    "bind",
    "clear_bindings",
    "configure_logging",
    "ensure_parent",
    "event_error_from_exc",
    "from_epoch_ms",
    "load_settings",
    "monotonic_ms",
    "parse_rfc3339",
    "read_json",
    "remove_tree",
    "safe_unlink",
    "stable_json_dumps",
    "to_epoch_ms",
    "to_iso",
    "utc_now",
    "utc_now_iso",
]
