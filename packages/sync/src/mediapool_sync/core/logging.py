from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from rich.logging import RichHandler
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars

LOG_FORMATS = ("console", "json")

# noisy libraries and the level they are held at
QUIET_LOGGERS = {"httpx": logging.WARNING, "httpcore": logging.WARNING}


def _shared_processors() -> list[Any]:
    return [
        merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _handler_for(fmt: str) -> tuple[logging.Handler, Any]:
    if fmt == "console":
        # rich draws level and time, the renderer only the event and its keys
        handler: logging.Handler = RichHandler(
            rich_tracebacks=True,
            markup=False,
            show_time=False,
            show_path=False,
        )
        return handler, structlog.processors.KeyValueRenderer(
            sort_keys=True, key_order=["event", "run_id", "message_id"], drop_missing=True
        )
    if fmt == "json":
        return logging.StreamHandler(stream=sys.stdout), structlog.processors.JSONRenderer()
    raise ValueError(f"log format must be one of {LOG_FORMATS}, got {fmt!r}")


def configure_logging(*, level: str = "INFO", fmt: str = "console") -> None:
    """
    Route structlog through the stdlib root logger. The first call wins;
    later calls in the same process are ignored.
    """
    if structlog.is_configured():
        return

    level = level.upper()
    handler, renderer = _handler_for(fmt)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(handler)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    structlog.configure(
        processors=[*_shared_processors(), renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind(**values: Any) -> None:
    bind_contextvars(**values)


def clear_bindings() -> None:
    clear_contextvars()
