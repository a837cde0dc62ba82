from .models import (
    BINARY_KINDS,
    PRIVILEGED_CHANNELS,
    AssetKey,
    ChannelEntry,
    Event,
    EventKind,
)
from .parse import flatten_webhook, parse_event

__all__ = [
    "BINARY_KINDS",
    "PRIVILEGED_CHANNELS",
    "AssetKey",
    "ChannelEntry",
    "Event",
    "EventKind",
    "flatten_webhook",
    "parse_event",
]
