from .builder import build_snapshot, map_categories, map_channels, select_version
from .models import AssetSnapshot, AssetState, split_asset_id

__all__ = [
    "AssetSnapshot",
    "AssetState",
    "build_snapshot",
    "map_categories",
    "map_channels",
    "select_version",
    "split_asset_id",
]
