from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogFormat = Literal["json", "console"]

CHANNEL_PUBLIC_LINKS = "PUBLIC_LINKS"
CHANNEL_SHARE = "SHARE"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MEDIAPOOL_SYNC_",
        env_file=".env",
        extra="ignore",
    )

    base_path: Path = Field(default=Path("data/assets"))
    spool_dir: Path = Field(default=Path("data/spool"))
    run_root: Path = Field(default=Path("_runs"))

    # comma separated channel ids
    sync_channels: str = Field(default=f"{CHANNEL_PUBLIC_LINKS},{CHANNEL_SHARE}")

    user: Optional[str] = None
    password: Optional[str] = None
    oauth_credentials_file: Optional[Path] = None

    persist_cookies: bool = Field(default=False)
    cookie_store_path: Path = Field(default=Path("cookies.json"))

    render_poll_interval_s: float = Field(default=5.0, gt=0)
    render_poll_max_attempts: int = Field(default=360, ge=1)

    http_timeout_s: float = Field(default=180.0, gt=0)
    user_agent: str = Field(default="mediapool-sync/0.1")

    log_level: str = Field(default="INFO")
    log_format: LogFormat = Field(default="console")

    @field_validator("user", "password", "oauth_credentials_file", mode="before")
    @classmethod
    def _blank_is_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def sync_channel_set(self) -> frozenset[str]:
        return frozenset(c.strip() for c in self.sync_channels.split(",") if c.strip())


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    return Settings()
