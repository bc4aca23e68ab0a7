from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SearchSettings(BaseModel):
    debounce_ms: int = 120
    cache_ttl_seconds: float = 45.0
    result_limit: int = 8
    min_query_length: int = 2
    exchange: Literal["NSE", "BSE"] = "NSE"


class FeedSettings(BaseModel):
    stream_path: str = "/live"
    stream_enabled: bool = True
    snapshot_event: str = "snapshot"
    reconnect_delay_seconds: float = 3.0


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MARKETDESK_",
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    api_base_url: str = Field(
        default="http://localhost:3000/api/stocks",
        validation_alias=AliasChoices("MARKET_API_URL", "MARKETDESK_API_BASE_URL"),
    )
    request_timeout_seconds: float = 10.0
    redis_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("REDIS_URL", "MARKETDESK_REDIS_URL"),
    )
    momentum_limit: int = 5
    session_idle_timeout_seconds: float = 900.0
    debug: bool = False
    log_dir: str = "./logs"

    search: SearchSettings = Field(default_factory=SearchSettings)
    feed: FeedSettings = Field(default_factory=FeedSettings)


settings = Settings()
