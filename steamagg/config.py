"""Configuration management using Pydantic Settings."""

from enum import Enum
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class LogFormat(str, Enum):
    """Log output format."""
    JSON = "json"
    CONSOLE = "console"


class AggregatorConfig(BaseSettings):
    """Configuration for the steamagg aggregator."""

    # Storage
    data_dir: str = "./steam"
    index_path: str | None = None

    # Statistics API
    steam_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("STEAMAGG_STEAM_API_KEY", "STEAM_API_KEY"),
    )
    steam_api_base: str = "https://api.steampowered.com"
    api_min_interval_ms: int = 1500
    recently_played_count: int = 20

    # Community site
    community_base: str = "https://steamcommunity.com"
    http_timeout_seconds: float = 20.0
    user_agent: str | None = None

    # In-memory cache windows
    snapshot_ttl_seconds: int = 60
    status_recheck_seconds: int = 30

    # Identity resolver (browser)
    resolver_url: str = "https://steamid.xyz/"
    headless: bool = True
    browser_timeout_ms: int = 30000

    # HTTP surface
    client_rate_limit_seconds: float = 3.0

    # Logging
    log_level: str = "INFO"
    log_format: LogFormat = LogFormat.CONSOLE

    model_config = {
        "env_prefix": "STEAMAGG_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @property
    def resolved_index_path(self) -> Path:
        """Alias index database path, defaulting to a file inside data_dir."""
        if self.index_path:
            return Path(self.index_path)
        return Path(self.data_dir) / "aliases.db"

    def permalink_for(self, steam64: str) -> str:
        """Permanent profile URL derived from the numeric id."""
        return f"{self.community_base.rstrip('/')}/profiles/{steam64}/"
