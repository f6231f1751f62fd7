"""Central configuration loaded from environment variables and .env files."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Ordered: the first provider that answers wins
DEFAULT_TIME_PROVIDERS = [
    "https://timeapi.io/api/Time/current/zone?timeZone=UTC",
    "https://worldtimeapi.org/api/timezone/Etc/UTC",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="OTPCLOCK_",
        extra="ignore",
    )

    # Clock synchronization
    time_providers: list[str] = Field(default_factory=lambda: list(DEFAULT_TIME_PROVIDERS))
    fallback_origin: str = ""  # own origin, read for its Date header
    probe_timeout_s: float = 2.5

    # Display
    tick_interval_s: float = 1.0

    # Dashboard
    dashboard_host: str = "127.0.0.1"
    dashboard_port: int = 8888

    log_level: str = "INFO"


settings = Settings()
