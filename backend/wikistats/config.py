"""Settings management for the statistics compiler."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    # Tools database holding the per-wiki daily counter tables
    DATABASE_URL: Optional[str] = None

    # Root of the resources tree (configuration/knownWikis.json,
    # configuration/serviceAward/{wiki}.serviceAwardLevels.json)
    RESOURCES_PATH: str = "resources"

    # Cache tables are versioned by suffix: {wiki}_actor_daily_stats_v2
    TABLE_NAME_SUFFIX: str = "_v2"

    LOG_LEVEL: str = "INFO"
    # Emit compiled SQL at INFO instead of DEBUG
    LOG_SQL: bool = False

    BOT_GROUP_NAME: str = "bot"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]
