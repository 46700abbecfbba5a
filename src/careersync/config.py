from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    api_base_url: str = "http://localhost:3002/api/v1"
    access_token: str = ""
    store_database_url: str = "sqlite:///./careersync.db"
    request_timeout_seconds: float = 30.0
    max_retries: int = 2
    retry_base_delay_seconds: float = 1.0

    # Perceptual pacing between phases; set to 0 for headless use
    fetching_dwell_seconds: float = 0.8
    activities_dwell_seconds: float = 1.2
    stories_dwell_seconds: float = 1.5
    stories_live_dwell_seconds: float = 0.5

    narrative_poll_interval_seconds: float = 10.0
    narrative_poll_timeout_seconds: float = 60.0
    auto_sync_hour: int = 3

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
