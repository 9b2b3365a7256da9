"""
Application configuration module.
Loads settings from environment variables.
"""

from typing import Optional

from pydantic_settings import BaseSettings
from functools import lru_cache


LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # Database
    database_url: str = "sqlite+aiosqlite:///./candles.db"
    
    # API
    api_prefix: str = "/api"
    debug: bool = False
    log_level: str = "INFO"
    
    # Upstream candle history
    upstream_url: str = "https://api-invest-gw.tinkoff.ru/market-data-history/api/public/v1/candles"
    upstream_app_name: str = "invest_terminal"
    upstream_app_version: str = "2.0.0"
    session_id: Optional[str] = None
    page_limit: int = 600
    page_delay_ms: int = 80
    request_timeout: float = 30.0
    
    # Replay defaults
    initial_lookback: int = 3000
    min_future_candles: int = 500  # bars guaranteed after a random anchor
    past_page_size: int = 500
    reset_interval: str = "5min"
    rsi_length: int = 14
    
    # Playback
    ff_speed_ms: int = 300
    preferences_path: str = "replay_prefs.json"
    
    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
