from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "MarketPulse"
    environment: str = "dev"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "postgresql+psycopg2://marketpulse:marketpulse@db:5432/marketpulse"
    redis_url: str = "redis://redis:6379/0"
    ingestion_queue: str = "ingestion"

    ai_provider: str = "mock"
    ai_api_key: str | None = None
    ai_model: str = "gemini-2.5-flash"
    ai_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    ai_timeout_seconds: float = 20.0
    ai_max_attempts: int = 3
    ai_backoff_base_seconds: float = 2.0
    ai_backoff_max_seconds: float = 8.0

    trend_min_sample_size: int = 5
    trend_current_window_days: tuple[int, ...] = (30, 60, 90)
    trend_comparison_horizons_months: tuple[int, ...] = (3, 6, 12)
    trend_comparison_tolerance_days: tuple[int, ...] = (15, 30)
    trend_recency_half_life_days: float = 90.0
    trend_cache_ttl_seconds: int = 60 * 60 * 24


@lru_cache
def get_settings() -> Settings:
    return Settings()
