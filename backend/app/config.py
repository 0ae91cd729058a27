"""
Application configuration loaded from environment variables.
"""
from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # MongoDB
    mongo_uri: str = "mongodb://mongodb:27017"
    mongo_app_name: str = "portfolio-ledger"
    mongo_server_selection_timeout_ms: int = 5000

    # Redis
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_socket_timeout_seconds: float = 5.0

    # JWT Configuration
    jwt_secret_key: str = "CHANGE_ME_IN_PRODUCTION_USE_STRONG_SECRET"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 30

    # Quote provider
    quote_api_url: str = "https://brapi.dev/api"
    quote_api_token: str | None = None
    quote_cache_ttl_seconds: int = 300
    dividend_cache_hours: int = 24
    price_history_cache_hours: int = 24
    price_history_years: int = 5

    # Ledger and suggestion policy
    drift_threshold: float = 0.05
    cash_epsilon: float = 0.01
    suggestion_regeneration_days: int = 30
    metrics_freshness_minutes: int = 5
    risk_free_rate: float = 0.0
    free_portfolio_limit: int = 1

    # Per-portfolio lease lock
    lock_ttl_seconds: int = 30
    lock_wait_seconds: float = 10.0
    lock_poll_interval_seconds: float = 0.05

    # Outbox
    outbox_max_attempts: int = 5
    outbox_retry_delay_seconds: int = 30
    outbox_processing_timeout_seconds: int = 120

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
