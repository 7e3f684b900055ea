from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Portal-owned database, and the email platform's database (never written)
    ATTRIBUTION_DB_URL: str = "postgresql://localhost:5432/attribution"
    PRODUCTION_DB_URL: str = "postgresql://localhost:5432/production"

    # Heartbeats and per-client processing locks
    REDIS_URL: str = "redis://localhost:6379/0"

    # Connection pools (applied to both databases)
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0
    DB_POOL_MAX_LIFETIME: float = 3600.0

    # Matching
    ATTRIBUTION_WINDOW_DAYS: int = 31  # clients may override in client_config
    REVIEW_EXPIRY_DAYS: int = 7
    PERSONAL_DOMAIN_CACHE_TTL_SECONDS: int = 3600

    # Batch runs
    PROCESSING_BATCH_SIZE: int = 1000
    PROCESSING_BATCH_DELAY_MS: int = 100
    PROCESSING_MAX_CONCURRENCY: int = 10
    PROCESSING_LOCK_TTL_SECONDS: int = 6 * 3600
    PROCESSING_SCHEDULE_HOUR: int = 3  # UTC
    REVIEW_AUTO_CONFIRM_HOUR: int = 0  # UTC

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def get_db_pool_config(self) -> dict:
        """psycopg_pool sizing; local development runs with a smaller pool."""
        if self.environment == "development":
            return {
                "min_size": 1,
                "max_size": 5,
                "timeout": 15.0,
                "max_idle": self.DB_POOL_MAX_IDLE,
                "max_lifetime": self.DB_POOL_MAX_LIFETIME,
            }
        return {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

    def get_processing_config(self) -> dict:
        return {
            "batch_size": self.PROCESSING_BATCH_SIZE,
            "batch_delay_seconds": self.PROCESSING_BATCH_DELAY_MS / 1000,
            "max_concurrency": max(1, self.PROCESSING_MAX_CONCURRENCY),
            "lock_ttl_seconds": self.PROCESSING_LOCK_TTL_SECONDS,
        }


settings = Settings()
