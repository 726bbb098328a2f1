from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Supabase settings
    SUPABASE_URL: str
    SUPABASE_SERVICE_ROLE_KEY: str
    SUPABASE_DB_URL: str

    # Shared secret for the external cron invoker (unset = trigger is open)
    CRON_SECRET: str | None = None

    # Downstream suggestion generation service
    SUGGESTION_SERVICE_URL: str = "http://localhost:3000/api"
    SUGGESTION_SERVICE_TIMEOUT_SECONDS: float = 60.0

    # =================================================================
    # DATABASE POOL SETTINGS - Simple and configurable
    # =================================================================
    DB_POOL_MIN_SIZE: int = 3
    DB_POOL_MAX_SIZE: int = 12
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    # =================================================================
    # DAILY BATCH SETTINGS
    # =================================================================
    BATCH_MAX_SUGGESTIONS_PER_CALL: int = 3
    BATCH_TIMEFRAME_HOURS: int = 24
    BATCH_MAX_CONCURRENT_RELATIONSHIPS: int = 4
    BATCH_RECIPIENT_CONCURRENCY: int = 2
    BATCH_RELATIONSHIP_TIMEOUT_SECONDS: float = 120.0
    BATCH_CALL_TIMEOUT_SECONDS: float | None = 90.0
    BATCH_RUN_DEADLINE_SECONDS: float | None = None
    BATCH_DOWNSTREAM_RATE_PER_SECOND: float = 1.0
    BATCH_DOWNSTREAM_BURST: int = 2
    BATCH_DOWNSTREAM_MAX_RETRIES: int = 3
    BATCH_CLAIM_STALE_AFTER_SECONDS: int = 3600
    BATCH_SOURCE_AUTHOR_MODE: Literal["per_author", "representative"] = "per_author"
    BATCH_SCHEDULER_ENABLED: bool = True
    BATCH_SCHEDULE_HOUR: int = 23
    BATCH_TIMEZONE: str = "UTC"  # defines calendar days and "yesterday"

    # Suggestion retention
    SUGGESTION_TTL_DAYS: int = 14
    SUGGESTION_CLEANUP_DAYS_OLD: int = 30

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            # More conservative for local development
            config.update(
                {
                    "min_size": min(self.DB_POOL_MIN_SIZE, 2),
                    "max_size": min(self.DB_POOL_MAX_SIZE, 8),
                    "timeout": 15.0,
                }
            )

        return config

    def get_batch_config(self) -> dict:
        """
        Get daily batch pipeline configuration.

        The relationship pool is never allowed to exceed the database pool,
        since every relationship worker holds connections while it writes
        ledger rows.
        """
        pool_max = self.get_db_pool_config()["max_size"]

        config = {
            "max_suggestions": self.BATCH_MAX_SUGGESTIONS_PER_CALL,
            "timeframe_hours": self.BATCH_TIMEFRAME_HOURS,
            "max_concurrent_relationships": max(
                1, min(self.BATCH_MAX_CONCURRENT_RELATIONSHIPS, pool_max)
            ),
            "recipient_concurrency": max(1, self.BATCH_RECIPIENT_CONCURRENCY),
            "relationship_timeout_seconds": self.BATCH_RELATIONSHIP_TIMEOUT_SECONDS,
            "call_timeout_seconds": self.BATCH_CALL_TIMEOUT_SECONDS,
            "run_deadline_seconds": self.BATCH_RUN_DEADLINE_SECONDS,
            "rate_per_second": self.BATCH_DOWNSTREAM_RATE_PER_SECOND,
            "burst": max(1, self.BATCH_DOWNSTREAM_BURST),
            "max_retries": self.BATCH_DOWNSTREAM_MAX_RETRIES,
            "claim_stale_after_seconds": self.BATCH_CLAIM_STALE_AFTER_SECONDS,
            "source_author_mode": self.BATCH_SOURCE_AUTHOR_MODE,
            "timezone": self.BATCH_TIMEZONE,
            "suggestion_ttl_days": self.SUGGESTION_TTL_DAYS,
        }

        if self.environment == "development":
            # Local suggestion service is a single dev server
            config["max_concurrent_relationships"] = min(
                config["max_concurrent_relationships"], 2
            )

        return config


settings = Settings()
