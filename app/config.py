from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Postgres settings
    DATABASE_URL: str = "postgresql://localhost:5432/concert_alerts"

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 3
    DB_POOL_MAX_SIZE: int = 12
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour
    DB_STATEMENT_TIMEOUT_SECONDS: int = 60

    # =================================================================
    # MATCHING
    # =================================================================
    NOTIFICATION_MAX_DISTANCE_MILES: float = 50.0
    # Dice coefficient a search candidate must reach to be cached
    ARTIST_MATCH_THRESHOLD: float = 0.7

    # =================================================================
    # BACKGROUND SYNC (rate limits for the external event source)
    # =================================================================
    SYNC_DELAY_SECONDS: float = 0.25
    SYNC_SEARCH_DELAY_MULTIPLIER: float = 2.0
    SYNC_USER_DELAY_SECONDS: float = 0.2
    SYNC_MAX_TASTE_SEARCHES: int = 100
    SYNC_CONCURRENCY: int = 1
    EVENT_RETENTION_DAYS: int = 30

    # =================================================================
    # EMAIL DIGEST
    # =================================================================
    SENDGRID_API_KEY: str | None = None
    EMAIL_FROM: str = "noreply@concertalerts.app"
    EMAIL_FROM_NAME: str = "Concert Alerts"
    FRONTEND_URL: str = "http://localhost:5000"

    # =================================================================
    # JOB CADENCE
    # =================================================================
    NOTIFICATION_CHECK_INTERVAL_MINUTES: int = 360
    DIGEST_INTERVAL_HOURS: int = 24
    NOTIFICATION_CLEANUP_INTERVAL_HOURS: int = 24

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
                    "min_size": 2,
                    "max_size": 6,
                    "timeout": 15.0,
                }
            )

        return config

    def sync_delay_for(self, needs_search: bool) -> float:
        """Delay after one artist; live searches burn more of the API quota."""
        if needs_search:
            return self.SYNC_DELAY_SECONDS * self.SYNC_SEARCH_DELAY_MULTIPLIER
        return self.SYNC_DELAY_SECONDS


settings = Settings()
