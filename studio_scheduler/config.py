from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Supabase settings
    SUPABASE_URL: str | None = None
    SUPABASE_SERVICE_ROLE_KEY: str | None = None
    SUPABASE_DB_URL: str | None = None

    # Public site used to build client confirm/decline links
    PUBLIC_SITE_URL: str = "http://localhost:5173"

    # Serverless notification functions
    NOTIFICATION_TIMEOUT_SECONDS: float = 10.0

    # =================================================================
    # SCHEDULING RULES
    # =================================================================
    PIPELINE_STRICT_ORDERING: bool = False
    DEFAULT_SUGGESTED_TIME: str = "10:00 AM"
    SESSION_LENGTH_HOURS: int = 8

    # Waitlist
    WAITLIST_DEFAULT_DISCOUNT: int = 15
    WAITLIST_OFFERS_PER_OPENING: int = 1
    WAITLIST_EXPIRY_INTERVAL_MINUTES: int = 60

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 8
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def functions_base_url(self) -> str | None:
        """Base URL of the Supabase edge functions, derived from SUPABASE_URL."""
        if not self.SUPABASE_URL:
            return None
        return f"{self.SUPABASE_URL.rstrip('/')}/functions/v1"

    def booking_status_url(self, action: str, suggestion_id: str) -> str:
        """Client-facing link the confirm/decline emails point at."""
        base = self.PUBLIC_SITE_URL.rstrip("/")
        return f"{base}/booking-status?action={action}&suggestion={suggestion_id}"

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
            # Single operator locally, keep it small
            config.update({"min_size": 1, "max_size": 4, "timeout": 15.0})

        return config


settings = Settings()
