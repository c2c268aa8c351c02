import pytz
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Coffee_Queue"

    # --- Storage / Fan-out (unset = in-memory store, no Redis mirror) ---
    DATABASE_URL: str | None = None
    DB_CONNECT_RETRIES: int = 10
    DB_RETRY_WAIT_SECONDS: float = 3.0
    REDIS_URL: str | None = None
    REDIS_CHANNEL: str = "queue_updated"

    # --- Scheduling & Estimates ---
    TIMEZONE: str = "UTC"  # day boundary for completed_today
    DEFAULT_PREP_MINUTES: float = 5.0
    PREP_HISTORY_WINDOW: int = 20

    # --- Projections ---
    QUEUE_PAGE_SIZE: int = 10
    RECENT_COMPLETIONS_CAPACITY: int = 20
    RECENT_COMPLETIONS_EXPOSED: int = 5

    # --- Notifications ---
    SUBSCRIBER_BUFFER: int = 100
    MAX_PENDING_EVENTS: int = 1000

    # --- Server ---
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

    @field_validator("TIMEZONE")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"Unknown timezone: {value}") from None
        return value

    @field_validator("DEFAULT_PREP_MINUTES")
    @classmethod
    def _positive_prep(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("DEFAULT_PREP_MINUTES must be positive")
        return value


settings = Settings()
