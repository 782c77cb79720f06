# meet_engine/config.py
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    ENV: str = "dev"
    APP_NAME: str = "Coach Meet Scheduling Engine"
    LOG_LEVEL: str = "INFO"

    # DB URL – SQLite local by default
    DATABASE_URL: str = "sqlite:///./meet_engine.db"

    # One credit buys this many minutes of a meeting
    CREDIT_QUANTUM_MINUTES: int = 15
    DEFAULT_CURRENCY: str = "ARS"

    # Month events cache (per coach/year/month), shared by every worker through Redis
    EVENTS_CACHE_TTL_SECONDS: int = 300
    REDIS_URL: Optional[str] = None  # None = no cache, listings read the DB
    REDIS_TIMEOUT_SECONDS: float = 2.0

    # Collaborators
    VIDEO_CALL_PROVIDER: str = "jitsi"  # or "google_meet" (needs GOOGLE_MEET_BRIDGE_URL)
    JITSI_BASE_URL: str = "https://meet.jit.si"
    GOOGLE_MEET_BRIDGE_URL: Optional[str] = None
    COLLABORATOR_TIMEOUT_SECONDS: float = 5.0
    CALENDAR_SYNC_URL: Optional[str] = None  # busy-interval feed; None = no external calendar

    # Outbox (fire-and-forget side effects)
    OUTBOX_MAX_ATTEMPTS: int = 5
    OUTBOX_BATCH_SIZE: int = 50

    # Twilio config (SMS notifications to participants)
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None  # our Twilio sender ID

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

_settings: Optional[Settings] = None

def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
