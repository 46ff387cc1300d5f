"""
StairCardio Configuration
=========================
All environment variables in one place. Pydantic Settings validates
types at startup so a bad reminder window or timezone fails on boot,
not when the first reminder batch is built.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Loaded from environment variables or a .env file."""

    # --- Supabase ---
    supabase_url: str = "http://localhost:54321"
    supabase_service_key: str = ""  # service_role key for backend operations

    # --- App settings ---
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:8081", "http://localhost:19006"]

    # --- Calendar ---
    # Day keys and reminder wall-clock times are computed in this zone.
    timezone: str = "UTC"
    # Python weekday numbers (Monday = 0). Saturday + Sunday by default.
    weekend_days: list[int] = [5, 6]

    # --- Reminder defaults ---
    reminders_enabled: bool = False
    reminder_start_minutes: int = 9 * 60
    reminder_end_minutes: int = 17 * 60
    reminder_interval_minutes: int = 90
    weekdays_only: bool = True

    # --- Notifications ---
    reminder_title: str = "Time for a stair circuit"
    reminder_body: str = "Quick climb now keeps the streak alive."
    reminder_deep_link: str = "app://today"
    reminder_identifier_prefix: str = "reminder"
    # cancel-all sweeps identifiers 0..max-1
    max_scheduled_reminders: int = 500

    # --- Day summary ---
    default_daily_target: int = 10
    floors_per_circuit: int = 4

    # --- Companion device ---
    # Empty URL means no paired companion: the HTTP channel never activates.
    companion_url: str = ""
    companion_request_timeout_seconds: float = 5.0
    companion_state_path: str = ".companion_state.json"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
