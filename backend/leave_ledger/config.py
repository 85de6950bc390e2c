from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Leave Ledger"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./leave_ledger.db"
    auto_create_schema: bool = True
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8000"]
    log_level: str = "INFO"

    # Transaction retry budget
    conflict_retry_attempts: int = 3
    conflict_retry_backoff_seconds: float = 0.05

    # Request validation windows
    max_future_days: int = 365
    max_past_days: int = 30
    balance_warning_ratio: float = 0.8
    auto_approve_eligible_requests: bool = False

    # Carry-forward and expiry
    india_el_carry_forward_cap: int = 30
    usa_pto_carry_forward_cap: int = 5
    usa_carry_forward_expiry_month: int = 3
    usa_carry_forward_expiry_day: int = 31
    comp_off_expiry_months: int = 3
    expiry_reminder_days: int = 14

    worker_interval_seconds: int = 86400


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
