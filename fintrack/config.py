"""Application configuration using pydantic-settings."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings with FINTRACK_* environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="FINTRACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Backend reads
    load_timeout_seconds: float = 5.0  # bounded wait for every load()

    # Display
    currency: str = "INR"

    # Demo data for the dashboard
    seed_path: Path = Path("data/seed.json")
    demo_user_id: str = "demo-user"

    # Logging
    log_level: str = "INFO"

    # Reports
    trend_months: int = 6
    top_categories: int = 5

    # Transient notifications kept for the UI
    notification_limit: int = 20


settings = Settings()
