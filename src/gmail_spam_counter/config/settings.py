"""Configuration via pydantic-settings with .env support."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SpamCounterSettings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_prefix="GMAIL_SPAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # OAuth credentials
    credentials_path: Path = Path("credentials.json")
    token_path: Path = Path("token.json")
    auth_timeout_seconds: int = Field(default=300, gt=0)
    open_browser: bool = True

    # Gmail API settings
    label: str = "SPAM"
    max_results_per_page: int = Field(default=500, ge=1, le=500)

    # Run window & concurrency
    lookback_days: int = Field(default=30, gt=0)
    timeout_seconds: float = Field(default=60.0, gt=0)
    max_concurrent_fetches: int = Field(default=10, gt=0)
    fetch_jitter_seconds: float = Field(default=0.1, ge=0)

    # Rate limiting & retry
    max_attempts: int = Field(default=8, ge=1)
    backoff_base_seconds: float = Field(default=0.3, ge=0)
    backoff_max_seconds: float = Field(default=10.0, ge=0)
    backoff_jitter_seconds: float = Field(default=0.2, ge=0)
    num_retries: int = Field(default=0, ge=0)

    # Logging
    log_level: str = "INFO"

    def ensure_directories(self) -> None:
        """Create the token directory if it doesn't exist."""
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
