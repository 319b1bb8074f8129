"""Configuration via pydantic-settings with .env support."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class GmailMirrorSettings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_prefix="GMAIL_MIRROR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # OAuth credentials
    credentials_path: Path = Path("credentials/client_secret.json")
    token_path: Path = Path("credentials/token.json")

    # Mailbox view
    label: str = "INBOX"
    page_size: int = 100
    thread_view: bool = False
    enable_history: bool = True

    # Hydration retry
    initial_backoff_seconds: float = 0.05
    backoff_base: float = 1.7
    max_backoff_seconds: float = 5.0
    max_retries: int = 20
    max_fetch_workers: int | None = None
    num_retries: int = 0

    # Batch mutations
    batch_workers: int | None = None

    # Refresh
    refresh_interval_seconds: float = 60.0

    # Logging
    log_level: str = "INFO"
    log_file: Path | None = None

    def ensure_directories(self) -> None:
        """Create credential and log directories if they don't exist."""
        self.credentials_path.parent.mkdir(parents=True, exist_ok=True)
        if self.log_file is not None:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
