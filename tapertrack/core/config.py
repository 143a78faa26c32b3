"""Configuration via environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    # Sync client
    api_base_url: str = "http://localhost:8000"
    sync_debounce_seconds: float = 2.0
    request_timeout_seconds: float = 5.0

    # Local durable storage
    local_storage_path: Path = Path("data/local")
    age_recipient: str = ""
    age_identity: str = ""

    # Reference sync server
    server_data_path: Path = Path("data/server")
    server_audit_path: Path = Path("data/audit")
    token_ttl_days: int = 30

    # Reminders
    reminder_poll_seconds: float = 10.0

    # Locale
    timezone: str = "Europe/Warsaw"

    # App
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "TAPERTRACK_"}


settings = Settings()
