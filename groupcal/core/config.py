"""Application configuration via environment variables."""
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Group Calendar"
    debug: bool = False
    log_dir: Path = Path.home() / ".logs" / "groupcal"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all

    # Database
    database_url: str = "sqlite:///./groupcal.db"

    # Recurrence
    recurrence_max_iterations: int = 100

    # Expiry windows
    invitation_expiry_days: int = 7
    notification_expiry_days: int = 30

    # Groups
    default_rejection_reason: str = "not provided"
    invite_code_length: int = 8
    invite_code_max_attempts: int = 5

    # Maintenance job
    enable_scheduler: bool = True
    cleanup_interval_minutes: int = 60


settings = Settings()
