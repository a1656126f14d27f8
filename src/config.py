from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Keepalive cadence; hosted free-tier projects pause after ~7 days idle
    keepalive_interval_hours: float = 6.0
    keepalive_ping_timeout_seconds: float = 10.0

    # Registry storage (empty = data/keepalive.db next to the repo)
    keepalive_db_path: str = ""

    # Arm the timer when the server boots
    keepalive_autostart: bool = True

    # Optional YAML file of projects imported on startup
    keepalive_seed_file: str = ""

    # Shared secret for the cron trigger endpoint (Authorization: Bearer <secret>)
    cron_secret: str = ""

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"


settings = Settings()
