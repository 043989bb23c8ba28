"""
config.py

Centralized configuration management using pydantic-settings.
All modules must import settings from this file.
Direct os.getenv() calls are prohibited elsewhere.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings loaded from .env file."""

    # Firebase
    firebase_credentials_path: str = ""  # empty: Application Default Credentials
    firebase_database_url: str = ""
    firebase_project_id: str = ""

    # Data layout
    guardians_collection: str = "guardians"
    alerts_root: str = "alerts"

    # Redis (Celery broker and result backend)
    redis_url: str = "redis://127.0.0.1:6379/0"
    alert_ledger_prefix: str = "guardian_alerts:seen"

    # Gateway
    gateway_port: int = 8000

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


settings = Settings()
