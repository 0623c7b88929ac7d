"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    telegram_bot_token: str
    telegram_api_base_url: str = "https://api.telegram.org"
    supabase_url: str
    supabase_service_key: str
    admin_token: str
    openai_api_key: str
    openai_model: str = "gpt-4.1-mini"
    workbook_service_url: str = "http://localhost:3001/api"
    bot_api_data_dir: str = "/home/teleweb/backend/data-bot-api"
    user_data_dir: str = "data-bot-user"
    session_idle_timeout_seconds: float = 86400
    session_sweep_interval_seconds: float = 1800
    ingestion_min_spacing_seconds: float = 0.1
    ingestion_progress_every: int = 10
    download_timeout_seconds: float = 30
    activity_queue_size: int = 1000
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
