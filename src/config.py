"""
Application configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./image_workflow.db"

    # Blob storage (uploaded images)
    blob_storage_dir: str = "./blob_storage"

    # OpenAI (inference falls back to a stub when unset)
    openai_api_key: str = ""
    ai_model: str = "gpt-4o-mini"

    # Workflow engine
    approval_timeout_seconds: float = 300.0  # 5 minutes per approval gate
    step_retry_limit: int = 2
    step_retry_delay_seconds: float = 1.0

    # Status poller / API client
    api_base_url: str = "http://localhost:8000"
    poll_interval_seconds: float = 3.0
    request_timeout_seconds: float = 10.0

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR
    slow_request_ms: int = 1000

    project_name: str = "Image Tagging Workflow"
    version: str = "1.0.0"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
