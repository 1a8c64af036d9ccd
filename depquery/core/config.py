"""
Application Configuration - Environment settings and constants.

Loads configuration from environment variables with sensible defaults.
Uses Pydantic Settings for validation and type safety.

All remote agent knobs can be overridden per deployment through the
environment (e.g. AGENT_TIMEOUT_SECONDS=300).
"""

from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Usage:
        from depquery.core.config import get_settings
        settings = get_settings()
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Dependency Query"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"
    api_prefix: str = "/api/v1"

    # HTTP Server Configuration
    server_host: str = "0.0.0.0"
    server_port: int = 8000
    allowed_origins: List[str] = ["*"]
    log_level: str = "INFO"

    # Remote agent service
    agent_url: str = "http://localhost:4096"
    agent_timeout_seconds: float = 120.0  # Overall deadline per query
    agent_fetch_timeout_seconds: float = 30.0  # Each individual remote call
    agent_poll_interval_seconds: float = 1.0
    agent_max_poll_attempts: int = 60
    agent_stream_heartbeat_seconds: float = 30.0
    recent_messages_limit: int = 5
    agent_prompt: Optional[str] = None  # Overrides the built-in persona

    # Background repository summary runs unattended, so it gets a longer deadline
    summary_timeout_multiplier: float = 3.0

    # Repository Configuration
    repo_storage_path: str = "./data/repos"
    repo_clone_timeout_seconds: int = 300


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
