# ipam_controller/config.py
"""
Application Configuration
Uses pydantic-settings for environment variable management
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Controller settings loaded from environment variables
    Create a .env file for local development
    """

    # === Application ===
    APP_NAME: str = "In-Cluster IPAM Controller"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # === Resource store (SQL backend) ===
    DATABASE_URL: str = "sqlite:///./ipam.db"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10

    # === Reconciliation ===
    CLAIM_WORKERS: int = 4
    POOL_WORKERS: int = 2
    BACKOFF_BASE_SECONDS: float = 0.005
    BACKOFF_MAX_SECONDS: float = 300.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings instance
    Use this to get settings throughout the application
    """
    return Settings()


settings = get_settings()
