"""
EcoReport - Configuration Management
Centralized configuration using pydantic-settings.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Structured store
    database_url: str = "sqlite:///./ecoreport.db"
    db_echo: bool = False

    # Data service (object storage + identity)
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    storage_bucket: str = "reports"
    http_timeout_seconds: float = 30.0

    # Location acquisition
    location_timeout_ms: int = 15000
    location_maximum_age_ms: int = 10000
    location_high_accuracy: bool = True

    # Media encoding
    jpeg_quality: int = 50

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def has_remote_service(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
