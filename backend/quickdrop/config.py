"""
Application configuration using Pydantic Settings.
All environment variables are loaded here with sensible defaults.
"""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: str = "dev"
    log_level: str = "INFO"

    # Redis (Celery broker + cleanup lock)
    redis_url: str = "redis://localhost:6379/0"

    # Cloudflare R2 / S3-compatible storage
    r2_endpoint: Optional[str] = None  # e.g., https://<account_id>.r2.cloudflarestorage.com
    r2_bucket: str = "quickdrop"
    r2_access_key: Optional[str] = None  # R2 access key ID
    r2_secret_key: Optional[str] = None  # R2 secret access key
    r2_region: str = "auto"  # R2 uses "auto" for region

    # Public URL of the gateway, used to build share links
    public_base_url: str = "http://localhost:8000"

    # Expiry
    default_ttl_hours: int = 24
    max_expiry_hours: int = 8760  # 1 year, the "never expire" option

    # Network timeouts (seconds)
    storage_timeout_seconds: float = 10.0
    upload_timeout_seconds: float = 30.0

    # Garbage collector
    cleanup_page_size: int = 1000
    cleanup_schedule_hour: int = 3  # UTC
    cleanup_lock_ttl_seconds: int = 30 * 60

    # Gateway
    raw_cache_max_age_seconds: int = 300

    # Uploader
    check_id_collisions: bool = False

    # Serve from an in-process store instead of R2 (local development only)
    use_memory_store: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def r2_configured(self) -> bool:
        """Check that endpoint and credentials are all present."""
        return all([self.r2_endpoint, self.r2_access_key, self.r2_secret_key])


# Global settings instance for process entry points (API, worker, CLI)
settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency returning the process settings."""
    return settings
