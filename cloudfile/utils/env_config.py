"""
Environment-based configuration for cloudfile.

Settings are read from environment variables, optionally seeded from a
``.env`` file at the project root. Pydantic models downstream
(:class:`StorageConfig`, :class:`ChunkUploadConfig`) validate the values.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from cloudfile.models.upload_model import DEFAULT_CHUNK_SIZE, DEFAULT_THRESHOLD, ChunkUploadConfig


logger = logging.getLogger(__name__)

# Load environment variables from .env file
env_file = Path(__file__).parent.parent.parent / ".env"
if env_file.exists():
    load_dotenv(env_file, override=True)
    logger.info(f"Loaded environment variables from: {env_file}")
else:
    logger.debug(f"No .env file found at: {env_file}")


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(key, "").lower()
    return value in ("true", "1", "yes", "on") if value else default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer value from environment variable."""
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def get_env_optional_int(key: str) -> Optional[int]:
    """Get integer value from environment variable, ``None`` when unset or invalid."""
    value = os.getenv(key)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


@dataclass
class AppSettings:
    """Application settings from environment variables."""

    # Environment
    environment: str = field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))

    # Storage Configuration
    storage_provider: str = field(default_factory=lambda: os.getenv("STORAGE_PROVIDER", "s3"))
    storage_bucket_name: Optional[str] = field(default_factory=lambda: os.getenv("STORAGE_BUCKET_NAME"))
    storage_region: Optional[str] = field(default_factory=lambda: os.getenv("STORAGE_REGION", "us-east-1"))
    storage_endpoint_url: Optional[str] = field(default_factory=lambda: os.getenv("STORAGE_ENDPOINT_URL"))
    storage_access_key_id: Optional[str] = field(default_factory=lambda: os.getenv("STORAGE_ACCESS_KEY_ID"))
    storage_secret_access_key: Optional[str] = field(default_factory=lambda: os.getenv("STORAGE_SECRET_ACCESS_KEY"))
    storage_session_token: Optional[str] = field(default_factory=lambda: os.getenv("STORAGE_SESSION_TOKEN"))
    storage_key_prefix: str = field(default_factory=lambda: os.getenv("STORAGE_KEY_PREFIX", ""))
    storage_use_ssl: bool = field(default_factory=lambda: get_env_bool("STORAGE_USE_SSL", True))
    storage_cdn_domain: Optional[str] = field(default_factory=lambda: os.getenv("STORAGE_CDN_DOMAIN"))

    # Chunked upload Configuration
    chunk_size: int = field(default_factory=lambda: get_env_int("CHUNK_SIZE", DEFAULT_CHUNK_SIZE))
    chunk_threshold: int = field(default_factory=lambda: get_env_int("CHUNK_THRESHOLD", DEFAULT_THRESHOLD))
    chunk_max_retries: int = field(default_factory=lambda: get_env_int("CHUNK_MAX_RETRIES", 3))
    chunk_retry_delay_ms: int = field(default_factory=lambda: get_env_int("CHUNK_RETRY_DELAY_MS", 1000))
    chunk_max_retry_delay_ms: Optional[int] = field(default_factory=lambda: get_env_optional_int("CHUNK_MAX_RETRY_DELAY_MS"))
    chunk_max_concurrency: int = field(default_factory=lambda: get_env_int("CHUNK_MAX_CONCURRENCY", 1))

    # Logging Configuration
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_json_format: bool = field(default_factory=lambda: get_env_bool("LOG_JSON_FORMAT", False))

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.environment == "production":
            if not self.storage_access_key_id or not self.storage_secret_access_key:
                logger.warning("Storage credentials not provided for production environment")
            if not self.storage_bucket_name:
                logger.warning("Storage bucket not provided for production environment")

    @property
    def has_storage_credentials(self) -> bool:
        values = (self.storage_access_key_id, self.storage_secret_access_key, self.storage_bucket_name)
        return all(value and value.strip() for value in values)

    def get_chunk_upload_config(self) -> ChunkUploadConfig:
        """Build the chunk upload configuration; raises pydantic.ValidationError on bad values."""
        return ChunkUploadConfig(
            chunk_size=self.chunk_size,
            threshold=self.chunk_threshold,
            max_retries=self.chunk_max_retries,
            retry_delay=self.chunk_retry_delay_ms,
            max_retry_delay=self.chunk_max_retry_delay_ms,
            max_concurrency=self.chunk_max_concurrency,
        )

    def get_storage_config(self) -> dict[str, Any]:
        """Get storage configuration as keyword arguments for StorageConfig."""
        return {
            "provider": self.storage_provider,
            "bucket_name": self.storage_bucket_name,
            "region": self.storage_region,
            "endpoint_url": self.storage_endpoint_url,
            "access_key_id": self.storage_access_key_id,
            "secret_access_key": self.storage_secret_access_key,
            "session_token": self.storage_session_token,
            "key_prefix": self.storage_key_prefix,
            "use_ssl": self.storage_use_ssl,
            "cdn_domain": self.storage_cdn_domain,
            "chunk_upload": self.get_chunk_upload_config(),
        }


# Global settings instance
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get the global application settings instance."""
    global _settings
    if _settings is None:
        _settings = AppSettings()
        logger.info(f"Loaded settings for environment: {_settings.environment}")
    return _settings


def reload_settings() -> AppSettings:
    """Reload the global application settings."""
    global _settings
    if env_file.exists():
        load_dotenv(env_file, override=True)
    _settings = AppSettings()
    logger.info(f"Reloaded settings for environment: {_settings.environment}")
    return _settings
