"""
Factory for creating storage instances.
"""

from collections.abc import Mapping
from typing import Any, Optional

from cloudfile.image.image_processor import ImageProcessor, OSSImageProcessor
from cloudfile.storage.cloud_storage import StorageConfig, StorageProvider
from cloudfile.storage.s3_storage import S3Storage
from cloudfile.utils.env_config import AppSettings


def create_image_processor(provider: StorageProvider | str) -> Optional[ImageProcessor]:
    """Image processor for a provider, or None when the backend has none."""
    if StorageProvider(provider) == StorageProvider.ALIYUN_OSS:
        return OSSImageProcessor()
    return None


def create_storage(settings: AppSettings) -> S3Storage | None:
    """Create storage based on configuration."""
    if not settings.has_storage_credentials:
        return None

    config = StorageConfig(**settings.get_storage_config())
    return S3Storage(config, image_processor=create_image_processor(config.provider))


def create_storage_from_credential(
    credential: Mapping[str, Any],
    provider: StorageProvider | str,
    settings: Optional[AppSettings] = None,
) -> S3Storage:
    """Create storage from an STS credential payload."""
    overrides = {"chunk_upload": settings.get_chunk_upload_config()} if settings else {}
    config = StorageConfig.from_credential(credential, provider, **overrides)
    return S3Storage(config, image_processor=create_image_processor(config.provider))
