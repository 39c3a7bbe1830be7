"""
S3-compatible object storage for AWS S3, Aliyun OSS and Volcengine TOS.

All three backends speak the S3 wire protocol, so a single boto3-based
implementation serves them; provider differences are limited to endpoint
addressing, credential shape and image processing.
"""

from .cloud_storage import (
    CloudStorage,
    FileInfo,
    NetworkError,
    QuotaExceededError,
    StorageConfig,
    StorageConfigError,
    StorageError,
    StorageFileNotFoundError,
    StoragePermission,
    StoragePermissionError,
    StorageProvider,
    UploadProgress,
    ValidationError,
)
from .file_utils import FileUtils, file_utils
from .s3_adapter import S3ProviderAdapter
from .s3_storage import S3Storage


__all__ = [
    # Abstract interfaces and base classes
    "CloudStorage",
    "StorageConfig",
    # Concrete implementations
    "S3Storage",
    "S3ProviderAdapter",
    # Data models and enums
    "FileInfo",
    "UploadProgress",
    "StorageProvider",
    "StoragePermission",
    # Exceptions
    "StorageError",
    "StorageConfigError",
    "StorageFileNotFoundError",
    "StoragePermissionError",
    "QuotaExceededError",
    "NetworkError",
    "ValidationError",
    # Utilities
    "FileUtils",
    "file_utils",
]
