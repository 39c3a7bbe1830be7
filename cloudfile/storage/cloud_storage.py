"""
Abstract cloud storage interface for provider-neutral object storage.

This module defines the abstract base class, the configuration model and the
credential translation for cloud storage implementations, providing a
consistent interface for file operations regardless of whether the objects
live on AWS S3, Aliyun OSS or Volcengine TOS.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from cloudfile.core.exceptions import (
    NetworkError,
    QuotaExceededError,
    StorageConfigError,
    StorageError,
    StorageFileNotFoundError,
    StoragePermissionError,
    ValidationError,
)
from cloudfile.models.upload_model import (
    ChunkUploadConfig,
    ChunkUploadFile,
    UploadedObject,
    UploadProgress,
)


class StorageProvider(str, Enum):
    """Object storage backends reachable through an S3-compatible API."""

    S3 = "s3"
    ALIYUN_OSS = "aliyun_oss"
    VOLCENGINE_TOS = "volcengine_tos"


class StoragePermission(str, Enum):
    """Canned object ACLs."""

    PRIVATE = "private"
    PUBLIC_READ = "public-read"
    PUBLIC_READ_WRITE = "public-read-write"
    AUTHENTICATED_READ = "authenticated-read"


@dataclass
class FileInfo:
    """Information about a stored file."""

    key: str
    size: int
    content_type: str
    last_modified: Optional[datetime]
    etag: str
    metadata: dict[str, str]
    public_url: Optional[str] = None
    storage_class: Optional[str] = None


class StorageConfig(BaseModel):
    """Configuration for one bucket on an S3-compatible backend."""

    model_config = ConfigDict(use_enum_values=True)

    provider: StorageProvider = StorageProvider.S3
    bucket_name: str = Field(min_length=1)
    region: Optional[str] = None
    endpoint_url: Optional[str] = None  # Required for OSS and TOS
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None  # STS token

    # Objects are stored under this prefix; facade keys are relative to it
    key_prefix: str = ""

    # Transport settings
    max_pool_connections: int = Field(default=10, ge=1, le=50)
    use_ssl: bool = True
    verify_ssl: bool = True
    default_permission: Optional[StoragePermission] = None

    # Transfer settings
    download_chunk_size: int = Field(default=8 * 1024 * 1024, ge=1024)  # 8MB
    chunk_upload: ChunkUploadConfig = Field(default_factory=ChunkUploadConfig)

    # CDN settings
    cdn_domain: Optional[str] = None

    @classmethod
    def from_credential(
        cls,
        credential: Mapping[str, Any],
        provider: StorageProvider | str,
        **overrides: Any,
    ) -> "StorageConfig":
        """
        Build a configuration from an already-issued STS credential payload.

        The payload may be wrapped in ``temporary_credential``. Two shapes are
        understood: the Aliyun one with flat ``access_key_id`` /
        ``access_key_secret`` / ``sts_token`` keys, and the TOS/S3 one with a
        nested ``credentials`` mapping.

        Raises:
            StorageConfigError: If a required field is missing
        """
        provider = StorageProvider(provider)
        payload = credential.get("temporary_credential") or credential
        if not isinstance(payload, Mapping):
            raise StorageConfigError("Credential payload must be a mapping", error_code="INVALID_CREDENTIAL")

        if "access_key_id" in payload:
            values = _aliyun_credential_values(payload)
        elif "credentials" in payload:
            values = _sts_credential_values(payload)
        else:
            raise StorageConfigError(
                "Unrecognized credential shape",
                error_code="INVALID_CREDENTIAL",
                details={"keys": sorted(payload.keys())},
            )

        if provider == StorageProvider.VOLCENGINE_TOS:
            values["endpoint_url"] = tos_s3_endpoint(values["endpoint_url"])
        values["provider"] = provider
        values.update(overrides)
        return cls(**values)


def tos_s3_endpoint(endpoint: str) -> str:
    """
    Map a native TOS endpoint onto its S3-compatible host.

    ``https://tos-cn-beijing.volces.com`` becomes
    ``https://tos-s3-cn-beijing.volces.com``; endpoints already on the S3 host,
    or not on a ``tos-`` host at all, are returned unchanged.
    """
    scheme, sep, host = endpoint.rpartition("://")
    if host.startswith("tos-") and not host.startswith("tos-s3-"):
        host = "tos-s3-" + host[len("tos-"):]
    return f"{scheme}{sep}{host}"


def _require(payload: Mapping[str, Any], *names: str) -> None:
    missing = [name for name in names if not payload.get(name)]
    if missing:
        raise StorageConfigError(
            f"Credential is missing required fields: {', '.join(missing)}",
            error_code="INVALID_CREDENTIAL",
            details={"missing": missing},
        )


def _aliyun_credential_values(payload: Mapping[str, Any]) -> dict[str, Any]:
    _require(payload, "region", "bucket", "access_key_id", "access_key_secret", "sts_token")
    region = payload["region"]
    return {
        "bucket_name": payload["bucket"],
        # oss-cn-hangzhou -> cn-hangzhou for signing
        "region": region.replace("oss-", "", 1),
        "endpoint_url": f"https://{region}.aliyuncs.com",
        "access_key_id": payload["access_key_id"],
        "secret_access_key": payload["access_key_secret"],
        "session_token": payload["sts_token"],
        "key_prefix": payload.get("dir") or "",
    }


def _sts_credential_values(payload: Mapping[str, Any]) -> dict[str, Any]:
    _require(payload, "region", "bucket")
    endpoint = payload.get("endpoint") or payload.get("host")
    if not endpoint:
        raise StorageConfigError(
            "Credential is missing required fields: endpoint",
            error_code="INVALID_CREDENTIAL",
            details={"missing": ["endpoint"]},
        )
    if "://" not in endpoint:
        endpoint = f"https://{endpoint}"

    secrets = payload.get("credentials") or {}
    _require(secrets, "AccessKeyId", "SecretAccessKey", "SessionToken")
    return {
        "bucket_name": payload["bucket"],
        "region": payload["region"],
        "endpoint_url": endpoint,
        "access_key_id": secrets["AccessKeyId"],
        "secret_access_key": secrets["SecretAccessKey"],
        "session_token": secrets["SessionToken"],
        "key_prefix": payload.get("dir") or "",
    }


class CloudStorage(ABC):
    """
    Provider-neutral object storage facade.

    Keys passed to and returned from every operation are relative to
    ``config.key_prefix``; implementations resolve them with
    :meth:`full_key`. Backend failures surface as :class:`StorageError`
    subclasses.
    """

    def __init__(self, config: StorageConfig):
        self.config = config

    def full_key(self, key: str) -> str:
        """Resolve a facade key to the object key on the backend."""
        prefix = self.config.key_prefix
        if not prefix:
            return key
        return f"{prefix.rstrip('/')}/{key.lstrip('/')}"

    def relative_key(self, key: str) -> str:
        """Inverse of :meth:`full_key` for keys returned by the backend."""
        prefix = self.config.key_prefix
        if not prefix:
            return key
        normalized = f"{prefix.rstrip('/')}/"
        return key[len(normalized):] if key.startswith(normalized) else key

    @abstractmethod
    async def connect(self) -> None:
        """Build the SDK client from the resolved credentials."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the SDK client."""

    @abstractmethod
    async def upload_file(
        self,
        file_path: str | Path,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
        progress_callback: Optional[Callable[[UploadProgress], Any]] = None,
    ) -> FileInfo:
        """
        Store a local file under ``key``.

        Files larger than ``config.chunk_upload.threshold`` are sent as a
        multipart session; smaller ones in a single request.

        Args:
            file_path: File on the local file system
            key: Object key relative to the key prefix
            content_type: Overrides the type guessed from the file name
            metadata: User metadata attached to the object
            progress_callback: Receives an UploadProgress after every part

        Returns:
            The stored object's metadata, as read back from the backend

        Raises:
            StorageFileNotFoundError: If ``file_path`` does not exist
            ChunkUploadError: If the multipart session fails; it has been aborted
        """

    @abstractmethod
    async def upload_chunked(self, upload_file: ChunkUploadFile) -> UploadedObject:
        """Run a prepared handle through the chunk upload orchestrator."""

    @abstractmethod
    async def upload_bytes(
        self,
        data: bytes,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> FileInfo:
        """Store an in-memory payload with one request."""

    @abstractmethod
    async def create_object(
        self,
        key: str,
        content: bytes = b"",
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
        download_name: Optional[str] = None,
    ) -> FileInfo:
        """
        Create an object, or a folder marker when ``key`` ends with ``/``.

        Folder markers are always empty and typed ``application/x-directory``.
        Files without an explicit ``content_type`` are typed from their name.

        Raises:
            ValidationError: If a folder marker is given content
        """

    @abstractmethod
    async def download_file(
        self,
        key: str,
        file_path: str | Path,
        progress_callback: Optional[Callable[[UploadProgress], Any]] = None,
    ) -> None:
        """
        Stream an object to ``file_path``, creating parent directories.

        ``progress_callback`` is called after each block written, with
        ``bytes_uploaded`` counting the bytes received so far.
        """

    @abstractmethod
    async def download_bytes(self, key: str) -> bytes:
        pass

    @abstractmethod
    async def download_by_chunks(
        self,
        key: str,
        file_path: str | Path,
        chunk_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        progress_callback: Optional[Callable[[UploadProgress], Any]] = None,
    ) -> None:
        """
        Download an object with ranged requests, one per chunk.

        Chunks are planned like upload parts and each range is retried with
        the chunk upload retry policy. A failed download removes the partial
        file before the error is raised.

        Args:
            key: Object key relative to the key prefix
            file_path: Local destination; parent directories are created
            chunk_size: Bytes per range request, ``config.download_chunk_size`` by default
            max_concurrency: Ranges in flight, ``config.chunk_upload.max_concurrency`` by default
            progress_callback: Receives an UploadProgress after every range
        """

    @abstractmethod
    async def get_file_info(self, key: str) -> FileInfo:
        """Head an object; raises StorageFileNotFoundError when it is missing."""

    @abstractmethod
    async def list_files(
        self,
        prefix: str = "",
        limit: Optional[int] = None,
        delimiter: Optional[str] = None,
    ) -> list[FileInfo]:
        """
        List objects whose relative key starts with ``prefix``.

        ``limit`` caps the number of results across pages. With a
        ``delimiter`` only the objects directly under ``prefix`` are returned.
        """

    @abstractmethod
    async def delete_file(self, key: str) -> None:
        pass

    @abstractmethod
    async def delete_files(self, keys: list[str]) -> dict[str, bool]:
        """Batch delete; the result maps each requested key to whether it was removed."""

    @abstractmethod
    async def file_exists(self, key: str) -> bool:
        pass

    @abstractmethod
    async def generate_presigned_url(
        self,
        key: str,
        expiration: timedelta = timedelta(hours=1),
        method: str = "GET",
        filename: Optional[str] = None,
    ) -> str:
        """
        Sign a temporary URL for ``key``.

        Args:
            key: Object key relative to the key prefix
            expiration: Lifetime of the signature
            method: One of GET, PUT, DELETE, HEAD
            filename: For GET, the name a browser saves the download under

        Raises:
            ValidationError: For any other method
        """

    @abstractmethod
    async def generate_presigned_urls(
        self,
        keys: list[str],
        expiration: timedelta = timedelta(hours=1),
        download_names: Optional[dict[str, str]] = None,
    ) -> dict[str, str]:
        """Sign GET URLs for several keys; ``download_names`` maps a key to its save-as name."""

    @abstractmethod
    async def generate_public_url(self, key: str) -> Optional[str]:
        """Unsigned URL of an object; only usable for public-read objects or behind a CDN."""

    @abstractmethod
    async def copy_file(
        self,
        source_key: str,
        destination_key: str,
        metadata: Optional[dict[str, str]] = None,
        content_type: Optional[str] = None,
        download_name: Optional[str] = None,
    ) -> FileInfo:
        """
        Server-side copy inside the bucket.

        Without overrides the copy keeps the source's headers. Passing
        ``metadata``, ``content_type`` or ``download_name`` replaces them,
        taking any header not given from the source object.
        """

    @abstractmethod
    async def set_metadata(
        self,
        key: str,
        metadata: dict[str, str],
        content_type: Optional[str] = None,
        download_name: Optional[str] = None,
    ) -> FileInfo:
        """Replace an object's user metadata in place by copying it onto itself."""

    @abstractmethod
    async def move_file(
        self,
        source_key: str,
        destination_key: str,
        metadata: Optional[dict[str, str]] = None,
    ) -> FileInfo:
        """Copy to ``destination_key`` and delete the source."""

    async def health_check(self) -> bool:
        """Whether the bucket can be listed with the current credentials."""
        try:
            await self.list_files(limit=1)
        except StorageError:
            return False
        return True


__all__ = [
    "CloudStorage",
    "StorageConfig",
    "StorageProvider",
    "StoragePermission",
    "UploadProgress",
    "FileInfo",
    "StorageError",
    "StorageConfigError",
    "StorageFileNotFoundError",
    "StoragePermissionError",
    "QuotaExceededError",
    "NetworkError",
    "ValidationError",
]
