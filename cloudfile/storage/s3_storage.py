"""
S3-compatible cloud storage implementation.

This module provides the concrete CloudStorage implementation for every
supported backend. AWS S3 is reached directly; Aliyun OSS and Volcengine TOS
are reached through their S3-compatible endpoints with virtual-hosted
addressing. Uploads above the chunk threshold are delegated to the
ChunkUploadOrchestrator through an S3ProviderAdapter.
"""

import asyncio
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import quote, urlparse

import aiofiles
import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from cloudfile.core.chunk_planner import plan_chunks
from cloudfile.core.chunk_uploader import ChunkUploadOrchestrator, Sleeper
from cloudfile.core.progress import CallbackProgressReporter
from cloudfile.core.retry_policy import RetryPolicy
from cloudfile.image.image_options import ImageProcessOptions
from cloudfile.image.image_processor import ImageProcessor
from cloudfile.models.upload_model import ChunkInfo, ChunkUploadConfig, ChunkUploadFile, UploadedObject, UploadFile

from .cloud_storage import (
    CloudStorage,
    FileInfo,
    NetworkError,
    QuotaExceededError,
    StorageConfig,
    StorageConfigError,
    StorageError,
    StorageFileNotFoundError,
    StorageProvider,
    UploadProgress,
    ValidationError,
)
from .file_utils import DEFAULT_CONTENT_TYPE, FileUtils, file_utils
from .s3_adapter import NOT_FOUND_CODES, S3ProviderAdapter, client_error_details, run_sync, translate_client_error


logger = structlog.get_logger(__name__)

FOLDER_CONTENT_TYPE = "application/x-directory"

PRESIGN_METHODS = {
    "GET": "get_object",
    "PUT": "put_object",
    "DELETE": "delete_object",
    "HEAD": "head_object",
}


class S3Storage(CloudStorage):
    """
    Object storage on any S3-compatible backend.

    Args:
        config: Bucket, endpoint and credential settings
        image_processor: Builds image processing URLs; ``None`` when the backend has none
        sleep: Backoff wait used between part retries
    """

    def __init__(
        self,
        config: StorageConfig,
        image_processor: Optional[ImageProcessor] = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        super().__init__(config)
        self._session = None
        self._s3_client = None
        self.image_processor = image_processor
        self.file_utils: FileUtils = file_utils
        self._sleep = sleep

    @property
    def client(self) -> Any:
        if self._s3_client is None:
            raise StorageError("Storage is not connected", error_code="NOT_CONNECTED")
        return self._s3_client

    @property
    def bucket(self) -> str:
        return self.config.bucket_name

    def _client_config(self) -> Config:
        # OSS and TOS only accept virtual-hosted style requests
        addressing_style = "auto" if self.config.provider == StorageProvider.S3 else "virtual"
        return Config(
            max_pool_connections=self.config.max_pool_connections,
            retries={"max_attempts": 3, "mode": "standard"},
            s3={"addressing_style": addressing_style},
        )

    async def connect(self) -> None:
        """Create the boto3 client."""
        try:
            self._session = boto3.Session(
                aws_access_key_id=self.config.access_key_id,
                aws_secret_access_key=self.config.secret_access_key,
                aws_session_token=self.config.session_token,
                region_name=self.config.region,
            )

            client_kwargs: Dict[str, Any] = {
                "config": self._client_config(),
                "region_name": self.config.region,
                "use_ssl": self.config.use_ssl,
                "verify": self.config.verify_ssl,
            }
            if self.config.endpoint_url:
                client_kwargs["endpoint_url"] = self.config.endpoint_url

            self._s3_client = self._session.client("s3", **client_kwargs)
        except BotoCoreError as e:
            raise StorageConfigError(f"Failed to create storage client: {e}", error_code="CLIENT_INIT") from e

        logger.info(
            "storage_connected",
            provider=self.config.provider,
            bucket=self.bucket,
            endpoint=self.config.endpoint_url,
        )

    async def disconnect(self) -> None:
        """Close connection to the storage backend."""
        if self._s3_client:
            await run_sync(self._s3_client.close)
            self._s3_client = None
            self._session = None
            logger.info("storage_disconnected", bucket=self.bucket)

    async def __aenter__(self) -> "S3Storage":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    def _adapter(self, metadata: Optional[Dict[str, str]] = None) -> S3ProviderAdapter:
        return S3ProviderAdapter(
            self.client,
            default_permission=self.config.default_permission,
            metadata=metadata,
        )

    def _part_config(self, config: ChunkUploadConfig, adapter: S3ProviderAdapter) -> ChunkUploadConfig:
        """Raise ``chunk_size`` to the smallest part the backend will assemble."""
        if config.chunk_size >= adapter.min_part_size:
            return config

        logger.warning(
            "chunk_size_raised",
            configured=config.chunk_size,
            chunk_size=adapter.min_part_size,
            provider=self.config.provider,
        )
        return config.model_copy(update={"chunk_size": adapter.min_part_size})

    # Uploads

    async def upload_file(
        self,
        file_path: Union[str, Path],
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        progress_callback: Optional[Callable[[UploadProgress], Any]] = None,
    ) -> FileInfo:
        """Upload a local file, in chunks when it is above the configured threshold."""
        file_path = Path(file_path)

        if not file_path.exists():
            raise StorageFileNotFoundError(f"File not found: {file_path}", error_code="LOCAL_FILE_NOT_FOUND")

        if not file_path.is_file():
            raise ValidationError(f"Path is not a file: {file_path}")

        full_key = self.full_key(key)
        adapter = self._adapter(metadata)
        upload_file = ChunkUploadFile(
            UploadFile(real_path=file_path, name=full_key, rename=False),
            config=self._part_config(self.config.chunk_upload, adapter),
            progress=CallbackProgressReporter(progress_callback) if progress_callback else None,
            content_type=content_type or self.file_utils.get_content_type(file_path),
        )

        orchestrator = ChunkUploadOrchestrator(
            adapter,
            upload_file,
            self.bucket,
            key=full_key,
            sleep=self._sleep,
            logger=logger,
        )
        await orchestrator.run()

        return await self.get_file_info(key)

    async def upload_chunked(self, upload_file: ChunkUploadFile) -> UploadedObject:
        """Upload a prepared handle; its ``key_path`` is relative to the key prefix."""
        adapter = self._adapter()
        upload_file.config = self._part_config(upload_file.config, adapter)
        orchestrator = ChunkUploadOrchestrator(
            adapter,
            upload_file,
            self.bucket,
            key=self.full_key(upload_file.key_path),
            sleep=self._sleep,
            logger=logger,
        )
        return await orchestrator.run()

    async def upload_bytes(
        self,
        data: bytes,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> FileInfo:
        """Upload bytes data in a single request."""
        adapter = self._adapter(metadata)
        await adapter.simple_upload(
            self.bucket,
            self.full_key(key),
            data,
            content_type or DEFAULT_CONTENT_TYPE,
        )
        return await self.get_file_info(key)

    async def create_object(
        self,
        key: str,
        content: bytes = b"",
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        download_name: Optional[str] = None,
    ) -> FileInfo:
        """Create a file, or an empty folder marker when ``key`` ends with ``/``."""
        is_folder = key.endswith("/")
        if is_folder and content:
            raise ValidationError(f"Folder marker {key} cannot carry content", details={"key": key})

        put_args: Dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": self.full_key(key),
            "Body": content,
            "ContentType": content_type or (FOLDER_CONTENT_TYPE if is_folder else self.file_utils.get_content_type(key)),
        }
        if self.config.default_permission:
            put_args["ACL"] = self.config.default_permission
        if metadata:
            put_args["Metadata"] = metadata
        if download_name:
            put_args["ContentDisposition"] = self.file_utils.content_disposition(download_name)

        try:
            await run_sync(self.client.put_object, **put_args)
        except ClientError as e:
            raise translate_client_error(e, f"create object {key}") from e
        except BotoCoreError as e:
            raise NetworkError(f"Failed to create object {key}: {e}") from e

        logger.info(
            "create_object_success",
            key=key,
            object_type="folder" if is_folder else "file",
            content_length=len(content),
        )
        return await self.get_file_info(key)

    # Downloads

    async def download_file(
        self,
        key: str,
        file_path: Union[str, Path],
        progress_callback: Optional[Callable[[UploadProgress], Any]] = None,
    ) -> None:
        """Stream an object to a local file."""
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            response = await run_sync(self.client.get_object, Bucket=self.bucket, Key=self.full_key(key))
        except ClientError as e:
            raise translate_client_error(e, f"download file {key}") from e

        total_size = response.get("ContentLength", 0)
        bytes_downloaded = 0
        body = response["Body"]

        try:
            async with aiofiles.open(file_path, "wb") as f:
                while True:
                    chunk = await run_sync(body.read, self.config.download_chunk_size)
                    if not chunk:
                        break

                    await f.write(chunk)
                    bytes_downloaded += len(chunk)

                    if progress_callback:
                        progress_callback(
                            UploadProgress(
                                bytes_uploaded=bytes_downloaded,
                                total_bytes=total_size,
                                percentage=(bytes_downloaded / total_size) * 100 if total_size else 100.0,
                            )
                        )
        except (BotoCoreError, OSError) as e:
            raise NetworkError(f"Failed to download file {key}: {e}") from e
        finally:
            body.close()

        logger.info("download_success", key=key, bytes=bytes_downloaded)

    async def download_bytes(self, key: str) -> bytes:
        """Download file content as bytes."""
        try:
            response = await run_sync(self.client.get_object, Bucket=self.bucket, Key=self.full_key(key))
            body = response["Body"]
            try:
                return await run_sync(body.read)
            finally:
                body.close()
        except ClientError as e:
            raise translate_client_error(e, f"download bytes from {key}") from e
        except BotoCoreError as e:
            raise NetworkError(f"Failed to download bytes from {key}: {e}") from e

    async def download_by_chunks(
        self,
        key: str,
        file_path: Union[str, Path],
        chunk_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        progress_callback: Optional[Callable[[UploadProgress], Any]] = None,
    ) -> None:
        """Download an object with one ranged GET per chunk."""
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        total_size = (await self.get_file_info(key)).size
        chunks = plan_chunks(total_size, chunk_size or self.config.download_chunk_size)
        policy = RetryPolicy.from_config(self.config.chunk_upload)
        semaphore = asyncio.Semaphore(max_concurrency or self.config.chunk_upload.max_concurrency)
        downloaded = 0

        async def fetch(chunk: ChunkInfo) -> None:
            nonlocal downloaded
            async with semaphore:
                data = await self._download_range(key, chunk, policy)

            async with aiofiles.open(file_path, "r+b") as f:
                await f.seek(chunk.start)
                await f.write(data)

            downloaded += chunk.size
            if progress_callback:
                progress_callback(
                    UploadProgress(
                        bytes_uploaded=downloaded,
                        total_bytes=total_size,
                        percentage=(downloaded / total_size) * 100,
                    )
                )

        # Ranges are written in place into a fresh file
        async with aiofiles.open(file_path, "wb"):
            pass

        tasks = [asyncio.create_task(fetch(chunk)) for chunk in chunks]
        try:
            if tasks:
                await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

            failed = [task for task in tasks if task.cancelled() or task.exception() is not None]
            if failed:
                file_path.unlink(missing_ok=True)

        # Surface the failure of the lowest-numbered range
        for task in tasks:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()

        logger.info("download_by_chunks_success", key=key, bytes=total_size, chunk_count=len(chunks))

    async def _download_range(self, key: str, chunk: ChunkInfo, policy: RetryPolicy) -> bytes:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._read_range(key, chunk)
            except (NetworkError, QuotaExceededError) as e:
                if not policy.should_retry(attempt):
                    raise

                delay = policy.delay_seconds(attempt)
                logger.warning(
                    "download_range_retry",
                    key=key,
                    part_number=chunk.part_number,
                    attempt=attempt,
                    delay_seconds=delay,
                    error=str(e),
                )
                await self._sleep(delay)

    async def _read_range(self, key: str, chunk: ChunkInfo) -> bytes:
        byte_range = f"bytes={chunk.start}-{chunk.end}"
        try:
            response = await run_sync(
                self.client.get_object,
                Bucket=self.bucket,
                Key=self.full_key(key),
                Range=byte_range,
            )
            body = response["Body"]
            try:
                data = await run_sync(body.read)
            finally:
                body.close()
        except ClientError as e:
            raise translate_client_error(e, f"download {byte_range} of {key}") from e
        except BotoCoreError as e:
            raise NetworkError(f"Failed to download {byte_range} of {key}: {e}") from e

        if len(data) != chunk.size:
            raise NetworkError(
                f"Short read for {byte_range} of {key}: expected {chunk.size} bytes, got {len(data)}",
                details={"part_number": chunk.part_number},
            )
        return data

    # Metadata and listing

    async def get_file_info(self, key: str) -> FileInfo:
        """Head an object."""
        try:
            response = await run_sync(self.client.head_object, Bucket=self.bucket, Key=self.full_key(key))
        except ClientError as e:
            raise translate_client_error(e, f"get info for file {key}") from e

        return FileInfo(
            key=key,
            size=response["ContentLength"],
            content_type=response.get("ContentType", DEFAULT_CONTENT_TYPE),
            last_modified=response.get("LastModified"),
            etag=response.get("ETag", "").strip('"'),
            metadata=response.get("Metadata", {}),
            public_url=await self.generate_public_url(key),
            storage_class=response.get("StorageClass"),
        )

    async def list_files(
        self,
        prefix: str = "",
        limit: Optional[int] = None,
        delimiter: Optional[str] = None,
    ) -> List[FileInfo]:
        """List objects under ``prefix``; keys in the result are relative to the key prefix."""
        pagination: Dict[str, Any] = {"Bucket": self.bucket, "Prefix": self.full_key(prefix)}
        if delimiter:
            pagination["Delimiter"] = delimiter
        if limit:
            pagination["PaginationConfig"] = {"MaxItems": limit}

        try:
            paginator = self.client.get_paginator("list_objects_v2")
            pages = await run_sync(lambda: list(paginator.paginate(**pagination)))
        except ClientError as e:
            raise translate_client_error(e, "list files") from e

        files = []
        for page in pages:
            for obj in page.get("Contents", []):
                key = self.relative_key(obj["Key"])
                files.append(
                    FileInfo(
                        key=key,
                        size=obj.get("Size", 0),
                        content_type=self.file_utils.get_content_type(key),
                        last_modified=obj.get("LastModified"),
                        etag=obj.get("ETag", "").strip('"'),
                        metadata={},
                        storage_class=obj.get("StorageClass"),
                    )
                )

        return files[:limit] if limit else files

    async def file_exists(self, key: str) -> bool:
        """Check if an object exists."""
        try:
            await run_sync(self.client.head_object, Bucket=self.bucket, Key=self.full_key(key))
            return True
        except ClientError as e:
            code, _, _ = client_error_details(e)
            if code in NOT_FOUND_CODES:
                return False
            raise translate_client_error(e, f"check existence of file {key}") from e

    # Deletion

    async def delete_file(self, key: str) -> None:
        """Delete an object."""
        try:
            await run_sync(self.client.delete_object, Bucket=self.bucket, Key=self.full_key(key))
        except ClientError as e:
            raise translate_client_error(e, f"delete file {key}") from e

    async def delete_files(self, keys: List[str]) -> Dict[str, bool]:
        """Delete several objects in one request."""
        if not keys:
            return {}

        full_keys = {self.full_key(key): key for key in keys}
        try:
            response = await run_sync(
                self.client.delete_objects,
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": full_key} for full_key in full_keys]},
            )
        except ClientError as e:
            raise translate_client_error(e, "delete multiple files") from e

        results = {key: False for key in keys}

        for deleted in response.get("Deleted", []):
            results[full_keys.get(deleted["Key"], deleted["Key"])] = True

        for error in response.get("Errors", []):
            key = full_keys.get(error["Key"], error["Key"])
            results[key] = False
            logger.error("delete_file_failed", key=key, error=error.get("Message"))

        return results

    # Copy and move

    async def copy_file(
        self,
        source_key: str,
        destination_key: str,
        metadata: Optional[Dict[str, str]] = None,
        content_type: Optional[str] = None,
        download_name: Optional[str] = None,
    ) -> FileInfo:
        """Server-side copy. Any header override replaces the source's headers."""
        copy_args: Dict[str, Any] = {}

        if metadata is not None or content_type or download_name:
            source = await self.get_file_info(source_key)
            copy_args["MetadataDirective"] = "REPLACE"
            copy_args["Metadata"] = metadata if metadata is not None else source.metadata
            copy_args["ContentType"] = content_type or source.content_type
            if download_name:
                copy_args["ContentDisposition"] = self.file_utils.content_disposition(download_name)

        try:
            await run_sync(
                self.client.copy_object,
                CopySource={"Bucket": self.bucket, "Key": self.full_key(source_key)},
                Bucket=self.bucket,
                Key=self.full_key(destination_key),
                **copy_args,
            )
        except ClientError as e:
            raise translate_client_error(e, f"copy file from {source_key} to {destination_key}") from e

        return await self.get_file_info(destination_key)

    async def set_metadata(
        self,
        key: str,
        metadata: Dict[str, str],
        content_type: Optional[str] = None,
        download_name: Optional[str] = None,
    ) -> FileInfo:
        """Replace user metadata with a self-copy."""
        file_info = await self.copy_file(
            key,
            key,
            metadata=metadata,
            content_type=content_type,
            download_name=download_name,
        )
        logger.info("set_metadata_success", key=key, metadata_keys=sorted(metadata))
        return file_info

    async def move_file(
        self,
        source_key: str,
        destination_key: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> FileInfo:
        """Copy then delete the source."""
        file_info = await self.copy_file(source_key, destination_key, metadata)
        await self.delete_file(source_key)
        return file_info

    # URLs

    async def generate_presigned_url(
        self,
        key: str,
        expiration: timedelta = timedelta(hours=1),
        method: str = "GET",
        filename: Optional[str] = None,
    ) -> str:
        """Sign a URL for ``method`` on ``key``; signing is delegated to boto3."""
        client_method = PRESIGN_METHODS.get(method.upper())
        if client_method is None:
            raise ValidationError(f"Unsupported presign method: {method}", details={"method": method})

        params: Dict[str, Any] = {"Bucket": self.bucket, "Key": self.full_key(key)}
        if filename and client_method == "get_object":
            params["ResponseContentDisposition"] = self.file_utils.content_disposition(filename)

        try:
            return await run_sync(
                self.client.generate_presigned_url,
                ClientMethod=client_method,
                Params=params,
                ExpiresIn=int(expiration.total_seconds()),
            )
        except ClientError as e:
            raise translate_client_error(e, f"generate presigned URL for {key}") from e

    async def generate_presigned_urls(
        self,
        keys: List[str],
        expiration: timedelta = timedelta(hours=1),
        download_names: Optional[Dict[str, str]] = None,
    ) -> Dict[str, str]:
        """Sign a GET URL per key."""
        download_names = download_names or {}
        urls = await asyncio.gather(
            *(self.generate_presigned_url(key, expiration, filename=download_names.get(key)) for key in keys)
        )
        return dict(zip(keys, urls))

    async def generate_public_url(self, key: str) -> Optional[str]:
        """Build the unsigned URL of an object."""
        path = quote(self.full_key(key), safe="/")

        if self.config.cdn_domain:
            return f"https://{self.config.cdn_domain.rstrip('/')}/{path}"

        if self.config.endpoint_url:
            endpoint = urlparse(self.config.endpoint_url)
            if self.config.provider == StorageProvider.S3:
                # Custom S3 endpoints (MinIO and similar) use path-style URLs
                return f"{self.config.endpoint_url.rstrip('/')}/{self.bucket}/{path}"
            return f"{endpoint.scheme or 'https'}://{self.bucket}.{endpoint.netloc or endpoint.path}/{path}"

        if self.config.region:
            return f"https://{self.bucket}.s3.{self.config.region}.amazonaws.com/{path}"
        return f"https://{self.bucket}.s3.amazonaws.com/{path}"

    async def build_image_url(self, key: str, options: ImageProcessOptions) -> str:
        """Public URL of an image with processing parameters attached."""
        if self.image_processor is None:
            raise StorageError(
                f"Image processing is not supported for provider {self.config.provider}",
                error_code="IMAGE_PROCESS_UNSUPPORTED",
            )

        url = await self.generate_public_url(key)
        return self.image_processor.build_url(url, options)
