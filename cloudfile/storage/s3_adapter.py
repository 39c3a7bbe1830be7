"""
Multipart upload primitives on top of boto3.

Aliyun OSS and Volcengine TOS both expose an S3-compatible endpoint, so one
adapter serves every supported provider; the differences live entirely in
the client configuration built by :class:`S3Storage`.
"""

import asyncio
from collections.abc import Sequence
from typing import Any, Optional

import structlog
from botocore.exceptions import BotoCoreError, ClientError

from cloudfile.core.exceptions import (
    AbortFailedError,
    CompleteError,
    NetworkError,
    PartUploadError,
    QuotaExceededError,
    SessionInitError,
    StorageError,
    StorageFileNotFoundError,
    StoragePermissionError,
    ValidationError,
)
from cloudfile.core.provider_adapter import ProviderAdapter
from cloudfile.models.upload_model import CompletedPart, UploadedObject


logger = structlog.get_logger(__name__)

NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}
PERMISSION_CODES = {"AccessDenied", "Forbidden", "403", "InvalidAccessKeyId", "SignatureDoesNotMatch"}
QUOTA_CODES = {"QuotaExceeded", "RequestLimitExceeded", "SlowDown", "TooManyRequests"}
NETWORK_CODES = {"RequestTimeout", "ServiceUnavailable", "InternalError", "503"}
VALIDATION_CODES = {"InvalidArgument", "InvalidRequest", "EntityTooSmall", "EntityTooLarge", "InvalidPart", "InvalidPartOrder"}

# S3 and TOS reject non-final parts below 5MB at completion; OSS allows 100KB
MIN_PART_SIZE = 5 * 1024 * 1024


async def run_sync(func, *args, **kwargs):
    """Run a blocking SDK call in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, lambda: func(*args, **kwargs))


def client_error_details(error: ClientError) -> tuple[str, Optional[int], str]:
    """Extract ``(code, http_status, message)`` from a botocore ClientError."""
    response = getattr(error, "response", None) or {}
    code = response.get("Error", {}).get("Code", "UNKNOWN")
    status_code = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    message = response.get("Error", {}).get("Message", str(error))
    return code, status_code, message


def translate_client_error(error: ClientError, operation: str) -> StorageError:
    """Map a ClientError onto the StorageError hierarchy. The caller raises the result."""
    code, status_code, message = client_error_details(error)

    if code in NOT_FOUND_CODES:
        error_class, text = StorageFileNotFoundError, f"File not found during {operation}"
    elif code in PERMISSION_CODES:
        error_class, text = StoragePermissionError, f"Access denied during {operation}"
    elif code in QUOTA_CODES:
        error_class, text = QuotaExceededError, f"Quota exceeded during {operation}"
    elif code in NETWORK_CODES:
        error_class, text = NetworkError, f"Network error during {operation}: {message}"
    elif code in VALIDATION_CODES:
        error_class, text = ValidationError, f"Invalid request during {operation}: {message}"
    else:
        error_class, text = StorageError, f"Storage error during {operation}: {message}"

    return error_class(text, error_code=code, status_code=status_code)


def _error_kwargs(error: Exception) -> dict[str, Any]:
    if isinstance(error, ClientError):
        code, status_code, _ = client_error_details(error)
        return {"error_code": code, "status_code": status_code}
    return {}


class S3ProviderAdapter(ProviderAdapter):
    """
    ProviderAdapter backed by a boto3 S3 client.

    Args:
        client: A boto3 ``s3`` client, already configured with credentials and endpoint
        default_permission: Canned ACL applied to new objects, if any
        metadata: User metadata stored with every object this adapter creates
    """

    min_part_size = MIN_PART_SIZE

    def __init__(
        self,
        client: Any,
        default_permission: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ):
        self._client = client
        self.default_permission = default_permission
        self.metadata = metadata or {}
        self._running_parts: set[asyncio.Future] = set()

    def _object_args(self, content_type: Optional[str]) -> dict[str, Any]:
        args: dict[str, Any] = {}
        if content_type:
            args["ContentType"] = content_type
        if self.default_permission:
            args["ACL"] = self.default_permission
        if self.metadata:
            args["Metadata"] = self.metadata
        return args

    async def create_session(self, bucket: str, key: str, content_type: Optional[str] = None) -> str:
        try:
            response = await run_sync(
                self._client.create_multipart_upload,
                Bucket=bucket,
                Key=key,
                **self._object_args(content_type),
            )
        except (ClientError, BotoCoreError) as e:
            raise SessionInitError(f"Failed to create multipart upload for {key}: {e}", **_error_kwargs(e)) from e

        return response["UploadId"]

    async def upload_part(self, bucket: str, key: str, upload_id: str, part_number: int, data: bytes) -> str:
        request = asyncio.get_running_loop().run_in_executor(
            None,
            lambda: self._client.upload_part(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=data,
            ),
        )
        self._running_parts.add(request)
        request.add_done_callback(self._running_parts.discard)

        try:
            # Shielded so a cancelled caller leaves the request visible to wait_idle
            response = await asyncio.shield(request)
        except (ClientError, BotoCoreError) as e:
            raise PartUploadError(
                f"Failed to upload part {part_number} of {key}: {e}",
                upload_id=upload_id,
                part_number=part_number,
                **_error_kwargs(e),
            ) from e

        return response["ETag"]

    async def wait_idle(self) -> None:
        if self._running_parts:
            await asyncio.gather(*self._running_parts, return_exceptions=True)

    async def complete_session(
        self, bucket: str, key: str, upload_id: str, parts: Sequence[CompletedPart]
    ) -> UploadedObject:
        multipart = {"Parts": [{"ETag": part.etag, "PartNumber": part.part_number} for part in parts]}
        try:
            response = await run_sync(
                self._client.complete_multipart_upload,
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload=multipart,
            )
        except (ClientError, BotoCoreError) as e:
            raise CompleteError(
                f"Failed to complete multipart upload for {key}: {e}",
                upload_id=upload_id,
                **_error_kwargs(e),
            ) from e

        return UploadedObject(
            bucket=bucket,
            key=key,
            size=0,
            etag=response.get("ETag", "").strip('"'),
            upload_id=upload_id,
            chunked=True,
            part_count=len(parts),
        )

    async def abort_session(self, bucket: str, key: str, upload_id: str) -> None:
        try:
            await run_sync(
                self._client.abort_multipart_upload,
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
            )
        except (ClientError, BotoCoreError) as e:
            raise AbortFailedError(
                f"Failed to abort multipart upload for {key}: {e}",
                upload_id=upload_id,
                **_error_kwargs(e),
            ) from e

        logger.info("abort_multipart_upload_success", bucket=bucket, key=key, upload_id=upload_id)

    async def simple_upload(self, bucket: str, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        try:
            await run_sync(
                self._client.put_object,
                Bucket=bucket,
                Key=key,
                Body=data,
                **self._object_args(content_type),
            )
        except ClientError as e:
            raise translate_client_error(e, f"upload {key}") from e
        except BotoCoreError as e:
            raise NetworkError(f"Failed to upload {key}: {e}") from e
