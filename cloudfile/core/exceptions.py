"""
Exception hierarchy for storage and chunked upload operations.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class StorageError(Exception):
    """Base exception for storage operations."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}


class StorageFileNotFoundError(StorageError):
    """File not found in storage."""

    pass


class StoragePermissionError(StorageError):
    """Permission denied for storage operation."""

    pass


class QuotaExceededError(StorageError):
    """Storage quota exceeded."""

    pass


class NetworkError(StorageError):
    """Network-related storage error."""

    pass


class ValidationError(StorageError):
    """File validation error."""

    pass


class StorageConfigError(StorageError):
    """Credential or configuration payload is incomplete."""

    pass


# Chunked upload errors


class ChunkUploadError(StorageError):
    """Base exception for multipart upload failures."""

    def __init__(
        self,
        message: str,
        upload_id: str = "",
        part_number: Optional[int] = None,
        **kwargs: Any,
    ):
        error_code = kwargs.pop("error_code", None) or self.__class__.__name__
        super().__init__(message, error_code=error_code, **kwargs)
        self.part_number = part_number
        self.timestamp = datetime.now(timezone.utc)
        self.details.update({"upload_id": upload_id, "part_number": part_number})

    @property
    def upload_id(self) -> str:
        return self.details.get("upload_id") or ""

    @upload_id.setter
    def upload_id(self, value: str) -> None:
        # details is what to_dict() and the logs report
        self.details["upload_id"] = value

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary format."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "upload_id": self.upload_id,
            "part_number": self.part_number,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.__cause__) if self.__cause__ else None,
        }


class SessionInitError(ChunkUploadError):
    """The backend refused to open a multipart session."""

    pass


class PartUploadError(ChunkUploadError):
    """A single attempt to upload one part failed."""

    def __init__(self, message: str, upload_id: str = "", part_number: Optional[int] = None, attempt: int = 0, **kwargs: Any):
        super().__init__(message, upload_id=upload_id, part_number=part_number, **kwargs)
        self.attempt = attempt
        self.details.update({"attempt": attempt})


class RetryExhaustedError(ChunkUploadError):
    """A part kept failing after every allowed retry."""

    def __init__(self, upload_id: str, part_number: int, max_retries: int, attempts: Optional[int] = None, **kwargs: Any):
        attempts = attempts if attempts is not None else max_retries + 1
        super().__init__(
            f"Part {part_number} of upload {upload_id} failed after {attempts} attempts (max retries {max_retries})",
            upload_id=upload_id,
            part_number=part_number,
            **kwargs,
        )
        self.max_retries = max_retries
        self.attempts = attempts
        self.details.update({"max_retries": max_retries, "attempts": attempts})


class CompleteError(ChunkUploadError):
    """The backend rejected the completion request."""

    pass


class AbortFailedError(ChunkUploadError):
    """Cleaning up a failed session did not succeed."""

    pass
