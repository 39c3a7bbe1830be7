"""
Data models for chunked object uploads.

This module defines the values that flow through the upload pipeline: the
immutable chunk configuration, per-part bookkeeping, the transient multipart
session and the caller-facing file handles.
"""

from __future__ import annotations

import mimetypes
import os
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from cloudfile.core.progress import ProgressReporter


DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024  # 5MB, the smallest non-final part S3 accepts
DEFAULT_THRESHOLD = 10 * 1024 * 1024  # 10MB
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class ChunkStatus(str, Enum):
    """Lifecycle of a single part."""
    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


class ChunkUploadConfig(BaseModel):
    """Tuning knobs for chunked uploads."""

    model_config = ConfigDict(frozen=True)

    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0)
    threshold: int = Field(default=DEFAULT_THRESHOLD, ge=0)
    max_retries: int = Field(default=3, ge=0)
    retry_delay: int = Field(default=1000, ge=0)  # milliseconds
    max_retry_delay: Optional[int] = Field(default=None, ge=0)  # milliseconds
    max_concurrency: int = Field(default=1, ge=1)


@dataclass
class ChunkInfo:
    """One contiguous byte range of the source file."""

    part_number: int
    start: int
    end: int
    status: ChunkStatus = ChunkStatus.PENDING
    etag: Optional[str] = None
    last_error: Optional[BaseException] = None
    attempts: int = 0

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def mark_uploading(self) -> None:
        self.status = ChunkStatus.UPLOADING
        self.attempts += 1

    def mark_completed(self, etag: str) -> None:
        self.status = ChunkStatus.COMPLETED
        self.etag = etag
        self.last_error = None

    def mark_failed(self, error: BaseException) -> None:
        self.status = ChunkStatus.FAILED
        self.last_error = error

    @property
    def is_completed(self) -> bool:
        return self.status == ChunkStatus.COMPLETED


@dataclass(frozen=True)
class CompletedPart:
    """A committed part reference sent with the completion request."""

    part_number: int
    etag: str


@dataclass
class UploadSession:
    """
    A live multipart session on the backend.

    The session exists only for the duration of one orchestrated upload and is
    never persisted. Each part number slot may be written once.
    """

    bucket: str
    key: str
    upload_id: str
    completed_parts: dict[int, str] = field(default_factory=dict)

    def record_part(self, part_number: int, etag: str) -> None:
        """Store the etag for a finished part."""
        if part_number in self.completed_parts:
            raise ValueError(f"Part {part_number} already recorded for upload {self.upload_id}")
        self.completed_parts[part_number] = etag

    def ordered_parts(self) -> list[CompletedPart]:
        """Return completed parts sorted by part number."""
        return [
            CompletedPart(part_number=number, etag=self.completed_parts[number])
            for number in sorted(self.completed_parts)
        ]


@dataclass(frozen=True)
class UploadedObject:
    """Reference to an object that finished uploading."""

    bucket: str
    key: str
    size: int
    etag: str = ""
    upload_id: str = ""
    chunked: bool = False
    part_count: int = 0


@dataclass
class UploadProgress:
    """Progress information for file transfers."""

    bytes_uploaded: int
    total_bytes: int
    percentage: float

    @property
    def is_complete(self) -> bool:
        """Check if transfer is complete."""
        return self.bytes_uploaded >= self.total_bytes


@dataclass(frozen=True)
class UploadFile:
    """
    A local file scheduled for upload.

    Args:
        real_path: Path of the file on the local file system
        dir: Key prefix the object is stored under
        name: Object name; defaults to the file's base name
        rename: Replace the name with a random token, keeping the extension
    """

    real_path: Path
    dir: str = ""
    name: str = ""
    rename: bool = True

    @classmethod
    def create(cls, real_path: str | Path, dir: str = "", name: str = "", rename: bool = True) -> "UploadFile":
        path = Path(real_path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")

        resolved_name = name or path.name
        if rename:
            suffix = "".join(Path(resolved_name).suffixes)
            resolved_name = f"{uuid.uuid4().hex}{suffix}"

        return cls(real_path=path, dir=dir, name=resolved_name, rename=rename)

    @property
    def key_path(self) -> str:
        if not self.dir:
            return self.name
        return f"{self.dir.rstrip('/')}/{self.name}"

    @property
    def size(self) -> int:
        return os.path.getsize(self.real_path)

    @property
    def mime_type(self) -> str:
        content_type, _ = mimetypes.guess_type(self.real_path.name)
        return content_type or DEFAULT_CONTENT_TYPE


class ChunkUploadFile:
    """
    Caller-facing handle for a chunked upload.

    Wraps an immutable :class:`UploadFile` together with its chunk
    configuration, the computed chunk list and the results of the session.
    """

    def __init__(
        self,
        upload_file: UploadFile,
        config: Optional[ChunkUploadConfig] = None,
        progress: Optional["ProgressReporter"] = None,
        content_type: Optional[str] = None,
    ):
        self.upload_file = upload_file
        self.config = config or ChunkUploadConfig()
        self.progress = progress
        self.content_type = content_type
        self.chunks: list[ChunkInfo] = []
        self.upload_id = ""
        self.key = ""
        self._size = upload_file.size

    @classmethod
    def from_upload_file(
        cls,
        upload_file: UploadFile,
        config: Optional[ChunkUploadConfig] = None,
        progress: Optional["ProgressReporter"] = None,
    ) -> "ChunkUploadFile":
        return cls(upload_file, config=config, progress=progress)

    @property
    def real_path(self) -> Path:
        return self.upload_file.real_path

    @property
    def key_path(self) -> str:
        return self.upload_file.key_path

    @property
    def size(self) -> int:
        return self._size

    @property
    def mime_type(self) -> str:
        return self.content_type or self.upload_file.mime_type

    def calculate_chunks(self) -> list[ChunkInfo]:
        """Compute the chunk list; calling it again yields an identical list."""
        from cloudfile.core.chunk_planner import plan_chunks

        self.chunks = plan_chunks(self.size, self.config.chunk_size)
        return self.chunks

    def should_use_chunk_upload(self) -> bool:
        """Check whether the file is large enough for a multipart session."""
        return self.size > self.config.threshold

    @property
    def uploaded_bytes(self) -> int:
        return sum(chunk.size for chunk in self.chunks if chunk.is_completed)
