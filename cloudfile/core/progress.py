"""
Progress reporting hooks for chunked uploads.

Reporters are invoked synchronously on the event loop thread, in the order
the upload reaches each point. A reporter instance is not expected to be
shared between concurrent uploads.
"""

from collections.abc import Callable
from typing import Any, Optional

import structlog

from cloudfile.models.upload_model import UploadProgress


class ProgressReporter:
    """Sink for per-chunk and aggregate progress events. Every hook is a no-op by default."""

    def on_chunk_start(self, part_number: int, size: int) -> None:
        pass

    def on_chunk_complete(self, part_number: int, size: int, etag: str) -> None:
        pass

    def on_chunk_error(self, part_number: int, size: int, message: str, attempt: int) -> None:
        pass

    def on_progress(self, completed_chunks: int, total_chunks: int, uploaded_bytes: int, total_bytes: int) -> None:
        pass


class NullProgressReporter(ProgressReporter):
    """Reporter that ignores every event."""


class LoggingProgressReporter(ProgressReporter):
    """Write progress events to a structured logger."""

    def __init__(self, logger: Optional[Any] = None, key: str = ""):
        self.logger = logger or structlog.get_logger(__name__)
        self.key = key

    def on_chunk_start(self, part_number: int, size: int) -> None:
        self.logger.debug("chunk_start", key=self.key, part_number=part_number, size=size)

    def on_chunk_complete(self, part_number: int, size: int, etag: str) -> None:
        self.logger.debug("chunk_complete", key=self.key, part_number=part_number, size=size, etag=etag)

    def on_chunk_error(self, part_number: int, size: int, message: str, attempt: int) -> None:
        self.logger.warning(
            "chunk_error", key=self.key, part_number=part_number, size=size, error=message, attempt=attempt
        )

    def on_progress(self, completed_chunks: int, total_chunks: int, uploaded_bytes: int, total_bytes: int) -> None:
        self.logger.info(
            "chunk_upload_progress",
            key=self.key,
            completed_chunks=completed_chunks,
            total_chunks=total_chunks,
            uploaded_bytes=uploaded_bytes,
            total_bytes=total_bytes,
        )


class CallbackProgressReporter(ProgressReporter):
    """Translate aggregate progress into :class:`UploadProgress` values for a plain callable."""

    def __init__(self, callback: Callable[[UploadProgress], Any]):
        self.callback = callback

    def on_progress(self, completed_chunks: int, total_chunks: int, uploaded_bytes: int, total_bytes: int) -> None:
        percentage = (uploaded_bytes / total_bytes) * 100 if total_bytes else 100.0
        self.callback(
            UploadProgress(
                bytes_uploaded=uploaded_bytes,
                total_bytes=total_bytes,
                percentage=percentage,
            )
        )
