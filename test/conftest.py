import os
import tempfile
from collections.abc import Callable, Generator, Sequence
from pathlib import Path
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog

from cloudfile.core.exceptions import PartUploadError
from cloudfile.core.progress import ProgressReporter
from cloudfile.core.provider_adapter import ProviderAdapter
from cloudfile.models.upload_model import (
    ChunkUploadConfig,
    ChunkUploadFile,
    CompletedPart,
    UploadedObject,
    UploadFile,
)


class InMemoryAdapter(ProviderAdapter):
    """Provider adapter backed by dictionaries, with scripted failures."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.upload_id = "upload-1"
        self.parts: dict[int, bytes] = {}
        self.objects: dict[str, bytes] = {}
        self.part_failures: dict[int, int] = {}
        self.create_error: Optional[Exception] = None
        self.complete_error: Optional[Exception] = None
        self.abort_error: Optional[Exception] = None
        self.simple_error: Optional[Exception] = None
        self.completed_parts: list[CompletedPart] = []

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def create_session(self, bucket: str, key: str, content_type: Optional[str] = None) -> str:
        self.calls.append(("create_session", bucket, key, content_type))
        if self.create_error:
            raise self.create_error
        return self.upload_id

    async def upload_part(self, bucket: str, key: str, upload_id: str, part_number: int, data: bytes) -> str:
        self.calls.append(("upload_part", part_number))
        remaining = self.part_failures.get(part_number, 0)
        if remaining:
            self.part_failures[part_number] = remaining - 1
            raise PartUploadError("connection reset", upload_id=upload_id, part_number=part_number)
        self.parts[part_number] = data
        return f"etag-{part_number}"

    async def complete_session(
        self, bucket: str, key: str, upload_id: str, parts: Sequence[CompletedPart]
    ) -> UploadedObject:
        self.calls.append(("complete_session", [part.part_number for part in parts]))
        self.completed_parts = list(parts)
        if self.complete_error:
            raise self.complete_error
        self.objects[key] = b"".join(self.parts[part.part_number] for part in parts)
        return UploadedObject(bucket=bucket, key=key, size=0, etag="final-etag", chunked=True)

    async def wait_idle(self) -> None:
        self.calls.append(("wait_idle",))

    async def abort_session(self, bucket: str, key: str, upload_id: str) -> None:
        self.calls.append(("abort_session", upload_id))
        if self.abort_error:
            raise self.abort_error

    async def simple_upload(self, bucket: str, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        self.calls.append(("simple_upload", key, content_type))
        if self.simple_error:
            raise self.simple_error
        self.objects[key] = data


class RecordingReporter(ProgressReporter):
    """Progress reporter that keeps every event in order."""

    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []

    def on_chunk_start(self, part_number: int, size: int) -> None:
        self.events.append(("start", part_number, size))

    def on_chunk_complete(self, part_number: int, size: int, etag: str) -> None:
        self.events.append(("complete", part_number, size, etag))

    def on_chunk_error(self, part_number: int, size: int, message: str, attempt: int) -> None:
        self.events.append(("error", part_number, size, attempt))

    def on_progress(self, completed_chunks: int, total_chunks: int, uploaded_bytes: int, total_bytes: int) -> None:
        self.events.append(("progress", completed_chunks, total_chunks, uploaded_bytes, total_bytes))

    def of(self, kind: str) -> list[tuple[Any, ...]]:
        return [event for event in self.events if event[0] == kind]


@pytest.fixture
def temp_dir() -> Generator[Path]:
    with tempfile.TemporaryDirectory() as tmpdirname:
        yield Path(tmpdirname)


@pytest.fixture(autouse=True)
def mock_logger(mocker: Any) -> MagicMock:
    return mocker.patch.object(structlog, "get_logger", return_value=MagicMock())


@pytest.fixture
def adapter() -> InMemoryAdapter:
    return InMemoryAdapter()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def fake_sleep() -> AsyncMock:
    return AsyncMock(return_value=None)


@pytest.fixture
def make_file(temp_dir: Path) -> Callable[..., Path]:
    """Write a file of ``size`` pseudo-random bytes and return its path."""

    def _make(size: int, name: str = "payload.bin") -> Path:
        path = temp_dir / name
        path.write_bytes(os.urandom(size))
        return path

    return _make


@pytest.fixture
def make_upload(make_file: Callable[..., Path], reporter: RecordingReporter) -> Callable[..., ChunkUploadFile]:
    """Build a ChunkUploadFile around a freshly written file."""

    def _make(size: int, name: str = "payload.bin", **config: Any) -> ChunkUploadFile:
        path = make_file(size, name)
        return ChunkUploadFile(
            UploadFile.create(path, dir="uploads", rename=False),
            config=ChunkUploadConfig(**config),
            progress=reporter,
        )

    return _make
