from pathlib import Path

import pytest
from pydantic import ValidationError

from cloudfile.models.upload_model import (
    ChunkInfo,
    ChunkStatus,
    ChunkUploadConfig,
    ChunkUploadFile,
    CompletedPart,
    UploadFile,
    UploadProgress,
    UploadSession,
)


class TestChunkUploadConfig:
    """Test suite for ChunkUploadConfig model."""

    def test_defaults(self) -> None:
        """Test the default chunk configuration."""
        config = ChunkUploadConfig()

        assert config.chunk_size == 5 * 1024 * 1024
        assert config.threshold == 10 * 1024 * 1024
        assert config.max_retries == 3
        assert config.retry_delay == 1000
        assert config.max_retry_delay is None
        assert config.max_concurrency == 1

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"chunk_size": 0},
            {"threshold": -1},
            {"max_retries": -1},
            {"retry_delay": -5},
            {"max_concurrency": 0},
        ],
    )
    def test_rejects_invalid_values(self, kwargs: dict) -> None:
        """Test that out-of-range values are rejected."""
        with pytest.raises(ValidationError):
            ChunkUploadConfig(**kwargs)

    def test_is_immutable(self) -> None:
        """Test that the config cannot be changed after creation."""
        config = ChunkUploadConfig()

        with pytest.raises(ValidationError):
            config.chunk_size = 1


class TestChunkInfo:
    """Test suite for ChunkInfo transitions."""

    def test_size_is_inclusive(self) -> None:
        """Test that size counts both range ends."""
        assert ChunkInfo(part_number=1, start=0, end=99).size == 100

    def test_lifecycle(self) -> None:
        """Test pending, uploading, failed and completed transitions."""
        chunk = ChunkInfo(part_number=2, start=100, end=199)
        assert chunk.status == ChunkStatus.PENDING

        chunk.mark_uploading()
        assert chunk.status == ChunkStatus.UPLOADING
        assert chunk.attempts == 1

        error = RuntimeError("boom")
        chunk.mark_failed(error)
        assert chunk.status == ChunkStatus.FAILED
        assert chunk.last_error is error

        chunk.mark_uploading()
        chunk.mark_completed("etag-2")
        assert chunk.is_completed
        assert chunk.etag == "etag-2"
        assert chunk.attempts == 2
        assert chunk.last_error is None


class TestUploadSession:
    """Test suite for UploadSession bookkeeping."""

    def test_ordered_parts(self) -> None:
        """Test that parts come back sorted by part number."""
        session = UploadSession(bucket="b", key="k", upload_id="u")
        session.record_part(3, "c")
        session.record_part(1, "a")
        session.record_part(2, "b")

        assert session.ordered_parts() == [
            CompletedPart(1, "a"),
            CompletedPart(2, "b"),
            CompletedPart(3, "c"),
        ]

    def test_part_slot_written_once(self) -> None:
        """Test that recording the same part twice fails."""
        session = UploadSession(bucket="b", key="k", upload_id="u")
        session.record_part(1, "a")

        with pytest.raises(ValueError, match="already recorded"):
            session.record_part(1, "again")


class TestUploadProgress:
    """Test suite for UploadProgress."""

    def test_is_complete(self) -> None:
        assert UploadProgress(bytes_uploaded=10, total_bytes=10, percentage=100.0).is_complete
        assert not UploadProgress(bytes_uploaded=5, total_bytes=10, percentage=50.0).is_complete


class TestUploadFile:
    """Test suite for UploadFile."""

    def test_create_keeps_name(self, temp_dir: Path) -> None:
        """Test creating an upload file without renaming."""
        path = temp_dir / "report.pdf"
        path.write_bytes(b"%PDF")

        upload_file = UploadFile.create(path, dir="docs/", rename=False)

        assert upload_file.name == "report.pdf"
        assert upload_file.key_path == "docs/report.pdf"
        assert upload_file.size == 4
        assert upload_file.mime_type == "application/pdf"

    def test_create_renames_with_extension(self, temp_dir: Path) -> None:
        """Test that renaming keeps the file extension."""
        path = temp_dir / "archive.tar.gz"
        path.write_bytes(b"data")

        upload_file = UploadFile.create(path)

        assert upload_file.name != "archive.tar.gz"
        assert upload_file.name.endswith(".tar.gz")
        assert upload_file.key_path == upload_file.name

    def test_create_missing_file(self, temp_dir: Path) -> None:
        """Test that a missing path is rejected."""
        with pytest.raises(FileNotFoundError):
            UploadFile.create(temp_dir / "missing.bin")

    def test_unknown_extension_falls_back(self, temp_dir: Path) -> None:
        path = temp_dir / "blob.zzunknown"
        path.write_bytes(b"x")

        assert UploadFile.create(path, rename=False).mime_type == "application/octet-stream"


class TestChunkUploadFile:
    """Test suite for ChunkUploadFile."""

    def test_wraps_upload_file(self, temp_dir: Path) -> None:
        """Test that the handle exposes the wrapped file's attributes."""
        path = temp_dir / "image.png"
        path.write_bytes(b"\x89PNG" + b"\x00" * 96)
        upload_file = UploadFile.create(path, dir="img", rename=False)

        handle = ChunkUploadFile.from_upload_file(upload_file, ChunkUploadConfig(chunk_size=30, threshold=50))

        assert handle.upload_file is upload_file
        assert handle.real_path == path
        assert handle.key_path == "img/image.png"
        assert handle.size == 100
        assert handle.mime_type == "image/png"
        assert handle.upload_id == ""

    def test_content_type_override(self, temp_dir: Path) -> None:
        path = temp_dir / "image.png"
        path.write_bytes(b"x")

        handle = ChunkUploadFile(UploadFile.create(path, rename=False), content_type="image/x-custom")

        assert handle.mime_type == "image/x-custom"

    def test_calculate_chunks_is_idempotent(self, temp_dir: Path) -> None:
        """Test that computing chunks twice gives the same plan."""
        path = temp_dir / "data.bin"
        path.write_bytes(b"x" * 100)
        handle = ChunkUploadFile(UploadFile.create(path), ChunkUploadConfig(chunk_size=30))

        first = [(c.part_number, c.start, c.end) for c in handle.calculate_chunks()]
        second = [(c.part_number, c.start, c.end) for c in handle.calculate_chunks()]

        assert first == second == [(1, 0, 29), (2, 30, 59), (3, 60, 89), (4, 90, 99)]

    @pytest.mark.parametrize(
        ("size", "threshold", "expected"),
        [(100, 100, False), (101, 100, True), (0, 0, False)],
    )
    def test_should_use_chunk_upload(self, temp_dir: Path, size: int, threshold: int, expected: bool) -> None:
        """Test that only files strictly larger than the threshold are chunked."""
        path = temp_dir / "data.bin"
        path.write_bytes(b"x" * size)
        handle = ChunkUploadFile(UploadFile.create(path), ChunkUploadConfig(threshold=threshold))

        assert handle.should_use_chunk_upload() is expected

    def test_uploaded_bytes(self, temp_dir: Path) -> None:
        path = temp_dir / "data.bin"
        path.write_bytes(b"x" * 100)
        handle = ChunkUploadFile(UploadFile.create(path), ChunkUploadConfig(chunk_size=40))
        chunks = handle.calculate_chunks()

        chunks[0].mark_completed("a")
        chunks[2].mark_completed("c")

        assert handle.uploaded_bytes == 40 + 20
