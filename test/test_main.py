import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from cloudfile import main as cli
from cloudfile.core.exceptions import RetryExhaustedError, StorageFileNotFoundError
from cloudfile.storage.cloud_storage import FileInfo


def file_info(key: str = "a.txt") -> FileInfo:
    return FileInfo(
        key=key,
        size=5,
        content_type="text/plain",
        last_modified=datetime(2024, 5, 1, tzinfo=timezone.utc),
        etag="etag",
        metadata={},
        public_url=f"https://bucket.example.com/{key}",
    )


@pytest.fixture
def storage() -> AsyncMock:
    mock = AsyncMock()
    mock.__aenter__.return_value = mock
    mock.__aexit__.return_value = False
    mock.upload_file.return_value = file_info()
    mock.get_file_info.return_value = file_info()
    mock.copy_file.return_value = file_info("b.txt")
    mock.list_files.return_value = [file_info("a.txt"), file_info("b.txt")]
    mock.delete_files.return_value = {"a.txt": True}
    return mock


@pytest.fixture
def run_cli(mocker: Any, storage: AsyncMock):
    mocker.patch.object(cli, "setup_logging")
    mocker.patch.object(cli, "load_storage", return_value=storage)

    def _run(*argv: str) -> int:
        return cli.main(list(argv))

    return _run


class TestParser:
    """Test suite for the argument parser."""

    def test_upload_arguments(self) -> None:
        args = cli.build_parser().parse_args(
            ["--provider", "aliyun_oss", "upload", "file.bin", "dir/file.bin", "--content-type", "video/mp4"]
        )

        assert args.command == "upload"
        assert args.provider == "aliyun_oss"
        assert args.path == Path("file.bin")
        assert args.key == "dir/file.bin"
        assert args.content_type == "video/mp4"

    def test_unknown_provider(self) -> None:
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--provider", "gcs", "head", "a.txt"])


class TestMain:
    """Test suite for the command line entry point."""

    def test_upload(self, run_cli, storage: AsyncMock, capsys: pytest.CaptureFixture) -> None:
        """Test that upload defaults the key to the file name."""
        assert run_cli("upload", "/tmp/a.txt", "--quiet") == 0

        storage.upload_file.assert_awaited_once_with(
            Path("/tmp/a.txt"), "a.txt", content_type=None, progress_callback=None
        )
        assert json.loads(capsys.readouterr().out)["key"] == "a.txt"

    def test_list(self, run_cli, storage: AsyncMock, capsys: pytest.CaptureFixture) -> None:
        assert run_cli("list", "docs/", "--limit", "2") == 0

        storage.list_files.assert_awaited_once_with("docs/", limit=2, delimiter=None)
        assert capsys.readouterr().out.splitlines() == ["           5  a.txt", "           5  b.txt"]

    def test_delete_partial_failure(self, run_cli, storage: AsyncMock) -> None:
        storage.delete_files.return_value = {"a.txt": True, "b.txt": False}

        assert run_cli("delete", "a.txt", "b.txt") == 1

    def test_copy(self, run_cli, storage: AsyncMock) -> None:
        assert run_cli("copy", "a.txt", "b.txt", "--download-name", "report.txt") == 0

        storage.copy_file.assert_awaited_once_with("a.txt", "b.txt", content_type=None, download_name="report.txt")

    def test_storage_error_exit_code(self, run_cli, storage: AsyncMock) -> None:
        storage.get_file_info.side_effect = StorageFileNotFoundError("missing", error_code="NoSuchKey")

        assert run_cli("head", "missing.txt") == 1

    def test_upload_error_exit_code(self, run_cli, storage: AsyncMock) -> None:
        storage.upload_file.side_effect = RetryExhaustedError("mpu-1", 3, 2)

        assert run_cli("upload", "/tmp/a.txt") == 1

    def test_storage_not_configured(self, mocker: Any, capsys: pytest.CaptureFixture) -> None:
        """Test the exit code when no storage settings are available."""
        mocker.patch.object(cli, "setup_logging")
        mocker.patch.object(cli, "load_storage", return_value=None)

        assert cli.main(["head", "a.txt"]) == 2
        assert "not configured" in capsys.readouterr().err

    def test_load_storage_from_credential_file(self, mocker: Any, temp_dir: Path) -> None:
        credential = temp_dir / "credential.json"
        credential.write_text(json.dumps({"bucket": "b"}), encoding="utf-8")
        factory = mocker.patch.object(cli, "create_storage_from_credential")
        settings = MagicMock(storage_provider="volcengine_tos")
        args = cli.build_parser().parse_args(["--credential", str(credential), "head", "a.txt"])

        result = cli.load_storage(args, settings)

        assert result is factory.return_value
        factory.assert_called_once_with({"bucket": "b"}, "volcengine_tos", settings)
