#!/usr/bin/env python3
"""
Command line entry point for cloudfile.

Storage settings come from the environment (see ``utils/env_config.py``) or
from an STS credential JSON file passed with ``--credential``.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import structlog

from cloudfile.core.exceptions import ChunkUploadError, StorageError
from cloudfile.factories.storage_factory import create_storage, create_storage_from_credential
from cloudfile.models.upload_model import UploadProgress
from cloudfile.storage.cloud_storage import FileInfo, StorageProvider
from cloudfile.storage.s3_storage import S3Storage
from cloudfile.utils.env_config import AppSettings, get_settings
from cloudfile.utils.logging_config import setup_logging


logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cloudfile", description="Object storage client with chunked uploads")
    parser.add_argument("--credential", type=Path, help="JSON file holding an STS credential payload")
    parser.add_argument(
        "--provider",
        choices=[provider.value for provider in StorageProvider],
        help="Storage provider of the credential (defaults to STORAGE_PROVIDER)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    upload = subparsers.add_parser("upload", help="Upload a local file")
    upload.add_argument("path", type=Path)
    upload.add_argument("key", nargs="?", help="Object key (defaults to the file name)")
    upload.add_argument("--content-type")
    upload.add_argument("--quiet", action="store_true", help="Do not print progress")

    download = subparsers.add_parser("download", help="Download an object to a local file")
    download.add_argument("key")
    download.add_argument("path", type=Path)

    list_parser = subparsers.add_parser("list", help="List objects")
    list_parser.add_argument("prefix", nargs="?", default="")
    list_parser.add_argument("--limit", type=int)
    list_parser.add_argument("--delimiter")

    delete = subparsers.add_parser("delete", help="Delete objects")
    delete.add_argument("keys", nargs="+")

    copy = subparsers.add_parser("copy", help="Copy an object")
    copy.add_argument("source")
    copy.add_argument("destination")
    copy.add_argument("--content-type")
    copy.add_argument("--download-name")

    head = subparsers.add_parser("head", help="Show object metadata")
    head.add_argument("key")

    return parser


def _file_info_dict(info: FileInfo) -> dict:
    return {
        "key": info.key,
        "size": info.size,
        "content_type": info.content_type,
        "etag": info.etag,
        "last_modified": info.last_modified.isoformat() if info.last_modified else None,
        "metadata": info.metadata,
        "public_url": info.public_url,
    }


def _print_progress(progress: UploadProgress) -> None:
    end = "\n" if progress.is_complete else ""
    print(f"\r{progress.percentage:6.2f}% ({progress.bytes_uploaded}/{progress.total_bytes} bytes)", end=end, file=sys.stderr)


def load_storage(args: argparse.Namespace, settings: AppSettings) -> Optional[S3Storage]:
    if args.credential:
        credential = json.loads(args.credential.read_text(encoding="utf-8"))
        return create_storage_from_credential(credential, args.provider or settings.storage_provider, settings)
    return create_storage(settings)


async def run_command(args: argparse.Namespace, storage: S3Storage) -> int:
    async with storage:
        if args.command == "upload":
            key = args.key or args.path.name
            callback = None if args.quiet else _print_progress
            info = await storage.upload_file(args.path, key, content_type=args.content_type, progress_callback=callback)
            print(json.dumps(_file_info_dict(info), indent=2))

        elif args.command == "download":
            await storage.download_file(args.key, args.path, progress_callback=_print_progress)

        elif args.command == "list":
            for info in await storage.list_files(args.prefix, limit=args.limit, delimiter=args.delimiter):
                print(f"{info.size:>12}  {info.key}")

        elif args.command == "delete":
            results = await storage.delete_files(args.keys)
            print(json.dumps(results, indent=2))
            if not all(results.values()):
                return 1

        elif args.command == "copy":
            info = await storage.copy_file(
                args.source,
                args.destination,
                content_type=args.content_type,
                download_name=args.download_name,
            )
            print(json.dumps(_file_info_dict(info), indent=2))

        elif args.command == "head":
            info = await storage.get_file_info(args.key)
            print(json.dumps(_file_info_dict(info), indent=2))

    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the command line client."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(settings)

    try:
        storage = load_storage(args, settings)
        if storage is None:
            print("❌ Storage is not configured. Set STORAGE_* variables or pass --credential.", file=sys.stderr)
            return 2
        return asyncio.run(run_command(args, storage))

    except KeyboardInterrupt:
        logger.info("command_interrupted", command=args.command)
        return 130
    except ChunkUploadError as e:
        logger.error("command_failed", command=args.command, **e.to_dict())
        return 1
    except StorageError as e:
        logger.error("command_failed", command=args.command, error=e.message, error_code=e.error_code)
        return 1
    except (OSError, ValueError) as e:
        logger.error("command_failed", command=args.command, error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
