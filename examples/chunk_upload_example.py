"""
Example showing a chunked upload with an STS credential.

This example shows how to:
1. Build a storage client from a temporary credential payload
2. Tune the chunk configuration for one upload
3. Follow progress through a callback reporter
4. Handle the typed upload errors
"""

import asyncio
import logging
import sys
from pathlib import Path

from cloudfile.core.exceptions import ChunkUploadError, RetryExhaustedError
from cloudfile.core.progress import CallbackProgressReporter
from cloudfile.factories.storage_factory import create_storage_from_credential
from cloudfile.image.image_options import ImageProcessOptions, ResizeOptions
from cloudfile.models.upload_model import ChunkUploadConfig, ChunkUploadFile, UploadFile, UploadProgress

logger = logging.getLogger(__name__)

# Shape returned by an Aliyun STS exchange
CREDENTIAL = {
    "temporary_credential": {
        "region": "oss-cn-hangzhou",
        "bucket": "example-bucket",
        "dir": "uploads/2024/",
        "access_key_id": "STS.example",
        "access_key_secret": "example-secret",
        "sts_token": "example-token",
    }
}


def print_progress(progress: UploadProgress) -> None:
    print(f"{progress.percentage:6.2f}% of {progress.total_bytes} bytes")


async def upload(path: Path) -> None:
    storage = create_storage_from_credential(CREDENTIAL, "aliyun_oss")

    upload_file = ChunkUploadFile.from_upload_file(
        UploadFile.create(path, dir="images"),
        config=ChunkUploadConfig(chunk_size=5 * 1024 * 1024, threshold=5 * 1024 * 1024, max_concurrency=4),
        progress=CallbackProgressReporter(print_progress),
    )

    async with storage:
        try:
            result = await storage.upload_chunked(upload_file)
        except RetryExhaustedError as e:
            logger.error(f"Part {e.part_number} failed {e.attempts} times, session {e.upload_id} was aborted")
            raise
        except ChunkUploadError as e:
            logger.error(f"Upload failed: {e.to_dict()}")
            raise

        print(f"Stored {result.key} ({result.size} bytes, {result.part_count} parts)")

        if storage.file_utils.is_image(path):
            options = ImageProcessOptions(resize=ResizeOptions(mode="lfit", width=300), format="webp")
            print(await storage.build_image_url(upload_file.key_path, options))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(upload(Path(sys.argv[1])))
