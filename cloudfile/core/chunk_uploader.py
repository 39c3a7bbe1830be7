"""
State machine that drives one file through a chunked upload.

The orchestrator decides between a single-shot upload and a multipart
session, runs the per-part retry loop with exponential backoff, commits the
session and, on any unrecoverable failure, aborts it on the backend before the
original error reaches the caller.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import replace
from enum import Enum
from typing import Any, Optional

import aiofiles
import structlog

from cloudfile.core.exceptions import (
    ChunkUploadError,
    CompleteError,
    PartUploadError,
    RetryExhaustedError,
    SessionInitError,
)
from cloudfile.core.progress import NullProgressReporter, ProgressReporter
from cloudfile.core.provider_adapter import ProviderAdapter
from cloudfile.core.retry_policy import RetryPolicy
from cloudfile.models.upload_model import (
    ChunkInfo,
    ChunkUploadFile,
    UploadedObject,
    UploadSession,
)


Sleeper = Callable[[float], Awaitable[Any]]


class UploadState(str, Enum):
    """States of a single orchestrated upload."""
    INIT = "init"
    PLANNING = "planning"
    SINGLE_SHOT = "single_shot"
    SESSION_CREATING = "session_creating"
    PART_UPLOADING = "part_uploading"
    COMPLETING = "completing"
    COMPLETED = "completed"
    ABORTING = "aborting"
    ABORTED = "aborted"
    ABORT_FAILED = "abort_failed"
    FAILED = "failed"


class ChunkUploadOrchestrator:
    """
    Upload one :class:`ChunkUploadFile` through a :class:`ProviderAdapter`.

    An instance runs exactly once. ``sleep`` performs the backoff wait and can
    be replaced in tests; ``logger`` receives lifecycle events and the
    abort-failure warning.
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        upload_file: ChunkUploadFile,
        bucket: str,
        *,
        key: Optional[str] = None,
        sleep: Sleeper = asyncio.sleep,
        logger: Optional[Any] = None,
    ):
        self.adapter = adapter
        self.file = upload_file
        self.bucket = bucket
        self.key = key or upload_file.key_path
        self.policy = RetryPolicy.from_config(upload_file.config)
        self.progress: ProgressReporter = upload_file.progress or NullProgressReporter()
        self.logger = logger or structlog.get_logger(__name__)
        self.state = UploadState.INIT
        self.history: list[UploadState] = [UploadState.INIT]
        self.session: Optional[UploadSession] = None
        self._sleep = sleep
        self._chunks: list[ChunkInfo] = []
        self._uploaded_bytes = 0

    async def run(self) -> UploadedObject:
        """Upload the file and return a reference to the stored object."""
        if self.state != UploadState.INIT:
            raise RuntimeError("ChunkUploadOrchestrator instances run only once")

        self._transition(UploadState.PLANNING)
        self._chunks = self.file.calculate_chunks()

        if not self.file.should_use_chunk_upload():
            return await self._single_shot()
        return await self._multipart()

    # Single-shot path

    async def _single_shot(self) -> UploadedObject:
        self._transition(UploadState.SINGLE_SHOT)
        size = self.file.size
        try:
            async with aiofiles.open(self.file.real_path, "rb") as f:
                data = await f.read()
            await self.adapter.simple_upload(self.bucket, self.key, data, self.file.mime_type)
        except Exception as e:
            self._transition(UploadState.FAILED)
            self.logger.warning("simple_upload_fail", key=self.key, bucket=self.bucket, error=str(e))
            raise

        self.file.key = self.key
        self._transition(UploadState.COMPLETED)
        self.progress.on_progress(len(self._chunks), len(self._chunks), size, size)
        self.logger.info("simple_upload_success", key=self.key, bucket=self.bucket, file_size=size)
        return UploadedObject(bucket=self.bucket, key=self.key, size=size)

    # Multipart path

    async def _multipart(self) -> UploadedObject:
        self._transition(UploadState.SESSION_CREATING)
        self.logger.info(
            "chunk_upload_start",
            key=self.key,
            file_size=self.file.size,
            chunk_size=self.file.config.chunk_size,
        )

        upload_id = await self._create_session()
        self.session = UploadSession(bucket=self.bucket, key=self.key, upload_id=upload_id)
        self.file.upload_id = upload_id
        self.file.key = self.key
        self.logger.info(
            "chunk_upload_init_success",
            upload_id=upload_id,
            key=self.key,
            chunk_count=len(self._chunks),
            total_size=self.file.size,
        )

        try:
            self._transition(UploadState.PART_UPLOADING)
            await self._upload_parts()
            self._transition(UploadState.COMPLETING)
            result = await self._complete()
        except ChunkUploadError as e:
            await self._abort(e)
            raise
        except asyncio.CancelledError:
            await self._abort(None)
            raise
        except Exception as e:
            error = ChunkUploadError(f"Chunk upload failed: {e}", upload_id=upload_id)
            await self._abort(error)
            raise error from e

        self._transition(UploadState.COMPLETED)
        self.logger.info(
            "chunk_upload_success",
            upload_id=upload_id,
            key=self.key,
            chunk_count=len(self._chunks),
            total_size=self.file.size,
        )
        return result

    async def _create_session(self) -> str:
        try:
            upload_id = await self.adapter.create_session(self.bucket, self.key, self.file.mime_type)
        except SessionInitError as e:
            self._fail_before_session(e)
            raise
        except Exception as e:
            error = SessionInitError(f"Failed to create multipart upload: {e}")
            self._fail_before_session(error)
            raise error from e

        if not upload_id:
            error = SessionInitError("Backend returned an empty upload id")
            self._fail_before_session(error)
            raise error
        return upload_id

    def _fail_before_session(self, error: Exception) -> None:
        self._transition(UploadState.FAILED)
        self.logger.error("chunk_upload_init_failed", key=self.key, bucket=self.bucket, error=str(error))

    async def _upload_parts(self) -> None:
        concurrency = self.file.config.max_concurrency
        if concurrency <= 1 or len(self._chunks) <= 1:
            for chunk in self._chunks:
                await self._upload_chunk(chunk)
            return

        semaphore = asyncio.Semaphore(concurrency)

        async def worker(chunk: ChunkInfo) -> None:
            async with semaphore:
                await self._upload_chunk(chunk)

        tasks = [asyncio.create_task(worker(chunk)) for chunk in self._chunks]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        # Surface the failure of the lowest-numbered part
        for task in tasks:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()

    async def _upload_chunk(self, chunk: ChunkInfo) -> None:
        upload_id = self.session.upload_id
        attempt = 0
        while True:
            attempt += 1
            chunk.mark_uploading()
            self.progress.on_chunk_start(chunk.part_number, chunk.size)
            try:
                data = await self._read_chunk(chunk)
                etag = await self.adapter.upload_part(self.bucket, self.key, upload_id, chunk.part_number, data)
            except Exception as e:
                chunk.mark_failed(e)
                self.progress.on_chunk_error(chunk.part_number, chunk.size, str(e), attempt)
                if not self.policy.should_retry(attempt):
                    raise RetryExhaustedError(
                        upload_id, chunk.part_number, self.policy.max_retries, attempts=attempt
                    ) from e

                delay = self.policy.delay_seconds(attempt)
                self.logger.warning(
                    "chunk_upload_retry",
                    upload_id=upload_id,
                    part_number=chunk.part_number,
                    attempt=attempt,
                    delay_seconds=delay,
                    error=str(e),
                )
                await self._sleep(delay)
                continue

            chunk.mark_completed(etag)
            self.session.record_part(chunk.part_number, etag)
            self._uploaded_bytes += chunk.size
            self.progress.on_chunk_complete(chunk.part_number, chunk.size, etag)
            self.progress.on_progress(
                len(self.session.completed_parts),
                len(self._chunks),
                self._uploaded_bytes,
                self.file.size,
            )
            return

    async def _read_chunk(self, chunk: ChunkInfo) -> bytes:
        async with aiofiles.open(self.file.real_path, "rb") as f:
            await f.seek(chunk.start)
            data = await f.read(chunk.size)

        if len(data) != chunk.size:
            raise PartUploadError(
                f"Short read for part {chunk.part_number}: expected {chunk.size} bytes, got {len(data)}",
                upload_id=self.session.upload_id,
                part_number=chunk.part_number,
            )
        return data

    async def _complete(self) -> UploadedObject:
        upload_id = self.session.upload_id
        parts = self.session.ordered_parts()
        try:
            result = await self.adapter.complete_session(self.bucket, self.key, upload_id, parts)
        except CompleteError as e:
            if not e.upload_id:
                e.upload_id = upload_id
            raise
        except Exception as e:
            raise CompleteError(f"Failed to complete multipart upload: {e}", upload_id=upload_id) from e

        # Adapters only know the backend's answer; size and part count come from the plan
        return replace(
            result,
            size=self.file.size,
            upload_id=upload_id,
            chunked=True,
            part_count=len(parts),
        )

    async def _abort(self, error: Optional[BaseException]) -> None:
        """Tear the session down; a failing abort is logged and never replaces ``error``."""
        upload_id = self.session.upload_id
        self._transition(UploadState.ABORTING)
        try:
            await self.adapter.wait_idle()
            await self.adapter.abort_session(self.bucket, self.key, upload_id)
        except Exception as abort_error:
            self._transition(UploadState.ABORT_FAILED)
            self.logger.warning(
                "abort_multipart_upload_failed",
                upload_id=upload_id,
                key=self.key,
                bucket=self.bucket,
                error=str(abort_error),
            )
        else:
            self._transition(UploadState.ABORTED)

        self._transition(UploadState.FAILED)
        self.logger.error(
            "chunk_upload_failed",
            upload_id=upload_id,
            key=self.key,
            bucket=self.bucket,
            error=str(error) if error else "cancelled",
        )

    def _transition(self, state: UploadState) -> None:
        self.logger.debug("chunk_upload_state", key=self.key, from_state=self.state.value, to_state=state.value)
        self.state = state
        self.history.append(state)
