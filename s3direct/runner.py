"""Whole-file upload runner.

Coordinates uploading one file as a multipart upload, managing:
- Reading the file in parts off the event loop thread
- Hashing the stream while parts upload concurrently
- Completing the upload, or aborting it on any failure
- Reporter callbacks
"""

import asyncio
import logging
import os
import time
from typing import AsyncIterator, Optional

from s3direct.cancellation import CancellationToken, ensure_token
from s3direct.errors import Canceled, InvalidInput, UploadError
from s3direct.hasher import IncrementalHasher
from s3direct.models import MAX_PART_NUMBER, ResultStatus, UploadResult
from s3direct.multipart import MultipartUpload, Uploader
from s3direct.reporters.base import Reporter

logger = logging.getLogger(__name__)

# S3 minimum size for every part but the last
MIN_PART_SIZE = 5 * 1024 * 1024

# Default part size: 8 MiB
DEFAULT_PART_SIZE = 8 * 1024 * 1024

DEFAULT_CONCURRENCY = 4


def count_parts(size: int, part_size: int) -> int:
    """Number of parts needed for ``size`` bytes (at least one)."""
    return max(1, -(-size // part_size))


async def read_parts(
    file_path: str,
    part_size: int,
) -> AsyncIterator[tuple[int, bytes]]:
    """Iterate over file parts without blocking the event loop.

    Yields:
        Tuples of (part_number, chunk_data). An empty file yields a
        single empty part.
    """
    part_number = 1
    with open(file_path, "rb") as f:
        while True:
            chunk = await asyncio.to_thread(f.read, part_size)
            if not chunk and part_number > 1:
                break
            yield part_number, chunk
            if len(chunk) < part_size:
                break
            part_number += 1


class UploadRunner:
    """Uploads files through an ``Uploader``.

    Each part is fed to an ``IncrementalHasher`` in file order, while the
    network calls for up to ``concurrency`` parts are in flight.
    """

    def __init__(
        self,
        uploader: Uploader,
        reporter: Optional[Reporter] = None,
        part_size: int = DEFAULT_PART_SIZE,
        concurrency: int = DEFAULT_CONCURRENCY,
    ):
        """Initialize the runner.

        Args:
            uploader: Uploader used for every request
            reporter: Optional reporter for progress callbacks
            part_size: Bytes per part (last part may be smaller)
            concurrency: Maximum parts uploading at once
        """
        if part_size <= 0:
            raise InvalidInput(f"Part size must be positive, got {part_size}")
        if concurrency <= 0:
            raise InvalidInput(f"Concurrency must be positive, got {concurrency}")
        if part_size < MIN_PART_SIZE:
            logger.warning(
                "Part size %d is below the S3 minimum of %d bytes; "
                "most stores reject such uploads with more than one part",
                part_size,
                MIN_PART_SIZE,
            )
        self.uploader = uploader
        self.reporter = reporter
        self.part_size = part_size
        self.concurrency = concurrency

    async def upload_file(
        self,
        file_path: str,
        bucket: str,
        key: str,
        token: Optional[CancellationToken] = None,
    ) -> UploadResult:
        """Upload a file and return the result.

        Failures are reported in the result rather than raised, except
        ``InvalidInput`` for a file that needs too many parts.
        """
        token = ensure_token(token)
        size = os.path.getsize(file_path)
        part_count = count_parts(size, self.part_size)
        if part_count > MAX_PART_NUMBER:
            raise InvalidInput(
                f"{size} bytes at part size {self.part_size} needs {part_count} "
                f"parts; the limit is {MAX_PART_NUMBER}"
            )

        start_time = time.time()
        hasher = IncrementalHasher()
        upload = MultipartUpload(self.uploader, bucket, key)
        result = UploadResult(bucket=bucket, key=key, status=ResultStatus.FAILED, size=size)

        if self.reporter:
            self.reporter.on_upload_start(bucket, key, size, part_count)

        try:
            result.location = await self._run(upload, file_path, hasher, token)
            result.status = ResultStatus.COMPLETED
        except Canceled as e:
            result.status = ResultStatus.CANCELED
            result.error_message = str(e)
        except (UploadError, OSError) as e:
            result.error_message = str(e)
        finally:
            result.upload_id = upload.upload_id
            result.parts = upload.get_uploaded_parts()
            result.duration_seconds = time.time() - start_time

        if result.status == ResultStatus.COMPLETED:
            result.sha256 = hasher.finalize_sha256()
            result.md5 = hasher.finalize_md5()

        if self.reporter:
            self.reporter.on_upload_complete(result)

        return result

    async def _run(
        self,
        upload: MultipartUpload,
        file_path: str,
        hasher: IncrementalHasher,
        token: CancellationToken,
    ) -> str:
        await upload.initiate(token)
        async with upload:
            semaphore = asyncio.Semaphore(self.concurrency)
            tasks: list[asyncio.Task] = []
            try:
                async for part_number, chunk in read_parts(file_path, self.part_size):
                    token.raise_if_canceled()
                    hasher.update(chunk)
                    await semaphore.acquire()
                    failed = [
                        t for t in tasks
                        if t.done() and not t.cancelled() and t.exception()
                    ]
                    if failed:
                        semaphore.release()
                        break
                    tasks.append(asyncio.ensure_future(
                        self._upload_part(upload, semaphore, part_number, chunk, token)
                    ))
                await asyncio.gather(*tasks)
            except BaseException:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise

            return await upload.complete(token=token)

    async def _upload_part(
        self,
        upload: MultipartUpload,
        semaphore: asyncio.Semaphore,
        part_number: int,
        chunk: bytes,
        token: CancellationToken,
    ) -> None:
        try:
            etag = await upload.upload_part(part_number, chunk, token)
        finally:
            semaphore.release()

        if self.reporter:
            self.reporter.on_part_complete(part_number, len(chunk), etag)
