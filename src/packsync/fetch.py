"""
Fetch tasks: download one manifest file, verify it, and write it to disk.

Transport-level failures (the request could not be made or the connection
dropped) are retried with a linear backoff: the delay before retry n is
n * backoff_step. Every other failure, and a digest mismatch, is fatal for
the task and therefore for the whole run.
"""

import asyncio
import contextlib
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiofiles  # type: ignore[import-untyped]
import aiohttp

from packsync.constants import (
    BYTES_PER_MEGABYTE,
    DEFAULT_BACKOFF_STEP,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_FETCH_RETRIES,
    FILE_SIZE_MB_LOGGING_THRESHOLD,
    HTTP_STATUS_ERROR_THRESHOLD,
)
from packsync.digest import async_bytes_digest, digests_match
from packsync.exceptions import FetchError, FileSystemError, IntegrityError
from packsync.log_utils import logger
from packsync.progress import ProgressChannel, Tick

# Failures where no usable response was obtained; these are retried.
TRANSIENT_ERRORS = (aiohttp.ClientConnectionError, asyncio.TimeoutError)


@dataclass(frozen=True)
class FetchConfig:
    """Retry, backoff and concurrency settings shared by the fetch tasks of a run."""

    max_retries: int = DEFAULT_FETCH_RETRIES
    """Retries after the first attempt before a transport failure becomes fatal"""

    backoff_step: float = DEFAULT_BACKOFF_STEP
    """Seconds added to the delay for each failed attempt"""

    max_concurrent: Optional[int] = None
    """Upper bound on simultaneous downloads; None means one per file"""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    """Bytes read per chunk from the response body"""

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.backoff_step < 0:
            raise ValueError(f"backoff_step must be >= 0, got {self.backoff_step}")
        if self.max_concurrent is not None and self.max_concurrent < 1:
            raise ValueError(
                f"max_concurrent must be >= 1 or None, got {self.max_concurrent}"
            )
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {self.chunk_size}")

    def backoff_delay(self, attempt: int) -> float:
        """Delay in seconds before retrying after failed attempt number `attempt`."""
        return attempt * self.backoff_step

    def make_semaphore(self) -> Optional[asyncio.Semaphore]:
        if self.max_concurrent is None:
            return None
        return asyncio.Semaphore(self.max_concurrent)


async def _download(session: aiohttp.ClientSession, source: str, chunk_size: int) -> bytes:
    async with session.get(source) as response:
        if response.status >= HTTP_STATUS_ERROR_THRESHOLD:
            raise FetchError(
                f"HTTP error {response.status}",
                url=source,
                status_code=response.status,
            )
        buffer = bytearray()
        async for chunk in response.content.iter_chunked(chunk_size):
            buffer.extend(chunk)
        return bytes(buffer)


async def download_with_retry(
    session: aiohttp.ClientSession,
    source: str,
    config: FetchConfig,
    semaphore: Optional[asyncio.Semaphore] = None,
) -> bytes:
    """
    Download the body of `source`, retrying transport failures.

    Returns:
        bytes: The full response body.

    Raises:
        FetchError: On an HTTP error status or non-transport client error
            (immediately), or once `config.max_retries` retries are exhausted.
    """
    attempts = 0
    while True:
        try:
            async with semaphore or contextlib.nullcontext():
                return await _download(session, source, config.chunk_size)
        except TRANSIENT_ERRORS as e:
            attempts += 1
            reason = str(e) or type(e).__name__
            if attempts > config.max_retries:
                logger.error(
                    f"Fetch failed permanently for {source} after {attempts} attempts: {reason}"
                )
                raise FetchError(
                    f"Retries exhausted for {source}",
                    url=source,
                    retry_count=attempts - 1,
                    is_retryable=False,
                    details=reason,
                ) from e
            delay = config.backoff_delay(attempts)
            logger.warning(
                f"Fetch attempt {attempts}/{config.max_retries + 1} failed for {source}, "
                f"retrying in {delay:.2f}s: {reason}"
            )
            await asyncio.sleep(delay)
        except aiohttp.ClientResponseError as e:
            raise FetchError(
                f"HTTP error {e.status}: {e.message}",
                url=source,
                status_code=e.status,
                retry_count=attempts,
            ) from e
        except aiohttp.ClientError as e:
            raise FetchError(
                f"Fetch failed for {source}: {e}",
                url=source,
                retry_count=attempts,
            ) from e


def _temp_path_for(target: Path) -> Path:
    return target.with_name(
        f"{target.name}.tmp.{os.getpid()}.{int(time.time() * 1000)}"
    )


def _cleanup_temp_file(temp_path: Path) -> None:
    try:
        temp_path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove temporary file {temp_path}: {e}")


async def fetch_file(
    session: aiohttp.ClientSession,
    target: Path,
    source: str,
    digest: str,
    config: Optional[FetchConfig] = None,
    progress: Optional[ProgressChannel] = None,
    semaphore: Optional[asyncio.Semaphore] = None,
) -> int:
    """
    Materialize one manifest file at `target`.

    The bytes are written to a temporary file next to `target` and renamed
    into place only after their digest has been checked against `digest`, so
    `target` either keeps its previous content or holds verified bytes. A
    `semaphore` is held for the whole open/download/write sequence.

    Returns:
        int: Number of bytes written.

    Raises:
        FileSystemError: If the destination cannot be created or written.
        FetchError: If the download fails (see download_with_retry()).
        IntegrityError: If the downloaded bytes do not match `digest`.
    """
    config = config or FetchConfig()
    target = Path(target)
    temp_path = _temp_path_for(target)
    start_time = time.time()

    async with semaphore or contextlib.nullcontext():
        try:
            async with aiofiles.open(temp_path, "wb") as f:
                data = await download_with_retry(session, source, config)

                actual = await async_bytes_digest(data)
                if not digests_match(actual, digest):
                    logger.error(
                        f"Digest mismatch for {target.name} from {source}: "
                        f"expected {digest}, found {actual}"
                    )
                    raise IntegrityError(
                        url=source, path=str(target), expected=digest, actual=actual
                    )

                await f.write(data)
                await f.flush()
            temp_path.replace(target)
        except OSError as e:
            _cleanup_temp_file(temp_path)
            raise FileSystemError(
                "Cannot write destination file", path=str(target), details=str(e)
            ) from e
        except BaseException:
            _cleanup_temp_file(temp_path)
            raise

    elapsed = time.time() - start_time
    size_mb = len(data) / BYTES_PER_MEGABYTE
    logger.debug(f"Fetched {source} in {elapsed:.2f}s")
    if size_mb >= FILE_SIZE_MB_LOGGING_THRESHOLD:
        logger.info(f"Downloaded: {target.name} ({size_mb:.1f} MB)")
    else:
        logger.info(f"Downloaded: {target.name} ({len(data)} bytes)")

    if progress is not None:
        progress.send(Tick())
    return len(data)


@dataclass(frozen=True)
class FetchTask:
    """One file to fetch: where it goes, where it comes from, what it must hash to."""

    target: Path
    source: str
    digest: str

    async def run(
        self,
        session: aiohttp.ClientSession,
        config: Optional[FetchConfig] = None,
        progress: Optional[ProgressChannel] = None,
        semaphore: Optional[asyncio.Semaphore] = None,
    ) -> int:
        return await fetch_file(
            session,
            self.target,
            self.source,
            self.digest,
            config=config,
            progress=progress,
            semaphore=semaphore,
        )
