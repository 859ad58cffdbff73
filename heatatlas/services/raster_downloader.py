"""
HeatAtlas - Raster Downloader
==============================
Streams GeoTIFFs from Earth Engine download URLs into a report directory.

Each file: up to ``DOWNLOAD_MAX_ATTEMPTS`` attempts with a linearly growing
pause, a per-attempt timeout, a byte ceiling and an empty-file check. A
partial file never survives a failed attempt.
"""

import asyncio
from pathlib import Path
from typing import Callable, Optional

import aiohttp
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from heatatlas.config import settings
from heatatlas.utils.exceptions import DownloadError
from heatatlas.utils.logger import get_logger

logger = get_logger(__name__)

USER_AGENT = "HeatAtlas/0.1 (+raster export)"
CHUNK_SIZE = 1024 * 1024


class TransientDownloadError(DownloadError):
    """Worth another attempt: HTTP error status or an empty body."""


RETRYABLE = (aiohttp.ClientError, asyncio.TimeoutError, TransientDownloadError)


class RasterDownloader:
    """Retrying, size-capped file fetcher"""

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        backoff_seconds: Optional[float] = None,
        max_bytes: Optional[int] = None,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ):
        self.max_attempts = max_attempts or settings.DOWNLOAD_MAX_ATTEMPTS
        self.timeout_seconds = timeout_seconds or settings.DOWNLOAD_TIMEOUT_SECONDS
        self.backoff_seconds = settings.DOWNLOAD_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        self.max_bytes = max_bytes or settings.DOWNLOAD_MAX_BYTES
        self._session_factory = session_factory or self._default_session

    def _default_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            headers={"User-Agent": USER_AGENT},
        )

    @staticmethod
    def _log_retry(retry_state: RetryCallState):
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Download attempt failed, retrying",
            attempt=retry_state.attempt_number,
            error=str(error),
            wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        )

    async def _fetch_once(self, url: str, path: Path) -> Path:
        try:
            async with self._session_factory() as session:
                async with session.get(url) as response:
                    if response.status >= 400:
                        raise TransientDownloadError(f"HTTP {response.status}", file_name=path.name)

                    declared = response.headers.get("Content-Length")
                    if declared and int(declared) > self.max_bytes:
                        raise DownloadError(
                            f"Response of {declared} bytes exceeds the {self.max_bytes} byte limit",
                            file_name=path.name,
                        )

                    written = 0
                    with open(path, "wb") as f:
                        async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                            written += len(chunk)
                            if written > self.max_bytes:
                                raise DownloadError(
                                    f"Response exceeds the {self.max_bytes} byte limit",
                                    file_name=path.name,
                                )
                            f.write(chunk)

            if path.stat().st_size == 0:
                raise TransientDownloadError("Downloaded file is empty", file_name=path.name)
            return path

        except Exception:
            path.unlink(missing_ok=True)
            raise

    async def fetch(self, url: str, path: Path) -> Path:
        """
        Download ``url`` to ``path``.

        Raises:
            DownloadError: size ceiling exceeded (not retried) or all attempts failed
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.backoff_seconds, increment=self.backoff_seconds),
            retry=retry_if_exception_type(RETRYABLE),
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    logger.info("Downloading raster", file=path.name,
                                attempt=attempt.retry_state.attempt_number, max_attempts=self.max_attempts)
                    result = await self._fetch_once(url, path)
                    logger.info("Raster downloaded", file=path.name, size=result.stat().st_size)
                    return result
        except RETRYABLE as e:
            raise DownloadError(
                f"Failed to download {path.name} after {self.max_attempts} attempts: {e}",
                file_name=path.name,
                attempts=self.max_attempts,
            ) from e

    async def download(self, url: str, directory: Path, file_name: str) -> Optional[Path]:
        """Soft variant used by the report assembler: None instead of an exception."""
        try:
            return await self.fetch(url, Path(directory) / file_name)
        except DownloadError as e:
            logger.error("Raster omitted from report", file=file_name, error=e.message)
            return None
        except OSError as e:
            logger.error("Raster omitted from report, file could not be written", file=file_name, error=str(e))
            return None
