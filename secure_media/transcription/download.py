"""Scoped temporary files and streamed CDN downloads."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import httpx

from secure_media.utils.errors import (
    FatalNotFoundError,
    RetryableNetworkError,
    RetryableStagingError,
)

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT_SECONDS = 30.0


@asynccontextmanager
async def scoped_temp_file(directory: Path, suffix: str = "") -> AsyncIterator[Path]:
    """Yield a unique path in ``directory`` and delete it on exit.

    The file itself is not created here; the downloader creates it with
    exclusive mode. Whatever exists at the path when the block exits
    (normally, by exception or by cancellation) is removed.

    Raises:
        RetryableStagingError: The directory cannot be created.
    """
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RetryableStagingError(
            f"Cannot create staging directory {directory}: {exc}"
        ) from exc
    path = directory / f"audio_{uuid.uuid4().hex}{suffix}"
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)
        logger.debug("Removed temp file %s", path)


async def _stream_to_file(
    url: str,
    destination: Path,
    timeout_seconds: float,
    transport: httpx.AsyncBaseTransport | None,
    object_key: str | None,
) -> int:
    written = 0
    async with httpx.AsyncClient(timeout=timeout_seconds, transport=transport) as client:
        async with client.stream("GET", url) as response:
            if response.status_code == 404:
                raise FatalNotFoundError(
                    "Audio file not found in storage", object_key=object_key
                )
            if not response.is_success:
                raise RetryableNetworkError(
                    f"HTTP error! status: {response.status_code}",
                    object_key=object_key,
                    status_code=response.status_code,
                )
            with open(destination, "xb") as fh:
                async for chunk in response.aiter_bytes():
                    fh.write(chunk)
                    written += len(chunk)
    return written


async def download_to_file(
    url: str,
    destination: Path,
    timeout_seconds: float = DOWNLOAD_TIMEOUT_SECONDS,
    transport: httpx.AsyncBaseTransport | None = None,
    object_key: str | None = None,
) -> int:
    """Stream a URL into a new file under a hard wall-clock timeout.

    Args:
        url: Signed URL to fetch.
        destination: Path to create. Must not already exist.
        timeout_seconds: Deadline for the whole download.
        transport: Optional httpx transport, used by tests.
        object_key: Key being downloaded, for error context.

    Returns:
        Number of bytes written.

    Raises:
        FatalNotFoundError: The CDN returned 404.
        RetryableNetworkError: Any other non-2xx status, transport error or
            timeout. The partial file is removed before raising.
        RetryableStagingError: Writing the file failed, e.g. disk full.
    """
    try:
        async with asyncio.timeout(timeout_seconds):
            return await _stream_to_file(
                url, destination, timeout_seconds, transport, object_key
            )
    except FileExistsError:
        # Not ours to remove
        raise
    except TimeoutError as exc:
        destination.unlink(missing_ok=True)
        raise RetryableNetworkError(
            f"Download timeout after {timeout_seconds:.0f}s", object_key=object_key
        ) from exc
    except httpx.HTTPError as exc:
        destination.unlink(missing_ok=True)
        raise RetryableNetworkError(
            f"Failed to download audio file: {exc}", object_key=object_key
        ) from exc
    except OSError as exc:
        destination.unlink(missing_ok=True)
        raise RetryableStagingError(
            f"Failed to write audio file: {exc}", object_key=object_key
        ) from exc
    except BaseException:
        destination.unlink(missing_ok=True)
        raise
