"""
Handles streaming firmware images over HTTP into the output directory with
SHA-256 verification and atomic placement.
"""

import asyncio
import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional

import aiofiles
import aiohttp

from asu_cli.exceptions import DownloadError, OutputExistsError, TaskCancelledError

from .integrity import apply_mtime, parse_http_date, verify_digest

log = logging.getLogger(__name__)

# Called with (bytes_so_far, total_bytes_or_None).
ProgressCallback = Callable[[int, Optional[int]], None]


class ChecksumDownloader:
    """
    Streams one resource to a hidden temporary file next to its destination,
    hashing as it goes, and renames it into place only once the digest matches.

    The destination directory gains exactly one file on success and none on
    failure. An existing destination is never overwritten.
    """

    CHUNK_SIZE = 102400  # 100 KiB
    TEMP_PREFIX = ".asu-"

    def __init__(self, session: aiohttp.ClientSession, chunk_size: int = CHUNK_SIZE):
        self.session = session
        self.chunk_size = chunk_size

    async def download(
        self,
        url: str,
        expected_sha256: str,
        destination: Path,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> int:
        """
        Downloads `url` to `destination` and returns the number of bytes written.

        Raises:
            TaskCancelledError: If `cancel` is set before or during the transfer.
            OutputExistsError: If `destination` already exists.
            ChecksumMismatchError: If the content does not match `expected_sha256`.
            DownloadError: On transport or file system failures.
        """
        name = destination.name
        if cancel is not None and cancel.is_set():
            raise TaskCancelledError()
        if await asyncio.to_thread(destination.exists):
            raise OutputExistsError(str(destination))

        try:
            fd, temp_name = tempfile.mkstemp(
                prefix=self.TEMP_PREFIX, dir=destination.parent
            )
            os.close(fd)
        except OSError as e:
            raise DownloadError(name, str(e)) from e
        temp_path = Path(temp_name)

        try:
            digest = hashlib.sha256()
            bytes_done = 0
            async with self.session.get(url, allow_redirects=True) as response:
                response.raise_for_status()
                total = response.content_length
                if on_progress:
                    on_progress(0, total)

                async with aiofiles.open(temp_path, "wb") as f:
                    async for chunk in response.content.iter_chunked(self.chunk_size):
                        if cancel is not None and cancel.is_set():
                            raise TaskCancelledError()
                        await f.write(chunk)
                        digest.update(chunk)
                        bytes_done += len(chunk)
                        if on_progress:
                            on_progress(bytes_done, total)
                    await f.flush()
                    await asyncio.to_thread(os.fsync, f.fileno())

                last_modified = parse_http_date(response.headers.get("Last-Modified"))

            verify_digest(name, expected_sha256, digest.hexdigest())

            if await asyncio.to_thread(destination.exists):
                raise OutputExistsError(str(destination))
            os.rename(temp_path, destination)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DownloadError(name, str(e) or type(e).__name__) from e
        except OSError as e:
            raise DownloadError(name, str(e)) from e
        finally:
            try:
                temp_path.unlink(missing_ok=True)
            except OSError as e:
                log.debug(f"Could not remove temporary file '{temp_path}': {e}")

        apply_mtime(destination, last_modified)
        log.debug(f"Downloaded '{name}' ({bytes_done} bytes) from {url}")
        return bytes_done
