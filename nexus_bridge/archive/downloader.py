"""
Handles the low-level downloading of archives over HTTP with adaptive chunk sizing.
"""

import asyncio
import logging
import threading
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import quote

import aiofiles
import aiohttp

from nexus_bridge import __version__
from nexus_bridge.exceptions import TransientTransferError

from ..api.client import classify_http_status

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


def encode_url(url: str) -> str:
    """Percent-encodes characters such as spaces that CDN links sometimes contain."""
    return quote(url, safe=":/?#[]@!$&'()*+,;=%~")


class Downloader:
    """
    A low-level file downloader with adaptive chunk sizing.

    `fetch` makes exactly one attempt. Retrying is the caller's decision so
    that the total number of attempts per archive stays bounded.
    """

    MIN_CHUNK_SIZE = 131072  # 128 KB
    MAX_CHUNK_SIZE = 1048576  # 1 MB
    _shared_chunk_size = MIN_CHUNK_SIZE
    _chunk_lock = threading.Lock()

    def __init__(self, connect_timeout: float = 15.0, read_timeout: float = 90.0):
        self._timeout = aiohttp.ClientTimeout(
            total=None, sock_connect=connect_timeout, sock_read=read_timeout
        )

    @classmethod
    def _adapt_chunk_size_shared(cls, current_speed_bps: float) -> int:
        """Adapts the shared chunk size based on current network speed."""
        with cls._chunk_lock:
            if current_speed_bps > 10 * 1024 * 1024:  # > 10 MB/s
                cls._shared_chunk_size = cls.MAX_CHUNK_SIZE
            elif current_speed_bps > 5 * 1024 * 1024:  # > 5 MB/s
                cls._shared_chunk_size = 524288  # 512 KB
            elif current_speed_bps > 1 * 1024 * 1024:  # > 1 MB/s
                cls._shared_chunk_size = 262144  # 256 KB
            else:
                cls._shared_chunk_size = cls.MIN_CHUNK_SIZE
            return cls._shared_chunk_size

    async def _fetch(
        self,
        url: str,
        destination: Path,
        expected_size: int,
        on_progress: Optional[ProgressCallback],
    ) -> int:
        loop = asyncio.get_running_loop()
        headers = {"User-Agent": f"NexusBridge/{__version__}"}
        async with aiohttp.ClientSession(timeout=self._timeout, headers=headers) as session:
            async with session.get(url, allow_redirects=True) as response:
                classify_http_status(response.status, url)

                bytes_downloaded = 0
                started = loop.time()
                last_speed_check = started
                chunk_size = self._shared_chunk_size

                async with aiofiles.open(destination, "wb") as f:
                    async for chunk in response.content.iter_chunked(chunk_size):
                        await f.write(chunk)
                        bytes_downloaded += len(chunk)
                        if on_progress:
                            on_progress(len(chunk))

                        now = loop.time()
                        if now - last_speed_check > 2.0:
                            speed = bytes_downloaded / max(now - started, 1e-6)
                            chunk_size = self._adapt_chunk_size_shared(speed)
                            last_speed_check = now

        if bytes_downloaded == 0:
            raise TransientTransferError(f"Empty response body from {url}")
        if expected_size and bytes_downloaded != expected_size:
            log.debug(
                f"Size of '{destination.name}' is {bytes_downloaded} bytes, "
                f"manifest expected {expected_size}."
            )
        return bytes_downloaded

    def fetch(
        self,
        url: str,
        destination: Path,
        expected_size: int = 0,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """
        Streams `url` into `destination`.

        Args:
            url: The download URL. Spaces and similar characters are encoded.
            destination: The file to create or overwrite.
            expected_size: The size announced by the manifest, for logging only.
            on_progress: Called with the size of every chunk written.

        Returns:
            The number of bytes written.

        Raises:
            TransientTransferError: On timeouts, connection problems, or empty bodies.
            TransferRejectedError: When the server refuses the request.
        """
        url = encode_url(url)
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            return asyncio.run(self._fetch(url, destination, expected_size, on_progress))
        except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError) as e:
            destination.unlink(missing_ok=True)
            raise TransientTransferError(f"Download of {destination.name} failed: {e}") from e
        except asyncio.TimeoutError as e:
            destination.unlink(missing_ok=True)
            raise TransientTransferError(f"Download of {destination.name} timed out") from e
        except Exception:
            destination.unlink(missing_ok=True)
            raise
