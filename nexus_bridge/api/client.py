"""
Client for the Nexus Mods REST and GraphQL APIs.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List

import aiofiles
import aiohttp

from nexus_bridge import __version__
from nexus_bridge.exceptions import (
    AuthenticationError,
    CollectionFetchError,
    PremiumRequiredError,
    TransferRejectedError,
    TransientTransferError,
)
from nexus_bridge.utils.path import sanitize_name

from .rate_limiter import AdaptiveRateLimiter

log = logging.getLogger(__name__)

TRANSIENT_STATUSES = {408, 429, 500, 502, 503, 504}

COLLECTION_QUERY = (
    "query GetCollection($slug: String!) { collectionRevision(slug: $slug) "
    "{ id revisionNumber downloadLink collection { name game { domainName } } } }"
)


@dataclass(frozen=True)
class NexusUser:
    """The account behind an API key."""

    name: str
    is_premium: bool


def classify_http_status(status: int, url: str) -> None:
    """
    Raises the matching transfer error for a non-2xx status code.

    Server-side errors and throttling are transient; any other client error
    is an explicit rejection.
    """
    if status < 400:
        return
    message = f"HTTP {status} for {url}"
    if status in TRANSIENT_STATUSES or status >= 500:
        raise TransientTransferError(message)
    raise TransferRejectedError(message)


class NexusAPIClient:
    """
    Synchronous facade over an aiohttp-based Nexus Mods client.

    Each public method runs its own short-lived event loop so that it can be
    called from any worker thread. Request pacing is shared across threads via
    the adaptive rate limiter.
    """

    BASE_URL = "https://api.nexusmods.com"
    GRAPHQL_URL = "https://api.nexusmods.com/v2/graphql"

    def __init__(self, api_key: str, timeout: float = 60.0):
        """
        Initializes the API client.

        Args:
            api_key: Personal API key from the Nexus Mods account settings page.
            timeout: Total timeout in seconds for a single API request.
        """
        self.api_key = api_key
        self._timeout = aiohttp.ClientTimeout(total=timeout, sock_connect=15)
        self._rate_limiter = AdaptiveRateLimiter()

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "User-Agent": f"NexusBridge/{__version__}",
            "Accept": "application/json",
        }

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[aiohttp.ClientSession]:
        async with aiohttp.ClientSession(
            headers=self.headers, timeout=self._timeout
        ) as session:
            yield session

    async def _request_json(
        self,
        session: aiohttp.ClientSession,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> Any:
        """Performs one paced request and decodes the JSON body."""
        await asyncio.to_thread(self._rate_limiter.acquire)
        try:
            async with session.request(method, url, **kwargs) as response:
                if response.status == 429:
                    self._rate_limiter.on_429()
                if response.status == 401:
                    raise AuthenticationError("The Nexus API rejected the API key.")
                if response.status == 403 and "download_link" in url:
                    raise PremiumRequiredError(
                        "Download links require a Nexus Mods premium membership."
                    )
                classify_http_status(response.status, url)
                body = await response.read()
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            raise TransientTransferError(f"Request to {url} failed: {e}") from e
        except aiohttp.ClientPayloadError as e:
            raise TransientTransferError(f"Incomplete response from {url}: {e}") from e

        if not body:
            raise TransientTransferError(f"Empty response from {url}")
        try:
            return json.loads(body)
        except ValueError as e:
            raise TransferRejectedError(f"Invalid JSON from {url}: {e}") from e

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    async def _validate_key(self) -> NexusUser:
        async with self._session() as session:
            data = await self._request_json(
                session, "GET", f"{self.BASE_URL}/v1/users/validate.json"
            )
        return NexusUser(
            name=str(data.get("name", "")),
            is_premium=bool(data.get("is_premium", False)),
        )

    def validate_key(self) -> NexusUser:
        """
        Validates the API key and reports the account's premium status.

        Raises:
            AuthenticationError: If the key is rejected.
        """
        return asyncio.run(self._validate_key())

    # ------------------------------------------------------------------
    # Mod files
    # ------------------------------------------------------------------

    async def _download_links(self, game: str, mod_id: int, file_id: int) -> List[str]:
        url = (
            f"{self.BASE_URL}/v1/games/{game}/mods/{mod_id}/files/{file_id}"
            "/download_link.json"
        )
        async with self._session() as session:
            data = await self._request_json(session, "GET", url)
        if not isinstance(data, list):
            raise TransferRejectedError(f"Unexpected download link payload for {url}")
        return [uri for entry in data if (uri := entry.get("URI"))]

    def download_links(self, game: str, mod_id: int, file_id: int) -> List[str]:
        """
        Resolves the CDN links for a single mod file.

        Raises:
            PremiumRequiredError: If the account cannot generate links.
            TransientTransferError: On network level failures.
        """
        return asyncio.run(self._download_links(game, mod_id, file_id))

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def _fetch_collection_archive(
        self, game: str, slug: str, dest_dir: Path
    ) -> Path:
        async with self._session() as session:
            payload = {"query": COLLECTION_QUERY, "variables": {"slug": slug}}
            data = await self._request_json(
                session, "POST", self.GRAPHQL_URL, json=payload
            )
            if errors := data.get("errors"):
                raise CollectionFetchError(f"GraphQL error: {errors}")

            revision = (data.get("data") or {}).get("collectionRevision") or {}
            link = revision.get("downloadLink", "")
            if not link:
                raise CollectionFetchError(
                    f"Collection '{slug}' has no download link. "
                    "It may be private or the slug may be wrong."
                )
            if link.startswith("/"):
                link = f"{self.BASE_URL}{link}"

            links = await self._request_json(session, "GET", link)
            cdn_links = links.get("download_links", []) if isinstance(links, dict) else []
            cdn_url = next((l.get("URI") for l in cdn_links if l.get("URI")), "")
            if not cdn_url:
                raise CollectionFetchError(f"No CDN link for collection '{slug}'.")

            dest_dir.mkdir(parents=True, exist_ok=True)
            archive_path = dest_dir / sanitize_name(f"collection_{game}_{slug}.7z")
            log.info(f"Downloading collection archive for [cyan]{slug}[/cyan]...")
            async with session.get(cdn_url) as response:
                classify_http_status(response.status, cdn_url)
                async with aiofiles.open(archive_path, "wb") as f:
                    async for chunk in response.content.iter_chunked(262144):
                        await f.write(chunk)
        return archive_path

    def fetch_collection_archive(self, game: str, slug: str, dest_dir: Path) -> Path:
        """
        Downloads the archive that holds a collection's `collection.json`.

        Args:
            game: The game domain, e.g. 'skyrimspecialedition'.
            slug: The collection slug from its URL.
            dest_dir: Where to store the archive.

        Returns:
            The path of the downloaded archive.
        """
        try:
            return asyncio.run(self._fetch_collection_archive(game, slug, dest_dir))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CollectionFetchError(f"Failed to download collection: {e}") from e
