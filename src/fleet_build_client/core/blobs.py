"""Concurrent, all-or-nothing layer blob downloads."""

import asyncio
import logging
from typing import Iterable, Optional

import aiohttp

from ..exceptions import BlobFetchFailed
from ..utils.digest import validate_digest, verify_digest
from .types import AuthSession, LayerBlob

logger = logging.getLogger(__name__)


class BlobFetcher:
    """Downloads layer blobs keyed by digest."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        registry_url: str,
        auth: AuthSession,
        max_concurrency: Optional[int] = None,
        verify: bool = True,
    ) -> None:
        """Initialize the fetcher.

        Args:
            session: Open HTTP session
            registry_url: Registry URL
            auth: Auth session; must hold its token before fetching starts
            max_concurrency: Optional cap on simultaneous downloads
            verify: Check each blob against its digest
        """
        self.session = session
        self.registry_url = registry_url.rstrip("/")
        self.auth = auth
        self.max_concurrency = max_concurrency
        self.verify = verify

    async def fetch_blob(self, repository: str, digest: str) -> LayerBlob:
        """Download one blob.

        Args:
            repository: Repository name
            digest: Blob digest

        Returns:
            The downloaded blob

        Raises:
            BlobFetchFailed: If the download fails or the content does not
                match the digest
        """
        if not validate_digest(digest):
            raise BlobFetchFailed(digest, "invalid digest format")

        url = f"{self.registry_url}/v2/{repository}/blobs/{digest}"
        try:
            async with self.session.get(url, headers=self.auth.headers()) as resp:
                if resp.status != 200:
                    raise BlobFetchFailed(digest, f"HTTP {resp.status}")
                data = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BlobFetchFailed(digest, str(e) or type(e).__name__) from e

        if self.verify and not verify_digest(data, digest):
            raise BlobFetchFailed(digest, "content does not match digest")

        logger.debug("Fetched blob %s (%d bytes)", digest, len(data))
        return LayerBlob(digest=digest, data=data)

    async def fetch_all(
        self, repository: str, digests: Iterable[str]
    ) -> dict[str, LayerBlob]:
        """Download every blob concurrently.

        Either every blob is returned or nothing is: the first failure cancels
        the sibling downloads and is re-raised once they have stopped.

        Args:
            repository: Repository name
            digests: Layer digests; duplicates are fetched once

        Returns:
            Blobs indexed by digest

        Raises:
            BlobFetchFailed: If any download fails
        """
        unique = list(dict.fromkeys(digests))
        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None

        async def fetch_one(digest: str) -> LayerBlob:
            if semaphore is None:
                return await self.fetch_blob(repository, digest)
            async with semaphore:
                return await self.fetch_blob(repository, digest)

        tasks = [asyncio.ensure_future(fetch_one(digest)) for digest in unique]
        try:
            blobs = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return {blob.digest: blob for blob in blobs}
