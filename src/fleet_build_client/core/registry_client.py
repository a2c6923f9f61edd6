"""Docker Registry API v2 async pull client."""

from typing import Optional

import aiohttp

from .auth import RegistryAuthenticator
from .blobs import BlobFetcher
from .manifests import ManifestResolver
from .types import AuthSession, LayerBlob, Manifest


class RegistryClient:
    """Docker Registry API v2 async client for pulling one image.

    Owns the HTTP session and wires the authenticator, manifest resolver and
    blob fetcher to a single shared ``AuthSession``.
    """

    def __init__(
        self,
        registry_url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: int = 30,
        max_concurrency: Optional[int] = None,
        connector: Optional[aiohttp.TCPConnector] = None,
    ) -> None:
        """Initialize the registry client.

        Args:
            registry_url: Registry URL (e.g., https://registry2.example.com)
            username: Registry username
            password: Registry password or API key
            timeout: Connect and read timeout in seconds
            max_concurrency: Optional cap on simultaneous blob downloads
            connector: aiohttp connector for connection pooling
        """
        self.registry_url = registry_url.rstrip("/")
        self.username = username
        self.password = password
        self.timeout = timeout
        self.max_concurrency = max_concurrency
        self.connector = connector
        self.session: Optional[aiohttp.ClientSession] = None
        self.authenticator: Optional[RegistryAuthenticator] = None
        self.manifests: Optional[ManifestResolver] = None
        self.blobs: Optional[BlobFetcher] = None

    async def __aenter__(self) -> "RegistryClient":
        """Enter async context manager."""
        if not self.session:
            # Layers can be large, so only connect and read stalls are bounded
            self.session = aiohttp.ClientSession(
                connector=self.connector,
                timeout=aiohttp.ClientTimeout(
                    total=None, sock_connect=self.timeout, sock_read=self.timeout
                ),
            )
            self.authenticator = RegistryAuthenticator(
                self.session, self.registry_url, self.username, self.password
            )
            self.manifests = ManifestResolver(
                self.session, self.registry_url, self.authenticator.auth
            )
            self.blobs = BlobFetcher(
                self.session,
                self.registry_url,
                self.authenticator.auth,
                max_concurrency=self.max_concurrency,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager."""
        await self.close()

    async def close(self) -> None:
        """Close the client session."""
        if self.session and not self.session.closed:
            await self.session.close()

    @property
    def auth(self) -> AuthSession:
        return self.authenticator.auth

    async def login(self, repository: str) -> AuthSession:
        """Probe the API version and authenticate for pulling ``repository``.

        Raises:
            UnsupportedRegistry: If the registry does not speak v2
            AuthenticationFailed: If no pull token can be obtained
        """
        await self.authenticator.probe_api_version()
        return await self.authenticator.ensure_authenticated(
            f"repository:{repository}:pull"
        )

    async def resolve_manifest(
        self, repository: str, tag: str = "latest", platform: Optional[str] = None
    ) -> Manifest:
        return await self.manifests.resolve_manifest(repository, tag, platform)

    async def fetch_all(self, repository: str, digests) -> dict[str, LayerBlob]:
        return await self.blobs.fetch_all(repository, digests)
