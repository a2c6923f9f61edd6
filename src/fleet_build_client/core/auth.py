"""Bearer token negotiation against a registry v2 API."""

import asyncio
import base64
import logging
import re
from typing import Optional

import aiohttp

from ..exceptions import AuthenticationFailed, RegistryConnectionError, UnsupportedRegistry
from .types import AuthSession

logger = logging.getLogger(__name__)

API_VERSION_HEADER = "Docker-Distribution-API-Version"
API_VERSION = "registry/2.0"

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


def basic_authorization(username: str, password: str) -> str:
    """Build a Basic ``Authorization`` header value (RFC 7617, UTF-8)."""
    credentials = f"{username}:{password}".encode("utf-8")
    return "Basic " + base64.b64encode(credentials).decode("ascii")


def parse_bearer_challenge(header: Optional[str]) -> Optional[dict[str, str]]:
    """Parse a ``WWW-Authenticate: Bearer realm=...,service=...`` header.

    Args:
        header: Raw header value

    Returns:
        Challenge parameters, or None if the header is absent or not a
        bearer challenge
    """
    if not header:
        return None

    scheme, _, params = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None

    return dict(_CHALLENGE_PARAM.findall(params))


class RegistryAuthenticator:
    """Negotiates registry access for one pull.

    The resulting ``AuthSession`` is shared with the manifest resolver and the
    blob fetcher. Its token is set once and only read afterwards.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        registry_url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ) -> None:
        """Initialize the authenticator.

        Args:
            session: Open HTTP session
            registry_url: Registry URL (e.g., https://registry2.example.com)
            username: Registry username
            password: Registry password or API key
        """
        self.session = session
        self.registry_url = registry_url.rstrip("/")
        self.username = username
        self.password = password
        self.auth = AuthSession()
        self._challenge: Optional[dict[str, str]] = None
        self._anonymous = False
        self._probed = False

    async def _get_api_root(self, headers: Optional[dict[str, str]] = None):
        try:
            async with self.session.get(
                f"{self.registry_url}/v2/", headers=headers or {}
            ) as resp:
                return resp.status, resp.headers.copy()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RegistryConnectionError(
                f"Unable to reach registry at {self.registry_url}: {e}"
            ) from e

    async def probe_api_version(self) -> None:
        """Confirm that the registry speaks the v2 API.

        Raises:
            UnsupportedRegistry: If ``/v2/`` does not answer like a v2 registry
            RegistryConnectionError: If the registry cannot be reached
        """
        status, headers = await self._get_api_root()

        version = headers.get(API_VERSION_HEADER)
        if status not in (200, 401) or (version is not None and version != API_VERSION):
            raise UnsupportedRegistry(
                f"Registry at {self.registry_url} does not support v2 API "
                f"(HTTP {status}, {API_VERSION_HEADER}: {version})"
            )

        self._anonymous = status == 200
        self._challenge = parse_bearer_challenge(headers.get("WWW-Authenticate"))
        self._probed = True
        logger.debug(
            "Registry %s speaks v2 (anonymous access: %s)",
            self.registry_url,
            self._anonymous,
        )

    async def ensure_authenticated(self, scope: str) -> AuthSession:
        """Obtain a bearer token for ``scope`` unless access is already granted.

        Args:
            scope: Token scope (e.g., repository:org/app:pull)

        Returns:
            The shared auth session

        Raises:
            AuthenticationFailed: If the token exchange or verification fails
        """
        if self.auth.token is not None:
            return self.auth

        if not self._probed:
            await self.probe_api_version()

        if self._anonymous:
            self.auth.scope = scope
            return self.auth

        if self._challenge is None or "realm" not in self._challenge:
            raise AuthenticationFailed(
                f"Registry at {self.registry_url} requires authentication "
                "but sent no bearer challenge"
            )

        token = await self._request_token(scope)

        status, _ = await self._get_api_root({"Authorization": f"Bearer {token}"})
        if status != 200:
            raise AuthenticationFailed(
                f"Registry at {self.registry_url} rejected the issued token (HTTP {status})"
            )

        self.auth.token = token
        self.auth.scope = scope
        logger.info("Logged in to %s", self.registry_url)
        return self.auth

    async def _request_token(self, scope: str) -> str:
        realm = self._challenge["realm"]
        params = {"scope": scope}
        if self._challenge.get("service"):
            params["service"] = self._challenge["service"]

        headers = {}
        if self.username is not None:
            headers["Authorization"] = basic_authorization(
                self.username, self.password or ""
            )

        try:
            async with self.session.get(realm, params=params, headers=headers) as resp:
                if resp.status != 200:
                    raise AuthenticationFailed(
                        f"Token request to {realm} failed with HTTP {resp.status}"
                    )
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise AuthenticationFailed(f"Token request to {realm} failed: {e}") from e

        token = None
        if isinstance(data, dict):
            token = data.get("token") or data.get("access_token")
        if not isinstance(token, str) or not token:
            raise AuthenticationFailed(f"Token response from {realm} carries no token")

        return token
