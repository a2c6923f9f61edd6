"""Manifest retrieval and layer digest extraction."""

import asyncio
import json
import logging
from typing import Any, Optional

import aiohttp

from ..exceptions import ManifestError, ManifestNotFound, MalformedManifest
from ..utils.digest import validate_digest
from .types import AuthSession, Manifest

logger = logging.getLogger(__name__)

MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
MANIFEST_LIST_V2 = "application/vnd.docker.distribution.manifest.list.v2+json"
MANIFEST_V1 = "application/vnd.docker.distribution.manifest.v1+json"
MANIFEST_V1_SIGNED = "application/vnd.docker.distribution.manifest.v1+prettyjws"
OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_INDEX = "application/vnd.oci.image.index.v1+json"

ACCEPTED_MEDIA_TYPES = (
    MANIFEST_V2,
    OCI_MANIFEST,
    MANIFEST_LIST_V2,
    OCI_INDEX,
    MANIFEST_V1_SIGNED,
    MANIFEST_V1,
)

INDEX_MEDIA_TYPES = (MANIFEST_LIST_V2, OCI_INDEX)


def _digests_from(entries: Any, key: str) -> list[str]:
    if not isinstance(entries, list):
        raise MalformedManifest("Manifest layer list is missing or not an array")

    digests = []
    for entry in entries:
        digest = entry.get(key) if isinstance(entry, dict) else None
        if not isinstance(digest, str) or not validate_digest(digest):
            raise MalformedManifest(f"Invalid layer digest in manifest: {digest!r}")
        digests.append(digest)
    return digests


def parse_layer_digests(document: Any) -> tuple[str, ...]:
    """Extract layer digests from a manifest, bottom layer first.

    Schema 2 and OCI manifests list ``layers`` bottom-up. Schema 1 manifests
    list ``fsLayers`` top-down and are reversed.

    Args:
        document: Decoded manifest JSON

    Returns:
        Ordered layer digests

    Raises:
        MalformedManifest: If the layer list is missing, invalid or empty
    """
    if not isinstance(document, dict):
        raise MalformedManifest("Manifest is not a JSON object")

    if document.get("schemaVersion") == 1:
        digests = _digests_from(document.get("fsLayers"), "blobSum")
        digests.reverse()
    else:
        digests = _digests_from(document.get("layers"), "digest")

    if not digests:
        raise MalformedManifest("Manifest lists no layers")

    return tuple(digests)


def is_manifest_index(document: dict[str, Any], media_type: Optional[str]) -> bool:
    """Check whether a manifest document is a manifest list / image index."""
    if media_type in INDEX_MEDIA_TYPES:
        return True
    return "manifests" in document and "layers" not in document


def select_platform_manifest(document: dict[str, Any], platform: Optional[str] = None) -> str:
    """Pick one manifest digest out of a manifest list.

    Args:
        document: Decoded manifest list
        platform: ``os/architecture[/variant]``; the first entry when None

    Returns:
        Digest of the selected platform manifest

    Raises:
        MalformedManifest: If the list has no usable entries
        ManifestNotFound: If no entry matches the platform
    """
    entries = document.get("manifests")
    if not isinstance(entries, list) or not entries:
        raise MalformedManifest("Manifest list has no entries")

    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get("digest"), str):
            raise MalformedManifest(f"Invalid manifest list entry: {entry!r}")

    if platform is None:
        return entries[0]["digest"]

    wanted = platform.split("/")
    for entry in entries:
        described = entry.get("platform") or {}
        offered = [described.get("os"), described.get("architecture"), described.get("variant")]
        if offered[: len(wanted)] == wanted:
            return entry["digest"]

    raise ManifestNotFound(f"No manifest for platform {platform}")


class ManifestResolver:
    """Fetches image manifests with the pull's auth session attached."""

    def __init__(
        self, session: aiohttp.ClientSession, registry_url: str, auth: AuthSession
    ) -> None:
        self.session = session
        self.registry_url = registry_url.rstrip("/")
        self.auth = auth

    async def get_manifest(
        self, repository: str, reference: str
    ) -> tuple[dict[str, Any], Optional[str], Optional[str]]:
        """Retrieve a raw manifest document.

        Args:
            repository: Repository name
            reference: Tag or digest reference

        Returns:
            Tuple of (manifest document, media type, content digest)

        Raises:
            ManifestNotFound: If the registry has no such manifest
            MalformedManifest: If the body is not a JSON object
            ManifestError: If retrieval fails otherwise
        """
        url = f"{self.registry_url}/v2/{repository}/manifests/{reference}"
        headers = {"Accept": ", ".join(ACCEPTED_MEDIA_TYPES), **self.auth.headers()}

        try:
            async with self.session.get(url, headers=headers) as resp:
                if resp.status == 404:
                    raise ManifestNotFound(f"Manifest {repository}:{reference} not found")
                if resp.status != 200:
                    raise ManifestError(
                        f"Failed to get manifest {repository}:{reference}: HTTP {resp.status}"
                    )
                body = await resp.read()
                content_type = resp.content_type
                digest = resp.headers.get("Docker-Content-Digest")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ManifestError(f"Failed to get manifest: {e}") from e

        try:
            document = json.loads(body)
        except ValueError as e:
            raise MalformedManifest(f"Manifest {repository}:{reference} is not JSON: {e}") from e

        if not isinstance(document, dict):
            raise MalformedManifest(f"Manifest {repository}:{reference} is not a JSON object")

        media_type = document.get("mediaType") or content_type
        return document, media_type, digest

    async def resolve_manifest(
        self, repository: str, tag: str = "latest", platform: Optional[str] = None
    ) -> Manifest:
        """Fetch the manifest for ``tag`` and extract its layer digests.

        Manifest lists are followed to one platform manifest.

        Args:
            repository: Repository name
            tag: Tag or digest reference
            platform: ``os/architecture[/variant]`` to select from a list

        Returns:
            Manifest with ordered layer digests
        """
        document, media_type, digest = await self.get_manifest(repository, tag)

        if is_manifest_index(document, media_type):
            reference = select_platform_manifest(document, platform)
            logger.debug("Following manifest list %s:%s to %s", repository, tag, reference)
            document, media_type, digest = await self.get_manifest(repository, reference)
            if is_manifest_index(document, media_type):
                raise MalformedManifest(f"Manifest list {reference} points to another list")
            digest = digest or reference

        layers = parse_layer_digests(document)
        logger.debug("Manifest %s:%s has %d layers", repository, tag, len(layers))
        return Manifest(media_type=media_type or MANIFEST_V2, layers=layers, digest=digest)
