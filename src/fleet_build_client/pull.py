"""Async functional style pull operations."""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Union

from .config import Settings
from .core.registry_client import RegistryClient
from .core.types import DeviceRegistration, ImageReference, LayerBlob, Manifest
from .tar.extract import LayerMergeEngine, order_blobs

logger = logging.getLogger(__name__)


async def download_layers(
    client: RegistryClient,
    repository: str,
    tag: str = "latest",
    platform: Optional[str] = None,
) -> tuple[Manifest, list[LayerBlob]]:
    """Resolve a manifest and download its layers in manifest order.

    The client must already be logged in. Nothing is returned unless every
    layer arrived.

    Args:
        client: Open, authenticated registry client
        repository: Repository name
        tag: Tag or digest reference
        platform: Platform to select from a manifest list

    Returns:
        Tuple of (manifest, blobs bottom layer first)
    """
    logger.info("Downloading image manifest...")
    manifest = await client.resolve_manifest(repository, tag, platform)

    logger.info("Downloading %d layers...", len(manifest.layers))
    blobs = await client.fetch_all(repository, manifest.layers)
    logger.info("All layers downloaded")

    return manifest, order_blobs(manifest.layers, blobs)


async def pull_image(
    image_url: str,
    registration: DeviceRegistration,
    target_dir: Optional[Union[str, Path]] = None,
    tag: str = "latest",
    platform: Optional[str] = None,
    settings: Optional[Settings] = None,
    engine: Optional[LayerMergeEngine] = None,
) -> Path:
    """Pull a device image and extract its merged filesystem.

    Args:
        image_url: Image reference (``<registry>/<path>@<digest>``)
        registration: Device whose credentials authorize the pull
        target_dir: Extraction directory; the repository path with ``/``
            replaced by ``_`` when None
        tag: Tag or digest reference to pull
        platform: Platform to select from a manifest list
        settings: Client settings; read from the environment when None
        engine: Layer merge engine; a default one when None

    Returns:
        Resolved path of the extracted filesystem

    Raises:
        ImageReferenceError: If the image url is malformed
        RegistryError: If any registry step fails; the target is untouched
        ExtractionError: If the layers cannot be written
    """
    settings = settings or Settings()
    reference = ImageReference.parse(image_url)
    target = Path(target_dir) if target_dir is not None else Path(reference.local_name)

    async with RegistryClient(
        reference.registry_url(settings.insecure_registry),
        username=registration.registry_username,
        password=registration.api_key,
        timeout=settings.request_timeout,
        max_concurrency=settings.blob_concurrency,
    ) as client:
        await client.login(reference.repository)
        _, blobs = await download_layers(client, reference.repository, tag, platform)

    engine = engine or LayerMergeEngine()
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, engine.extract, target, blobs)
