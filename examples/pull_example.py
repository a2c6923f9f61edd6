"""Example usage of the async pull and build helpers."""

import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, "src")

from fleet_build_client import (
    DeviceRegistration,
    FleetBuildError,
    LineBufferSink,
    Settings,
    create_source_archive,
    fetch_device_image_url,
    pull_image,
    trigger_build,
)

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def pull_device_filesystem(settings: Settings):
    """Look up a device's image and extract it locally."""
    registration = DeviceRegistration(id=1, uuid="0123456789abcdef", api_key="device-api-key")

    try:
        image_url = await fetch_device_image_url(
            settings.api_token, registration.uuid, api_url=settings.api_url
        )
        logger.info("Device runs %s", image_url)

        target = await pull_image(image_url, registration, Path("rootfs"), settings=settings)
        logger.info("Filesystem extracted to %s", target)
    except FleetBuildError as e:
        logger.error("Pull failed: %s", e)


async def build_quietly(settings: Settings):
    """Trigger a build and keep the log in memory instead of the terminal."""
    sink = LineBufferSink()

    try:
        success = await trigger_build(
            settings.api_token,
            "gh_owner",
            "my-fleet",
            create_source_archive("."),
            builder_url=settings.builder_url,
            sink=sink,
        )
    except FleetBuildError as e:
        logger.error("Build failed: %s", e)
        return

    for line in sink.lines[-5:]:
        logger.info("  %s", line)
    logger.info("Build %s", "succeeded" if success else "failed")


if __name__ == "__main__":
    settings = Settings()
    if not settings.api_token:
        sys.exit("Set FLEET_BUILD_API_TOKEN first")
    asyncio.run(pull_device_filesystem(settings))
    asyncio.run(build_quietly(settings))
