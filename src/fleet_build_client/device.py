"""Device state lookup against the cloud API."""

import asyncio

import aiohttp

from .exceptions import DeviceStateError
from .utils.state import find_image_url


def device_state_endpoint(uuid: str) -> str:
    return f"device/v2/{uuid}/state"


async def fetch_device_image_url(
    token: str,
    uuid: str,
    api_url: str = "https://api.balena-cloud.com",
    timeout: int = 30,
) -> str:
    """Look up the image the cloud assigned to a device.

    Args:
        token: API token
        uuid: Device UUID
        api_url: Cloud API base URL
        timeout: Request timeout in seconds

    Returns:
        Image reference (``<registry>/<path>@<digest>``)

    Raises:
        DeviceStateError: If the state cannot be fetched or names no image
    """
    url = f"{api_url.rstrip('/')}/{device_state_endpoint(uuid)}"
    try:
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout)
        ) as session:
            async with session.get(
                url, headers={"Authorization": f"Bearer {token}"}
            ) as resp:
                if resp.status != 200:
                    raise DeviceStateError(
                        f"Device state request for {uuid} failed with HTTP {resp.status}"
                    )
                state = await resp.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        raise DeviceStateError(f"Device state request for {uuid} failed: {e}") from e

    image_url = find_image_url(state)
    if image_url is None:
        raise DeviceStateError(f"Image not found in device state of {uuid}")
    return image_url
