"""Test configuration and fixtures."""

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestServer

from fleet_build_client.config import Settings
from fleet_build_client.core.types import DeviceRegistration
from tests.helpers import FakeRegistry


@pytest.fixture
def registration():
    """Device registration matching the fake registry credentials."""
    return DeviceRegistration(id=1, uuid="abc123", api_key="device-key")


@pytest.fixture
def settings():
    """Settings for talking to a plain HTTP test server."""
    return Settings(insecure_registry=True, request_timeout=5)


@pytest.fixture
def fake_registry():
    """Registry state; populate before starting the server."""
    return FakeRegistry()


@pytest_asyncio.fixture
async def registry_server(fake_registry):
    """Serve the fake registry on a local port."""
    async with TestServer(fake_registry.app()) as server:
        yield server
        # Let gated handlers finish so shutdown does not wait on them
        fake_registry.gate.set()


@pytest.fixture
def registry_host(registry_server):
    """``host:port`` of the running fake registry."""
    return f"{registry_server.host}:{registry_server.port}"
