"""Fleet Build Client - remote device image builds and registry pulls."""

__version__ = "0.1.0"

from .build import ArrayStreamParser, BuildLogInterpreter, LineBufferSink, TerminalSink
from .build.trigger import trigger_build
from .config import Settings
from .core.registry_client import RegistryClient
from .core.types import DeviceRegistration, ImageReference
from .device import fetch_device_image_url
from .exceptions import (
    AuthenticationFailed,
    BlobFetchFailed,
    BuildError,
    BuildStreamError,
    BuildTriggerError,
    DeviceStateError,
    ExtractionError,
    FleetBuildError,
    ImageReferenceError,
    MalformedManifest,
    ManifestError,
    ManifestNotFound,
    RegistryConnectionError,
    RegistryError,
    UnsupportedRegistry,
)
from .pull import pull_image
from .tar import LayerMergeEngine, create_source_archive

__all__ = [
    "ArrayStreamParser",
    "BuildLogInterpreter",
    "LineBufferSink",
    "TerminalSink",
    "trigger_build",
    "Settings",
    "RegistryClient",
    "DeviceRegistration",
    "ImageReference",
    "fetch_device_image_url",
    "pull_image",
    "LayerMergeEngine",
    "create_source_archive",
    "FleetBuildError",
    "RegistryError",
    "RegistryConnectionError",
    "UnsupportedRegistry",
    "AuthenticationFailed",
    "ManifestError",
    "ManifestNotFound",
    "MalformedManifest",
    "BlobFetchFailed",
    "ImageReferenceError",
    "ExtractionError",
    "BuildError",
    "BuildStreamError",
    "BuildTriggerError",
    "DeviceStateError",
]
