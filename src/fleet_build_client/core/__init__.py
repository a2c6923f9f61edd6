"""Registry pull client components."""

from .auth import RegistryAuthenticator
from .blobs import BlobFetcher
from .manifests import ManifestResolver
from .registry_client import RegistryClient
from .types import AuthSession, DeviceRegistration, ImageReference, LayerBlob, Manifest

__all__ = [
    "AuthSession",
    "BlobFetcher",
    "DeviceRegistration",
    "ImageReference",
    "LayerBlob",
    "Manifest",
    "ManifestResolver",
    "RegistryAuthenticator",
    "RegistryClient",
]
