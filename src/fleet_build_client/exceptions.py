"""Custom exceptions for the fleet build client."""

from typing import Optional


class FleetBuildError(Exception):
    """Base exception for all build and pull errors."""

    pass


class RegistryError(FleetBuildError):
    """Base exception for all registry-related errors."""

    pass


class RegistryConnectionError(RegistryError):
    """Raised when unable to connect to the registry."""

    pass


class UnsupportedRegistry(RegistryError):
    """Raised when the registry does not speak the v2 API."""

    pass


class AuthenticationFailed(RegistryError):
    """Raised when the token exchange or token verification fails."""

    pass


class ManifestError(RegistryError):
    """Raised when manifest operations fail."""

    pass


class ManifestNotFound(ManifestError):
    """Raised when the registry has no manifest for the reference."""

    pass


class MalformedManifest(ManifestError):
    """Raised when a manifest cannot be parsed or lists no layers."""

    pass


class BlobFetchFailed(RegistryError):
    """Raised when a layer blob cannot be downloaded or verified."""

    def __init__(self, digest: str, reason: str) -> None:
        super().__init__(f"Failed to fetch blob {digest}: {reason}")
        self.digest = digest
        self.reason = reason


class ImageReferenceError(FleetBuildError):
    """Raised when an image reference string cannot be parsed."""

    pass


class ExtractionError(FleetBuildError):
    """Raised when a layer cannot be materialized on disk."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class BuildError(FleetBuildError):
    """Base exception for remote build errors."""

    pass


class BuildTriggerError(BuildError):
    """Raised when the builder rejects the build request."""

    def __init__(self, status: int, body: str = "") -> None:
        message = f"Builder responded with HTTP {status}"
        if body:
            message = f"{message}: {body}"
        super().__init__(message)
        self.status = status


class BuildStreamError(BuildError):
    """Raised when the build log stream cannot be decoded."""

    def __init__(self, message: str, fragment: Optional[str] = None) -> None:
        if fragment is not None:
            message = f"{message} (at {fragment!r})"
        super().__init__(message)
        self.fragment = fragment


class DeviceStateError(FleetBuildError):
    """Raised when a device state document has no usable image."""

    pass
