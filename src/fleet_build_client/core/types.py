"""Data models shared by the registry pull pipeline."""

from dataclasses import dataclass, field
from typing import Optional

from ..exceptions import ImageReferenceError


@dataclass(frozen=True)
class ImageReference:
    """A pullable image: registry host plus repository path."""

    registry: str
    repository: str

    @classmethod
    def parse(cls, image_url: str) -> "ImageReference":
        """Parse ``<registry-host>/<image-path>@<digest>``.

        Args:
            image_url: Image reference as reported by the device state

        Returns:
            Parsed image reference

        Raises:
            ImageReferenceError: If the host or the ``@`` marker is missing
        """
        host, sep, rest = image_url.partition("/")
        if not sep or not host:
            raise ImageReferenceError(f"No registry host in image url: {image_url!r}")

        repository, sep, _ = rest.partition("@")
        if not sep or not repository:
            raise ImageReferenceError(f"No image path in image url: {image_url!r}")

        return cls(registry=host, repository=repository)

    def registry_url(self, insecure: bool = False) -> str:
        """Base URL of the registry API."""
        scheme = "http" if insecure else "https"
        return f"{scheme}://{self.registry}"

    @property
    def local_name(self) -> str:
        """Directory-safe name of the repository."""
        return self.repository.replace("/", "_")


@dataclass(frozen=True)
class DeviceRegistration:
    """Provisioned device identity used to derive registry credentials."""

    id: int
    uuid: str
    api_key: str

    @property
    def registry_username(self) -> str:
        return f"d_{self.uuid}"


@dataclass
class AuthSession:
    """Registry credentials in use for one pull."""

    scope: Optional[str] = None
    token: Optional[str] = None

    def headers(self) -> dict[str, str]:
        if self.token is None:
            return {}
        return {"Authorization": f"Bearer {self.token}"}


@dataclass(frozen=True)
class Manifest:
    """Image manifest reduced to its ordered layer list (bottom first)."""

    media_type: str
    layers: tuple[str, ...]
    digest: Optional[str] = None


@dataclass
class LayerBlob:
    """One compressed layer payload."""

    digest: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)
