"""Layer extraction with union filesystem whiteout semantics."""

import errno
import io
import logging
import os
import posixpath
import shutil
import tarfile
import zlib
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

from ..core.types import LayerBlob
from ..exceptions import BlobFetchFailed, ExtractionError

WHITEOUT_PREFIX = ".wh."
OPAQUE_WHITEOUT = ".wh..wh..opq"
XATTR_PAX_PREFIX = "SCHILY.xattr."

_UNSUPPORTED_XATTR_ERRNOS = (errno.ENOTSUP, errno.EOPNOTSUPP, errno.EPERM)
_MAX_SYMLINK_HOPS = 40


class EntryKind(Enum):
    """How a tar entry is applied to the target."""

    FILE = "file"
    DIRECTORY = "directory"
    WHITEOUT = "whiteout"
    OPAQUE_WHITEOUT = "opaque-whiteout"


@dataclass(frozen=True)
class TarEntry:
    """One classified record of a layer archive."""

    path: str
    kind: EntryKind
    member: tarfile.TarInfo

    @property
    def parent(self) -> str:
        return posixpath.dirname(self.path)

    @property
    def whiteout_target(self) -> str:
        """Relative path of the sibling a whiteout deletes."""
        name = posixpath.basename(self.path)[len(WHITEOUT_PREFIX):]
        return posixpath.join(self.parent, name)


def normalize_entry_path(name: str) -> str:
    """Normalize an archive member name to a path relative to the target.

    Args:
        name: Raw member name (``./etc/hosts``, ``/etc/hosts``, ``etc/``)

    Returns:
        Relative path, or an empty string for the archive root

    Raises:
        ExtractionError: If the name climbs out of the target
    """
    path = posixpath.normpath(name.lstrip("/"))
    if path == ".":
        return ""
    if path == ".." or path.startswith("../"):
        raise ExtractionError(name, "entry escapes the extraction target")
    return path


def classify_entry(member: tarfile.TarInfo) -> TarEntry:
    """Classify a tar member by its name and type."""
    path = normalize_entry_path(member.name)
    name = posixpath.basename(path)

    if name == OPAQUE_WHITEOUT:
        kind = EntryKind.OPAQUE_WHITEOUT
    elif name.startswith(WHITEOUT_PREFIX):
        if name == WHITEOUT_PREFIX:
            raise ExtractionError(member.name, "whiteout names no target")
        kind = EntryKind.WHITEOUT
    elif member.isdir():
        kind = EntryKind.DIRECTORY
    else:
        kind = EntryKind.FILE

    return TarEntry(path=path, kind=kind, member=member)


def _components(path: str) -> list[str]:
    return [part for part in path.split("/") if part and part != "."]


def resolve_in_root(root: str, relative: str, follow_final: bool = False) -> str:
    """Resolve ``relative`` below ``root`` as if ``root`` were ``/``.

    Symlinks along the way are followed one component at a time. Absolute
    link targets restart at ``root`` and ``..`` stops at ``root``, so the
    result never leaves it.

    Args:
        root: Absolute, already resolved root directory
        relative: Path inside the image
        follow_final: Also resolve a symlink in the last component

    Returns:
        Absolute host path inside ``root``

    Raises:
        ExtractionError: If resolving takes too many symlink hops
    """
    pending = _components(relative)
    resolved: list[str] = []
    hops = 0

    while pending:
        part = pending.pop(0)
        if part == "..":
            if resolved:
                resolved.pop()
            continue

        candidate = os.path.join(root, *resolved, part)
        if (pending or follow_final) and os.path.islink(candidate):
            hops += 1
            if hops > _MAX_SYMLINK_HOPS:
                raise ExtractionError(relative, "too many levels of symbolic links")
            link = os.readlink(candidate)
            if link.startswith("/"):
                resolved = []
            pending = _components(link) + pending
            continue

        resolved.append(part)

    return os.path.join(root, *resolved)


def contained_filter(member: tarfile.TarInfo, dest_path: str) -> tarfile.TarInfo:
    """Extraction filter that keeps members inside ``dest_path``.

    Unlike the stdlib ``tar`` filter, modes are left untouched so setuid,
    setgid and sticky bits survive. The member name and any hard link target
    are rewritten to their resolution under ``dest_path``, so symlinks in the
    image (absolute ones included) are followed inside the image root and
    never on the host.
    """
    dest_path = os.path.realpath(dest_path)
    target_path = resolve_in_root(dest_path, member.name)
    if target_path == dest_path:
        raise tarfile.OutsideDestinationError(member, target_path)
    changes = {"name": os.path.relpath(target_path, dest_path)}

    if member.islnk():
        link_path = resolve_in_root(dest_path, member.linkname, follow_final=True)
        if link_path == dest_path:
            raise tarfile.LinkOutsideDestinationError(member, link_path)
        changes["linkname"] = os.path.relpath(link_path, dest_path)

    return member.replace(**changes, deep=False)


def order_blobs(
    digests: Sequence[str], blobs_by_digest: Mapping[str, LayerBlob]
) -> list[LayerBlob]:
    """Arrange fetched blobs in manifest order.

    Args:
        digests: Layer digests as listed by the manifest
        blobs_by_digest: Fetch result, in any order

    Returns:
        Blobs in manifest order

    Raises:
        BlobFetchFailed: If a manifest layer is missing from the fetch result
    """
    ordered = []
    for digest in digests:
        blob = blobs_by_digest.get(digest)
        if blob is None:
            raise BlobFetchFailed(digest, "missing from fetch result")
        ordered.append(blob)
    return ordered


class LayerMergeEngine:
    """Materializes a stack of layers onto one directory.

    Layers must be applied bottom to top: a whiteout only affects content
    written by layers below it.
    """

    def __init__(
        self, logger: Optional[logging.Logger] = None, restore_xattrs: bool = True
    ) -> None:
        """Initialize the engine.

        Args:
            logger: Progress logger; the module logger when None
            restore_xattrs: Apply ``SCHILY.xattr.*`` PAX headers
        """
        self.log = logger or logging.getLogger(__name__)
        self.restore_xattrs = restore_xattrs

    def extract(
        self, target_dir: Union[str, Path], blobs: Sequence[LayerBlob]
    ) -> Path:
        """Extract every layer onto ``target_dir`` in the given order.

        Args:
            target_dir: Destination directory, created if absent
            blobs: Layer blobs in manifest order

        Returns:
            Resolved target directory

        Raises:
            ExtractionError: If a layer is corrupt or the filesystem refuses
                a write or delete
        """
        target = Path(target_dir)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ExtractionError(
                str(target), f"cannot create target directory: {e.strerror or e}"
            ) from e
        target = target.resolve()

        self.log.info("Unpacking layers to %s", target)
        for index, blob in enumerate(blobs, start=1):
            self.log.info("Unpacking layer %d of %d", index, len(blobs))
            self.extract_layer(target, blob)
        self.log.info("All layers unpacked")
        return target

    def extract_layer(self, target: Path, blob: LayerBlob) -> None:
        """Apply a single layer to an existing target directory."""
        written: set[str] = set()
        directories: list[TarEntry] = []

        try:
            with tarfile.open(fileobj=io.BytesIO(blob.data), mode="r|*") as archive:
                for member in archive:
                    entry = classify_entry(member)

                    if entry.kind is EntryKind.OPAQUE_WHITEOUT:
                        self._clear_opaque(target, entry.parent, written)
                    elif entry.kind is EntryKind.WHITEOUT:
                        self._remove(target, entry.whiteout_target)
                    elif entry.path:
                        self._write(archive, target, entry)
                        written.add(entry.path)
                        if entry.kind is EntryKind.DIRECTORY:
                            directories.append(entry)

                # Deepest first, so a read-only parent is locked last
                for entry in reversed(directories):
                    self._set_directory_attrs(archive, target, entry)
        except (tarfile.ReadError, tarfile.CompressionError, EOFError, zlib.error) as e:
            raise ExtractionError(blob.digest, f"corrupt layer archive: {e}") from e

    def _write(self, archive: tarfile.TarFile, target: Path, entry: TarEntry) -> None:
        dest = self._resolve_inside(target, entry.path)
        member = entry.member

        try:
            if os.path.lexists(dest):
                if os.path.isdir(dest) and not os.path.islink(dest):
                    if not member.isdir():
                        shutil.rmtree(dest)
                else:
                    # tarfile cannot overwrite links or read-only files
                    os.unlink(dest)

            archive.extract(
                member,
                target,
                set_attrs=not member.isdir(),
                numeric_owner=True,
                filter=contained_filter,
            )
        except (tarfile.ReadError, tarfile.CompressionError):
            raise
        except KeyError as e:
            # Stream mode cannot look back for a hard link target that is
            # not on disk
            raise ExtractionError(
                entry.path, f"hard link target {member.linkname} not found"
            ) from e
        except tarfile.TarError as e:
            raise ExtractionError(entry.path, str(e)) from e
        except OSError as e:
            raise ExtractionError(entry.path, e.strerror or str(e)) from e

        if self.restore_xattrs:
            self._apply_xattrs(dest, entry)

    def _set_directory_attrs(
        self, archive: tarfile.TarFile, target: Path, entry: TarEntry
    ) -> None:
        dest = self._resolve_inside(target, entry.path)
        if dest.is_symlink() or not dest.is_dir():
            # Replaced later in the same layer
            return
        try:
            archive.chown(entry.member, str(dest), True)
            os.chmod(dest, entry.member.mode & 0o7777)
        except tarfile.ExtractError as e:
            raise ExtractionError(entry.path, str(e)) from e
        except OSError as e:
            raise ExtractionError(entry.path, e.strerror or str(e)) from e

    def _apply_xattrs(self, dest: Path, entry: TarEntry) -> None:
        attrs = {
            key[len(XATTR_PAX_PREFIX):]: value
            for key, value in entry.member.pax_headers.items()
            if key.startswith(XATTR_PAX_PREFIX)
        }
        if not attrs:
            return
        if not hasattr(os, "setxattr"):
            self.log.debug("Skipping xattrs on %s: not supported by platform", entry.path)
            return

        for name, value in attrs.items():
            try:
                os.setxattr(
                    dest,
                    name,
                    value.encode("utf-8", "surrogateescape"),
                    follow_symlinks=False,
                )
            except OSError as e:
                if e.errno not in _UNSUPPORTED_XATTR_ERRNOS:
                    raise ExtractionError(
                        entry.path, f"cannot set xattr {name}: {e.strerror or e}"
                    ) from e
                self.log.debug("Skipping xattr %s on %s: %s", name, entry.path, e.strerror)

    def _resolve_inside(self, target: Path, relative: str) -> Path:
        """Host path of ``relative``; the last component is not followed."""
        return Path(resolve_in_root(str(target), relative))

    def _remove(self, target: Path, relative: str) -> None:
        path = self._resolve_inside(target, relative)
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            elif os.path.lexists(path):
                os.unlink(path)
            else:
                self.log.debug("Whiteout target %s absent", relative)
                return
        except OSError as e:
            raise ExtractionError(relative, f"cannot remove: {e.strerror or e}") from e
        self.log.debug("Removed %s", relative)

    def _clear_opaque(self, target: Path, relative: str, written: set[str]) -> None:
        directory = self._resolve_inside(target, relative) if relative else target
        if not directory.is_dir() or directory.is_symlink():
            return
        self._clear_directory(target, directory, relative, written)

    def _clear_directory(
        self, target: Path, directory: Path, relative: str, written: set[str]
    ) -> None:
        """Remove everything below ``directory`` the current layer did not write."""
        try:
            children = sorted(os.listdir(directory))
        except OSError as e:
            raise ExtractionError(relative or ".", f"cannot list: {e.strerror or e}") from e

        for child in children:
            child_relative = posixpath.join(relative, child) if relative else child
            child_path = directory / child
            if child_relative not in written:
                self._remove(target, child_relative)
            elif child_path.is_dir() and not child_path.is_symlink():
                self._clear_directory(target, child_path, child_relative, written)
