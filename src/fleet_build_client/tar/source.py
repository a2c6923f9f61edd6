"""Gzip-compressed tar archives of local build sources."""

import io
import logging
import tarfile
from pathlib import Path
from typing import Union

from ..exceptions import BuildError

logger = logging.getLogger(__name__)


def create_source_archive(source_dir: Union[str, Path]) -> bytes:
    """Pack a directory into a gzip-compressed tar rooted at ``.``.

    Args:
        source_dir: Directory holding the Dockerfile and build context

    Returns:
        Compressed archive bytes

    Raises:
        BuildError: If the directory cannot be read
    """
    source = Path(source_dir)
    if not source.is_dir():
        raise BuildError(f"Build source {source} is not a directory")

    logger.info("Creating tar gz stream from %s", source)
    buffer = io.BytesIO()
    try:
        with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
            archive.add(str(source), arcname=".")
    except OSError as e:
        raise BuildError(f"Creating tar gz stream from {source} failed: {e}") from e

    return buffer.getvalue()
