"""Content digest validation for downloaded blobs."""

import hashlib
import re
from typing import Union

# algorithm:hex, restricted to the algorithms registries hand out
DIGEST_PATTERN = re.compile(r"^(sha256|sha512):([a-f0-9]+)$")

_HEX_LENGTHS = {"sha256": 64, "sha512": 128}


def validate_digest(digest: str) -> bool:
    """Validate digest format.

    Args:
        digest: Digest string to validate

    Returns:
        True if the digest names a supported algorithm with a full-length hash
    """
    if not isinstance(digest, str):
        return False

    match = DIGEST_PATTERN.match(digest)
    if not match:
        return False

    algorithm, hex_part = match.groups()
    return len(hex_part) == _HEX_LENGTHS[algorithm]


def calculate_digest(data: Union[bytes, bytearray], algorithm: str = "sha256") -> str:
    """Calculate the ``algorithm:hex`` digest of data."""
    if algorithm not in _HEX_LENGTHS:
        raise ValueError(f"Unsupported algorithm: {algorithm}")
    return f"{algorithm}:{hashlib.new(algorithm, data).hexdigest()}"


def verify_digest(data: Union[bytes, bytearray], expected_digest: str) -> bool:
    """Verify data matches expected digest.

    Args:
        data: Blob content
        expected_digest: Digest the registry addressed the blob by

    Returns:
        True if data matches digest

    Raises:
        ValueError: If digest format is invalid
    """
    if not validate_digest(expected_digest):
        raise ValueError(f"Invalid digest format: {expected_digest}")

    algorithm, _ = expected_digest.split(":", 1)
    return calculate_digest(data, algorithm) == expected_digest
