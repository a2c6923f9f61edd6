"""Utility functions for the fleet build client."""

from .digest import calculate_digest, validate_digest, verify_digest
from .state import find_image_url

__all__ = ["calculate_digest", "validate_digest", "verify_digest", "find_image_url"]
