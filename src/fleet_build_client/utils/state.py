"""Image lookup inside device state documents."""

from typing import Any, Optional

DEFAULT_MAX_DEPTH = 16


def find_image_url(state: Any, max_depth: int = DEFAULT_MAX_DEPTH) -> Optional[str]:
    """Find the first ``"image"`` string in a nested device state document.

    Objects are searched depth-first in key order. Arrays and scalars are not
    descended into, matching the shape of the supervisor target state.

    Args:
        state: Decoded JSON document
        max_depth: Number of nested objects to descend through

    Returns:
        Image reference string, or None if no object holds one
    """
    if max_depth < 0 or not isinstance(state, dict):
        return None

    for key, value in state.items():
        if key == "image":
            return value if isinstance(value, str) else None

        found = find_image_url(value, max_depth - 1)
        if found is not None:
            return found

    return None
