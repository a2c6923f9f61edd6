"""Layer extraction and source packing."""

from .extract import EntryKind, LayerMergeEngine, TarEntry, classify_entry, order_blobs
from .source import create_source_archive

__all__ = [
    "EntryKind",
    "LayerMergeEngine",
    "TarEntry",
    "classify_entry",
    "create_source_archive",
    "order_blobs",
]
