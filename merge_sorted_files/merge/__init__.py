"""Merge module - Lazy k-way merge of sorted line streams."""

from .heap import Merger, MergeError, OutOfOrderError, StreamCursor
from .merge_sorted_files import get_all_files, merge_sorted_files

__all__ = [
    "Merger",
    "StreamCursor",
    "MergeError",
    "OutOfOrderError",
    "merge_sorted_files",
    "get_all_files",
]
