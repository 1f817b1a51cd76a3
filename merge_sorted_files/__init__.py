"""
Merge Sorted Files

A Python package for merging many individually sorted text files into one
sorted stream without loading them into memory.

Modules:
    merge.heap: The lazy k-way merge engine (Merger, StreamCursor)
    merge.merge_sorted_files: File discovery and the merge-sorted-files command
"""

__version__ = "1.0.0"

from .merge.heap import Merger, MergeError, OutOfOrderError, StreamCursor
from .merge.merge_sorted_files import get_all_files, merge_sorted_files

__all__ = [
    "Merger",
    "StreamCursor",
    "MergeError",
    "OutOfOrderError",
    "merge_sorted_files",
    "get_all_files",
    "__version__",
]
