"""Source tree management.

This module handles:
- Idempotent clone-or-update of workspace source trees
- Tree copy and content hashing helpers
"""

from kernelgen.sources.sync import SourceTree, SyncError, SyncResult, sync_tree
from kernelgen.sources.tree import TreeCopyError, compute_tree_hash, copy_tree

__all__ = [
    "SourceTree",
    "SyncError",
    "SyncResult",
    "TreeCopyError",
    "compute_tree_hash",
    "copy_tree",
    "sync_tree",
]
