"""File tree helpers shared by the integrator and packager.

This module handles:
- Merging a directory tree into another (``cp -r src/* dest/`` semantics)
- Copying single files
- Computing a deterministic content hash of a directory tree
"""

from __future__ import annotations

import hashlib
import logging
import shutil
import stat
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)


class TreeCopyError(Exception):
    """Raised when copying into a tree fails."""

    def __init__(self, message: str, code: str = "tree_copy_error") -> None:
        super().__init__(message)
        self.code = code


def copy_file(source: Path, dest: Path) -> None:
    """Copy a single file, creating parent directories.

    Raises:
        TreeCopyError: If the copy fails.
    """
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, dest)
    except OSError as e:
        raise TreeCopyError(
            f"Failed to copy {source} -> {dest}: {e}",
            code="file_copy_error",
        ) from e


def copy_tree(source_dir: Path, dest_dir: Path) -> int:
    """Merge the contents of source_dir into dest_dir.

    Existing files in dest_dir are overwritten, other files are left in
    place. Symlinks are copied as their target content and must not point
    outside source_dir.

    Args:
        source_dir: Directory whose contents are copied.
        dest_dir: Destination directory (created if missing).

    Returns:
        Number of files copied.

    Raises:
        TreeCopyError: If the source is not a directory or a copy fails.
    """
    if not source_dir.is_dir():
        raise TreeCopyError(
            f"Source directory not found: {source_dir}", code="source_not_found"
        )

    source_resolved = source_dir.resolve()
    copied = 0

    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        for item in sorted(source_dir.rglob("*")):
            dest_path = dest_dir / item.relative_to(source_dir)

            if item.is_symlink():
                target = item.resolve()
                try:
                    target.relative_to(source_resolved)
                except ValueError:
                    raise TreeCopyError(
                        f"Symlink {item} points outside source tree: {target}",
                        code="symlink_escape",
                    ) from None

            if item.is_dir():
                dest_path.mkdir(parents=True, exist_ok=True)
            elif item.is_file():
                dest_path.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(item.resolve() if item.is_symlink() else item, dest_path)
                copied += 1

    except OSError as e:
        raise TreeCopyError(
            f"Failed to copy directory {source_dir}: {e}",
            code="dir_copy_error",
        ) from e

    logger.debug("Copied %d files from %s to %s", copied, source_dir, dest_dir)
    return copied


def compute_tree_hash(directory: Path, exclude: Iterable[str] = (".git",)) -> str:
    """Compute a deterministic hash of a directory tree.

    The hash covers sorted relative paths, file contents and the lower
    nine permission bits. Any path with a component listed in exclude is
    ignored.

    Args:
        directory: Directory to hash.
        exclude: Path component names to skip.

    Returns:
        SHA-256 hex digest of the tree.
    """
    hasher = hashlib.sha256()

    if not directory.exists():
        return hasher.hexdigest()

    excluded = set(exclude)

    for path in sorted(directory.rglob("*")):
        if not path.is_file():
            continue

        rel = path.relative_to(directory)
        if excluded.intersection(rel.parts):
            continue

        mode = stat.S_IMODE(path.stat().st_mode)

        # path\0mode\0content\0
        hasher.update(rel.as_posix().encode("utf-8"))
        hasher.update(b"\0")
        hasher.update(f"{mode:o}".encode())
        hasher.update(b"\0")
        hasher.update(path.read_bytes())
        hasher.update(b"\0")

    return hasher.hexdigest()


__all__ = ["TreeCopyError", "compute_tree_hash", "copy_file", "copy_tree"]
