"""Clean operation.

Removes compiled outputs and transcripts while preserving every
synchronized source tree and the feature integration already applied
to the kernel tree.
"""

from __future__ import annotations

import fnmatch
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from kernelgen.packaging.anykernel import reset_working_copy

logger = logging.getLogger(__name__)

OBJECT_PATTERNS = (
    "*.o",
    "*.ko",
    ".*.cmd",
    "*.mod",
    "modules.builtin",
    "modules.order",
)
OBJECT_DIRS = (".tmp_versions",)


@dataclass
class CleanResult:
    """What a clean removed.

    Attributes:
        removed_dirs: Directories removed.
        removed_files: Number of files removed.
    """

    removed_dirs: list[Path] = field(default_factory=list)
    removed_files: int = 0


def _remove_objects(kernel_dir: Path, result: CleanResult) -> None:
    for path in sorted(kernel_dir.rglob("*"), reverse=True):
        if ".git" in path.relative_to(kernel_dir).parts:
            continue
        if path.is_dir() and not path.is_symlink():
            if path.name in OBJECT_DIRS:
                shutil.rmtree(path)
                result.removed_dirs.append(path)
        elif path.is_file() and any(
            fnmatch.fnmatch(path.name, p) for p in OBJECT_PATTERNS
        ):
            path.unlink()
            result.removed_files += 1


def clean_workspace(
    workspace_dir: Path,
    output_dir: Path,
    kernel_tree: str = "kernel",
    build_output: str = "out",
    framework_tree: str = "AnyKernel3",
) -> CleanResult:
    """Clean build artifacts from a workspace.

    Args:
        workspace_dir: Workspace root.
        output_dir: Output directory with final artifacts and transcripts.
        kernel_tree: Name of the kernel tree in the workspace.
        build_output: Out-of-tree build directory inside the kernel tree.
        framework_tree: Name of the packaging framework tree.

    Returns:
        CleanResult describing what was removed.
    """
    logger.info("Cleaning build artifacts...")
    result = CleanResult()

    kernel_dir = workspace_dir / kernel_tree
    if kernel_dir.is_dir():
        out_dir = kernel_dir / build_output
        if out_dir.is_dir():
            logger.info("Removing kernel build output directory...")
            shutil.rmtree(out_dir)
            result.removed_dirs.append(out_dir)

        _remove_objects(kernel_dir, result)
        logger.info("Preserved kernel source and feature integrations")

    if output_dir.is_dir():
        logger.info("Removing output directory...")
        shutil.rmtree(output_dir)
        result.removed_dirs.append(output_dir)

    framework_dir = workspace_dir / framework_tree
    if framework_dir.is_dir():
        result.removed_files += len(reset_working_copy(framework_dir))
        logger.info("Cleaned %s build artifacts", framework_tree)

    logger.info(
        "Clean complete: %d directories, %d files removed",
        len(result.removed_dirs),
        result.removed_files,
    )
    return result


__all__ = ["CleanResult", "clean_workspace"]
