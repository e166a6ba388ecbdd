"""Patch set application with a dry-run/commit protocol.

Every patch is first applied with ``--dry-run``; only when the trial run
predicts success is the patch applied for real. A patch whose dry run
fails is skipped and never touches the tree. Patches are attempted in
sorted file-name order and independently of one another: a failure does
not stop the remaining patches.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from kernelgen.types import PatchStatus

logger = logging.getLogger(__name__)

PATCH_GLOB = "*.patch"
DEFAULT_STRIP = 1
PATCH_TIMEOUT = 300


@dataclass
class PatchResult:
    """Outcome of one patch.

    Attributes:
        name: Patch file name.
        status: applied, skipped-would-fail or failed.
        message: Last line of patch output when not applied.
    """

    name: str
    status: PatchStatus
    message: str | None = None


@dataclass
class PatchSetReport:
    """Outcome of an ordered patch set."""

    results: list[PatchResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def applied(self) -> int:
        return sum(1 for r in self.results if r.status == PatchStatus.APPLIED)

    @property
    def not_applied(self) -> list[PatchResult]:
        return [r for r in self.results if r.status != PatchStatus.APPLIED]

    def summary(self) -> str:
        """Return an 'applied/total' summary."""
        return f"{self.applied}/{self.total}"


def discover_patches(patches_dir: Path | None) -> list[Path]:
    """List the patches of a patch set in stable order.

    Args:
        patches_dir: Directory holding ``*.patch`` files, or None.

    Returns:
        Patch files sorted by name; empty if the directory is missing.
    """
    if patches_dir is None or not patches_dir.is_dir():
        return []
    return sorted(p for p in patches_dir.glob(PATCH_GLOB) if p.is_file())


def compose_patch_command(
    patch_path: Path, strip: int = DEFAULT_STRIP, dry_run: bool = False
) -> list[str]:
    """Compose a non-interactive ``patch`` invocation."""
    cmd = ["patch", f"-p{strip}", "--batch", "--forward"]
    if dry_run:
        cmd.append("--dry-run")
    cmd.extend(["-i", str(patch_path)])
    return cmd


def _run_patch(cmd: list[str], tree_dir: Path) -> tuple[bool, str]:
    try:
        result = subprocess.run(
            cmd,
            cwd=tree_dir,
            capture_output=True,
            text=True,
            timeout=PATCH_TIMEOUT,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return False, f"patch timed out after {PATCH_TIMEOUT}s"
    except OSError as e:
        return False, f"failed to run patch: {e}"

    lines = (result.stdout or result.stderr or "").strip().splitlines()
    return result.returncode == 0, lines[-1] if lines else ""


def apply_patch(
    patch_path: Path, tree_dir: Path, strip: int = DEFAULT_STRIP
) -> PatchResult:
    """Apply one patch to a tree, gated by a dry run.

    Args:
        patch_path: Patch file.
        tree_dir: Tree the patch applies to.
        strip: Number of leading path components to strip.

    Returns:
        PatchResult for the patch.
    """
    name = patch_path.name
    logger.info("Applying patch: %s", name)

    dry_run_cmd = compose_patch_command(patch_path, strip, dry_run=True)
    ok, output = _run_patch(dry_run_cmd, tree_dir)
    if not ok:
        logger.warning("Patch %s would fail - skipping (%s)", name, output)
        return PatchResult(name, PatchStatus.SKIPPED, output)

    ok, output = _run_patch(compose_patch_command(patch_path, strip), tree_dir)
    if not ok:
        logger.warning("Patch %s failed to apply (%s)", name, output)
        return PatchResult(name, PatchStatus.FAILED, output)

    logger.debug("Patch %s applied", name)
    return PatchResult(name, PatchStatus.APPLIED)


def apply_patch_set(
    patches: list[Path], tree_dir: Path, strip: int = DEFAULT_STRIP
) -> PatchSetReport:
    """Apply every patch of a set, continuing past failures.

    Args:
        patches: Patch files in application order.
        tree_dir: Tree the patches apply to.
        strip: Number of leading path components to strip.

    Returns:
        PatchSetReport with one result per patch.
    """
    report = PatchSetReport()
    for patch_path in patches:
        report.results.append(apply_patch(patch_path, tree_dir, strip))

    if report.total:
        logger.info("Applied %s patches successfully", report.summary())
    return report


__all__ = [
    "PatchResult",
    "PatchSetReport",
    "apply_patch",
    "apply_patch_set",
    "compose_patch_command",
    "discover_patches",
]
