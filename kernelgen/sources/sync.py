"""Repository synchronizer.

Idempotent clone-or-update of the named source trees that make up a
build workspace. A missing tree is cloned; an existing tree is updated
in place with a fast-forward-only pull, so an update never attempts to
resolve conflicts and a failed update leaves the tree untouched.

Sync failures are returned, not raised: the caller decides whether a
tree is essential. A stale-but-present tree is usually still buildable.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from kernelgen.types import SyncState

if TYPE_CHECKING:
    from kernelgen.devices.schema import RepoSchema

logger = logging.getLogger(__name__)

# Never block on a credential prompt
GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}


class SyncError(Exception):
    """Raised when an essential source tree is unavailable."""

    def __init__(self, message: str, code: str = "sync_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass
class SourceTree:
    """A named, independently-versioned source tree in the workspace.

    Attributes:
        name: Identity of the tree (also its workspace subdirectory).
        url: Canonical clone URL.
        path: Local checkout path.
        branch: Optional branch to clone.
        state: Current synchronization state.
    """

    name: str
    url: str
    path: Path
    branch: str | None = None
    state: SyncState = SyncState.ABSENT

    @classmethod
    def from_repo(cls, name: str, repo: RepoSchema, workspace: Path) -> SourceTree:
        """Create a tree for a repository inside the workspace."""
        path = workspace / name
        return cls(
            name=name,
            url=repo.url,
            path=path,
            branch=repo.branch,
            state=SyncState.CLONED if path.exists() else SyncState.ABSENT,
        )

    @property
    def present(self) -> bool:
        """Whether a checkout exists on disk."""
        return self.path.is_dir()


@dataclass
class SyncResult:
    """Result of synchronizing one source tree.

    Attributes:
        tree: Name of the tree.
        action: 'clone' or 'update'.
        state: State of the tree after the attempt.
        success: Whether git succeeded.
        error_message: Error text if git failed.
    """

    tree: str
    action: str
    state: SyncState
    success: bool
    error_message: str | None = None


def compose_git_command(tree: SourceTree) -> list[str]:
    """Compose the clone or update command for a tree.

    Args:
        tree: Source tree to synchronize.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    if tree.present:
        return ["git", "pull", "--ff-only"]

    cmd = ["git", "clone"]
    if tree.branch:
        cmd.extend(["--branch", tree.branch])
    cmd.extend([tree.url, str(tree.path)])
    return cmd


def _run_git(cmd: list[str], cwd: Path, timeout: int | None) -> str | None:
    """Run a git command and return an error message on failure."""
    env = dict(os.environ)
    env.update(GIT_ENV)
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return f"git timed out after {timeout}s"
    except OSError as e:
        return f"failed to run git: {e}"

    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip().splitlines()
        reason = detail[-1] if detail else "no output"
        return f"git exited with code {result.returncode}: {reason}"
    return None


def sync_tree(tree: SourceTree, timeout: int | None = None) -> SyncResult:
    """Clone a missing tree or update an existing one.

    Safe to call repeatedly: an existing checkout is always updated in
    place, never re-cloned.

    Args:
        tree: Source tree to synchronize; its state is updated.
        timeout: Timeout in seconds for the git command.

    Returns:
        SyncResult describing the attempt.
    """
    cmd = compose_git_command(tree)

    if tree.present:
        logger.info("Updating %s repository...", tree.name)
        error = _run_git(cmd, cwd=tree.path, timeout=timeout)
        if error:
            tree.state = SyncState.STALE
            logger.warning(
                "Update of %s failed, using existing tree: %s", tree.name, error
            )
            return SyncResult(tree.name, "update", tree.state, False, error)
        tree.state = SyncState.UPDATED
        return SyncResult(tree.name, "update", tree.state, True)

    logger.info("Cloning %s repository from %s...", tree.name, tree.url)
    tree.path.parent.mkdir(parents=True, exist_ok=True)
    error = _run_git(cmd, cwd=tree.path.parent, timeout=timeout)
    if error:
        tree.state = SyncState.CLONED if tree.present else SyncState.ABSENT
        logger.warning("Clone of %s failed: %s", tree.name, error)
        return SyncResult(tree.name, "clone", tree.state, False, error)

    tree.state = SyncState.CLONED
    return SyncResult(tree.name, "clone", tree.state, True)


def require_tree(tree: SourceTree) -> None:
    """Ensure an essential tree is present after synchronization.

    Raises:
        SyncError: If the tree has no checkout on disk.
    """
    if not tree.present:
        raise SyncError(
            f"Required source tree '{tree.name}' is not available at {tree.path}",
            code="base_tree_missing",
        )


__all__ = [
    "SourceTree",
    "SyncError",
    "SyncResult",
    "compose_git_command",
    "require_tree",
    "sync_tree",
]
