"""Tests for integrate/patches.py module.

Uses mocked subprocess for the protocol checks and the real ``patch``
binary (skipped when absent) for end-to-end behavior.
"""

import shutil
from unittest.mock import MagicMock, patch

import pytest

from kernelgen.integrate.patches import (
    apply_patch,
    apply_patch_set,
    compose_patch_command,
    discover_patches,
)
from kernelgen.sources.tree import compute_tree_hash
from kernelgen.types import PatchStatus

requires_patch = pytest.mark.skipif(
    shutil.which("patch") is None, reason="patch not found"
)

GOOD_PATCH = """\
--- a/hello.c
+++ b/hello.c
@@ -1 +1 @@
-old line
+new line
"""

BAD_PATCH = """\
--- a/hello.c
+++ b/hello.c
@@ -1 +1 @@
-this line does not exist
+replacement
"""


@pytest.fixture
def tree(tmp_path):
    """Create a tiny source tree."""
    root = tmp_path / "tree"
    root.mkdir()
    (root / "hello.c").write_text("old line\n")
    return root


class TestDiscoverPatches:
    """Tests for discover_patches."""

    def test_sorted_order(self, tmp_path):
        """Patches are returned sorted by name."""
        for name in ("0002-b.patch", "0001-a.patch", "notes.txt"):
            (tmp_path / name).write_text("")
        names = [p.name for p in discover_patches(tmp_path)]
        assert names == ["0001-a.patch", "0002-b.patch"]

    def test_missing_dir(self, tmp_path):
        """A missing directory yields no patches."""
        assert discover_patches(tmp_path / "none") == []
        assert discover_patches(None) == []


class TestComposePatchCommand:
    """Tests for compose_patch_command."""

    def test_dry_run(self, tmp_path):
        """Dry run adds --dry-run."""
        cmd = compose_patch_command(tmp_path / "x.patch", dry_run=True)
        assert cmd[:2] == ["patch", "-p1"]
        assert "--dry-run" in cmd
        assert "--batch" in cmd
        assert cmd[-2:] == ["-i", str(tmp_path / "x.patch")]

    def test_commit(self, tmp_path):
        """The commit run has no --dry-run."""
        assert "--dry-run" not in compose_patch_command(tmp_path / "x.patch")


class TestApplyPatchMocked:
    """Tests for the dry-run/commit protocol with mocked patch."""

    def test_dry_run_failure_never_commits(self, tmp_path):
        """A failed dry run skips the patch without a real run."""
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(
                returncode=1, stdout="Hunk #1 FAILED\n", stderr=""
            )
            result = apply_patch(tmp_path / "x.patch", tmp_path)

        assert result.status == PatchStatus.SKIPPED
        assert mock_run.call_count == 1
        assert "--dry-run" in mock_run.call_args.args[0]

    def test_dry_run_success_commits(self, tmp_path):
        """A clean dry run is followed by the real application."""
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
            result = apply_patch(tmp_path / "x.patch", tmp_path)

        assert result.status == PatchStatus.APPLIED
        assert mock_run.call_count == 2
        assert "--dry-run" not in mock_run.call_args_list[1].args[0]

    def test_commit_failure(self, tmp_path):
        """A commit run failing after a clean dry run is recorded as failed."""
        with patch("subprocess.run") as mock_run:
            mock_run.side_effect = [
                MagicMock(returncode=0, stdout="", stderr=""),
                MagicMock(returncode=1, stdout="", stderr="write error\n"),
            ]
            result = apply_patch(tmp_path / "x.patch", tmp_path)

        assert result.status == PatchStatus.FAILED
        assert result.message == "write error"

    def test_missing_binary(self, tmp_path):
        """A missing patch binary skips the patch."""
        with patch("subprocess.run", side_effect=FileNotFoundError("patch")):
            result = apply_patch(tmp_path / "x.patch", tmp_path)
        assert result.status == PatchStatus.SKIPPED


@requires_patch
class TestApplyPatchReal:
    """Tests against the real patch binary."""

    def test_good_patch_applies(self, tmp_path, tree):
        """A clean patch is applied."""
        good = tmp_path / "0001-good.patch"
        good.write_text(GOOD_PATCH)

        result = apply_patch(good, tree)

        assert result.status == PatchStatus.APPLIED
        assert (tree / "hello.c").read_text() == "new line\n"

    def test_failing_patch_leaves_tree_unchanged(self, tmp_path, tree):
        """A patch engineered to fail its dry run never touches the tree."""
        bad = tmp_path / "0001-bad.patch"
        bad.write_text(BAD_PATCH)
        before = compute_tree_hash(tree)

        result = apply_patch(bad, tree)

        assert result.status == PatchStatus.SKIPPED
        assert compute_tree_hash(tree) == before
        assert sorted(p.name for p in tree.iterdir()) == ["hello.c"]

    def test_no_fail_fast(self, tmp_path, tree):
        """A later patch is attempted after an earlier one is skipped."""
        patches_dir = tmp_path / "patches"
        patches_dir.mkdir()
        (patches_dir / "0001-bad.patch").write_text(BAD_PATCH)
        (patches_dir / "0002-good.patch").write_text(GOOD_PATCH)

        report = apply_patch_set(discover_patches(patches_dir), tree)

        assert [r.status for r in report.results] == [
            PatchStatus.SKIPPED,
            PatchStatus.APPLIED,
        ]
        assert report.summary() == "1/2"
        assert (tree / "hello.c").read_text() == "new line\n"


class TestPatchSetReport:
    """Tests for PatchSetReport counting."""

    def test_counts(self, tmp_path):
        """applied/total is counted per result."""
        with patch("kernelgen.integrate.patches.apply_patch") as mock_apply:
            mock_apply.side_effect = [
                MagicMock(status=PatchStatus.APPLIED),
                MagicMock(status=PatchStatus.FAILED),
                MagicMock(status=PatchStatus.SKIPPED),
            ]
            report = apply_patch_set(
                [tmp_path / "a", tmp_path / "b", tmp_path / "c"], tmp_path
            )

        assert report.total == 3
        assert report.applied == 1
        assert len(report.not_applied) == 2
        assert report.summary() == "1/3"
