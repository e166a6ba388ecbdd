"""Tests for pipeline.py module.

Every stage's external work is mocked on the pipeline module; the
workspace is a real directory so filesystem invariants can be checked.
"""

import json
from pathlib import Path
from unittest.mock import DEFAULT, MagicMock, patch

import pytest

from kernelgen.builds.executor import BuildFailedError, BuildResult, build
from kernelgen.config import Settings
from kernelgen.devices import BUILTIN_PROFILES
from kernelgen.integrate.service import IntegrationResult
from kernelgen.kconfig.composer import EffectiveConfig
from kernelgen.packaging import (
    OutputPackage,
    PackageManifest,
    PackagingError,
    package,
)
from kernelgen.pipeline import PipelineError, run_pipeline, source_trees
from kernelgen.sources.sync import SyncResult
from kernelgen.sources.tree import compute_tree_hash
from kernelgen.toolchain import EnvironmentCheckError, Toolchain
from kernelgen.types import (
    ArtifactKind,
    BuildArtifact,
    FeatureToggles,
    IntegrationOutcome,
    StageStatus,
    StrategyKind,
    SyncState,
)

PROFILE = BUILTIN_PROFILES["garnet"]
STOCK = FeatureToggles(privilege_overlay=False, hiding_overlay=False)
FULL = FeatureToggles()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a workspace with a kernel checkout."""
    workspace = tmp_path / "ws"
    kernel = workspace / "kernel"
    kernel.mkdir(parents=True)
    (kernel / "Makefile").write_text("VERSION = 5\n")
    return Settings(workspace_dir=workspace, jobs=2)


@pytest.fixture
def mocks(settings: Settings):
    """Patch every stage's external work on the pipeline module."""
    image = settings.workspace_dir / "kernel" / "out" / "Image.gz"
    with patch.multiple(
        "kernelgen.pipeline",
        check_tools=DEFAULT,
        detect_toolchain=DEFAULT,
        sync_tree=DEFAULT,
        compose_config=DEFAULT,
        build=DEFAULT,
        package=DEFAULT,
    ) as mocked:
        mocked["detect_toolchain"].return_value = Toolchain(
            "system-gcc", "aarch64-linux-gnu-", "aarch64-linux-gnu-gcc"
        )
        mocked["sync_tree"].side_effect = lambda tree, timeout=None: SyncResult(
            tree.name, "update", SyncState.UPDATED, True
        )
        mocked["compose_config"].return_value = EffectiveConfig(
            path=settings.workspace_dir / "kernel" / "out" / ".config",
            values={},
            baseline="gki_defconfig",
            layers=["gki_defconfig"],
        )
        mocked["build"].return_value = BuildResult(
            image=MagicMock(),
            log_path=settings.output_dir / "build.log",
            images=[BuildArtifact(ArtifactKind.COMPRESSED_IMAGE, image)],
        )
        mocked["package"].return_value = OutputPackage(
            manifest=PackageManifest(("garnet",), "13-15", "Garnet Kernel"),
            files=(settings.output_dir / "Image.gz",),
            archive_path=settings.output_dir / "Garnet-Kernel.zip",
        )
        yield mocked


def _integration(outcome, warnings=()):
    def run(feature, enabled, **kwargs):
        result = IntegrationResult(feature=feature.name, enabled=enabled)
        if enabled:
            result.strategy = StrategyKind.MANUAL
            result.outcome = outcome.get(feature.name, IntegrationOutcome.SUCCESS)
            if result.outcome != IntegrationOutcome.SUCCESS:
                result.warnings.extend(warnings)
        return result

    return run


class TestSourceTrees:
    """Tests for source_trees."""

    def test_stock_skips_overlays(self, tmp_path):
        """Disabled overlays are not synchronized."""
        names = [t.name for t in source_trees(PROFILE, STOCK, tmp_path)]
        assert names == ["kernel", "devicetrees", "modules"]

    def test_enabled_overlays(self, tmp_path):
        """Enabled overlays follow the device trees."""
        names = [t.name for t in source_trees(PROFILE, FULL, tmp_path)]
        assert names == ["kernel", "devicetrees", "modules", "sukisu-ultra", "susfs"]


class TestStockBuild:
    """All overlays disabled."""

    def test_no_integration_mutations(self, settings, mocks):
        """The kernel tree is unchanged and no feature fragment is appended."""
        kernel = settings.workspace_dir / "kernel"
        before = compute_tree_hash(kernel)

        report = run_pipeline(settings, STOCK, PROFILE)

        assert compute_tree_hash(kernel) == before
        assert all(
            r.outcome == IntegrationOutcome.NONE_ATTEMPTED
            for r in report.integrations
        )
        assert report.get_stage("integrate").status == StageStatus.SKIPPED
        assert mocks["compose_config"].call_args.args[2] == []
        assert mocks["sync_tree"].call_count == 3
        assert mocks["package"].call_args.args[1] == []

    def test_stage_order(self, settings, mocks):
        """Stages are reported in execution order."""
        report = run_pipeline(settings, STOCK, PROFILE)
        assert [s.name for s in report.stages] == [
            "environment",
            "sync",
            "integrate",
            "config",
            "build",
            "package",
        ]
        assert report.warning_count == 0
        assert report.archive_path == settings.output_dir / "Garnet-Kernel.zip"

    def test_transcripts_created(self, settings, mocks):
        """Both transcripts live in the output directory."""
        report = run_pipeline(settings, STOCK, PROFILE)
        assert report.integration_log.is_file()
        assert report.build_log.is_file()
        assert report.build_log.parent == settings.output_dir

    def test_report_serializes(self, settings, mocks):
        """The report converts to JSON."""
        data = json.loads(json.dumps(run_pipeline(settings, STOCK, PROFILE).to_dict()))
        assert data["device_id"] == "garnet"
        assert data["features"]["privilege_overlay"] is False
        assert data["artifacts"][0]["kind"] == "compressed-image"


class TestOverlayBuild:
    """Both overlays enabled."""

    def test_partial_integration_proceeds(self, settings, mocks):
        """A partial privilege overlay degrades the stage; the build continues."""
        outcome = {"sukisu-ultra": IntegrationOutcome.PARTIAL}
        with patch(
            "kernelgen.pipeline.integrate",
            side_effect=_integration(outcome, ["2 required files missing"]),
        ):
            report = run_pipeline(settings, FULL, PROFILE)

        stage = report.get_stage("integrate")
        assert stage.status == StageStatus.DEGRADED
        assert stage.warnings == ["2 required files missing"]
        assert report.warning_count == 1
        assert mocks["build"].called
        assert mocks["package"].called

    def test_outcome_without_warnings_is_counted(self, settings, mocks):
        """A failed overlay with no warnings of its own still adds one."""
        outcome = {"susfs": IntegrationOutcome.FAILED}
        with patch("kernelgen.pipeline.integrate", side_effect=_integration(outcome)):
            report = run_pipeline(settings, FULL, PROFILE)

        assert report.warning_count == 1
        assert "SUSFS integration failed" in report.get_stage("integrate").warnings

    def test_feature_fragments_and_note(self, settings, mocks):
        """Both feature fragments are composed and overlap is noted."""
        with patch("kernelgen.pipeline.integrate", side_effect=_integration({})):
            report = run_pipeline(settings, FULL, PROFILE)

        fragments = mocks["compose_config"].call_args.args[2]
        assert [f.name for f in fragments] == ["root-features", "sukisu-ultra", "susfs"]
        stage = report.get_stage("integrate")
        assert stage.status == StageStatus.SUCCEEDED
        assert any("overlapping changes" in n for n in stage.notes)
        assert mocks["sync_tree"].call_count == 5

    def test_no_overlap_note_when_one_overlay_failed(self, settings, mocks):
        """An overlay that changed nothing is not reported as overlapping."""
        outcome = {"susfs": IntegrationOutcome.FAILED}
        with patch(
            "kernelgen.pipeline.integrate",
            side_effect=_integration(outcome, ["SUSFS checkout missing"]),
        ):
            report = run_pipeline(settings, FULL, PROFILE)

        stage = report.get_stage("integrate")
        assert stage.status == StageStatus.DEGRADED
        assert not any("overlapping changes" in n for n in stage.notes)

    def test_overlap_note_with_partial_overlay(self, settings, mocks):
        """A partial overlay still counts as having modified the tree."""
        outcome = {"sukisu-ultra": IntegrationOutcome.PARTIAL}
        with patch(
            "kernelgen.pipeline.integrate",
            side_effect=_integration(outcome, ["1 required file missing"]),
        ):
            report = run_pipeline(settings, FULL, PROFILE)

        notes = report.get_stage("integrate").notes
        assert any("SukiSU Ultra, SUSFS" in n for n in notes)


class TestFatalStages:
    """Fatal failures stop the pipeline at the right stage."""

    def test_environment_failure_before_mutation(self, tmp_path, mocks):
        """A missing tool fails before anything is created."""
        settings = Settings(workspace_dir=tmp_path / "fresh", jobs=1)
        mocks["check_tools"].side_effect = EnvironmentCheckError(
            "Missing dependencies: bc", code="missing_tools"
        )

        with pytest.raises(PipelineError) as exc_info:
            run_pipeline(settings, FULL, PROFILE)

        assert exc_info.value.stage == "environment"
        assert exc_info.value.code == "missing_tools"
        assert not (tmp_path / "fresh").exists()
        mocks["sync_tree"].assert_not_called()

    def test_missing_kernel_tree(self, tmp_path, mocks):
        """A kernel tree that could not be cloned is fatal."""
        settings = Settings(workspace_dir=tmp_path / "fresh", jobs=1)
        mocks["sync_tree"].side_effect = lambda tree, timeout=None: SyncResult(
            tree.name, "clone", SyncState.ABSENT, False, "network unreachable"
        )

        with pytest.raises(PipelineError) as exc_info:
            run_pipeline(settings, STOCK, PROFILE)

        assert exc_info.value.stage == "sync"
        assert exc_info.value.code == "base_tree_missing"
        mocks["compose_config"].assert_not_called()

    def test_stale_kernel_tree_continues(self, settings, mocks):
        """A failed update of an existing checkout is only a warning."""
        mocks["sync_tree"].side_effect = lambda tree, timeout=None: SyncResult(
            tree.name, "update", SyncState.STALE, False, "network unreachable"
        )

        report = run_pipeline(settings, STOCK, PROFILE)

        assert report.get_stage("sync").status == StageStatus.DEGRADED
        assert report.warning_count == 3

    def test_build_failure(self, settings, mocks):
        """A failed image build names the build transcript."""
        log_path = settings.output_dir / "build.log"
        mocks["build"].side_effect = BuildFailedError(
            "Kernel build failed with exit code 2", exit_code=2, log_path=log_path
        )

        with pytest.raises(PipelineError) as exc_info:
            run_pipeline(settings, STOCK, PROFILE)

        error = exc_info.value
        assert error.stage == "build"
        assert error.log_path == log_path
        assert error.report.get_stage("build").status == StageStatus.FAILED
        mocks["package"].assert_not_called()

    def test_packaging_failure_keeps_build(self, settings, mocks):
        """Packaging failure is attributed to packaging alone."""
        mocks["package"].side_effect = PackagingError(
            "No kernel image found to package", code="no_image"
        )

        with pytest.raises(PipelineError) as exc_info:
            run_pipeline(settings, STOCK, PROFILE)

        report = exc_info.value.report
        assert exc_info.value.stage == "package"
        assert exc_info.value.code == "no_image"
        assert report.get_stage("build").status == StageStatus.SUCCEEDED
        assert report.get_stage("package").status == StageStatus.FAILED

    def test_build_without_image_stays_succeeded(self, settings, mocks):
        """A clean build that left no image fails only at packaging."""
        mocks["build"].side_effect = build
        mocks["package"].side_effect = package
        make = MagicMock(success=True, exit_code=0, duration=1.0, error_message=None)

        with patch("kernelgen.builds.executor.run_make", return_value=make):
            with pytest.raises(PipelineError) as exc_info:
                run_pipeline(settings, STOCK, PROFILE)

        report = exc_info.value.report
        stage = report.get_stage("build")
        assert exc_info.value.stage == "package"
        assert exc_info.value.code == "no_image"
        assert stage.status == StageStatus.SUCCEEDED
        assert stage.warnings == []
        assert any("No kernel image" in n for n in stage.notes)
        assert report.get_stage("package").status == StageStatus.FAILED
