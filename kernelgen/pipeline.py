"""Build pipeline orchestration.

This module runs the stages in order:

    environment -> sync -> integrate -> config -> build -> package

Stages run strictly sequentially in one process; each depends on the
filesystem side effects of the one before. The kernel tree is mutated in
place by the integrate, config and build stages, and no lock is taken:
only one pipeline may run against a workspace at a time. Recovery from
an interrupted run is re-running the pipeline, not rollback.

Fatal errors are raised as PipelineError carrying the stage name and the
transcript to inspect. Non-fatal problems are recorded as warnings on
their stage and counted in the report.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from kernelgen.builds.executor import (
    BuildFailedError,
    BuildResult,
    build,
    build_environment,
)
from kernelgen.config import Settings
from kernelgen.devices.schema import DeviceProfileSchema
from kernelgen.features.builtin import enabled_features, feature_states
from kernelgen.integrate.service import (
    IntegrationResult,
    apply_source_fixups,
    integrate,
)
from kernelgen.kconfig.composer import (
    EffectiveConfig,
    compose_config,
    feature_fragments,
)
from kernelgen.packaging.service import OutputPackage, PackagingError, package
from kernelgen.sources.sync import (
    SourceTree,
    SyncError,
    SyncResult,
    require_tree,
    sync_tree,
)
from kernelgen.toolchain import EnvironmentCheckError, check_tools, detect_toolchain
from kernelgen.types import FeatureToggles, IntegrationOutcome, StageStatus

logger = logging.getLogger(__name__)

KERNEL_TREE = "kernel"
INTEGRATION_LOG = "integration.log"
BUILD_LOG = "build.log"
CHANGED_OUTCOMES = (IntegrationOutcome.SUCCESS, IntegrationOutcome.PARTIAL)


class PipelineError(Exception):
    """Raised when a stage fails fatally."""

    def __init__(
        self,
        message: str,
        stage: str,
        log_path: Path | None = None,
        code: str = "pipeline_error",
        report: PipelineReport | None = None,
    ) -> None:
        super().__init__(message)
        self.stage = stage
        self.log_path = log_path
        self.code = code
        self.report = report


@dataclass
class StageReport:
    """Outcome of one pipeline stage.

    Attributes:
        name: Stage name.
        status: Stage status.
        warnings: Non-fatal problems recorded by the stage.
        notes: Informational findings worth surfacing in the summary.
    """

    name: str
    status: StageStatus = StageStatus.SKIPPED
    warnings: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    def finish(self, warnings: list[str] | None = None) -> None:
        """Mark the stage done, degraded if it recorded warnings."""
        if warnings:
            self.warnings.extend(warnings)
        self.status = StageStatus.DEGRADED if self.warnings else StageStatus.SUCCEEDED


@dataclass
class PipelineReport:
    """End-of-run summary."""

    device_id: str
    toggles: FeatureToggles
    stages: list[StageReport] = field(default_factory=list)
    syncs: list[SyncResult] = field(default_factory=list)
    integrations: list[IntegrationResult] = field(default_factory=list)
    config: EffectiveConfig | None = None
    build: BuildResult | None = None
    output: OutputPackage | None = None
    build_log: Path | None = None
    integration_log: Path | None = None

    def stage(self, name: str) -> StageReport:
        report = StageReport(name)
        self.stages.append(report)
        return report

    def get_stage(self, name: str) -> StageReport | None:
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None

    @property
    def warning_count(self) -> int:
        return sum(len(stage.warnings) for stage in self.stages)

    @property
    def archive_path(self) -> Path | None:
        return self.output.archive_path if self.output else None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "device_id": self.device_id,
            "features": {
                "privilege_overlay": self.toggles.privilege_overlay,
                "hiding_overlay": self.toggles.hiding_overlay,
                "archive": self.toggles.archive,
            },
            "stages": [
                {
                    "name": s.name,
                    "status": s.status.value,
                    "warnings": s.warnings,
                    "notes": s.notes,
                }
                for s in self.stages
            ],
            "sync": [
                {
                    "tree": r.tree,
                    "action": r.action,
                    "state": r.state.value,
                    "success": r.success,
                    "error": r.error_message,
                }
                for r in self.syncs
            ],
            "integration": [
                {
                    "feature": r.feature,
                    "enabled": r.enabled,
                    "strategy": r.strategy.value,
                    "outcome": r.outcome.value,
                    "patches": r.patches.summary() if r.patches else None,
                }
                for r in self.integrations
            ],
            "config": (
                {
                    "baseline": self.config.baseline,
                    "layers": self.config.layers,
                    "normalized": self.config.normalized,
                }
                if self.config
                else None
            ),
            "artifacts": (
                [
                    {"kind": a.kind.value, "path": str(a.path)}
                    for a in self.build.artifacts
                ]
                if self.build
                else []
            ),
            "output_files": (
                [str(p) for p in self.output.files] if self.output else []
            ),
            "archive_path": str(self.archive_path) if self.archive_path else None,
            "warning_count": self.warning_count,
            "build_log": str(self.build_log) if self.build_log else None,
            "integration_log": (
                str(self.integration_log) if self.integration_log else None
            ),
        }


def _fail(
    report: PipelineReport,
    stage: StageReport,
    error: Exception,
    log_path: Path | None = None,
) -> PipelineError:
    stage.status = StageStatus.FAILED
    logger.error("%s stage failed: %s", stage.name, error)
    if log_path is not None:
        logger.error("See transcript: %s", log_path)
    return PipelineError(
        str(error),
        stage=stage.name,
        log_path=log_path,
        code=getattr(error, "code", "pipeline_error"),
        report=report,
    )


def source_trees(
    profile: DeviceProfileSchema, toggles: FeatureToggles, workspace: Path
) -> list[SourceTree]:
    """Return the trees a run needs, kernel first.

    Overlay trees are only included for enabled overlays.
    """
    trees = [SourceTree.from_repo(KERNEL_TREE, profile.kernel, workspace)]
    if profile.devicetrees is not None:
        trees.append(
            SourceTree.from_repo("devicetrees", profile.devicetrees, workspace)
        )
    if profile.modules is not None:
        trees.append(SourceTree.from_repo("modules", profile.modules, workspace))
    for feature, enabled in feature_states(toggles):
        if enabled:
            trees.append(SourceTree.from_repo(feature.name, feature.repo, workspace))
    return trees


def run_pipeline(
    settings: Settings,
    toggles: FeatureToggles,
    profile: DeviceProfileSchema,
    now: datetime | None = None,
) -> PipelineReport:
    """Run the whole build pipeline.

    Args:
        settings: Effective settings (workspace, flags, timeouts).
        toggles: Resolved feature switches.
        profile: Device profile to build for.
        now: Timestamp for the archive name.

    Returns:
        PipelineReport for a completed run.

    Raises:
        PipelineError: If a stage fails fatally. The partial report is
            attached as ``report``.
    """
    workspace = settings.workspace_dir
    output_dir = settings.output_dir
    kernel_dir = workspace / KERNEL_TREE
    report = PipelineReport(
        device_id=profile.device_id,
        toggles=toggles,
        build_log=output_dir / BUILD_LOG,
        integration_log=output_dir / INTEGRATION_LOG,
    )
    features = enabled_features(toggles)
    logger.info("Starting kernel build for %s (%s)", profile.name, profile.device_id)
    logger.info(
        "Features: %s", ", ".join(f.display_name for f in features) or "none (stock)"
    )

    # Environment: nothing is mutated before this passes
    stage = report.stage("environment")
    try:
        check_tools()
        toolchain = detect_toolchain(settings.android_ndk_home)
    except EnvironmentCheckError as e:
        raise _fail(report, stage, e) from e
    stage.notes.append(f"toolchain: {toolchain.name}")
    stage.finish()
    env = build_environment(toolchain.environment(profile.arch))

    # Sync
    stage = report.stage("sync")
    workspace.mkdir(parents=True, exist_ok=True)
    trees = source_trees(profile, toggles, workspace)
    for tree in trees:
        result = sync_tree(tree, timeout=settings.sync_timeout)
        report.syncs.append(result)
        if not result.success:
            stage.warnings.append(f"{tree.name}: {result.error_message}")
    try:
        require_tree(trees[0])
    except SyncError as e:
        raise _fail(report, stage, e) from e
    stage.finish()

    # Integrate
    output_dir.mkdir(parents=True, exist_ok=True)
    transcript = output_dir / INTEGRATION_LOG
    transcript.write_text("", encoding="utf-8")
    stage = report.stage("integrate")
    modified = []
    for feature, enabled in feature_states(toggles):
        result = integrate(
            feature,
            enabled,
            overlay_dir=workspace / feature.name,
            base_dir=kernel_dir,
            transcript_path=transcript,
            setup_timeout=settings.setup_timeout,
        )
        report.integrations.append(result)
        stage.warnings.extend(result.warnings)
        if enabled and result.outcome in CHANGED_OUTCOMES:
            modified.append(feature)
        failed = enabled and result.outcome != IntegrationOutcome.SUCCESS
        if failed and not result.warnings:
            stage.warnings.append(
                f"{feature.display_name} integration {result.outcome.value}"
            )
    for feature in features:
        apply_source_fixups(feature, kernel_dir)
    if len(modified) > 1:
        stage.notes.append(
            "Multiple overlays modified the kernel tree: "
            + ", ".join(f.display_name for f in modified)
            + "; overlapping changes are not checked"
        )
    if features:
        stage.finish()

    # Config
    stage = report.stage("config")
    build_log = output_dir / BUILD_LOG
    build_log.write_text("", encoding="utf-8")
    report.config = compose_config(
        kernel_dir,
        profile,
        feature_fragments(features),
        log_path=build_log,
        env=env,
        timeout=settings.build_timeout,
    )
    stage.finish(report.config.warnings)

    # Build
    stage = report.stage("build")
    try:
        report.build = build(
            kernel_dir,
            profile,
            build_log,
            env=env,
            jobs=settings.jobs,
            kcflags=settings.kcflags,
            hostcflags=settings.hostcflags,
            timeout=settings.build_timeout,
        )
    except BuildFailedError as e:
        raise _fail(report, stage, e, e.log_path) from e
    stage.notes.extend(report.build.notes)
    stage.finish(report.build.warnings)

    # Package
    stage = report.stage("package")
    try:
        report.output = package(
            report.build.artifacts,
            features,
            profile,
            output_dir=output_dir,
            workspace_dir=workspace,
            archive=toggles.archive,
            sync_timeout=settings.sync_timeout,
            now=now,
        )
    except PackagingError as e:
        raise _fail(report, stage, e) from e
    sync = report.output.framework_sync
    if sync is not None and not sync.success:
        stage.warnings.append(f"{sync.tree}: {sync.error_message}")
    stage.finish()

    logger.info(
        "Build completed with %d warning(s). Output: %s",
        report.warning_count,
        report.archive_path or output_dir,
    )
    return report


__all__ = [
    "PipelineError",
    "PipelineReport",
    "StageReport",
    "run_pipeline",
    "source_trees",
]
