"""Integration strategies for feature overlays.

An overlay is integrated by trying an ordered list of strategies until
one reports success. Each attempt returns its outcome together with the
evidence it was judged on. An external setup procedure is never trusted
on its exit status alone: its claimed effect is verified against the
overlay's integration markers before success is accepted.
"""

from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from kernelgen.features.schema import CopySpec, FeatureSpec, PlaceholderHeader
from kernelgen.integrate.patches import (
    PatchSetReport,
    apply_patch_set,
    discover_patches,
)
from kernelgen.sources.tree import TreeCopyError, copy_file, copy_tree
from kernelgen.types import IntegrationOutcome, StrategyKind

logger = logging.getLogger(__name__)

PLACEHOLDER_HEADER_TEMPLATE = """\
#ifndef {include_guard}
#define {include_guard}

/* Minimal {name} header for compilation compatibility */
#ifdef {config_guard}
#endif

#endif /* {include_guard} */
"""


@dataclass
class IntegrationContext:
    """Inputs shared by every strategy for one overlay.

    Attributes:
        feature: Overlay definition.
        overlay_dir: Checkout of the overlay's source tree.
        base_dir: Base kernel tree being integrated into.
        transcript_path: Integration transcript (appended to).
        setup_timeout: Timeout for the automated setup procedure.
    """

    feature: FeatureSpec
    overlay_dir: Path
    base_dir: Path
    transcript_path: Path
    setup_timeout: int | None = None


@dataclass
class StrategyAttempt:
    """Outcome of one strategy plus the evidence behind it.

    Attributes:
        strategy: Kind of strategy that ran.
        outcome: success, partial or failed.
        evidence: Observations the outcome was judged on.
        warnings: Non-fatal problems met along the way.
        patches: Patch set report, if patches were applied.
        missing_files: Required files absent after the attempt.
    """

    strategy: StrategyKind
    outcome: IntegrationOutcome
    evidence: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    patches: PatchSetReport | None = None
    missing_files: list[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)


def missing_paths(base_dir: Path, paths: list[str]) -> list[str]:
    """Return the entries of paths that do not exist under base_dir."""
    return [p for p in paths if not (base_dir / p).exists()]


def append_transcript(path: Path, title: str, body: str) -> None:
    """Append a titled section to the integration transcript."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(f"# {title}\n")
        f.write(f"# At: {datetime.now(timezone.utc).isoformat()}\n")
        f.write("# " + "=" * 70 + "\n")
        f.write(body)
        if body and not body.endswith("\n"):
            f.write("\n")
        f.write("\n")


def render_placeholder_header(dest: str, name: str, config_guard: str) -> str:
    """Render a header whose feature guard is defined but empty."""
    stem = Path(dest).name.replace(".", "_").replace("-", "_").upper()
    return PLACEHOLDER_HEADER_TEMPLATE.format(
        include_guard=f"_LINUX_{stem}",
        name=name,
        config_guard=config_guard,
    )


def apply_overlay_patches(ctx: IntegrationContext, attempt: StrategyAttempt) -> None:
    """Apply the overlay's patch set to the base tree, recording warnings."""
    patches_dir = (
        ctx.overlay_dir / ctx.feature.patches_dir if ctx.feature.patches_dir else None
    )
    patches = discover_patches(patches_dir)
    if not patches:
        logger.info("No %s patches found, proceeding without", ctx.feature.name)
        return

    report = apply_patch_set(patches, ctx.base_dir)
    attempt.patches = report
    attempt.evidence.append(f"patches applied {report.summary()}")
    for result in report.not_applied:
        attempt.warnings.append(
            f"{ctx.feature.display_name} patch {result.name}: {result.status.value}"
        )


class IntegrationStrategy(ABC):
    """A way of integrating an overlay into the base tree."""

    kind: StrategyKind

    @abstractmethod
    def available(self, ctx: IntegrationContext) -> bool:
        """Whether this strategy can be attempted for the overlay."""

    @abstractmethod
    def attempt(self, ctx: IntegrationContext) -> StrategyAttempt:
        """Run the strategy and report its outcome."""


class AutomatedSetupStrategy(IntegrationStrategy):
    """Run the overlay's own setup procedure, then verify its markers."""

    kind = StrategyKind.AUTOMATED

    def available(self, ctx: IntegrationContext) -> bool:
        script = ctx.feature.setup_script
        return bool(script) and (ctx.overlay_dir / script).is_file()

    def attempt(self, ctx: IntegrationContext) -> StrategyAttempt:
        result = StrategyAttempt(self.kind, IntegrationOutcome.FAILED)
        if not ctx.feature.setup_script:
            result.warn(f"{ctx.feature.display_name} has no setup script")
            return result

        script = ctx.overlay_dir / ctx.feature.setup_script
        cmd = ["bash", str(script), *ctx.feature.setup_args]

        logger.info(
            "Running %s setup script with %s...",
            ctx.feature.display_name,
            " ".join(ctx.feature.setup_args) or "no arguments",
        )
        try:
            proc = subprocess.run(
                cmd,
                cwd=ctx.base_dir,
                capture_output=True,
                text=True,
                timeout=ctx.setup_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            result.warn(
                f"{ctx.feature.display_name} setup script timed out "
                f"after {ctx.setup_timeout}s"
            )
            return result
        except OSError as e:
            result.warn(f"{ctx.feature.display_name} setup script could not run: {e}")
            return result

        append_transcript(
            ctx.transcript_path,
            f"{ctx.feature.name}: {' '.join(cmd)} (exit {proc.returncode})",
            (proc.stdout or "") + (proc.stderr or ""),
        )
        result.evidence.append(f"exit code {proc.returncode}")

        if proc.returncode != 0:
            result.warn(
                f"{ctx.feature.display_name} setup script failed "
                f"(exit code: {proc.returncode}), see {ctx.transcript_path}"
            )
            return result

        missing = missing_paths(ctx.base_dir, ctx.feature.markers)
        if missing:
            result.evidence.append(f"markers missing: {', '.join(missing)}")
            result.warn(
                f"{ctx.feature.display_name} markers not found after setup script"
            )
            return result

        result.evidence.append("all markers present")
        result.outcome = IntegrationOutcome.SUCCESS
        logger.info("%s drivers successfully integrated", ctx.feature.display_name)
        return result


class ManualIntegrationStrategy(IntegrationStrategy):
    """Copy the driver subtree, apply patches and copy auxiliary sources."""

    kind = StrategyKind.MANUAL

    def available(self, ctx: IntegrationContext) -> bool:
        return ctx.feature.driver is not None

    def attempt(self, ctx: IntegrationContext) -> StrategyAttempt:
        result = StrategyAttempt(self.kind, IntegrationOutcome.FAILED)
        name = ctx.feature.display_name
        logger.info("Attempting manual %s integration...", name)

        driver = ctx.feature.driver
        if driver is None:
            result.warn(f"{name} declares no driver subtree")
        else:
            self._copy_driver(ctx, driver, result)

        # Missing required files make the outcome partial, never failed
        result.missing_files = missing_paths(ctx.base_dir, ctx.feature.required_files)
        for missing in result.missing_files:
            result.warn(f"Critical {name} file missing: {missing}")

        apply_overlay_patches(ctx, result)

        for aux in ctx.feature.aux_dirs:
            aux_src = ctx.overlay_dir / aux.source
            if not aux_src.is_dir():
                continue
            try:
                copy_tree(aux_src, ctx.base_dir / aux.dest)
                result.evidence.append(f"copied {aux.source}")
            except TreeCopyError as e:
                # Enhancement files only
                logger.debug("Ignoring auxiliary copy failure: %s", e)

        result.outcome = (
            IntegrationOutcome.PARTIAL
            if result.missing_files
            else IntegrationOutcome.SUCCESS
        )
        logger.info("Manual %s integration finished: %s", name, result.outcome.value)
        return result

    def _copy_driver(
        self, ctx: IntegrationContext, driver: CopySpec, result: StrategyAttempt
    ) -> None:
        name = ctx.feature.display_name
        driver_src = ctx.overlay_dir / driver.source
        if not driver_src.is_dir():
            result.warn(f"{name} driver directory not found: {driver_src}")
            return
        try:
            copied = copy_tree(driver_src, ctx.base_dir / driver.dest)
        except TreeCopyError as e:
            result.warn(f"Failed to copy {name} drivers: {e}")
            return
        result.evidence.append(f"copied {copied} driver files")


class LightOverlayStrategy(IntegrationStrategy):
    """Apply patches, copy filesystem sources and install the primary header."""

    kind = StrategyKind.MANUAL

    def available(self, ctx: IntegrationContext) -> bool:
        return ctx.overlay_dir.is_dir()

    def attempt(self, ctx: IntegrationContext) -> StrategyAttempt:
        feature = ctx.feature
        result = StrategyAttempt(self.kind, IntegrationOutcome.FAILED)
        logger.info("Integrating %s into kernel...", feature.display_name)

        apply_overlay_patches(ctx, result)

        if feature.filesystem is not None:
            fs_src = ctx.overlay_dir / feature.filesystem.source
            if fs_src.is_dir():
                try:
                    copy_tree(fs_src, ctx.base_dir / feature.filesystem.dest)
                    result.evidence.append(f"copied {feature.filesystem.source}")
                except TreeCopyError as e:
                    result.warn(f"Failed to copy {feature.display_name} sources: {e}")

        if feature.header is not None:
            self._install_header(ctx, feature.header, result)

        result.outcome = IntegrationOutcome.SUCCESS
        if result.warnings:
            result.outcome = IntegrationOutcome.PARTIAL
        return result

    def _install_header(
        self,
        ctx: IntegrationContext,
        header: PlaceholderHeader,
        result: StrategyAttempt,
    ) -> None:
        src = ctx.overlay_dir / header.source
        dest = ctx.base_dir / header.dest

        if src.is_file():
            try:
                copy_file(src, dest)
                result.evidence.append(f"installed {header.dest}")
            except TreeCopyError as e:
                result.warn(str(e))
            return

        if dest.exists():
            result.evidence.append(f"kept existing {header.dest}")
            return

        logger.warning(
            "%s header not found, creating minimal header", ctx.feature.display_name
        )
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(
            render_placeholder_header(
                header.dest, ctx.feature.display_name, header.guard
            ),
            encoding="utf-8",
        )
        result.evidence.append(f"synthesized placeholder {header.dest}")


def strategies_for(feature: FeatureSpec) -> list[IntegrationStrategy]:
    """Return the ordered candidate strategies for an overlay."""
    if feature.integration == "light":
        return [LightOverlayStrategy()]
    return [AutomatedSetupStrategy(), ManualIntegrationStrategy()]


__all__ = [
    "AutomatedSetupStrategy",
    "IntegrationContext",
    "IntegrationStrategy",
    "LightOverlayStrategy",
    "ManualIntegrationStrategy",
    "StrategyAttempt",
    "append_transcript",
    "missing_paths",
    "render_placeholder_header",
    "strategies_for",
]
