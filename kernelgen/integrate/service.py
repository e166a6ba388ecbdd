"""Feature integrator service.

This module provides the high-level integration API:
- integrate(): integrate one overlay through its ordered strategies
- apply_source_fixups(): pre-build text fixups declared by overlays

A disabled overlay never touches the base tree. An enabled overlay never
fails the pipeline: the worst outcome is 'failed', reported with its
warnings, and the build goes on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from kernelgen.features.schema import FeatureSpec
from kernelgen.integrate.patches import PatchSetReport
from kernelgen.integrate.strategies import (
    IntegrationContext,
    IntegrationStrategy,
    StrategyAttempt,
    strategies_for,
)
from kernelgen.types import IntegrationOutcome, StrategyKind

logger = logging.getLogger(__name__)


@dataclass
class IntegrationResult:
    """Result of integrating one feature overlay.

    Attributes:
        feature: Overlay name.
        enabled: Whether the overlay was enabled.
        strategy: Strategy that produced the final outcome.
        outcome: Final integration outcome.
        attempts: Every strategy attempt, in order.
        warnings: Non-fatal problems across all attempts.
    """

    feature: str
    enabled: bool
    strategy: StrategyKind = StrategyKind.NONE_ATTEMPTED
    outcome: IntegrationOutcome = IntegrationOutcome.NONE_ATTEMPTED
    attempts: list[StrategyAttempt] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def patches(self) -> PatchSetReport | None:
        """Patch report of the last attempt that applied patches."""
        for attempt in reversed(self.attempts):
            if attempt.patches is not None:
                return attempt.patches
        return None


def integrate(
    feature: FeatureSpec,
    enabled: bool,
    overlay_dir: Path,
    base_dir: Path,
    transcript_path: Path,
    setup_timeout: int | None = None,
    strategies: list[IntegrationStrategy] | None = None,
) -> IntegrationResult:
    """Integrate a feature overlay into the base tree.

    Strategies are tried in order; the first success wins. When no
    strategy succeeds, the last attempt's outcome is reported.

    Args:
        feature: Overlay definition.
        enabled: Whether the overlay is enabled. Disabled overlays are a no-op.
        overlay_dir: Checkout of the overlay's source tree.
        base_dir: Base kernel tree.
        transcript_path: Integration transcript file.
        setup_timeout: Timeout for an automated setup procedure.
        strategies: Override of the candidate strategies.

    Returns:
        IntegrationResult for the overlay.
    """
    result = IntegrationResult(feature=feature.name, enabled=enabled)

    if not enabled:
        logger.info("%s integration disabled", feature.display_name)
        return result

    if not overlay_dir.is_dir():
        message = f"{feature.display_name} source tree not available at {overlay_dir}"
        logger.warning(message)
        result.outcome = IntegrationOutcome.FAILED
        result.warnings.append(message)
        return result

    logger.info("Setting up %s...", feature.display_name)
    ctx = IntegrationContext(
        feature=feature,
        overlay_dir=overlay_dir,
        base_dir=base_dir,
        transcript_path=transcript_path,
        setup_timeout=setup_timeout,
    )

    candidates = strategies if strategies is not None else strategies_for(feature)
    for strategy in candidates:
        if not strategy.available(ctx):
            logger.info(
                "%s %s integration not available, trying next strategy",
                feature.display_name,
                strategy.kind.value,
            )
            continue

        attempt = strategy.attempt(ctx)
        result.attempts.append(attempt)
        result.warnings.extend(attempt.warnings)
        result.strategy = attempt.strategy
        result.outcome = attempt.outcome
        if attempt.outcome == IntegrationOutcome.SUCCESS:
            break

    if not result.attempts:
        message = f"No integration strategy available for {feature.display_name}"
        logger.warning(message)
        result.outcome = IntegrationOutcome.FAILED
        result.warnings.append(message)

    logger.info(
        "%s integration %s (%s)",
        feature.display_name,
        result.outcome.value,
        result.strategy.value,
    )
    return result


def apply_source_fixups(feature: FeatureSpec, base_dir: Path) -> list[str]:
    """Apply an overlay's literal text fixups to files in the base tree.

    Files that do not exist, or that do not contain the text, are left
    alone.

    Returns:
        Relative paths of the files that were changed.
    """
    changed: list[str] = []
    for fixup in feature.source_fixups:
        path = base_dir / fixup.path
        if not path.is_file():
            continue
        content = path.read_text(encoding="utf-8", errors="surrogateescape")
        if fixup.old not in content:
            continue
        logger.info("Patching %s for compilation compatibility", fixup.path)
        path.write_text(
            content.replace(fixup.old, fixup.new),
            encoding="utf-8",
            errors="surrogateescape",
        )
        changed.append(fixup.path)
    return changed


__all__ = ["IntegrationResult", "apply_source_fixups", "integrate"]
