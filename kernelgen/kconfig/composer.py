"""Config composer.

Builds the effective kernel configuration from layers in a fixed order:

1. a baseline generated from the first defconfig candidate that exists
   (most specific first, generic fallback last);
2. the device fragment, if present;
3. the shared root-feature fragment plus each enabled feature's
   fragment, only when at least one feature is enabled.

The folded result is written to ``<out>/.config`` and, whenever any
layer was added on top of the baseline, normalized with
``make olddefconfig`` so the kernel build system resolves dependencies
and defaults. Composition never fails outright: problems are recorded as
warnings and unset options are left for normalization to default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from kernelgen.builds.runner import MakeExecutionError, compose_make_command, run_make
from kernelgen.features.builtin import ROOT_FEATURES_FRAGMENT
from kernelgen.kconfig.fragments import (
    ConfigFragment,
    ConfigValues,
    fold_layers,
    read_config,
    write_config,
)

if TYPE_CHECKING:
    from kernelgen.devices.schema import DeviceProfileSchema
    from kernelgen.features.schema import FeatureSpec

logger = logging.getLogger(__name__)

NORMALIZE_TARGET = "olddefconfig"


@dataclass
class EffectiveConfig:
    """The composed configuration.

    Attributes:
        path: The ``.config`` file in the build output directory.
        values: Configuration values after normalization.
        baseline: Defconfig the baseline was generated from.
        layers: Names of the layers folded, in order.
        normalized: Whether the normalization pass ran successfully.
        warnings: Non-fatal problems met while composing.
    """

    path: Path
    values: ConfigValues
    baseline: str
    layers: list[str] = field(default_factory=list)
    normalized: bool = False
    warnings: list[str] = field(default_factory=list)

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)


def select_baseline(kernel_dir: Path, arch: str, candidates: list[str]) -> str:
    """Pick the first defconfig candidate present in the tree.

    The last candidate is the generic fallback and is returned even when
    it is not found on disk.
    """
    configs_dir = kernel_dir / "arch" / arch / "configs"
    for candidate in candidates:
        if (configs_dir / candidate).is_file():
            return candidate
    return candidates[-1]


def feature_fragments(features: list[FeatureSpec]) -> list[ConfigFragment]:
    """Return the fragments for the enabled features, shared block first."""
    if not features:
        return []
    fragments = [ConfigFragment.from_mapping("root-features", ROOT_FEATURES_FRAGMENT)]
    fragments.extend(
        ConfigFragment.from_mapping(f.name, f.config_fragment)
        for f in features
        if f.config_fragment
    )
    return fragments


def _make_target(
    target: str,
    kernel_dir: Path,
    profile: DeviceProfileSchema,
    log_path: Path,
    env: dict[str, str] | None,
    timeout: int | None,
) -> str | None:
    """Run a config make target, returning an error message on failure."""
    cmd = compose_make_command(profile.arch, profile.build_output, [target])
    try:
        result = run_make(
            cmd, kernel_dir, log_path, env_override=env, timeout=timeout, append=True
        )
    except MakeExecutionError as e:
        return str(e)
    if not result.success:
        return result.error_message
    return None


def compose_config(
    kernel_dir: Path,
    profile: DeviceProfileSchema,
    fragments: list[ConfigFragment],
    log_path: Path,
    env: dict[str, str] | None = None,
    timeout: int | None = None,
) -> EffectiveConfig:
    """Compose the effective configuration for a build.

    Args:
        kernel_dir: Kernel source tree.
        profile: Device profile (arch, defconfig candidates, device fragment).
        fragments: Feature fragments from feature_fragments().
        log_path: Transcript for the config make targets.
        env: Build environment overrides.
        timeout: Timeout for each make invocation.

    Returns:
        EffectiveConfig after normalization.
    """
    config_path = kernel_dir / profile.build_output / ".config"
    baseline = select_baseline(kernel_dir, profile.arch, profile.defconfig_candidates)
    effective = EffectiveConfig(path=config_path, values={}, baseline=baseline)

    # A config left by an earlier run must never stand in for the baseline
    config_path.unlink(missing_ok=True)

    logger.info("Generating base configuration from %s...", baseline)
    error = _make_target(baseline, kernel_dir, profile, log_path, env, timeout)
    if error:
        effective.warn(f"Baseline {baseline} could not be generated ({error})")
        layers = [ConfigFragment(baseline, {})]
    else:
        layers = [ConfigFragment.from_file(baseline, config_path)]

    if profile.device_fragment:
        fragment_path = kernel_dir / profile.device_fragment
        if fragment_path.is_file():
            logger.info("Applying device config fragment %s", profile.device_fragment)
            layers.append(ConfigFragment.from_file("device", fragment_path))
        else:
            effective.warn(
                f"Device config {profile.device_fragment} not found, "
                "using base configuration"
            )

    if fragments:
        logger.info("Enabling additional kernel configurations for root features...")
        layers.extend(fragments)

    effective.layers = [layer.name for layer in layers]
    write_config(config_path, fold_layers(layers))

    if len(layers) > 1:
        error = _make_target(
            NORMALIZE_TARGET, kernel_dir, profile, log_path, env, timeout
        )
        if error:
            effective.warn(f"Config normalization failed ({error})")
        else:
            effective.normalized = True

    effective.values = read_config(config_path)
    logger.info("Kernel configuration completed (%d layers)", len(layers))
    return effective


__all__ = [
    "EffectiveConfig",
    "compose_config",
    "feature_fragments",
    "select_baseline",
]
