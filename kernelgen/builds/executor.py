"""Build executor.

This module handles:
- Applying build-compatibility overrides to the composed config
- Building the kernel image (fatal on a non-zero exit status)
- Building loadable modules (non-fatal)
- Recording the image variants and device tree binaries produced
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from kernelgen.builds.artifacts import (
    boot_dir,
    discover_dtbs,
    discover_images,
    discover_modules,
    select_image,
)
from kernelgen.builds.runner import (
    MakeExecutionError,
    MakeResult,
    compose_make_command,
    run_make,
)
from kernelgen.kconfig.fragments import ConfigFragment, apply_layer
from kernelgen.types import BuildArtifact

if TYPE_CHECKING:
    from kernelgen.devices.schema import DeviceProfileSchema

logger = logging.getLogger(__name__)

# Hardening options that break the build with the warning-suppression flags.
BUILD_COMPAT_OVERRIDES = ConfigFragment.from_mapping(
    "build-compat",
    {
        "CONFIG_FORTIFY_SOURCE": None,
        "CONFIG_HARDENED_USERCOPY": None,
    },
)

BUILD_ENV = {"KCONFIG_NOTIMESTAMP": "1"}


class BuildFailedError(Exception):
    """Raised when the kernel image target fails."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        log_path: Path | None = None,
        code: str = "build_failed",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.log_path = log_path
        self.code = code


@dataclass
class BuildResult:
    """Result of the compiled build.

    Attributes:
        image: Make result of the image target.
        modules: Make result of the modules target, if it could run.
        images: Image variants found, in preference order.
        dtbs: Device tree binaries found.
        modules_built: Loadable modules found.
        log_path: Build transcript.
        warnings: Non-fatal problems.
        notes: Observations that leave the build successful.
    """

    image: MakeResult
    log_path: Path
    modules: MakeResult | None = None
    images: list[BuildArtifact] = field(default_factory=list)
    dtbs: list[BuildArtifact] = field(default_factory=list)
    modules_built: list[BuildArtifact] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    @property
    def artifacts(self) -> list[BuildArtifact]:
        return [*self.images, *self.dtbs, *self.modules_built]

    @property
    def best_image(self) -> BuildArtifact | None:
        return select_image(self.images)

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)


def build_environment(
    toolchain_env: dict[str, str] | None = None,
) -> dict[str, str]:
    """Merge the toolchain environment with the fixed build variables."""
    env = dict(toolchain_env or {})
    env.update(BUILD_ENV)
    return env


def apply_build_overrides(kernel_dir: Path, profile: DeviceProfileSchema) -> None:
    """Force the build-compatibility overrides into the composed config."""
    config_path = kernel_dir / profile.build_output / ".config"
    logger.info("Disabling hardening options incompatible with the build flags")
    apply_layer(config_path, BUILD_COMPAT_OVERRIDES)


def build(
    kernel_dir: Path,
    profile: DeviceProfileSchema,
    log_path: Path,
    env: dict[str, str] | None = None,
    jobs: int | None = None,
    kcflags: str | None = None,
    hostcflags: str | None = None,
    timeout: int | None = None,
) -> BuildResult:
    """Build the kernel image and modules.

    Args:
        kernel_dir: Kernel source tree holding the composed config.
        profile: Device profile (arch, build output directory).
        log_path: Build transcript; both targets append to it.
        env: Build environment from build_environment().
        jobs: Parallel jobs hint.
        kcflags: KCFLAGS for the kernel build.
        hostcflags: HOSTCFLAGS for host tools.
        timeout: Timeout for each make invocation.

    Returns:
        BuildResult. A result with no image variants is still returned;
        packaging treats that as a precondition failure.

    Raises:
        BuildFailedError: If the image target exits non-zero or cannot run.
    """
    apply_build_overrides(kernel_dir, profile)

    make_vars: dict[str, str] = {}
    if kcflags:
        make_vars["KCFLAGS"] = kcflags
    if hostcflags:
        make_vars["HOSTCFLAGS"] = hostcflags

    logger.info("Building kernel image with %s jobs...", jobs or "default")
    image_cmd = compose_make_command(
        profile.arch, profile.build_output, jobs=jobs, make_vars=make_vars
    )
    try:
        image = run_make(
            image_cmd,
            kernel_dir,
            log_path,
            env_override=env,
            timeout=timeout,
            append=True,
        )
    except MakeExecutionError as e:
        raise BuildFailedError(
            f"Kernel build could not complete: {e}",
            exit_code=e.exit_code,
            log_path=log_path,
            code=e.code,
        ) from e

    if not image.success:
        raise BuildFailedError(
            f"Kernel build failed with exit code {image.exit_code}",
            exit_code=image.exit_code,
            log_path=log_path,
        )

    result = BuildResult(image=image, log_path=log_path)
    logger.info("Kernel image built in %.1fs", image.duration)

    boot = boot_dir(kernel_dir, profile.build_output, profile.arch)
    result.images = discover_images(boot)
    result.dtbs = discover_dtbs(boot)
    if not result.images:
        logger.warning("Build succeeded but no kernel image was found in %s", boot)
        result.notes.append(f"No kernel image was found in {boot}")

    logger.info("Building kernel modules...")
    modules_cmd = compose_make_command(
        profile.arch,
        profile.build_output,
        targets=["modules"],
        jobs=jobs,
        make_vars=make_vars,
    )
    try:
        result.modules = run_make(
            modules_cmd,
            kernel_dir,
            log_path,
            env_override=env,
            timeout=timeout,
            append=True,
        )
    except MakeExecutionError as e:
        result.warn(f"Module build could not complete: {e}")
    else:
        if not result.modules.success:
            result.warn(
                f"Module build failed (exit code {result.modules.exit_code}), "
                "kernel image is still usable"
            )

    result.modules_built = discover_modules(kernel_dir / profile.build_output)
    logger.info(
        "Build complete: %d image variant(s), %d dtb(s), %d module(s)",
        len(result.images),
        len(result.dtbs),
        len(result.modules_built),
    )
    return result


__all__ = [
    "BUILD_COMPAT_OVERRIDES",
    "BUILD_ENV",
    "BuildFailedError",
    "BuildResult",
    "apply_build_overrides",
    "build",
    "build_environment",
]
