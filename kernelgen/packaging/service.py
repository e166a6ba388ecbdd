"""Artifact packager service.

This module provides the high-level packaging API:
- package(): copy the best image and device tree binaries to the output
  directory and, optionally, build a flashable AnyKernel3 archive

Packaging runs only after a successful build. Its failures are fatal to
packaging alone; the build result stands.
"""

from __future__ import annotations

import logging
import zipfile
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from kernelgen.builds.artifacts import select_image
from kernelgen.packaging.anykernel import (
    MANIFEST_NAME,
    archive_name,
    create_archive,
    display_string,
    render_manifest,
    reset_working_copy,
)
from kernelgen.sources.sync import SourceTree, SyncResult, sync_tree
from kernelgen.sources.tree import TreeCopyError, copy_file
from kernelgen.types import ArtifactKind, BuildArtifact

if TYPE_CHECKING:
    from kernelgen.devices.schema import DeviceProfileSchema
    from kernelgen.features.schema import FeatureSpec

logger = logging.getLogger(__name__)

FRAMEWORK_TREE = "AnyKernel3"


class PackagingError(Exception):
    """Raised when packaging cannot complete."""

    def __init__(self, message: str, code: str = "packaging_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class PackageManifest:
    """Installer metadata for an output package.

    Attributes:
        device_names: Device identifiers checked by the installer.
        supported_versions: Supported OS version range.
        display_string: Kernel display string shown by the installer.
    """

    device_names: tuple[str, ...]
    supported_versions: str
    display_string: str


@dataclass(frozen=True)
class OutputPackage:
    """Final output of a pipeline run.

    Attributes:
        manifest: Installer metadata.
        files: Files placed in the output directory, image first.
        archive_path: Flashable archive, if one was requested.
        framework_sync: Sync result of the packaging framework tree.
    """

    manifest: PackageManifest
    files: tuple[Path, ...]
    archive_path: Path | None = None
    framework_sync: SyncResult | None = None


def _copy_flat(artifacts: Sequence[BuildArtifact], dest_dir: Path) -> list[Path]:
    """Copy artifacts into dest_dir by file name."""
    copied: list[Path] = []
    for artifact in artifacts:
        dest = dest_dir / artifact.path.name
        copy_file(artifact.path, dest)
        copied.append(dest)
    return copied


def package(
    artifacts: Sequence[BuildArtifact],
    features: Sequence[FeatureSpec],
    profile: DeviceProfileSchema,
    output_dir: Path,
    workspace_dir: Path,
    archive: bool = True,
    sync_timeout: int | None = None,
    now: datetime | None = None,
) -> OutputPackage:
    """Package build artifacts for flashing.

    Args:
        artifacts: Artifacts recorded by the build executor.
        features: Enabled features, in integration order.
        profile: Device profile (installer settings, kernel name).
        output_dir: Flat output directory.
        workspace_dir: Workspace holding the packaging framework tree.
        archive: Whether to build the flashable archive.
        sync_timeout: Timeout for synchronizing the framework tree.
        now: Timestamp for the archive name.

    Returns:
        OutputPackage describing what was produced.

    Raises:
        PackagingError: If no image is available, the framework tree is
            missing, or the archive cannot be written.
    """
    image = select_image(list(artifacts))
    if image is None:
        raise PackagingError("No kernel image found to package", code="no_image")

    dtbs = [a for a in artifacts if a.kind == ArtifactKind.DEVICE_TREE_BINARY]
    installer = profile.installer
    manifest = PackageManifest(
        device_names=tuple(installer.device_names),
        supported_versions=installer.supported_versions,
        display_string=display_string(profile.kernel_name, features),
    )

    logger.info("Creating flashable output in %s", output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        files = _copy_flat([image, *dtbs], output_dir)
    except (OSError, TreeCopyError) as e:
        raise PackagingError(
            f"Failed to copy artifacts to {output_dir}: {e}", code="copy_error"
        ) from e
    logger.info(
        "Copied %s and %d dtb(s) to output directory", image.path.name, len(dtbs)
    )

    if not archive:
        return OutputPackage(manifest=manifest, files=tuple(files))

    logger.info("Creating AnyKernel3 flashable ZIP...")
    framework = SourceTree.from_repo(
        FRAMEWORK_TREE, installer.framework, workspace_dir
    )
    framework_sync = sync_tree(framework, timeout=sync_timeout)
    if not framework.present:
        raise PackagingError(
            f"Packaging framework not available at {framework.path}",
            code="framework_missing",
        )

    try:
        reset_working_copy(framework.path)
        _copy_flat([image, *dtbs], framework.path)
        (framework.path / MANIFEST_NAME).write_text(
            render_manifest(
                kernel_string=manifest.display_string,
                device_names=manifest.device_names,
                supported_versions=manifest.supported_versions,
                boot_block=installer.boot_block,
                is_slot_device=installer.is_slot_device,
            ),
            encoding="utf-8",
        )
        archive_path = output_dir / archive_name(
            installer.archive_prefix, features, now
        )
        logger.info("Packaging AnyKernel3 ZIP: %s", archive_path.name)
        create_archive(framework.path, archive_path)
    except (OSError, TreeCopyError, zipfile.BadZipFile) as e:
        raise PackagingError(
            f"Failed to create flashable archive: {e}", code="archive_error"
        ) from e

    logger.info("AnyKernel3 ZIP created: %s", archive_path)
    return OutputPackage(
        manifest=manifest,
        files=tuple(files),
        archive_path=archive_path,
        framework_sync=framework_sync,
    )


__all__ = [
    "FRAMEWORK_TREE",
    "OutputPackage",
    "PackageManifest",
    "PackagingError",
    "package",
]
