"""AnyKernel3 installer helpers.

This module handles:
- Rendering the anykernel.sh installer manifest
- Feature-derived labels and display strings
- Deterministic archive naming
- Resetting the framework working copy
- Writing the flashable zip archive
"""

from __future__ import annotations

import fnmatch
import logging
import zipfile
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from string import Template

from kernelgen.features.schema import FeatureSpec

logger = logging.getLogger(__name__)

MANIFEST_NAME = "anykernel.sh"
STOCK_LABEL = "Stock"
ARCHIVE_TIMESTAMP_FORMAT = "%Y%m%d-%H%M"

# Prior build leftovers; framework files are never matched
LEFTOVER_PATTERNS = ("*.zip", "Image*", "dtb", "*.dtb", "*.dtbo")

# Matched against each path component of an archive member
ARCHIVE_EXCLUDES = (".*", "README*", "docs", "*placeholder")

MANIFEST_TEMPLATE = Template(
    """\
# AnyKernel3 Ramdisk Mod Script
# osm0sis @ xda-developers

## AnyKernel setup
# begin properties
properties() { '
kernel.string=$kernel_string
do.devicecheck=1
do.modules=0
do.systemless=1
do.cleanup=1
do.cleanuponabort=0
$device_names
supported.versions=$supported_versions
supported.patchlevels=
'; } # end properties

# shell variables
block=$boot_block;
is_slot_device=$is_slot_device;
ramdisk_compression=auto;
patch_vbmeta_flag=auto;

## AnyKernel methods (DO NOT CHANGE)
# import patching functions/variables - see for reference
. tools/ak3-core.sh;

## AnyKernel file attributes
# set permissions/ownership for included ramdisk files
set_perm_recursive 0 0 755 644 $$ramdisk/*;
set_perm_recursive 0 0 750 750 $$ramdisk/init* $$ramdisk/sbin;

## AnyKernel boot install
dump_boot;

# begin ramdisk changes

# init.rc
if [ -f $$ramdisk/init.rc ]; then
  backup_file init.rc;
fi;

# end ramdisk changes

write_boot;
## end boot install
"""
)


def feature_label(features: Sequence[FeatureSpec]) -> str:
    """Return the archive label for the enabled features (e.g. 'SukiSU-SUSFS')."""
    if not features:
        return STOCK_LABEL
    return "-".join(f.label for f in features)


def display_string(kernel_name: str, features: Sequence[FeatureSpec]) -> str:
    """Return the installer's kernel display string."""
    if not features:
        return f"{kernel_name} (Stock)"
    return f"{kernel_name} with " + " & ".join(f.display_name for f in features)


def archive_name(
    prefix: str, features: Sequence[FeatureSpec], now: datetime | None = None
) -> str:
    """Build the archive file name from feature state and the current time.

    Args:
        prefix: Archive name prefix from the device profile.
        features: Enabled features, in integration order.
        now: Timestamp to embed (defaults to the current local time).

    Returns:
        Name like 'Garnet-Kernel-SukiSU-SUSFS-20250101-1200.zip'.
    """
    stamp = (now or datetime.now()).strftime(ARCHIVE_TIMESTAMP_FORMAT)
    return f"{prefix}-{feature_label(features)}-{stamp}.zip"


def render_manifest(
    kernel_string: str,
    device_names: Sequence[str],
    supported_versions: str,
    boot_block: str,
    is_slot_device: bool,
) -> str:
    """Render anykernel.sh for a device."""
    names = "\n".join(
        f"device.name{i}={name}" for i, name in enumerate(device_names, start=1)
    )
    return MANIFEST_TEMPLATE.substitute(
        kernel_string=kernel_string,
        device_names=names,
        supported_versions=supported_versions,
        boot_block=boot_block,
        is_slot_device=1 if is_slot_device else 0,
    )


def reset_working_copy(framework_dir: Path) -> list[Path]:
    """Remove prior build leftovers from the top of the framework tree.

    Returns:
        Paths that were removed.
    """
    removed: list[Path] = []
    for path in sorted(framework_dir.iterdir()):
        if not path.is_file():
            continue
        if any(fnmatch.fnmatch(path.name, p) for p in LEFTOVER_PATTERNS):
            path.unlink()
            removed.append(path)
    if removed:
        logger.debug("Removed %d leftover file(s) from %s", len(removed), framework_dir)
    return removed


def is_excluded(relative: Path) -> bool:
    """Whether an archive member is version-control metadata or documentation."""
    return any(
        fnmatch.fnmatch(part, pattern)
        for part in relative.parts
        for pattern in ARCHIVE_EXCLUDES
    )


def create_archive(source_dir: Path, archive_path: Path) -> list[str]:
    """Zip a framework working copy.

    Args:
        source_dir: Directory whose contents become the archive root.
        archive_path: Destination zip file (outside source_dir).

    Returns:
        Archive member names, in write order.
    """
    members: list[str] = []
    archive_path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(
        archive_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9
    ) as zf:
        for path in sorted(source_dir.rglob("*")):
            relative = path.relative_to(source_dir)
            if is_excluded(relative) or not path.is_file():
                continue
            if path.resolve() == archive_path.resolve():
                continue
            zf.write(path, relative.as_posix())
            members.append(relative.as_posix())
    logger.info("Wrote %s (%d files)", archive_path.name, len(members))
    return members


__all__ = [
    "ARCHIVE_EXCLUDES",
    "LEFTOVER_PATTERNS",
    "MANIFEST_NAME",
    "archive_name",
    "create_archive",
    "display_string",
    "feature_label",
    "is_excluded",
    "render_manifest",
    "reset_working_copy",
]
