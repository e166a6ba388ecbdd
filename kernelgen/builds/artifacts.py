"""Build artifact discovery and selection.

This module handles:
- Locating kernel image variants in the build output tree
- Discovering device tree binaries and loadable modules
- Selecting the best image variant by a fixed preference order
- Computing checksums
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from kernelgen.types import ArtifactKind, BuildArtifact

logger = logging.getLogger(__name__)

# Most packaged/complete first
IMAGE_VARIANTS: tuple[tuple[ArtifactKind, str], ...] = (
    (ArtifactKind.IMAGE_WITH_DTB, "Image.gz-dtb"),
    (ArtifactKind.COMPRESSED_IMAGE, "Image.gz"),
    (ArtifactKind.RAW_IMAGE, "Image"),
)
IMAGE_PREFERENCE = tuple(kind for kind, _ in IMAGE_VARIANTS)

HASH_CHUNK_SIZE = 64 * 1024  # 64KB


def boot_dir(kernel_dir: Path, build_output: str, arch: str) -> Path:
    """Return the directory the kernel build writes images to."""
    return kernel_dir / build_output / "arch" / arch / "boot"


def discover_images(boot: Path) -> list[BuildArtifact]:
    """Return the image variants that exist, in preference order."""
    images = [
        BuildArtifact(kind, boot / filename)
        for kind, filename in IMAGE_VARIANTS
        if (boot / filename).is_file()
    ]
    for image in images:
        logger.info("Kernel %s created: %s", image.kind.value, image.path)
    return images


def discover_dtbs(boot: Path) -> list[BuildArtifact]:
    """Return the device tree binaries under ``boot/dts``."""
    dts_dir = boot / "dts"
    if not dts_dir.is_dir():
        return []
    return [
        BuildArtifact(ArtifactKind.DEVICE_TREE_BINARY, path)
        for path in sorted(dts_dir.rglob("*.dtb"))
        if path.is_file()
    ]


def discover_modules(output_dir: Path) -> list[BuildArtifact]:
    """Return the loadable modules built into the output tree."""
    if not output_dir.is_dir():
        return []
    return [
        BuildArtifact(ArtifactKind.LOADABLE_MODULE, path)
        for path in sorted(output_dir.rglob("*.ko"))
        if path.is_file()
    ]


def select_image(artifacts: list[BuildArtifact]) -> BuildArtifact | None:
    """Pick the most complete image variant available.

    Args:
        artifacts: Any mix of build artifacts.

    Returns:
        The preferred image artifact, or None if there is no image.
    """
    for kind in IMAGE_PREFERENCE:
        for artifact in artifacts:
            if artifact.kind == kind:
                return artifact
    return None


def compute_file_hash(file_path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """Compute SHA-256 hash of a file."""
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


__all__ = [
    "IMAGE_PREFERENCE",
    "IMAGE_VARIANTS",
    "boot_dir",
    "compute_file_hash",
    "discover_dtbs",
    "discover_images",
    "discover_modules",
    "select_image",
]
