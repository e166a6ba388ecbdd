"""Artifact packaging module.

This module handles:
- Copying the best image and device tree binaries to the output directory
- Rendering the AnyKernel3 installer manifest
- Creating the flashable zip archive
"""

from kernelgen.packaging.service import (
    OutputPackage,
    PackageManifest,
    PackagingError,
    package,
)

__all__ = ["OutputPackage", "PackageManifest", "PackagingError", "package"]
