"""Build execution module.

This module handles:
- Running make for the kernel image and modules
- Artifact discovery and image variant selection
"""

from kernelgen.builds.artifacts import IMAGE_PREFERENCE, select_image

__all__ = ["IMAGE_PREFERENCE", "select_image"]

# Lazy imports for submodules to avoid circular imports
# Access via kernelgen.builds.executor, kernelgen.builds.runner
