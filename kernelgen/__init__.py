"""Android Kernel Generator - build orchestration for Android kernels.

This package drives an Android kernel build end to end: syncing source
trees, integrating optional root feature overlays, composing the kernel
configuration, running the build, and packaging a flashable archive.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
