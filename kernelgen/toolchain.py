"""Host environment checks and cross-compilation toolchain setup.

This module handles:
- Checking required host tools are on PATH
- Selecting the Android NDK clang toolchain or the system aarch64 gcc
- Producing the environment passed to every make invocation

Both checks run before the pipeline mutates anything.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = ("git", "make", "bc", "bison", "flex", "patch")

NDK_BIN_DIR = Path("toolchains/llvm/prebuilt/linux-x86_64/bin")
NDK_CROSS_PREFIX = "aarch64-linux-android-"
NDK_CLANG = "aarch64-linux-android29-clang"
SYSTEM_CROSS_PREFIX = "aarch64-linux-gnu-"

Which = Callable[[str], "str | None"]


class EnvironmentCheckError(Exception):
    """Raised when the host cannot build the kernel."""

    def __init__(self, message: str, code: str = "environment_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class Toolchain:
    """Selected cross-compilation toolchain.

    Attributes:
        name: 'android-ndk' or 'system-gcc'.
        cross_compile: CROSS_COMPILE prefix.
        cc: C compiler.
    """

    name: str
    cross_compile: str
    cc: str

    def environment(self, arch: str = "arm64") -> dict[str, str]:
        """Return the make environment for this toolchain."""
        return {
            "ARCH": arch,
            "SUBARCH": arch,
            "CROSS_COMPILE": self.cross_compile,
            "CC": self.cc,
        }


def check_tools(
    tools: Sequence[str] = REQUIRED_TOOLS, which: Which = shutil.which
) -> None:
    """Verify that every required host tool is available.

    Raises:
        EnvironmentCheckError: Listing every missing tool.
    """
    logger.info("Checking build dependencies...")
    missing = [tool for tool in tools if which(tool) is None]
    if missing:
        raise EnvironmentCheckError(
            f"Missing dependencies: {' '.join(missing)}", code="missing_tools"
        )
    logger.debug("All required tools found: %s", ", ".join(tools))


def detect_toolchain(
    ndk_home: Path | None = None, which: Which = shutil.which
) -> Toolchain:
    """Select a cross-compilation toolchain.

    An Android NDK is preferred when ndk_home points to an existing
    directory; otherwise the system aarch64 gcc is used.

    Args:
        ndk_home: Android NDK root.
        which: Executable lookup, for testing.

    Returns:
        The selected Toolchain.

    Raises:
        EnvironmentCheckError: If no toolchain is available.
    """
    logger.info("Setting up cross-compilation toolchain...")
    if ndk_home is not None and ndk_home.is_dir():
        bin_dir = ndk_home / NDK_BIN_DIR
        logger.info("Using Android NDK toolchain at %s", ndk_home)
        return Toolchain(
            name="android-ndk",
            cross_compile=str(bin_dir / NDK_CROSS_PREFIX),
            cc=str(bin_dir / NDK_CLANG),
        )

    if which(f"{SYSTEM_CROSS_PREFIX}gcc") is not None:
        logger.info("Using system aarch64 toolchain")
        return Toolchain(
            name="system-gcc",
            cross_compile=SYSTEM_CROSS_PREFIX,
            cc=f"{SYSTEM_CROSS_PREFIX}gcc",
        )

    raise EnvironmentCheckError(
        "No suitable cross-compilation toolchain found. "
        "Install gcc-aarch64-linux-gnu or set ANDROID_NDK_HOME",
        code="no_toolchain",
    )


__all__ = [
    "REQUIRED_TOOLS",
    "EnvironmentCheckError",
    "Toolchain",
    "check_tools",
    "detect_toolchain",
]
