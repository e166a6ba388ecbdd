"""Tests for toolchain.py module."""

import pytest

from kernelgen.toolchain import (
    REQUIRED_TOOLS,
    EnvironmentCheckError,
    Toolchain,
    check_tools,
    detect_toolchain,
)


def _which(available):
    return lambda name: f"/usr/bin/{name}" if name in available else None


class TestCheckTools:
    """Tests for check_tools."""

    def test_all_present(self):
        """No error when every tool is found."""
        check_tools(which=_which(REQUIRED_TOOLS))

    def test_lists_every_missing_tool(self):
        """The error names all missing tools."""
        with pytest.raises(EnvironmentCheckError) as exc_info:
            check_tools(which=_which({"git", "make", "patch"}))

        assert exc_info.value.code == "missing_tools"
        assert "bc bison flex" in str(exc_info.value)


class TestDetectToolchain:
    """Tests for detect_toolchain."""

    def test_ndk_preferred(self, tmp_path):
        """An existing NDK wins over the system compiler."""
        toolchain = detect_toolchain(tmp_path, which=_which({"aarch64-linux-gnu-gcc"}))

        assert toolchain.name == "android-ndk"
        assert toolchain.cc.endswith("aarch64-linux-android29-clang")
        assert toolchain.cross_compile.startswith(str(tmp_path))

    def test_missing_ndk_falls_back(self, tmp_path):
        """A non-existent NDK path falls back to system gcc."""
        toolchain = detect_toolchain(
            tmp_path / "ndk", which=_which({"aarch64-linux-gnu-gcc"})
        )
        assert toolchain.name == "system-gcc"
        assert toolchain.cross_compile == "aarch64-linux-gnu-"

    def test_no_toolchain(self):
        """Neither NDK nor system gcc is an error."""
        with pytest.raises(EnvironmentCheckError) as exc_info:
            detect_toolchain(None, which=_which(set()))
        assert exc_info.value.code == "no_toolchain"


class TestToolchainEnvironment:
    """Tests for Toolchain.environment."""

    def test_environment(self):
        """The make environment carries arch and compiler settings."""
        toolchain = Toolchain(
            "system-gcc", "aarch64-linux-gnu-", "aarch64-linux-gnu-gcc"
        )
        assert toolchain.environment() == {
            "ARCH": "arm64",
            "SUBARCH": "arm64",
            "CROSS_COMPILE": "aarch64-linux-gnu-",
            "CC": "aarch64-linux-gnu-gcc",
        }
