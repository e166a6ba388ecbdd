"""Tests for builds/artifacts.py module."""

import hashlib
from pathlib import Path

import pytest

from kernelgen.builds.artifacts import (
    boot_dir,
    compute_file_hash,
    discover_dtbs,
    discover_images,
    discover_modules,
    select_image,
)
from kernelgen.types import ArtifactKind, BuildArtifact


@pytest.fixture
def boot(tmp_path: Path) -> Path:
    """Create an empty boot directory."""
    path = boot_dir(tmp_path / "kernel", "out", "arm64")
    path.mkdir(parents=True)
    return path


class TestBootDir:
    """Tests for boot_dir."""

    def test_layout(self, tmp_path):
        """Images live under out/arch/<arch>/boot."""
        assert boot_dir(tmp_path, "out", "arm64") == (
            tmp_path / "out" / "arch" / "arm64" / "boot"
        )


class TestDiscoverImages:
    """Tests for discover_images."""

    def test_all_variants_in_preference_order(self, boot):
        """All three variants are returned most complete first."""
        for name in ("Image", "Image.gz", "Image.gz-dtb"):
            (boot / name).write_bytes(b"\0")

        kinds = [a.kind for a in discover_images(boot)]

        assert kinds == [
            ArtifactKind.IMAGE_WITH_DTB,
            ArtifactKind.COMPRESSED_IMAGE,
            ArtifactKind.RAW_IMAGE,
        ]

    def test_raw_only(self, boot):
        """Only the raw image is found."""
        (boot / "Image").write_bytes(b"\0")
        images = discover_images(boot)
        assert [a.path.name for a in images] == ["Image"]

    def test_none(self, boot):
        """No images gives an empty list."""
        assert discover_images(boot) == []


class TestSelectImage:
    """Tests for select_image."""

    def test_prefers_embedded_dtb(self, boot):
        """The DTB-embedded image wins over the others."""
        artifacts = [
            BuildArtifact(ArtifactKind.RAW_IMAGE, boot / "Image"),
            BuildArtifact(ArtifactKind.DEVICE_TREE_BINARY, boot / "a.dtb"),
            BuildArtifact(ArtifactKind.IMAGE_WITH_DTB, boot / "Image.gz-dtb"),
        ]
        assert select_image(artifacts).path.name == "Image.gz-dtb"

    def test_compressed_over_raw(self, boot):
        """The compressed image wins over the raw one."""
        artifacts = [
            BuildArtifact(ArtifactKind.RAW_IMAGE, boot / "Image"),
            BuildArtifact(ArtifactKind.COMPRESSED_IMAGE, boot / "Image.gz"),
        ]
        assert select_image(artifacts).kind == ArtifactKind.COMPRESSED_IMAGE

    def test_no_image(self, boot):
        """Device tree binaries alone select nothing."""
        artifacts = [BuildArtifact(ArtifactKind.DEVICE_TREE_BINARY, boot / "a.dtb")]
        assert select_image(artifacts) is None


class TestDiscoverDtbs:
    """Tests for discover_dtbs."""

    def test_nested(self, boot):
        """DTBs are found recursively under dts/."""
        vendor = boot / "dts" / "vendor" / "qcom"
        vendor.mkdir(parents=True)
        (vendor / "b.dtb").write_bytes(b"\0")
        (vendor / "a.dtb").write_bytes(b"\0")
        (vendor / "a.dts").write_text("")

        dtbs = discover_dtbs(boot)

        assert [d.path.name for d in dtbs] == ["a.dtb", "b.dtb"]
        assert all(d.kind == ArtifactKind.DEVICE_TREE_BINARY for d in dtbs)

    def test_no_dts_dir(self, boot):
        """A missing dts/ directory gives no DTBs."""
        assert discover_dtbs(boot) == []


class TestDiscoverModules:
    """Tests for discover_modules."""

    def test_modules(self, tmp_path):
        """Loadable modules are found anywhere in the output tree."""
        out = tmp_path / "out"
        (out / "drivers" / "net").mkdir(parents=True)
        (out / "drivers" / "net" / "wlan.ko").write_bytes(b"\0")
        (out / "drivers" / "net" / "wlan.o").write_bytes(b"\0")

        modules = discover_modules(out)

        assert [m.path.name for m in modules] == ["wlan.ko"]
        assert modules[0].kind == ArtifactKind.LOADABLE_MODULE

    def test_missing_output(self, tmp_path):
        """A missing output tree gives no modules."""
        assert discover_modules(tmp_path / "out") == []


class TestComputeFileHash:
    """Tests for compute_file_hash."""

    def test_sha256(self, tmp_path):
        """Should match hashlib's digest."""
        path = tmp_path / "Image"
        path.write_bytes(b"kernel" * 1000)
        assert compute_file_hash(path) == hashlib.sha256(b"kernel" * 1000).hexdigest()
