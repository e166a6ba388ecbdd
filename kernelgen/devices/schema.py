"""Pydantic models for device profile validation.

A device profile holds everything that is specific to one handset:
where its source trees live, which baseline configuration to start
from, and how the flashable installer identifies the device.
"""

import re
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEVICE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_.\-]+$")
SUPPORTED_VERSIONS_PATTERN = re.compile(r"^\d+(-\d+)?$")


def _validate_relative(v: str) -> str:
    """Reject absolute paths and parent references."""
    if v.startswith("/") or ".." in v.split("/"):
        raise ValueError(f"path must be relative to the kernel tree, got '{v}'")
    return v


class RepoSchema(BaseModel):
    """Schema for a git source tree.

    Attributes:
        url: Canonical clone URL.
        branch: Optional branch to clone (remote default if not set).
    """

    model_config = ConfigDict(extra="forbid")

    url: Annotated[str, Field(description="Canonical clone URL", min_length=1)]
    branch: str | None = Field(default=None, description="Branch to clone")


class InstallerSchema(BaseModel):
    """Schema for the flashable installer settings.

    Attributes:
        framework: Packaging framework repository (AnyKernel3).
        device_names: Device identifiers checked by the installer.
        supported_versions: Supported Android version range (e.g. '13-15').
        boot_block: Boot partition block device path.
        is_slot_device: Whether the device uses A/B slots.
        archive_prefix: Prefix of the flashable archive file name.
    """

    model_config = ConfigDict(extra="forbid")

    framework: RepoSchema = Field(
        default_factory=lambda: RepoSchema(
            url="https://github.com/osm0sis/AnyKernel3.git"
        ),
        description="Packaging framework repository",
    )
    device_names: Annotated[
        list[str], Field(description="Installer device identifiers", min_length=1)
    ]
    supported_versions: str = Field(
        default="", description="Supported Android versions (e.g. '13-15')"
    )
    boot_block: str = Field(
        default="/dev/block/bootdevice/by-name/boot",
        description="Boot partition block device",
    )
    is_slot_device: bool = Field(default=True)
    archive_prefix: Annotated[
        str, Field(description="Archive name prefix", min_length=1, max_length=100)
    ]

    @field_validator("supported_versions")
    @classmethod
    def validate_supported_versions(cls, v: str) -> str:
        """Validate the version range looks like 'N' or 'N-M'."""
        if v and not SUPPORTED_VERSIONS_PATTERN.match(v):
            raise ValueError(
                f"supported_versions must look like '13' or '13-15', got '{v}'"
            )
        return v


class DeviceProfileSchema(BaseModel):
    """Complete device profile.

    Attributes:
        device_id: Device codename (e.g. 'garnet').
        name: Marketing name of the device.
        kernel_name: Display name of the kernel build.
        arch: Kernel architecture.
        kernel: Base kernel source tree.
        devicetrees: Optional device tree source tree.
        modules: Optional vendor modules source tree.
        defconfig_candidates: Baseline configurations, most specific first.
        device_fragment: Device config fragment relative to the kernel tree.
        build_output: Out-of-tree build directory name.
        installer: Flashable installer settings.
    """

    model_config = ConfigDict(extra="forbid")

    device_id: Annotated[
        str, Field(description="Device codename", min_length=1, max_length=64)
    ]
    name: Annotated[str, Field(description="Device name", min_length=1)]
    kernel_name: Annotated[str, Field(description="Kernel display name", min_length=1)]
    arch: str = Field(default="arm64", description="Kernel architecture")

    kernel: RepoSchema
    devicetrees: RepoSchema | None = None
    modules: RepoSchema | None = None

    defconfig_candidates: Annotated[
        list[str],
        Field(description="Baseline defconfig names, most specific first", min_length=1),
    ]
    device_fragment: str | None = Field(
        default=None, description="Device fragment path relative to the kernel tree"
    )
    build_output: str = Field(default="out", description="Out-of-tree build dir")

    installer: InstallerSchema

    @field_validator("device_id")
    @classmethod
    def validate_device_id(cls, v: str) -> str:
        """Validate device_id contains only safe characters."""
        if not DEVICE_ID_PATTERN.match(v):
            raise ValueError(
                "device_id must contain only letters, digits, '_', '.' and '-'"
            )
        return v

    @field_validator("defconfig_candidates")
    @classmethod
    def validate_defconfig_candidates(cls, v: list[str]) -> list[str]:
        """Validate each candidate stays inside the configs directory."""
        return [_validate_relative(c) for c in v]

    @field_validator("device_fragment", "build_output")
    @classmethod
    def validate_relative_paths(cls, v: str | None) -> str | None:
        """Validate tree-relative paths."""
        if v is None:
            return v
        return _validate_relative(v)


__all__ = [
    "DeviceProfileSchema",
    "InstallerSchema",
    "RepoSchema",
]
