"""Pydantic models for feature overlay definitions.

A feature overlay is an independently-sourced enhancement that gets
integrated into the base kernel tree. Its definition is pure data: where
the overlay lives, what the integrator copies and patches, how success
is verified, and which configuration it needs.

Copy sources, the setup script and the patch directory are relative to
the overlay's own tree; everything else is relative to the base kernel
tree.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from kernelgen.devices.schema import RepoSchema


def _validate_relative(v: str) -> str:
    if v.startswith("/") or ".." in v.split("/"):
        raise ValueError(f"path must be relative, got '{v}'")
    return v


class CopySpec(BaseModel):
    """A directory copied from the overlay tree into the base tree."""

    model_config = ConfigDict(extra="forbid")

    source: str = Field(description="Directory in the overlay tree")
    dest: str = Field(description="Directory in the base tree")

    @field_validator("source", "dest")
    @classmethod
    def validate_paths(cls, v: str) -> str:
        """Validate both sides are relative paths."""
        return _validate_relative(v)


class SourceFixup(BaseModel):
    """A literal text replacement applied to a base tree file before building."""

    model_config = ConfigDict(extra="forbid")

    path: str = Field(description="File in the base tree")
    old: Annotated[str, Field(min_length=1)]
    new: str

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Validate the path is relative."""
        return _validate_relative(v)


class PlaceholderHeader(BaseModel):
    """Header installed from the overlay, or synthesized when it is missing.

    Attributes:
        source: Header path in the overlay tree.
        dest: Header path in the base tree.
        guard: Config symbol guarding the (empty) placeholder body.
    """

    model_config = ConfigDict(extra="forbid")

    source: str
    dest: str
    guard: str

    @field_validator("source", "dest")
    @classmethod
    def validate_paths(cls, v: str) -> str:
        """Validate both sides are relative paths."""
        return _validate_relative(v)


class FeatureSpec(BaseModel):
    """Definition of a feature overlay.

    Attributes:
        name: Stable identifier (also the workspace subdirectory).
        display_name: Human-readable name.
        label: Short label used in archive names and display strings.
        repo: Overlay source repository.
        integration: 'full' tries the automated setup then falls back to
            manual integration; 'light' applies patches and copies files.
        setup_script: Self-contained setup procedure in the overlay tree.
        setup_args: Arguments for the setup procedure.
        markers: Base tree paths proving the integration took effect.
        driver: Driver source subtree copied by manual integration.
        required_files: Base tree files that must exist after integration.
        patches_dir: Directory of ``*.patch`` files in the overlay tree.
        aux_dirs: Enhancement directories copied best-effort.
        filesystem: Filesystem source subtree (light integration).
        header: Primary header (light integration).
        config_fragment: Kconfig assignments required by the feature.
        source_fixups: Text replacements applied before the build.
    """

    model_config = ConfigDict(extra="forbid")

    name: Annotated[str, Field(min_length=1, pattern=r"^[a-z0-9_\-]+$")]
    display_name: Annotated[str, Field(min_length=1)]
    label: Annotated[str, Field(min_length=1, pattern=r"^[A-Za-z0-9_\-]+$")]
    repo: RepoSchema
    integration: Literal["full", "light"] = "full"

    setup_script: str | None = None
    setup_args: list[str] = Field(default_factory=list)
    markers: list[str] = Field(default_factory=list)

    driver: CopySpec | None = None
    required_files: list[str] = Field(default_factory=list)
    patches_dir: str | None = None
    aux_dirs: list[CopySpec] = Field(default_factory=list)

    filesystem: CopySpec | None = None
    header: PlaceholderHeader | None = None

    config_fragment: dict[str, str | None] = Field(default_factory=dict)
    source_fixups: list[SourceFixup] = Field(default_factory=list)

    @field_validator("setup_script", "patches_dir")
    @classmethod
    def validate_optional_paths(cls, v: str | None) -> str | None:
        """Validate optional overlay-relative paths."""
        if v is None:
            return v
        return _validate_relative(v)

    @field_validator("markers", "required_files")
    @classmethod
    def validate_path_lists(cls, v: list[str]) -> list[str]:
        """Validate base-tree-relative path lists."""
        return [_validate_relative(p) for p in v]

    @field_validator("config_fragment")
    @classmethod
    def validate_config_keys(cls, v: dict[str, str | None]) -> dict[str, str | None]:
        """Validate fragment keys are Kconfig symbols."""
        for key in v:
            if not key.startswith("CONFIG_"):
                raise ValueError(f"config keys must start with 'CONFIG_', got '{key}'")
        return v


__all__ = ["CopySpec", "FeatureSpec", "PlaceholderHeader", "SourceFixup"]
