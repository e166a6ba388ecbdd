"""Configuration settings for kernelgen.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

import os
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_KCFLAGS = (
    "-Wno-error -Wno-format -Wno-unused-variable -Wno-format-extra-args "
    "-Wno-array-bounds -Wno-stringop-overflow -D__NO_FORTIFY -fno-stack-protector"
)
DEFAULT_HOSTCFLAGS = "-Wno-error -Wno-format"


def _default_workspace_dir() -> Path:
    """Return the default workspace directory."""
    return Path.cwd() / "kernel_build"


def _default_jobs() -> int:
    """Return the default build concurrency hint."""
    return os.cpu_count() or 1


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the KGEN_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="KGEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Paths
    workspace_dir: Path = Field(
        default_factory=_default_workspace_dir,
        description="Workspace holding one subtree per source tree plus output",
    )
    profile_path: Path | None = Field(
        default=None,
        description="Device profile file (uses the built-in profile if not set)",
    )

    # Feature toggles
    enable_privilege_overlay: bool = Field(
        default=True,
        description="Integrate the privilege-management overlay (SukiSU Ultra)",
    )
    enable_hiding_overlay: bool = Field(
        default=True,
        description="Integrate the filesystem-hiding overlay (SUSFS)",
    )
    enable_archive: bool = Field(
        default=True,
        description="Package a flashable AnyKernel3 archive",
    )

    # Toolchain
    android_ndk_home: Path | None = Field(
        default=None,
        validation_alias=AliasChoices("KGEN_ANDROID_NDK_HOME", "ANDROID_NDK_HOME"),
        description="Android NDK root used for the clang toolchain",
    )
    kcflags: str = Field(
        default=DEFAULT_KCFLAGS,
        description="KCFLAGS passed to the kernel build",
    )
    hostcflags: str = Field(
        default=DEFAULT_HOSTCFLAGS,
        description="HOSTCFLAGS passed to the kernel build",
    )

    # Concurrency
    jobs: int = Field(
        default_factory=_default_jobs,
        ge=1,
        description="Parallel jobs hint passed to make",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Timeouts (in seconds)
    sync_timeout: int = Field(
        default=1800,
        ge=60,
        description="Timeout for a single clone or update",
    )
    setup_timeout: int = Field(
        default=600,
        ge=60,
        description="Timeout for an overlay's automated setup procedure",
    )
    build_timeout: int = Field(
        default=14400,
        ge=60,
        description="Timeout for each make invocation",
    )

    @property
    def output_dir(self) -> Path:
        """Directory holding final artifacts and transcripts."""
        return self.workspace_dir / "output"


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
