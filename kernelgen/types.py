"""Shared type definitions for kernelgen.

This module contains enums and dataclasses shared across subpackages
to avoid circular imports.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class SyncState(str, Enum):
    """Synchronization state of a source tree."""

    ABSENT = "absent"
    CLONED = "cloned"
    UPDATED = "updated"
    STALE = "stale"


class StrategyKind(str, Enum):
    """Integration strategy used for a feature overlay."""

    AUTOMATED = "automated"
    MANUAL = "manual"
    NONE_ATTEMPTED = "none-attempted"


class IntegrationOutcome(str, Enum):
    """Outcome of integrating a feature overlay into the base tree."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    NONE_ATTEMPTED = "none-attempted"


class PatchStatus(str, Enum):
    """Outcome of a single patch in a patch set."""

    APPLIED = "applied"
    SKIPPED = "skipped-would-fail"
    FAILED = "failed"


class ArtifactKind(str, Enum):
    """Kind of a build artifact."""

    RAW_IMAGE = "raw-image"
    COMPRESSED_IMAGE = "compressed-image"
    IMAGE_WITH_DTB = "image-with-device-tree"
    DEVICE_TREE_BINARY = "device-tree-binary"
    LOADABLE_MODULE = "loadable-module"


class StageStatus(str, Enum):
    """Status of a pipeline stage."""

    SUCCEEDED = "succeeded"
    DEGRADED = "degraded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class BuildArtifact:
    """A file produced by the kernel build."""

    kind: ArtifactKind
    path: Path


@dataclass(frozen=True)
class FeatureToggles:
    """Feature switches resolved from the command surface."""

    privilege_overlay: bool = True
    hiding_overlay: bool = True
    archive: bool = True

    @property
    def any_overlay(self) -> bool:
        """Whether at least one feature overlay is enabled."""
        return self.privilege_overlay or self.hiding_overlay


__all__ = [
    "ArtifactKind",
    "BuildArtifact",
    "FeatureToggles",
    "IntegrationOutcome",
    "PatchStatus",
    "StageStatus",
    "StrategyKind",
    "SyncState",
]
