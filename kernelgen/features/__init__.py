"""Feature overlay definitions.

This module handles:
- Pydantic schema for feature overlays
- The built-in SukiSU Ultra and SUSFS overlays
- The shared root-feature configuration fragment
"""

from kernelgen.features.builtin import (
    FEATURES,
    ROOT_FEATURES_FRAGMENT,
    SUKISU_FEATURE,
    SUSFS_FEATURE,
    enabled_features,
    feature_states,
)
from kernelgen.features.schema import (
    CopySpec,
    FeatureSpec,
    PlaceholderHeader,
    SourceFixup,
)

__all__ = [
    "FEATURES",
    "ROOT_FEATURES_FRAGMENT",
    "SUKISU_FEATURE",
    "SUSFS_FEATURE",
    "CopySpec",
    "FeatureSpec",
    "PlaceholderHeader",
    "SourceFixup",
    "enabled_features",
    "feature_states",
]
