"""Kernel configuration composition.

This module handles:
- Parsing, folding and rendering configuration fragments
- Composing the effective configuration from ordered layers
"""

from kernelgen.kconfig.composer import (
    EffectiveConfig,
    compose_config,
    feature_fragments,
)
from kernelgen.kconfig.fragments import ConfigFragment, fold_layers, parse_config

__all__ = [
    "ConfigFragment",
    "EffectiveConfig",
    "compose_config",
    "feature_fragments",
    "fold_layers",
    "parse_config",
]
