"""Feature integration module.

This module handles:
- Dry-run gated patch set application
- Automated and manual integration strategies
- Pre-build source fixups
"""

from kernelgen.integrate.patches import PatchResult, PatchSetReport
from kernelgen.integrate.service import (
    IntegrationResult,
    apply_source_fixups,
    integrate,
)

__all__ = [
    "IntegrationResult",
    "PatchResult",
    "PatchSetReport",
    "apply_source_fixups",
    "integrate",
]
