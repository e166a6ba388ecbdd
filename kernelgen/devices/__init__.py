"""Device profile module.

This module handles:
- Pydantic schema for device profiles
- Loading profiles from YAML/JSON files
- Built-in profiles
"""

from kernelgen.devices.builtin import BUILTIN_PROFILES, DEFAULT_DEVICE_ID
from kernelgen.devices.io import ProfileLoadError, load_profile
from kernelgen.devices.schema import DeviceProfileSchema, InstallerSchema, RepoSchema

__all__ = [
    "BUILTIN_PROFILES",
    "DEFAULT_DEVICE_ID",
    "DeviceProfileSchema",
    "InstallerSchema",
    "ProfileLoadError",
    "RepoSchema",
    "load_profile",
]
