"""Device profile loading.

Profiles are stored as YAML or JSON files; the file format is chosen by
extension.
"""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from kernelgen.devices.schema import DeviceProfileSchema


class ProfileLoadError(Exception):
    """Raised when a device profile cannot be loaded."""

    def __init__(self, message: str, code: str = "profile_load_error") -> None:
        super().__init__(message)
        self.code = code


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def load_json(path: Path) -> dict[str, Any]:
    """Load a JSON file and return its contents as a dict."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def load_profile(path: Path) -> DeviceProfileSchema:
    """Load and validate a device profile from a YAML or JSON file.

    Args:
        path: Path to the profile file (.yaml, .yml or .json).

    Returns:
        Validated DeviceProfileSchema instance.

    Raises:
        ProfileLoadError: If the file is missing, unparsable or invalid.
    """
    suffix = path.suffix.lower()
    try:
        if suffix in (".yaml", ".yml"):
            data = load_yaml(path)
        elif suffix == ".json":
            data = load_json(path)
        else:
            raise ProfileLoadError(
                f"Unsupported profile format: {path.suffix}",
                code="unsupported_format",
            )
        return DeviceProfileSchema.model_validate(data)
    except FileNotFoundError as e:
        raise ProfileLoadError(
            f"Profile file not found: {path}", code="profile_not_found"
        ) from e
    except (yaml.YAMLError, json.JSONDecodeError, ValueError) as e:
        # pydantic.ValidationError is a ValueError subclass
        code = "validation" if isinstance(e, ValidationError) else "parse_error"
        raise ProfileLoadError(f"Invalid profile {path}: {e}", code=code) from e


def profile_to_yaml_string(profile: DeviceProfileSchema) -> str:
    """Serialize a profile to a YAML string."""
    data = profile.model_dump(exclude_none=True)
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)


__all__ = [
    "ProfileLoadError",
    "load_json",
    "load_profile",
    "load_yaml",
    "profile_to_yaml_string",
]
