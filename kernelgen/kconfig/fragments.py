"""Kernel configuration fragments as data.

A configuration is an ordered mapping of ``CONFIG_*`` symbols to their
raw value text (``y``, ``m``, ``"string"``, ``42``) or None for
``# CONFIG_FOO is not set``. Fragments are folded left to right: a later
layer overrides an earlier assignment in place and appends new symbols
at the end.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

ConfigValues = dict[str, str | None]

ASSIGNMENT_RE = re.compile(r"^(CONFIG_[A-Za-z0-9_]+)=(.*)$")
NOT_SET_RE = re.compile(r"^#\s*(CONFIG_[A-Za-z0-9_]+) is not set\s*$")


@dataclass
class ConfigFragment:
    """A named, ordered layer of configuration assignments."""

    name: str
    values: ConfigValues = field(default_factory=dict)

    @classmethod
    def from_mapping(
        cls, name: str, mapping: Mapping[str, str | None]
    ) -> ConfigFragment:
        return cls(name=name, values=dict(mapping))

    @classmethod
    def from_file(cls, name: str, path: Path) -> ConfigFragment:
        return cls(name=name, values=read_config(path))

    def __len__(self) -> int:
        return len(self.values)


def parse_config(text: str) -> ConfigValues:
    """Parse ``.config`` / fragment text into ordered values.

    Blank lines and comments other than "is not set" markers are ignored.
    A symbol assigned twice keeps its last value.
    """
    values: ConfigValues = {}
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue

        match = NOT_SET_RE.match(line)
        if match:
            values[match.group(1)] = None
            continue
        if line.startswith("#"):
            continue

        match = ASSIGNMENT_RE.match(line)
        if match:
            values[match.group(1)] = match.group(2).strip()
        else:
            logger.debug("Ignoring unrecognized config line %d: %s", lineno, line)
    return values


def render_config(values: Mapping[str, str | None]) -> str:
    """Render values back to ``.config`` text."""
    lines = [
        f"# {key} is not set" if value is None else f"{key}={value}"
        for key, value in values.items()
    ]
    return "\n".join(lines) + "\n" if lines else ""


def read_config(path: Path) -> ConfigValues:
    """Read a config file; a missing file reads as empty."""
    if not path.is_file():
        return {}
    return parse_config(path.read_text(encoding="utf-8", errors="replace"))


def write_config(path: Path, values: Mapping[str, str | None]) -> None:
    """Write values to a config file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_config(values), encoding="utf-8")


def fold_layers(layers: Iterable[ConfigFragment]) -> ConfigValues:
    """Fold layers left to right into one mapping; the last layer wins."""
    folded: ConfigValues = {}
    for layer in layers:
        for key, value in layer.values.items():
            folded[key] = value
    return folded


def apply_layer(path: Path, layer: ConfigFragment) -> ConfigValues:
    """Fold one more layer onto an existing config file and rewrite it."""
    values = fold_layers([ConfigFragment("current", read_config(path)), layer])
    write_config(path, values)
    logger.debug("Applied %d %s assignments to %s", len(layer), layer.name, path)
    return values


__all__ = [
    "ConfigFragment",
    "ConfigValues",
    "apply_layer",
    "fold_layers",
    "parse_config",
    "read_config",
    "render_config",
    "write_config",
]
