"""
Capability table: the files, applications and system actions a voice
command is allowed to target.

The table is loaded once from a YAML file and is immutable afterwards.
Keys are matched case-insensitively.

Example file:

    files:
      resume: ~/Documents/resume.pdf
    applications:
      chrome: "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe"
    system:
      shutdown: false     # every other action stays enabled
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

import yaml


SYSTEM_ACTIONS = (
    "volume_mute",
    "volume_up",
    "volume_down",
    "volume_set",
    "sleep",
    "shutdown",
    "restart",
    "lock",
)

# System actions that carry a numeric argument
ARGUMENT_ACTIONS = frozenset({"volume_set"})


class CapabilityConfigError(ValueError):
    """The capability file is missing, unreadable or inconsistent."""


def normalize_key(key: str) -> str:
    return key.strip().lower()


def _normalize_mapping(section: str, raw: Any) -> Mapping[str, str]:
    if raw is None:
        return MappingProxyType({})
    if not isinstance(raw, dict):
        raise CapabilityConfigError(f"'{section}' must be a mapping of name -> value")

    normalized: Dict[str, str] = {}
    for key, value in raw.items():
        if not isinstance(key, str) or not key.strip():
            raise CapabilityConfigError(f"'{section}' has an empty or non-string key: {key!r}")
        if not isinstance(value, str) or not value.strip():
            raise CapabilityConfigError(f"'{section}.{key}' must be a non-empty string")
        name = normalize_key(key)
        if name in normalized:
            raise CapabilityConfigError(f"'{section}' has duplicate key '{name}' (keys are case-insensitive)")
        normalized[name] = value.strip()
    return MappingProxyType(normalized)


def _enabled_system_actions(raw: Any) -> frozenset:
    """All actions default to enabled; the file may switch individual ones off."""
    if raw is None:
        return frozenset(SYSTEM_ACTIONS)
    if not isinstance(raw, dict):
        raise CapabilityConfigError("'system' must be a mapping of action -> true/false")

    flags = {name: True for name in SYSTEM_ACTIONS}
    for key, enabled in raw.items():
        name = normalize_key(str(key))
        if name not in flags:
            raise CapabilityConfigError(f"unknown system action '{key}'")
        if not isinstance(enabled, bool):
            raise CapabilityConfigError(f"'system.{key}' must be true or false")
        flags[name] = enabled
    return frozenset(name for name, enabled in flags.items() if enabled)


@dataclass(frozen=True)
class CapabilityTable:
    """Immutable snapshot of configured targets."""

    files: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    applications: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    system: frozenset = field(default_factory=lambda: frozenset(SYSTEM_ACTIONS))

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CapabilityTable":
        data = data or {}
        return cls(
            files=_normalize_mapping("files", data.get("files")),
            applications=_normalize_mapping("applications", data.get("applications")),
            system=_enabled_system_actions(data.get("system")),
        )

    def lookup_file(self, name: str) -> Optional[str]:
        return self.files.get(normalize_key(name))

    def lookup_app(self, name: str) -> Optional[str]:
        return self.applications.get(normalize_key(name))

    def has_system_action(self, name: str) -> bool:
        return normalize_key(name) in self.system

    def file_keys(self) -> list[str]:
        return sorted(self.files)

    def app_keys(self) -> list[str]:
        return sorted(self.applications)

    def system_actions(self) -> list[str]:
        """Enabled actions in their canonical order."""
        return [name for name in SYSTEM_ACTIONS if name in self.system]

    def is_empty(self) -> bool:
        return not (self.files or self.applications or self.system)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files": dict(self.files),
            "applications": dict(self.applications),
            "system": self.system_actions(),
        }


def load_capabilities(path: str | Path) -> CapabilityTable:
    """
    Load the capability table from a YAML file.

    PyYAML's safe_load also parses plain JSON, so either format works.
    """
    path = Path(path).expanduser()
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise CapabilityConfigError(f"cannot read capability file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise CapabilityConfigError(f"cannot parse capability file {path}: {e}") from e

    if data is not None and not isinstance(data, dict):
        raise CapabilityConfigError(f"capability file {path} must contain a mapping at top-level")
    return CapabilityTable.from_dict(data)
