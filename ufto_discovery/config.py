"""Configuration loading for ufto-discovery (.ufto-discovery.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .git.changes import DEFAULT_SIMILARITY_THRESHOLD
from .models import ToolType
from .stores.sync_marker import DEFAULT_MARKER_PATH

CONFIG_FILENAME = ".ufto-discovery.yml"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class DiscoverySettings:
    """Traversal and change detection settings."""

    exclude_dirs: List[str] = field(default_factory=list)
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD


@dataclass
class SyncSettings:
    """Where the last synced commit is persisted."""

    marker_path: Path = DEFAULT_MARKER_PATH


@dataclass
class DiscoveryConfig:
    """Represents the settings defined in .ufto-discovery.yml."""

    root: Path
    tool_type: ToolType = ToolType.UFT
    discovery: DiscoverySettings = field(default_factory=DiscoverySettings)
    sync: SyncSettings = field(default_factory=SyncSettings)


def load_config(config_path: Path) -> DiscoveryConfig:
    """Load configuration from disk; a missing file yields the defaults."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return DiscoveryConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    tool_type = ToolType.UFT
    tool_value = _as_str(data.get("tool_type"))
    if tool_value:
        try:
            tool_type = ToolType.parse(tool_value)
        except ValueError as exc:
            raise ConfigError(f"{CONFIG_FILENAME}: {exc}") from exc

    discovery = DiscoverySettings()
    discovery_data = _as_dict(data.get("discovery"))
    if discovery_data:
        discovery.exclude_dirs = _as_str_list(discovery_data.get("exclude_dirs"))
        threshold = _as_float(discovery_data.get("similarity_threshold"))
        if threshold is not None:
            if not 0.0 <= threshold <= 1.0:
                raise ConfigError(
                    f"{CONFIG_FILENAME}: similarity_threshold must be between 0 and 1, got {threshold}"
                )
            discovery.similarity_threshold = threshold

    sync = SyncSettings()
    sync_data = _as_dict(data.get("sync"))
    marker_path = _as_str(sync_data.get("marker_path")) if sync_data else None
    if marker_path:
        sync.marker_path = Path(marker_path)

    return DiscoveryConfig(root=root, tool_type=tool_type, discovery=discovery, sync=sync)


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read {path.name}: {exc}") from exc
    if not text.strip():
        return {}

    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return {} if loaded is None else loaded


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = ["CONFIG_FILENAME", "ConfigError", "DiscoveryConfig", "load_config"]
