"""User configuration loaded from an optional YAML file."""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from porttop.errors import ConfigError
from porttop.filters import SortKey
from porttop.processor import DEFAULT_PRESETS, TypePreset

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "porttop" / "config.yaml"

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


@dataclass(slots=True)
class Settings:
    """Tunables for one porttop session."""

    refresh_interval: float = 2.0
    cache_ttl: float = 30.0
    cache_size: int = 1000
    max_concurrency: int = 10
    kill_wait: float = 1.0
    post_kill_delay: float = 0.2
    snapshot_ttl: float = 1.0
    show_details: bool = True
    sort: SortKey = SortKey.PORT
    log_file: Path | None = None
    log_level: str = "info"
    color: bool = True
    type_presets: tuple[TypePreset, ...] = field(default_factory=lambda: DEFAULT_PRESETS)


# Lower bounds applied to numeric settings
MINIMUMS = {
    "refresh_interval": 0.1,
    "cache_ttl": 0.0,
    "cache_size": 1,
    "max_concurrency": 1,
    "kill_wait": 0.0,
    "post_kill_delay": 0.0,
    "snapshot_ttl": 0.0,
}


def load_settings(path: Path | None = None) -> Settings:
    """
    Load settings from ``path``, or the default location if None.

    A missing file yields the defaults. Numeric values below their minimum are
    raised to it.

    Raises:
        ConfigError: The file is unreadable, not YAML, or holds invalid values.
    """
    config_path = path or DEFAULT_CONFIG_PATH
    if not config_path.is_file():
        if path is not None:
            raise ConfigError(f"Config file not found: {config_path}")
        return Settings()

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path}: expected a mapping at the top level")
    return settings_from_mapping(data)


def settings_from_mapping(data: dict[str, Any]) -> Settings:
    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

    values: dict[str, Any] = {}
    try:
        for name in ("refresh_interval", "cache_ttl", "kill_wait", "post_kill_delay", "snapshot_ttl"):
            if name in data:
                values[name] = max(MINIMUMS[name], float(data[name]))
        for name in ("cache_size", "max_concurrency"):
            if name in data:
                values[name] = max(MINIMUMS[name], int(data[name]))
        for name in ("show_details", "color"):
            if name in data:
                if not isinstance(data[name], bool):
                    raise ConfigError(f"{name} must be true or false")
                values[name] = data[name]
        if "sort" in data:
            values["sort"] = SortKey(str(data["sort"]).lower())
        if data.get("log_file"):
            values["log_file"] = Path(str(data["log_file"])).expanduser()
        if "log_level" in data:
            level = str(data["log_level"]).lower()
            if level not in LOG_LEVELS:
                raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
            values["log_level"] = level
        if "type_presets" in data:
            extra = tuple(TypePreset.from_mapping(item) for item in data["type_presets"] or ())
            values["type_presets"] = merge_presets(DEFAULT_PRESETS, extra)
    except (TypeError, ValueError, KeyError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return Settings(**values)


def merge_presets(
    base: tuple[TypePreset, ...], extra: tuple[TypePreset, ...]
) -> tuple[TypePreset, ...]:
    """Presets from ``extra`` replace same-named ones in ``base`` or are added."""
    merged = {preset.name: preset for preset in base}
    merged.update((preset.name, preset) for preset in extra)
    return tuple(merged.values())
