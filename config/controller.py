"""YAML configuration for guidance tunables.

``config/default.yaml`` ships with the project; ``config/override.yaml`` holds
local changes and is deep-merged over it. Each component reads only its own
section through :func:`load_section`.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from core.logging import logger


CONFIG_SECTIONS = ("depth", "tracking", "walls", "guidance", "speech", "health", "pipeline")


@dataclass(frozen=True)
class ConfigPaths:
    """Where the default and override files live."""

    config_dir: Path
    config_file: Path
    override_file: Path

    @classmethod
    def under(cls, base_dir: Path, config_file: str = "default.yaml") -> "ConfigPaths":
        config_dir = base_dir / "config"
        return cls(config_dir, config_dir / config_file, config_dir / "override.yaml")

    def archive_file(self, index: int) -> Path:
        return self.config_dir / f"override_{index:04d}.yaml"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` with ``override`` applied; nested mappings merge key by key."""

    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _read_mapping(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")
    return data


def normalize_config(config: dict[str, Any]) -> dict[str, Any]:
    """Coerce every known section to a mapping and resolve legacy keys."""

    normalized = dict(config)
    for section in CONFIG_SECTIONS:
        value = normalized.get(section)
        if value is not None and not isinstance(value, dict):
            logger.warning("[CONFIG] Section %r is not a mapping; using defaults", section)
            value = None
        normalized[section] = dict(value or {})

    depth_cfg = normalized["depth"]
    # Older configs carried the depth scale as a flat top-level key.
    if "depth_scale_factor" in normalized:
        depth_cfg.setdefault("scale_factor", normalized["depth_scale_factor"])
    if "scale_factor" in depth_cfg:
        try:
            scale_factor = float(depth_cfg["scale_factor"])
        except (TypeError, ValueError):
            scale_factor = 0.0
        if scale_factor > 0.0:
            depth_cfg["scale_factor"] = scale_factor
        else:
            logger.warning("[CONFIG] depth.scale_factor=%r is not positive; using default", depth_cfg["scale_factor"])
            del depth_cfg["scale_factor"]
    return normalized


class ConfigController:
    """Process-wide holder of the merged configuration."""

    _instance: "ConfigController | None" = None

    def __init__(self, config_file: str = "default.yaml", base_dir: Path | None = None) -> None:
        if ConfigController._instance is not None:
            raise RuntimeError("ConfigController is a singleton; use get_instance()")
        self.paths = ConfigPaths.under(base_dir if base_dir is not None else Path("."), config_file)
        self.config: dict[str, Any] = {}
        self.load_config()

    @classmethod
    def get_instance(cls) -> "ConfigController":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def load_config(self) -> None:
        """Read the default file and merge any override over it."""

        config = _read_mapping(self.paths.config_file)
        if self.paths.override_file.exists():
            override = _read_mapping(self.paths.override_file)
            if override:
                config = deep_merge(config, override)
        self.config = normalize_config(config)
        logger.debug("[CONFIG] Loaded %s", self.paths.config_file)

    def get_config(self) -> dict[str, Any]:
        return dict(self.config)

    def get_section(self, name: str) -> dict[str, Any]:
        """Return a copy of one section; unknown sections are empty."""

        return dict(self.config.get(name) or {})

    def set_config(self, config: dict[str, Any]) -> None:
        """Replace the live configuration and persist it as the new override."""

        self.config = normalize_config(config)
        self.save_config(self.config)

    def save_config(self, config: dict[str, Any]) -> None:
        """Write ``config`` to override.yaml, archiving the previous override first."""

        override = self.paths.override_file
        if override.exists():
            index = 1
            while self.paths.archive_file(index).exists():
                index += 1
            override.rename(self.paths.archive_file(index))
            logger.info("[CONFIG] Archived previous override as %s", self.paths.archive_file(index).name)

        with override.open("w", encoding="utf-8") as handle:
            yaml.safe_dump(config, handle, sort_keys=True)


def load_section(name: str) -> dict[str, Any]:
    """Return one configuration section, or ``{}`` when no config can be loaded."""

    try:
        return ConfigController.get_instance().get_section(name)
    except Exception as exc:
        logger.debug("[CONFIG] Using defaults for %s (%s)", name, exc)
        return {}
