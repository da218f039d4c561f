"""Configuration loading and validation."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

LOGGER = logging.getLogger(__name__)

CONFIG_ENV_VAR = "BAYESDB_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/bayesdb/config.yaml")
DEFAULT_ROOT_DIR = Path("~/.local/lib/bayesdb")
DEFAULT_DATABASE_NAME = "model.sqlite3"
DEFAULT_LOG_LEVEL = "info"


class ConfigError(ValueError):
    """Raised when configuration is invalid or missing."""


@dataclass(frozen=True)
class LoggingConfig:
    """Logging-related configuration."""

    level: str = DEFAULT_LOG_LEVEL
    debug_file: bool = False


@dataclass(frozen=True)
class Config:
    """Fully parsed configuration."""

    root_dir: Path
    database: Path | str
    classes: tuple[str, ...]
    logging: LoggingConfig
    spool_dir: Path | None = None
    debug: bool = False

    def class_id(self, label: str | int) -> int:
        """Resolve a class name or numeric id to a class id.

        Numeric labels are returned as-is, even when out of range, so the
        learner can report them.
        """

        if isinstance(label, int):
            return label
        text = str(label).strip()
        lowered = text.lower()
        for index, name in enumerate(self.classes):
            if name.lower() == lowered:
                return index
        try:
            return int(text)
        except ValueError as exc:
            raise ConfigError(f"Unknown class '{label}'.") from exc

    def class_name(self, class_id: int) -> str:
        if 0 <= class_id < len(self.classes):
            return self.classes[class_id]
        return str(class_id)


def load_config(path: Path | str | None = None) -> Config:
    """Load and validate configuration from YAML."""

    config_path = resolve_config_path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    if not isinstance(raw, dict):
        raise ConfigError("Configuration root must be a mapping.")

    return parse_config(raw)


def resolve_config_path(explicit: Path | str | None) -> Path:
    if explicit:
        return Path(explicit).expanduser()
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH.expanduser()


def parse_config(raw: dict[str, Any]) -> Config:
    root_dir = Path(raw.get("root_dir") or DEFAULT_ROOT_DIR).expanduser()
    return Config(
        root_dir=root_dir,
        database=_parse_database(raw.get("database"), root_dir),
        classes=_parse_classes(raw.get("classes")),
        logging=_parse_logging(raw.get("logging")),
        spool_dir=_parse_optional_path(raw.get("spool_dir"), "spool_dir"),
        debug=_parse_bool(raw.get("debug", False), "debug"),
    )


def _parse_database(value: Any, root_dir: Path) -> Path | str:
    if value is None:
        return root_dir / DEFAULT_DATABASE_NAME
    if not isinstance(value, (str, Path)):
        raise ConfigError("database must be a path or 'memory'.")
    text = str(value).strip()
    if not text:
        raise ConfigError("database cannot be empty.")
    if text in {"memory", ":memory:"}:
        return text
    return Path(text).expanduser()


def _parse_classes(value: Any) -> tuple[str, ...]:
    if value is None:
        raise ConfigError("At least two classes must be configured.")
    if not isinstance(value, list):
        raise ConfigError("classes must be a list of class names.")

    names: list[str] = []
    seen: set[str] = set()
    for idx, entry in enumerate(value, start=1):
        if not isinstance(entry, (str, int)) or isinstance(entry, bool):
            raise ConfigError(f"classes[{idx}] must be a string.")
        name = str(entry).strip()
        if not name:
            raise ConfigError(f"classes[{idx}] cannot be empty.")
        if name.lower() in seen:
            raise ConfigError(f"Duplicate class name '{name}'.")
        seen.add(name.lower())
        names.append(name)
    if len(names) < 2:
        raise ConfigError("At least two classes must be configured.")
    return tuple(names)


def _parse_optional_path(value: Any, field_name: str) -> Path | None:
    if value is None:
        return None
    if not isinstance(value, (str, Path)):
        raise ConfigError(f"{field_name} must be a string path.")
    return Path(value).expanduser()


def _parse_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ConfigError(f"{field_name} must be true or false.")


def _parse_logging(value: Any) -> LoggingConfig:
    if value is None:
        return LoggingConfig()
    if not isinstance(value, dict):
        raise ConfigError("logging must be a mapping.")
    level = str(value.get("level", DEFAULT_LOG_LEVEL)).lower()
    debug_file = bool(value.get("debug_file", False))
    return LoggingConfig(level=level, debug_file=debug_file)


__all__ = [
    "CONFIG_ENV_VAR",
    "Config",
    "ConfigError",
    "LoggingConfig",
    "load_config",
    "parse_config",
    "resolve_config_path",
]
