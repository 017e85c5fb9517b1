"""
Configuration file support for MetaRev.

Loads settings from ``~/.config/metarev/config.yaml`` (or
``$XDG_CONFIG_HOME/metarev/config.yaml``) and exposes them as typed
dataclasses that the CLI can merge with command-line flags.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from metarev_py.retention import RetentionPolicy

logger = logging.getLogger("metarev.config")


def default_config_path() -> Path:
    """Return the default configuration file path.

    Uses ``$XDG_CONFIG_HOME/metarev/config.yaml`` when set, otherwise
    falls back to ``~/.config/metarev/config.yaml``.
    """
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "metarev" / "config.yaml"
    return Path.home() / ".config" / "metarev" / "config.yaml"


def default_database_path() -> Path:
    """Return the default location of the SQLite store."""
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "metarev" / "metarev.db"
    return Path.home() / ".local" / "share" / "metarev" / "metarev.db"


@dataclass
class MetarevConfig:
    """Top-level configuration loaded from the YAML file."""

    database: Optional[Path] = None
    tracked_keys: List[str] = field(default_factory=list)
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetarevConfig":
        """Construct a ``MetarevConfig`` from a parsed YAML dictionary."""
        if not isinstance(data, dict):
            return cls()

        tracked_keys: List[str] = []
        for entry in data.get("tracked_keys") or []:
            if not isinstance(entry, str) or not entry:
                logger.warning("Skipping invalid tracked_keys entry: %s", entry)
                continue
            if entry not in tracked_keys:
                tracked_keys.append(entry)

        database = data.get("database")
        return cls(
            database=Path(database).expanduser() if database else None,
            tracked_keys=tracked_keys,
            retention=RetentionPolicy.from_dict(data.get("retention") or {}),
        )

    @classmethod
    def from_file(cls, path: Path) -> "MetarevConfig":
        """Read a YAML file and return a ``MetarevConfig``.

        Returns an empty default config on any error.
        """
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f.read())
            if data is None:
                return cls()
            return cls.from_dict(data)
        except (IOError, yaml.YAMLError) as e:
            logger.error("Failed to load config from %s: %s", path, e)
            return cls()

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "MetarevConfig":
        """Main entry point: load config from *config_path* or the default location.

        Returns an empty config if the file does not exist.
        """
        path = config_path or default_config_path()
        if not path.exists():
            return cls()
        return cls.from_file(path)
