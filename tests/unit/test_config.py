"""
Tests for the config module.
"""

import os
from pathlib import Path
from unittest.mock import patch

from metarev_py.config import (
    MetarevConfig,
    default_config_path,
    default_database_path,
)
from metarev_py.retention import RetentionPolicy


def test_default_config_path() -> None:
    """default_config_path falls back to ~/.config/metarev/config.yaml."""
    env = {"HOME": str(Path.home())}
    with patch.dict(os.environ, env, clear=True):
        result = default_config_path()
        assert result == Path.home() / ".config" / "metarev" / "config.yaml"


def test_default_config_path_xdg() -> None:
    """default_config_path respects $XDG_CONFIG_HOME."""
    with patch.dict(os.environ, {"XDG_CONFIG_HOME": "/custom/config"}):
        result = default_config_path()
        assert result == Path("/custom/config/metarev/config.yaml")


def test_default_database_path_xdg() -> None:
    with patch.dict(os.environ, {"XDG_DATA_HOME": "/custom/data"}):
        assert default_database_path() == Path("/custom/data/metarev/metarev.db")


def test_default_database_path() -> None:
    env = {"HOME": str(Path.home())}
    with patch.dict(os.environ, env, clear=True):
        expected = Path.home() / ".local" / "share" / "metarev" / "metarev.db"
        assert default_database_path() == expected


def test_missing_file_returns_defaults(tmp_path: Path) -> None:
    """Loading a non-existent file returns an empty config."""
    cfg = MetarevConfig.load(tmp_path / "nonexistent.yaml")
    assert cfg.database is None
    assert cfg.tracked_keys == []
    assert cfg.retention == RetentionPolicy()


def test_empty_file_returns_defaults(tmp_path: Path) -> None:
    """An empty YAML file returns an empty config."""
    p = tmp_path / "config.yaml"
    p.write_text("")
    cfg = MetarevConfig.from_file(p)
    assert cfg.database is None
    assert cfg.tracked_keys == []


def test_full_config_parsing(tmp_path: Path) -> None:
    """A fully-populated config file is parsed correctly."""
    p = tmp_path / "config.yaml"
    p.write_text("""\
database: "~/metarev/posts.db"
tracked_keys:
  - color
  - subtitle
retention:
  max_revisions: 10
""")
    cfg = MetarevConfig.from_file(p)
    assert cfg.database == Path.home() / "metarev" / "posts.db"
    assert cfg.tracked_keys == ["color", "subtitle"]
    assert cfg.retention.max_revisions == 10


def test_tracked_keys_invalid_entries_skipped(tmp_path: Path) -> None:
    """Non-string, empty and duplicate keys are dropped."""
    p = tmp_path / "config.yaml"
    p.write_text("""\
tracked_keys:
  - color
  - 42
  - ""
  - {nested: key}
  - color
  - size
""")
    cfg = MetarevConfig.from_file(p)
    assert cfg.tracked_keys == ["color", "size"]


def test_invalid_yaml_returns_defaults(tmp_path: Path) -> None:
    """Malformed YAML returns an empty config instead of raising."""
    p = tmp_path / "config.yaml"
    p.write_text(": : : [invalid yaml")
    cfg = MetarevConfig.from_file(p)
    assert cfg.database is None
    assert cfg.tracked_keys == []


def test_from_dict_non_dict() -> None:
    """from_dict with a non-dict value returns defaults."""
    cfg = MetarevConfig.from_dict("not a dict")  # type: ignore[arg-type]
    assert cfg.database is None


def test_load_uses_default_path(tmp_path: Path) -> None:
    """load() without arguments uses default_config_path()."""
    with patch(
        "metarev_py.config.default_config_path", return_value=tmp_path / "nope.yaml"
    ):
        cfg = MetarevConfig.load()
    assert cfg.tracked_keys == []
