"""KastenConfig: project-local config for a card store.

Default layout (relative to the directory holding kasten.toml):

    kasten.toml           # project config
    .kasten/
        kasten.db         # SQLite store written by kasten.persistence.save

kasten.toml example:

    [kasten]
    name = "spanish"
    # db_path = ".kasten/kasten.db"   # default

    [logging]
    level = "WARNING"
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_CONFIG_FILENAME = "kasten.toml"
_DEFAULT_DB_PATH = ".kasten/kasten.db"
_DEFAULT_LOG_LEVEL = "WARNING"


@dataclass
class LoggingConfig:
    level: str = _DEFAULT_LOG_LEVEL


@dataclass
class KastenConfig:
    """Resolved configuration for a card store project."""

    root: Path                      # directory that contains kasten.toml
    name: str = ""
    db_path: Path = field(default_factory=Path)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def exists(self) -> bool:
        return (self.root / _CONFIG_FILENAME).exists()

    def ensure_dirs(self) -> None:
        """Create the directory holding the store file."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)


def load_config(root: Path | str | None = None) -> KastenConfig:
    """Load kasten.toml from root (or search upward from cwd if root is None)."""
    root_path = _find_root(Path(root) if root else Path.cwd())
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    section = raw.get("kasten", {})
    log_section = raw.get("logging", {})

    return KastenConfig(
        root=root_path,
        name=section.get("name", root_path.name),
        db_path=root_path / section.get("db_path", _DEFAULT_DB_PATH),
        logging=LoggingConfig(
            level=str(log_section.get("level", _DEFAULT_LOG_LEVEL)).upper(),
        ),
    )


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for kasten.toml."""
    for directory in (start, *start.parents):
        if (directory / _CONFIG_FILENAME).exists():
            return directory
    return start


def init_config(root: Path, name: str | None = None) -> Path:
    """Write a default kasten.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"kasten.toml already exists at {config_path}"
        raise FileExistsError(msg)

    project_name = name or root.name
    content = f"""\
[kasten]
name = "{project_name}"
# db_path = ".kasten/kasten.db"   # default

# [logging]
# level = "WARNING"   # DEBUG shows every created deck, note and review
"""
    config_path.write_text(content)
    return config_path
