"""SQLite connections for store files."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

from kasten.errors import StorageOpenError

if TYPE_CHECKING:
    from pathlib import Path


def open_for_write(db_path: Path) -> sqlite3.Connection:
    """Open (or create) a store file for a full rewrite.

    Uses the default rollback journal rather than WAL: the file is renamed
    after close, and a WAL sidecar would not follow it.
    """
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(str(db_path))
    except (OSError, sqlite3.Error) as exc:
        msg = f"cannot open {db_path}: {exc}"
        raise StorageOpenError(msg) from exc


def open_readonly(db_path: Path) -> sqlite3.Connection:
    """Open a store file read-only. Missing files are an error, not created."""
    if not db_path.is_file():
        msg = f"no store file at {db_path}"
        raise StorageOpenError(msg)
    try:
        return sqlite3.connect(f"{db_path.resolve().as_uri()}?mode=ro", uri=True)
    except sqlite3.Error as exc:
        msg = f"cannot open {db_path}: {exc}"
        raise StorageOpenError(msg) from exc
