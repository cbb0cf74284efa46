"""Where BillBuddy keeps its database, settings, backups and logs.

Resolution order for the storage root:

1. ``BILLBUDDY_DATA_ROOT``
2. ``%PROGRAMDATA%\\BillBuddy`` on Windows
3. ``$XDG_DATA_HOME/billbuddy`` when set
4. ``~/.billbuddy``

``BILLBUDDY_DB`` may point the database at a file outside the root, e.g. a
copy pulled from the waiter's phone.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

__all__ = [
    "StoragePaths",
    "resolve_paths",
    "BASE_DIR",
    "DATA_DIR",
    "CONFIG_DIR",
    "BACKUP_DIR",
    "LOG_DIR",
    "DB_PATH",
    "SETTINGS_FILE",
    "LOG_FILE",
    "ensure_storage_dirs",
]


@dataclass(frozen=True, slots=True)
class StoragePaths:
    root: Path
    db_path: Path

    @property
    def data_dir(self) -> Path:
        return self.root / "data"

    @property
    def config_dir(self) -> Path:
        return self.root / "config"

    @property
    def backup_dir(self) -> Path:
        return self.root / "backup"

    @property
    def log_dir(self) -> Path:
        return self.root / "logs"

    @property
    def settings_file(self) -> Path:
        return self.config_dir / "settings.json"

    @property
    def log_file(self) -> Path:
        return self.log_dir / "billbuddy.log"

    def directories(self) -> tuple[Path, ...]:
        return (self.data_dir, self.config_dir, self.backup_dir, self.log_dir, self.db_path.parent)


def _root_from(environ: Mapping[str, str], os_name: str) -> Path:
    override = environ.get("BILLBUDDY_DATA_ROOT")
    if override:
        return Path(override).expanduser().resolve()
    if os_name == "nt":
        return Path(environ.get("PROGRAMDATA") or r"C:\ProgramData") / "BillBuddy"
    xdg = environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg).expanduser() / "billbuddy"
    return Path.home() / ".billbuddy"


def resolve_paths(environ: Optional[Mapping[str, str]] = None, os_name: Optional[str] = None) -> StoragePaths:
    env = os.environ if environ is None else environ
    root = _root_from(env, os_name or os.name)
    db_override = env.get("BILLBUDDY_DB")
    db_path = Path(db_override).expanduser().resolve() if db_override else root / "data" / "billbuddy.db"
    return StoragePaths(root=root, db_path=db_path)


_PATHS = resolve_paths()

BASE_DIR = _PATHS.root
DATA_DIR = _PATHS.data_dir
CONFIG_DIR = _PATHS.config_dir
BACKUP_DIR = _PATHS.backup_dir
LOG_DIR = _PATHS.log_dir
DB_PATH = _PATHS.db_path
SETTINGS_FILE = _PATHS.settings_file
LOG_FILE = _PATHS.log_file


def ensure_storage_dirs() -> None:
    for path in _PATHS.directories():
        path.mkdir(parents=True, exist_ok=True)
