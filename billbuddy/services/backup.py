"""Daily copies of the billing database and restore from them."""
from __future__ import annotations

import logging
import os
import shutil
import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Iterator, Optional

from ..core import db as db_module
from ..core.config_store import get_config_value, set_config_value
from ..core.paths import BACKUP_DIR, ensure_storage_dirs

log = logging.getLogger(__name__)

_BACKUP_NAME = "billbuddy.db"
DEFAULT_RETENTION_DAYS = 14


def _dated_dirs(root: Path) -> list[tuple[date, Path]]:
    if not root.exists():
        return []
    found = []
    for entry in root.iterdir():
        if not entry.is_dir():
            continue
        try:
            entry_date = datetime.strptime(entry.name, "%Y-%m-%d").date()
        except ValueError:
            continue
        found.append((entry_date, entry))
    found.sort()
    return found


def iter_backups(root: Path = BACKUP_DIR) -> Iterator[Path]:
    """Backup files oldest first."""
    for _, day_dir in _dated_dirs(root):
        candidate = day_dir / _BACKUP_NAME
        if candidate.exists():
            yield candidate


def prune_old_backups(retention_days: int = DEFAULT_RETENTION_DAYS, root: Path = BACKUP_DIR) -> int:
    dated = _dated_dirs(root)
    removed = 0
    while len(dated) > retention_days:
        _, path = dated.pop(0)
        shutil.rmtree(path, ignore_errors=True)
        removed += 1
    if removed:
        log.info("pruned %d old backup(s)", removed)
    return removed


def backup_now(root: Path = BACKUP_DIR, retention_days: int = DEFAULT_RETENTION_DAYS) -> Path:
    """Create (or replace) today's backup and return its path."""
    ensure_storage_dirs()
    today_dir = root / date.today().isoformat()
    today_dir.mkdir(parents=True, exist_ok=True)
    target = today_dir / _BACKUP_NAME
    tmp_target = target.with_suffix(".tmp")

    # the online backup API copies a consistent snapshot even in WAL mode
    src = sqlite3.connect(db_module.database_path())
    dst = sqlite3.connect(tmp_target)
    try:
        src.backup(dst)
    finally:
        src.close()
        dst.close()
    os.replace(tmp_target, target)
    set_config_value("last_backup_date", date.today().isoformat())
    log.info("database backed up to %s", target)
    prune_old_backups(retention_days, root)
    return target


def ensure_daily_backup(root: Path = BACKUP_DIR, retention_days: int = DEFAULT_RETENTION_DAYS) -> Path:
    """Guarantee there's a backup for today (used on startup)."""
    today = date.today().isoformat()
    recorded = str(get_config_value("last_backup_date", ""))
    candidate = root / today / _BACKUP_NAME
    if recorded == today and candidate.exists():
        prune_old_backups(retention_days, root)
        return candidate
    return backup_now(root, retention_days)


def latest_backup_path(root: Path = BACKUP_DIR) -> Optional[Path]:
    latest = None
    for candidate in iter_backups(root):
        latest = candidate
    return latest


def restore_backup(source: Path) -> Path:
    """Replace the live database with a backup file and rebind the engine."""
    resolved = Path(source).resolve()
    if not resolved.exists():
        raise FileNotFoundError(resolved)
    if not resolved.is_file():
        raise ValueError(f"not a backup file: {resolved}")

    live = db_module.database_path()
    db_module.close_engine()
    for suffix in ("-wal", "-shm"):
        stale = live.with_name(live.name + suffix)
        if stale.exists():
            stale.unlink()
    tmp_path = live.with_suffix(".restore.tmp")
    shutil.copy2(resolved, tmp_path)
    os.replace(tmp_path, live)
    db_module.configure(live)
    log.warning("database restored from %s", resolved)
    return live
