import sqlite3
from datetime import date

import pytest

from billbuddy.services import backup, catalog


def _fake_backup(root, day):
    folder = root / day
    folder.mkdir(parents=True)
    (folder / "billbuddy.db").write_bytes(b"")
    return folder


def test_backup_now_writes_a_readable_copy(database, tmp_path):
    catalog.upsert_item("Lassi", 40, item_id="lassi")
    root = tmp_path / "backups"

    target = backup.backup_now(root)

    assert target == root / date.today().isoformat() / "billbuddy.db"
    conn = sqlite3.connect(target)
    try:
        names = {row[0] for row in conn.execute("SELECT id FROM items")}
    finally:
        conn.close()
    assert "lassi" in names
    assert backup.latest_backup_path(root) == target


def test_ensure_daily_backup_reuses_today(database, tmp_path):
    root = tmp_path / "backups"
    first = backup.ensure_daily_backup(root)
    stamp = first.stat().st_mtime_ns
    second = backup.ensure_daily_backup(root)
    assert second == first
    assert second.stat().st_mtime_ns == stamp


def test_prune_keeps_the_newest(tmp_path):
    for day in ("2024-01-01", "2024-01-02", "2024-01-03", "2024-01-04"):
        _fake_backup(tmp_path, day)
    (tmp_path / "notes").mkdir()

    removed = backup.prune_old_backups(2, tmp_path)

    assert removed == 2
    assert [p.parent.name for p in backup.iter_backups(tmp_path)] == ["2024-01-03", "2024-01-04"]
    assert (tmp_path / "notes").exists()


def test_latest_backup_path_when_empty(tmp_path):
    assert backup.latest_backup_path(tmp_path / "missing") is None


def test_restore_backup_rolls_the_store_back(database, tmp_path):
    snapshot = backup.backup_now(tmp_path / "backups")
    catalog.upsert_item("Lassi", 40, item_id="lassi")
    assert catalog.get_item("lassi") is not None

    live = backup.restore_backup(snapshot)

    assert live == database
    assert catalog.get_item("lassi") is None
    assert catalog.get_item("dal") is not None


def test_restore_backup_rejects_missing_or_directories(database, tmp_path):
    with pytest.raises(FileNotFoundError):
        backup.restore_backup(tmp_path / "nope.db")
    with pytest.raises(ValueError):
        backup.restore_backup(tmp_path)
