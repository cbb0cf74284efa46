from pathlib import Path

from billbuddy.core.paths import resolve_paths


def test_data_root_override_wins(tmp_path):
    paths = resolve_paths({"BILLBUDDY_DATA_ROOT": str(tmp_path), "XDG_DATA_HOME": "/elsewhere"}, "posix")
    assert paths.root == tmp_path.resolve()
    assert paths.db_path == tmp_path.resolve() / "data" / "billbuddy.db"
    assert paths.settings_file == tmp_path.resolve() / "config" / "settings.json"
    assert paths.log_file == tmp_path.resolve() / "logs" / "billbuddy.log"


def test_program_data_on_windows():
    paths = resolve_paths({"PROGRAMDATA": "/srv/programdata"}, "nt")
    assert paths.root == Path("/srv/programdata") / "BillBuddy"


def test_xdg_then_home():
    assert resolve_paths({"XDG_DATA_HOME": "/srv/xdg"}, "posix").root == Path("/srv/xdg/billbuddy")
    assert resolve_paths({}, "posix").root == Path.home() / ".billbuddy"


def test_database_file_override(tmp_path):
    phone_copy = tmp_path / "pulled" / "waiter.db"
    paths = resolve_paths({"BILLBUDDY_DATA_ROOT": str(tmp_path / "root"), "BILLBUDDY_DB": str(phone_copy)}, "posix")
    assert paths.db_path == phone_copy.resolve()
    assert paths.backup_dir == (tmp_path / "root").resolve() / "backup"
    assert phone_copy.parent.resolve() in paths.directories()
