from datetime import datetime, timedelta
from pathlib import Path
import sqlite3

from core import settings
from storage import backup as backup_module
from storage.backup import ensure_daily_backup


def _write_db(path: Path, marker: str) -> None:
    conn = sqlite3.connect(path)
    try:
        conn.execute("CREATE TABLE IF NOT EXISTS marker (value TEXT)")
        conn.execute("DELETE FROM marker")
        conn.execute("INSERT INTO marker (value) VALUES (?)", (marker,))
        conn.commit()
    finally:
        conn.close()


def _read_marker(path: Path) -> str:
    conn = sqlite3.connect(path)
    try:
        return conn.execute("SELECT value FROM marker").fetchone()[0]
    finally:
        conn.close()


def test_linux_data_dir_with_xdg():
    env = {"XDG_DATA_HOME": "/tmp/xdg"}
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="linux",
        env=env,
        home=Path("/home/test"),
    )
    assert result == Path("/tmp/xdg") / settings.APP_NAME


def test_linux_data_dir_default_home():
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="linux",
        env={},
        home=Path("/home/test"),
    )
    assert result == Path("/home/test/.local/share") / settings.APP_NAME


def test_macos_data_dir():
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="darwin",
        env={},
        home=Path("/Users/test"),
    )
    expected = Path("/Users/test/Library/Application Support") / settings.APP_NAME
    assert result == expected


def test_windows_data_dir_appdata():
    env = {"APPDATA": "C:/Users/test/AppData/Roaming"}
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="win32",
        env=env,
        home=Path("C:/Users/test"),
    )
    assert result == Path(env["APPDATA"]) / settings.APP_NAME


def test_runtime_paths_inside_data_dir():
    assert settings.DB_PATH.parent == settings.DATA_DIR
    assert settings.SYNC_LOG_PATH.parent == settings.LOG_DIR
    assert settings.SERVER_LOG_PATH.parent == settings.LOG_DIR
    assert settings.BACKUP_DIR.parent == settings.DATA_DIR
    assert settings.LOG_DIR.is_dir()


def test_parse_token_list():
    assert settings.parse_token_list(None) == ()
    assert settings.parse_token_list(" a, ,b ,") == ("a", "b")


def test_sync_defaults():
    assert settings.SYNC.max_retries == 5
    assert settings.SERVER.max_batch_size == 50
    assert settings.SERVER.rate_limit == 20
    assert settings.SERVER.rate_window_sec == 60


def test_backup_rotation(monkeypatch, tmp_path):
    db_path = tmp_path / "queue.db"
    backup_dir = tmp_path / "backups"
    base = datetime(2024, 1, 1)

    for offset in range(5):
        _write_db(db_path, f"content-{offset}")

        class FakeDateTime(datetime):
            @classmethod
            def now(cls, tz=None):
                return base + timedelta(days=offset)

        monkeypatch.setattr(backup_module, "datetime", FakeDateTime)
        ensure_daily_backup(db_path, backup_dir, keep_days=3)

    monkeypatch.setattr(backup_module, "datetime", datetime)

    backups = sorted(p.name for p in backup_dir.iterdir())
    assert backups == [
        "queue_2024-01-03.db",
        "queue_2024-01-04.db",
        "queue_2024-01-05.db",
    ]
    assert _read_marker(backup_dir / "queue_2024-01-05.db") == "content-4"


def test_backup_once_per_day(monkeypatch, tmp_path):
    db_path = tmp_path / "queue.db"
    _write_db(db_path, "first")

    class FakeDateTime(datetime):
        @classmethod
        def now(cls, tz=None):
            return datetime(2024, 6, 1, 9, 0)

    monkeypatch.setattr(backup_module, "datetime", FakeDateTime)

    assert ensure_daily_backup(db_path, tmp_path / "b") is not None
    _write_db(db_path, "second")
    assert ensure_daily_backup(db_path, tmp_path / "b") is None
    assert _read_marker(tmp_path / "b" / "queue_2024-06-01.db") == "first"


def test_backup_skips_missing_db(tmp_path):
    assert ensure_daily_backup(tmp_path / "missing.db", tmp_path / "b") is None
