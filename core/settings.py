"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``."""

    platform_id = (platform or sys.platform).lower()
    environ = dict(env or os.environ)
    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


def parse_token_list(raw: Optional[str]) -> tuple[str, ...]:
    """Split a comma separated token list, dropping blanks."""

    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


APP_NAME = "Fieldsync"


DATA_DIR = Path(os.environ.get("FIELDSYNC_DATA_DIR") or get_default_data_dir(APP_NAME))
LOG_DIR = DATA_DIR / "logs"
BACKUP_DIR = DATA_DIR / "backups"

for _dir in (DATA_DIR, LOG_DIR, BACKUP_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "queue.db"
SYNC_LOG_PATH = LOG_DIR / "sync.log"
SERVER_LOG_PATH = LOG_DIR / "server.log"


@dataclass(frozen=True)
class SyncSettings:
    max_retries: int = 5
    interval_sec: float = 10.0
    handler_timeout_sec: float = 30.0
    server_url: str = os.environ.get("FIELDSYNC_SERVER_URL", "http://127.0.0.1:8000")
    api_token: Optional[str] = os.environ.get("FIELDSYNC_API_TOKEN")
    request_timeout_sec: float = 15.0
    batch_size: int = 50


SYNC = SyncSettings()


@dataclass(frozen=True)
class ServerSettings:
    host: str = "127.0.0.1"
    port: int = 8000
    max_batch_size: int = 50
    rate_limit: int = 20
    rate_window_sec: float = 60.0
    api_tokens: tuple[str, ...] = field(
        default_factory=lambda: parse_token_list(os.environ.get("FIELDSYNC_API_TOKENS"))
    )


SERVER = ServerSettings()


@dataclass(frozen=True)
class BackupSettings:
    enabled: bool = True
    directory: Path = BACKUP_DIR
    keep_days: int = 7


BACKUP = BackupSettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "LOG_DIR",
    "BACKUP_DIR",
    "DB_PATH",
    "SYNC_LOG_PATH",
    "SERVER_LOG_PATH",
    "SYNC",
    "SERVER",
    "BACKUP",
    "get_default_data_dir",
    "parse_token_list",
]
