"""Daily snapshots of the queue database."""
from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta
from pathlib import Path


def _backup_day(path: Path, prefix: str) -> datetime | None:
    stem = path.stem
    if not stem.startswith(prefix):
        return None
    try:
        return datetime.strptime(stem[len(prefix):], "%Y-%m-%d")
    except ValueError:
        return None


def _snapshot(source: Path, destination: Path) -> None:
    # sqlite's online backup gives a consistent copy even while the queue is being written
    src = sqlite3.connect(source)
    try:
        dst = sqlite3.connect(destination)
        try:
            src.backup(dst)
        finally:
            dst.close()
    finally:
        src.close()


def prune_backups(backup_dir: Path, stem: str, suffix: str, *, keep_days: int) -> int:
    """Delete snapshots older than ``keep_days`` days and return how many went."""

    if keep_days <= 0:
        return 0
    prefix = f"{stem}_"
    cutoff = datetime.now().date() - timedelta(days=keep_days - 1)
    removed = 0
    for file in backup_dir.glob(f"{stem}_*{suffix}"):
        day = _backup_day(file, prefix)
        if day is None or day.date() >= cutoff:
            continue
        try:
            file.unlink()
            removed += 1
        except OSError:
            continue
    return removed


def ensure_daily_backup(
    db_path: str | Path,
    backup_dir: str | Path,
    *,
    keep_days: int = 7,
) -> Path | None:
    """Snapshot the queue DB once per day; returns the new file, if any."""

    db_file = Path(db_path)
    if not db_file.exists():
        return None

    backups = Path(backup_dir)
    backups.mkdir(parents=True, exist_ok=True)

    today = datetime.now().date()
    destination = backups / f"{db_file.stem}_{today.isoformat()}{db_file.suffix}"

    created: Path | None = None
    if not destination.exists():
        _snapshot(db_file, destination)
        created = destination

    prune_backups(backups, db_file.stem, db_file.suffix, keep_days=keep_days)
    return created


__all__ = ["ensure_daily_backup", "prune_backups"]
