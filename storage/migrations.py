"""Ad-hoc database migrations for the offline queue."""

from __future__ import annotations

from sqlalchemy import text


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def ensure_queue_columns(conn) -> None:
    columns = {
        "retries": "INTEGER NOT NULL DEFAULT 0",
        "last_error": "TEXT",
    }
    for name, ddl_type in columns.items():
        if not _column_exists(conn, "queued_operation", name):
            conn.execute(text(f"ALTER TABLE queued_operation ADD COLUMN {name} {ddl_type}"))


def ensure_queue_indexes(conn) -> None:
    conn.execute(
        text(
            """
            CREATE INDEX IF NOT EXISTS ix_queued_operation_status_timestamp
            ON queued_operation (status, timestamp)
            """
        )
    )


def run_all(engine) -> None:
    with engine.begin() as conn:
        # SQLModel creates the table, older queue files may predate these columns
        ensure_queue_columns(conn)
        ensure_queue_indexes(conn)


__all__ = ["run_all"]
