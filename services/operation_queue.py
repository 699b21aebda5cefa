from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from core.errors import QueueUnavailableError, ValidationError
from datetime_utils import now_ms
from models.queued_operation import OperationStatus, QueuedOperation


MAX_ERROR_LENGTH = 1000


def _default_session_factory() -> Session:
    # imported lazily so tests can run against their own engine without touching DB_PATH
    from storage.db import get_session

    return get_session()


@dataclass(frozen=True)
class PendingOperation:
    """Detached snapshot of a queued row, safe to use after the session closes."""

    id: int
    action: str
    payload: dict
    timestamp: int
    status: str
    retries: int
    last_error: Optional[str]

    def to_mutation(self) -> dict:
        return {"action": self.action, "payload": self.payload, "timestamp": self.timestamp}


@dataclass(frozen=True)
class QueueStatus:
    pending: int
    failed: int
    is_online: bool

    def to_dict(self) -> dict:
        return {"pending": self.pending, "failed": self.failed, "isOnline": self.is_online}


def _snapshot(row: QueuedOperation) -> PendingOperation:
    try:
        payload = json.loads(row.payload)
    except json.JSONDecodeError:
        payload = {}
    return PendingOperation(
        id=row.id,
        action=row.action,
        payload=payload if isinstance(payload, dict) else {},
        timestamp=row.timestamp,
        status=row.status,
        retries=row.retries,
        last_error=row.last_error,
    )


class OperationQueue:
    """Durable queue of user write operations, backed by SQLite.

    Every mutating call commits before it returns, so an enqueued operation
    survives a crash right after ``enqueue``. Storage failures surface as
    :class:`QueueUnavailableError`.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._session_factory = session_factory or _default_session_factory
        self._clock = clock

    def _session(self) -> Session:
        try:
            return self._session_factory()
        except (SQLAlchemyError, OSError) as exc:
            raise QueueUnavailableError(f"Queue storage unavailable: {exc}") from exc

    def _run(self, fn: Callable[[Session], Any]) -> Any:
        try:
            with self._session() as session:
                return fn(session)
        except (SQLAlchemyError, OSError) as exc:
            raise QueueUnavailableError(f"Queue storage unavailable: {exc}") from exc

    # ------------------------------------------------------------------
    def enqueue(self, action: str, payload: Optional[dict] = None) -> int:
        if not action:
            raise ValidationError("action must be a non-empty string")
        try:
            encoded = json.dumps(payload or {}, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Payload for {action} is not JSON serialisable: {exc}") from exc

        def _insert(session: Session) -> int:
            record = QueuedOperation(
                action=action,
                payload=encoded,
                timestamp=self._clock(),
                status=OperationStatus.PENDING.value,
            )
            session.add(record)
            session.commit()
            session.refresh(record)
            return int(record.id)

        return self._run(_insert)

    def _list_by_status(self, status: OperationStatus) -> List[PendingOperation]:
        def _select(session: Session) -> List[PendingOperation]:
            stmt = select(QueuedOperation).where(QueuedOperation.status == status.value)
            return [_snapshot(row) for row in session.exec(stmt)]

        return self._run(_select)

    def list_pending(self) -> List[PendingOperation]:
        return self._list_by_status(OperationStatus.PENDING)

    def list_failed(self) -> List[PendingOperation]:
        return self._list_by_status(OperationStatus.FAILED)

    def get(self, op_id: int) -> Optional[PendingOperation]:
        def _get(session: Session) -> Optional[PendingOperation]:
            record = session.get(QueuedOperation, op_id)
            return _snapshot(record) if record else None

        return self._run(_get)

    def set_status(self, op_id: int, status: OperationStatus | str, error: Optional[str] = None) -> int:
        """Move ``op_id`` to ``status`` and return its ``retries`` afterwards.

        Recording a failure (``error`` together with ``pending`` or ``failed``)
        counts one more attempt. Returns ``-1`` when the operation is gone.
        """

        target = OperationStatus(status)

        def _update(session: Session) -> int:
            record = session.get(QueuedOperation, op_id)
            if not record:
                return -1
            record.status = target.value
            if error is not None:
                record.last_error = error[:MAX_ERROR_LENGTH]
                if target is not OperationStatus.SYNCING:
                    record.retries += 1
            session.add(record)
            session.commit()
            return int(record.retries)

        return self._run(_update)

    def remove(self, op_id: int) -> None:
        def _delete(session: Session) -> None:
            record = session.get(QueuedOperation, op_id)
            if record:
                session.delete(record)
                session.commit()

        self._run(_delete)

    def count(self, status: Optional[OperationStatus] = None) -> int:
        def _count(session: Session) -> int:
            stmt = select(func.count()).select_from(QueuedOperation)
            if status is not None:
                stmt = stmt.where(QueuedOperation.status == status.value)
            return int(session.exec(stmt).one())

        return self._run(_count)

    def summary(self, is_online: bool = True) -> QueueStatus:
        def _counts(session: Session) -> dict:
            stmt = select(QueuedOperation.status, func.count()).group_by(QueuedOperation.status)
            return {row[0]: int(row[1]) for row in session.exec(stmt)}

        counts = self._run(_counts)
        return QueueStatus(
            pending=counts.get(OperationStatus.PENDING.value, 0),
            failed=counts.get(OperationStatus.FAILED.value, 0),
            is_online=is_online,
        )

    # ------------------------------------------------------------------
    # Maintenance
    def _move_all(self, source: OperationStatus, target: OperationStatus) -> int:
        def _move(session: Session) -> int:
            rows = list(session.exec(select(QueuedOperation).where(QueuedOperation.status == source.value)))
            for row in rows:
                row.status = target.value
                session.add(row)
            session.commit()
            return len(rows)

        return self._run(_move)

    def recover_interrupted(self) -> int:
        """Return operations left in ``syncing`` by a crash to ``pending``."""

        return self._move_all(OperationStatus.SYNCING, OperationStatus.PENDING)

    def requeue_failed(self) -> int:
        """Give every failed operation one more attempt; ``retries`` is kept."""

        return self._move_all(OperationStatus.FAILED, OperationStatus.PENDING)

    def clear(self) -> int:
        def _clear(session: Session) -> int:
            rows = list(session.exec(select(QueuedOperation)))
            for row in rows:
                session.delete(row)
            session.commit()
            return len(rows)

        return self._run(_clear)


__all__ = ["OperationQueue", "PendingOperation", "QueueStatus", "MAX_ERROR_LENGTH"]
