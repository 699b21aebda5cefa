"""SQLModel table for operations waiting to be replayed against the server."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


class OperationStatus(str, Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    FAILED = "failed"


class QueuedOperation(SQLModel, table=True):
    __tablename__ = "queued_operation"

    id: Optional[int] = Field(default=None, primary_key=True)
    action: str = Field(index=True)
    payload: str = "{}"
    timestamp: int = Field(index=True)
    status: str = Field(default=OperationStatus.PENDING.value, index=True)
    retries: int = Field(default=0)
    last_error: Optional[str] = None


__all__ = ["OperationStatus", "QueuedOperation"]
