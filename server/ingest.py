"""Validation and sequential execution of a replayed batch."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Union

from pydantic import ValidationError as PydanticValidationError

from core.errors import SyncError, ValidationError
from models.wire import SyncMutation, SyncResponse, SyncResult
from server.dispatcher import OperationDispatcher


logger = logging.getLogger("fieldsync.server")


@dataclass(frozen=True)
class InvalidMutation:
    """A batch entry that could not be read; it fails on its own."""

    action: str
    timestamp: int
    error: str


BatchEntry = Union[SyncMutation, InvalidMutation]


def _invalid(raw: Any, index: int) -> InvalidMutation:
    fields = raw if isinstance(raw, dict) else {}
    action = fields.get("action")
    timestamp = fields.get("timestamp")
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        timestamp = 0
    return InvalidMutation(
        action=action if isinstance(action, str) else "",
        timestamp=int(timestamp),
        error=f"Invalid mutation at index {index}",
    )


def parse_batch(body: Any, max_batch_size: int) -> List[BatchEntry]:
    """Return the batch's entries or raise :class:`ValidationError`.

    Only the array itself can reject the request. A malformed entry is
    returned as :class:`InvalidMutation` and reported per operation.
    """

    mutations = body.get("mutations") if isinstance(body, dict) else None
    if not isinstance(mutations, list) or not mutations:
        raise ValidationError("mutations must be a non-empty array")
    if len(mutations) > max_batch_size:
        raise ValidationError(f"Batch size exceeds maximum of {max_batch_size}")

    entries: List[BatchEntry] = []
    for index, raw in enumerate(mutations):
        try:
            entries.append(SyncMutation.model_validate(raw))
        except PydanticValidationError:
            entries.append(_invalid(raw, index))
    return entries


def _error_result(entry: BatchEntry, message: str) -> SyncResult:
    return SyncResult(
        action=entry.action,
        timestamp=entry.timestamp,
        status="error",
        error=message or "Unknown error",
    )


async def process_batch(dispatcher: OperationDispatcher, entries: List[BatchEntry]) -> SyncResponse:
    # sorted() is stable, so equal timestamps keep the client's order
    ordered = sorted(entries, key=lambda entry: entry.timestamp)
    response = SyncResponse()
    for entry in ordered:
        if isinstance(entry, InvalidMutation):
            logger.warning("Skipped unreadable mutation: %s", entry.error)
            response.results.append(_error_result(entry, entry.error))
            response.failed += 1
            continue
        try:
            await dispatcher.dispatch(entry.action, entry.payload)
        except SyncError as exc:
            logger.warning("Replayed %s@%s failed: %s", entry.action, entry.timestamp, exc.message)
            response.results.append(_error_result(entry, exc.message))
            response.failed += 1
            continue
        response.results.append(SyncResult(action=entry.action, timestamp=entry.timestamp, status="ok"))
        response.synced += 1
    return response


__all__ = ["BatchEntry", "InvalidMutation", "parse_batch", "process_batch"]
