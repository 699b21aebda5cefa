"""Run a write now when possible, otherwise park it in the offline queue."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

import httpx

from core.errors import TransportError
from services.operation_queue import OperationQueue


logger = logging.getLogger("fieldsync.sync")

T = TypeVar("T")

NETWORK_MARKERS = ("fetch", "network", "networkerror", "connection", "503")


@dataclass
class OfflineActionResult(Generic[T]):
    queued: bool
    data: Optional[T] = None
    op_id: Optional[int] = None


def is_network_error(exc: BaseException) -> bool:
    if isinstance(exc, (TransportError, httpx.TransportError, ConnectionError)):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in NETWORK_MARKERS)


async def run_or_enqueue(
    queue: OperationQueue,
    action: str,
    execute: Callable[[], Union[T, Awaitable[T]]],
    payload: dict,
    *,
    is_online: bool = True,
) -> OfflineActionResult[T]:
    """Execute ``action`` directly when online; queue ``payload`` on network trouble.

    Non-network errors (validation, permissions) propagate to the caller.
    """

    if is_online:
        try:
            result: Any = execute()
            if inspect.isawaitable(result):
                result = await result
            return OfflineActionResult(queued=False, data=result)
        except Exception as exc:
            if not is_network_error(exc):
                raise
            logger.info("%s hit a network error, queueing for replay: %s", action, exc)

    op_id = queue.enqueue(action, payload)
    return OfflineActionResult(queued=True, op_id=op_id)


__all__ = ["OfflineActionResult", "is_network_error", "run_or_enqueue"]
