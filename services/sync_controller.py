from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Protocol, Set

from core.errors import MaxRetriesExceededError, QueueUnavailableError, UnknownActionError
from core.logs import ensure_logger
from core.settings import SYNC, SYNC_LOG_PATH
from models.queued_operation import OperationStatus
from services.connectivity import ConnectivityMonitor
from services.handler_registry import HandlerRegistry, call_handler
from services.operation_queue import OperationQueue, PendingOperation, QueueStatus


def _ensure_logger() -> logging.Logger:
    return ensure_logger("fieldsync.sync", SYNC_LOG_PATH)


class SyncState(str, Enum):
    OFFLINE = "offline"
    ONLINE_IDLE = "online-idle"
    DRAINING = "draining"


@dataclass
class DrainReport:
    attempted: int = 0
    synced: int = 0
    failed: int = 0
    retried: int = 0
    stopped_early: bool = False


class Transport(Protocol):
    async def replay(
        self,
        controller: "SyncController",
        operations: List[PendingOperation],
        report: DrainReport,
    ) -> None:
        ...


StatusListener = Callable[[QueueStatus], None]


class SyncController:
    """Drains the offline queue in timestamp order whenever the client is online.

    Replays go through the handler registry by default; pass a ``transport``
    (e.g. :class:`services.sync_client.BatchTransport`) to upload in bulk
    instead. Only one drain pass runs at a time.
    """

    def __init__(
        self,
        queue: OperationQueue,
        registry: Optional[HandlerRegistry] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
        *,
        transport: Optional[Transport] = None,
        max_retries: int = SYNC.max_retries,
        interval_sec: float = SYNC.interval_sec,
        handler_timeout_sec: Optional[float] = SYNC.handler_timeout_sec,
    ) -> None:
        if registry is None and transport is None:
            raise ValueError("SyncController needs a handler registry or a transport")
        self.queue = queue
        self.registry = registry if registry is not None else HandlerRegistry()
        self.connectivity = connectivity if connectivity is not None else ConnectivityMonitor()
        self.transport = transport
        self.max_retries = max_retries
        self.interval_sec = interval_sec
        self.handler_timeout_sec = handler_timeout_sec
        self.logger = _ensure_logger()

        self._draining = False
        self._running = False
        self._stop_requested = False
        self._timer_task: Optional[asyncio.Task] = None
        self._drain_task: Optional[asyncio.Task] = None
        self._listeners: Set[StatusListener] = set()
        self._status = QueueStatus(pending=0, failed=0, is_online=self.connectivity.is_online)

    # ------------------------------------------------------------------
    # State
    @property
    def is_online(self) -> bool:
        return self.connectivity.is_online

    @property
    def is_draining(self) -> bool:
        return self._draining

    @property
    def state(self) -> SyncState:
        if not self.is_online:
            return SyncState.OFFLINE
        if self._draining:
            return SyncState.DRAINING
        return SyncState.ONLINE_IDLE

    @property
    def status(self) -> QueueStatus:
        return self._status

    def subscribe(self, callback: StatusListener) -> None:
        self._listeners.add(callback)

    def unsubscribe(self, callback: StatusListener) -> None:
        self._listeners.discard(callback)

    def refresh_status(self) -> QueueStatus:
        try:
            status = self.queue.summary(is_online=self.is_online)
        except QueueUnavailableError as exc:
            self.logger.error("Queue status unavailable: %s", exc)
            status = QueueStatus(pending=self._status.pending, failed=self._status.failed, is_online=self.is_online)
        changed = status != self._status
        self._status = status
        if changed:
            for listener in list(self._listeners):
                try:
                    listener(status)
                except Exception:
                    self.logger.exception("Status listener %r failed", listener)
        return status

    # ------------------------------------------------------------------
    # Lifecycle
    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self.connectivity.subscribe(self._on_connectivity_change)
        self.logger.info("Sync controller started (%s)", self.state.value)
        self.refresh_status()
        self._timer_task = asyncio.create_task(self._timer_loop())
        if self.is_online:
            self._schedule_drain()

    async def stop(self) -> None:
        """Stop the timer; a running pass finishes its current operation and ends."""

        if not self._running:
            return
        self._running = False
        self._stop_requested = True
        self.connectivity.unsubscribe(self._on_connectivity_change)
        if self._timer_task is not None:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None
        if self._drain_task is not None and not self._drain_task.done():
            await self._drain_task
        self._drain_task = None
        self._stop_requested = False
        self.logger.info("Sync controller stopped")

    def _on_connectivity_change(self, online: bool) -> None:
        self.refresh_status()
        if online:
            self._schedule_drain()

    def _schedule_drain(self) -> None:
        if self._draining or (self._drain_task is not None and not self._drain_task.done()):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._drain_task = loop.create_task(self._scheduled_drain())

    async def _scheduled_drain(self) -> None:
        try:
            await self.drain()
        except Exception:
            self.logger.exception("Drain pass failed")

    async def _timer_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_sec)
            if not self._running:
                break
            if not self.is_online:
                continue
            if self.refresh_status().pending > 0:
                self._schedule_drain()

    def _may_continue(self) -> bool:
        return self.is_online and not self._stop_requested

    # ------------------------------------------------------------------
    # Drain
    async def drain(self) -> Optional[DrainReport]:
        """Run one pass over the pending queue; ``None`` if one is already running."""

        if self._draining:
            return None
        if not self.is_online:
            self.refresh_status()
            return DrainReport(stopped_early=True)

        self._draining = True
        report = DrainReport()
        try:
            self.queue.recover_interrupted()
            operations = sorted(self.queue.list_pending(), key=lambda op: (op.timestamp, op.id))
            self.logger.debug("Drain pass over %d pending operations", len(operations))
            if self.transport is not None:
                await self.transport.replay(self, operations, report)
            else:
                await self._replay_direct(operations, report)
        except QueueUnavailableError as exc:
            self.logger.error("Queue unavailable, ending drain pass: %s", exc)
            report.stopped_early = True
        finally:
            self._draining = False
            self.refresh_status()

        if report.attempted:
            self.logger.info(
                "Drain pass: %d attempted, %d synced, %d retried, %d failed%s",
                report.attempted,
                report.synced,
                report.retried,
                report.failed,
                " (stopped early)" if report.stopped_early else "",
            )
        return report

    async def _replay_direct(self, operations: List[PendingOperation], report: DrainReport) -> None:
        for op in operations:
            if not self._may_continue():
                report.stopped_early = True
                return
            self.mark_syncing(op)
            report.attempted += 1
            handler = self.registry.get(op.action)
            if handler is None:
                self.record_missing(op, f"No handler registered for action: {op.action}", report)
                continue
            try:
                await asyncio.wait_for(call_handler(handler, op.payload), timeout=self.handler_timeout_sec)
            except asyncio.TimeoutError:
                self.record_failure(op, f"{op.action} timed out after {self.handler_timeout_sec}s", report)
            except UnknownActionError as exc:
                self.record_missing(op, str(exc), report)
            except Exception as exc:
                self.record_failure(op, str(exc) or exc.__class__.__name__, report)
            else:
                self.record_success(op, report)

    # ------------------------------------------------------------------
    # Per-operation transitions, shared with transports
    def mark_syncing(self, op: PendingOperation) -> None:
        self.queue.set_status(op.id, OperationStatus.SYNCING)

    def release(self, op: PendingOperation) -> None:
        self.queue.set_status(op.id, OperationStatus.PENDING)

    def record_success(self, op: PendingOperation, report: DrainReport) -> None:
        self.queue.remove(op.id)
        report.synced += 1
        self.logger.debug("Replayed %s #%s", op.action, op.id)

    def record_missing(self, op: PendingOperation, message: str, report: DrainReport) -> None:
        self.queue.set_status(op.id, OperationStatus.FAILED, message)
        report.failed += 1
        self.logger.warning("Operation %s #%s cannot be replayed: %s", op.action, op.id, message)

    def record_rejected(self, op: PendingOperation, message: str, report: DrainReport) -> None:
        self.queue.set_status(op.id, OperationStatus.FAILED, message)
        report.failed += 1
        self.logger.warning("Server rejected %s #%s: %s", op.action, op.id, message)

    def record_failure(self, op: PendingOperation, message: str, report: DrainReport) -> None:
        exhausted = op.retries + 1 >= self.max_retries
        target = OperationStatus.FAILED if exhausted else OperationStatus.PENDING
        retries = self.queue.set_status(op.id, target, message)
        if exhausted:
            report.failed += 1
            self.logger.error("%s", MaxRetriesExceededError(op.id, retries, message))
            return
        report.retried += 1
        self.logger.warning(
            "Replay of %s #%s failed (attempt %d/%d): %s",
            op.action,
            op.id,
            retries,
            self.max_retries,
            message,
        )


__all__ = ["SyncController", "SyncState", "DrainReport", "Transport"]
