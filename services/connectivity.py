from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Set


logger = logging.getLogger("fieldsync.sync")

Listener = Callable[[bool], None]


class ConnectivityMonitor:
    """Holds the client's online flag and tells subscribers when it flips."""

    def __init__(self, initial: bool = True) -> None:
        self._online = bool(initial)
        self._listeners: Set[Listener] = set()

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: Listener) -> None:
        self._listeners.add(callback)

    def unsubscribe(self, callback: Listener) -> None:
        self._listeners.discard(callback)

    def set_online(self, online: bool) -> None:
        online = bool(online)
        if online == self._online:
            return
        self._online = online
        logger.info("Connectivity %s", "restored" if online else "lost")
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:
                logger.exception("Connectivity listener %r failed", listener)

    async def watch(self, probe: Callable[[], Awaitable[bool]], interval: float = 5.0) -> None:
        """Poll ``probe`` forever, feeding its answer into :meth:`set_online`."""

        while True:
            try:
                online = bool(await probe())
            except Exception as exc:
                logger.debug("Connectivity probe failed: %s", exc)
                online = False
            self.set_online(online)
            await asyncio.sleep(interval)


__all__ = ["ConnectivityMonitor"]
