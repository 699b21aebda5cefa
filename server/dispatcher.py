"""Routes replayed operations to the domain functions that perform them."""

from __future__ import annotations

import inspect
from typing import Any, Callable, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool

from core.errors import DomainError, SyncError, UnknownActionError


DomainFunction = Callable[..., Any]


class OperationDispatcher:
    """Name -> domain function table.

    The payload is never interpreted here: its fields are passed as keyword
    arguments and the domain function owns validation and permissions.
    """

    def __init__(self, actions: Optional[Dict[str, DomainFunction]] = None) -> None:
        self._actions: Dict[str, DomainFunction] = {}
        for name, fn in (actions or {}).items():
            self.register(name, fn)

    def register(self, name: str, fn: DomainFunction) -> None:
        if not name:
            raise ValueError("action name must be a non-empty string")
        self._actions[name] = fn

    def action(self, name: Optional[str] = None):
        def _wrap(fn: DomainFunction) -> DomainFunction:
            self.register(name or fn.__name__, fn)
            return fn

        return _wrap

    def actions(self) -> List[str]:
        return sorted(self._actions)

    def __contains__(self, name: object) -> bool:
        return name in self._actions

    async def dispatch(self, action: str, payload: Dict[str, Any]) -> Any:
        fn = self._actions.get(action)
        if fn is None:
            raise UnknownActionError(action)
        try:
            if inspect.iscoroutinefunction(fn):
                result = fn(**payload)
            else:
                result = await run_in_threadpool(fn, **payload)
            # callable objects and wrappers can hand back an awaitable
            if inspect.isawaitable(result):
                result = await result
            return result
        except SyncError:
            raise
        except Exception as exc:
            raise DomainError(str(exc) or exc.__class__.__name__) from exc


__all__ = ["DomainFunction", "OperationDispatcher"]
