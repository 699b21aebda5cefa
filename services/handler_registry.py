"""Replay handlers for queued operations, keyed by action name."""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union


Handler = Callable[[dict], Union[Any, Awaitable[Any]]]


class HandlerRegistry:
    """Maps an action name to the callable that replays it against the server.

    Built once at startup and handed to :class:`SyncController`. Registering
    the same action twice keeps the last handler.
    """

    def __init__(self, handlers: Optional[Dict[str, Handler]] = None) -> None:
        self._handlers: Dict[str, Handler] = {}
        for action, handler in (handlers or {}).items():
            self.register(action, handler)

    def register(self, action: str, handler: Handler) -> None:
        if not action:
            raise ValueError("action must be a non-empty string")
        if not callable(handler):
            raise TypeError(f"Handler for {action} is not callable")
        self._handlers[action] = handler

    def handler(self, action: str):
        """Decorator form of :meth:`register`."""

        def _wrap(fn: Handler) -> Handler:
            self.register(action, fn)
            return fn

        return _wrap

    def get(self, action: str) -> Optional[Handler]:
        return self._handlers.get(action)

    def actions(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, action: object) -> bool:
        return action in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


async def call_handler(handler: Handler, payload: dict) -> Any:
    result = handler(payload)
    if inspect.isawaitable(result):
        result = await result
    return result


def register_http_actions(registry: HandlerRegistry, client, actions: Iterable[str]) -> HandlerRegistry:
    """Register handlers that POST each payload to ``/actions/{action}``."""

    for action in actions:

        async def _post(payload: dict, _action: str = action):
            return await client.post_action(_action, payload)

        registry.register(action, _post)
    return registry


__all__ = ["Handler", "HandlerRegistry", "call_handler", "register_http_actions"]
