import asyncio

import pytest

from services.handler_registry import HandlerRegistry, call_handler, register_http_actions


def test_register_and_lookup():
    registry = HandlerRegistry()
    handler = lambda payload: None  # noqa: E731
    registry.register("toggleChecklistItem", handler)

    assert "toggleChecklistItem" in registry
    assert "nonExistent" not in registry
    assert registry.get("toggleChecklistItem") is handler
    assert registry.get("nonExistent") is None
    assert len(registry) == 1


def test_last_registration_wins():
    registry = HandlerRegistry()
    registry.register("addComment", lambda p: "first")
    registry.register("addComment", lambda p: "second")

    assert registry.get("addComment")({}) == "second"
    assert registry.actions() == ["addComment"]


def test_decorator_and_constructor_registration():
    registry = HandlerRegistry({"createLog": lambda p: None})

    @registry.handler("flagPhoto")
    def flag(payload):
        return payload["photoId"]

    assert registry.actions() == ["createLog", "flagPhoto"]
    assert flag({"photoId": "ph1"}) == "ph1"


def test_rejects_bad_registrations():
    registry = HandlerRegistry()
    with pytest.raises(ValueError):
        registry.register("", lambda p: None)
    with pytest.raises(TypeError):
        registry.register("x", "not callable")


def test_call_handler_supports_sync_and_async():
    calls = []

    def sync_handler(payload):
        calls.append(("sync", payload))
        return 1

    async def async_handler(payload):
        calls.append(("async", payload))
        return 2

    assert asyncio.run(call_handler(sync_handler, {"a": 1})) == 1
    assert asyncio.run(call_handler(async_handler, {"b": 2})) == 2
    assert calls == [("sync", {"a": 1}), ("async", {"b": 2})]


def test_register_http_actions_posts_to_action_endpoint():
    class FakeClient:
        def __init__(self):
            self.posted = []

        async def post_action(self, action, payload):
            self.posted.append((action, payload))
            return {"action": action, "status": "ok"}

    client = FakeClient()
    registry = register_http_actions(HandlerRegistry(), client, ["addComment", "createLog"])

    asyncio.run(call_handler(registry.get("createLog"), {"projectId": "p1"}))
    asyncio.run(call_handler(registry.get("addComment"), {"content": "hi"}))

    assert client.posted == [("createLog", {"projectId": "p1"}), ("addComment", {"content": "hi"})]
