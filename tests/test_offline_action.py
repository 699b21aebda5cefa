import asyncio

import httpx
import pytest

from core.errors import DomainError, TransportError
from services.connectivity import ConnectivityMonitor
from services.offline_action import is_network_error, run_or_enqueue


def test_online_success_runs_directly(queue):
    result = asyncio.run(run_or_enqueue(queue, "addComment", lambda: {"id": "c1"}, {"content": "hi"}))

    assert result.queued is False
    assert result.data == {"id": "c1"}
    assert queue.count() == 0


def test_async_execute_is_awaited(queue):
    async def execute():
        return 42

    result = asyncio.run(run_or_enqueue(queue, "createLog", execute, {}))
    assert result.data == 42


def test_offline_skips_execute_and_queues(queue):
    calls = []

    result = asyncio.run(
        run_or_enqueue(queue, "flagPhoto", lambda: calls.append(1), {"photoId": "p1"}, is_online=False)
    )

    assert calls == []
    assert result.queued is True
    assert queue.get(result.op_id).payload == {"photoId": "p1"}


@pytest.mark.parametrize(
    "error",
    [
        TransportError("server unreachable"),
        ConnectionError("reset by peer"),
        RuntimeError("Failed to fetch"),
        RuntimeError("HTTP 503 from upstream"),
    ],
)
def test_network_errors_fall_back_to_queue(queue, error):
    def execute():
        raise error

    result = asyncio.run(run_or_enqueue(queue, "createLog", execute, {"projectId": "p1"}))

    assert result.queued is True
    assert queue.count() == 1


def test_other_errors_propagate(queue):
    def execute():
        raise DomainError("Not allowed to edit this phase")

    with pytest.raises(DomainError):
        asyncio.run(run_or_enqueue(queue, "updatePhaseStatus", execute, {}))
    assert queue.count() == 0


def test_is_network_error_classification():
    request = httpx.Request("POST", "http://testserver/sync")
    assert is_network_error(httpx.ConnectTimeout("timed out", request=request))
    assert not is_network_error(ValueError("bad input"))


def test_connectivity_notifies_only_on_change():
    monitor = ConnectivityMonitor(initial=True)
    seen = []
    monitor.subscribe(seen.append)

    monitor.set_online(True)
    monitor.set_online(False)
    monitor.set_online(False)
    monitor.set_online(True)
    monitor.unsubscribe(seen.append)
    monitor.set_online(False)

    assert seen == [False, True]
    assert monitor.is_online is False


def test_connectivity_watch_feeds_probe_results():
    answers = iter([False, True])

    async def probe():
        try:
            return next(answers)
        except StopIteration:
            raise OSError("probe broke")

    async def scenario():
        monitor = ConnectivityMonitor(initial=True)
        seen = []
        monitor.subscribe(seen.append)
        task = asyncio.create_task(monitor.watch(probe, interval=0.001))
        for _ in range(200):
            if len(seen) >= 3:
                break
            await asyncio.sleep(0.001)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return seen

    assert asyncio.run(scenario()) == [False, True, False]
