import asyncio

from orion.services.state_notifier import StateNotifier
from orion.services.state_stream_service import QUEUE_SIZE, StateStreamService


def make_stream():
    notifier = StateNotifier()
    return notifier, StateStreamService(notifier)


async def test_first_update_is_snapshot_then_diffs():
    notifier, stream = make_stream()
    sub = await stream.subscribe()
    await notifier.notify("status", {"layer": 1, "physical": {"z": 0.05, "curing": False}})
    await notifier.notify("status", {"layer": 2, "physical": {"z": 0.1, "curing": False}})

    first = sub.queue.get_nowait()
    second = sub.queue.get_nowait()
    assert first["event"] == "snapshot"
    assert first["data"]["state"]["layer"] == 1
    assert second["event"] == "diff"
    assert second["data"]["changes"] == {"layer": 2, "physical.z": 0.1}
    assert second["id"] == first["id"] + 1


async def test_unchanged_state_is_not_published():
    notifier, stream = make_stream()
    sub = await stream.subscribe()
    await notifier.notify("status", {"layer": 1})
    await notifier.notify("status", {"layer": 1})
    assert sub.queue.qsize() == 1


async def test_removed_keys_diff_to_none():
    notifier, stream = make_stream()
    sub = await stream.subscribe()
    await notifier.notify("status", {"layer": 1, "error": "boom"})
    await notifier.notify("status", {"layer": 1})
    sub.queue.get_nowait()
    assert sub.queue.get_nowait()["data"]["changes"] == {"error": None}


async def test_channel_filter():
    notifier, stream = make_stream()
    status_only = await stream.subscribe(["status"])
    everything = await stream.subscribe()
    await notifier.notify("analytics", {"latest": {"Pressure": 1.0}})
    assert status_only.queue.empty()
    assert everything.queue.qsize() == 1


async def test_build_snapshot_uses_provider():
    _, stream = make_stream()
    stream.register_channel("status", lambda: {"layer": 7})
    snapshot = stream.build_snapshot("status")
    assert snapshot["channel"] == "status"
    assert snapshot["state"] == {"layer": 7}
    assert stream.channels == ["status"]


async def test_slow_subscriber_is_dropped():
    notifier, stream = make_stream()
    sub = await stream.subscribe()
    for layer in range(QUEUE_SIZE + 1):
        await notifier.notify("status", {"layer": layer})
    assert stream.subscriber_count == 0
    assert sub.queue.get_nowait() is None


async def test_shutdown_wakes_subscribers():
    notifier, stream = make_stream()
    sub = await stream.subscribe()
    waiter = asyncio.ensure_future(sub.queue.get())
    await stream.shutdown()
    assert await waiter is None
    assert stream.is_shutdown()

    await notifier.notify("status", {"layer": 1})
    assert stream.subscriber_count == 0
    stream.reset()
    assert not stream.is_shutdown()
