import asyncio
import json

from autotester.run_utils.events import ENGINE_CHANNEL, HEARTBEAT, RunEventHub


def decode(line: str) -> dict:
    assert line.startswith("data: ") and line.endswith("\n\n")
    return json.loads(line[len("data: "):])


def test_subscriber_receives_replay_then_live_events():
    async def scenario():
        hub = RunEventHub()
        await hub.publish_run("run-1", "run.queued", status="queued")
        q = hub.subscribe("run-1")
        await hub.publish_run("run-1", "run.status", status="running")
        return [decode(q.get_nowait()), decode(q.get_nowait())]

    replayed, live = asyncio.run(scenario())
    assert replayed["t"] == "run.queued"
    assert live["status"] == "running"
    assert live["runId"] == "run-1"
    assert "ts" in live


def test_run_events_are_mirrored_to_engine_channel():
    hub = RunEventHub()
    asyncio.run(hub.publish_run("run-1", "run.queued"))
    asyncio.run(hub.publish_run("run-2", "run.queued"))

    assert len(hub.history["run-1"]) == 1
    assert [decode(line)["runId"] for line in hub.history[ENGINE_CHANNEL]] == ["run-1", "run-2"]


def test_history_is_bounded():
    hub = RunEventHub(history_limit=5)

    async def scenario():
        for i in range(8):
            await hub.publish_run("run-1", "run.status", seq=i)

    asyncio.run(scenario())
    assert len(hub.history["run-1"]) == 5
    assert decode(hub.history["run-1"][0])["seq"] == 3


def test_unsubscribed_queue_gets_nothing():
    async def scenario():
        hub = RunEventHub()
        q = hub.subscribe("run-1")
        hub.unsubscribe("run-1", q)
        await hub.publish_run("run-1", "run.status")
        return q

    assert asyncio.run(scenario()).empty()


def test_stream_yields_events_and_heartbeats_until_disconnect():
    hub = RunEventHub()
    asyncio.run(hub.publish_run("run-1", "run.queued"))
    polls = []

    async def is_disconnected():
        polls.append(True)
        return len(polls) > 2

    async def scenario():
        chunks = []
        async for chunk in hub.stream("run-1", is_disconnected, heartbeat_seconds=0.01):
            chunks.append(chunk.decode("utf-8"))
        return chunks

    chunks = asyncio.run(scenario())
    assert decode(chunks[0])["t"] == "run.queued"
    assert chunks[1] == HEARTBEAT
    assert "run-1" not in hub.queues


def test_finished_runs_leave_no_channels_behind():
    hub = RunEventHub()

    async def scenario():
        for i in range(1000):
            await hub.publish_run(f"run-{i}", "run.queued", status="queued")
            await hub.publish_run(f"run-{i}", "run.status", final=True, status="completed")

    asyncio.run(scenario())
    assert list(hub.history) == [ENGINE_CHANNEL]
    assert hub.queues == {}
    assert hub.finished == set()


def test_finished_channel_is_kept_until_last_subscriber_leaves():
    hub = RunEventHub()

    async def scenario():
        q = hub.subscribe("run-1")
        await hub.publish_run("run-1", "run.status", final=True, status="failed")
        assert "run-1" in hub.history
        assert decode(q.get_nowait())["status"] == "failed"
        hub.unsubscribe("run-1", q)

    asyncio.run(scenario())
    assert "run-1" not in hub.history
    assert "run-1" not in hub.queues


def test_unsubscribing_from_a_live_run_keeps_its_history():
    hub = RunEventHub()

    async def scenario():
        await hub.publish_run("run-1", "run.queued")
        q = hub.subscribe("run-1")
        hub.unsubscribe("run-1", q)

    asyncio.run(scenario())
    assert "run-1" not in hub.queues
    assert len(hub.history["run-1"]) == 1


def test_drop_forgets_channel():
    hub = RunEventHub()
    asyncio.run(hub.publish_run("run-1", "run.queued"))
    hub.drop("run-1")
    assert "run-1" not in hub.history
    assert len(hub.history[ENGINE_CHANNEL]) == 1


def test_idle_channels_beyond_cap_are_evicted_oldest_first():
    hub = RunEventHub(max_channels=3)

    async def scenario():
        watched = hub.subscribe("run-0")
        for i in range(5):
            await hub.publish_run(f"run-{i}", "run.queued")
        return watched

    asyncio.run(scenario())
    assert len(hub.history) == 3
    assert set(hub.history) == {"run-0", "run-4", ENGINE_CHANNEL}
