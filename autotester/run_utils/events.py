"""
In-process fan-out of run notifications as server-sent event lines.

Every run has its own channel. Each run event is mirrored to the engine
channel, which the execution engine follows to pick up queued work. A new
subscriber first receives the channel's recent history.

Run channels are transient: a finished run's channel is dropped once its
last subscriber leaves, a deleted run's channel is dropped at once, and
beyond ``max_channels`` the least recently used idle channels are evicted.
"""

import asyncio
import json
import time
from collections import OrderedDict
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Set

ENGINE_CHANNEL = "engine"

HISTORY_LIMIT = 500
MAX_CHANNELS = 1000
QUEUE_SIZE = 2048
REPLAY = 100
HEARTBEAT = ": ping\n\n"


def sse_line(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False, default=str)}\n\n"


class RunEventHub:
    def __init__(self, history_limit: int = HISTORY_LIMIT, max_channels: int = MAX_CHANNELS):
        self.queues: Dict[str, List[asyncio.Queue[str]]] = {}
        self.history: "OrderedDict[str, List[str]]" = OrderedDict()
        self.finished: Set[str] = set()
        self.history_limit = history_limit
        self.max_channels = max_channels

    def subscribe(self, channel: str, replay: int = REPLAY) -> asyncio.Queue[str]:
        q: asyncio.Queue[str] = asyncio.Queue(maxsize=QUEUE_SIZE)
        if replay:
            for line in self.history.get(channel, [])[-replay:]:
                q.put_nowait(line)
        self.queues.setdefault(channel, []).append(q)
        return q

    def unsubscribe(self, channel: str, q: asyncio.Queue[str]):
        subscribers = self.queues.get(channel, [])
        if q in subscribers:
            subscribers.remove(q)
        self._release(channel)

    def drop(self, channel: str):
        """Forget a channel entirely; open subscribers stop receiving events."""
        self.queues.pop(channel, None)
        self.history.pop(channel, None)
        self.finished.discard(channel)

    def _release(self, channel: str):
        if self.queues.get(channel):
            return
        self.queues.pop(channel, None)
        if channel in self.finished:
            self.drop(channel)

    def _evict_idle(self):
        for channel in list(self.history):
            if len(self.history) <= self.max_channels:
                break
            if channel != ENGINE_CHANNEL and not self.queues.get(channel):
                self.drop(channel)

    def _broadcast(self, channel: str, line: str):
        hist = self.history.setdefault(channel, [])
        self.history.move_to_end(channel)
        hist.append(line)
        if len(hist) > self.history_limit:
            del hist[: len(hist) - self.history_limit]
        for q in list(self.queues.get(channel, [])):
            try:
                q.put_nowait(line)
            except asyncio.QueueFull:
                # a subscriber that stopped reading is dropped
                self.unsubscribe(channel, q)
        self._evict_idle()

    async def publish_run(self, run_id: str, kind: str, final: bool = False, **fields: Any):
        event = {"t": kind, "ts": int(time.time() * 1000), "runId": run_id, **fields}
        line = sse_line(event)
        self._broadcast(run_id, line)
        self._broadcast(ENGINE_CHANNEL, line)
        if final:
            self.finished.add(run_id)
            self._release(run_id)

    async def stream(
        self,
        channel: str,
        is_disconnected: Callable[[], Awaitable[bool]],
        heartbeat_seconds: float = 15,
    ) -> AsyncIterator[bytes]:
        """Yield encoded SSE lines for ``channel`` until the client goes away."""
        q = self.subscribe(channel)

        async def heartbeats():
            while True:
                await asyncio.sleep(heartbeat_seconds)
                try:
                    q.put_nowait(HEARTBEAT)
                except asyncio.QueueFull:
                    break

        hb_task = asyncio.create_task(heartbeats())
        try:
            while not await is_disconnected():
                chunk = await q.get()
                yield chunk.encode("utf-8")
        finally:
            hb_task.cancel()
            self.unsubscribe(channel, q)


hub = RunEventHub()
