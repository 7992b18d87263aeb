"""Topic publishers used by the fan-out dispatcher.

``RedisPublisher`` is the production transport: the WebSocket bridge
subscribes to the same topics on every API node. ``InMemoryPublisher`` keeps
delivery inside the process (single-node deployments and tests).
Delivery is at-most-once in both cases.
"""

from __future__ import annotations

import asyncio
import fnmatch
import json
from collections import defaultdict
from typing import Any, Protocol

import structlog

logger = structlog.get_logger()


class Publisher(Protocol):
    async def publish(self, topic: str, payload: dict[str, Any]) -> None: ...


class RedisPublisher:
    """Publish JSON payloads on Redis pub/sub channels named after the topic."""

    def __init__(self, redis_client: Any) -> None:  # noqa: ANN401
        self.redis = redis_client

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        await self.redis.publish(topic, json.dumps(payload, default=str))


class InMemoryPublisher:
    """Fan topics out to local asyncio queues.

    Subscriptions take glob patterns (``badge-promotion:*``) like Redis
    PSUBSCRIBE. A full queue drops the message rather than blocking the
    publisher.
    """

    def __init__(self, max_queue_size: int = 1000) -> None:
        self._max_queue_size = max_queue_size
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, pattern: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers[pattern].add(queue)
        return queue

    def unsubscribe(self, pattern: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(pattern)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[pattern]

    @property
    def subscriber_count(self) -> int:
        return sum(len(q) for q in self._subscribers.values())

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        for pattern, queues in list(self._subscribers.items()):
            if not fnmatch.fnmatchcase(topic, pattern):
                continue
            for queue in list(queues):
                try:
                    queue.put_nowait((topic, payload))
                except asyncio.QueueFull:
                    logger.warning("inmemory_queue_full", topic=topic, pattern=pattern)
