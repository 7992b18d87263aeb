"""Bridges fan-out topics to WebSocket clients.

Topics published by the gamification engine map onto WebSocket channels:

    leaderboard-update            -> broadcast on "leaderboard"
    dashboard-update:{user_id}    -> that user's "dashboard" subscriptions
    badge-promotion:{user_id}     -> that user's "badges" subscriptions
    notification:{user_id}       -> that user's "notifications" subscriptions
"""

import asyncio
import json
from typing import Any

import redis.asyncio as aioredis
import structlog

from unihub.gamification.fanout import (
    BADGE_PROMOTION_TOPIC_PREFIX,
    DASHBOARD_TOPIC_PREFIX,
    LEADERBOARD_TOPIC,
    NOTIFICATION_TOPIC_PREFIX,
)
from unihub.ws.manager import manager
from unihub.ws.publisher import InMemoryPublisher

logger = structlog.get_logger()

BROADCAST_MAP: dict[str, str] = {
    LEADERBOARD_TOPIC: "leaderboard",
}

USER_TOPIC_MAP: dict[str, str] = {
    DASHBOARD_TOPIC_PREFIX: "dashboard",
    BADGE_PROMOTION_TOPIC_PREFIX: "badges",
    NOTIFICATION_TOPIC_PREFIX: "notifications",
}

USER_PATTERNS = [f"{prefix}:*" for prefix in USER_TOPIC_MAP]


async def route_message(topic: str, payload: dict[str, Any]) -> int:
    """Deliver one topic message to the matching WebSocket clients.

    Returns the number of connections that received it.
    """
    ws_channel = BROADCAST_MAP.get(topic)
    if ws_channel is not None:
        sent = await manager.broadcast_to_channel(ws_channel, payload)
        if sent > 0:
            logger.debug("ws_broadcast", channel=ws_channel, recipients=sent)
        return sent

    prefix, _, user_id_str = topic.rpartition(":")
    ws_channel = USER_TOPIC_MAP.get(prefix)
    if ws_channel is None:
        return 0
    try:
        user_id = int(user_id_str)
    except ValueError:
        logger.warning("pubsub_invalid_user_id", topic=topic)
        return 0

    sent = await manager.send_to_user(user_id, ws_channel, payload)
    if sent > 0:
        logger.debug("ws_user_message", user_id=user_id, channel=ws_channel, recipients=sent)
    return sent


class PubSubBridge:
    """Subscribes to Redis pub/sub and pushes messages to WebSocket clients."""

    def __init__(self, redis_client: aioredis.Redis) -> None:
        self.redis = redis_client
        self._running = False

    async def start(self) -> None:
        """Start listening to Redis pub/sub channels."""
        self._running = True
        pubsub = self.redis.pubsub()

        await pubsub.subscribe(*BROADCAST_MAP.keys())
        await pubsub.psubscribe(*USER_PATTERNS)

        logger.info(
            "pubsub_bridge_started",
            channels=list(BROADCAST_MAP.keys()),
            patterns=USER_PATTERNS,
        )

        try:
            while self._running:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0,
                )
                if message is None:
                    continue

                channel = message.get("channel", "")
                if isinstance(channel, bytes):
                    channel = channel.decode()

                try:
                    data = message.get("data", b"")
                    if isinstance(data, bytes):
                        data = data.decode()
                    payload = json.loads(data)
                except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
                    logger.warning("pubsub_invalid_message", channel=channel)
                    continue

                await route_message(channel, payload)

        except asyncio.CancelledError:
            pass
        finally:
            await pubsub.unsubscribe()
            await pubsub.punsubscribe()
            await pubsub.aclose()
            logger.info("pubsub_bridge_stopped")

    async def stop(self) -> None:
        """Signal the bridge to stop."""
        self._running = False


class LocalBridge:
    """Same routing as PubSubBridge for the in-process publisher."""

    def __init__(self, publisher: InMemoryPublisher) -> None:
        self.publisher = publisher
        self._queue: asyncio.Queue | None = None

    async def start(self) -> None:
        self._queue = self.publisher.subscribe("*")
        logger.info("local_bridge_started")
        try:
            while True:
                topic, payload = await self._queue.get()
                await route_message(topic, payload)
        except asyncio.CancelledError:
            pass
        finally:
            self.publisher.unsubscribe("*", self._queue)
            self._queue = None
            logger.info("local_bridge_stopped")

    async def stop(self) -> None:
        """Nothing to signal; the lifespan cancels the task."""
