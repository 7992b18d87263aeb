"""Tests for the topic to WebSocket bridges."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from unihub.ws.bridge import (
    BROADCAST_MAP,
    USER_PATTERNS,
    USER_TOPIC_MAP,
    LocalBridge,
    PubSubBridge,
    route_message,
)
from unihub.ws.manager import VALID_CHANNELS
from unihub.ws.publisher import InMemoryPublisher


class TestChannelMapping:
    def test_all_topics_mapped_to_known_channels(self) -> None:
        for ws_ch in [*BROADCAST_MAP.values(), *USER_TOPIC_MAP.values()]:
            assert ws_ch in VALID_CHANNELS

    def test_patterns(self) -> None:
        assert sorted(USER_PATTERNS) == ["badge-promotion:*", "dashboard-update:*", "notification:*"]


class TestRouteMessage:
    @pytest.mark.asyncio
    async def test_leaderboard_is_broadcast(self) -> None:
        with patch("unihub.ws.bridge.manager") as mock_manager:
            mock_manager.broadcast_to_channel = AsyncMock(return_value=3)
            sent = await route_message("leaderboard-update", {"type": "LEADERBOARD_UPDATE"})
        assert sent == 3
        mock_manager.broadcast_to_channel.assert_awaited_once_with(
            "leaderboard", {"type": "LEADERBOARD_UPDATE"}
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("topic", "channel"),
        [
            ("dashboard-update:42", "dashboard"),
            ("badge-promotion:42", "badges"),
            ("notification:42", "notifications"),
        ],
    )
    async def test_user_topics_target_owner(self, topic: str, channel: str) -> None:
        with patch("unihub.ws.bridge.manager") as mock_manager:
            mock_manager.send_to_user = AsyncMock(return_value=1)
            await route_message(topic, {"x": 1})
        mock_manager.send_to_user.assert_awaited_once_with(42, channel, {"x": 1})

    @pytest.mark.asyncio
    async def test_unknown_topic_skipped(self) -> None:
        with patch("unihub.ws.bridge.manager") as mock_manager:
            mock_manager.broadcast_to_channel = AsyncMock()
            mock_manager.send_to_user = AsyncMock()
            assert await route_message("event-ranking", {}) == 0
        mock_manager.broadcast_to_channel.assert_not_awaited()
        mock_manager.send_to_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_numeric_user_id_skipped(self) -> None:
        with patch("unihub.ws.bridge.manager") as mock_manager:
            mock_manager.send_to_user = AsyncMock()
            assert await route_message("badge-promotion:abc", {}) == 0
        mock_manager.send_to_user.assert_not_awaited()


def _mock_redis(messages: list[dict]) -> MagicMock:
    mock_redis = AsyncMock()
    mock_pubsub = AsyncMock()
    pending = list(messages)

    async def fake_get_message(**kwargs):
        if pending:
            return pending.pop(0)
        await asyncio.sleep(0.01)
        return None

    mock_pubsub.get_message = fake_get_message
    mock_redis.pubsub = MagicMock(return_value=mock_pubsub)
    return mock_redis


async def _run_briefly(bridge: PubSubBridge) -> None:
    async def stop_after_delay():
        await asyncio.sleep(0.1)
        await bridge.stop()

    await asyncio.gather(bridge.start(), stop_after_delay())


class TestPubSubBridge:
    @pytest.mark.asyncio
    async def test_forwards_promotion_to_user(self) -> None:
        redis = _mock_redis([
            {
                "type": "pmessage",
                "channel": b"badge-promotion:7",
                "data": json.dumps({"badgeName": "Pupil"}).encode(),
            },
        ])
        bridge = PubSubBridge(redis)

        with patch("unihub.ws.bridge.manager") as mock_manager:
            mock_manager.send_to_user = AsyncMock(return_value=1)
            await _run_briefly(bridge)

        mock_manager.send_to_user.assert_awaited_once_with(7, "badges", {"badgeName": "Pupil"})
        pubsub = redis.pubsub.return_value
        pubsub.subscribe.assert_awaited_once_with("leaderboard-update")
        pubsub.psubscribe.assert_awaited_once()
        pubsub.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_message_skipped(self) -> None:
        redis = _mock_redis([
            {"type": "message", "channel": "leaderboard-update", "data": "not valid json {{{"},
        ])
        bridge = PubSubBridge(redis)

        with patch("unihub.ws.bridge.manager") as mock_manager:
            mock_manager.broadcast_to_channel = AsyncMock(return_value=0)
            await _run_briefly(bridge)

        mock_manager.broadcast_to_channel.assert_not_awaited()


class TestLocalBridge:
    @pytest.mark.asyncio
    async def test_forwards_in_process_topics(self) -> None:
        publisher = InMemoryPublisher()
        bridge = LocalBridge(publisher)

        with patch("unihub.ws.bridge.manager") as mock_manager:
            mock_manager.broadcast_to_channel = AsyncMock(return_value=1)
            task = asyncio.create_task(bridge.start())
            await asyncio.sleep(0)

            await publisher.publish("leaderboard-update", {"type": "LEADERBOARD_UPDATE"})
            await asyncio.sleep(0.05)

            task.cancel()
            await task

        mock_manager.broadcast_to_channel.assert_awaited_once_with(
            "leaderboard", {"type": "LEADERBOARD_UPDATE"}
        )
        assert publisher.subscriber_count == 0
