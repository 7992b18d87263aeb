"""WebSocket connection registry.

Connections are indexed twice: by channel for leaderboard broadcasts and by
user for the per-member channels. A send that fails drops the connection.
"""

from __future__ import annotations

import json
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

import structlog
from fastapi import WebSocket

logger = structlog.get_logger()

BROADCAST_CHANNELS = frozenset({"leaderboard"})
USER_CHANNELS = frozenset({"dashboard", "badges", "notifications"})
VALID_CHANNELS = BROADCAST_CHANNELS | USER_CHANNELS


@dataclass
class ClientConnection:
    websocket: WebSocket
    user_id: int
    subscriptions: set[str] = field(default_factory=set)
    connected_at: float = field(default_factory=time.monotonic)
    messages_sent: int = 0


class ConnectionManager:
    """Tracks live sockets and fans channel messages out to them.

    All mutation happens on the event loop thread, so no locking is needed.
    """

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}
        self._by_channel: dict[str, set[str]] = defaultdict(set)
        self._by_user: dict[int, set[str]] = defaultdict(set)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket, conn_id: str, user_id: int) -> None:
        await websocket.accept()
        self._connections[conn_id] = ClientConnection(websocket=websocket, user_id=user_id)
        self._by_user[user_id].add(conn_id)
        logger.info("ws_connected", conn_id=conn_id, user_id=user_id)

    async def disconnect(self, conn_id: str) -> None:
        client = self._connections.pop(conn_id, None)
        if client is None:
            return

        for channel in client.subscriptions:
            self._discard(self._by_channel, channel, conn_id)
        self._discard(self._by_user, client.user_id, conn_id)

        logger.info(
            "ws_disconnected",
            conn_id=conn_id,
            user_id=client.user_id,
            messages_sent=client.messages_sent,
            duration_s=round(time.monotonic() - client.connected_at, 1),
        )

    async def subscribe(self, conn_id: str, channel: str) -> bool:
        """Returns False for an unknown connection or channel."""
        client = self._connections.get(conn_id)
        if client is None or channel not in VALID_CHANNELS:
            return False
        client.subscriptions.add(channel)
        self._by_channel[channel].add(conn_id)
        logger.debug("ws_subscribed", conn_id=conn_id, channel=channel)
        return True

    async def unsubscribe(self, conn_id: str, channel: str) -> bool:
        client = self._connections.get(conn_id)
        if client is None:
            return False
        client.subscriptions.discard(channel)
        self._discard(self._by_channel, channel, conn_id)
        return True

    async def broadcast_to_channel(self, channel: str, message: dict[str, Any]) -> int:
        """Send to every subscriber of a channel. Returns the delivery count."""
        return await self._send(self._by_channel.get(channel, ()), channel, message)

    async def send_to_user(self, user_id: int, channel: str, message: dict[str, Any]) -> int:
        """Send to the user's connections that subscribed to the channel."""
        conn_ids = [
            conn_id
            for conn_id in self._by_user.get(user_id, ())
            if channel in self._connections[conn_id].subscriptions
        ]
        return await self._send(conn_ids, channel, message)

    async def close_all(self) -> None:
        """Close every socket (application shutdown)."""
        for conn_id, client in list(self._connections.items()):
            try:
                await client.websocket.close(code=1001)
            except Exception:
                logger.debug("ws_close_failed", conn_id=conn_id)
            await self.disconnect(conn_id)

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_connections": len(self._connections),
            "unique_users": len(self._by_user),
            "channels": {ch: len(conns) for ch, conns in self._by_channel.items() if conns},
        }

    async def _send(self, conn_ids, channel: str, message: dict[str, Any]) -> int:
        targets = list(conn_ids)
        if not targets:
            return 0

        payload = json.dumps({"channel": channel, "data": message})
        sent = 0
        dead: list[str] = []
        for conn_id in targets:
            client = self._connections.get(conn_id)
            if client is None:
                dead.append(conn_id)
                continue
            try:
                await client.websocket.send_text(payload)
            except Exception:
                dead.append(conn_id)
                continue
            client.messages_sent += 1
            sent += 1

        for conn_id in dead:
            if conn_id in self._connections:
                await self.disconnect(conn_id)
            else:
                self._discard(self._by_channel, channel, conn_id)
        return sent

    @staticmethod
    def _discard(index: dict, key: Any, conn_id: str) -> None:
        members = index.get(key)
        if members is None:
            return
        members.discard(conn_id)
        if not members:
            del index[key]


manager = ConnectionManager()
