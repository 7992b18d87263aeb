"""WebSocket endpoint: one socket per client, channels multiplexed over it.

The gateway in front of this API authenticates the upgrade request and
forwards the member id as ``user_id``.

Client -> server::

    {"action": "subscribe", "channel": "badges"}
    {"action": "unsubscribe", "channel": "badges"}
    {"action": "ping"}

Server -> client::

    {"channel": "badges", "data": {...}}
    {"type": "subscribed" | "unsubscribed", "channel": "badges"}
    {"type": "pong"}
    {"type": "error", "message": "..."}
"""

import json
import uuid
from typing import Any

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from unihub.ws.manager import manager

logger = structlog.get_logger()

router = APIRouter()


def _error(message: str) -> dict[str, Any]:
    return {"type": "error", "message": message}


async def handle_action(conn_id: str, msg: Any) -> dict[str, Any]:
    """Apply one client action and build the reply frame."""
    if not isinstance(msg, dict):
        return _error("Expected a JSON object")

    action = msg.get("action")
    channel = msg.get("channel", "")

    match action:
        case "subscribe":
            if await manager.subscribe(conn_id, channel):
                return {"type": "subscribed", "channel": channel}
            return _error(f"Invalid channel: {channel}")
        case "unsubscribe":
            await manager.unsubscribe(conn_id, channel)
            return {"type": "unsubscribed", "channel": channel}
        case "ping":
            return {"type": "pong"}
        case _:
            return _error(f"Unknown action: {action}")


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, user_id: int = Query(...)) -> None:
    conn_id = str(uuid.uuid4())
    await manager.connect(websocket, conn_id, user_id)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json(_error("Invalid JSON"))
                continue
            await websocket.send_json(await handle_action(conn_id, msg))
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("ws_error", conn_id=conn_id, user_id=user_id)
    finally:
        await manager.disconnect(conn_id)
