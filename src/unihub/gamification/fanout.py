"""Fan-out of points changes to real-time subscribers.

Every publish runs as a background task scheduled after the points
transaction commits. Callers never await delivery, and a failed publish is
logged and dropped: the committed points and badge state stand regardless.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from unihub.gamification.errors import FanoutFailure

if TYPE_CHECKING:
    from unihub.db.models import Notification
    from unihub.gamification.badge_ladder import TierSnapshot
    from unihub.ws.publisher import Publisher

logger = logging.getLogger(__name__)

LEADERBOARD_TOPIC = "leaderboard-update"
DASHBOARD_TOPIC_PREFIX = "dashboard-update"
BADGE_PROMOTION_TOPIC_PREFIX = "badge-promotion"
NOTIFICATION_TOPIC_PREFIX = "notification"


def dashboard_topic(user_id: int) -> str:
    return f"{DASHBOARD_TOPIC_PREFIX}:{user_id}"


def badge_promotion_topic(user_id: int) -> str:
    return f"{BADGE_PROMOTION_TOPIC_PREFIX}:{user_id}"


def notification_topic(user_id: int) -> str:
    return f"{NOTIFICATION_TOPIC_PREFIX}:{user_id}"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class FanoutDispatcher:
    """Schedules best-effort publishes and tracks them until they finish."""

    def __init__(self, publisher: Publisher) -> None:
        self.publisher = publisher
        self._pending: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def leaderboard_updated(self) -> None:
        self._schedule(LEADERBOARD_TOPIC, {
            "type": "LEADERBOARD_UPDATE",
            "timestamp": _timestamp(),
        })

    def dashboard_updated(self, user_id: int) -> None:
        self._schedule(dashboard_topic(user_id), {
            "type": "DASHBOARD_UPDATE",
            "timestamp": _timestamp(),
        })

    def badge_promoted(self, user_id: int, tier: TierSnapshot) -> None:
        self._schedule(badge_promotion_topic(user_id), {
            "userId": user_id,
            "badgeId": tier.id,
            "badgeName": tier.name,
            "badgeDescription": tier.description,
            "pointsThreshold": tier.points_threshold,
            "timestamp": _timestamp(),
        })

    def notification_created(self, notification: Notification) -> None:
        """Push a persisted notification to the user's WebSocket connections."""
        self._schedule(notification_topic(notification.user_id), {
            "id": str(notification.id),
            "type": notification.type,
            "message": notification.message,
            "link": notification.link_url,
            "read": notification.is_read,
            "timestamp": (
                notification.created_at.isoformat()
                if notification.created_at
                else _timestamp()
            ),
        })

    async def drain(self) -> None:
        """Wait for every in-flight publish (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self, topic: str, payload: dict[str, Any]) -> None:
        task = asyncio.create_task(self._publish(topic, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _publish(self, topic: str, payload: dict[str, Any]) -> None:
        try:
            await self.publisher.publish(topic, payload)
        except Exception as exc:
            failure = FanoutFailure(topic)
            failure.__cause__ = exc
            logger.warning("%s", failure, exc_info=exc)
            return
        logger.debug("Published %s", topic)
