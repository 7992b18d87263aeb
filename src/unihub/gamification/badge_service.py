"""Badge tiers, achievement history and the promotion/demotion state machine."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from unihub.db.models import BadgeTier, Notification, User, UserBadge
from unihub.gamification.badge_ladder import BadgeLadder, TierSnapshot
from unihub.gamification.balance_service import get_user
from unihub.gamification.errors import InvalidArgumentError, NotFoundError

logger = logging.getLogger(__name__)

BADGE_EARNED = "BADGE_EARNED"
POINTS_UPDATE = "POINTS_UPDATE"
BADGES_LINK = "/badges"

PROMOTION = "promotion"
DEMOTION = "demotion"


@dataclass(frozen=True)
class BadgeTransition:
    """Outcome of a transition check that changed the user's badge."""

    kind: str
    user_id: int
    previous: TierSnapshot | None
    current: TierSnapshot | None
    achievement_created: bool
    notification: Notification


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------


async def get_all_tiers(db: AsyncSession) -> list[BadgeTier]:
    """All tiers, lowest threshold first."""
    result = await db.execute(
        select(BadgeTier).order_by(BadgeTier.points_threshold.asc(), BadgeTier.id.asc())
    )
    return list(result.scalars().all())


async def load_ladder(db: AsyncSession) -> BadgeLadder:
    return BadgeLadder.from_models(await get_all_tiers(db))


async def get_tier(db: AsyncSession, tier_id: int) -> BadgeTier:
    tier = await db.get(BadgeTier, tier_id)
    if tier is None:
        raise NotFoundError("BadgeTier", tier_id)
    return tier


async def create_tier(
    db: AsyncSession,
    name: str,
    points_threshold: int,
    description: str | None = None,
) -> BadgeTier:
    """Add a tier. Thresholds must be non-negative and unique across tiers."""
    if isinstance(points_threshold, bool) or not isinstance(points_threshold, int):
        raise InvalidArgumentError("points_threshold must be an integer")
    if points_threshold < 0:
        raise InvalidArgumentError("points_threshold must be non-negative")
    if not name or not name.strip():
        raise InvalidArgumentError("Badge name is required")

    existing = await db.execute(
        select(BadgeTier).where(BadgeTier.points_threshold == points_threshold)
    )
    clash = existing.scalar_one_or_none()
    if clash is not None:
        raise InvalidArgumentError(
            f"Threshold {points_threshold} is already used by badge '{clash.name}'"
        )

    now = datetime.now(timezone.utc)
    tier = BadgeTier(
        name=name.strip(),
        description=description,
        points_threshold=points_threshold,
        created_at=now,
        updated_at=now,
    )
    db.add(tier)
    await db.flush()
    logger.info("Created badge tier %s at %d points", tier.name, points_threshold)
    return tier


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


async def has_achievement(db: AsyncSession, user_id: int, badge_id: int) -> bool:
    result = await db.execute(
        select(UserBadge.id).where(
            UserBadge.user_id == user_id,
            UserBadge.badge_id == badge_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def record_achievement(
    db: AsyncSession,
    user_id: int,
    badge_id: int,
    now: datetime,
) -> bool:
    """Insert the (user, badge) history row once. Returns True if inserted.

    A concurrent duplicate surfaces as IntegrityError at flush and is
    retried by the caller's unit of work.
    """
    if await has_achievement(db, user_id, badge_id):
        return False
    db.add(UserBadge(user_id=user_id, badge_id=badge_id, earned_at=now))
    await db.flush()
    return True


async def get_achievements(db: AsyncSession, user_id: int) -> list[UserBadge]:
    """A user's earned badges, most recent first."""
    await get_user(db, user_id)
    result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.earned_at.desc(), UserBadge.id.desc())
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


async def check_promotion(
    db: AsyncSession,
    user: User,
    ladder: BadgeLadder,
    now: datetime | None = None,
) -> BadgeTransition | None:
    """Move the user to the highest qualifying tier after an award.

    No-op when membership is unchanged, so repeated checks never duplicate
    history rows or notifications.
    """
    now = now or datetime.now(timezone.utc)
    new_tier = ladder.highest_qualifying(user.points)
    if new_tier is None:
        return None
    if user.current_badge_id == new_tier.id:
        return None

    previous = ladder.get(user.current_badge_id)
    logger.info(
        "Promoting user %s from badge %s to badge %s",
        user.id,
        previous.name if previous else "none",
        new_tier.name,
    )
    user.current_badge_id = new_tier.id

    created = await record_achievement(db, user.id, new_tier.id, now)

    notification = Notification(
        user_id=user.id,
        type=BADGE_EARNED,
        message=f"Congratulations! You've earned the {new_tier.name} badge!",
        link_url=BADGES_LINK,
        is_read=False,
        created_at=now,
    )
    db.add(notification)
    await db.flush()

    return BadgeTransition(
        kind=PROMOTION,
        user_id=user.id,
        previous=previous,
        current=new_tier,
        achievement_created=created,
        notification=notification,
    )


async def check_demotion(
    db: AsyncSession,
    user: User,
    ladder: BadgeLadder,
    fallback_label: str = "Newcomer",
    now: datetime | None = None,
) -> BadgeTransition | None:
    """Drop the user to a lower tier once points fall below the current threshold.

    Achievement rows are never removed.
    """
    if user.current_badge_id is None:
        return None

    now = now or datetime.now(timezone.utc)
    current = ladder.get(user.current_badge_id)
    if current is not None and user.points >= current.points_threshold:
        return None

    new_tier = ladder.highest_qualifying(user.points)
    new_id = new_tier.id if new_tier else None
    if new_id == user.current_badge_id:
        return None

    new_name = new_tier.name if new_tier else fallback_label
    logger.info(
        "Demoting user %s from badge %s to badge %s",
        user.id,
        current.name if current else user.current_badge_id,
        new_name,
    )
    user.current_badge_id = new_id

    notification = Notification(
        user_id=user.id,
        type=POINTS_UPDATE,
        message=f"Your badge has been updated to {new_name} due to point changes.",
        link_url=BADGES_LINK,
        is_read=False,
        created_at=now,
    )
    db.add(notification)
    await db.flush()

    return BadgeTransition(
        kind=DEMOTION,
        user_id=user.id,
        previous=current,
        current=new_tier,
        achievement_created=False,
        notification=notification,
    )
