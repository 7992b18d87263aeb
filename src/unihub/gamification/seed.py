"""Badge tier seed data: the seven gaming-inspired ranks shown on the badges page."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from unihub.db.models import BadgeTier
from unihub.gamification.badge_ladder import BadgeLadder

logger = logging.getLogger(__name__)

BADGE_SEED_DATA: list[dict] = [
    {
        "name": "Newbie",
        "description": "\U0001f3ae Welcome to UniHub! Your journey begins.",
        "points_threshold": 0,
    },
    {
        "name": "Pupil",
        "description": "\u26a1 Earned 100 points! You're learning fast.",
        "points_threshold": 100,
    },
    {
        "name": "Specialist",
        "description": "\U0001f31f Reached 300 points! You're becoming skilled.",
        "points_threshold": 300,
    },
    {
        "name": "Expert",
        "description": "\U0001f48e 600 points! You're an expert contributor.",
        "points_threshold": 600,
    },
    {
        "name": "Master",
        "description": "\U0001f451 1000 points! Master of the UniHub!",
        "points_threshold": 1000,
    },
    {
        "name": "Grandmaster",
        "description": "\U0001f3c6 1500+ points! Grandmaster rank achieved!",
        "points_threshold": 1500,
    },
    {
        "name": "Legendary",
        "description": "\U0001f396\ufe0f 2500+ points! You've reached legendary status!",
        "points_threshold": 2500,
    },
]


async def seed_badge_tiers(db: AsyncSession) -> int:
    """Insert missing seed tiers keyed by threshold. Returns number inserted.

    Existing tiers are left untouched so admin edits survive restarts.
    """
    result = await db.execute(select(BadgeTier.points_threshold))
    existing = set(result.scalars().all())

    now = datetime.now(timezone.utc)
    inserted = 0
    for tier_data in BADGE_SEED_DATA:
        if tier_data["points_threshold"] in existing:
            continue
        db.add(BadgeTier(**tier_data, created_at=now, updated_at=now))
        inserted += 1

    await db.commit()
    logger.info("Seeded %d badge tiers", inserted)
    return inserted


async def verify_ladder(db: AsyncSession) -> bool:
    """Warn when no threshold-0 tier exists; new users would then have no badge."""
    result = await db.execute(select(BadgeTier))
    ladder = BadgeLadder.from_models(result.scalars().all())
    if not ladder.has_default_tier:
        logger.warning("Badge ladder has no threshold-0 tier (%d tiers configured)", len(ladder))
        return False
    return True
