"""Balance store: the materialized points total and current badge per user."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from unihub.db.models import BadgeTier, User
from unihub.gamification.errors import NotFoundError


@dataclass(frozen=True)
class Balance:
    user_id: int
    points: int
    current_badge_id: int | None
    current_badge: BadgeTier | None


async def get_user(db: AsyncSession, user_id: int) -> User:
    """Fetch a user or raise NotFoundError."""
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


async def lock_user(db: AsyncSession, user_id: int) -> User:
    """Load the user's row with ``SELECT ... FOR UPDATE`` for the current transaction.

    The ``OF users`` clause keeps the lock off the outer-joined badge row.
    """
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .with_for_update(of=User)
        .execution_options(populate_existing=True)
    )
    user = result.unique().scalar_one_or_none()
    if user is None:
        raise NotFoundError("User", user_id)
    return user


async def get_balance(db: AsyncSession, user_id: int) -> Balance:
    user = await get_user(db, user_id)
    return Balance(
        user_id=user.id,
        points=user.points,
        current_badge_id=user.current_badge_id,
        current_badge=user.current_badge,
    )


def apply_delta(user: User, delta: int, now: datetime | None = None) -> int:
    """Adjust points by delta, flooring at zero. Returns the new total.

    The floor applies at every step, so a deep deduction is never refunded
    by later awards.
    """
    user.points = max(0, user.points + delta)
    user.updated_at = now or datetime.now(timezone.utc)
    return user.points
