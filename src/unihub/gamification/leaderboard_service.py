"""Member leaderboard: stateless ranking derived from the balance store.

Ordering is points descending with user id ascending as the tie-break, so
pagination and top-N snippets are deterministic for a given snapshot.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from sqlalchemy import Select, and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from unihub.db.models import BadgeTier, User
from unihub.gamification.balance_service import get_user
from unihub.gamification.errors import InvalidArgumentError

logger = logging.getLogger(__name__)


class LeaderboardScope(str, enum.Enum):
    GLOBAL = "GLOBAL"
    ORGANIZATION = "ORGANIZATION"


# Older clients still send the university-era name
_SCOPE_ALIASES = {"UNIVERSITY": LeaderboardScope.ORGANIZATION}


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    user_id: int
    name: str
    points: int
    badge_id: int | None
    badge_name: str | None
    university_id: int | None


def parse_scope(value: LeaderboardScope | str) -> LeaderboardScope:
    if isinstance(value, LeaderboardScope):
        return value
    normalized = str(value).strip().upper()
    if normalized in _SCOPE_ALIASES:
        return _SCOPE_ALIASES[normalized]
    try:
        return LeaderboardScope(normalized)
    except ValueError:
        raise InvalidArgumentError(f"Invalid leaderboard scope: {value!r}") from None


def resolve_scope(
    scope: LeaderboardScope | str, org_id: int | None
) -> tuple[LeaderboardScope, int | None]:
    """Validate a scope/organization pair. GLOBAL ignores org_id."""
    parsed = parse_scope(scope)
    if parsed is LeaderboardScope.ORGANIZATION:
        if org_id is None:
            raise InvalidArgumentError("Organization id is required for ORGANIZATION scope")
        return parsed, org_id
    return parsed, None


def _scoped(stmt: Select, scope: LeaderboardScope, org_id: int | None) -> Select:
    if scope is LeaderboardScope.ORGANIZATION:
        return stmt.where(User.university_id == org_id)
    return stmt


async def rank_members(
    db: AsyncSession,
    scope: LeaderboardScope | str = LeaderboardScope.GLOBAL,
    org_id: int | None = None,
    *,
    limit: int | None = None,
    offset: int = 0,
) -> list[LeaderboardEntry]:
    """Members ranked by points within the scope."""
    parsed, org_id = resolve_scope(scope, org_id)
    logger.debug("Ranking members scope=%s org=%s", parsed.value, org_id)

    stmt = (
        select(
            User.id,
            User.name,
            User.points,
            User.university_id,
            BadgeTier.id.label("badge_id"),
            BadgeTier.name.label("badge_name"),
        )
        .outerjoin(BadgeTier, User.current_badge_id == BadgeTier.id)
        .order_by(User.points.desc(), User.id.asc())
    )
    stmt = _scoped(stmt, parsed, org_id)
    if offset:
        stmt = stmt.offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)

    result = await db.execute(stmt)
    return [
        LeaderboardEntry(
            rank=offset + position + 1,
            user_id=row.id,
            name=row.name,
            points=row.points,
            badge_id=row.badge_id,
            badge_name=row.badge_name,
            university_id=row.university_id,
        )
        for position, row in enumerate(result)
    ]


async def top_members(
    db: AsyncSession,
    scope: LeaderboardScope | str = LeaderboardScope.GLOBAL,
    org_id: int | None = None,
    n: int = 10,
) -> list[LeaderboardEntry]:
    """First n of rank_members. n <= 0 yields an empty list."""
    resolve_scope(scope, org_id)
    if n <= 0:
        return []
    return await rank_members(db, scope, org_id, limit=n)


async def get_member_rank(
    db: AsyncSession,
    user_id: int,
    scope: LeaderboardScope | str = LeaderboardScope.GLOBAL,
    org_id: int | None = None,
) -> int | None:
    """1-based rank of a user, or None when the user is outside the scope."""
    parsed, org_id = resolve_scope(scope, org_id)
    user = await get_user(db, user_id)
    if parsed is LeaderboardScope.ORGANIZATION and user.university_id != org_id:
        return None

    ahead = select(func.count()).select_from(User).where(
        or_(
            User.points > user.points,
            and_(User.points == user.points, User.id < user.id),
        )
    )
    ahead = _scoped(ahead, parsed, org_id)
    result = await db.execute(ahead)
    return result.scalar_one() + 1
