"""Gamification API endpoints: read-only views over badges, balances and rankings.

Points are awarded and deducted in-process by the event, blog and report
services through ``GamificationEngine``; there is no public write route.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from unihub.config import get_settings
from unihub.db.models import BadgeTier, PointsLedgerEntry
from unihub.dependencies import get_db, get_gamification
from unihub.gamification import badge_service, leaderboard_service
from unihub.gamification.badge_ladder import BadgeLadder, TierSnapshot
from unihub.gamification.balance_service import get_balance
from unihub.gamification.engine import GamificationEngine
from unihub.gamification.ledger_service import get_ledger_history
from unihub.gamification.leaderboard_service import LeaderboardEntry
from unihub.gamification.schemas import (
    AllBadgesResponse,
    BadgeTierResponse,
    BalanceResponse,
    EarnedBadgeResponse,
    LeaderboardEntryResponse,
    LeaderboardResponse,
    PointsHistoryEntry,
    PointsHistoryResponse,
    UserBadgesResponse,
)
from unihub.gamification.source_types import source_label, source_link, stored_source_type

router = APIRouter(prefix="/api/v1/gamification", tags=["Gamification"])


def _tier_response(tier: BadgeTier | TierSnapshot | None) -> BadgeTierResponse | None:
    if tier is None:
        return None
    return BadgeTierResponse(
        id=tier.id,
        name=tier.name,
        description=tier.description,
        points_threshold=tier.points_threshold,
    )


def _history_entry(entry: PointsLedgerEntry) -> PointsHistoryEntry:
    source = stored_source_type(entry.source_type)
    return PointsHistoryEntry(
        id=entry.id,
        delta=entry.delta,
        source_type=entry.source_type,
        source_label=source_label(source),
        source_id=entry.source_id,
        link=source_link(source, entry.source_id),
        description=entry.description,
        created_at=entry.created_at,
    )


def _entry_response(entry: LeaderboardEntry) -> LeaderboardEntryResponse:
    return LeaderboardEntryResponse(
        rank=entry.rank,
        user_id=entry.user_id,
        name=entry.name,
        points=entry.points,
        badge_name=entry.badge_name,
        university_id=entry.university_id,
    )


# ── Badges ──


@router.get("/badges", response_model=AllBadgesResponse)
async def list_badges(db: AsyncSession = Depends(get_db)):
    """All badge tiers, lowest threshold first."""
    tiers = await badge_service.get_all_tiers(db)
    return AllBadgesResponse(badges=[_tier_response(t) for t in tiers])


@router.get("/badges/{badge_id}", response_model=BadgeTierResponse)
async def get_badge(badge_id: int, db: AsyncSession = Depends(get_db)):
    return _tier_response(await badge_service.get_tier(db, badge_id))


@router.get("/users/{user_id}/badges", response_model=UserBadgesResponse)
async def get_user_badges(user_id: int, db: AsyncSession = Depends(get_db)):
    """Every tier plus the user's earned history, points and current badge."""
    balance = await get_balance(db, user_id)
    tiers = await badge_service.get_all_tiers(db)
    earned = await badge_service.get_achievements(db, user_id)

    return UserBadgesResponse(
        all_badges=[_tier_response(t) for t in tiers],
        earned_badges=[
            EarnedBadgeResponse(badge=_tier_response(ub.badge), earned_at=ub.earned_at)
            for ub in earned
        ],
        current_points=balance.points,
        current_badge=_tier_response(balance.current_badge),
    )


# ── Balance & history ──


@router.get("/users/{user_id}/balance", response_model=BalanceResponse)
async def get_user_balance(user_id: int, db: AsyncSession = Depends(get_db)):
    """Current points, badge and progress toward the next tier."""
    balance = await get_balance(db, user_id)
    ladder = BadgeLadder.from_models(await badge_service.get_all_tiers(db))
    progress = ladder.progress(balance.points)
    rank = await leaderboard_service.get_member_rank(db, user_id)

    return BalanceResponse(
        user_id=balance.user_id,
        points=balance.points,
        current_badge=_tier_response(balance.current_badge),
        next_badge=_tier_response(progress["next"]),
        points_to_next=progress["points_to_next"],
        progress_percent=progress["progress_percent"],
        rank=rank,
    )


@router.get("/users/{user_id}/points-history", response_model=PointsHistoryResponse)
async def get_points_history(
    user_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Ledger entries for a user, newest first (paginated)."""
    await get_balance(db, user_id)
    entries, total = await get_ledger_history(db, user_id, page, per_page)

    return PointsHistoryResponse(
        entries=[_history_entry(e) for e in entries],
        total=total,
        page=page,
        per_page=per_page,
    )


# ── Leaderboard ──


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    scope: str = Query("GLOBAL"),
    university_id: int | None = Query(None, alias="universityId"),
    engine: GamificationEngine = Depends(get_gamification),
):
    """Members ranked by points, globally or within one university."""
    parsed, org_id = leaderboard_service.resolve_scope(scope, university_id)
    entries = await engine.rank_members(parsed, org_id)
    return LeaderboardResponse(
        scope=parsed.value,
        university_id=org_id,
        rankings=[_entry_response(e) for e in entries],
    )


@router.get("/top-members", response_model=LeaderboardResponse)
async def get_top_members(
    scope: str = Query("GLOBAL"),
    university_id: int | None = Query(None, alias="universityId"),
    limit: int | None = Query(None),
    engine: GamificationEngine = Depends(get_gamification),
):
    """Top N members for dashboard snippets."""
    settings = get_settings()
    n = settings.leaderboard_default_limit if limit is None else min(limit, settings.leaderboard_max_limit)
    parsed, org_id = leaderboard_service.resolve_scope(scope, university_id)
    entries = await engine.top_members(parsed, org_id, n)
    return LeaderboardResponse(
        scope=parsed.value,
        university_id=org_id,
        rankings=[_entry_response(e) for e in entries],
    )
