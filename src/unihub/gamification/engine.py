"""Gamification facade: the single entry point for points mutations.

Each award or deduction is one unit of work:

1. Lock the user's balance row (per-user asyncio lock + SELECT ... FOR UPDATE)
2. Append the ledger entry
3. Apply the delta to the balance (floored at zero)
4. Run the promotion (award) or demotion (deduction) check
5. Commit, then schedule fan-out outside the transaction

Steps 1-4 commit together or not at all. Retryable storage conflicts re-run
the whole unit in a fresh transaction a bounded number of times.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from unihub.db.models import BadgeTier, UserBadge
from unihub.gamification import badge_service, leaderboard_service
from unihub.gamification.badge_service import PROMOTION, BadgeTransition
from unihub.gamification.balance_service import Balance, apply_delta, get_balance, lock_user
from unihub.gamification.errors import ConflictRetryableError, InvalidArgumentError
from unihub.gamification.ledger_service import append_entry
from unihub.gamification.leaderboard_service import LeaderboardEntry, LeaderboardScope
from unihub.gamification.source_types import SourceType, parse_source_type

if TYPE_CHECKING:
    from unihub.config import Settings
    from unihub.gamification.fanout import FanoutDispatcher

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01", "55P03"})
UNIQUE_VIOLATION = "23505"
# Two transactions recording the same achievement; the loser re-reads and skips it
ACHIEVEMENT_CONSTRAINT = "user_badges_user_id_badge_id_key"
SQLITE_ACHIEVEMENT_RACE = "UNIQUE constraint failed: user_badges."
SQLITE_BUSY_MESSAGES = ("database is locked", "database table is locked", "database is busy")


@dataclass(frozen=True)
class PointsChange:
    """Committed result of an award or deduction."""

    user_id: int
    ledger_entry_id: int
    delta: int
    previous_points: int
    points: int
    transition: BadgeTransition | None = None

    @property
    def clamped(self) -> bool:
        """True when the zero floor absorbed part of a deduction."""
        return self.previous_points + self.delta != self.points


class UserLocks:
    """One asyncio.Lock per user id, released from memory once unused."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    def for_user(self, user_id: int) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock


def _sqlstate(orig: BaseException | None) -> str | None:
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _constraint_name(orig: BaseException | None) -> str | None:
    # asyncpg keeps it on the wrapped exception, psycopg on ``diag``
    for source in (orig, getattr(orig, "__cause__", None), getattr(orig, "diag", None)):
        name = getattr(source, "constraint_name", None)
        if name:
            return name
    return None


def is_retryable(exc: DBAPIError) -> bool:
    """Whether a storage error is a transient write conflict.

    Anything else, such as a missing table or a NOT NULL violation, is
    permanent and propagates on the first attempt.
    """
    orig = exc.orig
    sqlstate = _sqlstate(orig)
    if sqlstate in RETRYABLE_SQLSTATES:
        return True
    message = str(orig)
    if sqlstate == UNIQUE_VIOLATION:
        return ACHIEVEMENT_CONSTRAINT in (_constraint_name(orig) or message)
    if isinstance(exc, OperationalError):
        lowered = message.lower()
        return any(busy in lowered for busy in SQLITE_BUSY_MESSAGES)
    if isinstance(exc, IntegrityError):
        return message.startswith(SQLITE_ACHIEVEMENT_RACE)
    return False


def _validate_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidArgumentError(f"Points amount must be an integer, got {amount!r}")
    if amount <= 0:
        raise InvalidArgumentError(f"Points amount must be positive, got {amount}")
    return amount


class GamificationEngine:
    """Points ledger, balance and badge transitions behind one atomic API."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: FanoutDispatcher,
        *,
        max_retries: int = 3,
        retry_backoff_ms: int = 25,
        fallback_label: str = "Newcomer",
    ) -> None:
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff_ms / 1000
        self.fallback_label = fallback_label
        self._locks = UserLocks()

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: FanoutDispatcher,
        settings: Settings,
    ) -> GamificationEngine:
        return cls(
            session_factory,
            dispatcher,
            max_retries=settings.gamification_max_retries,
            retry_backoff_ms=settings.gamification_retry_backoff_ms,
            fallback_label=settings.badge_fallback_label,
        )

    # ── Mutations ──

    async def award_points(
        self,
        user_id: int,
        amount: int,
        source_type: SourceType | str,
        source_id: int | None = None,
        description: str | None = None,
        *,
        notify_dashboard: bool = False,
    ) -> PointsChange:
        """Award points and promote the user if a higher tier is reached."""
        amount = _validate_amount(amount)
        source = parse_source_type(source_type)
        logger.info("Awarding %d points to user %s from source %s", amount, user_id, source.value)

        async def work(db: AsyncSession) -> PointsChange:
            now = datetime.now(timezone.utc)
            user = await lock_user(db, user_id)
            previous = user.points
            entry = await append_entry(db, user.id, amount, source, source_id, description, now)
            new_points = apply_delta(user, amount, now)
            ladder = await badge_service.load_ladder(db)
            transition = await badge_service.check_promotion(db, user, ladder, now)
            return PointsChange(
                user_id=user.id,
                ledger_entry_id=entry.id,
                delta=amount,
                previous_points=previous,
                points=new_points,
                transition=transition,
            )

        change = await self._run_unit_of_work(user_id, work)
        self._fan_out(change, notify_dashboard)
        return change

    async def deduct_points(
        self,
        user_id: int,
        amount: int,
        source_type: SourceType | str,
        source_id: int | None = None,
        description: str | None = None,
        *,
        notify_dashboard: bool = False,
    ) -> PointsChange:
        """Deduct points (floored at zero) and demote the user if needed.

        The ledger records the requested amount even when the floor clamps
        the visible balance.
        """
        amount = _validate_amount(amount)
        source = parse_source_type(source_type)
        logger.info("Deducting %d points from user %s for source %s", amount, user_id, source.value)

        async def work(db: AsyncSession) -> PointsChange:
            now = datetime.now(timezone.utc)
            user = await lock_user(db, user_id)
            previous = user.points
            entry = await append_entry(db, user.id, -amount, source, source_id, description, now)
            new_points = apply_delta(user, -amount, now)
            ladder = await badge_service.load_ladder(db)
            transition = await badge_service.check_demotion(
                db, user, ladder, self.fallback_label, now
            )
            return PointsChange(
                user_id=user.id,
                ledger_entry_id=entry.id,
                delta=-amount,
                previous_points=previous,
                points=new_points,
                transition=transition,
            )

        change = await self._run_unit_of_work(user_id, work)
        self._fan_out(change, notify_dashboard)
        return change

    def notify_dashboard(self, user_id: int) -> None:
        """Ask the user's dashboard to refresh without a points change."""
        self.dispatcher.dashboard_updated(user_id)

    async def create_tier(
        self,
        name: str,
        points_threshold: int,
        description: str | None = None,
    ) -> BadgeTier:
        """Add a badge tier; existing users move on their next points change."""
        async with self.session_factory() as db, db.begin():
            return await badge_service.create_tier(db, name, points_threshold, description)

    # ── Reads ──

    async def get_balance(self, user_id: int) -> Balance:
        async with self.session_factory() as db:
            return await get_balance(db, user_id)

    async def get_achievements(self, user_id: int) -> list[UserBadge]:
        async with self.session_factory() as db:
            return await badge_service.get_achievements(db, user_id)

    async def get_all_tiers(self) -> list[BadgeTier]:
        async with self.session_factory() as db:
            return await badge_service.get_all_tiers(db)

    async def rank_members(
        self,
        scope: LeaderboardScope | str = LeaderboardScope.GLOBAL,
        org_id: int | None = None,
    ) -> list[LeaderboardEntry]:
        async with self.session_factory() as db:
            return await leaderboard_service.rank_members(db, scope, org_id)

    async def top_members(
        self,
        scope: LeaderboardScope | str = LeaderboardScope.GLOBAL,
        org_id: int | None = None,
        n: int = 10,
    ) -> list[LeaderboardEntry]:
        async with self.session_factory() as db:
            return await leaderboard_service.top_members(db, scope, org_id, n)

    async def get_member_rank(
        self,
        user_id: int,
        scope: LeaderboardScope | str = LeaderboardScope.GLOBAL,
        org_id: int | None = None,
    ) -> int | None:
        async with self.session_factory() as db:
            return await leaderboard_service.get_member_rank(db, user_id, scope, org_id)

    # ── Internals ──

    async def _run_unit_of_work(
        self,
        user_id: int,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        attempt = 0
        async with self._locks.for_user(user_id):
            while True:
                attempt += 1
                try:
                    async with self.session_factory() as db, db.begin():
                        return await work(db)
                except DBAPIError as exc:
                    if not is_retryable(exc):
                        raise
                    if attempt > self.max_retries:
                        logger.error("Points update for user %s failed after %d attempts", user_id, attempt)
                        raise ConflictRetryableError(user_id, attempt) from exc
                    logger.warning(
                        "Write conflict on user %s (attempt %d/%d), retrying",
                        user_id,
                        attempt,
                        self.max_retries + 1,
                    )
                    await asyncio.sleep(self.retry_backoff * attempt)

    def _fan_out(self, change: PointsChange, notify_dashboard: bool) -> None:
        self.dispatcher.leaderboard_updated()
        if notify_dashboard:
            self.dispatcher.dashboard_updated(change.user_id)

        transition = change.transition
        if transition is None:
            return
        self.dispatcher.notification_created(transition.notification)
        if transition.kind == PROMOTION and transition.current is not None:
            self.dispatcher.badge_promoted(change.user_id, transition.current)
