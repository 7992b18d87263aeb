"""Append-only points ledger.

The ledger is an audit trail, never a recomputation source: after deep
deductions its signed sum can be lower than the floored balance.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from unihub.db.models import PointsLedgerEntry
from unihub.gamification.errors import InvalidArgumentError
from unihub.gamification.source_types import SourceType

logger = logging.getLogger(__name__)


async def append_entry(
    db: AsyncSession,
    user_id: int,
    delta: int,
    source_type: SourceType,
    source_id: int | None,
    description: str | None,
    now: datetime | None = None,
) -> PointsLedgerEntry:
    """Insert one ledger row and flush so it has an id.

    Only ``delta == 0`` is rejected; magnitude rules belong to the caller.
    The user must already be known to exist (the caller holds its row lock).
    """
    if delta == 0:
        raise InvalidArgumentError("Ledger delta must be non-zero")

    entry = PointsLedgerEntry(
        user_id=user_id,
        source_type=source_type.value,
        source_id=source_id,
        delta=delta,
        description=description,
        created_at=now or datetime.now(timezone.utc),
    )
    db.add(entry)
    await db.flush()
    return entry


async def get_ledger_history(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[PointsLedgerEntry], int]:
    """Newest-first page of a user's ledger plus the total row count."""
    total_result = await db.execute(
        select(func.count()).select_from(PointsLedgerEntry).where(PointsLedgerEntry.user_id == user_id)
    )
    total = total_result.scalar_one()

    offset = (page - 1) * per_page
    result = await db.execute(
        select(PointsLedgerEntry)
        .where(PointsLedgerEntry.user_id == user_id)
        .order_by(PointsLedgerEntry.created_at.desc(), PointsLedgerEntry.id.desc())
        .offset(offset)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def ledger_total(db: AsyncSession, user_id: int) -> int:
    """Signed sum of every delta recorded for a user."""
    result = await db.execute(
        select(func.coalesce(func.sum(PointsLedgerEntry.delta), 0)).where(
            PointsLedgerEntry.user_id == user_id
        )
    )
    return int(result.scalar_one())
