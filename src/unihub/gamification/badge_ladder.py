"""Badge ladder: the ordered set of point thresholds that define badge tiers.

A ladder is an immutable snapshot. It is rebuilt from the ``badges`` table
inside every points transaction, so concurrent readers never observe a
half-updated ladder.
"""

from __future__ import annotations

import bisect
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from unihub.db.models import BadgeTier


@dataclass(frozen=True)
class TierSnapshot:
    id: int
    name: str
    description: str | None
    points_threshold: int

    @classmethod
    def from_model(cls, tier: BadgeTier) -> TierSnapshot:
        return cls(
            id=tier.id,
            name=tier.name,
            description=tier.description,
            points_threshold=tier.points_threshold,
        )


class BadgeLadder:
    """Tiers sorted by threshold; duplicate thresholds resolve to the lowest id."""

    def __init__(self, tiers: Iterable[TierSnapshot]) -> None:
        by_threshold: dict[int, TierSnapshot] = {}
        for tier in sorted(tiers, key=lambda t: (t.points_threshold, t.id)):
            by_threshold.setdefault(tier.points_threshold, tier)
        self._tiers: tuple[TierSnapshot, ...] = tuple(by_threshold.values())
        self._thresholds: list[int] = [t.points_threshold for t in self._tiers]

    @classmethod
    def from_models(cls, tiers: Iterable[BadgeTier]) -> BadgeLadder:
        return cls(TierSnapshot.from_model(t) for t in tiers)

    @property
    def tiers(self) -> tuple[TierSnapshot, ...]:
        return self._tiers

    @property
    def has_default_tier(self) -> bool:
        """True when a threshold-0 tier exists (every user qualifies for it)."""
        return bool(self._thresholds) and self._thresholds[0] == 0

    def __len__(self) -> int:
        return len(self._tiers)

    def get(self, tier_id: int | None) -> TierSnapshot | None:
        if tier_id is None:
            return None
        for tier in self._tiers:
            if tier.id == tier_id:
                return tier
        return None

    def highest_qualifying(self, points: int) -> TierSnapshot | None:
        """Return the tier with the greatest threshold <= points, or None."""
        idx = bisect.bisect_right(self._thresholds, points)
        if idx == 0:
            return None
        return self._tiers[idx - 1]

    def next_tier(self, points: int) -> TierSnapshot | None:
        """Return the lowest tier whose threshold is above points."""
        idx = bisect.bisect_right(self._thresholds, points)
        if idx >= len(self._tiers):
            return None
        return self._tiers[idx]

    def progress(self, points: int) -> dict:
        """Progress info for the dashboard badge bar.

        ``progress_percent`` is 100 once the top tier is reached.
        """
        current = self.highest_qualifying(points)
        upcoming = self.next_tier(points)

        floor = current.points_threshold if current else 0
        if upcoming is None:
            points_to_next = 0
            percent = 100.0
        else:
            span = upcoming.points_threshold - floor
            points_to_next = upcoming.points_threshold - points
            percent = round((points - floor) / span * 100, 2) if span > 0 else 0.0

        return {
            "current": current,
            "next": upcoming,
            "points_to_next": points_to_next,
            "progress_percent": percent,
        }
