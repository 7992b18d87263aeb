"""Pydantic response models for gamification endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


# --- Badges ---


class BadgeTierResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    points_threshold: int


class AllBadgesResponse(BaseModel):
    badges: list[BadgeTierResponse]


class EarnedBadgeResponse(BaseModel):
    badge: BadgeTierResponse
    earned_at: datetime


class UserBadgesResponse(BaseModel):
    all_badges: list[BadgeTierResponse]
    earned_badges: list[EarnedBadgeResponse]
    current_points: int
    current_badge: BadgeTierResponse | None = None


# --- Balance ---


class BalanceResponse(BaseModel):
    user_id: int
    points: int
    current_badge: BadgeTierResponse | None = None
    next_badge: BadgeTierResponse | None = None
    points_to_next: int
    progress_percent: float
    rank: int | None = None


# --- Points history ---


class PointsHistoryEntry(BaseModel):
    id: int
    delta: int
    source_type: str
    source_label: str
    source_id: int | None = None
    link: str | None = None
    description: str | None = None
    created_at: datetime


class PointsHistoryResponse(BaseModel):
    entries: list[PointsHistoryEntry]
    total: int
    page: int
    per_page: int


# --- Leaderboard ---


class LeaderboardEntryResponse(BaseModel):
    rank: int
    user_id: int
    name: str
    points: int
    badge_name: str | None = None
    university_id: int | None = None


class LeaderboardResponse(BaseModel):
    scope: str
    university_id: int | None = None
    rankings: list[LeaderboardEntryResponse]
