"""ORM models for the gamification schema.

The users and universities tables are owned by the platform's identity
service; only the columns the engine reads or writes are mapped here.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from unihub.db.base import Base


# ---------------------------------------------------------------------------
# Directory (collaborator-owned)
# ---------------------------------------------------------------------------


class University(Base):
    """Organization a member belongs to; scopes the leaderboard."""

    __tablename__ = "universities"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)


class User(Base):
    """Platform member. ``points`` and ``current_badge_id`` form the balance view."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("points >= 0", name="users_points_non_negative"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    university_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("universities.id"), nullable=True, index=True
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    current_badge_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("badges.id"), nullable=True
    )
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    current_badge: Mapped[BadgeTier | None] = relationship("BadgeTier", lazy="joined")
    university: Mapped[University | None] = relationship("University", lazy="joined")


# ---------------------------------------------------------------------------
# Gamification
# ---------------------------------------------------------------------------


class BadgeTier(Base):
    """A named rank unlocked at a points threshold; thresholds are unique."""

    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    points_threshold: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PointsLedgerEntry(Base):
    """Immutable points transaction. Never updated or deleted."""

    __tablename__ = "points_ledger"
    __table_args__ = (
        CheckConstraint("delta <> 0", name="points_ledger_delta_non_zero"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source_type: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class UserBadge(Base):
    """Achievement history. UNIQUE(user_id, badge_id) keeps it duplicate-free."""

    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="user_badges_user_id_badge_id_key"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    badge_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("badges.id"), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    badge: Mapped[BadgeTier] = relationship("BadgeTier", lazy="joined")


class Notification(Base):
    """Persisted user notifications (BADGE_EARNED, POINTS_UPDATE)."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link_url: Mapped[str | None] = mapped_column(String(256), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
