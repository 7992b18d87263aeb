"""Leaderboard query tests: ordering, tie-breaks, scopes, top-N."""

from __future__ import annotations

import pytest
import pytest_asyncio

from unihub.gamification.errors import InvalidArgumentError, NotFoundError
from unihub.gamification.leaderboard_service import (
    LeaderboardScope,
    get_member_rank,
    parse_scope,
    rank_members,
    top_members,
)


@pytest_asyncio.fixture
async def members(make_user, make_university):
    """Five members across two universities, with a points tie."""
    north = await make_university("North")
    south = await make_university("South")
    users = {
        "ana": await make_user("Ana", points=300, university_id=north.id),
        "ben": await make_user("Ben", points=150, university_id=south.id),
        "cat": await make_user("Cat", points=150, university_id=north.id),
        "dan": await make_user("Dan", points=0, university_id=north.id),
        "eli": await make_user("Eli", points=500),
    }
    return north, south, users


class TestParseScope:
    def test_case_insensitive(self) -> None:
        assert parse_scope("global") is LeaderboardScope.GLOBAL

    def test_university_alias(self) -> None:
        assert parse_scope("UNIVERSITY") is LeaderboardScope.ORGANIZATION

    def test_unknown_scope(self) -> None:
        with pytest.raises(InvalidArgumentError):
            parse_scope("COUNTRY")


class TestRankMembers:
    @pytest.mark.asyncio
    async def test_global_ordering(self, db_session, members):
        _, _, users = members
        entries = await rank_members(db_session)
        assert [e.name for e in entries] == ["Eli", "Ana", "Ben", "Cat", "Dan"]
        assert [e.rank for e in entries] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_ties_broken_by_user_id(self, db_session, members):
        _, _, users = members
        entries = await rank_members(db_session)
        tied = [e.user_id for e in entries if e.points == 150]
        assert tied == sorted([users["ben"].id, users["cat"].id])

    @pytest.mark.asyncio
    async def test_repeatable(self, db_session, members):
        first = await rank_members(db_session)
        second = await rank_members(db_session)
        assert first == second

    @pytest.mark.asyncio
    async def test_organization_scope(self, db_session, members):
        north, _, _ = members
        entries = await rank_members(db_session, "ORGANIZATION", north.id)
        assert [e.name for e in entries] == ["Ana", "Cat", "Dan"]
        assert all(e.university_id == north.id for e in entries)
        assert entries[0].rank == 1

    @pytest.mark.asyncio
    async def test_organization_requires_id(self, db_session, members):
        with pytest.raises(InvalidArgumentError):
            await rank_members(db_session, LeaderboardScope.ORGANIZATION)

    @pytest.mark.asyncio
    async def test_global_ignores_org_id(self, db_session, members):
        north, _, _ = members
        entries = await rank_members(db_session, "GLOBAL", north.id)
        assert len(entries) == 5

    @pytest.mark.asyncio
    async def test_pagination_keeps_absolute_rank(self, db_session, members):
        page = await rank_members(db_session, limit=2, offset=2)
        assert [e.rank for e in page] == [3, 4]
        assert [e.name for e in page] == ["Ben", "Cat"]

    @pytest.mark.asyncio
    async def test_badge_name_joined(self, gamification, db_session, seeded, members):
        _, _, users = members
        await gamification.award_points(users["dan"].id, 120, "EVENT")
        entries = await rank_members(db_session)
        dan = next(e for e in entries if e.user_id == users["dan"].id)
        assert dan.badge_name == "Pupil"
        assert dan.points == 120


class TestTopMembers:
    @pytest.mark.asyncio
    async def test_top_n(self, db_session, members):
        entries = await top_members(db_session, "GLOBAL", None, 3)
        assert [e.name for e in entries] == ["Eli", "Ana", "Ben"]

    @pytest.mark.asyncio
    async def test_n_larger_than_population(self, db_session, members):
        entries = await top_members(db_session, n=50)
        assert len(entries) == 5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("n", [0, -3])
    async def test_non_positive_n_is_empty(self, db_session, members, n):
        assert await top_members(db_session, n=n) == []

    @pytest.mark.asyncio
    async def test_invalid_scope_checked_before_n(self, db_session, members):
        with pytest.raises(InvalidArgumentError):
            await top_members(db_session, "ORGANIZATION", None, 0)


class TestMemberRank:
    @pytest.mark.asyncio
    async def test_global_rank(self, db_session, members):
        _, _, users = members
        assert await get_member_rank(db_session, users["eli"].id) == 1
        assert await get_member_rank(db_session, users["cat"].id) == 4

    @pytest.mark.asyncio
    async def test_organization_rank(self, db_session, members):
        north, south, users = members
        assert await get_member_rank(db_session, users["cat"].id, "ORGANIZATION", north.id) == 2
        assert await get_member_rank(db_session, users["cat"].id, "ORGANIZATION", south.id) is None

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session, members):
        with pytest.raises(NotFoundError):
            await get_member_rank(db_session, 424242)
