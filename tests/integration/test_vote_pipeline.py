"""Integration tests for record_vote: ratings, history, attribution, retries."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import DBAPIError

from parkrank.db.models import Park, RatingHistorySample, UserVoteAttribution, Vote
from parkrank.errors import InvalidVoteError, NotFoundError, VoteConflictError
from parkrank.voting import vote_service
from parkrank.voting.vote_service import record_vote


async def _count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


class TestRecordVote:
    @pytest.mark.asyncio
    async def test_equal_ratings_move_16(self, db_session, make_park):
        a = await make_park()
        b = await make_park()

        result = await record_vote(db_session, a.id, b.id, a.id)

        assert result.park1.rating == 1516
        assert result.park2.rating == 1484
        assert result.park1.vote_count == 1
        assert result.park2.vote_count == 1
        assert result.vote.winner_id == a.id

    @pytest.mark.asyncio
    async def test_writes_two_history_samples(self, db_session, make_park):
        a = await make_park()
        b = await make_park()

        result = await record_vote(db_session, a.id, b.id, b.id)

        samples = (await db_session.execute(
            select(RatingHistorySample).where(RatingHistorySample.vote_id == result.vote.id)
        )).scalars().all()
        assert sorted((s.park_id, s.rating) for s in samples) == sorted([(a.id, 1484.0), (b.id, 1516.0)])

    @pytest.mark.asyncio
    async def test_anonymous_vote_has_no_attribution(self, db_session, make_park):
        a = await make_park()
        b = await make_park()
        await record_vote(db_session, a.id, b.id, a.id)
        assert await _count(db_session, UserVoteAttribution) == 0

    @pytest.mark.asyncio
    async def test_user_vote_is_attributed(self, db_session, make_park, make_user):
        user = await make_user()
        a = await make_park()
        b = await make_park()

        result = await record_vote(db_session, a.id, b.id, b.id, user_id=user.id)

        attribution = (await db_session.execute(select(UserVoteAttribution))).scalar_one()
        assert attribution.user_id == user.id
        assert attribution.vote_id == result.vote.id
        assert attribution.chosen_park_id == b.id

    @pytest.mark.asyncio
    async def test_successive_votes_compound(self, db_session, make_park):
        a = await make_park()
        b = await make_park()
        await record_vote(db_session, a.id, b.id, a.id)
        result = await record_vote(db_session, a.id, b.id, a.id)

        # 1516 vs 1484: favorite wins and gains less than 16
        assert 1516 < result.park1.rating < 1532
        assert result.park1.vote_count == 2


class TestRecordVoteRejects:
    @pytest.mark.asyncio
    async def test_same_park_twice(self, db_session, make_park):
        a = await make_park()
        with pytest.raises(InvalidVoteError):
            await record_vote(db_session, a.id, a.id, a.id)
        assert await _count(db_session, Vote) == 0

    @pytest.mark.asyncio
    async def test_winner_outside_pair(self, db_session, make_park):
        a = await make_park()
        b = await make_park()
        c = await make_park()
        with pytest.raises(InvalidVoteError):
            await record_vote(db_session, a.id, b.id, c.id)

    @pytest.mark.asyncio
    async def test_unknown_park(self, db_session, make_park):
        a_id = (await make_park()).id
        with pytest.raises(NotFoundError):
            await record_vote(db_session, a_id, 999, a_id)
        assert await _count(db_session, Vote) == 0

        park = (await db_session.execute(select(Park).where(Park.id == a_id))).scalar_one()
        assert park.rating == 1500
        assert park.vote_count == 0


class TestRatingCompareAndSwap:
    @pytest.mark.asyncio
    async def test_lost_race_retries_from_fresh_read(self, db_session, make_park, monkeypatch):
        a_id = (await make_park()).id
        b_id = (await make_park()).id

        real_swap = vote_service._swap_rating
        calls: list[int] = []

        async def racing_swap(db, park, new_rating, now):
            if not calls:
                # Another writer moves the rating between our read and our write.
                await db.execute(update(Park).where(Park.id == park.id).values(rating=Park.rating + 1))
            calls.append(park.id)
            return await real_swap(db, park, new_rating, now)

        monkeypatch.setattr(vote_service, "_swap_rating", racing_swap)

        result = await record_vote(db_session, a_id, b_id, a_id)

        assert calls == [a_id, a_id, b_id]
        assert result.park1.rating == 1516
        assert await _count(db_session, Vote) == 1
        assert await _count(db_session, RatingHistorySample) == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_conflict(self, db_session, make_park, monkeypatch):
        a = await make_park()
        b = await make_park()

        async def always_lose(db, park, new_rating, now):
            return False

        monkeypatch.setattr(vote_service, "_swap_rating", always_lose)

        with pytest.raises(VoteConflictError):
            await record_vote(db_session, a.id, b.id, a.id, max_attempts=3)
        assert await _count(db_session, Vote) == 0
        assert await _count(db_session, RatingHistorySample) == 0


class _DriverError(Exception):
    def __init__(self, sqlstate: str):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


class TestRatingLockOrder:
    @pytest.mark.asyncio
    async def test_swaps_run_in_ascending_park_id_order(self, db_session, make_park, monkeypatch):
        low_id = (await make_park()).id
        high_id = (await make_park()).id

        real_swap = vote_service._swap_rating
        calls: list[int] = []

        async def recording_swap(db, park, new_rating, now):
            calls.append(park.id)
            return await real_swap(db, park, new_rating, now)

        monkeypatch.setattr(vote_service, "_swap_rating", recording_swap)

        result = await record_vote(db_session, high_id, low_id, high_id)

        assert calls == [low_id, high_id]
        assert result.park1.id == high_id
        assert result.park1.rating == 1516
        assert result.park2.rating == 1484

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sqlstate", ["40P01", "40001"])
    async def test_deadlock_or_serialization_failure_is_retried(
        self, db_session, make_park, monkeypatch, sqlstate
    ):
        a_id = (await make_park()).id
        b_id = (await make_park()).id

        real_swap = vote_service._swap_rating
        calls: list[int] = []

        async def failing_once(db, park, new_rating, now):
            calls.append(park.id)
            if len(calls) == 1:
                raise DBAPIError("UPDATE parks", {}, _DriverError(sqlstate))
            return await real_swap(db, park, new_rating, now)

        monkeypatch.setattr(vote_service, "_swap_rating", failing_once)

        result = await record_vote(db_session, a_id, b_id, b_id)

        assert calls == [a_id, a_id, b_id]
        assert result.park2.rating == 1516
        assert await _count(db_session, Vote) == 1

    @pytest.mark.asyncio
    async def test_other_database_errors_propagate(self, db_session, make_park, monkeypatch):
        a_id = (await make_park()).id
        b_id = (await make_park()).id

        async def check_violation(db, park, new_rating, now):
            raise DBAPIError("UPDATE parks", {}, _DriverError("23514"))

        monkeypatch.setattr(vote_service, "_swap_rating", check_violation)

        with pytest.raises(DBAPIError):
            await record_vote(db_session, a_id, b_id, a_id)
