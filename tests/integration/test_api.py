"""HTTP tests for the public API surface."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from parkrank.errors import VoteConflictError
from parkrank.social.notification_service import create_notification
from parkrank.voting import router as voting_router


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_ready_without_redis(self, client):
        response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json() == {
            "status": "ready",
            "checks": {"database": "ok", "redis": "disabled"},
            "next_weekly_rotation": None,
        }

    @pytest.mark.asyncio
    async def test_version(self, client, settings):
        response = await client.get("/version")
        assert response.json() == {
            "version": settings.app_version,
            "environment": settings.environment,
            "calendar_timezone": "UTC",
        }

    @pytest.mark.asyncio
    async def test_request_id_header(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"


class TestVoteEndpoint:
    @pytest.mark.asyncio
    async def test_anonymous_vote(self, client, make_park):
        a = await make_park()
        b = await make_park()

        response = await client.post(
            "/api/v1/votes", json={"park1_id": a.id, "park2_id": b.id, "winner_id": a.id}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["park1"]["rating"] == 1516
        assert data["park2"]["rating"] == 1484
        assert data["unlocked_achievements"] == []
        assert data["challenges_updated"] == 0
        assert data["streak_milestone"] is None

    @pytest.mark.asyncio
    async def test_identified_vote_runs_follow_ups(self, client, make_user, make_park):
        user = await make_user()
        a = await make_park()
        b = await make_park()

        response = await client.post(
            "/api/v1/votes",
            json={"park1_id": a.id, "park2_id": b.id, "winner_id": b.id},
            headers={"X-User-Id": str(user.id)},
        )

        assert response.status_code == 200
        data = response.json()
        assert [u["code"] for u in data["unlocked_achievements"]] == ["first_vote", "favorite_number_one"]
        assert data["challenges_updated"] == 4

        streak = await client.get("/api/v1/users/me/streak", headers={"X-User-Id": str(user.id)})
        assert streak.json()["current_streak"] == 1

    @pytest.mark.asyncio
    async def test_same_park_is_rejected(self, client, make_park):
        a = await make_park()
        response = await client.post(
            "/api/v1/votes", json={"park1_id": a.id, "park2_id": a.id, "winner_id": a.id}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_non_positive_id_is_rejected(self, client):
        response = await client.post(
            "/api/v1/votes", json={"park1_id": 0, "park2_id": 2, "winner_id": 2}
        )
        assert response.status_code == 422
        assert response.json()["detail"] == "Validation error"

    @pytest.mark.asyncio
    async def test_unknown_park(self, client, make_park):
        a = await make_park()
        response = await client.post(
            "/api/v1/votes", json={"park1_id": a.id, "park2_id": 999, "winner_id": a.id}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_user_header(self, client, make_park):
        a = await make_park()
        b = await make_park()
        response = await client.post(
            "/api/v1/votes",
            json={"park1_id": a.id, "park2_id": b.id, "winner_id": a.id},
            headers={"X-User-Id": "4242"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_conflict_is_retryable(self, client, monkeypatch):
        async def always_conflicts(*args, **kwargs):
            raise VoteConflictError("busy")

        monkeypatch.setattr(voting_router, "record_vote", always_conflicts)

        response = await client.post(
            "/api/v1/votes", json={"park1_id": 1, "park2_id": 2, "winner_id": 1}
        )
        assert response.status_code == 503
        assert response.json()["retryable"] is True

    @pytest.mark.asyncio
    async def test_store_outage_is_retryable(self, client, monkeypatch):
        async def store_down(*args, **kwargs):
            raise OperationalError("UPDATE parks", {}, Exception("connection refused"))

        monkeypatch.setattr(voting_router, "record_vote", store_down)

        response = await client.post(
            "/api/v1/votes", json={"park1_id": 1, "park2_id": 2, "winner_id": 1}
        )
        assert response.status_code == 503
        assert response.json() == {"detail": "Service temporarily unavailable", "retryable": True}


class TestProgressionEndpoints:
    @pytest.mark.asyncio
    async def test_me_requires_user(self, client):
        response = await client.get("/api/v1/users/me/streak")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_achievement_catalog(self, client):
        response = await client.get("/api/v1/achievements")
        codes = [a["code"] for a in response.json()["achievements"]]
        assert codes[0] == "first_vote"
        assert len(codes) == 7

    @pytest.mark.asyncio
    async def test_my_achievements_and_next(self, client, make_user):
        user = await make_user()
        headers = {"X-User-Id": str(user.id)}

        mine = (await client.get("/api/v1/users/me/achievements", headers=headers)).json()
        assert mine["total_unlocked"] == 0
        assert mine["total_available"] == 7

        upcoming = await client.get("/api/v1/users/me/achievements/next?limit=2", headers=headers)
        assert len(upcoming.json()["achievements"]) == 2

    @pytest.mark.asyncio
    async def test_active_challenges(self, client):
        response = await client.get("/api/v1/challenges/active")
        assert response.status_code == 200
        assert len(response.json()["challenges"]) == 4

    @pytest.mark.asyncio
    async def test_my_challenges_after_vote(self, client, make_user, make_park):
        user = await make_user()
        headers = {"X-User-Id": str(user.id)}
        a = await make_park()
        b = await make_park()
        await client.post(
            "/api/v1/votes", json={"park1_id": a.id, "park2_id": b.id, "winner_id": a.id}, headers=headers
        )

        challenges = (await client.get("/api/v1/users/me/challenges", headers=headers)).json()["challenges"]
        by_code = {c["challenge"]["code"]: c for c in challenges}
        assert by_code["monthly_votes_25"]["progress"] == 1
        assert by_code["monthly_votes_25"]["progress_percentage"] == 4

        notes = await client.get("/api/v1/users/me/challenges/notifications", headers=headers)
        assert notes.json() == {"notifications": []}

    @pytest.mark.asyncio
    async def test_streak_leaderboard(self, client, make_user, make_park):
        user = await make_user("walker")
        a = await make_park()
        b = await make_park()
        await client.post(
            "/api/v1/votes",
            json={"park1_id": a.id, "park2_id": b.id, "winner_id": a.id},
            headers={"X-User-Id": str(user.id)},
        )

        entries = (await client.get("/api/v1/streaks/leaderboard")).json()["entries"]
        assert entries == [
            {"rank": 1, "user_id": user.id, "user_name": "walker", "current_streak": 1, "longest_streak": 1}
        ]


class TestWeeklyEndpoints:
    @pytest.mark.asyncio
    async def test_current_week(self, client):
        response = await client.get("/api/v1/weekly/current")
        assert response.status_code == 200
        data = response.json()
        assert data["is_active"] is True
        assert data["top_streakers"] == []

        again = await client.get("/api/v1/weekly/current")
        assert again.json()["id"] == data["id"]

    @pytest.mark.asyncio
    async def test_unknown_window_leaderboard_is_empty(self, client):
        response = await client.get("/api/v1/weekly/999/leaderboard")
        assert response.json() == {"window_id": 999, "entries": []}

    @pytest.mark.asyncio
    async def test_my_weekly_badges(self, client, make_user):
        user = await make_user()
        response = await client.get("/api/v1/users/me/weekly-badges", headers={"X-User-Id": str(user.id)})
        assert response.json() == {"badges": []}


class TestNotificationEndpoints:
    @pytest.mark.asyncio
    async def test_list_and_mark_read(self, client, db_session, make_user):
        user = await make_user()
        headers = {"X-User-Id": str(user.id)}
        notification = await create_notification(db_session, user.id, "challenge_start", "New week", "Go vote")
        await db_session.commit()

        listing = (await client.get("/api/v1/users/me/notifications", headers=headers)).json()
        assert listing["unread_count"] == 1
        assert listing["notifications"][0]["title"] == "New week"

        read = await client.post(f"/api/v1/notifications/{notification.id}/read", headers=headers)
        assert read.json() == {"success": True}

        count = await client.get("/api/v1/users/me/notifications/unread-count", headers=headers)
        assert count.json() == {"unread_count": 0}

    @pytest.mark.asyncio
    async def test_mark_missing_notification(self, client, make_user):
        user = await make_user()
        response = await client.post("/api/v1/notifications/555/read", headers={"X-User-Id": str(user.id)})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_read_all(self, client, make_user):
        user = await make_user()
        response = await client.post("/api/v1/users/me/notifications/read-all", headers={"X-User-Id": str(user.id)})
        assert response.json() == {"success": True}


class TestReferralEndpoints:
    @pytest.mark.asyncio
    async def test_invite_and_redeem_on_first_vote(self, client, make_user, make_park):
        referrer = await make_user("referrer")
        referee = await make_user("referee")
        a = await make_park()
        b = await make_park()

        invite = await client.post(
            "/api/v1/referrals",
            json={"email": "friend@example.com"},
            headers={"X-User-Id": str(referrer.id)},
        )
        assert invite.status_code == 201
        code = invite.json()["referral_code"]
        assert invite.json()["referee_email"] == "friend@example.com"

        vote = await client.post(
            "/api/v1/votes",
            json={"park1_id": a.id, "park2_id": b.id, "winner_id": a.id, "referral_code": code},
            headers={"X-User-Id": str(referee.id)},
        )
        assert vote.status_code == 200
        assert vote.json()["referral_completed"] is True

        info = await client.get("/api/v1/users/me/referrals", headers={"X-User-Id": str(referrer.id)})
        data = info.json()
        assert data["total_invites"] == 1
        assert data["completed_referrals"] == 1
        assert data["total_rewards_earned"] == 100
        assert data["referrals"][0]["status"] == "completed"

        board = await client.get("/api/v1/referrals/leaderboard", params={"limit": 5})
        assert board.json()["entries"][0]["user_id"] == referrer.id
        assert board.json()["entries"][0]["rank"] == 1

    @pytest.mark.asyncio
    async def test_bad_code_does_not_fail_the_vote(self, client, make_user, make_park):
        user = await make_user()
        a = await make_park()
        b = await make_park()

        response = await client.post(
            "/api/v1/votes",
            json={"park1_id": a.id, "park2_id": b.id, "winner_id": b.id, "referral_code": "INVALID00"},
            headers={"X-User-Id": str(user.id)},
        )

        assert response.status_code == 200
        assert response.json()["referral_completed"] is False

    @pytest.mark.asyncio
    async def test_invite_requires_user_and_email(self, client, make_user):
        user = await make_user()

        anonymous = await client.post("/api/v1/referrals", json={"email": "friend@example.com"})
        assert anonymous.status_code == 401

        malformed = await client.post(
            "/api/v1/referrals", json={"email": "not-an-email"}, headers={"X-User-Id": str(user.id)}
        )
        assert malformed.status_code == 422
