"""Pure ranking rules: weekly top streakers and achievement tiers."""

from parkrank.competition.weekly_service import BADGE_TIERS, rank_streakers, ranking_message
from parkrank.gamification.achievement_service import (
    ACHIEVEMENT_DEFINITIONS,
    VoteStats,
    achievements_due,
)


class TestRankStreakers:
    def test_ties_broken_by_user_id(self):
        ranked = rank_streakers([(30, 7, "c"), (10, 10, "a"), (20, 7, "b")])
        assert [(r.rank, r.user_id, r.current_streak) for r in ranked] == [
            (1, 10, 10),
            (2, 20, 7),
            (3, 30, 7),
        ]

    def test_only_top_three(self):
        rows = [(i, 10 - i, None) for i in range(1, 8)]
        ranked = rank_streakers(rows)
        assert [r.user_id for r in ranked] == [1, 2, 3]

    def test_zero_streaks_not_ranked(self):
        ranked = rank_streakers([(1, 0, None), (2, 4, None)])
        assert [r.user_id for r in ranked] == [2]

    def test_empty(self):
        assert rank_streakers([]) == []


class TestBadgeTiers:
    def test_icons_and_titles(self):
        assert BADGE_TIERS[1][:2] == ("\U0001f947", "Weekly Champion")
        assert BADGE_TIERS[2][2] == "\U0001f948 You're the Weekly Runner-Up!"
        assert BADGE_TIERS[3][2] == "\U0001f949 You earned a Weekly Third Place Badge!"

    def test_ranking_message(self):
        assert ranking_message(12, "Weekly Champion") == (
            "Congratulations! Your 12-day voting streak earned you a Weekly Champion badge. Keep it up!"
        )


class TestAchievementsDue:
    def test_seven_definitions(self):
        assert len(ACHIEVEMENT_DEFINITIONS) == 7
        colors = {a["color"] for a in ACHIEVEMENT_DEFINITIONS}
        assert colors <= {"yellow", "orange", "green", "purple", "blue", "cyan", "red"}

    def test_first_vote_exact(self):
        assert achievements_due(VoteStats(1, None, None)) == ["first_vote"]

    def test_vote_thresholds_are_exact(self):
        assert achievements_due(VoteStats(11, None, None)) == []
        assert achievements_due(VoteStats(50, None, None)) == ["fifty_votes"]

    def test_only_best_favorite_tier(self):
        assert achievements_due(VoteStats(3, 1, 1)) == ["favorite_number_one"]
        assert achievements_due(VoteStats(3, 1, 4)) == ["favorite_top_five"]
        assert achievements_due(VoteStats(3, 1, 10)) == ["favorite_top_ten"]
        assert achievements_due(VoteStats(3, 1, 11)) == []

    def test_vote_and_favorite_together(self):
        assert achievements_due(VoteStats(100, 2, 7)) == ["hundred_votes", "favorite_top_ten"]
