"""Elo rating update for a single pairwise vote.

Pure arithmetic, no I/O. Both new ratings are rounded independently, so the
pair's rating sum may drift by at most one point per vote.
"""

from __future__ import annotations

from parkrank.utils import round_half_up

K_FACTOR = 32
DEFAULT_RATING = 1500.0


def expected_score(rating: float, opponent_rating: float) -> float:
    """Probability that ``rating`` beats ``opponent_rating``.

    E = 1 / (1 + 10^((opponent - rating) / 400))
    """
    return 1.0 / (1.0 + 10 ** ((opponent_rating - rating) / 400.0))


def calculate_elo_ratings(rating_a: float, rating_b: float, winner_is_a: bool) -> tuple[int, int]:
    """Return (new_a, new_b) after one match.

    1500 vs 1500 with A winning -> (1516, 1484).
    """
    expected_a = expected_score(rating_a, rating_b)
    expected_b = expected_score(rating_b, rating_a)

    actual_a = 1 if winner_is_a else 0
    actual_b = 1 - actual_a

    new_a = round_half_up(rating_a + K_FACTOR * (actual_a - expected_a))
    new_b = round_half_up(rating_b + K_FACTOR * (actual_b - expected_b))
    return new_a, new_b
