"""Elo rating arithmetic.

Pure functions only.  The rating engine in
:mod:`college_edge.services.rating_engine` owns ordering, persistence and the
blend with opponent-adjusted efficiency; this module owns the maths of a
single game.

Conventions
-----------
* Ratings are on the classic 400-point logistic scale centred at
  ``config.base_rating``.
* Home advantage is applied to the *home* side as ``config.home_field_elo``
  rating points, or zero on a neutral field.
* Every update is zero-sum: whatever the home team gains the away team
  loses, so the league mean never drifts.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from college_edge.core.sport_config import SportConfig


@dataclass(frozen=True)
class EloUpdate:
    """Result of a single-game Elo update.

    Attributes:
        new_home: Home rating after the game.
        new_away: Away rating after the game.
        delta: Change applied to the home team (away receives ``-delta``).
        expected_home: Pre-game expected score of the home team.
        multiplier: Margin-of-victory multiplier that scaled the update.
    """

    new_home: float
    new_away: float
    delta: float
    expected_home: float
    multiplier: float


def expected_score(
    rating_self: float,
    rating_opp: float,
    home_bonus: float = 0.0,
    divisor: float = 400.0,
) -> float:
    """Logistic expected score of ``rating_self`` against ``rating_opp``.

    ``home_bonus`` is added to ``rating_self`` and is 0 for the away team or
    on a neutral field.
    """
    return 1.0 / (1.0 + 10.0 ** ((rating_opp - rating_self - home_bonus) / divisor))


def actual_score(points_for: float, points_against: float) -> float:
    """1 for a win, 0 for a loss, 0.5 for a tie."""
    if points_for > points_against:
        return 1.0
    if points_for < points_against:
        return 0.0
    return 0.5


def margin_multiplier(margin: float, winner_elo_diff: float, config: SportConfig) -> float:
    """Margin-of-victory multiplier.

    ``log(|margin| + 1)`` damped by how heavily the winner was favoured, so a
    favourite winning big moves ratings less than an underdog winning by the
    same margin.  A tie returns 1.0.

    Args:
        margin: Final score difference (sign ignored).
        winner_elo_diff: Winner's effective pre-game rating (home bonus
            included) minus the loser's.
        config: Supplies the dampening terms and the cap.
    """
    if margin == 0:
        return 1.0
    denom = winner_elo_diff * config.mov_autocorr_slope + config.mov_autocorr_scale
    if denom <= 0:
        return config.mov_multiplier_cap
    raw = math.log(abs(margin) + 1.0) * (config.mov_autocorr_scale / denom)
    return min(raw, config.mov_multiplier_cap)


def elo_update(
    rating_home: float,
    rating_away: float,
    home_score: float,
    away_score: float,
    config: SportConfig,
    neutral: bool = False,
) -> EloUpdate:
    """Apply one game to a pair of ratings.

    ``delta = K * multiplier * (actual - expected)`` from the home side; the
    away team receives ``-delta``.
    """
    bonus = 0.0 if neutral else config.home_field_elo
    expected = expected_score(rating_home, rating_away, bonus, config.elo_divisor)
    actual = actual_score(home_score, away_score)

    effective_diff = rating_home + bonus - rating_away
    margin = home_score - away_score
    winner_diff = effective_diff if margin > 0 else -effective_diff
    mult = margin_multiplier(margin, winner_diff, config)

    delta = config.k_factor * mult * (actual - expected)
    return EloUpdate(
        new_home=rating_home + delta,
        new_away=rating_away - delta,
        delta=delta,
        expected_home=expected,
        multiplier=mult,
    )


def regress_to_mean(rating: float, config: SportConfig) -> float:
    """Carry a rating across a season boundary.

    ``carryover * rating + (1 - carryover) * base``.
    """
    keep = config.season_carryover
    return keep * rating + (1.0 - keep) * config.base_rating
