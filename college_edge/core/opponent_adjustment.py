"""Opponent-adjusted efficiency and the blended rating update.

Raw predicted-points-added (PPA) per play flatters teams that played weak
schedules.  Each team's offensive and defensive PPA is shifted by the
opponent's pre-game strength, the two adjusted net values are compared, and
the difference becomes a rating delta that is blended with the plain Elo
margin delta.

All strengths come from ratings *before* the game being processed; the
rating engine is responsible for that ordering.
"""

from __future__ import annotations

from typing import Iterable, Optional

from college_edge.core.sport_config import SportConfig


def _clamp(value: float, limit: float) -> float:
    return max(-limit, min(limit, value))


def league_average(ratings: Iterable[float], config: SportConfig) -> float:
    """Mean of the supplied prior ratings, ``base_rating`` when empty."""
    values = list(ratings)
    if not values:
        return config.base_rating
    return sum(values) / len(values)


def adjust(
    team_off: Optional[float],
    team_def: Optional[float],
    opp_off: Optional[float],
    opp_def: Optional[float],
    opp_prior_rating: float,
    league_avg_rating: float,
    config: SportConfig,
) -> Optional[float]:
    """Opponent-adjusted net efficiency for one team in one game.

    A strong opponent makes offensive production worth more and defensive
    PPA allowed worth less::

        strength = (opp_prior - league_avg) / opp_strength_scale
        adj_off  = off + strength * opp_strength_weight
        adj_def  = def - strength * opp_strength_weight
        net      = adj_off - adj_def

    The opponent's own metrics only gate the calculation: the game is
    adjusted when both sides reported PPA.

    Returns:
        The adjusted net value, or ``None`` when any metric is missing.
    """
    if None in (team_off, team_def, opp_off, opp_def):
        return None
    strength = (opp_prior_rating - league_avg_rating) / config.opp_strength_scale
    adj_off = team_off + strength * config.opp_strength_weight
    adj_def = team_def - strength * config.opp_strength_weight
    return adj_off - adj_def


def ppa_delta(home_net: float, away_net: float, config: SportConfig) -> float:
    """Rating delta implied by the adjusted PPA differential (home side)."""
    diff = _clamp(home_net - away_net, config.ppa_diff_cap)
    return _clamp(diff * config.ppa_scale, config.max_update)


def blended_update(ppa_diff_delta: float, margin_delta: float, config: SportConfig) -> float:
    """Blend the PPA delta with the Elo margin delta, capped at ``max_update``."""
    blended = (
        config.ppa_weight * _clamp(ppa_diff_delta, config.max_update)
        + config.margin_weight * _clamp(margin_delta, config.max_update)
    )
    return _clamp(blended, config.max_update)


def fallback_update(margin_delta: float, config: SportConfig) -> float:
    """Update used when PPA is unavailable for either side."""
    return config.fallback_margin_weight * _clamp(margin_delta, config.max_update)
