"""Model spreads and totals, and the one place edge signs are decided.

Sign conventions
----------------
* Spreads are always quoted from the **home** team's perspective.  A
  negative spread means the home team is favoured (``-6.5`` = home gives
  6.5 points).
* ``edge = predicted - market``.  A negative edge means the model likes the
  home side more than the market does, so the recommendation is ``home``;
  positive means ``away``; exactly zero means no side.
* Totals edge is also ``predicted - market``: positive is ``over``.

:func:`spread_edge` and :func:`total_edge` are the only functions that map
an edge to a side.  Everything downstream reads ``EdgeResult.side``.

Uncertainty
-----------
Early-season ratings are noisier, so each game carries an uncertainty in
``[0, uncertainty_cap]``.  The raw edge is stored as computed; the
bettability gate and the confidence tier use the effective edge
``edge * (1 - uncertainty)`` and reject games above the week's maximum
uncertainty.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from college_edge.core.sport_config import SportConfig

HOME = "home"
AWAY = "away"
OVER = "over"
UNDER = "under"

TIER_NONE = "none"
TIER_LOW = "low"
TIER_MEDIUM = "medium"
TIER_HIGH = "high"

_TIERS = (TIER_NONE, TIER_LOW, TIER_MEDIUM, TIER_HIGH)


@dataclass(frozen=True)
class EdgeResult:
    """Difference between a model number and a market number.

    Attributes:
        market: ``"spread"`` or ``"total"``.
        edge_points: ``predicted - market_line``.
        side: Recommended side, or ``None`` when the edge is exactly zero.
    """

    market: str
    edge_points: float
    side: Optional[str]

    @property
    def magnitude(self) -> float:
        return abs(self.edge_points)


def project_spread(
    rating_home: float,
    rating_away: float,
    config: SportConfig,
    neutral: bool = False,
) -> float:
    """Home-perspective model spread.

    ``-((rating_home - rating_away) + home_field_elo) / elo_to_spread``.

    Example: 1600 vs 1500 with 55 points of home field and 25 points per
    point of spread gives ``-6.2``.
    """
    bonus = 0.0 if neutral else config.home_field_elo
    return -((rating_home - rating_away) + bonus) / config.elo_to_spread


def spread_edge(market_spread_home: float, predicted_spread_home: float) -> EdgeResult:
    """Edge of the model spread against the market spread."""
    edge = predicted_spread_home - market_spread_home
    if edge < 0:
        side = HOME
    elif edge > 0:
        side = AWAY
    else:
        side = None
    return EdgeResult(market="spread", edge_points=edge, side=side)


def project_total(baseline: float, adjustments: Optional[Mapping[str, float]] = None) -> float:
    """Baseline total plus named additive adjustments (pace, weather, ...)."""
    return baseline + sum((adjustments or {}).values())


@dataclass(frozen=True)
class ScoringProfile:
    """Average points scored and allowed per game over a team's finals."""

    points_for: float
    points_against: float
    games: int = 0

    @classmethod
    def neutral(cls, baseline: float) -> ScoringProfile:
        """Profile of a team with no finals yet: half the baseline each way."""
        return cls(points_for=baseline / 2, points_against=baseline / 2)


def matchup_total_adjustment(home: ScoringProfile, away: ScoringProfile, baseline: float) -> float:
    """Offense/defense blend of two scoring profiles, relative to ``baseline``.

    Each side is expected to score the mean of its own points for and the
    opponent's points against; the adjustment is the sum of both minus the
    baseline.  Two neutral profiles give ``0.0``.
    """
    home_expected = (home.points_for + away.points_against) / 2
    away_expected = (away.points_for + home.points_against) / 2
    return home_expected + away_expected - baseline


def total_edge(market_total: float, predicted_total: float) -> EdgeResult:
    """Edge of the model total against the market total."""
    edge = predicted_total - market_total
    if edge > 0:
        side = OVER
    elif edge < 0:
        side = UNDER
    else:
        side = None
    return EdgeResult(market="total", edge_points=edge, side=side)


def week_uncertainty(week: int, config: SportConfig) -> float:
    """Model uncertainty from how early in the season the game is."""
    if week <= 1:
        return config.uncertainty_early
    if week <= 4:
        return config.uncertainty_mid
    return config.uncertainty_late


def game_uncertainty(week: int, config: SportConfig, data_complete: bool = True) -> float:
    """Week uncertainty plus the incomplete-data penalty, capped."""
    u = week_uncertainty(week, config)
    if not data_complete:
        u += config.uncertainty_incomplete
    return min(u, config.uncertainty_cap)


def max_uncertainty(week: int, config: SportConfig) -> float:
    return config.max_uncertainty_early if week <= 4 else config.max_uncertainty_late


def effective_edge(edge_points: float, uncertainty: float) -> float:
    """``edge_points * (1 - uncertainty)``; the sign is kept."""
    return edge_points * (1.0 - uncertainty)


def is_bettable(
    edge: EdgeResult,
    min_edge: float,
    uncertainty: float = 0.0,
    uncertainty_limit: Optional[float] = None,
) -> bool:
    """True when the edge has a side and its effective size clears ``min_edge``.

    The effective size is the raw magnitude shrunk by ``uncertainty``.  When
    ``uncertainty_limit`` is given, a game above it is never bettable.
    """
    if edge.side is None:
        return False
    if uncertainty_limit is not None and uncertainty > uncertainty_limit:
        return False
    return abs(effective_edge(edge.edge_points, uncertainty)) >= min_edge


def line_movement_agrees(
    side: str,
    open_point: Optional[float],
    current_point: Optional[float],
    threshold: float,
) -> Optional[bool]:
    """Did the market move toward ``side`` by at least ``threshold``?

    Spread points are home-perspective, so a falling line is movement toward
    the home side.  Total points rising is movement toward the over.
    Returns ``None`` when either point is unknown.
    """
    if open_point is None or current_point is None:
        return None
    move = current_point - open_point
    if side in (HOME, UNDER):
        toward = -move
    elif side in (AWAY, OVER):
        toward = move
    else:
        raise ValueError(f"Unknown side {side!r}")
    return toward >= threshold


def confidence_tier(
    edge_magnitude: float,
    config: SportConfig,
    min_edge: Optional[float] = None,
    movement_agrees: Optional[bool] = None,
    data_complete: bool = True,
) -> str:
    """Informational confidence bucket for an edge.

    Buckets by magnitude (``none`` below the floor, then ``low``,
    ``medium``, ``high``), moves up one tier when line movement agrees and
    down one when inputs were incomplete.  Never above ``high`` and never
    promotes a ``none``.
    """
    floor = config.min_edge_spread if min_edge is None else min_edge
    if edge_magnitude < floor:
        return TIER_NONE
    if edge_magnitude >= config.tier_high:
        idx = 3
    elif edge_magnitude >= config.tier_medium:
        idx = 2
    else:
        idx = 1
    if movement_agrees:
        idx = min(idx + 1, 3)
    if not data_complete:
        idx = max(idx - 1, 1)
    return _TIERS[idx]
