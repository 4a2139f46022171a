"""Bet grading: the single cover rule and everything derived from it.

Every graded bet in the system (paper bets, backtests, API-triggered
regrades) goes through :func:`grade` or :func:`grade_total`.  Both reduce to
one signed "cover" number and one settlement function, so the home and away
sides of the same line can never disagree.

Cover rule (spread, home perspective)::

    cover = (home_score - away_score) + market_spread_home

    cover > 0  → home covers (home bet wins, away bet loses)
    cover < 0  → away covers
    cover == 0 → push for both sides

Worked example: home -5.5, final 100-93.  ``cover = 7 - 5.5 = 1.5 > 0`` so
a home bet wins and an away bet loses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from college_edge.core.odds_math import STANDARD_ODDS, win_profit
from college_edge.core.projection import AWAY, HOME, OVER, UNDER

WIN = "win"
LOSS = "loss"
PUSH = "push"
PENDING = "pending"

#: Cover values closer to zero than this settle as a push.  Lines are
#: quoted in half points, so anything this small is float noise.
PUSH_TOLERANCE = 1e-6


def _settle(cover: float) -> str:
    if abs(cover) < PUSH_TOLERANCE:
        return PUSH
    return WIN if cover > 0 else LOSS


def spread_cover(market_spread_home: float, home_score: float, away_score: float) -> float:
    """Signed home cover margin (positive = home covered)."""
    return (home_score - away_score) + market_spread_home


def grade(side: str, market_spread_home: float, home_score: float, away_score: float) -> str:
    """Grade a spread bet on ``side`` at the home-perspective line.

    Raises:
        ValueError: If ``side`` is not ``"home"`` or ``"away"``.
    """
    cover = spread_cover(market_spread_home, home_score, away_score)
    if side == HOME:
        return _settle(cover)
    if side == AWAY:
        return _settle(-cover)
    raise ValueError(f"Spread side must be 'home' or 'away', got {side!r}")


def grade_total(side: str, market_total: float, home_score: float, away_score: float) -> str:
    """Grade a totals bet on ``side`` (``"over"`` / ``"under"``)."""
    cover = (home_score + away_score) - market_total
    if side == OVER:
        return _settle(cover)
    if side == UNDER:
        return _settle(-cover)
    raise ValueError(f"Total side must be 'over' or 'under', got {side!r}")


def grade_market(market: str, side: str, line: float, home_score: float, away_score: float) -> str:
    """Dispatch to :func:`grade` or :func:`grade_total` by market name."""
    if market == "spread":
        return grade(side, line, home_score, away_score)
    if market == "total":
        return grade_total(side, line, home_score, away_score)
    raise ValueError(f"Unknown market {market!r}")


def profit_units(result: str, odds: int = STANDARD_ODDS, stake: float = 1.0) -> Optional[float]:
    """Units won or lost.  ``None`` for a pending bet."""
    if result == WIN:
        return win_profit(odds, stake)
    if result == LOSS:
        return -stake
    if result == PUSH:
        return 0.0
    if result == PENDING:
        return None
    raise ValueError(f"Unknown result {result!r}")


def clv_points(market: str, side: str, bet_point: float, close_point: float) -> float:
    """Closing line value in points; positive means the bet beat the close.

    Spread points are home-perspective: a home bettor at -3 against a -5
    close gained 2 points, an away bettor at -3 (i.e. +3) against -5 (+5)
    lost 2.
    """
    if market == "spread":
        if side == HOME:
            return bet_point - close_point
        if side == AWAY:
            return close_point - bet_point
    elif market == "total":
        if side == OVER:
            return close_point - bet_point
        if side == UNDER:
            return bet_point - close_point
    raise ValueError(f"Invalid market/side {market!r}/{side!r}")


@dataclass
class GradeSummary:
    """Aggregate record over a set of graded bets.

    ``win_rate`` ignores pushes; ``roi`` is profit over units actually at
    risk (pushes return the stake and are excluded).
    """

    bets: int = 0
    wins: int = 0
    losses: int = 0
    pushes: int = 0
    profit_units: float = 0.0
    risked_units: float = 0.0

    @property
    def decided(self) -> int:
        return self.wins + self.losses

    @property
    def win_rate(self) -> Optional[float]:
        return self.wins / self.decided if self.decided else None

    @property
    def roi(self) -> Optional[float]:
        return self.profit_units / self.risked_units if self.risked_units else None

    def to_dict(self) -> dict:
        return {
            "bets": self.bets,
            "wins": self.wins,
            "losses": self.losses,
            "pushes": self.pushes,
            "win_rate": round(self.win_rate, 4) if self.win_rate is not None else None,
            "profit_units": round(self.profit_units, 4),
            "risked_units": round(self.risked_units, 4),
            "roi": round(self.roi, 4) if self.roi is not None else None,
        }


def summarize(results: Iterable[Tuple[str, float, int]]) -> GradeSummary:
    """Summarise ``(result, stake, odds)`` triples.  Pending rows are skipped."""
    summary = GradeSummary()
    for result, stake, odds in results:
        if result == PENDING:
            continue
        summary.bets += 1
        if result == PUSH:
            summary.pushes += 1
            continue
        if result == WIN:
            summary.wins += 1
        else:
            summary.losses += 1
        summary.profit_units += profit_units(result, odds, stake)
        summary.risked_units += stake
    return summary


@dataclass
class EdgeBucket:
    low: float
    high: Optional[float]
    summary: GradeSummary = field(default_factory=GradeSummary)

    @property
    def label(self) -> str:
        return f"{self.low:g}+" if self.high is None else f"{self.low:g}-{self.high:g}"


def edge_bucket_report(
    rows: Iterable[Tuple[float, str, float, int]],
    edges: Sequence[float] = (3.0, 5.0, 8.0, 12.0),
) -> List[EdgeBucket]:
    """Win rate and ROI grouped by |edge|.

    ``rows`` are ``(edge_points, result, stake, odds)``.  Buckets are
    ``[edges[i], edges[i+1])`` with the last one open-ended; rows below
    ``edges[0]`` are ignored.  Used to check whether larger edges actually
    perform better.
    """
    buckets = [
        EdgeBucket(low=lo, high=edges[i + 1] if i + 1 < len(edges) else None)
        for i, lo in enumerate(edges)
    ]
    grouped: dict[int, list] = {i: [] for i in range(len(buckets))}
    for edge_points, result, stake, odds in rows:
        mag = abs(edge_points)
        for i, bucket in enumerate(buckets):
            if mag >= bucket.low and (bucket.high is None or mag < bucket.high):
                grouped[i].append((result, stake, odds))
                break
    for i, bucket in enumerate(buckets):
        bucket.summary = summarize(grouped[i])
    return buckets
