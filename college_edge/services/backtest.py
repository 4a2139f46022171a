"""Walk-forward backtester.

Each run rebuilds ratings from scratch into a new snapshot store, then
every game is projected from :meth:`RatingEngine.prior_rating`, which only
sees snapshots strictly before the game's week.  Because each weekly
snapshot depends only on earlier games, building the whole history first
and projecting afterwards is equivalent to stepping week by week, and no
projection can see its own result or anything later.

The report includes an edge-bucket table.  In historical runs the largest
edges have tended to perform worst; the table exists to surface that, not
to correct it.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from scipy.stats import norm

from college_edge.core import grading, projection as proj
from college_edge.core.odds_math import STANDARD_ODDS, breakeven_win_rate
from college_edge.core.sport_config import SportConfig
from college_edge.services.rating_engine import GameResult, RatingEngine, rating_week
from college_edge.services.rating_store import InMemoryRatingStore, RatingStore

logger = logging.getLogger(__name__)

#: |market spread| boundaries for the spread-size breakdown.
SPREAD_SIZE_BUCKETS: Tuple[Tuple[str, float, Optional[float]], ...] = (
    ("0-7", 0.0, 7.0),
    ("7-14", 7.0, 14.0),
    ("14+", 14.0, None),
)


@dataclass(frozen=True)
class BacktestLine:
    """Market spread (home perspective) at open and close."""

    close: Optional[float]
    open: Optional[float] = None

    def pick(self, source: str) -> Optional[float]:
        if source == "open":
            return self.open
        if source == "close":
            return self.close
        raise ValueError(f"line source must be 'open' or 'close', got {source!r}")


@dataclass
class BacktestBet:
    game_id: int
    season: int
    week: int
    side: str
    line: float
    predicted_spread: float
    edge_points: float
    result: str
    profit_units: float
    actual_margin: int


@dataclass
class BacktestReport:
    summary: grading.GradeSummary
    by_season: Dict[int, grading.GradeSummary]
    edge_buckets: List[grading.EdgeBucket]
    by_spread_size: Dict[str, grading.GradeSummary]
    z_score: Optional[float]
    p_value: Optional[float]
    spread_mae: Optional[float]
    games_projected: int
    bets: List[BacktestBet] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "summary": self.summary.to_dict(),
            "by_season": {str(k): v.to_dict() for k, v in sorted(self.by_season.items())},
            "edge_buckets": [{"edge": b.label, **b.summary.to_dict()} for b in self.edge_buckets],
            "by_spread_size": {k: v.to_dict() for k, v in self.by_spread_size.items()},
            "z_score": round(self.z_score, 3) if self.z_score is not None else None,
            "p_value": round(self.p_value, 4) if self.p_value is not None else None,
            "spread_mae": round(self.spread_mae, 3) if self.spread_mae is not None else None,
            "games_projected": self.games_projected,
        }


def win_rate_z_test(wins: int, decided: int, odds: int = STANDARD_ODDS) -> Tuple[Optional[float], Optional[float]]:
    """One-sided z-test of a win rate against the breakeven rate at ``odds``."""
    if decided == 0:
        return None, None
    p0 = breakeven_win_rate(odds)
    z = (wins / decided - p0) / math.sqrt(p0 * (1 - p0) / decided)
    return z, float(norm.sf(z))


def _summarize_bets(bets: Iterable[BacktestBet], stake: float, odds: int) -> grading.GradeSummary:
    return grading.summarize((b.result, stake, odds) for b in bets)


class Backtester:
    def __init__(
        self,
        config: SportConfig,
        min_edge: Optional[float] = None,
        stake: float = 1.0,
        odds: int = STANDARD_ODDS,
        line_source: str = "close",
        store_factory: Callable[[], RatingStore] = InMemoryRatingStore,
    ) -> None:
        self.config = config
        self.min_edge = config.min_edge_spread if min_edge is None else min_edge
        self.stake = stake
        self.odds = odds
        self.line_source = line_source
        self.store_factory = store_factory
        self.store = store_factory()
        self.engine = RatingEngine(self.store, config)

    def project(self, game: GameResult) -> float:
        """Point-in-time model spread for one game."""
        rw = rating_week(game.week)
        ratings = self.engine.ratings_before((game.home_id, game.away_id), game.season, rw)
        return proj.project_spread(
            ratings[game.home_id], ratings[game.away_id], self.config, neutral=game.neutral
        )

    def run(
        self,
        games: Sequence[GameResult],
        lines: Mapping[int, BacktestLine],
        seasons: Optional[Iterable[int]] = None,
    ) -> BacktestReport:
        """Rebuild ratings over ``games`` and bet every qualifying edge.

        ``seasons`` restricts which seasons are bet; every supplied season is
        still rated so later seasons inherit their priors.
        """
        # Every run rates from an empty store
        self.store = self.store_factory()
        self.engine = RatingEngine(self.store, self.config)
        self.engine.rebuild(games)
        wanted = set(seasons) if seasons is not None else None

        bets: List[BacktestBet] = []
        abs_errors: List[float] = []
        projected = 0
        for game in sorted(games, key=GameResult.sort_key):
            if wanted is not None and game.season not in wanted:
                continue
            if not game.is_final:
                continue
            predicted = self.project(game)
            projected += 1
            margin = game.home_score - game.away_score
            abs_errors.append(abs(predicted + margin))

            line_info = lines.get(game.game_id)
            line = line_info.pick(self.line_source) if line_info else None
            if line is None:
                continue
            edge = proj.spread_edge(line, predicted)
            if not proj.is_bettable(edge, self.min_edge):
                continue
            result = grading.grade(edge.side, line, game.home_score, game.away_score)
            bets.append(BacktestBet(
                game_id=game.game_id,
                season=game.season,
                week=game.week,
                side=edge.side,
                line=line,
                predicted_spread=predicted,
                edge_points=edge.edge_points,
                result=result,
                profit_units=grading.profit_units(result, self.odds, self.stake),
                actual_margin=margin,
            ))

        return self._report(bets, abs_errors, projected)

    def _report(self, bets: List[BacktestBet], abs_errors: List[float], projected: int) -> BacktestReport:
        summary = _summarize_bets(bets, self.stake, self.odds)

        seasons: Dict[int, List[BacktestBet]] = defaultdict(list)
        for bet in bets:
            seasons[bet.season].append(bet)
        by_season = {s: _summarize_bets(b, self.stake, self.odds) for s, b in seasons.items()}

        buckets = grading.edge_bucket_report(
            [(b.edge_points, b.result, self.stake, self.odds) for b in bets],
            edges=sorted({self.min_edge, self.config.tier_medium, self.config.tier_high, 12.0}),
        )

        by_size = {}
        for label, lo, hi in SPREAD_SIZE_BUCKETS:
            members = [b for b in bets if abs(b.line) >= lo and (hi is None or abs(b.line) < hi)]
            by_size[label] = _summarize_bets(members, self.stake, self.odds)

        z, p = win_rate_z_test(summary.wins, summary.decided, self.odds)
        mae = float(np.mean(abs_errors)) if abs_errors else None

        logger.info(
            "Backtest: %d bets, %d-%d-%d, ROI %s, z=%s",
            summary.bets, summary.wins, summary.losses, summary.pushes,
            f"{summary.roi:.3%}" if summary.roi is not None else "n/a",
            f"{z:.2f}" if z is not None else "n/a",
        )
        return BacktestReport(summary, by_season, buckets, by_size, z, p, mae, projected, bets)


def random_side_baseline(
    games: Sequence[Tuple[float, int, int]],
    seed: int = 0,
    odds: int = STANDARD_ODDS,
    stake: float = 1.0,
) -> grading.GradeSummary:
    """Bet a random side of every ``(line, home, away)`` game.

    Half the games (rounded down) are bet on the home side and the rest on
    the away side, in random order, so the side mix is always even.  With
    no skill the ROI should sit near the vig (-4.55% at -110).
    """
    rng = np.random.default_rng(seed)
    home_side = rng.permutation(len(games)) < len(games) // 2
    rows = []
    for pick_home, (line, home, away) in zip(home_side, games):
        side = proj.HOME if pick_home else proj.AWAY
        rows.append((grading.grade(side, line, home, away), stake, odds))
    return grading.summarize(rows)
