"""Tests for the walk-forward backtester."""

import dataclasses

import numpy as np
import pytest

from college_edge.core.odds_math import coinflip_roi
from college_edge.core.sport_config import SportConfig
from college_edge.services.backtest import (
    Backtester,
    BacktestLine,
    random_side_baseline,
    win_rate_z_test,
)
from college_edge.services.rating_engine import GameResult
from college_edge.services.rating_store import InMemoryRatingStore

CFG = SportConfig.college_football()


def _schedule(seed=7, weeks=6, teams=8, season=2023):
    """Round-robin-ish synthetic season with random scores."""
    rng = np.random.default_rng(seed)
    games = []
    gid = season * 1000
    for week in range(1, weeks + 1):
        order = rng.permutation(teams)
        for i in range(0, teams, 2):
            gid += 1
            games.append(GameResult(
                game_id=gid, season=season, week=week,
                home_id=int(order[i]) + 1, away_id=int(order[i + 1]) + 1,
                home_score=int(rng.integers(0, 50)), away_score=int(rng.integers(0, 50)),
            ))
    return games


# ---------------------------------------------------------------------------
# Look-ahead
# ---------------------------------------------------------------------------

def test_future_results_do_not_change_earlier_projections():
    games = _schedule()
    first = Backtester(CFG)
    first.run(games, {})
    early = [g for g in games if g.week <= 4]
    before = [first.project(g) for g in early]

    # Rewrite every week 4+ result and re-run from scratch
    mutated = [
        dataclasses.replace(g, home_score=g.away_score + 30, away_score=0) if g.week >= 4 else g
        for g in games
    ]
    second = Backtester(CFG)
    second.run(mutated, {})
    after = [second.project(g) for g in early]

    assert after == pytest.approx(before)


def test_rerun_starts_from_empty_store():
    subset = _two_week_games()[1:]
    reused = Backtester(CFG)
    reused.run(_two_week_games(), {})
    reused.run(subset, {})
    fresh = Backtester(CFG)
    fresh.run(subset, {})

    # Team 1's week 1 result is not in the subset, so week 2 is home field only
    for game in subset:
        assert reused.project(game) == pytest.approx(fresh.project(game))
    assert reused.project(subset[0]) == pytest.approx(-CFG.home_field_elo / CFG.elo_to_spread)
    assert len(reused.store) == len(fresh.store)


def test_store_factory_called_per_run():
    made = []

    def factory():
        made.append(InMemoryRatingStore())
        return made[-1]

    bt = Backtester(CFG, store_factory=factory)
    bt.run(_two_week_games(), {})
    bt.run(_two_week_games(), {})
    assert len(made) == 3
    assert bt.store is made[-1]


def test_projection_reflects_prior_weeks():
    games = _schedule()
    bt = Backtester(CFG)
    bt.run(games, {})
    week_one = [g for g in games if g.week == 1]
    # Week 1 is projected from the preseason prior: home field only
    for g in week_one:
        assert bt.project(g) == pytest.approx(-CFG.home_field_elo / CFG.elo_to_spread)


# ---------------------------------------------------------------------------
# Betting
# ---------------------------------------------------------------------------

def _two_week_games():
    return [
        GameResult(1, 2024, 1, home_id=1, away_id=2, home_score=35, away_score=0),
        GameResult(2, 2024, 2, home_id=1, away_id=2, home_score=21, away_score=20),
        GameResult(3, 2024, 2, home_id=3, away_id=4, home_score=10, away_score=13),
    ]


def test_bets_only_qualifying_edges():
    # After week 1, team 1 projects about -2.7 at home; a +1 line is a 3.7 edge
    lines = {2: BacktestLine(close=1.0), 3: BacktestLine(close=-2.0)}
    report = Backtester(CFG, min_edge=3.0).run(_two_week_games(), lines)

    assert report.summary.bets == 1
    bet = report.bets[0]
    assert bet.game_id == 2
    assert bet.side == "home"
    assert bet.edge_points < -3.0
    assert bet.result == "win"           # 1 + 1.0 > 0
    assert report.games_projected == 3
    assert report.spread_mae is not None


def test_games_without_lines_are_not_bet():
    report = Backtester(CFG, min_edge=0.1).run(_two_week_games(), {})
    assert report.summary.bets == 0
    assert report.summary.roi is None


def test_open_line_source():
    lines = {2: BacktestLine(close=-10.0, open=1.0)}
    close = Backtester(CFG, min_edge=3.0).run(_two_week_games(), lines)
    opened = Backtester(CFG, min_edge=3.0, line_source="open").run(_two_week_games(), lines)
    assert close.bets[0].side == "away"
    assert opened.bets[0].side == "home"


def test_seasons_filter():
    games = _schedule(season=2022) + _schedule(season=2023, seed=8)
    lines = {g.game_id: BacktestLine(close=0.0) for g in games}
    report = Backtester(CFG, min_edge=0.0).run(games, lines, seasons=[2023])
    assert {b.season for b in report.bets} <= {2023}


def test_report_to_dict():
    lines = {2: BacktestLine(close=1.0)}
    out = Backtester(CFG).run(_two_week_games(), lines).to_dict()
    assert set(out) >= {"summary", "by_season", "edge_buckets", "by_spread_size", "z_score", "p_value"}
    assert list(out["by_spread_size"]) == ["0-7", "7-14", "14+"]
    assert out["edge_buckets"][0]["edge"].startswith("3")


def test_bad_line_source():
    with pytest.raises(ValueError):
        BacktestLine(close=1.0).pick("mid")


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

def test_z_test():
    assert win_rate_z_test(0, 0) == (None, None)
    z, p = win_rate_z_test(60, 100)
    assert z > 0
    assert 0 < p < 0.5
    z, p = win_rate_z_test(40, 100)
    assert z < 0 and p > 0.5


def _random_games(n=4380, seed=3):
    rng = np.random.default_rng(seed)
    lines = rng.integers(-20, 20, n) + 0.5         # half-point lines never push
    home = rng.integers(0, 60, n)
    away = rng.integers(0, 60, n)
    return [(float(l), int(h), int(a)) for l, h, a in zip(lines, home, away)]


def _home_cover_games(n=4380, seed=3):
    """Half-point lines where the home side covers every time."""
    rng = np.random.default_rng(seed)
    steps = rng.integers(-20, 20, n)
    away = rng.integers(20, 50, n)
    # line = k + 0.5 is covered by any home margin of at least -k
    margin = -steps + rng.integers(0, 7, n)
    return [(float(k) + 0.5, int(a + m), int(a)) for k, a, m in zip(steps, away, margin)]


def test_random_side_baseline_loses_the_vig():
    games = _home_cover_games()
    assert all(h - a + line > 0 for line, h, a in games)

    result = random_side_baseline(games, seed=11)
    assert result.bets == 4380
    assert result.pushes == 0
    assert 0.48 <= result.win_rate <= 0.52
    assert -0.065 <= result.roi <= -0.025
    # With no pushes ROI is fully determined by the win rate
    assert result.roi == pytest.approx(result.win_rate * (1 + 100 / 110) - 1, abs=1e-9)
    assert result.roi == pytest.approx(coinflip_roi())


def test_random_side_baseline_splits_sides_evenly():
    games = _random_games()
    result = random_side_baseline(games, seed=11)
    assert result.bets == 4380
    assert result.pushes == 0
    # Even split of 4380 picks: the win rate spread is about 0.0076
    assert abs(result.win_rate - 0.5) < 0.04
    assert result.roi == pytest.approx(result.win_rate * (1 + 100 / 110) - 1, abs=1e-9)


@pytest.mark.parametrize("n", [1, 7, 200])
def test_random_side_baseline_odd_counts(n):
    # Every game a home cover: wins count the home picks
    games = [(-3.5, 30, 10)] * n
    result = random_side_baseline(games, seed=2)
    assert result.wins == n // 2
    assert result.losses == n - n // 2


def test_random_side_baseline_reproducible():
    games = _random_games(200)
    a = random_side_baseline(games, seed=5)
    b = random_side_baseline(games, seed=5)
    assert (a.wins, a.losses) == (b.wins, b.losses)
