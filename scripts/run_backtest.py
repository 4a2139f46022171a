#!/usr/bin/env python3
"""
Walk-forward spread backtest over stored games and lines.

    python scripts/run_backtest.py --seasons 2023 2024 --min-edge 3
    python scripts/run_backtest.py --seasons 2024 --line-source open --random-baseline

Prints the overall record, per-season results, the edge-bucket table and
the spread-size breakdown.  If larger edges perform worse than smaller
ones, that shows up in the bucket table; it is reported, not corrected.
"""

import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from dotenv import load_dotenv
load_dotenv()

import argparse
import json
import logging

from college_edge.core.sport_config import SportConfig
from college_edge.models import Game, SessionLocal
from college_edge.services.backtest import Backtester, BacktestLine, random_side_baseline
from college_edge.services.market_lines import line_summary
from college_edge.services.ratings import load_game_results

logging.basicConfig(level=logging.INFO, format='%(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def _fmt(summary: dict) -> str:
    wr = f"{summary['win_rate']:.1%}" if summary["win_rate"] is not None else "n/a"
    roi = f"{summary['roi']:+.2%}" if summary["roi"] is not None else "n/a"
    return f"{summary['wins']}-{summary['losses']}-{summary['pushes']}  win {wr}  ROI {roi}"


def main():
    parser = argparse.ArgumentParser(description="Run a walk-forward spread backtest")
    parser.add_argument("--sport", default=os.getenv("SPORT", "ncaaf"), choices=["ncaaf", "ncaab"])
    parser.add_argument("--seasons", type=int, nargs="+", required=True)
    parser.add_argument("--min-edge", type=float, default=None)
    parser.add_argument("--line-source", choices=["open", "close"], default="close")
    parser.add_argument("--random-baseline", action="store_true")
    parser.add_argument("--json", action="store_true", help="Print the raw report as JSON")
    args = parser.parse_args()

    seasons = sorted(set(args.seasons))
    config = SportConfig.for_sport(args.sport)

    db = SessionLocal()
    try:
        games = load_game_results(db, args.sport, range(seasons[0] - 1, seasons[-1] + 1))
        rows = {g.id: g for g in db.query(Game).filter(Game.id.in_([r.game_id for r in games]))}
        lines = {}
        for result in games:
            summary = line_summary(db, rows[result.game_id], "spread", "home")
            if summary["close"] is not None or summary["open"] is not None:
                lines[result.game_id] = BacktestLine(close=summary["close"], open=summary["open"])
    finally:
        db.close()

    logger.info("📊 %d games loaded, %d with lines", len(games), len(lines))
    report = Backtester(config, min_edge=args.min_edge, line_source=args.line_source).run(
        games, lines, seasons=seasons
    )
    out = report.to_dict()

    if args.json:
        print(json.dumps(out, indent=2))
        return

    print(f"\nOverall ({args.line_source} lines): {_fmt(out['summary'])}")
    print(f"z={out['z_score']}  p={out['p_value']}  spread MAE={out['spread_mae']}")
    print("\nBy season:")
    for season, summary in out["by_season"].items():
        print(f"  {season}: {_fmt(summary)}")
    print("\nBy edge bucket:")
    for bucket in out["edge_buckets"]:
        print(f"  {bucket['edge']:>8}: {bucket['bets']:>4} bets  {_fmt(bucket)}")
    print("\nBy market spread size:")
    for label, summary in out["by_spread_size"].items():
        print(f"  {label:>5}: {_fmt(summary)}")

    if args.random_baseline:
        sample = [
            (lines[g.game_id].pick(args.line_source), g.home_score, g.away_score)
            for g in games
            if g.season in seasons and g.is_final and g.game_id in lines
            and lines[g.game_id].pick(args.line_source) is not None
        ]
        baseline = random_side_baseline(sample, seed=42)
        print(f"\nRandom-side baseline ({len(sample)} games): {_fmt(baseline.to_dict())}")


if __name__ == "__main__":
    main()
