#!/usr/bin/env python3
"""
Rebuild rating snapshots from stored games.

    python scripts/rebuild_ratings.py --sport ncaaf --seasons 2022 2023 2024
    python scripts/rebuild_ratings.py --sport ncaaf --seasons 2024 --sync

With --sync, each season's schedule/results and PPA are pulled from the
feed first.  Seasons are always processed oldest first so each season's
preseason prior comes from the previous season's final rating.
"""

import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from dotenv import load_dotenv
load_dotenv()

import argparse
import logging

from college_edge.services import sync
from college_edge.services.ratings import rebuild_ratings

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Rebuild team rating snapshots")
    parser.add_argument("--sport", default=os.getenv("SPORT", "ncaaf"), choices=["ncaaf", "ncaab"])
    parser.add_argument("--seasons", type=int, nargs="+", required=True)
    parser.add_argument("--sync", action="store_true", help="Pull schedule and PPA before rating")
    args = parser.parse_args()

    seasons = sorted(set(args.seasons))
    if args.sync:
        for season in seasons:
            logger.info("📥 Syncing %s %d", args.sport, season)
            games = sync.sync_games(args.sport, season)
            ppa = sync.sync_efficiency(args.sport, season)
            logger.info("   games: %d processed, %d errors; ppa: %d processed",
                        games["processed"], games["errored"], ppa["processed"])

    result = rebuild_ratings(args.sport, seasons)
    for season, summary in result["seasons"].items():
        logger.info(
            "✅ %s: %d games rated, %d skipped, %d margin-only",
            season, summary["processed"], summary["skipped"], summary.get("margin_only_games", 0),
        )
    if result["errored"]:
        logger.error("❌ %d games failed: %s", result["errored"], result["errors"][:10])
        sys.exit(1)


if __name__ == "__main__":
    main()
