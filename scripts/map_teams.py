#!/usr/bin/env python3
"""
Team-name reconciliation helper.

Lists every feed name the resolver could not match, with its best guess,
and optionally confirms guesses as aliases.

    python scripts/map_teams.py                      # list
    python scripts/map_teams.py --accept-above 80    # alias every guess scoring >= 80
    python scripts/map_teams.py --check-odds         # resolve today's Odds API names
"""

import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from dotenv import load_dotenv
load_dotenv()

import argparse
import logging

from college_edge.core.sport_config import SportConfig
from college_edge.models import SessionLocal, Team, UnresolvedTeam
from college_edge.services.odds import OddsAPIClient
from college_edge.services.team_mapping import TeamResolver, add_alias, record_unresolved

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def check_odds_names(db, sport: str):
    """Resolve every team name currently on The Odds API board."""
    try:
        client = OddsAPIClient()
    except ValueError as e:
        print(f"❌ Error: {e}")
        return
    events = client.get_odds(SportConfig.for_sport(sport).odds_api_sport_key)
    names = {e["home_team"] for e in events} | {e["away_team"] for e in events}
    resolver = TeamResolver.from_db(db, sport)
    results, unresolved = resolver.resolve_many(names)
    for name in sorted(results):
        r = results[name]
        mark = "✅" if r.resolved else "❌"
        print(f"{mark} {name:40} -> {r.name or r.best_guess} ({r.strategy}, {r.score:.0f})")
    for r in unresolved:
        record_unresolved(db, sport, "odds_api", r)
    db.commit()


def main():
    parser = argparse.ArgumentParser(description="Reconcile unresolved team names")
    parser.add_argument("--sport", default=os.getenv("SPORT", "ncaaf"), choices=["ncaaf", "ncaab"])
    parser.add_argument("--accept-above", type=float, default=None,
                        help="Confirm best guesses scoring at least this as aliases")
    parser.add_argument("--check-odds", action="store_true")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        if args.check_odds:
            check_odds_names(db, args.sport)

        rows = (
            db.query(UnresolvedTeam)
            .filter(UnresolvedTeam.sport == args.sport)
            .order_by(UnresolvedTeam.occurrences.desc())
            .all()
        )
        if not rows:
            print("✅ No unresolved team names")
            return

        print(f"🔍 {len(rows)} unresolved names")
        print("-" * 50)
        accepted = 0
        for row in rows:
            print(f"'{row.name}' [{row.source}] x{row.occurrences}: best guess "
                  f"'{row.best_guess}' ({row.best_score or 0:.0f})")
            if args.accept_above is not None and row.best_guess and (row.best_score or 0) >= args.accept_above:
                team = db.query(Team).filter(Team.sport == args.sport, Team.name == row.best_guess).first()
                if team:
                    add_alias(db, args.sport, row.name, team.id)
                    accepted += 1
        db.commit()
        if accepted:
            print(f"✅ {accepted} aliases added")
    finally:
        db.close()


if __name__ == "__main__":
    main()
