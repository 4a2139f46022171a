"""
Database-facing rating jobs.

Loads final games (with their per-team efficiency rows) from the database,
runs them through :class:`RatingEngine` into a :class:`SqlRatingStore`, and
answers "which week is it" for the scheduler.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from college_edge.core.sport_config import SportConfig
from college_edge.models import Game, GameEfficiency, SessionLocal, GAME_SCHEDULED
from college_edge.services.rating_engine import GameResult, RatingEngine, TeamEfficiency
from college_edge.services.rating_store import SqlRatingStore

logger = logging.getLogger(__name__)


def load_game_results(db: Session, sport: str, seasons: Iterable[int]) -> List[GameResult]:
    """Every game of ``seasons`` as engine DTOs, efficiency attached."""
    seasons = list(seasons)
    games = db.query(Game).filter(Game.sport == sport, Game.season.in_(seasons)).all()
    eff: Dict[tuple, GameEfficiency] = {
        (e.game_id, e.team_id): e
        for e in db.query(GameEfficiency).filter(GameEfficiency.game_id.in_([g.id for g in games]))
    }

    def _eff(game_id: int, team_id: int) -> Optional[TeamEfficiency]:
        row = eff.get((game_id, team_id))
        return TeamEfficiency(row.offense_ppa, row.defense_ppa) if row else None

    return [
        GameResult(
            game_id=g.id,
            season=g.season,
            week=g.week,
            home_id=g.home_team_id,
            away_id=g.away_team_id,
            home_score=g.home_score,
            away_score=g.away_score,
            start_date=g.start_date,
            neutral=bool(g.neutral_site),
            status=g.status,
            home_eff=_eff(g.id, g.home_team_id),
            away_eff=_eff(g.id, g.away_team_id),
        )
        for g in games
    ]


def rebuild_ratings(sport: str, seasons: Iterable[int], db: Optional[Session] = None) -> Dict:
    """Recompute snapshots for ``seasons`` (oldest first) and commit.

    Seasons are rebuilt in full, so running this twice writes identical
    snapshots.
    """
    seasons = sorted(set(seasons))
    logger.info("Rebuilding %s ratings for seasons %s", sport, seasons)
    owned = db is None
    db = db or SessionLocal()
    try:
        config = SportConfig.for_sport(sport)
        store = SqlRatingStore(db, sport)
        engine = RatingEngine(store, config)
        results = load_game_results(db, sport, seasons)
        for season in seasons:
            store.delete_season(season)
        summaries = [engine.process_season(s, [g for g in results if g.season == s]) for s in seasons]
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        if owned:
            db.close()

    out = {
        "job": "rebuild_ratings",
        "seasons": {str(s.job.split("_")[-1]): s.to_dict() for s in summaries},
        "processed": sum(s.processed for s in summaries),
        "skipped": sum(s.skipped for s in summaries),
        "errored": sum(s.errored for s in summaries),
        "errors": [e for s in summaries for e in s.errors],
        "timestamp": datetime.utcnow().isoformat(),
    }
    logger.info("Rebuild done: %d games rated", out["processed"])
    return out


def current_week(db: Session, sport: str, now: Optional[datetime] = None) -> Optional[tuple]:
    """``(season, week)`` of the next scheduled game, or ``None``."""
    now = now or datetime.utcnow()
    game = (
        db.query(Game)
        .filter(Game.sport == sport, Game.status == GAME_SCHEDULED, Game.start_date >= now)
        .order_by(Game.start_date.asc())
        .first()
    )
    return (game.season, game.week) if game else None
