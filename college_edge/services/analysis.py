"""
Projection and edge materialisation.

For every scheduled game in a week: read both teams' ratings as of the week
(point-in-time, from the snapshot store), project the spread and total,
compare with the current market consensus, store a ``Projection`` row and
open a pending paper bet when the edge clears the floor.
"""

import logging
import os
from dataclasses import replace
from datetime import datetime
from typing import Dict, Mapping, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from college_edge.core import projection as proj
from college_edge.core.batch import BatchSummary
from college_edge.core.sport_config import MODEL_VERSION, SportConfig
from college_edge.models import Game, Projection, SessionLocal, GAME_FINAL, GAME_SCHEDULED
from college_edge.services.bet_tracker import DuplicateBetError, make_event_id, place_bet
from college_edge.services.market_lines import line_summary
from college_edge.services.rating_engine import RatingEngine, rating_week
from college_edge.services.rating_store import SqlRatingStore

logger = logging.getLogger(__name__)


def _config(sport: str) -> SportConfig:
    cfg = SportConfig.for_sport(sport)
    overrides = {}
    if os.getenv("MIN_EDGE_SPREAD"):
        overrides["min_edge_spread"] = float(os.getenv("MIN_EDGE_SPREAD"))
    if os.getenv("MIN_EDGE_TOTAL"):
        overrides["min_edge_total"] = float(os.getenv("MIN_EDGE_TOTAL"))
    return replace(cfg, **overrides) if overrides else cfg


def scoring_profile(
    db: Session,
    sport: str,
    team_id: int,
    season: int,
    week: int,
    config: SportConfig,
) -> proj.ScoringProfile:
    """Points for/against per game over the team's finals before ``week``.

    Only games whose rating week is strictly earlier count, the same
    point-in-time rule the rating store uses.  A team with no such finals
    gets the neutral profile.
    """
    games = (
        db.query(Game)
        .filter(
            Game.sport == sport,
            Game.season == season,
            Game.status == GAME_FINAL,
            or_(Game.home_team_id == team_id, Game.away_team_id == team_id),
        )
        .all()
    )
    scored, allowed, played = 0, 0, 0
    for g in games:
        if rating_week(g.week) >= rating_week(week):
            continue
        if g.home_score is None or g.away_score is None:
            continue
        if g.home_team_id == team_id:
            scored += g.home_score
            allowed += g.away_score
        else:
            scored += g.away_score
            allowed += g.home_score
        played += 1
    if played == 0:
        return proj.ScoringProfile.neutral(config.baseline_total)
    return proj.ScoringProfile(scored / played, allowed / played, played)


def analyze_game(
    game: Game,
    rating_home: float,
    rating_away: float,
    market: Dict,
    config: SportConfig,
    data_complete: bool = True,
    total_adjustments: Optional[Mapping[str, float]] = None,
) -> Dict:
    """Pure projection + edge for one game.

    ``market`` carries ``spread_open``, ``spread`` (current), ``total_open``
    and ``total`` consensus points; any may be ``None``.
    ``total_adjustments`` are added to the baseline total.

    Edges are reported raw.  Bettability and the confidence tier use the
    effective edge, which is shrunk by the game's week/data uncertainty.
    """
    predicted_spread = proj.project_spread(rating_home, rating_away, config, neutral=bool(game.neutral_site))
    predicted_total = proj.project_total(config.baseline_total, total_adjustments)
    uncertainty = proj.game_uncertainty(game.week, config, data_complete)
    limit = proj.max_uncertainty(game.week, config)
    out = {
        "rating_home": rating_home,
        "rating_away": rating_away,
        "predicted_spread": predicted_spread,
        "predicted_total": predicted_total,
        "market_spread": market.get("spread"),
        "market_total": market.get("total"),
        "uncertainty": uncertainty,
        "spread_edge": None,
        "effective_edge": None,
        "total_edge": None,
        "confidence": proj.TIER_NONE,
        "bettable_spread": False,
        "bettable_total": False,
    }

    if market.get("spread") is not None:
        edge = proj.spread_edge(market["spread"], predicted_spread)
        effective = proj.effective_edge(edge.edge_points, uncertainty)
        moved = proj.line_movement_agrees(
            edge.side, market.get("spread_open"), market["spread"], config.sharp_move_threshold
        ) if edge.side else None
        out["spread_edge"] = edge
        out["effective_edge"] = effective
        out["bettable_spread"] = proj.is_bettable(edge, config.min_edge_spread, uncertainty, limit)
        out["confidence"] = proj.confidence_tier(
            abs(effective), config, config.min_edge_spread, moved, data_complete
        )

    if market.get("total") is not None:
        edge = proj.total_edge(market["total"], predicted_total)
        out["total_edge"] = edge
        out["bettable_total"] = proj.is_bettable(edge, config.min_edge_total, uncertainty, limit)
    return out


def _market_for(db: Session, game: Game) -> Dict:
    spread = line_summary(db, game, "spread", "home")
    total = line_summary(db, game, "total", "over")
    return {
        "spread_open": spread["open"],
        "spread": spread["current"],
        "total_open": total["open"],
        "total": total["current"],
    }


def _upsert_projection(db: Session, game: Game, result: Dict, data_complete: bool) -> Projection:
    row = (
        db.query(Projection)
        .filter(Projection.game_id == game.id, Projection.model_version == MODEL_VERSION)
        .first()
    )
    if row is None:
        row = Projection(game_id=game.id, model_version=MODEL_VERSION)
        db.add(row)
    spread_edge = result["spread_edge"]
    total_edge = result["total_edge"]
    row.rating_home = result["rating_home"]
    row.rating_away = result["rating_away"]
    row.predicted_spread = round(result["predicted_spread"], 2)
    row.predicted_total = round(result["predicted_total"], 2)
    row.market_spread = result["market_spread"]
    row.market_total = result["market_total"]
    row.edge_points = round(spread_edge.edge_points, 2) if spread_edge else None
    row.recommended_side = spread_edge.side if spread_edge else None
    row.total_edge_points = round(total_edge.edge_points, 2) if total_edge else None
    row.total_side = total_edge.side if total_edge else None
    row.uncertainty = round(result["uncertainty"], 3)
    row.effective_edge_points = (
        round(result["effective_edge"], 2) if result["effective_edge"] is not None else None
    )
    row.confidence = result["confidence"]
    row.data_complete = data_complete
    row.updated_at = datetime.utcnow()
    return row


def materialize_projections(
    sport: str,
    season: int,
    week: int,
    db: Optional[Session] = None,
    place_bets: bool = True,
    bet_totals: bool = False,
) -> Dict:
    """Project every scheduled game of ``(season, week)``."""
    logger.info("Starting materialize_projections %s %s week %s", sport, season, week)
    config = _config(sport)
    summary = BatchSummary(job="materialize_projections")
    owned = db is None
    db = db or SessionLocal()
    bets = 0
    try:
        engine = RatingEngine(SqlRatingStore(db, sport), config)
        games = (
            db.query(Game)
            .filter(
                Game.sport == sport,
                Game.season == season,
                Game.week == week,
                Game.status == GAME_SCHEDULED,
            )
            .all()
        )
        for game in games:
            rw = rating_week(game.week)
            home_snap = engine.store.latest_before(game.home_team_id, season, rw)
            away_snap = engine.store.latest_before(game.away_team_id, season, rw)
            if home_snap is None and away_snap is None:
                summary.skip(f"game {game.id}: no ratings for either team")
                continue
            data_complete = home_snap is not None and away_snap is not None
            r_home = engine.prior_rating(game.home_team_id, season, rw)
            r_away = engine.prior_rating(game.away_team_id, season, rw)

            market = _market_for(db, game)
            if market["spread"] is None and market["total"] is None:
                summary.skip(f"game {game.id}: no market lines")
                continue

            home_profile = scoring_profile(db, sport, game.home_team_id, season, game.week, config)
            away_profile = scoring_profile(db, sport, game.away_team_id, season, game.week, config)
            adjustments = {
                "offense_defense": proj.matchup_total_adjustment(
                    home_profile, away_profile, config.baseline_total
                ),
            }

            result = analyze_game(game, r_home, r_away, market, config, data_complete, adjustments)
            with db.begin_nested():
                _upsert_projection(db, game, result, data_complete)
                if place_bets:
                    bets += _open_paper_bets(db, game, result, bet_totals)
            summary.processed += 1
        db.commit()
    except Exception as exc:
        logger.error("materialize_projections failed: %s", exc, exc_info=True)
        db.rollback()
        summary.fail(str(exc))
    finally:
        if owned:
            db.close()

    summary.extra["bets_placed"] = bets
    logger.info("materialize_projections done: %s", summary.to_dict())
    return summary.to_dict()


def _open_paper_bets(db: Session, game: Game, result: Dict, bet_totals: bool) -> int:
    placed = 0
    candidates = []
    if result["bettable_spread"]:
        edge = result["spread_edge"]
        candidates.append(("spread", edge, result["market_spread"]))
    if bet_totals and result["bettable_total"]:
        edge = result["total_edge"]
        candidates.append(("total", edge, result["market_total"]))

    for market, edge, line in candidates:
        try:
            place_bet(
                db, game, market, edge.side, line,
                edge_points=round(edge.edge_points, 2),
                confidence=result["confidence"] if market == "spread" else None,
            )
            placed += 1
        except DuplicateBetError:
            logger.debug("Bet %s already open", make_event_id(game.id, market, edge.side))
    return placed

