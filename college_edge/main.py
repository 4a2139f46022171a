"""
FastAPI application for College Edge
REST API, scheduled ingestion/rating/grading jobs, and admin triggers
"""

from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, joinedload
from sqlalchemy import text
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional
import logging
import os

from college_edge.models import (
    get_db,
    Game,
    Projection,
    BetRecord,
    Team,
    RatingSnapshot,
    UnresolvedTeam,
    SessionLocal,
)
from college_edge.auth import verify_api_key, verify_admin_api_key
from college_edge.core.sport_config import MODEL_VERSION, SportConfig
from college_edge.services import sync
from college_edge.services.analysis import materialize_projections
from college_edge.services.backtest import Backtester, BacktestLine
from college_edge.services.bet_tracker import (
    DuplicateBetError,
    grade_pending_bets,
    place_bet,
    settle_bet,
    bets_for,
)
from college_edge.services.market_lines import line_summary
from college_edge.services.odds import POLL_CLOSE_MINUTES
from college_edge.services.performance import calculate_summary_stats, calculate_timeline
from college_edge.services.ratings import current_week, load_game_results, rebuild_ratings
from college_edge.services.team_mapping import add_alias
from college_edge.schemas import (
    AliasCreate,
    BacktestRequest,
    BetCreate,
    BetResponse,
    JobResponse,
    ProjectionResponse,
    RatingHistoryResponse,
    RatingPoint,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SPORT = os.getenv("SPORT", "ncaaf")

# The odds job ticks as often as the closest poll window; should_poll gates each event
ODDS_POLL_INTERVAL_MIN = int(os.getenv("ODDS_POLL_INTERVAL_MIN", str(POLL_CLOSE_MINUTES)))

scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("🚀 Starting College Edge (%s)", SPORT)

    sync_hour = int(os.getenv("SYNC_CRON_HOUR", "6"))
    timezone = os.getenv("CRON_TIMEZONE", "America/New_York")

    scheduler.add_job(
        _daily_pipeline_job,
        CronTrigger(hour=sync_hour, minute=0, timezone=timezone),
        id="daily_pipeline",
        name="Schedule/results/efficiency sync + ratings + projections",
        replace_existing=True,
    )
    scheduler.add_job(
        _poll_odds_job,
        IntervalTrigger(minutes=ODDS_POLL_INTERVAL_MIN),
        id="poll_odds",
        name="Poll Odds",
        replace_existing=True,
    )
    scheduler.add_job(
        _closing_lines_job,
        IntervalTrigger(minutes=30),
        id="closing_lines",
        name="Set Closing Lines",
        replace_existing=True,
    )
    scheduler.add_job(
        _grade_bets_job,
        IntervalTrigger(hours=2),
        id="grade_bets",
        name="Grade Pending Bets",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Scheduler started: pipeline@%02d:00 %s, odds/lines/grading on intervals", sync_hour, timezone)

    yield

    logger.info("👋 Shutting down College Edge")
    scheduler.shutdown()


app = FastAPI(
    title="College Edge",
    description="College football/basketball rating, edge and paper-betting pipeline",
    version="1.0",
    lifespan=lifespan,
)


# ============================================================================
# SCHEDULED JOBS
# ============================================================================

def run_pipeline(sport: str = SPORT) -> dict:
    """One full pass: sync the current week, re-rate the season, project."""
    db = SessionLocal()
    try:
        found = current_week(db, sport)
    finally:
        db.close()
    if found is None:
        logger.info("No upcoming %s games; pipeline idle", sport)
        return {"status": "idle"}
    season, week = found

    results = {
        "schedule": sync.sync_games(sport, season),
        "efficiency": sync.sync_efficiency(sport, season),
        "ratings": rebuild_ratings(sport, [season - 1, season]),
        "projections": materialize_projections(sport, season, week),
    }
    return results


def _daily_pipeline_job():
    try:
        results = run_pipeline()
        logger.info("Daily pipeline complete: %s", results)
    except Exception as exc:
        logger.error("Daily pipeline failed: %s", exc, exc_info=True)


def _poll_odds_job():
    try:
        logger.info("Odds poll: %s", sync.sync_odds(SPORT))
    except Exception as exc:
        logger.error("Odds poll job failed: %s", exc, exc_info=True)


def _closing_lines_job():
    try:
        logger.info("Closing lines: %s", sync.set_closing_lines(SPORT))
    except Exception as exc:
        logger.error("Closing lines job failed: %s", exc, exc_info=True)


def _grade_bets_job():
    try:
        logger.info("Scores backup: %s", sync.sync_scores_from_odds(SPORT))
        logger.info("Grading: %s", grade_pending_bets())
    except Exception as exc:
        logger.error("Grading job failed: %s", exc, exc_info=True)


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    return {
        "app": "College Edge",
        "version": "1.0",
        "sport": SPORT,
        "model_version": MODEL_VERSION,
        "status": "operational",
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    health = {"status": "healthy", "database": "connected", "scheduler": "running"}
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Health check database error: %s", e)
        health["status"] = "degraded"
        health["database"] = f"error: {e}"
    if not scheduler.running:
        health["status"] = "degraded"
        health["scheduler"] = "stopped"
    return health


# ============================================================================
# AUTHENTICATED ENDPOINTS - PROJECTIONS / RATINGS
# ============================================================================

@app.get("/api/projections", response_model=List[ProjectionResponse])
async def get_projections(
    season: int,
    week: int,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return (
        db.query(Projection)
        .join(Game)
        .filter(Game.sport == SPORT, Game.season == season, Game.week == week)
        .order_by(Game.start_date.asc())
        .all()
    )


@app.get("/api/edges", response_model=List[ProjectionResponse])
async def get_edges(
    season: int,
    week: int,
    min_edge: Optional[float] = Query(default=None, ge=0),
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Projections whose spread edge clears the floor, biggest first."""
    floor = SportConfig.for_sport(SPORT).min_edge_spread if min_edge is None else min_edge
    rows = (
        db.query(Projection)
        .join(Game)
        .filter(Game.sport == SPORT, Game.season == season, Game.week == week)
        .filter(Projection.edge_points.isnot(None))
        .all()
    )
    edges = [p for p in rows if p.recommended_side and abs(p.edge_points) >= floor]
    return sorted(edges, key=lambda p: abs(p.edge_points), reverse=True)


@app.get("/api/games/{game_id}/lines")
async def get_game_lines(
    game_id: int,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    game = db.query(Game).filter(Game.id == game_id).first()
    if not game:
        raise HTTPException(status_code=404, detail="Game not found")
    return {
        "game_id": game.id,
        "start_date": game.start_date.isoformat(),
        "spread": line_summary(db, game, "spread", "home"),
        "total": line_summary(db, game, "total", "over"),
    }


@app.get("/api/ratings/{team_id}", response_model=RatingHistoryResponse)
async def get_rating_history(
    team_id: int,
    season: Optional[int] = None,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    team = db.query(Team).filter(Team.id == team_id).first()
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    q = db.query(RatingSnapshot).filter(
        RatingSnapshot.team_id == team_id, RatingSnapshot.model_version == MODEL_VERSION
    )
    if season is not None:
        q = q.filter(RatingSnapshot.season == season)
    rows = q.order_by(RatingSnapshot.season, RatingSnapshot.week).all()
    return RatingHistoryResponse(
        team_id=team.id,
        team=team.name,
        history=[RatingPoint(season=r.season, week=r.week, rating=round(r.rating, 2),
                             games_played=r.games_played or 0) for r in rows],
    )


# ============================================================================
# AUTHENTICATED ENDPOINTS - BETS
# ============================================================================

@app.post("/api/bets", response_model=BetResponse)
async def create_bet(
    payload: BetCreate,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    game = db.query(Game).filter(Game.id == payload.game_id).first()
    if not game:
        raise HTTPException(status_code=404, detail="Game not found")
    try:
        bet = place_bet(
            db, game, payload.market, payload.side, payload.line,
            price=payload.price, stake=payload.stake,
            is_paper=payload.is_paper, notes=payload.notes,
            model_version=f"manual:{user}",
        )
    except DuplicateBetError as exc:
        raise HTTPException(status_code=409, detail=f"Bet already exists: {exc}")
    db.commit()
    db.refresh(bet)
    return bet


@app.get("/api/bets", response_model=List[BetResponse])
async def list_bets(
    result: Optional[str] = Query(default=None, pattern="^(pending|win|loss|push)$"),
    market: Optional[str] = Query(default=None, pattern="^(spread|total)$"),
    limit: int = Query(default=200, ge=1, le=1000),
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return bets_for(db, result=result, market=market, limit=limit)


@app.post("/api/bets/{bet_id}/grade", response_model=BetResponse)
async def grade_bet(
    bet_id: int,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    bet = (
        db.query(BetRecord)
        .options(joinedload(BetRecord.game))
        .filter(BetRecord.id == bet_id)
        .first()
    )
    if not bet:
        raise HTTPException(status_code=404, detail="Bet not found")
    if not bet.game.is_final:
        raise HTTPException(status_code=409, detail=f"Game is {bet.game.status}, not final")
    settle_bet(bet, bet.game)
    db.commit()
    db.refresh(bet)
    return bet


# ============================================================================
# AUTHENTICATED ENDPOINTS - PERFORMANCE / BACKTEST
# ============================================================================

@app.get("/api/performance/summary")
async def performance_summary(
    paper: Optional[bool] = None,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return calculate_summary_stats(db, paper=paper)


@app.get("/api/performance/timeline")
async def performance_timeline(
    days: int = Query(default=30, ge=1, le=365),
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return calculate_timeline(db, days=days)


@app.post("/api/backtest")
async def run_backtest(
    payload: BacktestRequest,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Walk-forward backtest over stored games and closing lines."""
    config = SportConfig.for_sport(SPORT)
    seasons = sorted(set(payload.seasons))
    rated = list(range(seasons[0] - 1, seasons[-1] + 1))
    games = load_game_results(db, SPORT, rated)

    lines = {}
    by_id = {g.id: g for g in db.query(Game).filter(Game.id.in_([r.game_id for r in games]))}
    for result in games:
        summary = line_summary(db, by_id[result.game_id], "spread", "home")
        if summary["close"] is not None or summary["open"] is not None:
            lines[result.game_id] = BacktestLine(close=summary["close"], open=summary["open"])

    report = Backtester(
        config, min_edge=payload.min_edge, line_source=payload.line_source
    ).run(games, lines, seasons=seasons)
    return report.to_dict()


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================

_SYNC_JOBS = {
    "odds": lambda season, week: sync.sync_odds(SPORT, force=True),
    "closing-lines": lambda season, week: sync.set_closing_lines(SPORT),
    "scores": lambda season, week: sync.sync_scores_from_odds(SPORT),
    "games": lambda season, week: sync.sync_games(SPORT, season, week),
    "results": lambda season, week: sync.sync_results(SPORT, season, week),
    "efficiency": lambda season, week: sync.sync_efficiency(SPORT, season, week),
    "projections": lambda season, week: materialize_projections(SPORT, season, week),
    "grade": lambda season, week: grade_pending_bets(),
}


@app.post("/admin/sync/{job}", response_model=JobResponse)
async def admin_sync(
    job: str,
    season: Optional[int] = None,
    week: Optional[int] = None,
    user: str = Depends(verify_admin_api_key),
):
    if job not in _SYNC_JOBS:
        raise HTTPException(status_code=404, detail=f"Unknown job {job!r}")
    if job in ("games", "results", "efficiency", "projections") and season is None:
        raise HTTPException(status_code=422, detail="season is required")
    if job in ("results", "projections") and week is None:
        raise HTTPException(status_code=422, detail="week is required")
    return JobResponse.from_summary(_SYNC_JOBS[job](season, week))


@app.post("/admin/rebuild-ratings")
async def admin_rebuild_ratings(
    seasons: List[int] = Query(...),
    user: str = Depends(verify_admin_api_key),
):
    return rebuild_ratings(SPORT, seasons)


@app.get("/admin/unresolved-teams")
async def admin_unresolved_teams(
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    rows = (
        db.query(UnresolvedTeam)
        .filter(UnresolvedTeam.sport == SPORT)
        .order_by(UnresolvedTeam.occurrences.desc())
        .all()
    )
    return [
        {
            "name": r.name,
            "source": r.source,
            "best_guess": r.best_guess,
            "best_score": r.best_score,
            "occurrences": r.occurrences,
            "last_seen": r.last_seen.isoformat() if r.last_seen else None,
        }
        for r in rows
    ]


@app.post("/admin/team-aliases")
async def admin_add_alias(
    payload: AliasCreate,
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    team = db.query(Team).filter(Team.id == payload.team_id, Team.sport == SPORT).first()
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    add_alias(db, SPORT, payload.alias, team.id)
    db.commit()
    return {"alias": payload.alias, "team_id": team.id, "team": team.name}


@app.get("/admin/scheduler/status")
async def scheduler_status(user: str = Depends(verify_admin_api_key)):
    return {
        "running": scheduler.running,
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in scheduler.get_jobs()
        ],
    }


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
