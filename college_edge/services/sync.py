"""
Ingestion jobs: schedules, results, per-game efficiency, odds ticks and
closing lines.

Each job fetches from one feed, resolves team names, upserts by natural key
and returns a :class:`~college_edge.core.batch.BatchSummary` dict.  Re-running
a job with the same feed data changes nothing.  One bad game is recorded in
``errors`` and skipped; it never aborts the batch.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import requests
from sqlalchemy.orm import Session

from college_edge.core.batch import BatchSummary
from college_edge.core.sport_config import SportConfig
from college_edge.models import (
    DataFetch,
    Game,
    GameEfficiency,
    SessionLocal,
    TERMINAL_GAME_STATUSES,
    GAME_FINAL,
    GAME_SCHEDULED,
)
from college_edge.services.cfbd import CFBDClient, parse_datetime
from college_edge.services.market_lines import insert_ticks, latest_capture, mark_closing_ticks
from college_edge.services.odds import OddsAPIClient, parse_line_ticks, parse_scores, should_poll
from college_edge.services.team_mapping import (
    TeamResolver,
    get_or_create_team,
    record_unresolved,
)

logger = logging.getLogger(__name__)

# Odds events are matched to schedule rows within this kickoff window.
MATCH_WINDOW = timedelta(hours=36)


def _record_fetch(db: Session, source: str, client, records: int = 0, error: Optional[str] = None) -> None:
    db.add(DataFetch(
        data_source=source,
        success=error is None,
        records_fetched=records,
        error_message=error,
        response_time_ms=getattr(client, "last_response_ms", None),
    ))
    db.commit()


def _open(db: Optional[Session]):
    return (db, False) if db is not None else (SessionLocal(), True)


def _ppa(value) -> Optional[float]:
    return None if value is None else float(value)


# ---------------------------------------------------------------------------
# Schedule and results
# ---------------------------------------------------------------------------


def upsert_game(db: Session, sport: str, raw: Dict) -> Game:
    """Insert or update one normalised schedule row.

    Scores and status only move forward: a game already in a terminal state
    is never reverted by a later feed.
    """
    home = get_or_create_team(
        db, sport, raw["home_team"],
        external_id=str(raw["home_external_id"]) if raw.get("home_external_id") else None,
        conference=raw.get("home_conference"),
    )
    away = get_or_create_team(
        db, sport, raw["away_team"],
        external_id=str(raw["away_external_id"]) if raw.get("away_external_id") else None,
        conference=raw.get("away_conference"),
    )
    game = db.query(Game).filter(Game.external_id == raw["external_id"]).first()
    if game is None:
        game = Game(external_id=raw["external_id"], sport=sport, status=GAME_SCHEDULED)
        db.add(game)

    game.season = raw["season"]
    game.week = raw["week"]
    game.home_team_id = home.id
    game.away_team_id = away.id
    game.neutral_site = raw.get("neutral_site", False)

    if game.status in TERMINAL_GAME_STATUSES:
        if game.start_date is None:
            game.start_date = raw["start_date"]
        return game

    game.start_date = raw["start_date"]
    if raw["status"] == GAME_FINAL:
        game.home_score = raw["home_score"]
        game.away_score = raw["away_score"]
    game.status = raw["status"]
    return game


def sync_games(
    sport: str,
    season: int,
    week: Optional[int] = None,
    client: Optional[CFBDClient] = None,
    db: Optional[Session] = None,
) -> Dict:
    """Pull the schedule (and any final scores) for a season or week."""
    logger.info("Starting sync_games %s %s week=%s", sport, season, week)
    summary = BatchSummary(job="sync_games")
    db, owned = _open(db)
    try:
        client = client or CFBDClient(sport)
        try:
            raw_games = client.get_games(season, week)
        except requests.RequestException as exc:
            logger.error("Schedule feed failed: %s", exc)
            _record_fetch(db, "cfbd_games", client, error=str(exc))
            summary.fail(f"schedule feed: {exc}")
            return summary.to_dict()
        _record_fetch(db, "cfbd_games", client, records=len(raw_games))

        finals = 0
        for raw in raw_games:
            if not raw.get("home_team") or not raw.get("away_team"):
                summary.skip(f"game {raw.get('external_id')} missing team")
                continue
            try:
                with db.begin_nested():
                    game = upsert_game(db, sport, raw)
                summary.processed += 1
                finals += game.status == GAME_FINAL
            except Exception as exc:
                logger.error("Upsert failed for game %s: %s", raw.get("external_id"), exc, exc_info=True)
                summary.fail(f"game {raw.get('external_id')}: {exc}")
        db.commit()
        summary.extra["final"] = finals
    finally:
        if owned:
            db.close()

    logger.info("sync_games done: %s", summary.to_dict())
    return summary.to_dict()


def sync_results(sport: str, season: int, week: int, client: Optional[CFBDClient] = None,
                 db: Optional[Session] = None) -> Dict:
    """Scores for a finished week are carried by the schedule feed."""
    result = sync_games(sport, season, week, client=client, db=db)
    result["job"] = "sync_results"
    return result


def sync_scores_from_odds(
    sport: str,
    client: Optional[OddsAPIClient] = None,
    db: Optional[Session] = None,
    days_from: int = 3,
) -> Dict:
    """Backup result source: Odds API scores matched by team and kickoff."""
    summary = BatchSummary(job="sync_scores_from_odds")
    config = SportConfig.for_sport(sport)
    db, owned = _open(db)
    try:
        client = client or OddsAPIClient()
        try:
            events = client.get_scores(config.odds_api_sport_key, days_from=days_from)
        except requests.RequestException as exc:
            _record_fetch(db, "odds_api_scores", client, error=str(exc))
            summary.fail(f"scores feed: {exc}")
            return summary.to_dict()
        _record_fetch(db, "odds_api_scores", client, records=len(events))

        resolver = TeamResolver.from_db(db, sport)
        for event in events:
            try:
                with db.begin_nested():
                    scores = parse_scores(event)
                    if scores is None:
                        continue
                    game = _match_event(db, sport, resolver, event, summary)
                    if game is None:
                        continue
                    if game.status in TERMINAL_GAME_STATUSES:
                        summary.skip(f"game {game.id} already {game.status}")
                        continue
                    game.home_score = scores["home_score"]
                    game.away_score = scores["away_score"]
                    game.status = GAME_FINAL
                summary.processed += 1
            except Exception as exc:
                logger.error("Score ingest failed for event %s: %s", event.get("id"), exc, exc_info=True)
                summary.fail(f"event {event.get('id')}: {exc}")
        db.commit()
    finally:
        if owned:
            db.close()
    return summary.to_dict()


# ---------------------------------------------------------------------------
# Efficiency
# ---------------------------------------------------------------------------


def sync_efficiency(
    sport: str,
    season: int,
    week: Optional[int] = None,
    client: Optional[CFBDClient] = None,
    db: Optional[Session] = None,
) -> Dict:
    """Per-game offensive/defensive PPA for each team."""
    logger.info("Starting sync_efficiency %s %s week=%s", sport, season, week)
    summary = BatchSummary(job="sync_efficiency")
    db, owned = _open(db)
    try:
        client = client or CFBDClient(sport)
        try:
            rows = client.get_game_ppa(season, week)
        except requests.RequestException as exc:
            logger.error("PPA feed failed: %s", exc)
            _record_fetch(db, "cfbd_ppa", client, error=str(exc))
            summary.fail(f"ppa feed: {exc}")
            return summary.to_dict()
        _record_fetch(db, "cfbd_ppa", client, records=len(rows))

        resolver = TeamResolver.from_db(db, sport)
        games = {
            g.external_id: g
            for g in db.query(Game).filter(Game.sport == sport, Game.season == season)
        }
        for row in rows:
            try:
                with db.begin_nested():
                    game = games.get(row["game_external_id"])
                    if game is None:
                        summary.skip(f"ppa for unknown game {row['game_external_id']}")
                        continue
                    match = resolver.resolve(row["team"])
                    if not match.resolved:
                        record_unresolved(db, sport, "cfbd", match)
                        summary.skip(f"unresolved team {row['team']}")
                        continue
                    if match.team_id not in (game.home_team_id, game.away_team_id):
                        summary.skip(f"team {row['team']} not in game {game.external_id}")
                        continue
                    eff = (
                        db.query(GameEfficiency)
                        .filter(GameEfficiency.game_id == game.id, GameEfficiency.team_id == match.team_id)
                        .first()
                    )
                    if eff is None:
                        eff = GameEfficiency(game_id=game.id, team_id=match.team_id)
                        db.add(eff)
                    eff.offense_ppa = _ppa(row["offense_ppa"])
                    eff.defense_ppa = _ppa(row["defense_ppa"])
                    db.flush()
                summary.processed += 1
            except Exception as exc:
                logger.error("PPA ingest failed for row %s: %s", row, exc, exc_info=True)
                summary.fail(f"ppa row {row.get('game_external_id')}: {exc}")
        db.commit()
    finally:
        if owned:
            db.close()

    logger.info("sync_efficiency done: %s", summary.to_dict())
    return summary.to_dict()


# ---------------------------------------------------------------------------
# Odds
# ---------------------------------------------------------------------------


def _match_event(db: Session, sport: str, resolver: TeamResolver, event: Dict,
                 summary: BatchSummary) -> Optional[Game]:
    """Find the schedule row for an Odds API event."""
    game = (
        db.query(Game)
        .filter(Game.sport == sport, Game.odds_event_id == event["id"])
        .first()
    )
    if game is not None:
        return game

    home = resolver.resolve(event.get("home_team", ""))
    away = resolver.resolve(event.get("away_team", ""))
    for match in (home, away):
        if not match.resolved:
            record_unresolved(db, sport, "odds_api", match)
    if not (home.resolved and away.resolved):
        summary.skip(f"unresolved teams for event {event['id']}")
        return None

    kickoff = parse_datetime(event.get("commence_time"))
    query = db.query(Game).filter(
        Game.sport == sport,
        Game.home_team_id == home.team_id,
        Game.away_team_id == away.team_id,
    )
    if kickoff is not None:
        query = query.filter(
            Game.start_date >= kickoff - MATCH_WINDOW,
            Game.start_date <= kickoff + MATCH_WINDOW,
        )
    game = query.first()
    if game is None:
        summary.skip(f"no scheduled game for event {event['id']}")
        return None
    game.odds_event_id = event["id"]
    return game


def sync_odds(
    sport: str,
    client: Optional[OddsAPIClient] = None,
    db: Optional[Session] = None,
    now: Optional[datetime] = None,
    force: bool = False,
) -> Dict:
    """Poll current spreads/totals and append new ticks."""
    logger.info("Starting sync_odds %s", sport)
    summary = BatchSummary(job="sync_odds")
    config = SportConfig.for_sport(sport)
    now = now or datetime.utcnow()
    db, owned = _open(db)
    written = dupes = 0
    try:
        client = client or OddsAPIClient()
        try:
            events = client.get_odds(config.odds_api_sport_key)
        except requests.RequestException as exc:
            logger.error("Odds feed failed: %s", exc)
            _record_fetch(db, "odds_api", client, error=str(exc))
            summary.fail(f"odds feed: {exc}")
            return summary.to_dict()
        _record_fetch(db, "odds_api", client, records=len(events))

        resolver = TeamResolver.from_db(db, sport)
        for event in events:
            try:
                with db.begin_nested():
                    game = _match_event(db, sport, resolver, event, summary)
                    if game is None:
                        continue
                    if game.status in TERMINAL_GAME_STATUSES:
                        summary.skip(f"game {game.id} already {game.status}")
                        continue
                    if not force and not should_poll(game.start_date, latest_capture(db, game.id), now):
                        summary.skip()
                        continue
                    w, d = insert_ticks(db, game, parse_line_ticks(event, captured_at=now))
                written += w
                dupes += d
                summary.processed += 1
            except Exception as exc:
                logger.error("Odds ingest failed for event %s: %s", event.get("id"), exc, exc_info=True)
                summary.fail(f"event {event.get('id')}: {exc}")
        db.commit()
    finally:
        if owned:
            db.close()

    summary.extra.update(ticks_written=written, dedupe_hits=dupes)
    logger.info("sync_odds done: %d events, %d ticks, %d dupes", summary.processed, written, dupes)
    return summary.to_dict()


def set_closing_lines(
    sport: str,
    db: Optional[Session] = None,
    now: Optional[datetime] = None,
    lookback: timedelta = timedelta(days=3),
) -> Dict:
    """Mark closing ticks for games that have kicked off, then refresh CLV."""
    from college_edge.services.bet_tracker import update_clv

    summary = BatchSummary(job="set_closing_lines")
    now = now or datetime.utcnow()
    db, owned = _open(db)
    try:
        started: List[Game] = (
            db.query(Game)
            .filter(
                Game.sport == sport,
                Game.start_date <= now,
                Game.start_date >= now - lookback,
            )
            .all()
        )
        for game in started:
            if mark_closing_ticks(db, game):
                summary.processed += 1
            else:
                summary.skip(f"game {game.id} has no pre-kickoff lines")
        db.commit()
        summary.extra["clv"] = update_clv(db, [g.id for g in started])
    finally:
        if owned:
            db.close()
    return summary.to_dict()
