"""Tests for the ingestion jobs, with mocked feed clients."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import requests

from college_edge.models import (
    DataFetch,
    Game,
    GameEfficiency,
    MarketLine,
    Team,
    UnresolvedTeam,
)
from college_edge.services import sync

NOW = datetime(2024, 9, 5, 12, 0)
KICKOFF = datetime(2024, 9, 7, 19, 30)


def _client(**methods):
    client = MagicMock()
    client.last_response_ms = 12.0
    for name, value in methods.items():
        getattr(client, name).return_value = value
    return client


def _raw_game(status="scheduled", home_score=None, away_score=None, external_id="401"):
    return {
        "external_id": external_id,
        "season": 2024,
        "week": 2,
        "start_date": KICKOFF,
        "neutral_site": False,
        "home_team": "Ohio State",
        "away_team": "Michigan",
        "home_external_id": 194,
        "away_external_id": 130,
        "home_conference": "Big Ten",
        "away_conference": "Big Ten",
        "home_score": home_score,
        "away_score": away_score,
        "status": status,
    }


def _event(home_point=-3.5, total=48.5, event_id="evt1", home="Ohio State Buckeyes",
           away="Michigan Wolverines"):
    return {
        "id": event_id,
        "commence_time": "2024-09-07T19:30:00Z",
        "home_team": home,
        "away_team": away,
        "bookmakers": [{
            "key": "draftkings",
            "last_update": "2024-09-05T11:58:00Z",
            "markets": [
                {"key": "spreads", "outcomes": [
                    {"name": home, "point": home_point, "price": -110},
                    {"name": away, "point": -home_point, "price": -110},
                ]},
                {"key": "totals", "outcomes": [
                    {"name": "Over", "point": total, "price": -110},
                    {"name": "Under", "point": total, "price": -110},
                ]},
            ],
        }],
    }


# ---------------------------------------------------------------------------
# Schedule / results
# ---------------------------------------------------------------------------

def test_sync_games_idempotent(db_session):
    client = _client(get_games=[_raw_game()])
    first = sync.sync_games("ncaaf", 2024, client=client, db=db_session)
    second = sync.sync_games("ncaaf", 2024, client=client, db=db_session)

    assert first["processed"] == 1 and second["processed"] == 1
    assert db_session.query(Game).count() == 1
    assert db_session.query(Team).count() == 2
    assert db_session.query(DataFetch).filter(DataFetch.success.is_(True)).count() == 2


def test_final_status_never_reverted(db_session):
    final = _client(get_games=[_raw_game("final", 27, 20)])
    sync.sync_games("ncaaf", 2024, client=final, db=db_session)
    stale = _client(get_games=[_raw_game()])
    sync.sync_games("ncaaf", 2024, client=stale, db=db_session)

    game = db_session.query(Game).one()
    assert game.status == "final"
    assert (game.home_score, game.away_score) == (27, 20)


def test_sync_results_job_name(db_session):
    client = _client(get_games=[_raw_game("final", 27, 20)])
    out = sync.sync_results("ncaaf", 2024, 2, client=client, db=db_session)
    assert out["job"] == "sync_results"
    assert out["final"] == 1
    client.get_games.assert_called_once_with(2024, 2)


def test_sync_games_skips_missing_team(db_session):
    raw = _raw_game()
    raw["away_team"] = None
    out = sync.sync_games("ncaaf", 2024, client=_client(get_games=[raw]), db=db_session)
    assert out["skipped"] == 1
    assert db_session.query(Game).count() == 0


def test_feed_failure_recorded(db_session):
    client = _client()
    client.get_games.side_effect = requests.ConnectionError("feed down")
    out = sync.sync_games("ncaaf", 2024, client=client, db=db_session)
    assert out["errored"] == 1
    fetch = db_session.query(DataFetch).one()
    assert not fetch.success
    assert "feed down" in fetch.error_message


# ---------------------------------------------------------------------------
# Efficiency
# ---------------------------------------------------------------------------

def test_sync_efficiency(db_session):
    sync.sync_games("ncaaf", 2024, client=_client(get_games=[_raw_game("final", 27, 20)]), db=db_session)
    rows = [
        {"game_external_id": "401", "team": "Ohio State", "offense_ppa": 0.31, "defense_ppa": 0.08},
        {"game_external_id": "401", "team": "Michigan", "offense_ppa": 0.12, "defense_ppa": 0.22},
        {"game_external_id": "999", "team": "Michigan", "offense_ppa": 0.1, "defense_ppa": 0.1},
    ]
    out = sync.sync_efficiency("ncaaf", 2024, 2, client=_client(get_game_ppa=rows), db=db_session)
    assert out["processed"] == 2
    assert out["skipped"] == 1
    assert db_session.query(GameEfficiency).count() == 2

    # Re-running overwrites in place
    sync.sync_efficiency("ncaaf", 2024, 2, client=_client(get_game_ppa=rows[:2]), db=db_session)
    assert db_session.query(GameEfficiency).count() == 2


def test_sync_efficiency_bad_row_does_not_abort_batch(db_session):
    sync.sync_games("ncaaf", 2024, client=_client(get_games=[_raw_game("final", 27, 20)]), db=db_session)
    rows = [
        {"game_external_id": "401", "team": "Ohio State", "offense_ppa": 0.31, "defense_ppa": 0.08},
        {"game_external_id": "401", "team": "Michigan", "offense_ppa": "n/a", "defense_ppa": 0.22},
        {"game_external_id": "401"},
        {"game_external_id": "401", "team": "Michigan", "offense_ppa": None, "defense_ppa": 0.22},
    ]
    out = sync.sync_efficiency("ncaaf", 2024, 2, client=_client(get_game_ppa=rows), db=db_session)
    assert out["processed"] == 2
    assert out["errored"] == 2
    assert len(out["errors"]) == 2

    names = {t.id: t.name for t in db_session.query(Team).all()}
    stored = {names[e.team_id]: e for e in db_session.query(GameEfficiency).all()}
    assert set(stored) == {"Ohio State", "Michigan"}
    assert stored["Ohio State"].offense_ppa == 0.31
    assert stored["Michigan"].offense_ppa is None
    assert stored["Michigan"].defense_ppa == 0.22


# ---------------------------------------------------------------------------
# Odds
# ---------------------------------------------------------------------------

def _scheduled_game(db_session):
    sync.sync_games("ncaaf", 2024, client=_client(get_games=[_raw_game()]), db=db_session)
    return db_session.query(Game).one()


def test_sync_odds_writes_ticks(db_session):
    game = _scheduled_game(db_session)
    out = sync.sync_odds("ncaaf", client=_client(get_odds=[_event()]), db=db_session, now=NOW)

    assert out["processed"] == 1
    assert out["ticks_written"] == 4
    db_session.refresh(game)
    assert game.odds_event_id == "evt1"
    home = db_session.query(MarketLine).filter(MarketLine.side == "home").one()
    away = db_session.query(MarketLine).filter(MarketLine.side == "away").one()
    assert home.point == -3.5
    assert away.point == -3.5     # stored home-perspective
    assert home.tick_type == "open"


def test_sync_odds_respects_poll_window(db_session):
    _scheduled_game(db_session)
    client = _client(get_odds=[_event()])
    sync.sync_odds("ncaaf", client=client, db=db_session, now=NOW)
    out = sync.sync_odds("ncaaf", client=client, db=db_session, now=NOW + timedelta(minutes=1))
    assert out["processed"] == 0
    assert out["skipped"] == 1


def test_sync_odds_dedupes_unchanged_lines(db_session):
    _scheduled_game(db_session)
    client = _client(get_odds=[_event()])
    sync.sync_odds("ncaaf", client=client, db=db_session, now=NOW)
    out = sync.sync_odds("ncaaf", client=client, db=db_session, now=NOW + timedelta(hours=2))
    assert out["ticks_written"] == 0
    assert out["dedupe_hits"] == 4

    moved = _client(get_odds=[_event(home_point=-4.5)])
    out = sync.sync_odds("ncaaf", client=moved, db=db_session, now=NOW + timedelta(hours=4))
    assert out["ticks_written"] == 2
    assert db_session.query(MarketLine).count() == 6


def test_sync_odds_unresolved_team(db_session):
    _scheduled_game(db_session)
    event = _event(event_id="evt2", home="Zzyzx Tech Fighting Wombats")
    out = sync.sync_odds("ncaaf", client=_client(get_odds=[event]), db=db_session, now=NOW)
    assert out["processed"] == 0
    assert out["skipped"] == 1
    row = db_session.query(UnresolvedTeam).one()
    assert row.name == "Zzyzx Tech Fighting Wombats"
    assert row.source == "odds_api"


def test_set_closing_lines(db_session):
    game = _scheduled_game(db_session)
    sync.sync_odds("ncaaf", client=_client(get_odds=[_event()]), db=db_session, now=NOW)
    sync.sync_odds("ncaaf", client=_client(get_odds=[_event(home_point=-5.0)]),
                   db=db_session, now=NOW + timedelta(hours=6))

    out = sync.set_closing_lines("ncaaf", db=db_session, now=KICKOFF + timedelta(hours=1))
    assert out["processed"] == 1
    closes = db_session.query(MarketLine).filter(MarketLine.tick_type == "close").all()
    assert {c.point for c in closes if c.market == "spread"} == {-5.0}
    assert out["clv"]["clv_updated"] == 0
    assert game.id is not None


def test_scores_backup_marks_final(db_session):
    game = _scheduled_game(db_session)
    scores = [{
        "id": "evt1",
        "completed": True,
        "commence_time": "2024-09-07T19:30:00Z",
        "home_team": "Ohio State Buckeyes",
        "away_team": "Michigan Wolverines",
        "scores": [
            {"name": "Ohio State Buckeyes", "score": "24"},
            {"name": "Michigan Wolverines", "score": "17"},
        ],
    }]
    out = sync.sync_scores_from_odds("ncaaf", client=_client(get_scores=scores), db=db_session)
    assert out["processed"] == 1
    db_session.refresh(game)
    assert game.is_final
    assert (game.home_score, game.away_score) == (24, 17)


def test_scores_backup_bad_event_does_not_abort_batch(db_session):
    game = _scheduled_game(db_session)
    bad = {
        "id": "evt0",
        "completed": True,
        "commence_time": "2024-09-07T15:30:00Z",
        "home_team": "Navy Midshipmen",
        "away_team": "Army Black Knights",
        "scores": [
            {"name": "Navy Midshipmen", "score": "TBD"},
            {"name": "Army Black Knights", "score": "10"},
        ],
    }
    good = {
        "id": "evt1",
        "completed": True,
        "commence_time": "2024-09-07T19:30:00Z",
        "home_team": "Ohio State Buckeyes",
        "away_team": "Michigan Wolverines",
        "scores": [
            {"name": "Ohio State Buckeyes", "score": "31"},
            {"name": "Michigan Wolverines", "score": "28"},
        ],
    }
    out = sync.sync_scores_from_odds("ncaaf", client=_client(get_scores=[bad, good]), db=db_session)
    assert out["processed"] == 1
    assert out["errored"] == 1
    assert "evt0" in out["errors"][0]
    db_session.refresh(game)
    assert game.is_final
    assert (game.home_score, game.away_score) == (31, 28)
