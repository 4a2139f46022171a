"""Tests for bet_tracker: placing, settling and CLV of paper bets."""

from datetime import datetime, timedelta

import pytest

from college_edge.core.lines import LineTick
from college_edge.models import BetRecord
from college_edge.services.bet_tracker import (
    DuplicateBetError,
    bets_for,
    grade_pending_bets,
    make_event_id,
    place_bet,
    settle_bet,
    update_clv,
)
from college_edge.services.market_lines import insert_ticks

KICKOFF = datetime(2024, 9, 7, 19, 30)


def _finish(game, home, away):
    game.status = "final"
    game.home_score = home
    game.away_score = away


# ---------------------------------------------------------------------------
# place_bet
# ---------------------------------------------------------------------------

def test_place_bet_pending(db_session, make_game):
    game = make_game()
    bet = place_bet(db_session, game, "spread", "home", -5.5, edge_points=-3.4, confidence="low")
    assert bet.result == "pending"
    assert bet.event_id == make_event_id(game.id, "spread", "home")
    assert bet.profit_units is None


def test_duplicate_bet_rejected(db_session, make_game):
    game = make_game()
    place_bet(db_session, game, "spread", "home", -5.5)
    with pytest.raises(DuplicateBetError):
        place_bet(db_session, game, "spread", "home", -6.0)
    # Other side of the same market is a different bet
    place_bet(db_session, game, "spread", "away", -5.5)
    assert db_session.query(BetRecord).count() == 2


@pytest.mark.parametrize("market, side, stake", [
    ("spread", "over", 1.0),
    ("total", "home", 1.0),
    ("moneyline", "home", 1.0),
    ("spread", "home", 0.0),
])
def test_invalid_bets(db_session, make_game, market, side, stake):
    game = make_game()
    with pytest.raises(ValueError):
        place_bet(db_session, game, market, side, -3.0, stake=stake)


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------

def test_settle_spread_win(db_session, make_game):
    game = make_game()
    bet = place_bet(db_session, game, "spread", "home", -5.5)
    _finish(game, 100, 93)
    assert settle_bet(bet, game)
    assert bet.result == "win"
    assert bet.profit_units == pytest.approx(0.90909, abs=1e-5)
    assert bet.graded_at is not None


def test_settle_is_idempotent(db_session, make_game):
    game = make_game()
    bet = place_bet(db_session, game, "spread", "away", -5.5)
    _finish(game, 100, 93)
    assert settle_bet(bet, game)
    assert bet.result == "loss"
    assert not settle_bet(bet, game)


def test_settle_waits_for_final(db_session, make_game):
    game = make_game()
    bet = place_bet(db_session, game, "total", "over", 48.5)
    assert not settle_bet(bet, game)
    assert bet.result == "pending"


def test_score_correction_resettles(db_session, make_game):
    game = make_game()
    bet = place_bet(db_session, game, "spread", "home", -7.0)
    _finish(game, 100, 93)
    settle_bet(bet, game)
    assert bet.result == "push"
    game.home_score = 101
    assert settle_bet(bet, game)
    assert bet.result == "win"


def test_grade_pending_bets(db_session, make_game):
    done = make_game()
    waiting = make_game(home="Texas", away="Oklahoma")
    cancelled = make_game(home="Utah", away="BYU")
    place_bet(db_session, done, "spread", "home", -3.5)
    place_bet(db_session, done, "total", "under", 50.5)
    place_bet(db_session, waiting, "spread", "away", 2.5)
    place_bet(db_session, cancelled, "spread", "home", -1.5)
    _finish(done, 24, 17)
    cancelled.status = "cancelled"
    db_session.commit()

    out = grade_pending_bets(db_session)

    assert out["processed"] == 3
    assert out["skipped"] == 1
    assert (out["wins"], out["losses"], out["pushes"]) == (2, 0, 1)
    void = db_session.query(BetRecord).filter(BetRecord.game_id == cancelled.id).one()
    assert void.result == "push"
    assert void.profit_units == 0.0
    assert "cancelled" in void.notes

    again = grade_pending_bets(db_session)
    assert again["processed"] == 0


# ---------------------------------------------------------------------------
# CLV
# ---------------------------------------------------------------------------

def test_update_clv(db_session, make_game):
    game = make_game(start_date=KICKOFF)
    ticks = [
        LineTick(str(game.id), "draftkings", "spread", "home", -3.0, -110, KICKOFF - timedelta(days=2)),
        LineTick(str(game.id), "draftkings", "spread", "home", -5.0, -110, KICKOFF - timedelta(hours=1)),
        LineTick(str(game.id), "draftkings", "spread", "home", -9.0, -110, KICKOFF + timedelta(hours=1)),
    ]
    insert_ticks(db_session, game, ticks)
    bet = place_bet(db_session, game, "spread", "home", -3.0)

    out = update_clv(db_session, [game.id])

    assert out == {"clv_updated": 1, "missing_close": 0}
    assert bet.closing_line == -5.0
    assert bet.clv_points == pytest.approx(2.0)
    assert update_clv(db_session, [game.id])["clv_updated"] == 0


def test_update_clv_missing_close(db_session, make_game):
    game = make_game()
    place_bet(db_session, game, "total", "over", 48.5)
    assert update_clv(db_session, [game.id]) == {"clv_updated": 0, "missing_close": 1}


# ---------------------------------------------------------------------------
# bets_for
# ---------------------------------------------------------------------------

def test_bets_for_filters(db_session, make_game):
    game = make_game()
    spread = place_bet(db_session, game, "spread", "home", -5.5)
    place_bet(db_session, game, "total", "over", 55.5)
    spread.result = "win"
    db_session.flush()

    assert [b.id for b in bets_for(db_session, result="win")] == [spread.id]
    assert [b.market for b in bets_for(db_session, market="total")] == ["total"]
    assert len(bets_for(db_session)) == 2
    assert len(bets_for(db_session, limit=1)) == 1
