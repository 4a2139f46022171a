"""Tests for the market-line tick table helpers."""

from datetime import datetime

import pytest

from college_edge.core.lines import LineTick
from college_edge.models import MarketLine
from college_edge.services import market_lines


def _tick(provider, point, captured_at, market="spread", side="home", price=-110):
    return LineTick("g", provider, market, side, point, price, captured_at)


def _types(db_session, game, provider="dk", market="spread", side="home"):
    rows = (
        db_session.query(MarketLine)
        .filter(
            MarketLine.game_id == game.id,
            MarketLine.provider == provider,
            MarketLine.market == market,
            MarketLine.side == side,
        )
        .order_by(MarketLine.captured_at)
        .all()
    )
    return [(r.point, r.tick_type) for r in rows]


@pytest.fixture
def priced_game(db_session, make_game):
    """Kickoff 2024-09-07 19:30 with two books moving toward the home side."""
    game = make_game()
    market_lines.insert_ticks(db_session, game, [
        _tick("dk", -3.5, datetime(2024, 9, 5, 12, 0)),
        _tick("dk", -4.0, datetime(2024, 9, 6, 12, 0)),
        _tick("dk", -5.0, datetime(2024, 9, 7, 20, 0)),   # after kickoff
        _tick("fd", -3.0, datetime(2024, 9, 5, 12, 0)),
        _tick("fd", -4.5, datetime(2024, 9, 7, 10, 0)),
    ])
    return game


# ---------------------------------------------------------------------------
# insert_ticks
# ---------------------------------------------------------------------------

def test_insert_ticks_flags_open_and_drops_duplicates(db_session, make_game):
    game = make_game()
    written, dupes = market_lines.insert_ticks(db_session, game, [
        _tick("dk", -3.5, datetime(2024, 9, 5, 12, 0)),
        _tick("dk", -3.5, datetime(2024, 9, 5, 13, 0)),   # unchanged
        _tick("dk", -4.0, datetime(2024, 9, 6, 12, 0)),
        _tick("dk", -3.0, datetime(2024, 9, 5, 18, 0)),   # older than latest
    ])
    assert (written, dupes) == (2, 2)
    assert _types(db_session, game) == [(-3.5, "open"), (-4.0, "tick")]


def test_insert_ticks_series_are_independent(db_session, make_game):
    game = make_game()
    at = datetime(2024, 9, 5, 12, 0)
    written, dupes = market_lines.insert_ticks(db_session, game, [
        _tick("dk", -3.5, at),
        _tick("dk", 3.5, at, side="away"),
        _tick("dk", 55.5, at, market="total", side="over"),
    ])
    assert (written, dupes) == (3, 0)
    assert market_lines.latest_capture(db_session, game.id) == at


def test_game_ticks_filters(db_session, priced_game):
    assert len(market_lines.game_ticks(db_session, priced_game.id)) == 5
    dk = [t for t in market_lines.game_ticks(db_session, priced_game.id, "spread", "home")
          if t.provider == "dk"]
    assert [t.point for t in dk] == [-3.5, -4.0, -5.0]
    assert market_lines.game_ticks(db_session, priced_game.id, "total") == []


# ---------------------------------------------------------------------------
# line_summary
# ---------------------------------------------------------------------------

def test_line_summary_consensus(db_session, priced_game):
    summary = market_lines.line_summary(db_session, priced_game, "spread", "home")
    assert summary["providers"] == 2
    assert summary["open"] == pytest.approx(-3.25)
    assert summary["current"] == pytest.approx(-4.75)
    # Post-kickoff dk tick never counts toward the close
    assert summary["close"] == pytest.approx(-4.25)


def test_line_summary_as_of(db_session, priced_game):
    summary = market_lines.line_summary(
        db_session, priced_game, "spread", "home", as_of=datetime(2024, 9, 6, 18, 0)
    )
    assert summary["open"] == pytest.approx(-3.25)
    assert summary["current"] == pytest.approx(-3.5)


def test_line_summary_no_ticks(db_session, make_game):
    game = make_game()
    summary = market_lines.line_summary(db_session, game, "spread", "home")
    assert summary == {"open": None, "current": None, "close": None, "providers": 0}


# ---------------------------------------------------------------------------
# mark_closing_ticks
# ---------------------------------------------------------------------------

def test_mark_closing_ticks(db_session, priced_game):
    market_lines.insert_ticks(db_session, priced_game, [
        _tick("fd", 55.5, datetime(2024, 9, 5, 12, 0), market="total", side="over"),
    ])
    assert market_lines.mark_closing_ticks(db_session, priced_game) == 3
    assert _types(db_session, priced_game, "dk") == [(-3.5, "open"), (-4.0, "close"), (-5.0, "tick")]
    assert _types(db_session, priced_game, "fd") == [(-3.0, "open"), (-4.5, "close")]
    # A one-tick series keeps its open flag
    assert _types(db_session, priced_game, "fd", "total", "over") == [(55.5, "open")]


def test_mark_closing_ticks_idempotent(db_session, priced_game):
    market_lines.mark_closing_ticks(db_session, priced_game)
    first = _types(db_session, priced_game, "dk")
    assert market_lines.mark_closing_ticks(db_session, priced_game) == 2
    assert _types(db_session, priced_game, "dk") == first


def test_mark_closing_ticks_without_pre_kickoff_tick(db_session, make_game):
    game = make_game()
    market_lines.insert_ticks(db_session, game, [_tick("dk", -3.0, datetime(2024, 9, 8, 1, 0))])
    assert market_lines.mark_closing_ticks(db_session, game) == 0
