"""
Paper bet lifecycle: place, grade, closing line value.

State machine::

    pending ──grade──► win | loss | push

A bet leaves ``pending`` exactly once.  Grading a settled bet again with
the same final score is a no-op; a changed score (stat correction) is
logged and the bet is re-settled.  All outcome maths lives in
:mod:`college_edge.core.grading`.
"""

import logging
import os
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from college_edge.core import grading
from college_edge.core.batch import BatchSummary
from college_edge.core.sport_config import MODEL_VERSION
from college_edge.models import BetRecord, Game, SessionLocal, GAME_CANCELLED, GAME_POSTPONED
from college_edge.services.market_lines import line_summary

logger = logging.getLogger(__name__)

DEFAULT_STAKE_UNITS = float(os.getenv("DEFAULT_STAKE_UNITS", "1.0"))

_MARKET_SIDES = {"spread": ("home", "away"), "total": ("over", "under")}


class DuplicateBetError(ValueError):
    """A bet with this event id already exists."""


def make_event_id(game_id: int, market: str, side: str, model_version: str = MODEL_VERSION) -> str:
    return f"{game_id}:{market}:{side}:{model_version}"


def place_bet(
    db: Session,
    game: Game,
    market: str,
    side: str,
    line: float,
    price: int = -110,
    stake: float = DEFAULT_STAKE_UNITS,
    edge_points: Optional[float] = None,
    confidence: Optional[str] = None,
    model_version: str = MODEL_VERSION,
    is_paper: bool = True,
    notes: Optional[str] = None,
) -> BetRecord:
    """Record a new pending bet.

    Raises:
        ValueError: Unknown market/side or a non-positive stake.
        DuplicateBetError: A bet with the same event id already exists.
    """
    if side not in _MARKET_SIDES.get(market, ()):
        raise ValueError(f"Invalid market/side {market!r}/{side!r}")
    if stake <= 0:
        raise ValueError(f"stake must be positive, got {stake!r}")

    event_id = make_event_id(game.id, market, side, model_version)
    if db.query(BetRecord).filter(BetRecord.event_id == event_id).first():
        raise DuplicateBetError(event_id)

    bet = BetRecord(
        event_id=event_id,
        game_id=game.id,
        market=market,
        side=side,
        line=line,
        price=price,
        stake=stake,
        edge_points=edge_points,
        confidence=confidence,
        model_version=model_version,
        is_paper=is_paper,
        result=grading.PENDING,
        notes=notes,
    )
    db.add(bet)
    db.flush()
    logger.info("Placed %s bet %s %s %+.1f @ %d", market, event_id, side, line, price)
    return bet


def settle_bet(bet: BetRecord, game: Game) -> bool:
    """Grade one bet against its game. Returns True if anything changed."""
    if not game.is_final:
        return False

    result = grading.grade_market(bet.market, bet.side, bet.line, game.home_score, game.away_score)
    profit = grading.profit_units(result, bet.price or -110, bet.stake or DEFAULT_STAKE_UNITS)

    if bet.result == result and bet.profit_units == profit:
        return False
    if bet.result != grading.PENDING:
        logger.warning(
            "Re-settling bet %s: %s -> %s (score %s-%s)",
            bet.event_id, bet.result, result, game.home_score, game.away_score,
        )
    bet.result = result
    bet.profit_units = profit
    bet.graded_at = datetime.utcnow()
    return True


def grade_pending_bets(db: Optional[Session] = None) -> Dict:
    """Settle every pending bet whose game is final.

    Bets on cancelled or postponed games are voided as pushes.
    """
    logger.info("Starting grade_pending_bets")
    summary = BatchSummary(job="grade_pending_bets")
    owned = db is None
    db = db or SessionLocal()
    wins = losses = pushes = 0
    try:
        pending = db.query(BetRecord).filter(BetRecord.result == grading.PENDING).all()
        for bet in pending:
            game = bet.game
            try:
                if game.status in (GAME_CANCELLED, GAME_POSTPONED):
                    bet.result = grading.PUSH
                    bet.profit_units = 0.0
                    bet.graded_at = datetime.utcnow()
                    bet.notes = f"void: game {game.status}"
                elif not settle_bet(bet, game):
                    summary.skip()
                    continue
            except ValueError as exc:
                logger.error("Could not grade bet %s: %s", bet.event_id, exc)
                summary.fail(f"bet {bet.event_id}: {exc}")
                continue
            summary.processed += 1
            wins += bet.result == grading.WIN
            losses += bet.result == grading.LOSS
            pushes += bet.result == grading.PUSH
        db.commit()
    except Exception as exc:
        logger.error("grade_pending_bets failed: %s", exc, exc_info=True)
        db.rollback()
        summary.fail(str(exc))
    finally:
        if owned:
            db.close()

    summary.extra.update(wins=wins, losses=losses, pushes=pushes)
    logger.info("grade_pending_bets done: %s", summary.to_dict())
    return summary.to_dict()


def update_clv(db: Session, game_ids: Iterable[int]) -> Dict:
    """Fill ``closing_line`` / ``clv_points`` for bets on the given games."""
    updated = 0
    missing: List[int] = []
    for game in db.query(Game).filter(Game.id.in_(list(game_ids))).all():
        for bet in game.bets:
            close = line_summary(db, game, bet.market, bet.side)["close"]
            if close is None:
                missing.append(bet.id)
                continue
            clv = grading.clv_points(bet.market, bet.side, bet.line, close)
            if bet.closing_line != close or bet.clv_points != clv:
                bet.closing_line = close
                bet.clv_points = clv
                updated += 1
    db.commit()
    if missing:
        logger.info("No closing line for %d bets", len(missing))
    return {"clv_updated": updated, "missing_close": len(missing)}


def bets_for(db: Session, result: Optional[str] = None, market: Optional[str] = None,
             limit: int = 200) -> List[BetRecord]:
    query = db.query(BetRecord)
    if result:
        query = query.filter(BetRecord.result == result)
    if market:
        query = query.filter(BetRecord.market == market)
    return query.order_by(BetRecord.placed_at.desc()).limit(limit).all()
