"""
Reads and writes of the append-only market-line tick table.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from college_edge.core.lines import LineTick, closing_tick, consensus_point, opening_tick
from college_edge.models import Game, MarketLine

logger = logging.getLogger(__name__)


def _to_tick(row: MarketLine) -> LineTick:
    return LineTick(
        game_key=str(row.game_id),
        provider=row.provider,
        market=row.market,
        side=row.side,
        point=row.point,
        price=row.price,
        captured_at=row.captured_at,
    )


def game_ticks(db: Session, game_id: int, market: Optional[str] = None, side: Optional[str] = None) -> List[LineTick]:
    query = db.query(MarketLine).filter(MarketLine.game_id == game_id)
    if market:
        query = query.filter(MarketLine.market == market)
    if side:
        query = query.filter(MarketLine.side == side)
    return [_to_tick(r) for r in query.order_by(MarketLine.captured_at).all()]


def latest_capture(db: Session, game_id: int) -> Optional[datetime]:
    row = (
        db.query(MarketLine.captured_at)
        .filter(MarketLine.game_id == game_id)
        .order_by(MarketLine.captured_at.desc())
        .first()
    )
    return row[0] if row else None


def insert_ticks(db: Session, game: Game, ticks: List[LineTick]) -> Tuple[int, int]:
    """Append ticks for ``game``; returns ``(written, dedupe_hits)``.

    A tick identical in point and price to the latest stored tick of the
    same (provider, market, side) series is dropped.  The first tick of a
    series is flagged ``open``.
    """
    written = dupes = 0
    for tick in ticks:
        latest = (
            db.query(MarketLine)
            .filter(
                MarketLine.game_id == game.id,
                MarketLine.provider == tick.provider,
                MarketLine.market == tick.market,
                MarketLine.side == tick.side,
            )
            .order_by(MarketLine.captured_at.desc())
            .first()
        )
        if latest is not None and (
            latest.captured_at >= tick.captured_at
            or (latest.point == tick.point and latest.price == tick.price)
        ):
            dupes += 1
            continue
        db.add(MarketLine(
            game_id=game.id,
            provider=tick.provider,
            market=tick.market,
            side=tick.side,
            point=tick.point,
            price=tick.price,
            captured_at=tick.captured_at,
            tick_type="open" if latest is None else "tick",
        ))
        db.flush()
        written += 1
    return written, dupes


def line_summary(db: Session, game: Game, market: str, side: str, as_of: Optional[datetime] = None) -> Dict:
    """Opening, current (as of ``as_of``) and closing consensus for one side."""
    ticks = game_ticks(db, game.id, market, side)
    if as_of is not None:
        ticks = [t for t in ticks if t.captured_at <= as_of]
    by_provider: Dict[str, List[LineTick]] = {}
    for tick in ticks:
        by_provider.setdefault(tick.provider, []).append(tick)

    opens = [opening_tick(series) for series in by_provider.values()]
    closes = [closing_tick(series, game.start_date) for series in by_provider.values()]
    return {
        "open": consensus_point([t for t in opens if t is not None]),
        "current": consensus_point(ticks),
        "close": consensus_point([t for t in closes if t is not None]),
        "providers": len(by_provider),
    }


def mark_closing_ticks(db: Session, game: Game) -> int:
    """Flag the last pre-kickoff tick of every series as ``close``.

    A series with a single tick keeps its ``open`` flag.  Returns the number
    of series that have a closing tick.
    """
    rows = db.query(MarketLine).filter(MarketLine.game_id == game.id).all()
    series: Dict[tuple, List[MarketLine]] = {}
    for row in rows:
        series.setdefault((row.provider, row.market, row.side), []).append(row)

    marked = 0
    for key, members in series.items():
        before = [r for r in members if r.captured_at < game.start_date]
        if not before:
            logger.debug("No pre-kickoff tick for game %s series %s", game.id, key)
            continue
        last = max(before, key=lambda r: r.captured_at)
        if last.tick_type == "tick":
            last.tick_type = "close"
        marked += 1
    return marked
