"""
Performance analytics over graded bets.

All public functions receive a SQLAlchemy Session and return plain dicts
so they can be called from FastAPI endpoints, scripts or background jobs.
Win/loss/ROI arithmetic is delegated to :mod:`college_edge.core.grading`.
"""

import logging
from datetime import datetime, timedelta
from statistics import median
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from college_edge.core import grading
from college_edge.models import BetRecord, Game

logger = logging.getLogger(__name__)

# CLV status thresholds, in points.
CLV_HEALTHY_POINTS = 0.5
CLV_STOP_POINTS = -0.5


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _mean(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def _clv_status(mean_clv: Optional[float]) -> str:
    if mean_clv is None:
        return "UNKNOWN"
    if mean_clv > CLV_HEALTHY_POINTS:
        return "HEALTHY"
    if mean_clv >= CLV_STOP_POINTS:
        return "WARNING"
    return "STOP"


def _graded_bets(db: Session, cutoff: Optional[datetime] = None, paper: Optional[bool] = None) -> List[BetRecord]:
    """Settled bets (pushes included), oldest game first."""
    q = (
        db.query(BetRecord)
        .join(Game)
        .options(joinedload(BetRecord.game))
        .filter(BetRecord.result != grading.PENDING)
    )
    if cutoff:
        q = q.filter(BetRecord.placed_at >= cutoff)
    if paper is not None:
        q = q.filter(BetRecord.is_paper == paper)
    return q.order_by(Game.start_date.asc(), BetRecord.id.asc()).all()


def _summary(bets: List[BetRecord]) -> Dict:
    return grading.summarize((b.result, b.stake or 1.0, b.price or -110) for b in bets).to_dict()


def _group(bets: List[BetRecord], key) -> Dict[str, Dict]:
    groups: Dict[str, List[BetRecord]] = {}
    for b in bets:
        groups.setdefault(key(b) or "unknown", []).append(b)
    return {k: _summary(v) for k, v in sorted(groups.items())}


def _max_drawdown(bets: List[BetRecord]) -> float:
    running = peak = max_dd = 0.0
    for b in bets:
        running += b.profit_units or 0.0
        peak = max(peak, running)
        max_dd = max(max_dd, peak - running)
    return max_dd


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def calculate_summary_stats(db: Session, paper: Optional[bool] = None) -> Dict:
    """
    Full performance summary:
      - overall record, ROI and max drawdown in units
      - by market, by confidence tier, by edge bucket
      - CLV mean/median and status
      - rolling windows (last 10 / 50 / 100)
    """
    bets = _graded_bets(db, paper=paper)
    if not bets:
        return {"message": "No graded bets yet", "total_bets": 0}

    clv_vals = [b.clv_points for b in bets if b.clv_points is not None]
    mean_clv = _mean(clv_vals)

    overall = _summary(bets)
    overall.update({
        "max_drawdown_units": round(_max_drawdown(bets), 4),
        "mean_clv_points": round(mean_clv, 3) if mean_clv is not None else None,
        "median_clv_points": round(median(clv_vals), 3) if clv_vals else None,
        "positive_clv_rate": round(sum(v > 0 for v in clv_vals) / len(clv_vals), 4) if clv_vals else None,
        "status": _clv_status(mean_clv),
    })

    buckets = grading.edge_bucket_report(
        [(b.edge_points, b.result, b.stake or 1.0, b.price or -110) for b in bets if b.edge_points is not None]
    )

    rolling = {}
    for n in (10, 50, 100):
        if len(bets) >= n:
            rolling[f"last_{n}"] = _summary(bets[-n:])

    return {
        "overall": overall,
        "by_market": _group(bets, lambda b: b.market),
        "by_confidence": _group(bets, lambda b: b.confidence),
        "by_edge_bucket": [{"edge": bk.label, **bk.summary.to_dict()} for bk in buckets],
        "rolling_windows": rolling,
    }


def calculate_timeline(db: Session, days: int = 30) -> Dict:
    """Daily cumulative profit over the last ``days`` days."""
    cutoff = datetime.utcnow() - timedelta(days=days)
    bets = _graded_bets(db, cutoff=cutoff)
    daily: Dict[str, float] = {}
    for b in bets:
        day = b.game.start_date.date().isoformat()
        daily[day] = daily.get(day, 0.0) + (b.profit_units or 0.0)

    cumulative = 0.0
    timeline = []
    for day in sorted(daily):
        cumulative += daily[day]
        timeline.append({
            "date": day,
            "profit_units": round(daily[day], 4),
            "cumulative_units": round(cumulative, 4),
        })
    return {"days": days, "timeline": timeline}
