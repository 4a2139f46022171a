"""Market-line tick selection.

A market line is an append-only series of ticks per (game, provider,
market, side).  The opening line is the earliest tick and the closing line
is the last tick captured strictly before kickoff.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from statistics import median
from typing import Iterable, List, Optional


@dataclass(frozen=True, slots=True)
class LineTick:
    """One observed price for one side of one market."""

    game_key: str
    provider: str
    market: str          # "spread" | "total"
    side: str            # "home" | "away" | "over" | "under"
    point: float
    price: int
    captured_at: datetime


def opening_tick(ticks: Iterable[LineTick]) -> Optional[LineTick]:
    """Earliest tick, or ``None`` for an empty series."""
    ordered = sorted(ticks, key=lambda t: t.captured_at)
    return ordered[0] if ordered else None


def closing_tick(ticks: Iterable[LineTick], kickoff: datetime) -> Optional[LineTick]:
    """Latest tick captured strictly before ``kickoff``."""
    before = [t for t in ticks if t.captured_at < kickoff]
    if not before:
        return None
    return max(before, key=lambda t: t.captured_at)


def latest_tick(ticks: Iterable[LineTick]) -> Optional[LineTick]:
    ordered = sorted(ticks, key=lambda t: t.captured_at)
    return ordered[-1] if ordered else None


def consensus_point(ticks: Iterable[LineTick]) -> Optional[float]:
    """Median point of the most recent tick from each provider."""
    by_provider: dict[str, LineTick] = {}
    for tick in ticks:
        current = by_provider.get(tick.provider)
        if current is None or tick.captured_at > current.captured_at:
            by_provider[tick.provider] = tick
    points: List[float] = [t.point for t in by_provider.values()]
    if not points:
        return None
    return float(median(points))
