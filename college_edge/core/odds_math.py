"""Fundamental odds mathematics: the single source of truth.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never reimplement payout maths in services.

Design decisions
----------------
* All functions accept ``int`` American odds because The Odds API returns
  integers.  Decimal odds must be converted by the caller.
* Vig removal is proportional.  Spread and total markets are priced close
  to a coin flip, where proportional normalisation and Shin agree to well
  under a tenth of a percent.
* At the standard -110 price a bettor must win 52.38% to break even, and a
  bettor who wins exactly half the time loses 4.545% of every unit risked.
"""

from __future__ import annotations

from typing import Final

#: American-odds magnitude floor.  Anything below indicates a data error.
_MIN_ODDS_MAGNITUDE: Final[int] = 100

#: Standard price for spread and total markets.
STANDARD_ODDS: Final[int] = -110


def _check(american: int | float) -> None:
    if abs(american) < _MIN_ODDS_MAGNITUDE:
        raise ValueError(
            f"Invalid American odds {american!r}: magnitude must be ≥ 100."
        )


def american_to_decimal(american: int | float) -> float:
    """Convert American odds to decimal format (stake included).

    Examples::

        american_to_decimal(-110) → 1.9091
        american_to_decimal(+150) → 2.5000

    Raises:
        ValueError: If ``|american| < 100``.
    """
    _check(american)
    if american > 0:
        return american / 100.0 + 1.0
    return 100.0 / abs(american) + 1.0


def implied_prob(american: int | float) -> float:
    """Raw implied probability from American odds (vig-inclusive)."""
    return 1.0 / american_to_decimal(american)


def win_profit(american: int | float = STANDARD_ODDS, stake: float = 1.0) -> float:
    """Profit on a winning bet of ``stake`` units, stake excluded.

    ``win_profit(-110)`` is 0.90909...; ``win_profit(+150)`` is 1.5.

    Raises:
        ValueError: On invalid odds or a negative stake.
    """
    if stake < 0:
        raise ValueError(f"stake must be non-negative, got {stake!r}")
    return stake * (american_to_decimal(american) - 1.0)


def breakeven_win_rate(american: int | float = STANDARD_ODDS) -> float:
    """Win rate at which a flat bettor at ``american`` neither wins nor loses.

    Identical to the vig-inclusive implied probability: 0.5238 at -110.
    """
    return implied_prob(american)


def remove_vig(odds_a: int | float, odds_b: int | float) -> tuple[float, float]:
    """Proportional two-way vig removal.

    Returns:
        ``(p_a, p_b)`` no-vig probabilities summing to 1.0.
    """
    raw_a = implied_prob(odds_a)
    raw_b = implied_prob(odds_b)
    overround = raw_a + raw_b
    return raw_a / overround, raw_b / overround


def coinflip_roi(american: int | float = STANDARD_ODDS) -> float:
    """Expected ROI per unit risked for a bettor who wins exactly 50%.

    At -110 this is ``0.5 * 0.90909 - 0.5 = -0.04545``.
    """
    return 0.5 * win_profit(american) - 0.5
