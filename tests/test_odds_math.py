"""Tests for core.odds_math."""

import pytest

from college_edge.core.odds_math import (
    american_to_decimal,
    breakeven_win_rate,
    coinflip_roi,
    implied_prob,
    remove_vig,
    win_profit,
)


@pytest.mark.parametrize("american, expected", [
    (-110, 1.90909),
    (+150, 2.5),
    (-200, 1.5),
    (+100, 2.0),
])
def test_american_to_decimal(american, expected):
    assert american_to_decimal(american) == pytest.approx(expected, abs=1e-4)


@pytest.mark.parametrize("bad", [0, 50, -99])
def test_invalid_odds_rejected(bad):
    with pytest.raises(ValueError):
        american_to_decimal(bad)


def test_implied_prob_and_breakeven():
    assert implied_prob(-110) == pytest.approx(0.5238, abs=1e-4)
    assert breakeven_win_rate(-110) == pytest.approx(implied_prob(-110))


def test_win_profit():
    assert win_profit(-110) == pytest.approx(0.90909, abs=1e-5)
    assert win_profit(+150, stake=2.0) == pytest.approx(3.0)


def test_win_profit_negative_stake():
    with pytest.raises(ValueError):
        win_profit(-110, stake=-1.0)


def test_remove_vig_symmetric_market():
    p_a, p_b = remove_vig(-110, -110)
    assert p_a == pytest.approx(0.5)
    assert p_b == pytest.approx(0.5)


def test_remove_vig_sums_to_one():
    p_a, p_b = remove_vig(-150, +130)
    assert p_a + p_b == pytest.approx(1.0)
    assert p_a > p_b


def test_coinflip_roi_is_the_vig():
    # Winning exactly half at -110 loses ~4.55% of every unit risked
    assert coinflip_roi(-110) == pytest.approx(-0.04545, abs=1e-4)
