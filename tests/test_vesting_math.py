"""
Release arithmetic: cliff, linear window, TGE bucket.

All amounts are integer base units; divisions truncate.
"""

from salevest.vesting import (
    VestingParameters,
    cliff_passed,
    tge_amount,
    vested_amount,
)

from conftest import CLIFF, DAY, DURATION, ETHER, T0

PARAMS = VestingParameters(
    cliff_seconds=CLIFF,
    start_time=T0,
    duration_seconds=DURATION,
    tge_time=T0,
    tge_basis_points=2000,
)
TOTAL = 100 * ETHER


def test_nothing_vests_before_cliff_end():
    assert vested_amount(TOTAL, PARAMS, T0 - 1) == 0
    assert vested_amount(TOTAL, PARAMS, T0) == 0
    assert vested_amount(TOTAL, PARAMS, T0 + CLIFF - 1) == 0
    assert not cliff_passed(PARAMS, T0 + CLIFF - 1)


def test_cliff_end_is_inclusive():
    assert cliff_passed(PARAMS, T0 + CLIFF)
    assert vested_amount(TOTAL, PARAMS, T0 + CLIFF) == 0


def test_everything_vests_at_window_end():
    end = T0 + CLIFF + DURATION
    assert vested_amount(TOTAL, PARAMS, end - 1) < TOTAL
    assert vested_amount(TOTAL, PARAMS, end) == TOTAL
    assert vested_amount(TOTAL, PARAMS, end + 10 * DURATION) == TOTAL


def test_linear_release_truncates():
    # 100e18 * 100 / 31536000 = 317097919837645.83...
    assert vested_amount(TOTAL, PARAMS, T0 + CLIFF + 100) == 317097919837645


def test_release_is_monotonic_inside_window():
    previous = 0
    for step in range(0, DURATION + 1, DURATION // 97):
        current = vested_amount(TOTAL, PARAMS, T0 + CLIFF + step)
        assert current >= previous
        previous = current
    # coarse steps are strictly increasing for a large grant
    assert vested_amount(TOTAL, PARAMS, T0 + CLIFF + DAY) < vested_amount(TOTAL, PARAMS, T0 + CLIFF + 2 * DAY)


def test_zero_duration_releases_everything_at_cliff():
    params = VestingParameters(cliff_seconds=10, start_time=T0, duration_seconds=0, tge_time=T0, tge_basis_points=0)
    assert vested_amount(TOTAL, params, T0 + 9) == 0
    assert vested_amount(TOTAL, params, T0 + 10) == TOTAL


def test_tge_amount_uses_basis_points():
    assert tge_amount(100, PARAMS) == 20
    assert tge_amount(TOTAL, PARAMS) == 20 * ETHER
    # truncation
    assert tge_amount(7, PARAMS) == 1
    full = VestingParameters(0, 0, 0, 0, 10_000)
    assert tge_amount(TOTAL, full) == TOTAL
