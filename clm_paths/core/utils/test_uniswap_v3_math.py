from __future__ import annotations

import pytest

from clm_paths.core.utils.uniswap_v3_math import (
    MAX_SQRT_RATIO,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MIN_TICK,
    ONE_E18,
    Q96,
    TickOutOfRangeError,
    amounts_for_liquidity,
    base_ticks,
    floor_tick,
    format_x18,
    liquidity_for_amounts,
    price_to_tick,
    price_x18_at_tick,
    price_x18_from_sqrt_price_x96,
    round_tick_up,
    sqrt_price_x96_from_tick,
    tick_from_sqrt_price_x96,
    tick_to_price,
)

# ── sqrt price ladder ────────────────────────────────────────────────────────


def test_sqrt_price_at_zero_tick_is_one():
    assert sqrt_price_x96_from_tick(0) == Q96


def test_sqrt_price_at_bounds_matches_reference_constants():
    assert sqrt_price_x96_from_tick(MIN_TICK) == MIN_SQRT_RATIO
    assert sqrt_price_x96_from_tick(MAX_TICK) == MAX_SQRT_RATIO


def test_sqrt_price_reference_values():
    # values produced by the on-chain TickMath library
    assert sqrt_price_x96_from_tick(1) == 79232123823359799118286999568
    assert sqrt_price_x96_from_tick(-1) == 79224201403219477170569942574
    assert sqrt_price_x96_from_tick(60) == 79466191966197645195421774833
    assert sqrt_price_x96_from_tick(-60) == 78990846045029531151608375686


@pytest.mark.parametrize("tick", [MIN_TICK - 1, MAX_TICK + 1, 10**7, -(10**7)])
def test_sqrt_price_rejects_out_of_range_ticks(tick):
    with pytest.raises(TickOutOfRangeError):
        sqrt_price_x96_from_tick(tick)


def test_out_of_range_error_is_value_error():
    with pytest.raises(ValueError):
        sqrt_price_x96_from_tick(MAX_TICK + 1)


def test_sqrt_price_is_strictly_increasing():
    prev = sqrt_price_x96_from_tick(-1000)
    for tick in range(-999, 1000, 37):
        cur = sqrt_price_x96_from_tick(tick)
        assert cur > prev
        prev = cur


# ── tick from sqrt price ─────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "tick",
    [MIN_TICK, MIN_TICK + 1, -500_000, -46054, -1001, -1, 0, 1, 1000, 46054, 500_000, MAX_TICK - 1],
)
def test_tick_round_trip_is_exact(tick):
    assert tick_from_sqrt_price_x96(sqrt_price_x96_from_tick(tick)) == tick


def test_tick_between_two_sqrt_prices_rounds_down():
    lower = sqrt_price_x96_from_tick(100)
    upper = sqrt_price_x96_from_tick(101)
    assert tick_from_sqrt_price_x96((lower + upper) // 2) == 100
    assert tick_from_sqrt_price_x96(upper - 1) == 100


@pytest.mark.parametrize("sqrt_price", [0, MIN_SQRT_RATIO - 1, MAX_SQRT_RATIO])
def test_tick_from_sqrt_price_rejects_out_of_range(sqrt_price):
    with pytest.raises(TickOutOfRangeError):
        tick_from_sqrt_price_x96(sqrt_price)


def test_tick_from_sqrt_price_accepts_min_ratio():
    assert tick_from_sqrt_price_x96(MIN_SQRT_RATIO) == MIN_TICK
    assert tick_from_sqrt_price_x96(MAX_SQRT_RATIO - 1) == MAX_TICK - 1


# ── prices ───────────────────────────────────────────────────────────────────


def test_price_x18_at_parity():
    assert price_x18_from_sqrt_price_x96(Q96) == ONE_E18


def test_price_x18_rescales_for_decimals():
    raw = price_x18_from_sqrt_price_x96(Q96)
    assert price_x18_from_sqrt_price_x96(Q96, 8, 6) == raw * 100
    assert price_x18_from_sqrt_price_x96(Q96, 6, 8) == raw // 100
    assert price_x18_from_sqrt_price_x96(Q96, 6, 6) == raw


def test_price_x18_truncates():
    sqrt_price = sqrt_price_x96_from_tick(1)
    scaled = sqrt_price * ONE_E18 // Q96
    assert price_x18_from_sqrt_price_x96(sqrt_price) == scaled * scaled // ONE_E18


def test_price_x18_at_tick_tracks_float_price():
    price = price_x18_at_tick(46054) / ONE_E18
    assert abs(price - tick_to_price(46054)) / price < 1e-9


def test_price_to_tick_round_trip():
    for tick in [-1000, -100, 0, 100, 1000, 5000]:
        recovered = price_to_tick(tick_to_price(tick))
        assert abs(recovered - tick) <= 1


def test_format_x18():
    assert format_x18(ONE_E18) == "1"
    assert format_x18(1_500_000_000_000_000_000) == "1.5"
    assert format_x18(123_456_789_000_000_000, digits=4) == "0.1234"


# ── spacing ──────────────────────────────────────────────────────────────────


def test_floor_tick():
    spacing = 10
    assert floor_tick(23, spacing) == 20
    assert floor_tick(20, spacing) == 20
    assert floor_tick(0, spacing) == 0
    assert floor_tick(-5, spacing) == -10
    assert floor_tick(-10, spacing) == -10
    assert floor_tick(-13, spacing) == -20


@pytest.mark.parametrize("tick", [-1234, -60, -59, -1, 0, 1, 59, 60, 1234])
@pytest.mark.parametrize("spacing", [1, 10, 60, 200])
def test_floor_tick_is_idempotent(tick, spacing):
    once = floor_tick(tick, spacing)
    assert floor_tick(once, spacing) == once
    assert once % spacing == 0
    if tick < 0 and tick % spacing:
        assert once < tick


def test_floor_tick_rejects_bad_spacing():
    with pytest.raises(ValueError):
        floor_tick(10, 0)


def test_round_tick_up():
    spacing = 10
    assert round_tick_up(23, spacing) == 30
    assert round_tick_up(20, spacing) == 20
    assert round_tick_up(-5, spacing) == 0
    assert round_tick_up(-13, spacing) == -10


@pytest.mark.parametrize("tick", [-1005, -1000, -1, 0, 7, 1000])
@pytest.mark.parametrize("spacing,width", [(10, 200), (60, 600), (1, 5)])
def test_base_ticks_is_symmetric(tick, spacing, width):
    lower, upper = base_ticks(tick, spacing, width)
    assert lower < upper
    assert lower % spacing == 0 and upper % spacing == 0
    assert upper - lower == 2 * width


def test_base_ticks_scenario():
    assert base_ticks(1000, 10, 200) == (800, 1200)
    assert base_ticks(-1005, 10, 200) == (-1210, -810)


# ── liquidity ────────────────────────────────────────────────────────────────


def test_amounts_for_liquidity_in_range():
    sqrt_price = sqrt_price_x96_from_tick(0)
    amount0, amount1 = amounts_for_liquidity(sqrt_price, -100, 100, 10**18)
    assert amount0 > 0
    assert amount1 > 0


def test_amounts_for_liquidity_below_range():
    sqrt_price = sqrt_price_x96_from_tick(0)
    amount0, amount1 = amounts_for_liquidity(sqrt_price, 100, 200, 10**18)
    assert amount0 > 0
    assert amount1 == 0


def test_amounts_for_liquidity_above_range():
    sqrt_price = sqrt_price_x96_from_tick(0)
    amount0, amount1 = amounts_for_liquidity(sqrt_price, -200, -100, 10**18)
    assert amount0 == 0
    assert amount1 > 0


def test_liquidity_for_amounts_never_overspends():
    sqrt_price = sqrt_price_x96_from_tick(37)
    for amount0, amount1 in [(10**18, 10**18), (10**18, 10**15), (5, 10**20)]:
        liq = liquidity_for_amounts(sqrt_price, -600, 600, amount0, amount1)
        used0, used1 = amounts_for_liquidity(sqrt_price, -600, 600, liq)
        assert used0 <= amount0
        assert used1 <= amount1


def test_liquidity_for_amounts_single_sided():
    sqrt_price = sqrt_price_x96_from_tick(0)
    assert liquidity_for_amounts(sqrt_price, 100, 200, 0, 10**18) == 0
    assert liquidity_for_amounts(sqrt_price, 100, 200, 10**18, 0) > 0
    assert liquidity_for_amounts(sqrt_price, -200, -100, 0, 10**18) > 0
