"""Uniswap v3 tick math.

Integer-exact conversions between ticks, Q64.96 square-root prices and
1e18-scaled prices, plus spacing-aligned range helpers and the liquidity
formulas needed to open and close ranges. Every routine here is pure; the
ladder constants are the canonical TickMath table, so results are
bit-for-bit identical to the on-chain library.
"""

from __future__ import annotations

import math

MIN_TICK = -887272
MAX_TICK = 887272
MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

Q32 = 1 << 32
Q96 = 1 << 96
Q128 = 1 << 128
ONE_E18 = 10**18
TICK_BASE = 1.0001
MAX_UINT128 = 2**128 - 1

# sqrt(1.0001) ** -(2 ** i) as Q128.128, for i in 0..19
_SQRT_RATIO_LADDER: tuple[tuple[int, int], ...] = (
    (0x1, 0xFFFCB933BD6FAD37AA2D162D1A594001),
    (0x2, 0xFFF97272373D413259A46990580E213A),
    (0x4, 0xFFF2E50F5F656932EF12357CF3C7FDCC),
    (0x8, 0xFFE5CACA7E10E4E61C3624EAA0941CD0),
    (0x10, 0xFFCB9843D60F6159C9DB58835C926644),
    (0x20, 0xFF973B41FA98C081472E6896DFB254C0),
    (0x40, 0xFF2EA16466C96A3843EC78B326B52861),
    (0x80, 0xFE5DEE046A99A2A811C461F1969C3053),
    (0x100, 0xFCBE86C7900A88AEDCFFC83B479AA3A4),
    (0x200, 0xF987A7253AC413176F2B074CF7815E54),
    (0x400, 0xF3392B0822B70005940C7A398E4B70F3),
    (0x800, 0xE7159475A2C29B7443B29C7FA6E889D9),
    (0x1000, 0xD097F3BDFD2022B8845AD8F792AA5825),
    (0x2000, 0xA9F746462D870FDF8A65DC1F90E061E5),
    (0x4000, 0x70D869A156D2A1B890BB3DF62BAF32F7),
    (0x8000, 0x31BE135F97D08FD981231505542FCFA6),
    (0x10000, 0x9AA508B5B7A84E1C677DE54F3E99BC9),
    (0x20000, 0x5D6AF8DEDB81196699C329225EE604),
    (0x40000, 0x2216E584F5FA1EA926041BEDFE98),
    (0x80000, 0x48A170391F7DC42444E8FA2),
)

# log_sqrt(1.0001)(2) as Q64.64 and the error bounds of the log2 approximation
_LOG_SQRT10001_FACTOR = 255738958999603826347141
_TICK_LOW_ERROR = 3402992956809132418596140100660247210
_TICK_HIGH_ERROR = 291339464771989622907027621153398088495


class TickOutOfRangeError(ValueError):
    """A tick or sqrt price falls outside the representable pool range."""


def sqrt_price_x96_from_tick(tick: int) -> int:
    if tick < MIN_TICK or tick > MAX_TICK:
        raise TickOutOfRangeError(
            f"tick {tick} out of range [{MIN_TICK}, {MAX_TICK}]"
        )

    abs_tick = tick if tick >= 0 else -tick
    ratio = Q128
    for bit, factor in _SQRT_RATIO_LADDER:
        if abs_tick & bit:
            ratio = (ratio * factor) >> 128

    if tick > 0:
        ratio = (1 << 256) // ratio

    # Q128.128 -> Q64.96, rounding up so the result never undershoots the tick
    sqrt_price_x96 = ratio >> 32
    if ratio & (Q32 - 1):
        sqrt_price_x96 += 1
    return sqrt_price_x96


def tick_from_sqrt_price_x96(sqrt_price_x96: int) -> int:
    """Greatest tick whose sqrt price is <= ``sqrt_price_x96``."""
    sqrt_price_x96 = int(sqrt_price_x96)
    if sqrt_price_x96 < MIN_SQRT_RATIO or sqrt_price_x96 >= MAX_SQRT_RATIO:
        raise TickOutOfRangeError(
            f"sqrt price {sqrt_price_x96} out of range "
            f"[{MIN_SQRT_RATIO}, {MAX_SQRT_RATIO})"
        )

    ratio = sqrt_price_x96 << 32
    msb = ratio.bit_length() - 1
    if msb >= 128:
        r = ratio >> (msb - 127)
    else:
        r = ratio << (127 - msb)

    log_2 = (msb - 128) << 64
    for shift in range(63, 49, -1):
        r = (r * r) >> 127
        f = r >> 128
        log_2 |= f << shift
        r >>= f

    log_sqrt10001 = log_2 * _LOG_SQRT10001_FACTOR
    tick_low = (log_sqrt10001 - _TICK_LOW_ERROR) >> 128
    tick_high = (log_sqrt10001 + _TICK_HIGH_ERROR) >> 128

    if tick_low == tick_high:
        return tick_low
    if sqrt_price_x96_from_tick(tick_high) <= sqrt_price_x96:
        return tick_high
    return tick_low


def adjust_price_for_decimals(price_x18: int, decimals0: int, decimals1: int) -> int:
    if decimals0 == decimals1:
        return price_x18
    factor = 10 ** abs(decimals0 - decimals1)
    if decimals0 > decimals1:
        return price_x18 * factor
    return price_x18 // factor


def price_x18_from_sqrt_price_x96(
    sqrt_price_x96: int, decimals0: int = 0, decimals1: int = 0
) -> int:
    """token1-per-token0 price scaled by 1e18.

    With the default decimals the result is the raw-unit price the pool trades
    at; pass the token decimals to get the human-readable price.
    """
    scaled = int(sqrt_price_x96) * ONE_E18 // Q96
    price = scaled * scaled // ONE_E18
    return adjust_price_for_decimals(price, decimals0, decimals1)


def price_x18_at_tick(tick: int, decimals0: int = 0, decimals1: int = 0) -> int:
    return price_x18_from_sqrt_price_x96(
        sqrt_price_x96_from_tick(tick), decimals0, decimals1
    )


def floor_tick(tick: int, spacing: int) -> int:
    """Round ``tick`` down to a multiple of ``spacing`` (toward -inf)."""
    if spacing <= 0:
        raise ValueError(f"tick spacing must be positive, got {spacing}")
    # Python's // already floors toward -inf for negative ticks
    return (tick // spacing) * spacing


def round_tick_up(tick: int, spacing: int) -> int:
    if spacing <= 0:
        raise ValueError(f"tick spacing must be positive, got {spacing}")
    return -((-tick) // spacing) * spacing


def base_ticks(tick: int, spacing: int, half_width: int) -> tuple[int, int]:
    """Symmetric range of ``half_width`` ticks around the floored tick."""
    tick_floor = floor_tick(tick, spacing)
    return tick_floor - half_width, tick_floor + half_width


def tick_to_price(tick: int) -> float:
    return TICK_BASE**tick


def price_to_tick(price: float) -> int:
    if price <= 0:
        raise ValueError("price must be positive")
    return math.floor(math.log(price) / math.log(TICK_BASE))


def format_x18(value: int, digits: int = 6) -> str:
    whole, frac = divmod(int(value), ONE_E18)
    frac_str = str(frac).rjust(18, "0")[:digits].rstrip("0")
    return f"{whole}.{frac_str}" if frac_str else str(whole)


# ── liquidity ────────────────────────────────────────────────────────────────


def liquidity_for_amount0(sqrt_a: int, sqrt_b: int, amount0: int) -> int:
    """L = amount0 * sqrtA * sqrtB / (sqrtB - sqrtA)"""
    if sqrt_a > sqrt_b:
        sqrt_a, sqrt_b = sqrt_b, sqrt_a
    if sqrt_b == sqrt_a:
        return 0
    intermediate = sqrt_a * sqrt_b // Q96
    return amount0 * intermediate // (sqrt_b - sqrt_a)


def liquidity_for_amount1(sqrt_a: int, sqrt_b: int, amount1: int) -> int:
    """L = amount1 / (sqrtB - sqrtA)"""
    if sqrt_a > sqrt_b:
        sqrt_a, sqrt_b = sqrt_b, sqrt_a
    if sqrt_b == sqrt_a:
        return 0
    return amount1 * Q96 // (sqrt_b - sqrt_a)


def liquidity_for_amounts(
    sqrt_price_x96: int,
    tick_lower: int,
    tick_upper: int,
    amount0: int,
    amount1: int,
) -> int:
    """Largest liquidity the given amounts can back in ``[tick_lower, tick_upper)``.

    - below the range only token0 counts
    - above the range only token1 counts
    - in range the scarcer side bounds the result
    """
    sqrt_a = sqrt_price_x96_from_tick(tick_lower)
    sqrt_b = sqrt_price_x96_from_tick(tick_upper)

    if sqrt_price_x96 <= sqrt_a:
        return liquidity_for_amount0(sqrt_a, sqrt_b, amount0)
    if sqrt_price_x96 < sqrt_b:
        liq0 = liquidity_for_amount0(sqrt_price_x96, sqrt_b, amount0)
        liq1 = liquidity_for_amount1(sqrt_a, sqrt_price_x96, amount1)
        return min(liq0, liq1)
    return liquidity_for_amount1(sqrt_a, sqrt_b, amount1)


def amount0_for_liquidity(sqrt_a: int, sqrt_b: int, liquidity: int) -> int:
    if sqrt_a > sqrt_b:
        sqrt_a, sqrt_b = sqrt_b, sqrt_a
    if sqrt_a == 0:
        return 0
    return (liquidity << 96) * (sqrt_b - sqrt_a) // sqrt_b // sqrt_a


def amount1_for_liquidity(sqrt_a: int, sqrt_b: int, liquidity: int) -> int:
    if sqrt_a > sqrt_b:
        sqrt_a, sqrt_b = sqrt_b, sqrt_a
    return liquidity * (sqrt_b - sqrt_a) // Q96


def amounts_for_liquidity(
    sqrt_price_x96: int,
    tick_lower: int,
    tick_upper: int,
    liquidity: int,
) -> tuple[int, int]:
    sqrt_a = sqrt_price_x96_from_tick(tick_lower)
    sqrt_b = sqrt_price_x96_from_tick(tick_upper)

    if sqrt_price_x96 <= sqrt_a:
        return amount0_for_liquidity(sqrt_a, sqrt_b, liquidity), 0
    if sqrt_price_x96 < sqrt_b:
        return (
            amount0_for_liquidity(sqrt_price_x96, sqrt_b, liquidity),
            amount1_for_liquidity(sqrt_a, sqrt_price_x96, liquidity),
        )
    return 0, amount1_for_liquidity(sqrt_a, sqrt_b, liquidity)


# ── oracle ───────────────────────────────────────────────────────────────────


def twap_tick_from_cumulatives(
    cumulative_then: int, cumulative_now: int, interval: int
) -> int:
    """Mean tick between two ``tickCumulative`` readings ``interval`` seconds apart."""
    # Truncates toward zero like the on-chain signed division
    if interval <= 0:
        raise ValueError(f"interval must be positive, got {interval}")
    delta = cumulative_now - cumulative_then
    quotient = abs(delta) // interval
    return -quotient if delta < 0 else quotient
