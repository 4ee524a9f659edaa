"""Placement of the main and alt ranges around the current tick."""

from __future__ import annotations

from clm_paths.core.utils.uniswap_v3_math import (
    MAX_TICK,
    MIN_TICK,
    ONE_E18,
    TickOutOfRangeError,
    base_ticks,
)

from .types import Position, RangePlan, Side


def skew_side(idle0: int, idle1: int, price_x18: int) -> Side:
    """Side of the main range the alt band goes on.

    token0 is valued in token1 at ``price_x18``. When token1 is in excess the
    band sits below main (it holds only token1 there); otherwise above. An
    exact tie goes above.
    """
    value0 = idle0 * price_x18 // ONE_E18
    if value0 < idle1:
        return Side.BELOW
    return Side.ABOVE


def compute_ranges(
    current_tick: int,
    spacing: int,
    width_ticks: int,
    idle0: int,
    idle1: int,
    price_x18: int,
) -> RangePlan:
    if spacing <= 0:
        raise ValueError(f"tick spacing must be positive, got {spacing}")
    if width_ticks <= 0 or width_ticks % spacing:
        raise ValueError(
            f"width {width_ticks} must be a positive multiple of spacing {spacing}"
        )
    if idle0 < 0 or idle1 < 0:
        raise ValueError("idle balances cannot be negative")
    if price_x18 < 0:
        raise ValueError("price cannot be negative")

    lower, upper = base_ticks(current_tick, spacing, width_ticks)
    side = skew_side(idle0, idle1, price_x18)
    if side is Side.BELOW:
        alt = (lower - spacing, lower)
    else:
        alt = (upper, upper + spacing)

    for tick in (*alt, lower, upper):
        if tick < MIN_TICK or tick > MAX_TICK:
            raise TickOutOfRangeError(
                f"range boundary {tick} out of range [{MIN_TICK}, {MAX_TICK}]"
            )

    return RangePlan(main=Position(lower, upper), alt=Position(*alt), side=side)
