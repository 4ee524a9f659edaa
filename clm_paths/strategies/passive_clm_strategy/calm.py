from __future__ import annotations

from clm_paths.core.utils.uniswap_v3_math import twap_tick_from_cumulatives

from .types import CalmCheck, CalmVerdict

__all__ = ["check_calm", "is_calm", "twap_tick_from_cumulatives"]


def is_calm(current_tick: int, twap_tick: int, max_deviation: int) -> bool:
    return abs(current_tick - twap_tick) <= max_deviation


def check_calm(
    current_tick: int, twap_tick: int | None, max_deviation: int
) -> CalmCheck:
    """Compare the spot tick with its time-weighted average.

    A missing average is reported as ``INDETERMINATE``, which callers must
    treat like ``NOT_CALM``.
    """
    if twap_tick is None:
        verdict = CalmVerdict.INDETERMINATE
    elif is_calm(current_tick, twap_tick, max_deviation):
        verdict = CalmVerdict.CALM
    else:
        verdict = CalmVerdict.NOT_CALM
    return CalmCheck(
        verdict=verdict,
        current_tick=current_tick,
        twap_tick=twap_tick,
        max_deviation=max_deviation,
    )
