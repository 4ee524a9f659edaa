"""In-memory concentrated-liquidity pool.

Implements the full pool boundary with exact tick math so strategies can be
driven through price paths in tests and dry runs. The pool keeps a
tick-cumulative oracle, a per-range liquidity ledger and per-range fees owed;
token amounts for mint/burn come from the same liquidity formulas the
strategy uses.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any

from clm_paths.core.adapters.BaseAdapter import BaseAdapter
from clm_paths.core.adapters.pool import MintRejectedError, PoolState
from clm_paths.core.utils.uniswap_v3_math import (
    MAX_TICK,
    MIN_TICK,
    amounts_for_liquidity,
    sqrt_price_x96_from_tick,
    tick_from_sqrt_price_x96,
    twap_tick_from_cumulatives,
)

RangeKey = tuple[int, int]


@dataclass(frozen=True)
class _Observation:
    timestamp: int
    tick_cumulative: int
    tick: int  # tick in force from ``timestamp`` on


class SimulatedPool(BaseAdapter):
    adapter_type: str = "SIMULATED_POOL"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        tick: int = 0,
        tick_spacing: int = 10,
        fee: int = 500,
        start_time: int = 0,
    ):
        super().__init__("simulated_pool_adapter", config)
        if tick_spacing <= 0:
            raise ValueError("tick_spacing must be positive")
        self.tick_spacing = tick_spacing
        self.fee = fee
        self.timestamp = start_time

        self._tick = tick
        self._sqrt_price_x96 = sqrt_price_x96_from_tick(tick)
        self._observations: list[_Observation] = [
            _Observation(timestamp=start_time, tick_cumulative=0, tick=tick)
        ]

        self.positions: dict[RangeKey, int] = {}
        self.fees_owed: dict[RangeKey, tuple[int, int]] = {}

        # Test hooks
        self.rejected_ranges: set[RangeKey] = set()
        self.oracle_available = True

    # ── pool boundary ────────────────────────────────────────────────────────

    async def current_state(self) -> PoolState:
        return PoolState(
            sqrt_price_x96=self._sqrt_price_x96,
            tick=self._tick,
            tick_spacing=self.tick_spacing,
            fee=self.fee,
        )

    async def time_weighted_tick(self, lookback_seconds: int) -> int | None:
        if not self.oracle_available or lookback_seconds <= 0:
            return None
        since = self.timestamp - lookback_seconds
        if since < self._observations[0].timestamp:
            self.logger.debug(
                f"oracle history too short for {lookback_seconds}s lookback"
            )
            return None
        return twap_tick_from_cumulatives(
            self._cumulative_at(since),
            self._cumulative_at(self.timestamp),
            lookback_seconds,
        )

    async def mint(
        self, tick_lower: int, tick_upper: int, liquidity: int
    ) -> tuple[int, int]:
        key = (tick_lower, tick_upper)
        self._check_range(key)
        if liquidity <= 0:
            raise MintRejectedError("liquidity must be positive")
        if key in self.rejected_ranges:
            raise MintRejectedError(f"range {key} rejected by pool")

        amount0, amount1 = amounts_for_liquidity(
            self._sqrt_price_x96, tick_lower, tick_upper, liquidity
        )
        self.positions[key] = self.positions.get(key, 0) + liquidity
        return amount0, amount1

    async def burn(
        self, tick_lower: int, tick_upper: int, liquidity: int
    ) -> tuple[int, int]:
        key = (tick_lower, tick_upper)
        held = self.positions.get(key, 0)
        if liquidity > held:
            raise ValueError(f"burn of {liquidity} exceeds {held} held in {key}")

        amount0, amount1 = amounts_for_liquidity(
            self._sqrt_price_x96, tick_lower, tick_upper, liquidity
        )
        if held == liquidity:
            del self.positions[key]
        else:
            self.positions[key] = held - liquidity
        return amount0, amount1

    async def collect_fees(self, tick_lower: int, tick_upper: int) -> tuple[int, int]:
        return self.fees_owed.pop((tick_lower, tick_upper), (0, 0))

    # ── market simulation ────────────────────────────────────────────────────

    def advance(self, seconds: int) -> None:
        if seconds < 0:
            raise ValueError("time only moves forward")
        self.timestamp += seconds

    def move_to_tick(self, tick: int) -> None:
        self._set_price(sqrt_price_x96_from_tick(tick), tick)

    def set_sqrt_price(self, sqrt_price_x96: int) -> None:
        self._set_price(sqrt_price_x96, tick_from_sqrt_price_x96(sqrt_price_x96))

    def accrue_fees(self, amount0: int, amount1: int) -> tuple[int, int]:
        """Split swap fees pro rata over the in-range liquidity.

        Returns the amounts actually credited; dust from the integer split and
        fees earned while no liquidity is in range are dropped.
        """
        in_range = {
            key: liq
            for key, liq in self.positions.items()
            if key[0] <= self._tick < key[1] and liq > 0
        }
        total = sum(in_range.values())
        if total == 0:
            return 0, 0

        credited0 = credited1 = 0
        for key, liq in in_range.items():
            share0 = amount0 * liq // total
            share1 = amount1 * liq // total
            owed0, owed1 = self.fees_owed.get(key, (0, 0))
            self.fees_owed[key] = (owed0 + share0, owed1 + share1)
            credited0 += share0
            credited1 += share1
        return credited0, credited1

    # ── transactions ─────────────────────────────────────────────────────────

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(
            {
                "tick": self._tick,
                "sqrt_price_x96": self._sqrt_price_x96,
                "timestamp": self.timestamp,
                "observations": self._observations,
                "positions": self.positions,
                "fees_owed": self.fees_owed,
            }
        )

    def restore(self, snapshot: dict[str, Any]) -> None:
        saved = copy.deepcopy(snapshot)
        self._tick = saved["tick"]
        self._sqrt_price_x96 = saved["sqrt_price_x96"]
        self.timestamp = saved["timestamp"]
        self._observations = saved["observations"]
        self.positions = saved["positions"]
        self.fees_owed = saved["fees_owed"]

    # ── internals ────────────────────────────────────────────────────────────

    def _set_price(self, sqrt_price_x96: int, tick: int) -> None:
        cumulative = self._cumulative_at(self.timestamp)
        if self._observations[-1].timestamp == self.timestamp:
            self._observations.pop()
        self._observations.append(
            _Observation(timestamp=self.timestamp, tick_cumulative=cumulative, tick=tick)
        )
        self._tick = tick
        self._sqrt_price_x96 = sqrt_price_x96

    def _cumulative_at(self, timestamp: int) -> int:
        # Latest observation at or before ``timestamp``
        obs = self._observations[0]
        for candidate in self._observations:
            if candidate.timestamp > timestamp:
                break
            obs = candidate
        return obs.tick_cumulative + obs.tick * (timestamp - obs.timestamp)

    def _check_range(self, key: RangeKey) -> None:
        lower, upper = key
        if lower >= upper:
            raise MintRejectedError(f"invalid range {key}")
        if lower < MIN_TICK or upper > MAX_TICK:
            raise MintRejectedError(f"range {key} outside tick bounds")
        if lower % self.tick_spacing or upper % self.tick_spacing:
            raise MintRejectedError(
                f"range {key} not aligned to spacing {self.tick_spacing}"
            )
