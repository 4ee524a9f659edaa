from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


class MintRejectedError(RuntimeError):
    """The pool refused to open liquidity at the requested range."""


@dataclass(frozen=True)
class PoolState:
    sqrt_price_x96: int
    tick: int
    tick_spacing: int
    fee: int


@runtime_checkable
class PoolProtocol(Protocol):
    """Boundary of the concentrated-liquidity pool a strategy trades against.

    ``time_weighted_tick`` returns ``None`` when the pool cannot produce an
    average over the requested window (e.g. not enough observation history).
    ``mint`` raises ``MintRejectedError`` when a range is refused; amounts
    returned by ``burn`` and ``collect_fees`` are paid out to the caller.
    """

    async def current_state(self) -> PoolState: ...

    async def time_weighted_tick(self, lookback_seconds: int) -> int | None: ...

    async def mint(
        self, tick_lower: int, tick_upper: int, liquidity: int
    ) -> tuple[int, int]: ...

    async def burn(
        self, tick_lower: int, tick_upper: int, liquidity: int
    ) -> tuple[int, int]: ...

    async def collect_fees(self, tick_lower: int, tick_upper: int) -> tuple[int, int]: ...
