from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, model_validator

from .constants import (
    DEFAULT_MAX_TICK_DEVIATION,
    DEFAULT_POSITION_WIDTH,
    DEFAULT_TWAP_INTERVAL,
    MAX_PROTOCOL_FEE_BPS,
    MAX_TICK_DEVIATION,
    MIN_TWAP_INTERVAL,
)

# ─────────────────────────────────────────────────────────────────────────────
# ERRORS
# ─────────────────────────────────────────────────────────────────────────────


class StrategyError(Exception):
    """Base class for errors raised by the orchestrator."""


class UnauthorizedError(StrategyError):
    pass


class SlippageError(StrategyError):
    """Withdrawn amounts fell below the caller's minimums."""


# ─────────────────────────────────────────────────────────────────────────────
# ROLES
# ─────────────────────────────────────────────────────────────────────────────


class Role(StrEnum):
    OPERATOR = "operator"
    OWNER = "owner"


@dataclass(frozen=True)
class Capability:
    """Role set handed to every privileged call."""

    roles: frozenset[Role] = frozenset()

    @classmethod
    def of(cls, *roles: Role) -> Capability:
        return cls(frozenset(roles))

    def has(self, role: Role) -> bool:
        return role in self.roles


# ─────────────────────────────────────────────────────────────────────────────
# RANGES
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Position:
    tick_lower: int
    tick_upper: int

    def __post_init__(self) -> None:
        if self.tick_lower >= self.tick_upper:
            raise ValueError(
                f"tick_lower must be below tick_upper, got "
                f"({self.tick_lower}, {self.tick_upper})"
            )

    def contains(self, tick: int) -> bool:
        return self.tick_lower <= tick < self.tick_upper

    def as_tuple(self) -> tuple[int, int]:
        return self.tick_lower, self.tick_upper


@dataclass(frozen=True)
class RangeSlot:
    """A named range and the liquidity the strategy holds in it.

    ``position`` is ``None`` when nothing has been placed (or the pool refused
    the last mint); a placed range may still carry zero liquidity when the idle
    balances could not back any.
    """

    position: Position | None = None
    liquidity: int = 0

    @property
    def active(self) -> bool:
        return self.position is not None and self.liquidity > 0


class Side(StrEnum):
    BELOW = "below"
    ABOVE = "above"


@dataclass(frozen=True)
class RangePlan:
    main: Position
    alt: Position
    side: Side


# ─────────────────────────────────────────────────────────────────────────────
# BALANCES
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class IdleBalances:
    amount0: int = 0
    amount1: int = 0

    def plus(self, amount0: int, amount1: int) -> IdleBalances:
        return IdleBalances(self.amount0 + amount0, self.amount1 + amount1)

    def minus(self, amount0: int, amount1: int) -> IdleBalances:
        if amount0 > self.amount0 or amount1 > self.amount1:
            raise ValueError(
                f"cannot take ({amount0}, {amount1}) from idle "
                f"({self.amount0}, {self.amount1})"
            )
        return IdleBalances(self.amount0 - amount0, self.amount1 - amount1)


@dataclass(frozen=True)
class LockedProfit:
    amount0: int = 0
    amount1: int = 0
    last_report: int = 0


# ─────────────────────────────────────────────────────────────────────────────
# CALM GUARD
# ─────────────────────────────────────────────────────────────────────────────


class CalmVerdict(StrEnum):
    CALM = "calm"
    NOT_CALM = "not_calm"
    INDETERMINATE = "indeterminate"


@dataclass(frozen=True)
class CalmCheck:
    verdict: CalmVerdict
    current_tick: int
    twap_tick: int | None
    max_deviation: int

    @property
    def calm(self) -> bool:
        return self.verdict is CalmVerdict.CALM

    @property
    def deviation(self) -> int | None:
        if self.twap_tick is None:
            return None
        return abs(self.current_tick - self.twap_tick)


# ─────────────────────────────────────────────────────────────────────────────
# ORCHESTRATOR
# ─────────────────────────────────────────────────────────────────────────────


class StrategyState(StrEnum):
    IDLE = "IDLE"
    WITHDRAWING = "WITHDRAWING"
    COMPUTING = "COMPUTING"
    DEPOSITING = "DEPOSITING"
    PAUSED = "PAUSED"


class Outcome(StrEnum):
    OK = "ok"
    NOT_CALM = "not_calm"
    ORACLE_UNAVAILABLE = "oracle_unavailable"
    PARTIAL_DEPOSIT = "partial_deposit"
    PAUSED = "paused"
    NOT_PAUSED = "not_paused"


@dataclass
class OperationResult:
    ok: bool
    outcome: Outcome
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    def as_status_tuple(self) -> tuple[bool, str]:
        return self.ok, self.message or self.outcome.value


class StrategyConfig(BaseModel):
    position_width: int = DEFAULT_POSITION_WIDTH
    max_tick_deviation: int = DEFAULT_MAX_TICK_DEVIATION
    twap_interval: int = DEFAULT_TWAP_INTERVAL
    protocol_fee_bps: int = 0

    @model_validator(mode="after")
    def _validate_bounds(self) -> StrategyConfig:
        if self.position_width <= 0:
            raise ValueError("position_width must be positive")
        if not 0 <= self.max_tick_deviation <= MAX_TICK_DEVIATION:
            raise ValueError(
                f"max_tick_deviation must be within [0, {MAX_TICK_DEVIATION}]"
            )
        if self.twap_interval < MIN_TWAP_INTERVAL:
            raise ValueError(f"twap_interval must be >= {MIN_TWAP_INTERVAL}s")
        if not 0 <= self.protocol_fee_bps <= MAX_PROTOCOL_FEE_BPS:
            raise ValueError(
                f"protocol_fee_bps must be within [0, {MAX_PROTOCOL_FEE_BPS}]"
            )
        return self
