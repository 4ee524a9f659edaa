"""Passive concentrated-liquidity strategy.

Keeps two adjacent ranges around the pool price: a symmetric ``main`` range
and a one-spacing ``alt`` band on the side of whichever token is in excess.
Ranges are only re-centred while the spot tick stays close to its
time-weighted average, and harvested fees unlock linearly so the reported
balance cannot be gamed around harvest time.

Every mutating call runs as one unit of work. On failure it is rolled back
when the pool supports snapshots; otherwise the books keep whatever the pool
already settled.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from clm_paths.core.adapters.models import (
    CONFIG_CHANGE,
    HARVEST,
    PANIC,
    REBALANCE,
    STRAT_OP,
    UNPAUSE,
    Operation,
    RangeRecord,
)
from clm_paths.core.adapters.pool import MintRejectedError, PoolProtocol, PoolState
from clm_paths.core.strategies.Strategy import StatusDict, StatusTuple, Strategy
from clm_paths.core.utils.uniswap_v3_math import (
    amounts_for_liquidity,
    liquidity_for_amounts,
    price_x18_at_tick,
    price_x18_from_sqrt_price_x96,
)

from .calm import check_calm
from .constants import ALT, BPS_DENOMINATOR, HISTORY_LIMIT, MAIN, SLOT_NAMES
from .ranges import compute_ranges
from .types import (
    CalmCheck,
    CalmVerdict,
    Capability,
    IdleBalances,
    LockedProfit,
    OperationResult,
    Outcome,
    Position,
    RangePlan,
    RangeSlot,
    Role,
    SlippageError,
    StrategyConfig,
    StrategyState,
    UnauthorizedError,
)
from .vesting import locked_profit, top_up


def _wall_clock() -> int:
    return int(time.time())


class PassiveClmStrategy(Strategy):
    name = "Passive CLM"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        pool: PoolProtocol,
        clock: Callable[[], int] | None = None,
        **kwargs: Any,
    ):
        super().__init__(config, **kwargs)
        self.params = StrategyConfig(
            **{k: v for k, v in self.config.items() if k in StrategyConfig.model_fields}
        )
        self.token0_decimals = int(self.config.get("token0_decimals", 0))
        self.token1_decimals = int(self.config.get("token1_decimals", 0))

        self.pool = pool
        self.clock = clock or _wall_clock

        self.state = StrategyState.IDLE
        self.slots: dict[str, RangeSlot] = {name: RangeSlot() for name in SLOT_NAMES}
        self.idle = IdleBalances()
        # Fees swept up by re-centring, net of the protocol cut; recognised
        # at the next harvest
        self.pending_fees: tuple[int, int] = (0, 0)
        self.locked = LockedProfit()
        self.protocol_fees_paid: tuple[int, int] = (0, 0)
        self.history: deque[STRAT_OP] = deque(maxlen=HISTORY_LIMIT)

        self._op_lock = asyncio.Lock()

    @property
    def paused(self) -> bool:
        return self.state is StrategyState.PAUSED

    # ── keeper surface ───────────────────────────────────────────────────────

    async def deposit(self, amount0: int = 0, amount1: int = 0, **kwargs) -> StatusTuple:
        idle = await self.credit_idle(amount0, amount1)
        return (True, f"Idle balances now {idle.amount0}/{idle.amount1}")

    async def withdraw(self, amount0: int = 0, amount1: int = 0, **kwargs) -> StatusTuple:
        try:
            idle = await self.debit_idle(amount0, amount1)
        except ValueError as exc:
            return (False, str(exc))
        return (True, f"Idle balances now {idle.amount0}/{idle.amount1}")

    async def update(self, cap: Capability, **kwargs) -> StatusTuple:
        result = await self.harvest(cap)
        return result.as_status_tuple()

    async def exit(
        self, cap: Capability, min_amount0: int = 0, min_amount1: int = 0, **kwargs
    ) -> StatusTuple:
        try:
            result = await self.panic(cap, min_amount0, min_amount1)
        except SlippageError as exc:
            return (False, str(exc))
        return result.as_status_tuple()

    # ── vault bookkeeping ────────────────────────────────────────────────────

    async def credit_idle(self, amount0: int, amount1: int) -> IdleBalances:
        if amount0 < 0 or amount1 < 0:
            raise ValueError("credited amounts cannot be negative")
        async with self._op_lock:
            self.idle = self.idle.plus(amount0, amount1)
            return self.idle

    async def debit_idle(self, amount0: int, amount1: int) -> IdleBalances:
        if amount0 < 0 or amount1 < 0:
            raise ValueError("debited amounts cannot be negative")
        async with self._op_lock:
            self.idle = self.idle.minus(amount0, amount1)
            return self.idle

    # ── operator actions ─────────────────────────────────────────────────────

    async def rebalance(self, cap: Capability) -> OperationResult:
        self._require(cap, Role.OPERATOR)
        async with self._transaction("rebalance"):
            if self.paused:
                return OperationResult(False, Outcome.PAUSED, "strategy is paused")
            check = await self.check_calm()
            if not check.calm:
                return self._blocked("rebalance", check)
            return await self._recenter(check)

    async def harvest(self, cap: Capability, now: int | None = None) -> OperationResult:
        """Collect fees, lock them for vesting, then re-centre if calm.

        Fee collection and locking do not depend on the calm guard; only the
        re-centring step does. Fees swept by earlier re-centring already had
        the protocol cut taken, so only freshly collected fees are cut here.
        """
        self._require(cap, Role.OPERATOR)
        async with self._transaction("harvest"):
            now = self._now(now)
            net0, net1 = self.pending_fees
            fee0, fee1 = net0, net1
            cut0 = cut1 = 0
            for slot in self.slots.values():
                if not slot.active:
                    continue
                collected0, collected1 = await self.pool.collect_fees(
                    *slot.position.as_tuple()
                )
                kept0, kept1, taken0, taken1 = self._take_protocol_fee(
                    collected0, collected1
                )
                self.idle = self.idle.plus(kept0, kept1)
                fee0 += collected0
                fee1 += collected1
                net0 += kept0
                net1 += kept1
                cut0 += taken0
                cut1 += taken1
            self.pending_fees = (0, 0)

            balance0, balance1 = await self._gross_balances()
            self.locked = top_up(
                self.locked,
                now,
                net0,
                net1,
                balance0=balance0,
                balance1=balance1,
            )
            self.logger.info(
                f"Harvested {fee0}/{fee1} (protocol {cut0}/{cut1}), "
                f"locked {self.locked.amount0}/{self.locked.amount1}"
            )
            harvested = {
                "fee0": fee0,
                "fee1": fee1,
                "protocol_fee0": cut0,
                "protocol_fee1": cut1,
                "locked0": self.locked.amount0,
                "locked1": self.locked.amount1,
            }
            self._record(HARVEST(timestamp=now, **harvested))

            if self.paused:
                return OperationResult(
                    True, Outcome.PAUSED, "fees locked; strategy is paused", harvested
                )
            check = await self.check_calm()
            if not check.calm:
                blocked = self._blocked("harvest re-centre", check)
                return OperationResult(
                    True,
                    blocked.outcome,
                    f"fees locked; positions left in place ({blocked.message})",
                    {**harvested, **blocked.data},
                )
            result = await self._recenter(check)
            result.data.update(harvested)
            return result

    async def panic(
        self, cap: Capability, min_amount0: int = 0, min_amount1: int = 0
    ) -> OperationResult:
        """Withdraw everything to idle and pause, regardless of market state."""
        self._require(cap, Role.OPERATOR)
        async with self._transaction("panic"):
            withdrawn0, withdrawn1 = await self._withdraw_all()
            if self.idle.amount0 < min_amount0 or self.idle.amount1 < min_amount1:
                raise SlippageError(
                    f"balances {self.idle.amount0}/{self.idle.amount1} below "
                    f"minimums {min_amount0}/{min_amount1}"
                )
            self.state = StrategyState.PAUSED
            self._record(PANIC(withdrawn0=withdrawn0, withdrawn1=withdrawn1))
            self.logger.warning(
                f"Panic: withdrew {withdrawn0}/{withdrawn1}, strategy paused"
            )
            return OperationResult(
                True,
                Outcome.OK,
                "positions withdrawn; strategy paused",
                {"withdrawn0": withdrawn0, "withdrawn1": withdrawn1},
            )

    async def unpause(self, cap: Capability) -> OperationResult:
        self._require(cap, Role.OPERATOR)
        async with self._transaction("unpause"):
            if not self.paused:
                return OperationResult(False, Outcome.NOT_PAUSED, "strategy is not paused")
            self.state = StrategyState.IDLE
            self._record(UNPAUSE())
            self.logger.info("Unpaused; liquidity stays idle until the next rebalance")
            return OperationResult(True, Outcome.OK, "unpaused")

    async def reverse_panic(self, cap: Capability) -> OperationResult:
        """Unpause and redeploy in one step; only allowed while calm."""
        self._require(cap, Role.OPERATOR)
        async with self._transaction("reverse_panic"):
            if not self.paused:
                return OperationResult(False, Outcome.NOT_PAUSED, "strategy is not paused")
            check = await self.check_calm()
            if not check.calm:
                return self._blocked("reverse panic", check)
            self.state = StrategyState.IDLE
            self._record(UNPAUSE())
            return await self._recenter(check)

    # ── owner settings ───────────────────────────────────────────────────────

    async def set_position_width(self, cap: Capability, width: int) -> OperationResult:
        self._require(cap, Role.OWNER)
        async with self._transaction("set_position_width"):
            pool_state = await self.pool.current_state()
            if width <= 0 or width % pool_state.tick_spacing:
                raise ValueError(
                    f"width {width} must be a positive multiple of spacing "
                    f"{pool_state.tick_spacing}"
                )
            deployed = any(slot.active for slot in self.slots.values())
            if deployed and not self.paused:
                check = await self.check_calm()
                if not check.calm:
                    return self._blocked("set_position_width", check)
                self._update_param("position_width", width)
                return await self._recenter(check)
            self._update_param("position_width", width)
            return OperationResult(True, Outcome.OK, f"position_width set to {width}")

    async def set_deviation(self, cap: Capability, max_tick_deviation: int) -> OperationResult:
        self._require(cap, Role.OWNER)
        async with self._transaction("set_deviation"):
            self._update_param("max_tick_deviation", max_tick_deviation)
            return OperationResult(
                True, Outcome.OK, f"max_tick_deviation set to {max_tick_deviation}"
            )

    async def set_twap_interval(self, cap: Capability, seconds: int) -> OperationResult:
        self._require(cap, Role.OWNER)
        async with self._transaction("set_twap_interval"):
            self._update_param("twap_interval", seconds)
            return OperationResult(True, Outcome.OK, f"twap_interval set to {seconds}")

    # ── read-only queries ────────────────────────────────────────────────────

    async def twap(self) -> int | None:
        return await self.pool.time_weighted_tick(self.params.twap_interval)

    async def check_calm(self) -> CalmCheck:
        pool_state = await self.pool.current_state()
        return check_calm(
            pool_state.tick, await self.twap(), self.params.max_tick_deviation
        )

    async def is_calm(self) -> bool:
        return (await self.check_calm()).calm

    async def price(self) -> int:
        """Pool price, token1 per token0 in whole-token units, scaled by 1e18."""
        pool_state = await self.pool.current_state()
        return price_x18_from_sqrt_price_x96(
            pool_state.sqrt_price_x96, self.token0_decimals, self.token1_decimals
        )

    async def range(self) -> tuple[int, int] | None:
        """Prices (1e18-scaled) at the edges of the main range."""
        position = self.slots[MAIN].position
        if position is None:
            return None
        return (
            price_x18_at_tick(
                position.tick_lower, self.token0_decimals, self.token1_decimals
            ),
            price_x18_at_tick(
                position.tick_upper, self.token0_decimals, self.token1_decimals
            ),
        )

    def positions_snapshot(self) -> dict[str, dict[str, int] | None]:
        snapshot: dict[str, dict[str, int] | None] = {}
        for name, slot in self.slots.items():
            if slot.position is None:
                snapshot[name] = None
                continue
            snapshot[name] = {
                "tick_lower": slot.position.tick_lower,
                "tick_upper": slot.position.tick_upper,
                "liquidity": slot.liquidity,
            }
        return snapshot

    def locked_profit(self, now: int | None = None) -> tuple[int, int]:
        return locked_profit(self.locked, self._now(now))

    async def reported_balance(self, now: int | None = None) -> tuple[int, int]:
        """Real balance minus unharvested fees and still-locked profit."""
        now = self._now(now)
        gross0, gross1 = await self._gross_balances()
        pending0, pending1 = self.pending_fees
        locked0, locked1 = self.locked_profit(now)
        return (
            max(0, gross0 - pending0 - locked0),
            max(0, gross1 - pending1 - locked1),
        )

    balances = reported_balance

    async def _status(self) -> StatusDict:
        pool_state = await self.pool.current_state()
        check = await self.check_calm()
        now = self._now()
        return {
            "strategy_state": self.state.value,
            "paused": self.paused,
            "pool": {
                "tick": pool_state.tick,
                "tick_spacing": pool_state.tick_spacing,
                "fee": pool_state.fee,
                "price_x18": price_x18_from_sqrt_price_x96(
                    pool_state.sqrt_price_x96,
                    self.token0_decimals,
                    self.token1_decimals,
                ),
            },
            "calm": {
                "verdict": check.verdict.value,
                "twap_tick": check.twap_tick,
                "deviation": check.deviation,
                "max_deviation": check.max_deviation,
            },
            "positions": self.positions_snapshot(),
            "idle": [self.idle.amount0, self.idle.amount1],
            "pending_fees": list(self.pending_fees),
            "locked_profit": list(self.locked_profit(now)),
            "reported_balance": list(await self.reported_balance(now)),
            "config": self.params.model_dump(),
        }

    # ── internals ────────────────────────────────────────────────────────────

    @staticmethod
    def _require(cap: Capability, role: Role) -> None:
        if not cap.has(role):
            raise UnauthorizedError(f"{role.value} role required")

    def _now(self, now: int | None = None) -> int:
        return int(self.clock()) if now is None else int(now)

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[None]:
        """Serialize a mutating call and undo it on failure.

        With a pool that can snapshot, both sides are rolled back. Otherwise
        whatever the pool already settled stays settled, and the books keep
        mirroring it (burned liquidity sits in idle, the slot stays empty);
        only the lifecycle state is put back.
        """
        async with self._op_lock:
            saved = self._snapshot()
            snapshot_pool = getattr(self.pool, "snapshot", None)
            pool_saved = snapshot_pool() if callable(snapshot_pool) else None
            try:
                yield
            except Exception as exc:
                if pool_saved is None:
                    self.logger.error(
                        f"{operation} failed; pool cannot roll back, keeping "
                        f"settled balances: {exc}"
                    )
                    self.state = saved["state"]
                else:
                    self.logger.error(f"{operation} failed, rolling back: {exc}")
                    self._restore(saved)
                    self.pool.restore(pool_saved)
                raise

    def _snapshot(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "slots": dict(self.slots),
            "idle": self.idle,
            "pending_fees": self.pending_fees,
            "locked": self.locked,
            "protocol_fees_paid": self.protocol_fees_paid,
            "params": self.params,
            "history": list(self.history),
        }

    def _restore(self, saved: dict[str, Any]) -> None:
        self.state = saved["state"]
        self.slots = saved["slots"]
        self.idle = saved["idle"]
        self.pending_fees = saved["pending_fees"]
        self.locked = saved["locked"]
        self.protocol_fees_paid = saved["protocol_fees_paid"]
        self.params = saved["params"]
        self.history = deque(saved["history"], maxlen=HISTORY_LIMIT)

    def _take_protocol_fee(self, fee0: int, fee1: int) -> tuple[int, int, int, int]:
        """Split collected fees into (kept0, kept1, cut0, cut1) and book the cut."""
        bps = self.params.protocol_fee_bps
        cut0 = fee0 * bps // BPS_DENOMINATOR
        cut1 = fee1 * bps // BPS_DENOMINATOR
        paid0, paid1 = self.protocol_fees_paid
        self.protocol_fees_paid = (paid0 + cut0, paid1 + cut1)
        return fee0 - cut0, fee1 - cut1, cut0, cut1

    def _update_param(self, key: str, value: int) -> None:
        old = getattr(self.params, key)
        self.params = StrategyConfig(**{**self.params.model_dump(), key: value})
        self._record(CONFIG_CHANGE(key=key, old_value=old, new_value=value))
        self.logger.info(f"{key}: {old} -> {value}")

    def _record(self, op: Operation) -> None:
        op.strategy = self.name
        if not op.timestamp:
            op.timestamp = self._now()
        self.history.append(STRAT_OP(op_data=op))

    def _blocked(self, operation: str, check: CalmCheck) -> OperationResult:
        if check.verdict is CalmVerdict.INDETERMINATE:
            outcome = Outcome.ORACLE_UNAVAILABLE
            message = "TWAP unavailable"
        else:
            outcome = Outcome.NOT_CALM
            message = (
                f"tick {check.current_tick} is {check.deviation} from TWAP "
                f"{check.twap_tick} (max {check.max_deviation})"
            )
        self.logger.warning(f"{operation} skipped: {message}")
        return OperationResult(
            False,
            outcome,
            message,
            {"tick": check.current_tick, "twap_tick": check.twap_tick},
        )

    async def _gross_balances(self) -> tuple[int, int]:
        amount0, amount1 = self.idle.amount0, self.idle.amount1
        active = [slot for slot in self.slots.values() if slot.active]
        if not active:
            return amount0, amount1
        pool_state = await self.pool.current_state()
        for slot in active:
            held0, held1 = amounts_for_liquidity(
                pool_state.sqrt_price_x96,
                slot.position.tick_lower,
                slot.position.tick_upper,
                slot.liquidity,
            )
            amount0 += held0
            amount1 += held1
        return amount0, amount1

    async def _recenter(self, check: CalmCheck) -> OperationResult:
        withdrawn0, withdrawn1 = await self._withdraw_all()
        before = self.idle
        plan, rejected = await self._deploy()
        deposited0 = before.amount0 - self.idle.amount0
        deposited1 = before.amount1 - self.idle.amount1

        outcome = Outcome.PARTIAL_DEPOSIT if rejected else Outcome.OK
        self._record(
            REBALANCE(
                outcome=outcome.value,
                tick=check.current_tick,
                twap_tick=check.twap_tick,
                main=self._range_record(MAIN),
                alt=self._range_record(ALT),
                withdrawn0=withdrawn0,
                withdrawn1=withdrawn1,
                deposited0=deposited0,
                deposited1=deposited1,
            )
        )
        message = (
            f"main {plan.main.as_tuple()} alt {plan.alt.as_tuple()} ({plan.side.value})"
        )
        if rejected:
            message += f"; rejected: {', '.join(rejected)}"
        self.logger.info(f"Re-centred at tick {check.current_tick}: {message}")
        return OperationResult(
            True,
            outcome,
            message,
            {
                "main": plan.main.as_tuple(),
                "alt": plan.alt.as_tuple(),
                "side": plan.side.value,
                "rejected": rejected,
                "deposited0": deposited0,
                "deposited1": deposited1,
            },
        )

    async def _withdraw_all(self) -> tuple[int, int]:
        self.state = StrategyState.WITHDRAWING
        withdrawn0 = withdrawn1 = 0
        for name in SLOT_NAMES:
            slot = self.slots[name]
            if slot.active:
                lower, upper = slot.position.as_tuple()
                collected0, collected1 = await self.pool.collect_fees(lower, upper)
                fee0, fee1, _, _ = self._take_protocol_fee(collected0, collected1)
                pending0, pending1 = self.pending_fees
                self.pending_fees = (pending0 + fee0, pending1 + fee1)
                self.idle = self.idle.plus(fee0, fee1)
                out0, out1 = await self.pool.burn(lower, upper, slot.liquidity)
                self.idle = self.idle.plus(out0, out1)
                withdrawn0 += out0
                withdrawn1 += out1
            self.slots[name] = RangeSlot()
        return withdrawn0, withdrawn1

    async def _deploy(self) -> tuple[RangePlan, list[str]]:
        self.state = StrategyState.COMPUTING
        pool_state = await self.pool.current_state()
        # Raw-unit price: the skew compares balances in raw token units
        price_x18 = price_x18_from_sqrt_price_x96(pool_state.sqrt_price_x96)
        plan = compute_ranges(
            pool_state.tick,
            pool_state.tick_spacing,
            self.params.position_width,
            self.idle.amount0,
            self.idle.amount1,
            price_x18,
        )
        self.logger.debug(
            f"Planned main {plan.main.as_tuple()} alt {plan.alt.as_tuple()} "
            f"for idle {self.idle.amount0}/{self.idle.amount1}"
        )

        self.state = StrategyState.DEPOSITING
        rejected = []
        for name, position in ((MAIN, plan.main), (ALT, plan.alt)):
            if not await self._open(name, position, pool_state):
                rejected.append(name)
        self.state = StrategyState.IDLE
        return plan, rejected

    async def _open(self, name: str, position: Position, pool_state: PoolState) -> bool:
        liquidity = liquidity_for_amounts(
            pool_state.sqrt_price_x96,
            position.tick_lower,
            position.tick_upper,
            self.idle.amount0,
            self.idle.amount1,
        )
        if liquidity == 0:
            self.slots[name] = RangeSlot(position=position)
            return True
        try:
            used0, used1 = await self.pool.mint(
                position.tick_lower, position.tick_upper, liquidity
            )
        except MintRejectedError as exc:
            self.logger.warning(
                f"{name} range {position.as_tuple()} rejected, funds stay idle: {exc}"
            )
            self.slots[name] = RangeSlot()
            return False
        self.idle = self.idle.minus(used0, used1)
        self.slots[name] = RangeSlot(position=position, liquidity=liquidity)
        return True

    def _range_record(self, name: str) -> RangeRecord | None:
        slot = self.slots[name]
        if slot.position is None:
            return None
        return RangeRecord(
            tick_lower=slot.position.tick_lower,
            tick_upper=slot.position.tick_upper,
            liquidity=slot.liquidity,
        )
