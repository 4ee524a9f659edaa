#!/usr/bin/env python3

# Allow running as a script: `python clm_paths/run_strategy.py ...`
if __name__ == "__main__" and __package__ is None:
    import sys
    from pathlib import Path

    sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import argparse
import asyncio
import json
import sys
from collections import Counter
from pathlib import Path
from typing import Any

from loguru import logger

from clm_paths.adapters.simulated_pool_adapter.adapter import SimulatedPool
from clm_paths.adapters.uniswap_v3_pool_adapter.adapter import UniswapV3PoolReader
from clm_paths.core.config import CONFIG, env_strategy_overrides, load_config
from clm_paths.core.utils.uniswap_v3_math import (
    format_x18,
    price_x18_at_tick,
    price_x18_from_sqrt_price_x96,
)
from clm_paths.strategies.passive_clm_strategy.calm import check_calm
from clm_paths.strategies.passive_clm_strategy.ranges import compute_ranges
from clm_paths.strategies.passive_clm_strategy.strategy import PassiveClmStrategy
from clm_paths.strategies.passive_clm_strategy.types import (
    Capability,
    Role,
    StrategyConfig,
)

KEEPER = Capability.of(Role.OPERATOR, Role.OWNER)


def get_strategy_config(environ: dict[str, str] | None = None) -> dict[str, Any]:
    config = dict(CONFIG.get("strategy", {}))
    config.update(env_strategy_overrides(environ))
    return config


def load_tick_path(path: str | Path) -> dict[str, Any]:
    """Read a simulated price path.

    Either a bare list of ticks or an object with ``ticks`` and optional
    ``tick_spacing``, ``fees_per_step`` and ``deposit`` entries.
    """
    raw = json.loads(Path(path).read_text())
    tick_path = {"ticks": raw} if isinstance(raw, list) else dict(raw)
    ticks = tick_path.get("ticks")
    if not isinstance(ticks, list) or not ticks:
        raise ValueError(f"{path}: expected a non-empty list of ticks")
    tick_path["ticks"] = [int(t) for t in ticks]
    tick_path.setdefault("tick_spacing", 10)
    tick_path.setdefault("fees_per_step", [0, 0])
    tick_path.setdefault("deposit", [10**18, 10**18])
    return tick_path


def _range_prices(lower: int, upper: int, decimals0: int, decimals1: int) -> list[str]:
    return [
        format_x18(price_x18_at_tick(lower, decimals0, decimals1)),
        format_x18(price_x18_at_tick(upper, decimals0, decimals1)),
    ]


async def pool_status(
    config: dict[str, Any], *, amount0: int = 0, amount1: int = 0
) -> dict[str, Any]:
    """Live pool report: price, TWAP, calm verdict and the ranges a rebalance would pick."""
    params = StrategyConfig(
        **{k: v for k, v in config.items() if k in StrategyConfig.model_fields}
    )
    decimals0 = int(config.get("token0_decimals", 0))
    decimals1 = int(config.get("token1_decimals", 0))

    reader = UniswapV3PoolReader(config)
    ok, overview = await reader.pool_overview()
    if not ok:
        raise RuntimeError(f"Pool read failed: {overview}")
    twap_tick = await reader.time_weighted_tick(params.twap_interval)
    check = check_calm(overview["tick"], twap_tick, params.max_tick_deviation)

    plan = compute_ranges(
        overview["tick"],
        overview["tick_spacing"],
        params.position_width,
        amount0,
        amount1,
        price_x18_from_sqrt_price_x96(overview["sqrt_price_x96"]),
    )
    return {
        "pool": overview,
        "price": format_x18(
            price_x18_from_sqrt_price_x96(overview["sqrt_price_x96"], decimals0, decimals1)
        ),
        "twap_tick": twap_tick,
        "calm": check.verdict.value,
        "deviation": check.deviation,
        "max_deviation": params.max_tick_deviation,
        "suggested": {
            "main": {
                "ticks": list(plan.main.as_tuple()),
                "prices": _range_prices(*plan.main.as_tuple(), decimals0, decimals1),
            },
            "alt": {
                "ticks": list(plan.alt.as_tuple()),
                "prices": _range_prices(*plan.alt.as_tuple(), decimals0, decimals1),
                "side": plan.side.value,
            },
        },
        "config": params.model_dump(),
    }


async def simulate(
    config: dict[str, Any],
    tick_path: dict[str, Any],
    *,
    step_seconds: int = 60,
    rebalance_every: int = 1,
    harvest_every: int = 10,
) -> dict[str, Any]:
    """Replay a tick path through a simulated pool with a keeper cadence."""
    if step_seconds <= 0 or rebalance_every <= 0 or harvest_every <= 0:
        raise ValueError("step and cadence values must be positive")

    ticks = tick_path["ticks"]
    pool = SimulatedPool(tick=ticks[0], tick_spacing=int(tick_path["tick_spacing"]))
    strategy = PassiveClmStrategy(config, pool=pool, clock=lambda: pool.timestamp)

    # Build enough oracle history for the first calm check
    pool.advance(strategy.params.twap_interval)
    amount0, amount1 = (int(a) for a in tick_path["deposit"])
    await strategy.credit_idle(amount0, amount1)

    outcomes: Counter[str] = Counter()
    result = await strategy.rebalance(KEEPER)
    outcomes[f"rebalance:{result.outcome.value}"] += 1

    fee0, fee1 = (int(f) for f in tick_path["fees_per_step"])
    for step, tick in enumerate(ticks[1:], start=1):
        pool.advance(step_seconds)
        pool.move_to_tick(tick)
        pool.accrue_fees(fee0, fee1)
        if step % harvest_every == 0:
            result = await strategy.harvest(KEEPER)
            outcomes[f"harvest:{result.outcome.value}"] += 1
        elif step % rebalance_every == 0:
            result = await strategy.rebalance(KEEPER)
            outcomes[f"rebalance:{result.outcome.value}"] += 1

    status = await strategy.status()
    logger.info(f"Simulated {len(ticks)} ticks: {dict(outcomes)}")
    return {
        "steps": len(ticks),
        "outcomes": dict(sorted(outcomes.items())),
        "status": status,
        "history": [op.op_data.model_dump() for op in strategy.history],
    }


async def run_strategy(action: str = "status", **kw) -> dict[str, Any]:
    config = get_strategy_config(kw.get("environ"))

    if action == "status":
        return await pool_status(
            config, amount0=kw.get("amount0") or 0, amount1=kw.get("amount1") or 0
        )
    if action == "simulate":
        ticks_path = kw.get("ticks")
        if not ticks_path:
            raise ValueError("simulate requires --ticks")
        return await simulate(
            config,
            load_tick_path(ticks_path),
            step_seconds=kw.get("step_seconds") or 60,
            rebalance_every=kw.get("rebalance_every") or 1,
            harvest_every=kw.get("harvest_every") or 10,
        )
    raise ValueError(f"Unknown action: {action}")


def main(argv: list[str] | None = None) -> None:
    p = argparse.ArgumentParser(description="Passive CLM keeper")
    p.add_argument("--action", default="status", choices=["status", "simulate"])
    p.add_argument(
        "--config",
        default=None,
        help="Path to config JSON (default: config.json at the project root)",
    )
    p.add_argument("--ticks", default=None, help="Tick path JSON (simulate only)")
    p.add_argument("--step-seconds", type=int, dest="step_seconds", default=60)
    p.add_argument("--rebalance-every", type=int, dest="rebalance_every", default=1)
    p.add_argument("--harvest-every", type=int, dest="harvest_every", default=10)
    p.add_argument(
        "--amount0",
        type=int,
        default=0,
        help="Idle token0 (raw units) used for the suggested alt side (status only)",
    )
    p.add_argument(
        "--amount1",
        type=int,
        default=0,
        help="Idle token1 (raw units) used for the suggested alt side (status only)",
    )
    p.add_argument("--debug", action="store_true")
    args = p.parse_args(argv)

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.debug else "INFO")

    try:
        load_config(args.config, require_exists=bool(args.config))
    except FileNotFoundError as exc:
        raise SystemExit(str(exc)) from exc

    result = asyncio.run(
        run_strategy(
            args.action,
            ticks=args.ticks,
            step_seconds=args.step_seconds,
            rebalance_every=args.rebalance_every,
            harvest_every=args.harvest_every,
            amount0=args.amount0,
            amount1=args.amount1,
        )
    )
    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
