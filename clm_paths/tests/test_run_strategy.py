from __future__ import annotations

import copy
import json
from pathlib import Path

import pytest

import clm_paths.core.config as config
import clm_paths.run_strategy as run_strategy
from clm_paths.core.utils.uniswap_v3_math import sqrt_price_x96_from_tick

SIM_CONFIG = {"position_width": 200, "max_tick_deviation": 200, "twap_interval": 120}


@pytest.fixture
def restore_global_config() -> None:
    original = copy.deepcopy(config.CONFIG)
    yield
    config.set_config(original)


def _write(path: Path, payload) -> Path:
    path.write_text(json.dumps(payload))
    return path


def test_load_tick_path_accepts_bare_list(tmp_path: Path) -> None:
    tick_path = run_strategy.load_tick_path(_write(tmp_path / "p.json", [1000, "1010"]))
    assert tick_path["ticks"] == [1000, 1010]
    assert tick_path["tick_spacing"] == 10
    assert tick_path["fees_per_step"] == [0, 0]


def test_load_tick_path_accepts_object(tmp_path: Path) -> None:
    tick_path = run_strategy.load_tick_path(
        _write(
            tmp_path / "p.json",
            {"ticks": [0, 60], "tick_spacing": 60, "deposit": [5, 7]},
        )
    )
    assert tick_path["tick_spacing"] == 60
    assert tick_path["deposit"] == [5, 7]


def test_load_tick_path_rejects_empty(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        run_strategy.load_tick_path(_write(tmp_path / "p.json", {"ticks": []}))


def test_get_strategy_config_applies_env_overrides(restore_global_config: None) -> None:
    config.set_config({"strategy": {"position_width": 200, "chain_id": 8453}})
    merged = run_strategy.get_strategy_config({"POSITION_WIDTH": "600"})
    assert merged == {"position_width": 600, "chain_id": 8453}


@pytest.mark.asyncio
async def test_simulate_calm_path() -> None:
    tick_path = {
        "ticks": [1000] * 20,
        "tick_spacing": 10,
        "fees_per_step": [100, 100],
        "deposit": [10**18, 10**18],
    }
    result = await run_strategy.simulate(SIM_CONFIG, tick_path, harvest_every=10)

    assert result["steps"] == 20
    assert result["outcomes"] == {"harvest:ok": 1, "rebalance:ok": 19}
    main = result["status"]["positions"]["main"]
    assert (main["tick_lower"], main["tick_upper"]) == (800, 1200)
    assert any(op["type"] == "HARVEST" for op in result["history"])


@pytest.mark.asyncio
async def test_simulate_price_jump_blocks_rebalance() -> None:
    tick_path = {
        "ticks": [1000, 1000, 1600, 1600],
        "tick_spacing": 10,
        "fees_per_step": [0, 0],
        "deposit": [10**18, 10**18],
    }
    result = await run_strategy.simulate(SIM_CONFIG, tick_path, harvest_every=100)

    assert result["outcomes"]["rebalance:not_calm"] == 2
    main = result["status"]["positions"]["main"]
    assert (main["tick_lower"], main["tick_upper"]) == (800, 1200)


@pytest.mark.asyncio
async def test_simulate_rejects_bad_cadence() -> None:
    with pytest.raises(ValueError):
        await run_strategy.simulate(SIM_CONFIG, {"ticks": [0]}, rebalance_every=0)


@pytest.mark.asyncio
async def test_pool_status_uses_reader(monkeypatch: pytest.MonkeyPatch) -> None:
    class _FakeReader:
        def __init__(self, cfg):
            self.cfg = cfg

        async def pool_overview(self):
            return True, {
                "tick": 1000,
                "tick_spacing": 10,
                "sqrt_price_x96": sqrt_price_x96_from_tick(1000),
                "fee": 500,
            }

        async def time_weighted_tick(self, lookback_seconds):
            return 950

    monkeypatch.setattr(run_strategy, "UniswapV3PoolReader", _FakeReader)
    report = await run_strategy.pool_status(SIM_CONFIG, amount0=0, amount1=100)

    assert report["calm"] == "calm"
    assert report["deviation"] == 50
    assert report["suggested"]["main"]["ticks"] == [800, 1200]
    assert report["suggested"]["alt"]["ticks"] == [790, 800]
    assert report["suggested"]["alt"]["side"] == "below"


@pytest.mark.asyncio
async def test_pool_status_surfaces_read_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    class _BrokenReader:
        def __init__(self, cfg):
            pass

        async def pool_overview(self):
            return False, "rpc down"

    monkeypatch.setattr(run_strategy, "UniswapV3PoolReader", _BrokenReader)
    with pytest.raises(RuntimeError, match="rpc down"):
        await run_strategy.pool_status(SIM_CONFIG)


@pytest.mark.asyncio
async def test_unknown_action() -> None:
    with pytest.raises(ValueError):
        await run_strategy.run_strategy("deploy")


def test_main_simulate_prints_json(
    restore_global_config: None,
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    for key in ("POSITION_WIDTH", "TWAP_INTERVAL", "MAX_TICK_DEV"):
        monkeypatch.delenv(key, raising=False)
    cfg = _write(tmp_path / "config.json", {"strategy": SIM_CONFIG})
    ticks = _write(tmp_path / "ticks.json", [1000, 1000, 1000])

    run_strategy.main(
        ["--action", "simulate", "--config", str(cfg), "--ticks", str(ticks)]
    )

    out = json.loads(capsys.readouterr().out)
    assert out["steps"] == 3
    assert out["status"]["strategy_state"] == "IDLE"


def test_main_missing_config_exits(tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        run_strategy.main(["--config", str(tmp_path / "nope.json")])
