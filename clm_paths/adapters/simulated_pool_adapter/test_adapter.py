import pytest

from clm_paths.adapters.simulated_pool_adapter.adapter import SimulatedPool
from clm_paths.core.adapters.pool import MintRejectedError, PoolProtocol
from clm_paths.core.utils.uniswap_v3_math import sqrt_price_x96_from_tick


@pytest.fixture
def pool():
    return SimulatedPool(tick=1000, tick_spacing=10, fee=500, start_time=1_000)


def test_implements_pool_protocol(pool):
    assert isinstance(pool, PoolProtocol)


@pytest.mark.asyncio
async def test_current_state_tracks_tick(pool):
    state = await pool.current_state()
    assert state.tick == 1000
    assert state.sqrt_price_x96 == sqrt_price_x96_from_tick(1000)
    assert state.tick_spacing == 10
    assert state.fee == 500

    pool.move_to_tick(-37)
    state = await pool.current_state()
    assert state.tick == -37


@pytest.mark.asyncio
async def test_set_sqrt_price_derives_tick(pool):
    sqrt_price = sqrt_price_x96_from_tick(250) + 1
    pool.set_sqrt_price(sqrt_price)
    state = await pool.current_state()
    assert state.tick == 250
    assert state.sqrt_price_x96 == sqrt_price


@pytest.mark.asyncio
async def test_twap_needs_history(pool):
    assert await pool.time_weighted_tick(60) is None
    pool.advance(60)
    assert await pool.time_weighted_tick(60) == 1000


@pytest.mark.asyncio
async def test_twap_averages_over_window(pool):
    pool.advance(60)
    pool.move_to_tick(1120)
    pool.advance(60)
    # half the window at 1000, half at 1120
    assert await pool.time_weighted_tick(120) == 1060
    assert await pool.time_weighted_tick(60) == 1120


@pytest.mark.asyncio
async def test_twap_truncates_negative_mean_toward_zero():
    pool = SimulatedPool(tick=0, tick_spacing=1, start_time=0)
    pool.advance(1)
    pool.move_to_tick(-3)
    pool.advance(1)
    assert await pool.time_weighted_tick(2) == -1


@pytest.mark.asyncio
async def test_twap_disabled_oracle(pool):
    pool.advance(600)
    pool.oracle_available = False
    assert await pool.time_weighted_tick(60) is None


@pytest.mark.asyncio
async def test_mint_then_burn_returns_principal(pool):
    used0, used1 = await pool.mint(800, 1200, 10**18)
    assert used0 > 0 and used1 > 0
    assert pool.positions[(800, 1200)] == 10**18

    out0, out1 = await pool.burn(800, 1200, 10**18)
    assert (out0, out1) == (used0, used1)
    assert (800, 1200) not in pool.positions


@pytest.mark.asyncio
async def test_burn_more_than_held_fails(pool):
    await pool.mint(800, 1200, 100)
    with pytest.raises(ValueError):
        await pool.burn(800, 1200, 101)


@pytest.mark.asyncio
@pytest.mark.parametrize("lower,upper", [(805, 1200), (1200, 800), (-887280, 0)])
async def test_mint_rejects_invalid_ranges(pool, lower, upper):
    with pytest.raises(MintRejectedError):
        await pool.mint(lower, upper, 100)


@pytest.mark.asyncio
async def test_mint_rejects_configured_range(pool):
    pool.rejected_ranges.add((1200, 1210))
    with pytest.raises(MintRejectedError):
        await pool.mint(1200, 1210, 100)
    assert pool.positions == {}


@pytest.mark.asyncio
async def test_fees_go_to_in_range_liquidity(pool):
    await pool.mint(800, 1200, 3 * 10**18)
    await pool.mint(1200, 1210, 10**18)  # above the current tick
    assert pool.accrue_fees(900, 300) == (900, 300)

    assert await pool.collect_fees(800, 1200) == (900, 300)
    assert await pool.collect_fees(800, 1200) == (0, 0)
    assert await pool.collect_fees(1200, 1210) == (0, 0)


def test_fees_without_liquidity_are_dropped(pool):
    assert pool.accrue_fees(100, 100) == (0, 0)
    assert pool.fees_owed == {}


@pytest.mark.asyncio
async def test_snapshot_restore(pool):
    saved = pool.snapshot()
    await pool.mint(800, 1200, 10**18)
    pool.accrue_fees(10, 10)
    pool.advance(30)
    pool.move_to_tick(5000)

    pool.restore(saved)
    state = await pool.current_state()
    assert state.tick == 1000
    assert pool.positions == {}
    assert pool.fees_owed == {}
    assert pool.timestamp == 1_000
