from __future__ import annotations

from typing import Any

from eth_utils import to_checksum_address

from clm_paths.core.adapters.BaseAdapter import BaseAdapter
from clm_paths.core.adapters.decorators import none_on_error, status_tuple
from clm_paths.core.adapters.pool import PoolState
from clm_paths.core.constants.uniswap_v3_abi import UNISWAP_V3_POOL_ABI
from clm_paths.core.utils.uniswap_v3_math import twap_tick_from_cumulatives
from clm_paths.core.utils.web3 import web3_from_chain_id


class UniswapV3PoolReader(BaseAdapter):
    """Read side of a live Uniswap v3 (or fork) pool.

    Serves ``current_state`` and ``time_weighted_tick`` so the calm guard and
    status reports can run against a real pool. Liquidity changes go through
    the vault's own contracts and are not issued from here.
    """

    adapter_type: str = "UNISWAP_V3_POOL"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        chain_id: int | None = None,
        pool_address: str | None = None,
    ):
        super().__init__("uniswap_v3_pool_adapter", config)
        chain_id = chain_id if chain_id is not None else self.config.get("chain_id")
        pool_address = pool_address or self.config.get("pool_address")
        if chain_id is None or not pool_address:
            raise ValueError("chain_id and pool_address are required")
        self.chain_id = int(chain_id)
        self.pool_address = to_checksum_address(str(pool_address))
        # Immutable pool parameters, read once
        self._tick_spacing: int | None = None
        self._fee: int | None = None

    def _pool(self, w3):
        return w3.eth.contract(address=self.pool_address, abi=UNISWAP_V3_POOL_ABI)

    async def current_state(self) -> PoolState:
        async with web3_from_chain_id(self.chain_id) as w3:
            pool = self._pool(w3)
            slot0 = await pool.functions.slot0().call()
            if self._tick_spacing is None:
                self._tick_spacing = int(await pool.functions.tickSpacing().call())
            if self._fee is None:
                self._fee = int(await pool.functions.fee().call())
        return PoolState(
            sqrt_price_x96=int(slot0[0]),
            tick=int(slot0[1]),
            tick_spacing=self._tick_spacing,
            fee=self._fee,
        )

    @none_on_error
    async def time_weighted_tick(self, lookback_seconds: int) -> int | None:
        if lookback_seconds <= 0:
            return None
        async with web3_from_chain_id(self.chain_id) as w3:
            tick_cumulatives, _ = await (
                self._pool(w3).functions.observe([lookback_seconds, 0]).call()
            )
        return twap_tick_from_cumulatives(
            int(tick_cumulatives[0]), int(tick_cumulatives[1]), lookback_seconds
        )

    @status_tuple
    async def pool_overview(self) -> dict[str, Any]:
        async with web3_from_chain_id(self.chain_id) as w3:
            pool = self._pool(w3)
            token0 = await pool.functions.token0().call()
            token1 = await pool.functions.token1().call()
        state = await self.current_state()
        return {
            "address": self.pool_address,
            "chain_id": self.chain_id,
            "token0": token0,
            "token1": token1,
            "fee": state.fee,
            "tick_spacing": state.tick_spacing,
            "tick": state.tick,
            "sqrt_price_x96": state.sqrt_price_x96,
        }
