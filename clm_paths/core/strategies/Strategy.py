from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, TypedDict

from loguru import logger


class StatusDict(TypedDict, total=False):
    strategy_state: str
    paused: bool
    pool: dict[str, Any]
    calm: dict[str, Any]
    positions: dict[str, Any]
    idle: list[int]
    pending_fees: list[int]
    locked_profit: list[int]
    reported_balance: list[int]
    config: dict[str, Any]


StatusTuple = tuple[bool, str]


class Strategy(ABC):
    """Keeper-facing surface shared by liquidity strategies.

    Funds enter and leave through ``deposit``/``withdraw``; the keeper drives
    the strategy with ``update`` on its own cadence and uses ``exit`` as the
    emergency stop.
    """

    name: str | None = None

    def __init__(self, config: dict[str, Any] | None = None, **kwargs: Any):
        self.logger = logger.bind(strategy=self.__class__.__name__)
        self.config: dict[str, Any] = dict(config or {})

    async def setup(self) -> None:
        pass

    @abstractmethod
    async def deposit(self, **kwargs) -> StatusTuple:
        pass

    async def withdraw(self, **kwargs) -> StatusTuple:
        return (True, "Nothing to withdraw")

    @abstractmethod
    async def update(self, **kwargs) -> StatusTuple:
        pass

    @abstractmethod
    async def exit(self, **kwargs) -> StatusTuple:
        pass

    @abstractmethod
    async def _status(self) -> StatusDict:
        pass

    async def status(self) -> StatusDict:
        status = await self._status()
        self.logger.debug(f"status: {status.get('strategy_state')}")
        return status
