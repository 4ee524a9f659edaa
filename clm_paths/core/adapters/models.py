from typing import Annotated, Literal

from pydantic import BaseModel, Field


class OperationBase(BaseModel):
    # Filled in by the strategy when the operation is recorded; callers may
    # build records without them (e.g. for replaying a history file).
    strategy: str = "unknown"
    timestamp: int = 0
    outcome: str = "ok"
    message: str = ""


class RangeRecord(BaseModel):
    tick_lower: int
    tick_upper: int
    liquidity: int = 0


class REBALANCE(OperationBase):
    type: Literal["REBALANCE"] = "REBALANCE"
    tick: int
    twap_tick: int | None = None
    main: RangeRecord | None = None
    alt: RangeRecord | None = None
    withdrawn0: int = 0
    withdrawn1: int = 0
    deposited0: int = 0
    deposited1: int = 0


class HARVEST(OperationBase):
    type: Literal["HARVEST"] = "HARVEST"
    fee0: int
    fee1: int
    protocol_fee0: int = 0
    protocol_fee1: int = 0
    locked0: int
    locked1: int


class PANIC(OperationBase):
    type: Literal["PANIC"] = "PANIC"
    withdrawn0: int
    withdrawn1: int


class UNPAUSE(OperationBase):
    type: Literal["UNPAUSE"] = "UNPAUSE"


class CONFIG_CHANGE(OperationBase):
    type: Literal["CONFIG_CHANGE"] = "CONFIG_CHANGE"
    key: str
    old_value: int
    new_value: int


Operation = REBALANCE | HARVEST | PANIC | UNPAUSE | CONFIG_CHANGE


class STRAT_OP(BaseModel):
    op_data: Annotated[Operation, Field(discriminator="type")]
