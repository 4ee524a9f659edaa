"""Linear unlock of harvested fees.

Fees recognised by a harvest are not counted in the reported balance right
away; they unlock linearly over ``DURATION`` seconds. A new harvest adds to
whatever is still locked and restarts the clock.
"""

from __future__ import annotations

from .constants import DURATION
from .types import LockedProfit


def locked_amount(amount: int, last_report: int, now: int, duration: int = DURATION) -> int:
    elapsed = max(0, now - last_report)
    remaining = max(0, duration - elapsed)
    return amount * remaining // duration


def locked_profit(lock: LockedProfit, now: int) -> tuple[int, int]:
    return (
        locked_amount(lock.amount0, lock.last_report, now),
        locked_amount(lock.amount1, lock.last_report, now),
    )


def top_up(
    lock: LockedProfit,
    now: int,
    harvested0: int,
    harvested1: int,
    *,
    balance0: int | None = None,
    balance1: int | None = None,
) -> LockedProfit:
    """Lock ``harvested`` on top of the still-locked remainder.

    When balances are given the new lock never exceeds them.
    """
    still0, still1 = locked_profit(lock, now)
    new0 = still0 + harvested0
    new1 = still1 + harvested1
    if balance0 is not None:
        new0 = min(new0, balance0)
    if balance1 is not None:
        new1 = min(new1, balance1)
    return LockedProfit(amount0=new0, amount1=new1, last_report=now)
