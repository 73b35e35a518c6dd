"""
Reward Pool Ledger

This module provides:
- Deposits by participants, held until withdrawn
- Owner-injected rewards shared pro rata over open deposits
- Lazy reward accrual through a fixed-point reward index
- Atomic withdrawal of principal plus accrued share
- Owner pause switch and one-time initialization
"""

from .models import (
    EventType,
    DepositRecord,
    RewardData,
    PoolEvent,
    WithdrawResult,
    PoolInfo,
)
from .service import PoolService, PoolState

__all__ = [
    "EventType",
    "DepositRecord",
    "RewardData",
    "PoolEvent",
    "WithdrawResult",
    "PoolInfo",
    "PoolService",
    "PoolState",
]
