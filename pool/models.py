from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class EventType(str, Enum):
    DEPOSIT = "Deposit"
    REWARD = "Reward"
    WITHDRAW = "Withdraw"
    STOPPED = "Stopped"


class DepositRequest(BaseModel):
    amount: int = Field(..., description="Value attached to the deposit, in minimal units")

    model_config = ConfigDict(json_schema_extra={
        "example": {"amount": 1000000000000000}
    })


class RewardRequest(BaseModel):
    amount: int = Field(..., description="Reward value injected by the owner, in minimal units")


class InitializeRequest(BaseModel):
    owner: str = Field(..., description="Administrator identity, fixed for the pool lifetime")


class DepositRecord(BaseModel):
    id: int
    participant: str
    amount: int
    timestamp: datetime
    settled: bool = False
    settled_at: Optional[datetime] = None
    payout: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class RewardData(BaseModel):
    amount: int = 0
    time: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PoolEvent(BaseModel):
    event: EventType
    timestamp: datetime
    participant: Optional[str] = None
    amount: Optional[int] = None
    payout: Optional[int] = None
    stopped: Optional[bool] = None

    model_config = ConfigDict(from_attributes=True)


class WithdrawResult(BaseModel):
    participant: str
    deposited: int
    payout: int
    records_settled: int
    timestamp: datetime


class ParticipantPosition(BaseModel):
    participant: str
    deposited: int
    pending_reward: int
    open_records: int


class PoolInfo(BaseModel):
    name: str
    version: str
    owner: Optional[str] = None
    initialized: bool
    stopped: bool
    balance: int
    total_outstanding: int
    absorbed: int


class StoppedResponse(BaseModel):
    stopped: bool


class BalanceResponse(BaseModel):
    balance: int
