"""
Reward pool ledger.

Participants deposit value, the owner injects rewards, and a withdrawal pays
back every open deposit of the caller plus its pro-rata share of the rewards
injected while it was outstanding. Shares are derived lazily from a running
exact rational reward index, so a reward costs O(1) regardless of how many
deposits are open.
"""

import logging
import math
from datetime import datetime, timezone
from fractions import Fraction
from typing import Callable, Optional

from .models import (
    EventType,
    DepositRecord,
    RewardData,
    PoolEvent,
    WithdrawResult,
    ParticipantPosition,
    PoolInfo,
)

logger = logging.getLogger(__name__)

DEFAULT_NAME = "ETHPool"
DEFAULT_VERSION = "1.0.0"


class PoolServiceError(Exception):
    retryable = False


class AlreadyInitializedError(PoolServiceError):
    pass


class NotInitializedError(PoolServiceError):
    pass


class NotOwnerError(PoolServiceError):
    pass


class NotAParticipantError(PoolServiceError):
    pass


class PoolStoppedError(PoolServiceError):
    retryable = True


class ZeroAmountError(PoolServiceError):
    pass


class InvalidAmountError(PoolServiceError):
    pass


class InvalidIdentityError(PoolServiceError):
    pass


class NothingDepositedError(PoolServiceError):
    pass


class InvariantViolationError(PoolServiceError):
    pass


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PoolState:
    def __init__(self):
        self.owner: Optional[str] = None
        self.initialized = False
        self.stopped = False
        self.history: list[dict] = []
        self.total_outstanding = 0
        self.reward_index = Fraction(0)
        self.reward_data: dict = {"amount": 0, "time": None}
        self.balance = 0
        self.absorbed = 0
        self.events: list[dict] = []


class PoolService:
    def __init__(
        self,
        state: Optional[PoolState] = None,
        clock: Optional[Callable[[], datetime]] = None,
        name: str = DEFAULT_NAME,
        version: str = DEFAULT_VERSION,
    ):
        self.state = state or PoolState()
        self.clock = clock or _utc_now
        self.name = name
        self.version = version
        self.listeners: list[Callable[[PoolEvent], None]] = []

    # -- mutating operations -------------------------------------------------

    def initialize(self, owner: str) -> PoolInfo:
        if self.state.initialized:
            raise self._reject(AlreadyInitializedError("Pool already initialized"))
        self._check_identity(owner)

        self.state.owner = owner
        self.state.initialized = True
        self.state.stopped = False
        self.state.history = []
        self.state.total_outstanding = 0
        self.state.reward_index = Fraction(0)
        self.state.reward_data = {"amount": 0, "time": None}
        self.state.balance = 0
        self.state.absorbed = 0
        self.state.events = []

        logger.info("Pool %s %s initialized, owner=%s", self.name, self.version, owner)
        return self.info()

    def deposit(self, caller: str, amount: int) -> DepositRecord:
        self._require_initialized()
        self._check_identity(caller)
        if caller == self.state.owner:
            raise self._reject(NotAParticipantError("Owner cannot deposit"))
        if self.state.stopped:
            raise self._reject(PoolStoppedError("Pool is stopped"))
        self._check_amount(amount)

        now = self.clock()
        record = {
            "id": len(self.state.history),
            "participant": caller,
            "amount": amount,
            "timestamp": now,
            "settled": False,
            "settled_at": None,
            "payout": None,
            "index_at_deposit": self.state.reward_index,
        }
        self.state.history.append(record)
        self.state.total_outstanding += amount
        self.state.balance += amount

        logger.info("Deposit of %d by %s (outstanding=%d)", amount, caller, self.state.total_outstanding)
        self._emit({
            "event": EventType.DEPOSIT,
            "timestamp": now,
            "participant": caller,
            "amount": amount,
        })
        return DepositRecord(**record)

    def reward(self, caller: str, amount: int) -> RewardData:
        """Inject ``amount`` and spread it over every open deposit.

        The index grows by exactly ``amount / total_outstanding``, so the only
        loss is the floor taken per record at withdrawal. With nothing
        outstanding the reward is absorbed into the balance.
        """
        self._require_initialized()
        self._check_identity(caller)
        if caller != self.state.owner:
            raise self._reject(NotOwnerError("Only the owner can reward"))
        if self.state.stopped:
            raise self._reject(PoolStoppedError("Pool is stopped"))
        self._check_amount(amount)

        now = self.clock()
        if self.state.total_outstanding > 0:
            self.state.reward_index += Fraction(amount, self.state.total_outstanding)
        else:
            self.state.absorbed += amount
            logger.warning("Reward of %d absorbed: no outstanding deposits", amount)
        self.state.balance += amount
        self.state.reward_data = {"amount": amount, "time": now}

        logger.info("Reward of %d injected (index=%s)", amount, self.state.reward_index)
        self._emit({
            "event": EventType.REWARD,
            "timestamp": now,
            "amount": amount,
        })
        return RewardData(**self.state.reward_data)

    def withdraw(self, caller: str) -> WithdrawResult:
        """Settle every open deposit of ``caller`` in one step."""
        self._require_initialized()
        self._check_identity(caller)
        if caller == self.state.owner:
            raise self._reject(NotAParticipantError("Owner cannot withdraw"))

        open_records = self._open_records(caller)
        if not open_records:
            raise self._reject(NothingDepositedError(f"Nothing deposited by {caller}"))

        payouts = [r["amount"] + self._accrued_share(r) for r in open_records]
        deposited = sum(r["amount"] for r in open_records)
        payout = sum(payouts)
        if payout > self.state.balance:
            raise self._reject(InvariantViolationError(
                f"Payout {payout} exceeds pool balance {self.state.balance}"
            ))

        now = self.clock()
        for record, record_payout in zip(open_records, payouts):
            record["settled"] = True
            record["settled_at"] = now
            record["payout"] = record_payout
        self.state.total_outstanding -= deposited
        self.state.balance -= payout

        logger.info(
            "Withdraw by %s: deposited=%d payout=%d records=%d",
            caller, deposited, payout, len(open_records),
        )
        self._emit({
            "event": EventType.WITHDRAW,
            "timestamp": now,
            "participant": caller,
            "amount": deposited,
            "payout": payout,
        })
        return WithdrawResult(
            participant=caller,
            deposited=deposited,
            payout=payout,
            records_settled=len(open_records),
            timestamp=now,
        )

    def toggle_stopped(self, caller: str) -> bool:
        self._require_initialized()
        self._check_identity(caller)
        if caller != self.state.owner:
            raise self._reject(NotOwnerError("Only the owner can stop the pool"))

        self.state.stopped = not self.state.stopped
        logger.info("Pool %s", "stopped" if self.state.stopped else "resumed")
        self._emit({
            "event": EventType.STOPPED,
            "timestamp": self.clock(),
            "stopped": self.state.stopped,
        })
        return self.state.stopped

    # -- reads ---------------------------------------------------------------

    def deposit_history(self) -> list[DepositRecord]:
        return [DepositRecord(**r) for r in self.state.history]

    def reward_data(self) -> RewardData:
        return RewardData(**self.state.reward_data)

    def balance(self) -> int:
        return self.state.balance

    def deposited_by(self, participant: str) -> int:
        return sum(r["amount"] for r in self._open_records(participant))

    def pending_reward(self, participant: str) -> int:
        return sum(self._accrued_share(r) for r in self._open_records(participant))

    def position(self, participant: str) -> ParticipantPosition:
        open_records = self._open_records(participant)
        return ParticipantPosition(
            participant=participant,
            deposited=sum(r["amount"] for r in open_records),
            pending_reward=sum(self._accrued_share(r) for r in open_records),
            open_records=len(open_records),
        )

    def events(self, limit: Optional[int] = None, offset: int = 0) -> list[PoolEvent]:
        end = None if limit is None else offset + limit
        return [PoolEvent(**e) for e in self.state.events[offset:end]]

    def info(self) -> PoolInfo:
        return PoolInfo(
            name=self.name,
            version=self.version,
            owner=self.state.owner,
            initialized=self.state.initialized,
            stopped=self.state.stopped,
            balance=self.state.balance,
            total_outstanding=self.state.total_outstanding,
            absorbed=self.state.absorbed,
        )

    def verify_invariants(self) -> None:
        """Raise InvariantViolationError if the bookkeeping is inconsistent."""
        outstanding = sum(r["amount"] for r in self.state.history if not r["settled"])
        if outstanding != self.state.total_outstanding:
            raise InvariantViolationError(
                f"total_outstanding={self.state.total_outstanding} but open records sum to {outstanding}"
            )
        if self.state.balance < 0:
            raise InvariantViolationError(f"Negative balance {self.state.balance}")
        owed = sum(
            r["amount"] + self._accrued_share(r)
            for r in self.state.history if not r["settled"]
        )
        if owed > self.state.balance:
            raise InvariantViolationError(f"Open claims {owed} exceed balance {self.state.balance}")

    # -- observers -----------------------------------------------------------

    def subscribe(self, listener: Callable[[PoolEvent], None]) -> None:
        self.listeners.append(listener)

    def unsubscribe(self, listener: Callable[[PoolEvent], None]) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    # -- helpers -------------------------------------------------------------

    def _emit(self, event_data: dict) -> None:
        self.state.events.append(event_data)
        event = PoolEvent(**event_data)
        for listener in list(self.listeners):
            try:
                listener(event)
            except Exception:
                # The operation has already committed.
                logger.exception("Listener %r failed on %s event", listener, event.event.value)

    def _accrued_share(self, record: dict) -> int:
        return math.floor(record["amount"] * (self.state.reward_index - record["index_at_deposit"]))

    def _open_records(self, participant: str) -> list[dict]:
        return [
            r for r in self.state.history
            if r["participant"] == participant and not r["settled"]
        ]

    def _require_initialized(self) -> None:
        if not self.state.initialized:
            raise self._reject(NotInitializedError("Pool is not initialized"))

    def _check_identity(self, identity: str) -> None:
        if not isinstance(identity, str) or not identity:
            raise self._reject(InvalidIdentityError(f"Invalid identity {identity!r}"))

    def _check_amount(self, amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise self._reject(InvalidAmountError(f"Amount must be a non-negative integer, got {amount!r}"))
        if amount == 0:
            raise self._reject(ZeroAmountError("Amount must be greater than zero"))

    @staticmethod
    def _reject(error: PoolServiceError) -> PoolServiceError:
        logger.warning("Rejected %s: %s", type(error).__name__, error)
        return error
