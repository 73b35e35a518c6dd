import logging
import threading

from fastapi import FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .models import (
    DepositRequest, RewardRequest, InitializeRequest,
    DepositRecord, RewardData, PoolEvent, PoolInfo, WithdrawResult,
    ParticipantPosition, StoppedResponse, BalanceResponse,
)
from .service import (
    PoolService, PoolServiceError, AlreadyInitializedError, NotInitializedError,
    NotOwnerError, NotAParticipantError, PoolStoppedError, ZeroAmountError,
    InvalidAmountError, InvalidIdentityError, NothingDepositedError,
    InvariantViolationError,
)

settings = get_settings()
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    AlreadyInitializedError: status.HTTP_409_CONFLICT,
    NotInitializedError: status.HTTP_503_SERVICE_UNAVAILABLE,
    NotOwnerError: status.HTTP_403_FORBIDDEN,
    NotAParticipantError: status.HTTP_403_FORBIDDEN,
    PoolStoppedError: status.HTTP_423_LOCKED,
    ZeroAmountError: status.HTTP_400_BAD_REQUEST,
    InvalidAmountError: status.HTTP_400_BAD_REQUEST,
    InvalidIdentityError: status.HTTP_400_BAD_REQUEST,
    NothingDepositedError: status.HTTP_400_BAD_REQUEST,
    InvariantViolationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

app = FastAPI(
    title="Reward Pool Ledger API",
    description="Deposit pool with owner-injected rewards distributed pro rata to open deposits",
    version=settings.POOL_VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

pool_service = PoolService(
    name=settings.POOL_NAME,
    version=settings.POOL_VERSION,
)
if settings.POOL_OWNER:
    pool_service.initialize(settings.POOL_OWNER)

# Sync routes run in a threadpool; ledger calls must not interleave.
_lock = threading.Lock()


def _call(operation, *args):
    with _lock:
        try:
            return operation(*args)
        except PoolServiceError as e:
            code = ERROR_STATUS.get(type(e), status.HTTP_400_BAD_REQUEST)
            raise HTTPException(
                status_code=code,
                detail={"error": type(e).__name__, "message": str(e), "retryable": e.retryable},
            )


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "reward-pool-ledger"}


@app.get("/pool", response_model=PoolInfo, tags=["System"])
def get_pool_info() -> PoolInfo:
    return _call(pool_service.info)


@app.post("/initialize", response_model=PoolInfo, tags=["System"])
def initialize_pool(request: InitializeRequest) -> PoolInfo:
    return _call(pool_service.initialize, request.owner)


@app.post("/deposit", response_model=DepositRecord, status_code=status.HTTP_201_CREATED, tags=["Participants"])
def deposit(request: DepositRequest, caller: str = Header(..., alias="X-Caller")) -> DepositRecord:
    return _call(pool_service.deposit, caller, request.amount)


@app.post("/withdraw", response_model=WithdrawResult, tags=["Participants"])
def withdraw(caller: str = Header(..., alias="X-Caller")) -> WithdrawResult:
    return _call(pool_service.withdraw, caller)


@app.get("/participants/{participant}", response_model=ParticipantPosition, tags=["Participants"])
def get_position(participant: str) -> ParticipantPosition:
    return _call(pool_service.position, participant)


@app.post("/reward", response_model=RewardData, tags=["Owner"])
def reward(request: RewardRequest, caller: str = Header(..., alias="X-Caller")) -> RewardData:
    return _call(pool_service.reward, caller, request.amount)


@app.post("/toggle-stopped", response_model=StoppedResponse, tags=["Owner"])
def toggle_stopped(caller: str = Header(..., alias="X-Caller")) -> StoppedResponse:
    return StoppedResponse(stopped=_call(pool_service.toggle_stopped, caller))


@app.get("/history", response_model=list[DepositRecord], tags=["Ledger"])
def get_history() -> list[DepositRecord]:
    return _call(pool_service.deposit_history)


@app.get("/reward", response_model=RewardData, tags=["Ledger"])
def get_reward_data() -> RewardData:
    return _call(pool_service.reward_data)


@app.get("/balance", response_model=BalanceResponse, tags=["Ledger"])
def get_balance() -> BalanceResponse:
    return BalanceResponse(balance=_call(pool_service.balance))


@app.get("/events", response_model=list[PoolEvent], tags=["Ledger"])
def get_events(limit: int = 50, offset: int = 0) -> list[PoolEvent]:
    return _call(pool_service.events, limit, offset)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
