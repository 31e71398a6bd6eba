"""
HTTP routes for the ledger API.

Handlers only translate between request bodies and LedgerService calls;
errors raised by the service are rendered by the handlers in app.py.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from vault_backend.dependencies import get_ledger_service, require_admin_key
from vault_backend.ledger import LedgerService
from vault_backend.records import Profile
from vault_backend.schemas import (
    DepositAttemptRequest,
    DepositAttemptResponse,
    DepositModel,
    DepositsResponse,
    LoginRequest,
    ManualDepositRequest,
    PercentageModel,
    PercentageResponse,
    PercentageUpdateRequest,
    ProfileModel,
    ProfileResponse,
    RegisterRequest,
    SignupRequest,
    StockModel,
    StocksResponse,
    StockUpdateRequest,
    StockUpdateResponse,
    UsersResponse,
    WithdrawRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _profile_response(profile: Profile) -> ProfileResponse:
    return ProfileResponse(profile=ProfileModel(**profile.as_dict()))


@router.post("/signup", response_model=ProfileResponse)
def signup(payload: SignupRequest, ledger: LedgerService = Depends(get_ledger_service)):
    profile = ledger.signup(payload.email, payload.password, payload.name)
    return _profile_response(profile)


@router.post("/login", response_model=ProfileResponse)
def login(payload: LoginRequest, ledger: LedgerService = Depends(get_ledger_service)):
    return _profile_response(ledger.login(payload.email, payload.password))


@router.post("/register", response_model=ProfileResponse)
def register(
    payload: RegisterRequest, ledger: LedgerService = Depends(get_ledger_service)
):
    """
    Legacy endpoint: upsert a user whose uid was issued by another identity provider.
    """
    profile = ledger.register_user(payload.uid, payload.email, payload.name)
    return _profile_response(profile)


@router.get("/profile/{uid}", response_model=ProfileResponse)
def profile(uid: str, ledger: LedgerService = Depends(get_ledger_service)):
    return _profile_response(ledger.get_profile(uid))


@router.get(
    "/users",
    response_model=UsersResponse,
    dependencies=[Depends(require_admin_key)],
)
def list_users(ledger: LedgerService = Depends(get_ledger_service)):
    users = [ProfileModel(**p.as_dict()) for p in ledger.list_users()]
    return UsersResponse(users=users)


@router.post(
    "/deposits/manual",
    response_model=ProfileResponse,
    dependencies=[Depends(require_admin_key)],
)
def manual_gas_deposit(
    payload: ManualDepositRequest, ledger: LedgerService = Depends(get_ledger_service)
):
    profile = ledger.credit_gas_balance(payload.uid, payload.amount_usd)
    return _profile_response(profile)


@router.post(
    "/deposits/manual/home",
    response_model=ProfileResponse,
    dependencies=[Depends(require_admin_key)],
)
def manual_home_deposit(
    payload: ManualDepositRequest, ledger: LedgerService = Depends(get_ledger_service)
):
    profile = ledger.credit_wallet_balance(payload.uid, payload.amount_usd, payload.note)
    return _profile_response(profile)


@router.post("/deposits/attempt", response_model=DepositAttemptResponse)
def deposit_attempt(
    payload: DepositAttemptRequest, ledger: LedgerService = Depends(get_ledger_service)
):
    record = ledger.record_deposit_attempt(
        payload.uid,
        payload.amount_usd,
        payload.asset,
        payload.address,
        payload.deposit_type,
    )
    return DepositAttemptResponse(
        message="Deposit attempt recorded. Payment will be processed within 1-3 hours.",
        deposit_id=record.id,
    )


@router.get(
    "/deposits/admin/{uid}",
    response_model=DepositsResponse,
    dependencies=[Depends(require_admin_key)],
)
def admin_deposits(uid: str, ledger: LedgerService = Depends(get_ledger_service)):
    deposits = [DepositModel(**d.as_dict()) for d in ledger.list_all_deposits(uid)]
    return DepositsResponse(deposits=deposits)


@router.get("/deposits/{uid}", response_model=DepositsResponse)
def deposits(uid: str, ledger: LedgerService = Depends(get_ledger_service)):
    records = [DepositModel(**d.as_dict()) for d in ledger.list_deposits(uid)]
    return DepositsResponse(deposits=records)


@router.post("/withdraw", response_model=ProfileResponse)
def withdraw(payload: WithdrawRequest, ledger: LedgerService = Depends(get_ledger_service)):
    profile = ledger.withdraw(
        payload.uid,
        payload.amount_usd,
        gas=payload.gas_usd,
        displayed_usd=payload.displayed_usd,
    )
    return _profile_response(profile)


@router.get("/stocks", response_model=StocksResponse)
def stocks(ledger: LedgerService = Depends(get_ledger_service)):
    return StocksResponse(stocks=[StockModel(**q.as_dict()) for q in ledger.list_stocks()])


@router.post(
    "/stocks/update-percentage",
    response_model=StockUpdateResponse,
    dependencies=[Depends(require_admin_key)],
)
def update_stock(
    payload: StockUpdateRequest, ledger: LedgerService = Depends(get_ledger_service)
):
    quote = ledger.update_stock(
        payload.company, payload.current_price, payload.percentage, payload.direction
    )
    return StockUpdateResponse(
        message="Stock percentage updated successfully",
        newPrice=f"{quote.current_price:.2f}",
        stock=StockModel(**quote.as_dict()),
    )


@router.get("/percentage/current", response_model=PercentageResponse)
def current_percentage(
    uid: Optional[str] = Query(None),
    ledger: LedgerService = Depends(get_ledger_service),
):
    setting = ledger.current_percentage(uid)
    logger.debug("Percentage for uid=%s resolved from %s scope", uid, setting.scope)
    return PercentageResponse(
        scope=setting.scope, percentage=PercentageModel(**setting.as_dict())
    )


@router.post(
    "/percentage/update",
    response_model=PercentageResponse,
    dependencies=[Depends(require_admin_key)],
)
def update_percentage(
    payload: PercentageUpdateRequest, ledger: LedgerService = Depends(get_ledger_service)
):
    setting = ledger.update_percentage(payload.value, payload.direction, uid=payload.uid)
    return PercentageResponse(
        scope=setting.scope, percentage=PercentageModel(**setting.as_dict())
    )
