"""
Pydantic schemas for the ledger HTTP API.

Request bodies keep the camelCase names the web client already sends.
Range checks live in the service so every caller gets the same errors.
"""

from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _CamelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SignupRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class RegisterRequest(BaseModel):
    uid: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None


class ManualDepositRequest(_CamelRequest):
    uid: Optional[str] = None
    amount_usd: Optional[float] = Field(default=None, alias="amountUsd")
    note: Optional[str] = None


class DepositAttemptRequest(_CamelRequest):
    uid: Optional[str] = None
    amount_usd: Optional[float] = Field(default=None, alias="amountUsd")
    asset: Optional[str] = None
    address: Optional[str] = None
    deposit_type: Optional[str] = Field(default=None, alias="depositType")


class WithdrawRequest(_CamelRequest):
    uid: Optional[str] = None
    amount_usd: Optional[float] = Field(default=None, alias="amountUsd")
    # Missing gasUsd means no gas fee.
    gas_usd: Optional[float] = Field(default=0, alias="gasUsd")
    # Unparseable values are ignored by the service, not rejected here.
    displayed_usd: Any = Field(default=None, alias="displayedUsd")


class StockUpdateRequest(_CamelRequest):
    company: Optional[str] = None
    current_price: Optional[float] = Field(default=None, alias="currentPrice")
    percentage: Optional[float] = None
    direction: Optional[str] = None


class PercentageUpdateRequest(BaseModel):
    uid: Optional[str] = None
    value: Optional[float] = None
    direction: Optional[str] = None


class ProfileModel(BaseModel):
    uid: str
    email: Optional[str] = None
    name: Optional[str] = None
    created_at: float
    balance_usd: float
    wallet_balance_usd: float


class ProfileResponse(BaseModel):
    ok: Literal[True] = True
    profile: ProfileModel


class UsersResponse(BaseModel):
    ok: Literal[True] = True
    users: list[ProfileModel]


class DepositModel(BaseModel):
    id: Optional[Union[int, str]] = None
    uid: str
    amount_usd: float
    note: Optional[str] = None
    created_at: float


class DepositsResponse(BaseModel):
    ok: Literal[True] = True
    deposits: list[DepositModel]


class DepositAttemptResponse(BaseModel):
    ok: Literal[True] = True
    message: str
    deposit_id: Optional[Union[int, str]] = None


class StockModel(BaseModel):
    company: str
    current_price: float
    percentage_change: float
    direction: str
    updated_at: float


class StocksResponse(BaseModel):
    ok: Literal[True] = True
    stocks: list[StockModel]


class StockUpdateResponse(BaseModel):
    ok: Literal[True] = True
    message: str
    newPrice: str
    stock: StockModel


class PercentageModel(BaseModel):
    value: float
    direction: str


class PercentageResponse(BaseModel):
    ok: Literal[True] = True
    scope: str
    percentage: PercentageModel


class ErrorResponse(BaseModel):
    ok: Literal[False] = False
    error: str
    detail: Optional[str] = None
