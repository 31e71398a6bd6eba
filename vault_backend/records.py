"""
Plain records for users, balances and ledger entries.

Stores hand back dicts keyed by column name; these dataclasses give the
service layer a typed view of them.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Optional, Union

RecordId = Union[int, str]


@dataclass
class User:
    uid: str
    email: Optional[str]
    name: Optional[str]
    created_at: float

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        return cls(
            uid=data["uid"],
            email=data.get("email"),
            name=data.get("name"),
            created_at=data.get("created_at") or 0.0,
        )


@dataclass
class AuthCredential:
    uid: str
    email: str
    password_hash: str
    created_at: float

    @classmethod
    def from_dict(cls, data: dict) -> "AuthCredential":
        return cls(
            uid=data["uid"],
            email=data.get("email") or "",
            password_hash=data.get("password_hash") or "",
            created_at=data.get("created_at") or 0.0,
        )


@dataclass
class Balance:
    uid: str
    balance_usd: float = 0.0
    wallet_balance_usd: float = 0.0
    updated_at: float = 0.0

    @classmethod
    def from_dict(cls, data: dict) -> "Balance":
        return cls(
            uid=data["uid"],
            balance_usd=float(data.get("balance_usd") or 0),
            wallet_balance_usd=float(data.get("wallet_balance_usd") or 0),
            updated_at=data.get("updated_at") or 0.0,
        )


@dataclass
class DepositRecord:
    id: Optional[RecordId]
    uid: str
    amount_usd: float
    note: Optional[str]
    created_at: float

    @classmethod
    def from_dict(cls, data: dict) -> "DepositRecord":
        return cls(
            id=data.get("id"),
            uid=data["uid"],
            amount_usd=float(data.get("amount_usd") or 0),
            note=data.get("note"),
            created_at=data.get("created_at") or 0.0,
        )

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class StockQuote:
    company: str
    current_price: float
    percentage_change: float
    direction: str
    updated_at: float

    @classmethod
    def from_dict(cls, data: dict) -> "StockQuote":
        return cls(
            company=data["company"],
            current_price=float(data.get("current_price") or 0),
            percentage_change=float(data.get("percentage_change") or 0),
            direction=data.get("direction") or "up",
            updated_at=data.get("updated_at") or 0.0,
        )

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class PercentageSetting:
    """A percentage bubble value; scope is "user", "global" or "default"."""

    uid: str
    value: float
    direction: str
    updated_at: Optional[float] = None
    scope: str = "global"

    @classmethod
    def from_dict(cls, data: dict, scope: str) -> "PercentageSetting":
        return cls(
            uid=data["uid"],
            value=float(data.get("value") or 0),
            direction=data.get("direction") or "neutral",
            updated_at=data.get("updated_at"),
            scope=scope,
        )

    def as_dict(self) -> dict:
        return {"value": self.value, "direction": self.direction}


@dataclass
class Profile:
    uid: str
    email: Optional[str]
    name: Optional[str]
    created_at: float
    balance_usd: float
    wallet_balance_usd: float

    def as_dict(self) -> dict:
        return asdict(self)
