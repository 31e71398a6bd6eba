"""
Joins a user with its balances into the profile shape returned by every
endpoint.
"""

from __future__ import annotations

from typing import Optional

from vault_backend.constants import BALANCES_COLLECTION, USERS_COLLECTION
from vault_backend.db import LedgerStore
from vault_backend.records import Balance, Profile, User


def build_profile(user: User, balance: Optional[Balance]) -> Profile:
    balance = balance or Balance(uid=user.uid)
    return Profile(
        uid=user.uid,
        email=user.email,
        name=user.name,
        created_at=user.created_at,
        balance_usd=balance.balance_usd,
        wallet_balance_usd=balance.wallet_balance_usd,
    )


def assemble_profile(store: LedgerStore, uid: str) -> Optional[Profile]:
    """Load a user and its balances; a missing balance reads as zeros."""
    user_data = store.get_by_key(USERS_COLLECTION, uid)
    if not user_data:
        return None
    balance_data = store.get_by_key(BALANCES_COLLECTION, uid)
    balance = Balance.from_dict(balance_data) if balance_data else None
    return build_profile(User.from_dict(user_data), balance)
