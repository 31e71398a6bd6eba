"""
Balance mutation and ledger logic.

LedgerService is the single place where balances change. Every change to a
balance appends exactly one deposit record describing it, except the top-up
that folds a client-displayed balance into the wallet before a withdrawal.

The service works against any LedgerStore and assumes atomicity only for a
single record. On document stores a failure halfway through a multi-write
operation leaves the earlier writes in place; on the SQL store the writes
share one transaction.
"""

from __future__ import annotations

import functools
import logging
import math
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from vault_backend import passwords
from vault_backend.constants import (
    ADMIN_DEPOSITS_LIMIT,
    ATTEMPT_NOTE_PREFIXES,
    BALANCES_COLLECTION,
    DEPOSIT_ATTEMPT_PREFIX,
    DEPOSITS_COLLECTION,
    GAS_FEE_ATTEMPT_PREFIX,
    GLOBAL_PERCENTAGE_KEY,
    MIN_PASSWORD_LENGTH,
    NOTE_DEFAULT,
    NOTE_GAS_FEE,
    NOTE_WALLET,
    NOTE_WITHDRAW,
    PERCENTAGE_DIRECTIONS,
    STOCK_DIRECTIONS,
    STOCKS_COLLECTION,
    USER_AUTH_COLLECTION,
    USER_DEPOSITS_LIMIT,
    USER_PERCENTAGES_COLLECTION,
    USERS_COLLECTION,
)
from vault_backend.db import LedgerStore
from vault_backend.errors import (
    EmailExists,
    InsufficientGasBalance,
    InsufficientHomeBalance,
    InvalidCredentials,
    InvalidInput,
    LedgerError,
    StoreFailure,
    UserNotFound,
)
from vault_backend.profiles import assemble_profile, build_profile
from vault_backend.records import (
    AuthCredential,
    Balance,
    DepositRecord,
    PercentageSetting,
    Profile,
    StockQuote,
    User,
)

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(value: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_uid() -> str:
    """Random component plus the millisecond clock, e.g. uid_3f9a1c0b2e7dlz4k2q."""
    millis = _base36(int(time.time() * 1000))[-6:]
    return f"uid_{uuid.uuid4().hex[:12]}{millis}"


def _number(value: Any, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be a number") from None
    if not math.isfinite(number):
        raise InvalidInput(f"{name} must be finite")
    return number


def _positive(value: Any, name: str) -> float:
    number = _number(value, name)
    if number <= 0:
        raise InvalidInput(f"{name} must be greater than 0")
    return number


def _non_negative(value: Any, name: str) -> float:
    number = _number(value, name)
    if number < 0:
        raise InvalidInput(f"{name} must not be negative")
    return number


def _has_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def store_operation(fn):
    """Convert any non-domain exception raised below the service into StoreFailure."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except LedgerError:
            raise
        except Exception as exc:
            logger.exception("%s failed: %s", fn.__name__, exc)
            raise StoreFailure(f"{fn.__name__} failed") from exc

    return wrapper


class LedgerService:
    def __init__(self, store: LedgerStore, *, serialize_balance_updates: bool = True):
        self.store = store
        self.serialize_balance_updates = serialize_balance_updates
        # uid -> [lock, number of requests holding or waiting on it]
        self._locks: dict[str, list] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _balance_guard(self, uid: str) -> Iterator[None]:
        """Serialize read-check-write sequences on one uid within this process."""
        if not self.serialize_balance_updates:
            yield
            return
        with self._locks_guard:
            entry = self._locks.setdefault(uid, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if not entry[1]:
                    del self._locks[uid]

    # ------------------------------------------------------------------
    # Reads

    @store_operation
    def get_profile(self, uid: str) -> Profile:
        profile = assemble_profile(self.store, uid) if _has_text(uid) else None
        if profile is None:
            raise UserNotFound(f"User {uid} not found")
        return profile

    @store_operation
    def list_users(self) -> list[Profile]:
        users = self.store.list_records(
            USERS_COLLECTION, order_by="created_at", descending=True
        )
        profiles = []
        for data in users:
            balance_data = self.store.get_by_key(BALANCES_COLLECTION, data["uid"])
            balance = Balance.from_dict(balance_data) if balance_data else None
            profiles.append(build_profile(User.from_dict(data), balance))
        return profiles

    @store_operation
    def list_deposits(self, uid: str) -> list[DepositRecord]:
        """Most recent confirmed ledger entries, newest first."""
        if not _has_text(uid):
            raise InvalidInput("uid is required")
        rows = self.store.query_equal(
            DEPOSITS_COLLECTION,
            "uid",
            uid,
            order_by="created_at",
            descending=True,
            limit=USER_DEPOSITS_LIMIT,
            exclude_prefixes={"note": ATTEMPT_NOTE_PREFIXES},
        )
        return [DepositRecord.from_dict(row) for row in rows]

    @store_operation
    def list_all_deposits(self, uid: str) -> list[DepositRecord]:
        """Admin view of the ledger, deposit attempts included."""
        if not _has_text(uid):
            raise InvalidInput("uid is required")
        rows = self.store.query_equal(
            DEPOSITS_COLLECTION,
            "uid",
            uid,
            order_by="created_at",
            descending=True,
            limit=ADMIN_DEPOSITS_LIMIT,
        )
        return [DepositRecord.from_dict(row) for row in rows]

    @store_operation
    def list_stocks(self) -> list[StockQuote]:
        rows = self.store.list_records(STOCKS_COLLECTION, order_by="company")
        return [StockQuote.from_dict(row) for row in rows]

    @store_operation
    def current_percentage(self, uid: Optional[str] = None) -> PercentageSetting:
        if _has_text(uid):
            data = self.store.get_by_key(USER_PERCENTAGES_COLLECTION, uid)
            if data:
                return PercentageSetting.from_dict(data, scope="user")
        data = self.store.get_by_key(USER_PERCENTAGES_COLLECTION, GLOBAL_PERCENTAGE_KEY)
        if data:
            return PercentageSetting.from_dict(data, scope="global")
        return PercentageSetting(
            uid=GLOBAL_PERCENTAGE_KEY, value=0.0, direction="neutral", scope="default"
        )

    # ------------------------------------------------------------------
    # Accounts

    @store_operation
    def signup(self, email: str, password: str, name: Optional[str] = None) -> Profile:
        if not _has_text(email) or not password or len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidInput(
                f"email and a password of at least {MIN_PASSWORD_LENGTH} characters are required"
            )
        if self._find_credential(email):
            raise EmailExists(f"{email} is already registered")

        uid = generate_uid()
        now = time.time()
        with self.store.transaction():
            self.store.upsert(
                USERS_COLLECTION,
                uid,
                {"uid": uid, "email": email, "name": name or None, "created_at": now},
            )
            self.store.upsert(
                USER_AUTH_COLLECTION,
                uid,
                {
                    "uid": uid,
                    "email": email,
                    "password_hash": passwords.hash_password(password),
                    "created_at": now,
                },
            )
            self.store.upsert(
                BALANCES_COLLECTION,
                uid,
                {"uid": uid, "balance_usd": 0.0, "wallet_balance_usd": 0.0, "updated_at": now},
            )
            self._append_entry(uid, 0.0, NOTE_DEFAULT, now)
        logger.info("Signed up %s as %s", email, uid)
        return self.get_profile(uid)

    @store_operation
    def login(self, email: str, password: str) -> Profile:
        if not _has_text(email) or not password:
            raise InvalidInput("email and password are required")
        credential = self._find_credential(email)
        if credential is None:
            raise UserNotFound(f"No account for {email}")
        if not passwords.verify_password(password, credential.password_hash):
            raise InvalidCredentials("Invalid email or password")
        if passwords.is_legacy_hash(credential.password_hash):
            self.store.upsert(
                USER_AUTH_COLLECTION,
                credential.uid,
                {"password_hash": passwords.hash_password(password)},
            )
            logger.info("Upgraded legacy password hash for %s", credential.uid)
        return self.get_profile(credential.uid)

    @store_operation
    def register_user(
        self, uid: str, email: Optional[str] = None, name: Optional[str] = None
    ) -> Profile:
        """Upsert a user whose uid was issued elsewhere, with default balances."""
        if not _has_text(uid):
            raise InvalidInput("uid is required")
        now = time.time()
        with self.store.transaction():
            existing = self.store.get_by_key(USERS_COLLECTION, uid)
            fields: dict = {"uid": uid}
            if email:
                fields["email"] = email
            if name:
                fields["name"] = name
            if not existing:
                fields["created_at"] = now
            self.store.upsert(USERS_COLLECTION, uid, fields)

            if not self.store.get_by_key(BALANCES_COLLECTION, uid):
                self.store.upsert(
                    BALANCES_COLLECTION,
                    uid,
                    {
                        "uid": uid,
                        "balance_usd": 0.0,
                        "wallet_balance_usd": 0.0,
                        "updated_at": now,
                    },
                )
            entries = self.store.query_equal(DEPOSITS_COLLECTION, "uid", uid)
            if not any(entry.get("note") == NOTE_DEFAULT for entry in entries):
                self._append_entry(uid, 0.0, NOTE_DEFAULT, now)
        return self.get_profile(uid)

    # ------------------------------------------------------------------
    # Balance mutations

    @store_operation
    def credit_gas_balance(self, uid: str, amount: Any) -> Profile:
        amount = _positive(amount, "amount")
        self._require_user(uid)
        with self._balance_guard(uid), self.store.transaction():
            now = time.time()
            self._append_entry(uid, amount, NOTE_GAS_FEE, now)
            self._credit(uid, "balance_usd", amount, now)
        logger.info("Credited %.2f gas balance to %s", amount, uid)
        return self.get_profile(uid)

    @store_operation
    def credit_wallet_balance(
        self, uid: str, amount: Any, note: Optional[str] = None
    ) -> Profile:
        amount = _positive(amount, "amount")
        self._require_user(uid)
        with self._balance_guard(uid), self.store.transaction():
            now = time.time()
            self._append_entry(uid, amount, note or NOTE_WALLET, now)
            self._credit(uid, "wallet_balance_usd", amount, now)
        logger.info("Credited %.2f wallet balance to %s", amount, uid)
        return self.get_profile(uid)

    @store_operation
    def withdraw(
        self,
        uid: str,
        amount: Any,
        gas: Any = 0,
        displayed_usd: Any = None,
    ) -> Profile:
        """
        Debit the wallet by amount and the gas balance by gas.

        displayed_usd is the balance the client showed the user (wallet plus a
        percentage bubble). When it exceeds the stored wallet balance it is
        honored: the difference is credited to the wallet before the debit.
        """
        if not _has_text(uid):
            raise InvalidInput("uid is required")
        amount = _positive(amount, "amount")
        gas = _non_negative(gas if gas is not None else 0, "gas")
        if not self.store.get_by_key(BALANCES_COLLECTION, uid):
            raise UserNotFound(f"No balance for {uid}")

        with self._balance_guard(uid), self.store.transaction():
            balance_data = self.store.get_by_key(BALANCES_COLLECTION, uid)
            if not balance_data:
                raise UserNotFound(f"No balance for {uid}")
            balance = Balance.from_dict(balance_data)

            effective_home = balance.wallet_balance_usd
            displayed = _displayed_value(displayed_usd)
            if displayed is not None and displayed > balance.wallet_balance_usd:
                effective_home = displayed

            if effective_home < amount:
                logger.warning(
                    "Withdrawal of %.2f for %s rejected: home balance %.2f",
                    amount,
                    uid,
                    effective_home,
                )
                raise InsufficientHomeBalance(
                    "Insufficient home balance",
                    {"available": effective_home, "requested": amount},
                )
            if balance.balance_usd < gas:
                logger.warning(
                    "Withdrawal for %s rejected: gas balance %.2f < %.2f",
                    uid,
                    balance.balance_usd,
                    gas,
                )
                raise InsufficientGasBalance(
                    "Insufficient gas balance",
                    {"available": balance.balance_usd, "requested": gas},
                )

            now = time.time()
            if effective_home > balance.wallet_balance_usd:
                bump = effective_home - balance.wallet_balance_usd
                self.store.increment_fields(
                    BALANCES_COLLECTION,
                    uid,
                    {"wallet_balance_usd": bump},
                    set_fields={"updated_at": now},
                )

            deltas = {"wallet_balance_usd": -amount}
            if gas > 0:
                deltas["balance_usd"] = -gas
            self.store.increment_fields(
                BALANCES_COLLECTION, uid, deltas, set_fields={"updated_at": now}
            )

            self._append_entry(uid, -amount, NOTE_WITHDRAW, now)
            if gas > 0:
                self._append_entry(uid, -gas, NOTE_GAS_FEE, now)

        logger.info("Withdrew %.2f (gas %.2f) for %s", amount, gas, uid)
        return self.get_profile(uid)

    @store_operation
    def record_deposit_attempt(
        self,
        uid: str,
        amount: Any,
        asset: str,
        address: str,
        deposit_type: Optional[str] = None,
    ) -> DepositRecord:
        """Record a user-declared deposit awaiting confirmation. Balances are untouched."""
        amount = _positive(amount, "amount")
        if not _has_text(asset) or not _has_text(address):
            raise InvalidInput("asset and address are required")
        self._require_user(uid)
        prefix = (
            GAS_FEE_ATTEMPT_PREFIX
            if deposit_type == NOTE_GAS_FEE
            else DEPOSIT_ATTEMPT_PREFIX
        )
        note = f"{prefix}{asset}_{address}"
        now = time.time()
        record_id = self._append_entry(uid, amount, note, now)
        logger.info("Recorded deposit attempt %s for %s", record_id, uid)
        return DepositRecord(
            id=record_id, uid=uid, amount_usd=amount, note=note, created_at=now
        )

    # ------------------------------------------------------------------
    # Admin settings

    @store_operation
    def update_stock(
        self, company: str, current_price: Any, percentage: Any, direction: str
    ) -> StockQuote:
        if not _has_text(company):
            raise InvalidInput("company is required")
        price = _positive(current_price, "current_price")
        pct = _non_negative(percentage, "percentage")
        if direction not in STOCK_DIRECTIONS:
            raise InvalidInput(f"direction must be one of {', '.join(STOCK_DIRECTIONS)}")

        multiplier = 1 + pct / 100 if direction == "up" else 1 - pct / 100
        quote = StockQuote(
            company=company,
            current_price=price * multiplier,
            percentage_change=pct,
            direction=direction,
            updated_at=time.time(),
        )
        self.store.upsert(STOCKS_COLLECTION, company, quote.as_dict())
        logger.info("Stock %s moved %s %.2f%% to %.4f", company, direction, pct, quote.current_price)
        return quote

    @store_operation
    def update_percentage(
        self, value: Any, direction: str, uid: Optional[str] = None
    ) -> PercentageSetting:
        value = _non_negative(value, "value")
        if direction not in PERCENTAGE_DIRECTIONS:
            raise InvalidInput(
                f"direction must be one of {', '.join(PERCENTAGE_DIRECTIONS)}"
            )
        if _has_text(uid):
            self._require_user(uid)
            key, scope = uid, "user"
        else:
            key, scope = GLOBAL_PERCENTAGE_KEY, "global"

        setting = PercentageSetting(
            uid=key, value=value, direction=direction, updated_at=time.time(), scope=scope
        )
        self.store.upsert(
            USER_PERCENTAGES_COLLECTION,
            key,
            {
                "uid": key,
                "value": setting.value,
                "direction": setting.direction,
                "updated_at": setting.updated_at,
            },
        )
        logger.info("Percentage (%s) set to %s %.2f", scope, direction, value)
        return setting

    # ------------------------------------------------------------------
    # Helpers

    def _find_credential(self, email: str) -> Optional[AuthCredential]:
        rows = self.store.query_equal(USER_AUTH_COLLECTION, "email", email, limit=1)
        return AuthCredential.from_dict(rows[0]) if rows else None

    def _require_user(self, uid: str) -> None:
        if not _has_text(uid) or not self.store.get_by_key(USERS_COLLECTION, uid):
            raise UserNotFound(f"User {uid} not found")

    def _append_entry(self, uid: str, amount: float, note: str, now: float):
        return self.store.append(
            DEPOSITS_COLLECTION,
            {"uid": uid, "amount_usd": amount, "note": note, "created_at": now},
        )

    def _credit(self, uid: str, field: str, amount: float, now: float) -> None:
        if self.store.get_by_key(BALANCES_COLLECTION, uid):
            self.store.increment_fields(
                BALANCES_COLLECTION, uid, {field: amount}, set_fields={"updated_at": now}
            )
            return
        fields = {"uid": uid, "balance_usd": 0.0, "wallet_balance_usd": 0.0, "updated_at": now}
        fields[field] = amount
        self.store.upsert(BALANCES_COLLECTION, uid, fields)


def _displayed_value(displayed_usd: Any) -> Optional[float]:
    if displayed_usd is None or isinstance(displayed_usd, bool):
        return None
    try:
        value = float(displayed_usd)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None
