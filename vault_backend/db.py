"""
Ledger store abstraction for SQL databases and an in-memory document store.

Both implementations speak the same collection/key/fields vocabulary so the
ledger service never needs to know which one it is talking to. The Firestore
adapter lives in firestore_db.
"""

from __future__ import annotations

import contextlib
import itertools
import threading
from collections import defaultdict
from typing import Any, ContextManager, Dict, Iterator, Optional, Protocol, Tuple

from sqlalchemy import (
    Column,
    Float,
    Integer,
    String,
    create_engine,
    not_,
    or_,
    select,
    update,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from vault_backend.constants import (
    BALANCES_COLLECTION,
    DEPOSITS_COLLECTION,
    STOCKS_COLLECTION,
    USER_AUTH_COLLECTION,
    USER_PERCENTAGES_COLLECTION,
    USERS_COLLECTION,
)


class LedgerStore(Protocol):
    """Interface for ledger persistence."""

    def get_by_key(self, collection: str, key: Any) -> Optional[dict]:
        ...

    def upsert(self, collection: str, key: Any, fields: dict) -> None:
        ...

    def increment_fields(
        self,
        collection: str,
        key: Any,
        deltas: Dict[str, float],
        *,
        set_fields: Optional[dict] = None,
    ) -> None:
        ...

    def append(self, collection: str, fields: dict) -> Any:
        ...

    def query_equal(
        self,
        collection: str,
        field: str,
        value: Any,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        exclude_prefixes: Optional[Dict[str, Tuple[str, ...]]] = None,
    ) -> list[dict]:
        ...

    def list_records(
        self,
        collection: str,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        ...

    def transaction(self) -> ContextManager[None]:
        ...


def _ordered(
    rows: list[dict],
    order_by: Optional[str],
    descending: bool,
    limit: Optional[int],
) -> list[dict]:
    if order_by:
        rows = sorted(
            rows,
            key=lambda row: (row.get(order_by) is not None, row.get(order_by)),
            reverse=descending,
        )
    if limit is not None:
        rows = rows[:limit]
    return rows


def is_excluded(row: dict, exclude_prefixes: Optional[Dict[str, Tuple[str, ...]]]) -> bool:
    """True when any field in exclude_prefixes holds a string starting with one of its prefixes."""
    for field_name, prefixes in (exclude_prefixes or {}).items():
        value = row.get(field_name)
        if isinstance(value, str) and value.startswith(tuple(prefixes)):
            return True
    return False


class InMemoryLedgerStore:
    """
    Dict-backed store with document-database semantics, for development and
    tests. Each increment is atomic for a single record; transaction() does
    not group or roll back anything.
    """

    def __init__(self):
        self.collections: Dict[str, Dict[Any, dict]] = defaultdict(dict)
        self._ids = itertools.count(1)
        self._mutex = threading.Lock()

    def get_by_key(self, collection: str, key: Any) -> Optional[dict]:
        doc = self.collections[collection].get(key)
        return dict(doc) if doc is not None else None

    def upsert(self, collection: str, key: Any, fields: dict) -> None:
        with self._mutex:
            doc = self.collections[collection].setdefault(key, {})
            doc.update(fields)

    def increment_fields(
        self,
        collection: str,
        key: Any,
        deltas: Dict[str, float],
        *,
        set_fields: Optional[dict] = None,
    ) -> None:
        with self._mutex:
            doc = self.collections[collection].get(key)
            if doc is None:
                raise KeyError(f"{collection}/{key}")
            for field_name, delta in deltas.items():
                doc[field_name] = (doc.get(field_name) or 0) + delta
            if set_fields:
                doc.update(set_fields)

    def append(self, collection: str, fields: dict) -> int:
        with self._mutex:
            record_id = next(self._ids)
            self.collections[collection][record_id] = {"id": record_id, **fields}
        return record_id

    def query_equal(
        self,
        collection: str,
        field: str,
        value: Any,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        exclude_prefixes: Optional[Dict[str, Tuple[str, ...]]] = None,
    ) -> list[dict]:
        rows = [
            dict(doc)
            for doc in self.collections[collection].values()
            if doc.get(field) == value and not is_excluded(doc, exclude_prefixes)
        ]
        return _ordered(rows, order_by, descending, limit)

    def list_records(
        self,
        collection: str,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        rows = [dict(doc) for doc in self.collections[collection].values()]
        return _ordered(rows, order_by, descending, limit)

    def transaction(self) -> ContextManager[None]:
        return contextlib.nullcontext()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.collections.clear()
        self._ids = itertools.count(1)


class SqlLedgerStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).

    Calls made inside transaction() share one session that is committed when
    the block exits and rolled back if it raises.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlLedgerStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        self._local = threading.local()
        self.init_schema()

    def init_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    @contextlib.contextmanager
    def _session(self) -> Iterator[Session]:
        active = getattr(self._local, "session", None)
        if active is not None:
            yield active
            return
        with self.Session() as session:
            yield session
            session.commit()

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        if getattr(self._local, "session", None) is not None:
            yield
            return
        with self.Session() as session:
            self._local.session = session
            try:
                yield
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                self._local.session = None

    def get_by_key(self, collection: str, key: Any) -> Optional[dict]:
        row_cls = _row_class(collection)
        with self._session() as session:
            row = session.get(row_cls, key, populate_existing=True)
            return _row_to_dict(row) if row else None

    def upsert(self, collection: str, key: Any, fields: dict) -> None:
        row_cls = _row_class(collection)
        with self._session() as session:
            existing = session.get(row_cls, key)
            if existing:
                for name, value in fields.items():
                    setattr(existing, name, value)
            else:
                values = dict(fields)
                values[_primary_key(row_cls)] = key
                session.add(row_cls(**values))
            session.flush()

    def increment_fields(
        self,
        collection: str,
        key: Any,
        deltas: Dict[str, float],
        *,
        set_fields: Optional[dict] = None,
    ) -> None:
        row_cls = _row_class(collection)
        pk_column = getattr(row_cls, _primary_key(row_cls))
        values: dict = {
            getattr(row_cls, name): getattr(row_cls, name) + delta
            for name, delta in deltas.items()
        }
        for name, value in (set_fields or {}).items():
            values[getattr(row_cls, name)] = value
        with self._session() as session:
            result = session.execute(
                update(row_cls)
                .where(pk_column == key)
                .values(values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise KeyError(f"{collection}/{key}")

    def append(self, collection: str, fields: dict) -> Any:
        row_cls = _row_class(collection)
        with self._session() as session:
            row = row_cls(**fields)
            session.add(row)
            session.flush()
            return getattr(row, _primary_key(row_cls))

    def query_equal(
        self,
        collection: str,
        field: str,
        value: Any,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        exclude_prefixes: Optional[Dict[str, Tuple[str, ...]]] = None,
    ) -> list[dict]:
        row_cls = _row_class(collection)
        stmt = select(row_cls).where(getattr(row_cls, field) == value)
        for name, prefixes in (exclude_prefixes or {}).items():
            column = getattr(row_cls, name)
            # NOT LIKE 'prefix%'; NULL values are kept.
            stmt = stmt.where(
                or_(
                    column.is_(None),
                    not_(or_(*(column.startswith(p, autoescape=True) for p in prefixes))),
                )
            )
        return self._fetch(row_cls, stmt, order_by, descending, limit)

    def list_records(
        self,
        collection: str,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        row_cls = _row_class(collection)
        return self._fetch(row_cls, select(row_cls), order_by, descending, limit)

    def _fetch(self, row_cls, stmt, order_by, descending, limit) -> list[dict]:
        if order_by:
            column = getattr(row_cls, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
            # Ties (e.g. two entries written in the same withdrawal) follow
            # insertion order.
            if row_cls is DepositRow:
                stmt = stmt.order_by(
                    DepositRow.id.desc() if descending else DepositRow.id.asc()
                )
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._session() as session:
            rows = session.execute(stmt).scalars().all()
            return [_row_to_dict(row) for row in rows]


Base = declarative_base()


class UserRow(Base):
    __tablename__ = USERS_COLLECTION

    uid = Column(String, primary_key=True)
    email = Column(String, nullable=True, index=True)
    name = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)


class AuthRow(Base):
    __tablename__ = USER_AUTH_COLLECTION

    uid = Column(String, primary_key=True)
    email = Column(String, nullable=True, index=True)
    password_hash = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)


class BalanceRow(Base):
    __tablename__ = BALANCES_COLLECTION

    uid = Column(String, primary_key=True)
    balance_usd = Column(Float, nullable=False, default=0.0)
    wallet_balance_usd = Column(Float, nullable=False, default=0.0)
    updated_at = Column(Float, nullable=False)


class DepositRow(Base):
    __tablename__ = DEPOSITS_COLLECTION

    id = Column(Integer, primary_key=True, autoincrement=True)
    uid = Column(String, nullable=False, index=True)
    amount_usd = Column(Float, nullable=False)
    note = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)


class StockRow(Base):
    __tablename__ = STOCKS_COLLECTION

    company = Column(String, primary_key=True)
    current_price = Column(Float, nullable=False)
    percentage_change = Column(Float, nullable=False)
    direction = Column(String, nullable=False)
    updated_at = Column(Float, nullable=False)


class PercentageRow(Base):
    __tablename__ = USER_PERCENTAGES_COLLECTION

    uid = Column(String, primary_key=True)
    value = Column(Float, nullable=False, default=0.0)
    direction = Column(String, nullable=False, default="neutral")
    updated_at = Column(Float, nullable=False)


_ROWS = {
    USERS_COLLECTION: UserRow,
    USER_AUTH_COLLECTION: AuthRow,
    BALANCES_COLLECTION: BalanceRow,
    DEPOSITS_COLLECTION: DepositRow,
    STOCKS_COLLECTION: StockRow,
    USER_PERCENTAGES_COLLECTION: PercentageRow,
}


def _row_class(collection: str):
    try:
        return _ROWS[collection]
    except KeyError:
        raise ValueError(f"Unknown collection: {collection}") from None


def _primary_key(row_cls) -> str:
    return row_cls.__table__.primary_key.columns.keys()[0]


def _row_to_dict(row) -> dict:
    return {column.name: getattr(row, column.name) for column in row.__table__.columns}
