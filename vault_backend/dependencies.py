"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Depends, Header

from vault_backend.config import Settings, get_settings
from vault_backend.db import InMemoryLedgerStore, LedgerStore, SqlLedgerStore
from vault_backend.errors import Unauthorized
from vault_backend.ledger import LedgerService

_store: LedgerStore | None = None
_ledger_service: LedgerService | None = None


def build_store(settings: Settings) -> LedgerStore:
    backend = settings.resolved_backend()
    if backend == "firestore":
        from vault_backend.firestore_db import FirestoreLedgerStore

        return FirestoreLedgerStore(
            credentials_path=settings.firebase_credentials_path,
            project_id=settings.firebase_project_id,
        )
    if backend == "sql":
        return SqlLedgerStore(settings.database_url)
    return InMemoryLedgerStore()


def get_store() -> LedgerStore:
    """
    Return a singleton store so balances persist across requests.
    """
    global _store
    if _store:
        return _store
    _store = build_store(get_settings())
    return _store


def get_ledger_service() -> LedgerService:
    global _ledger_service
    if _ledger_service:
        return _ledger_service

    settings = get_settings()
    _ledger_service = LedgerService(
        get_store(),
        serialize_balance_updates=settings.serialize_balance_updates,
    )
    return _ledger_service


def require_admin_key(
    x_admin_key: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    expected = settings.admin_key
    if not expected or not x_admin_key:
        raise Unauthorized("Admin key required")
    if not secrets.compare_digest(x_admin_key.encode("utf-8"), expected.encode("utf-8")):
        raise Unauthorized("Invalid admin key")
