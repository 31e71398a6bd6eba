"""
Firestore implementation of the ledger store.

Firestore offers atomic increments on a single document but the ledger never
opens a cross-document transaction, so transaction() is a no-op here.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Any, ContextManager, Dict, Optional, Tuple

import firebase_admin
from firebase_admin import credentials, firestore
from google.cloud.firestore_v1 import Increment, Query
from google.cloud.firestore_v1.base_query import FieldFilter

from vault_backend.db import is_excluded

logger = logging.getLogger(__name__)


def _init_client(credentials_path: Optional[str], project_id: Optional[str]):
    try:
        app = firebase_admin.get_app()
    except ValueError:
        cred = (
            credentials.Certificate(credentials_path)
            if credentials_path
            else credentials.ApplicationDefault()
        )
        options = {"projectId": project_id} if project_id else None
        app = firebase_admin.initialize_app(cred, options)
        logger.info("Firebase initialized (project=%s)", project_id or "default")
    return firestore.client(app)


class FirestoreLedgerStore:
    def __init__(
        self,
        client: Any = None,
        *,
        credentials_path: Optional[str] = None,
        project_id: Optional[str] = None,
    ):
        self.client = client or _init_client(credentials_path, project_id)

    def _doc(self, collection: str, key: Any):
        return self.client.collection(collection).document(str(key))

    @staticmethod
    def _to_dict(snapshot) -> dict:
        data = snapshot.to_dict() or {}
        data.setdefault("id", snapshot.id)
        return data

    def get_by_key(self, collection: str, key: Any) -> Optional[dict]:
        snapshot = self._doc(collection, key).get()
        if not snapshot.exists:
            return None
        return self._to_dict(snapshot)

    def upsert(self, collection: str, key: Any, fields: dict) -> None:
        self._doc(collection, key).set(fields, merge=True)

    def increment_fields(
        self,
        collection: str,
        key: Any,
        deltas: Dict[str, float],
        *,
        set_fields: Optional[dict] = None,
    ) -> None:
        payload: dict = {name: Increment(delta) for name, delta in deltas.items()}
        payload.update(set_fields or {})
        # update() raises NotFound for a missing document.
        self._doc(collection, key).update(payload)

    def append(self, collection: str, fields: dict) -> str:
        _, ref = self.client.collection(collection).add(fields)
        return ref.id

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
        query = self.client.collection(collection).where(
            filter=FieldFilter(field, "==", value)
        )
        if exclude_prefixes:
            return self._run_excluding(query, order_by, descending, limit, exclude_prefixes)
        return self._run(query, order_by, descending, limit)

    def list_records(
        self,
        collection: str,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        return self._run(self.client.collection(collection), order_by, descending, limit)

    def _run(self, query, order_by, descending, limit) -> list[dict]:
        if order_by:
            direction = Query.DESCENDING if descending else Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        if limit is not None:
            query = query.limit(limit)
        return [self._to_dict(snapshot) for snapshot in query.stream()]

    def _run_excluding(self, query, order_by, descending, limit, exclude_prefixes) -> list[dict]:
        # No NOT LIKE in Firestore; filter while streaming and stop at limit.
        if order_by:
            direction = Query.DESCENDING if descending else Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        rows = []
        for snapshot in query.stream():
            row = self._to_dict(snapshot)
            if is_excluded(row, exclude_prefixes):
                continue
            rows.append(row)
            if limit is not None and len(rows) >= limit:
                break
        return rows

    def transaction(self) -> ContextManager[None]:
        return contextlib.nullcontext()
