"""
Behaviour of withdrawals under concurrent requests and partial store failures
on the document-style store.
"""

import threading
import time
import unittest

from vault_backend.constants import BALANCES_COLLECTION, DEPOSITS_COLLECTION
from vault_backend.db import InMemoryLedgerStore
from vault_backend.errors import InsufficientHomeBalance, StoreFailure, UserNotFound
from vault_backend.ledger import LedgerService


class SlowReadStore(InMemoryLedgerStore):
    """Holds every balance read open long enough for a second request to interleave."""

    def __init__(self, barrier=None, delay=0.0):
        super().__init__()
        self.barrier = barrier
        self.delay = delay

    def get_by_key(self, collection, key):
        doc = super().get_by_key(collection, key)
        if collection == BALANCES_COLLECTION:
            if self.barrier is not None:
                self.barrier.wait()
            if self.delay:
                time.sleep(self.delay)
        return doc


def _seed(store, uid, home):
    store.upsert(
        "users", uid, {"uid": uid, "email": f"{uid}@example.com", "created_at": 1.0}
    )
    store.collections[BALANCES_COLLECTION][uid] = {
        "uid": uid,
        "balance_usd": 0.0,
        "wallet_balance_usd": home,
        "updated_at": 1.0,
    }


def _withdraw_concurrently(ledger, uid, amount, count=2):
    results = []

    def run():
        try:
            ledger.withdraw(uid, amount=amount)
            results.append("ok")
        except InsufficientHomeBalance:
            results.append("insufficient")

    threads = [threading.Thread(target=run) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)
    return results


class ConcurrentWithdrawTests(unittest.TestCase):
    def test_unguarded_withdrawals_can_overdraw(self):
        # Both requests read the starting balance before either writes.
        store = SlowReadStore(barrier=threading.Barrier(2, timeout=5))
        _seed(store, "uid_race", home=100.0)
        ledger = LedgerService(store, serialize_balance_updates=False)

        results = _withdraw_concurrently(ledger, "uid_race", amount=80)

        self.assertEqual(results, ["ok", "ok"])
        store.barrier = None
        balance = store.get_by_key(BALANCES_COLLECTION, "uid_race")
        self.assertEqual(balance["wallet_balance_usd"], -60.0)

    def test_guarded_withdrawals_are_serialized(self):
        store = SlowReadStore(delay=0.05)
        _seed(store, "uid_race", home=100.0)
        ledger = LedgerService(store, serialize_balance_updates=True)

        results = _withdraw_concurrently(ledger, "uid_race", amount=80)

        self.assertEqual(sorted(results), ["insufficient", "ok"])
        store.delay = 0.0
        balance = store.get_by_key(BALANCES_COLLECTION, "uid_race")
        self.assertEqual(balance["wallet_balance_usd"], 20.0)
        withdrawals = [
            e
            for e in store.query_equal(DEPOSITS_COLLECTION, "uid", "uid_race")
            if e["note"] == "withdraw"
        ]
        self.assertEqual(len(withdrawals), 1)

    def test_guard_does_not_serialize_different_users(self):
        store = SlowReadStore(barrier=threading.Barrier(2, timeout=5))
        _seed(store, "uid_a", home=100.0)
        _seed(store, "uid_b", home=100.0)
        ledger = LedgerService(store, serialize_balance_updates=True)
        errors = []

        def run(uid):
            try:
                ledger.withdraw(uid, amount=10)
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=run, args=(uid,)) for uid in ("uid_a", "uid_b")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        self.assertEqual(errors, [])


class LockRegistryTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryLedgerStore()
        self.ledger = LedgerService(self.store, serialize_balance_updates=True)

    def test_unknown_uids_leave_no_locks(self):
        for i in range(200):
            with self.assertRaises(UserNotFound):
                self.ledger.withdraw(f"nobody_{i}", 1)
        self.assertEqual(len(self.ledger._locks), 0)

    def test_locks_are_released_after_use(self):
        _seed(self.store, "uid_1", home=100.0)
        self.ledger.withdraw("uid_1", amount=10)
        with self.assertRaises(InsufficientHomeBalance):
            self.ledger.withdraw("uid_1", amount=1000)
        self.ledger.credit_wallet_balance("uid_1", 5)
        self.assertEqual(len(self.ledger._locks), 0)


class PartialFailureTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryLedgerStore()
        _seed(self.store, "uid_1", home=100.0)
        self.ledger = LedgerService(self.store)

    def test_document_store_keeps_writes_made_before_failure(self):
        original_append = self.store.append

        def failing_append(collection, fields):
            if fields.get("note") == "withdraw":
                raise RuntimeError("unavailable")
            return original_append(collection, fields)

        self.store.append = failing_append

        with self.assertRaises(StoreFailure) as ctx:
            self.ledger.withdraw("uid_1", amount=40, displayed_usd=150)
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)

        # Fold-in and debit were applied; the ledger entry was not.
        balance = self.store.get_by_key(BALANCES_COLLECTION, "uid_1")
        self.assertEqual(balance["wallet_balance_usd"], 110.0)
        self.assertEqual(self.store.query_equal(DEPOSITS_COLLECTION, "uid", "uid_1"), [])

    def test_read_failure_surfaces_as_store_failure(self):
        def broken_get(collection, key):
            raise ConnectionError("lost connection")

        self.store.get_by_key = broken_get
        with self.assertRaises(StoreFailure):
            self.ledger.get_profile("uid_1")


if __name__ == "__main__":
    unittest.main()
