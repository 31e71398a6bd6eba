"""
Ledger backend for the balance-tracking web app.

This package holds the balance and ledger logic behind a store interface so
the same rules run against Postgres (SQLAlchemy), Firestore or an in-memory
store, plus a thin FastAPI surface over it.
"""
