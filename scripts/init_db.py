"""
Create the ledger tables on the configured SQL database.

Safe to run repeatedly; existing tables are left untouched.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from vault_backend.config import get_settings
from vault_backend.constants import USERS_COLLECTION
from vault_backend.db import SqlLedgerStore

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Initialize the ledger schema")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="SQLAlchemy URL (defaults to DATABASE_URL)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    database_url = args.database_url or get_settings().database_url
    if not database_url:
        logger.error("DATABASE_URL is not set. Pass --database-url or set it in .env")
        return 1

    try:
        store = SqlLedgerStore(database_url)
        users = store.list_records(USERS_COLLECTION)
    except Exception:
        logger.exception("DB initialization failed")
        return 1
    logger.info("DB initialized successfully (%d users)", len(users))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
