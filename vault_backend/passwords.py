"""
Password hashing.

New credentials are stored as bcrypt hashes. Credentials migrated from the
previous deployment hold an unsalted SHA-256 hex digest; those still verify
and are flagged for rehashing.
"""

from __future__ import annotations

import hashlib
import hmac
import re

import bcrypt

_LEGACY_SHA256 = re.compile(r"^[0-9a-f]{64}$")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def is_legacy_hash(password_hash: str) -> bool:
    return bool(_LEGACY_SHA256.match(password_hash or ""))


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    if is_legacy_hash(password_hash):
        digest = hashlib.sha256(password.encode("utf-8")).hexdigest()
        return hmac.compare_digest(digest, password_hash)
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False
