"""
Error taxonomy for ledger operations.

Every error carries a machine code and the HTTP status the API layer maps it
to. Store exceptions never escape a service call directly; they surface as
StoreFailure.
"""

from __future__ import annotations


class LedgerError(Exception):
    code = "ledger_error"
    status_code = 400

    def __init__(self, message: str | None = None, details: dict | None = None):
        self.message = message or self.code
        self.details = details or {}
        super().__init__(self.message)


class InvalidInput(LedgerError):
    code = "invalid_input"
    status_code = 400


class EmailExists(LedgerError):
    code = "email_exists"
    status_code = 409


class UserNotFound(LedgerError):
    code = "user_not_found"
    status_code = 404


class InvalidCredentials(LedgerError):
    code = "invalid_credentials"
    status_code = 401


class InsufficientHomeBalance(LedgerError):
    code = "insufficient_home_balance"
    status_code = 400


class InsufficientGasBalance(LedgerError):
    code = "insufficient_gas_balance"
    status_code = 400


class Unauthorized(LedgerError):
    code = "unauthorized"
    status_code = 401


class StoreFailure(LedgerError):
    code = "internal_error"
    status_code = 500
