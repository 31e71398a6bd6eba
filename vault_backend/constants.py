"""
Collection names and ledger note tags shared by every store backend.
"""

USERS_COLLECTION = "users"
USER_AUTH_COLLECTION = "user_auth"
BALANCES_COLLECTION = "balances"
DEPOSITS_COLLECTION = "deposits"
STOCKS_COLLECTION = "stocks"
USER_PERCENTAGES_COLLECTION = "user_percentages"

GLOBAL_PERCENTAGE_KEY = "__global__"

NOTE_DEFAULT = "default"
NOTE_GAS_FEE = "gas_fee"
NOTE_WITHDRAW = "withdraw"
NOTE_WALLET = "wallet"

# Unconfirmed, user-declared deposits. Hidden from the user feed.
DEPOSIT_ATTEMPT_PREFIX = "deposit_attempt_"
GAS_FEE_ATTEMPT_PREFIX = "gas_fee_attempt_"
ATTEMPT_NOTE_PREFIXES = (DEPOSIT_ATTEMPT_PREFIX, GAS_FEE_ATTEMPT_PREFIX)

USER_DEPOSITS_LIMIT = 20
ADMIN_DEPOSITS_LIMIT = 50

MIN_PASSWORD_LENGTH = 6

STOCK_DIRECTIONS = ("up", "down")
PERCENTAGE_DIRECTIONS = ("up", "down", "neutral")
