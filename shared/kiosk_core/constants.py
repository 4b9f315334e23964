"""
KIOSK CORE - System Constants
=============================

Centralized constants for the kiosk settlement core.
All timing defaults and per-coin scales are defined here.

Author: KIOSK Development Team
Version: 1.0.0
"""

# =============================================================================
# SYSTEM IDENTIFICATION
# =============================================================================

VERSION = "1.0.0"
SYSTEM_NAME = "KIOSK PRIME"
ALERT_SUBJECT_PREFIX = "[Kiosk]"

# =============================================================================
# TIMING CONSTANTS (seconds)
# =============================================================================

# Balance and rate polling interval per currency
POLLING_INTERVAL_SEC = 60

# Pending-transaction reaper sweep interval
REAP_INTERVAL_SEC = 2

# Outgoing transactions older than this are force-settled by the reaper
PENDING_TIMEOUT_SEC = 70

# Unconfirmed incoming deposits older than this are purged
DEPOSIT_TIMEOUT_SEC = 130

# Health check / notification interval
CHECK_NOTIFICATION_INTERVAL_SEC = 60

# Identical alerts are not resent within this window
ALERT_RESEND_INTERVAL_SEC = 60 * 60

# Default consolidated-trade interval
DEFAULT_TRADE_INTERVAL_SEC = 60

# Task cancellation timeout
TASK_CANCEL_TIMEOUT_SEC = 5.0

# =============================================================================
# COINS
# =============================================================================

# Power of ten between one whole coin and its smallest unit
COIN_UNIT_SCALES = {
    "BTC": 8,
    "ETH": 18,
}

DEFAULT_CURRENCY_CODES = ["BTC", "ETH"]
DEFAULT_FIAT_CURRENCY = "USD"

# Scope key for currency-agnostic plugins
ANY_SCOPE = "any"

# =============================================================================
# SETTLEMENT
# =============================================================================

AUTHORITY_MACHINE = "machine"
AUTHORITY_TIMEOUT = "timeout"

STATUS_SENT = 201
STATUS_NOTHING_OWED = 204

# Placeholder destination for bills accepted without a payout address
REMIT_ADDRESS = "remit"

# Display precision for fiat balances
FIAT_BALANCE_PLACES = 3


def get_unit_scale(currency_code: str) -> int:
    """
    Get the smallest-unit scale for a currency.

    Args:
        currency_code: Currency code (e.g., "BTC")

    Returns:
        Number of decimal places between a coin and its smallest unit

    Raises:
        KeyError: If the currency is not known
    """
    return COIN_UNIT_SCALES[currency_code.upper()]


def is_supported_currency(currency_code: str) -> bool:
    """Check whether a currency code has a known unit scale."""
    return currency_code.upper() in COIN_UNIT_SCALES


__all__ = [
    # Identification
    "VERSION",
    "SYSTEM_NAME",
    "ALERT_SUBJECT_PREFIX",

    # Timing
    "POLLING_INTERVAL_SEC",
    "REAP_INTERVAL_SEC",
    "PENDING_TIMEOUT_SEC",
    "DEPOSIT_TIMEOUT_SEC",
    "CHECK_NOTIFICATION_INTERVAL_SEC",
    "ALERT_RESEND_INTERVAL_SEC",
    "DEFAULT_TRADE_INTERVAL_SEC",
    "TASK_CANCEL_TIMEOUT_SEC",

    # Coins
    "COIN_UNIT_SCALES",
    "DEFAULT_CURRENCY_CODES",
    "DEFAULT_FIAT_CURRENCY",
    "ANY_SCOPE",

    # Settlement
    "AUTHORITY_MACHINE",
    "AUTHORITY_TIMEOUT",
    "STATUS_SENT",
    "STATUS_NOTHING_OWED",
    "REMIT_ADDRESS",
    "FIAT_BALANCE_PLACES",

    # Functions
    "get_unit_scale",
    "is_supported_currency",
]
