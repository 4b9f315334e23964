# KIOSK Core - Settlement Logic
"""
Pure settlement and scheduling logic for the KIOSK platform.

Modules:
    constants: System-wide constants and configuration defaults
    exceptions: Centralized exception hierarchy
    models: Domain records (sessions, transactions, snapshots, alerts)
    rate_cache: Rate/balance cache and fiat balance math
    trade_queue: Trade consolidation queue and retry policy
    alert_state: Alert fingerprinting and resend state machine
"""

from .constants import (
    VERSION,
    SYSTEM_NAME,
    get_unit_scale,
    is_supported_currency,
)

from .exceptions import (
    KioskError,
    ConfigurationError,
    InvalidConfigError,
    MissingConfigError,
    PluginNotFoundError,
    PluginValidationError,
    PluginOperationError,
    PluginUnavailableError,
    TradeExecutionError,
    OrderTooSmallError,
    SettlementPersistenceError,
    NotificationChannelError,
    is_recoverable,
    is_order_too_small,
)

from .models import (
    Direction,
    Session,
    Transaction,
    TradeIntent,
    ConsolidatedTrade,
    TradeAuditRecord,
    PendingTransaction,
    SettlementResult,
    BalanceSnapshot,
    RateSnapshot,
    Alert,
    AlertRecord,
)

from .rate_cache import (
    RateBalanceCache,
    compute_fiat_balance,
)

from .trade_queue import (
    TradeQueue,
    RetryDecision,
    TradeRetryPolicy,
)

from .alert_state import (
    AlertAction,
    AlertState,
    AlertStateMachine,
    alert_fingerprint,
)

__all__ = [
    # Constants
    "VERSION",
    "SYSTEM_NAME",
    "get_unit_scale",
    "is_supported_currency",
    # Exceptions
    "KioskError",
    "ConfigurationError",
    "InvalidConfigError",
    "MissingConfigError",
    "PluginNotFoundError",
    "PluginValidationError",
    "PluginOperationError",
    "PluginUnavailableError",
    "TradeExecutionError",
    "OrderTooSmallError",
    "SettlementPersistenceError",
    "NotificationChannelError",
    "is_recoverable",
    "is_order_too_small",
    # Models
    "Direction",
    "Session",
    "Transaction",
    "TradeIntent",
    "ConsolidatedTrade",
    "TradeAuditRecord",
    "PendingTransaction",
    "SettlementResult",
    "BalanceSnapshot",
    "RateSnapshot",
    "Alert",
    "AlertRecord",
    # Cache
    "RateBalanceCache",
    "compute_fiat_balance",
    # Trade queue
    "TradeQueue",
    "RetryDecision",
    "TradeRetryPolicy",
    # Alerts
    "AlertAction",
    "AlertState",
    "AlertStateMachine",
    "alert_fingerprint",
]
