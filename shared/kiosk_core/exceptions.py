"""
KIOSK CORE - Centralized Exception Hierarchy
============================================

Structured exception types for the settlement and scheduling core.

Exception Categories:
    - ConfigurationError: Invalid settings, unknown or incomplete plugins (fatal)
    - PluginOperationError: A plugin call failed (recovered locally)
    - TradeExecutionError: Consolidated purchase failed (retried or dropped)
    - SettlementPersistenceError: The store could not claim/record a transaction
    - NotificationChannelError: A notify channel failed to deliver

Author: KIOSK Development Team
Version: 1.0.0
"""

from typing import Any, Dict, Optional


class KioskError(Exception):
    """
    Base exception for all kiosk core errors.

    Attributes:
        message: Human-readable error description
        code: Optional error code for programmatic handling
        details: Optional dict with additional context
        recoverable: Whether the failing operation can be retried
    """

    recoverable: bool = True

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigurationError(KioskError):
    """Base exception for configuration errors. Halts startup/reconfiguration."""

    recoverable: bool = False


class InvalidConfigError(ConfigurationError):
    """Invalid configuration value."""

    pass


class MissingConfigError(ConfigurationError):
    """Required configuration is missing."""

    pass


class PluginNotFoundError(ConfigurationError):
    """Configured plugin name does not resolve to an implementation."""

    def __init__(self, message: str, plugin_name: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.plugin_name = plugin_name


class PluginValidationError(ConfigurationError):
    """Plugin declares a capability but does not implement it."""

    def __init__(
        self,
        message: str,
        plugin_name: str = "",
        capability: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.plugin_name = plugin_name
        self.capability = capability
        self.operation = operation


# =============================================================================
# PLUGIN OPERATION ERRORS
# =============================================================================


class PluginOperationError(KioskError):
    """A call into a plugin failed."""

    def __init__(
        self,
        message: str,
        plugin_name: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.plugin_name = plugin_name
        self.operation = operation


class PluginUnavailableError(PluginOperationError):
    """No plugin is configured for the capability a request needs."""

    pass


# =============================================================================
# TRADE ERRORS
# =============================================================================


class TradeExecutionError(KioskError):
    """Consolidated purchase failed at the trading venue."""

    def __init__(
        self,
        message: str,
        currency_code: Optional[str] = None,
        crypto_amount: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.currency_code = currency_code
        self.crypto_amount = crypto_amount


class OrderTooSmallError(TradeExecutionError):
    """Venue rejected the order as below its minimum size."""

    recoverable: bool = False
    name = "orderTooSmall"


# =============================================================================
# SETTLEMENT ERRORS
# =============================================================================


class SettlementPersistenceError(KioskError):
    """Persistence layer failed to claim or record a settlement."""

    def __init__(self, message: str, tx_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.tx_id = tx_id


# =============================================================================
# NOTIFICATION ERRORS
# =============================================================================


class NotificationChannelError(KioskError):
    """A notification channel failed to deliver a message."""

    def __init__(self, message: str, channel: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.channel = channel


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def is_recoverable(error: Exception) -> bool:
    """
    Determine if an error is potentially recoverable.

    Recoverable errors can be retried on a later tick.
    """
    if hasattr(error, "recoverable"):
        return error.recoverable

    return not isinstance(error, (SystemExit, KeyboardInterrupt, MemoryError))


def is_order_too_small(error: Exception) -> bool:
    """
    Check whether a trade failure means the order was below venue minimum.

    Plugins may raise OrderTooSmallError or any error carrying
    ``name == "orderTooSmall"``.
    """
    if isinstance(error, OrderTooSmallError):
        return True
    return getattr(error, "name", None) == OrderTooSmallError.name


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    # Base
    "KioskError",
    # Config
    "ConfigurationError",
    "InvalidConfigError",
    "MissingConfigError",
    "PluginNotFoundError",
    "PluginValidationError",
    # Plugin
    "PluginOperationError",
    "PluginUnavailableError",
    # Trade
    "TradeExecutionError",
    "OrderTooSmallError",
    # Settlement
    "SettlementPersistenceError",
    # Notification
    "NotificationChannelError",
    # Helpers
    "is_recoverable",
    "is_order_too_small",
]
