# KIOSK_FEAT: plugin-base-001
"""
KIOSK PRIME - Plugin Base Classes
=================================

Base classes and capability interfaces for kiosk service plugins.

Capabilities:
- Ticker: Exchange rate quotes
- Trader: Venue purchase/sell orders
- Wallet: Balance, outgoing sends, deposit addresses
- IdVerifier: Customer and transaction verification
- Info: Address checks
- Notify: Alert message delivery

A plugin declares its capabilities by subclassing one or more capability
bases. The registry checks the required-operation table below against the
class before instantiating it, so a plugin that claims a capability it does
not implement is rejected with the capability and operation named.

Author: KIOSK Development Team
Version: 1.0.0
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

logger = logging.getLogger("KIOSK_Plugin")


class Capability(str, Enum):
    """Named roles a plugin can fulfil."""

    TICKER = "ticker"
    TRADER = "trader"
    WALLET = "wallet"
    ID_VERIFIER = "id_verifier"
    INFO = "info"
    NOTIFY = "notify"


# Operations every implementation of a capability must provide
REQUIRED_OPERATIONS: Dict[Capability, Tuple[str, ...]] = {
    Capability.TICKER: ("quote",),
    Capability.TRADER: ("purchase", "sell"),
    Capability.WALLET: ("balance", "send", "new_address"),
    Capability.ID_VERIFIER: ("verify_user", "verify_transaction"),
    Capability.INFO: ("check_address",),
    Capability.NOTIFY: ("send_message",),
}

# Capabilities resolved once per supported currency
PER_CURRENCY_CAPABILITIES = (Capability.TICKER, Capability.WALLET, Capability.TRADER)

# Capabilities resolved once for the whole kiosk
SHARED_CAPABILITIES = (Capability.ID_VERIFIER, Capability.INFO)


class PluginState(Enum):
    """Plugin lifecycle state."""

    LOADED = auto()
    CONFIGURED = auto()
    UNLOADED = auto()


class Plugin(ABC):
    """
    Base class for all kiosk plugins.

    Plugins are hot-swappable: the registry replaces the instance when the
    configured implementation name changes and calls `configure()` in place
    otherwise.

    Lifecycle:
        1. __init__() - Construct (no I/O)
        2. configure(settings) - Apply settings, may be called many times
        3. unload() - Released by the registry on swap or shutdown

    Example:
        class MyTicker(TickerPlugin):
            NAME = "My Exchange"

            def configure(self, settings):
                self.api_key = settings.get("api_key")

            async def quote(self, currencies, currency_code):
                return {"USD": {"ask": "10000", "bid": "9900"}}
    """

    NAME: Optional[str] = None
    CAPABILITIES: FrozenSet[Capability] = frozenset()

    def __init__(self):
        self.state = PluginState.LOADED
        self.settings: Dict[str, Any] = {}
        self._logger = logging.getLogger(f"KIOSK_{self.display_name}")
        self._stats = {
            "configured": 0,
            "calls": 0,
            "errors": 0,
        }

    @classmethod
    def declared_capabilities(cls) -> FrozenSet[Capability]:
        """Union of capabilities declared anywhere in the class hierarchy."""
        caps = set()
        for klass in cls.__mro__:
            caps.update(klass.__dict__.get("CAPABILITIES", ()))
        return frozenset(caps)

    @classmethod
    def missing_operations(cls) -> List[Tuple[Capability, str]]:
        """(capability, operation) pairs declared but not implemented."""
        missing = []
        for capability in sorted(cls.declared_capabilities(), key=lambda c: c.value):
            for operation in REQUIRED_OPERATIONS[capability]:
                member = getattr(cls, operation, None)
                if not callable(member) or getattr(member, "__isabstractmethod__", False):
                    missing.append((capability, operation))
        return missing

    @property
    def display_name(self) -> str:
        """Display name, falling back to the class name."""
        return self.NAME or self.__class__.__name__

    @property
    def is_configured(self) -> bool:
        return self.state == PluginState.CONFIGURED

    def configure(self, settings: Dict[str, Any]) -> None:
        """
        Apply plugin settings.

        Default is a no-op. Override to read credentials, endpoints, etc.
        """
        pass

    def apply_settings(self, settings: Dict[str, Any]) -> None:
        """Store settings and forward them to `configure`."""
        self.settings = dict(settings)
        self.configure(self.settings)
        self.state = PluginState.CONFIGURED
        self._stats["configured"] += 1

    def unload(self) -> None:
        """Release the plugin. In-flight calls finish against this instance."""
        self.state = PluginState.UNLOADED
        self._logger.debug(f"Plugin unloaded: {self.display_name}")

    def record_call(self, ok: bool = True) -> None:
        """Count a call made into the plugin."""
        self._stats["calls"] += 1
        if not ok:
            self._stats["errors"] += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get plugin statistics."""
        return {
            "name": self.display_name,
            "capabilities": sorted(c.value for c in self.declared_capabilities()),
            "state": self.state.name,
            **self._stats,
        }

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.display_name} state={self.state.name}>"


# =============================================================================
# CAPABILITY INTERFACES
# =============================================================================


class TickerPlugin(Plugin):
    """Exchange rate source."""

    CAPABILITIES = frozenset({Capability.TICKER})

    @abstractmethod
    async def quote(self, currencies: List[str], currency_code: str) -> Dict[str, Dict[str, Any]]:
        """
        Quote a cryptocurrency in one or more fiat currencies.

        Args:
            currencies: Fiat currency codes to quote in
            currency_code: Cryptocurrency being quoted

        Returns:
            {fiat_code: {"ask": ..., "bid": ...}}
        """
        pass


class TraderPlugin(Plugin):
    """Trading venue."""

    CAPABILITIES = frozenset({Capability.TRADER})

    @abstractmethod
    async def purchase(self, crypto_amount: int, opts: Dict[str, Any]) -> Any:
        """Buy `crypto_amount` smallest units. opts: currency_code, fiat."""
        pass

    @abstractmethod
    async def sell(self, crypto_amount: int, opts: Dict[str, Any]) -> Any:
        """Sell `crypto_amount` smallest units. opts: currency_code, fiat."""
        pass


class WalletPlugin(Plugin):
    """Custodial wallet."""

    CAPABILITIES = frozenset({Capability.WALLET})

    @abstractmethod
    async def balance(self) -> Dict[str, int]:
        """Balances in smallest units keyed by currency code."""
        pass

    @abstractmethod
    async def send(
        self, to_address: str, crypto_amount: int, fee: Optional[int], currency_code: str
    ) -> str:
        """Send funds. Returns the transaction hash."""
        pass

    @abstractmethod
    async def new_address(self, info: Dict[str, Any]) -> str:
        """Create a fresh deposit address."""
        pass


class IdVerifierPlugin(Plugin):
    """Customer identity verification."""

    CAPABILITIES = frozenset({Capability.ID_VERIFIER})

    @abstractmethod
    async def verify_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def verify_transaction(self, data: Dict[str, Any]) -> Dict[str, Any]:
        pass


class InfoPlugin(Plugin):
    """Blockchain information lookups."""

    CAPABILITIES = frozenset({Capability.INFO})

    @abstractmethod
    async def check_address(self, address: str) -> Dict[str, Any]:
        pass


class NotifyChannelPlugin(Plugin):
    """Alert delivery channel (email, sms, webhook)."""

    CAPABILITIES = frozenset({Capability.NOTIFY})

    @abstractmethod
    async def send_message(self, record: Dict[str, Any]) -> None:
        """
        Deliver a message record.

        Record layout:
            {"sms": {"body": ...}, "email": {"subject": ..., "body": ...}}
        """
        pass


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "Capability",
    "REQUIRED_OPERATIONS",
    "PER_CURRENCY_CAPABILITIES",
    "SHARED_CAPABILITIES",
    "PluginState",
    "Plugin",
    "TickerPlugin",
    "TraderPlugin",
    "WalletPlugin",
    "IdVerifierPlugin",
    "InfoPlugin",
    "NotifyChannelPlugin",
]
