# KIOSK PRIME - Kiosk Settlement & Scheduling Core
"""
KIOSK PRIME: Settlement and scheduling core for cryptocurrency kiosks.

Core Components:
    - Event Bus: Async audit stream
    - Plugin Registry: Hot-swappable capability plugins
    - Polling Scheduler: Timers, reconfiguration and lifecycle

Capabilities:
    - Ticker: Exchange rate quotes
    - Trader: Venue orders
    - Wallet: Balances, sends, deposit addresses
    - Id Verifier: Customer and transaction checks
    - Info: Address lookups
    - Notify: Alert delivery

Example:
    from kiosk_prime import PollingScheduler

    scheduler = PollingScheduler()
    scheduler.configure(config)
    await scheduler.start()
    await scheduler.run_forever()

Author: KIOSK Development Team
Version: 1.0.0
"""

from kiosk_prime.core.event_bus import EventBus, Event, EventType
from kiosk_prime.core.plugin_base import (
    Capability,
    Plugin,
    PluginState,
    TickerPlugin,
    TraderPlugin,
    WalletPlugin,
    IdVerifierPlugin,
    InfoPlugin,
    NotifyChannelPlugin,
)
from kiosk_prime.core.plugin_registry import PluginRegistry
from kiosk_prime.core.config_manager import ConfigManager, KioskConfig
from kiosk_prime.core.scheduler import PollingScheduler

__version__ = "1.0.0"
__author__ = "KIOSK Development Team"

__all__ = [
    # Core
    "EventBus",
    "Event",
    "EventType",
    "Capability",
    "Plugin",
    "PluginState",
    "PluginRegistry",
    "ConfigManager",
    "KioskConfig",
    "PollingScheduler",
    # Capability interfaces
    "TickerPlugin",
    "TraderPlugin",
    "WalletPlugin",
    "IdVerifierPlugin",
    "InfoPlugin",
    "NotifyChannelPlugin",
]
