# KIOSK_FEAT: scheduler-state-001
"""
KIOSK PRIME - Scheduler State
=============================

The explicit state object owned by the polling scheduler.

Holds configuration, per-currency contexts (plugin handles, trade queue,
timer tasks), the rate/balance cache and the shared plugins. Services read
handles through this object on every call, so a plugin swap is picked up on
the next tick without restarting anything.

Author: KIOSK Development Team
Version: 1.0.0
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Set

from shared.kiosk_core.rate_cache import RateBalanceCache
from shared.kiosk_core.trade_queue import TradeQueue

from .config_manager import KioskConfig
from .plugin_base import (
    IdVerifierPlugin,
    InfoPlugin,
    NotifyChannelPlugin,
    TickerPlugin,
    TraderPlugin,
    WalletPlugin,
)


@dataclass
class CurrencyContext:
    """Everything the core keeps for one supported currency."""

    currency_code: str
    queue: TradeQueue
    ticker: Optional[TickerPlugin] = None
    wallet: Optional[WalletPlugin] = None
    trader: Optional[TraderPlugin] = None
    trade_interval_sec: Optional[float] = None
    tasks: Dict[str, asyncio.Task] = field(default_factory=dict)
    busy: Set[asyncio.Task] = field(default_factory=set)
    draining: Dict[str, asyncio.Task] = field(default_factory=dict)

    def is_running(self, name: str) -> bool:
        task = self.tasks.get(name)
        return task is not None and not task.done()

    def owns(self, name: str, task: Optional[asyncio.Task]) -> bool:
        """True while `task` is still the registered timer for `name`."""
        return self.tasks.get(name) is task

    def cancel(self, name: str) -> bool:
        """
        Stop one timer task. Returns True if one was registered.

        A task in the middle of a tick is only detached: the tick completes,
        the loop exits on its next ownership check, and the task is kept in
        `draining` so a replacement can wait for it.
        """
        task = self.tasks.pop(name, None)
        if task is None:
            return False
        if task in self.busy:
            self.draining[name] = task
        else:
            task.cancel()
        return True

    def cancel_all(self) -> List[asyncio.Task]:
        """Cancel every timer task, detached ones included, and return them for awaiting."""
        tasks = list(self.tasks.values())
        tasks.extend(task for task in self.busy if task not in tasks)
        for task in tasks:
            task.cancel()
        self.tasks.clear()
        self.draining.clear()
        return tasks


class KioskState:
    """
    Mutable runtime state of the kiosk core.

    Lifecycle: constructed at startup, mutated only by the scheduler's
    configure/teardown operations and by the services it wires, torn down
    explicitly by `PollingScheduler.shutdown()`.
    """

    def __init__(self, config: Optional[KioskConfig] = None):
        self.config: KioskConfig = config or KioskConfig()
        self.contexts: Dict[str, CurrencyContext] = {}
        self.cache = RateBalanceCache()
        self.id_verifier: Optional[IdVerifierPlugin] = None
        self.info: Optional[InfoPlugin] = None
        self.channels: Dict[str, NotifyChannelPlugin] = {}

    @property
    def device_currency(self) -> str:
        return self.config.device_currency

    @property
    def currency_codes(self) -> List[str]:
        return list(self.contexts)

    @property
    def commission(self) -> Decimal:
        return self.config.settings.commission

    @property
    def low_balance_margin(self) -> Decimal:
        return self.config.settings.low_balance_margin

    @property
    def transaction_fee(self) -> Optional[int]:
        return self.config.settings.transaction_fee

    def context(self, currency_code: str) -> Optional[CurrencyContext]:
        return self.contexts.get(currency_code)

    def ensure_context(self, currency_code: str) -> CurrencyContext:
        """Get or create the context for a currency."""
        ctx = self.contexts.get(currency_code)
        if ctx is None:
            ctx = CurrencyContext(
                currency_code=currency_code,
                queue=TradeQueue(currency_code, self.device_currency),
            )
            self.contexts[currency_code] = ctx
        return ctx

    def remove_context(self, currency_code: str) -> Optional[CurrencyContext]:
        """Detach a currency. The caller cancels its tasks."""
        ctx = self.contexts.pop(currency_code, None)
        if ctx is not None:
            ctx.queue.clear()
            self.cache.discard(currency_code)
        return ctx

    def ticker(self, currency_code: str) -> Optional[TickerPlugin]:
        ctx = self.contexts.get(currency_code)
        return ctx.ticker if ctx else None

    def wallet(self, currency_code: str) -> Optional[WalletPlugin]:
        ctx = self.contexts.get(currency_code)
        return ctx.wallet if ctx else None

    def trader(self, currency_code: str) -> Optional[TraderPlugin]:
        ctx = self.contexts.get(currency_code)
        return ctx.trader if ctx else None


__all__ = [
    "CurrencyContext",
    "KioskState",
]
