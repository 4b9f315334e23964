# KIOSK_FEAT: scheduler-001
"""
KIOSK PRIME - Polling Scheduler
===============================

Central coordinator of the kiosk core.

Features:
- Hot reconfiguration (plugins swapped or reconfigured without restart)
- Per-currency balance, rate and trader timers
- Global reaper and notification timers
- Graceful shutdown

Every timer is an asyncio task that dereferences the current plugin handle
on each tick, so a swap takes effect on the next tick, and a swapped ticker
or wallet is polled once right away. Removing a currency cancels only that
currency's tasks. Reconfiguration never interrupts a tick in progress: a
trader loop that is mid-purchase is detached rather than cancelled, exits
after that purchase, and any replacement loop waits for it first.

Author: KIOSK Development Team
Version: 1.0.0
"""

import asyncio
import logging
import signal
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

from shared.kiosk_core.constants import TASK_CANCEL_TIMEOUT_SEC
from shared.kiosk_core.exceptions import InvalidConfigError, is_recoverable

from ..plugins import default_catalog
from ..services.alert_dispatcher import AlertDispatcher, BalanceStatusChecker, StatusChecker
from ..services.kiosk import KioskService
from ..services.market_data import MarketDataPoller
from ..services.persistence import MemoryStore, Persistence
from ..services.reaper import PendingTransactionReaper
from ..services.settlement import SettlementEngine
from ..services.trade_executor import TradeExecutor
from .config_manager import KioskConfig, validate_config
from .event_bus import Event, EventBus, EventType
from .plugin_base import SHARED_CAPABILITIES, Capability
from .plugin_registry import PluginRegistry
from .state import CurrencyContext, KioskState

logger = logging.getLogger("KIOSK_Scheduler")

BALANCE_TASK = "balance"
RATE_TASK = "rate"
TRADE_TASK = "trade"
REAP_TASK = "reap"
NOTIFY_TASK = "notify"


class PollingScheduler:
    """
    Main coordinator for KIOSK PRIME.

    Coordinates:
    - Configuration application
    - Plugin handles
    - Timer lifecycle
    - Graceful shutdown

    Example:
        scheduler = PollingScheduler(persistence=MemoryStore())
        scheduler.configure(config)
        await scheduler.start()

        # Run until shutdown
        await scheduler.run_forever()
    """

    def __init__(
        self,
        persistence: Optional[Persistence] = None,
        registry: Optional[PluginRegistry] = None,
        event_bus: Optional[EventBus] = None,
        status_checker: Optional[StatusChecker] = None,
    ):
        self._event_bus = event_bus or EventBus()
        self._registry = registry or PluginRegistry(default_catalog())
        self._persistence = persistence or MemoryStore()
        self.state = KioskState()

        self.market_data = MarketDataPoller(self.state, self._event_bus)
        self.trade_executor = TradeExecutor(self.state, self.market_data, self._event_bus)
        self.settlement = SettlementEngine(
            self.state, self._persistence, self.market_data, self._event_bus,
        )
        self.reaper = PendingTransactionReaper(
            self.state, self._persistence, self.settlement, self._event_bus,
        )
        self.alerts = AlertDispatcher(
            self.state,
            status_checker or BalanceStatusChecker(self.state, self.market_data),
            self._event_bus,
        )
        self.kiosk = KioskService(
            self.state, self._persistence, self.market_data,
            self.trade_executor, self.settlement,
        )

        self._configured = False
        self._running = False
        self._started_at: Optional[datetime] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._global_tasks: Dict[str, asyncio.Task] = {}
        self._refresh_tasks: Set[asyncio.Task] = set()

        logger.info("Scheduler initialized")

    @property
    def event_bus(self) -> EventBus:
        """Get event bus."""
        return self._event_bus

    @property
    def registry(self) -> PluginRegistry:
        """Get plugin registry."""
        return self._registry

    @property
    def persistence(self) -> Persistence:
        """Get persistence collaborator."""
        return self._persistence

    @property
    def is_running(self) -> bool:
        """Check if the scheduler is running."""
        return self._running

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(self, config: Union[KioskConfig, Dict[str, Any]]) -> KioskConfig:
        """
        Apply a complete configuration.

        Validates settings and every named plugin before touching any state,
        then reloads plugins, tears down removed currencies and (when
        running) starts missing timers. Repeating an identical call changes
        nothing.

        Raises:
            InvalidConfigError: Settings fail validation
            PluginNotFoundError: A configured plugin name is unknown
            PluginValidationError: A plugin fails capability checks
        """
        if not isinstance(config, KioskConfig):
            config = KioskConfig.from_dict(config)

        errors = validate_config(config)
        if errors:
            for error in errors:
                logger.error(f"Config error: {error}")
            raise InvalidConfigError("; ".join(errors), details={"errors": errors})

        self._registry.check_config(config)

        self.state.config = config
        self.state.cache.max_age_seconds = config.settings.max_cache_age_seconds
        self._registry.use_config(config)

        for currency_code in list(self.state.contexts):
            if currency_code not in config.currency_codes:
                self._teardown_currency(currency_code)

        for currency_code in config.currency_codes:
            self._configure_currency(currency_code)

        self._configure_shared()
        self._configured = True

        if self._running:
            self._start_global_tasks()

        self._event_bus.publish_nowait(Event(
            event_type=EventType.CONFIG_APPLIED,
            data={
                "currency": config.device_currency,
                "coins": config.currency_codes,
                "plugins": self._registry.active_names(),
            },
            source="scheduler",
        ))
        logger.info(f"Configuration applied: {config.currency_codes} in {config.device_currency}")
        return config

    def _configure_currency(self, currency_code: str) -> None:
        ctx = self.state.ensure_context(currency_code)
        ctx.queue.fiat_currency = self.state.device_currency

        self._registry.load_or_configure(
            Capability.TICKER, currency_code, aux=self.state.device_currency,
            on_change=lambda plugin, _: self._on_ticker_change(ctx, plugin),
        )
        self._registry.load_or_configure(
            Capability.WALLET, currency_code,
            on_change=lambda plugin, _: self._on_wallet_change(ctx, plugin),
        )
        self._registry.load_or_configure(
            Capability.TRADER, currency_code,
            on_change=lambda plugin, _: self._on_trader_change(ctx, plugin),
        )

        if self._running:
            self._start_currency_tasks(ctx)

    def _on_ticker_change(self, ctx: CurrencyContext, ticker) -> None:
        ctx.ticker = ticker
        if ticker is not None:
            self._refresh(self.market_data.poll_rate, ctx.currency_code)

    def _on_wallet_change(self, ctx: CurrencyContext, wallet) -> None:
        ctx.wallet = wallet
        if wallet is not None:
            self._refresh(self.market_data.poll_balance, ctx.currency_code)

    def _on_trader_change(self, ctx: CurrencyContext, trader) -> None:
        ctx.trader = trader

        if trader is None:
            ctx.cancel(TRADE_TASK)
            ctx.trade_interval_sec = None
            dropped = ctx.queue.clear()
            if dropped:
                logger.warning(f"[{ctx.currency_code}] trader removed, dropped {dropped} queued trades")
            return

        interval = self.state.config.settings.trade_interval_sec
        if ctx.trade_interval_sec != interval:
            if ctx.cancel(TRADE_TASK):
                logger.info(f"[{ctx.currency_code}] trade interval changed to {interval}s")
            ctx.trade_interval_sec = interval

    def _refresh(self, poll: Callable[[str], Awaitable[Any]], currency_code: str) -> None:
        """Run one out-of-band poll for a freshly resolved plugin."""
        if not self._running:
            return
        task = asyncio.create_task(poll(currency_code))
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    def _configure_shared(self) -> None:
        for kind in SHARED_CAPABILITIES:
            attr = kind.value
            self._registry.load_or_configure(
                kind, on_change=lambda plugin, _, attr=attr: setattr(self.state, attr, plugin),
            )

        wanted = self.state.config.plugins.channel_names()
        for channel in list(self._registry.scopes(Capability.NOTIFY)):
            if channel not in wanted:
                self._registry.unload(Capability.NOTIFY, channel)
                self.state.channels.pop(channel, None)

        for channel in wanted:
            self._registry.load_or_configure(
                Capability.NOTIFY, channel, on_change=self._set_channel(channel),
            )

    def _set_channel(self, channel: str) -> Callable:
        def on_change(plugin, _):
            if plugin is None:
                self.state.channels.pop(channel, None)
            else:
                self.state.channels[channel] = plugin
        return on_change

    def _teardown_currency(self, currency_code: str) -> None:
        ctx = self.state.remove_context(currency_code)
        if ctx is None:
            return

        ctx.cancel_all()
        for kind in (Capability.TICKER, Capability.WALLET, Capability.TRADER):
            self._registry.unload(kind, currency_code)
        logger.info(f"[{currency_code}] currency removed")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, config: Optional[Union[KioskConfig, Dict[str, Any]]] = None) -> bool:
        """
        Start all timers.

        Args:
            config: Configuration to apply first (optional if already configured)

        Returns:
            True if started
        """
        if self._running:
            return True

        if config is not None:
            self.configure(config)

        if not self._configured:
            logger.error("Cannot start before configuration is applied")
            return False

        logger.info("Starting KIOSK PRIME scheduler...")

        self._shutdown_event = asyncio.Event()
        self._running = True
        self._started_at = datetime.now(timezone.utc)

        for ctx in self.state.contexts.values():
            self._start_currency_tasks(ctx)
        self._start_global_tasks()

        await self._event_bus.publish(Event(
            event_type=EventType.SYSTEM_START,
            data={
                "currency": self.state.device_currency,
                "coins": self.state.currency_codes,
            },
            source="scheduler",
        ))

        logger.info("KIOSK PRIME scheduler started")
        logger.info(f"Currencies: {self.state.currency_codes}")
        return True

    async def shutdown(self) -> None:
        """Graceful shutdown."""
        if not self._running:
            return

        logger.info("Shutting down KIOSK PRIME...")
        self._running = False

        tasks: List[asyncio.Task] = list(self._global_tasks.values())
        self._global_tasks.clear()
        tasks.extend(self._refresh_tasks)
        for task in tasks:
            task.cancel()
        for ctx in self.state.contexts.values():
            tasks.extend(ctx.cancel_all())

        if tasks:
            await asyncio.wait(tasks, timeout=TASK_CANCEL_TIMEOUT_SEC)
        await self.reaper.wait_purges()

        await self._event_bus.publish(Event(
            event_type=EventType.SYSTEM_STOP,
            data={"uptime_seconds": self._get_uptime()},
            source="scheduler",
        ))

        unloaded = self._registry.unload_all()
        for ctx in self.state.contexts.values():
            ctx.ticker = ctx.wallet = ctx.trader = None
            ctx.trade_interval_sec = None
        self.state.id_verifier = None
        self.state.info = None
        self.state.channels.clear()
        self._configured = False

        if self._shutdown_event is not None:
            self._shutdown_event.set()

        logger.info(f"KIOSK PRIME shutdown complete ({unloaded} plugins unloaded)")

    async def run_forever(self) -> None:
        """Run until shutdown signal."""
        if self._shutdown_event is None:
            self._shutdown_event = asyncio.Event()

        loop = asyncio.get_running_loop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, lambda: asyncio.create_task(self.shutdown()))
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                pass

        await self._shutdown_event.wait()

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _start_currency_tasks(self, ctx: CurrencyContext) -> None:
        code = ctx.currency_code
        polling = lambda: self.state.config.intervals.polling_sec

        if not ctx.is_running(BALANCE_TASK):
            ctx.tasks[BALANCE_TASK] = asyncio.create_task(self._run_timer(
                f"[{code}] balance", polling, lambda: self.market_data.poll_balance(code),
                owner=(ctx, BALANCE_TASK),
            ))

        if not ctx.is_running(RATE_TASK):
            ctx.tasks[RATE_TASK] = asyncio.create_task(self._run_timer(
                f"[{code}] rate", polling, lambda: self.market_data.poll_rate(code),
                owner=(ctx, RATE_TASK),
            ))

        if ctx.trader is not None and not ctx.is_running(TRADE_TASK):
            interval = ctx.trade_interval_sec or self.state.config.settings.trade_interval_sec
            ctx.tasks[TRADE_TASK] = asyncio.create_task(self._run_timer(
                f"[{code}] trader", lambda: interval,
                lambda: self.trade_executor.execute_trades(code),
                immediate=False,
                owner=(ctx, TRADE_TASK),
                after=ctx.draining.pop(TRADE_TASK, None),
            ))
            logger.debug(f"[{code}] trader started, interval {interval}s")

    def _start_global_tasks(self) -> None:
        intervals = lambda: self.state.config.intervals

        if not self._is_global_running(REAP_TASK):
            self._global_tasks[REAP_TASK] = asyncio.create_task(self._run_timer(
                "reaper", lambda: intervals().reap_sec, self.reaper.reap, immediate=False,
            ))

        if not self._is_global_running(NOTIFY_TASK):
            self._global_tasks[NOTIFY_TASK] = asyncio.create_task(self._run_timer(
                "notifier", lambda: intervals().notification_check_sec,
                self.alerts.check_notification, immediate=False,
            ))

    def _is_global_running(self, name: str) -> bool:
        task = self._global_tasks.get(name)
        return task is not None and not task.done()

    async def _run_timer(
        self,
        label: str,
        interval: Callable[[], float],
        tick: Callable[[], Awaitable[Any]],
        immediate: bool = True,
        owner: Optional[Tuple[CurrencyContext, str]] = None,
        after: Optional[asyncio.Task] = None,
    ) -> None:
        """
        Background timer loop.

        With an owner, the loop runs only while it is the registered task for
        that (context, name) and marks itself busy for the length of each
        tick, so a detach never interrupts a tick in progress. `after` is a
        detached predecessor whose last tick must finish before this loop
        starts.
        """
        task = asyncio.current_task()
        first = immediate

        def active() -> bool:
            return self._running and (owner is None or owner[0].owns(owner[1], task))

        if after is not None and not after.done():
            try:
                await asyncio.wait({after})
            except asyncio.CancelledError:
                return

        while active():
            try:
                if not first:
                    await asyncio.sleep(interval())
                first = False

                if not active():
                    break

                if owner is None:
                    await tick()
                else:
                    owner[0].busy.add(task)
                    try:
                        await tick()
                    finally:
                        owner[0].busy.discard(task)

            except asyncio.CancelledError:
                break
            except Exception as e:
                if is_recoverable(e):
                    logger.error(f"{label} error: {e}")
                else:
                    logger.critical(f"{label} failed: {e}")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def _get_uptime(self) -> float:
        """Get uptime in seconds."""
        if not self._started_at:
            return 0.0
        return (datetime.now(timezone.utc) - self._started_at).total_seconds()

    def get_metrics(self) -> Dict[str, Any]:
        """Get system metrics."""
        return {
            "uptime_seconds": self._get_uptime(),
            "running": self._running,
            "currencies": {
                code: {
                    "tasks": sorted(name for name in ctx.tasks if ctx.is_running(name)),
                    "queued_trades": len(ctx.queue),
                    "trade_interval_sec": ctx.trade_interval_sec,
                }
                for code, ctx in self.state.contexts.items()
            },
            "global_tasks": sorted(n for n in self._global_tasks if self._is_global_running(n)),
            "event_bus": self._event_bus.get_stats(),
            "plugins": self._registry.get_stats(),
            "market_data": self.market_data.get_stats(),
            "trades": self.trade_executor.get_stats(),
            "settlement": self.settlement.get_stats(),
            "reaper": self.reaper.get_stats(),
            "alerts": self.alerts.get_stats(),
        }


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "PollingScheduler",
]
