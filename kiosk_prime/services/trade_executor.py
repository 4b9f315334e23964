# KIOSK_FEAT: trade-executor-001
"""
KIOSK PRIME - Trade Executor
============================

Buffers per-currency trade intents and flushes them as one purchase per
trader tick.

Failure handling:
- Order too small: dropped, audited, TRADE_DROPPED published
- Any other failure: summed amount re-enqueued for the next tick, or
  dropped and audited if the trader was removed meanwhile
- Cancelled mid-purchase: summed amount re-enqueued, cancellation propagates

Author: KIOSK Development Team
Version: 1.0.0
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from shared.kiosk_core.models import ConsolidatedTrade, TradeAuditRecord, TradeIntent
from shared.kiosk_core.trade_queue import RetryDecision, TradeRetryPolicy

from ..core.event_bus import Event, EventBus, EventPriority, EventType
from ..core.state import KioskState
from .market_data import MarketDataPoller

logger = logging.getLogger("KIOSK_TradeExecutor")


class TradeExecutor:
    """
    Trade consolidation and execution.

    Example:
        executor = TradeExecutor(state, poller, event_bus)
        executor.enqueue_trade("BTC", "USD", 100)
        executor.enqueue_trade("BTC", "USD", 250)

        await executor.execute_trades("BTC")  # one purchase of 350
    """

    def __init__(
        self,
        state: KioskState,
        market_data: MarketDataPoller,
        event_bus: Optional[EventBus] = None,
        retry_policy: Optional[TradeRetryPolicy] = None,
    ):
        self.state = state
        self.market_data = market_data
        self.event_bus = event_bus
        self.retry_policy = retry_policy or TradeRetryPolicy()
        self.audit_log: List[TradeAuditRecord] = []
        self._stats = {
            "intents_queued": 0,
            "trades_executed": 0,
            "trades_requeued": 0,
            "trades_dropped": 0,
        }

    async def _publish(
        self,
        event_type: EventType,
        data: Dict[str, Any],
        priority: EventPriority = EventPriority.HIGH,
    ) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.publish(Event(
            event_type=event_type,
            data=data,
            source="trade_executor",
            priority=priority,
        ))

    def enqueue_trade(self, currency_code: str, fiat_currency: str, crypto_amount: int) -> bool:
        """
        Queue a trade intent for the next trader tick.

        Returns:
            True if queued, False if no trader is active for the currency
        """
        ctx = self.state.context(currency_code)
        if ctx is None or ctx.trader is None:
            logger.debug(f"[{currency_code}] no trader loaded, trade not queued")
            return False

        ctx.queue.enqueue(TradeIntent(
            currency_code=currency_code,
            fiat_currency=fiat_currency,
            crypto_amount=int(crypto_amount),
        ))
        self._stats["intents_queued"] += 1
        logger.debug(f"[{currency_code}] trade queued: {crypto_amount} ({len(ctx.queue)} pending)")

        if self.event_bus is not None:
            self.event_bus.publish_nowait(Event(
                event_type=EventType.TRADE_QUEUED,
                data={
                    "currency_code": currency_code,
                    "fiat": fiat_currency,
                    "crypto_amount": int(crypto_amount),
                },
                source="trade_executor",
                priority=EventPriority.LOW,
            ))
        return True

    async def execute_trades(self, currency_code: str) -> Optional[ConsolidatedTrade]:
        """
        Flush the queue into one purchase.

        Returns:
            The executed trade, or None if nothing was bought
        """
        ctx = self.state.context(currency_code)
        if ctx is None:
            return None

        trader = ctx.trader
        if trader is None:
            return None

        # Copy-then-clear with no await in between
        trade = ctx.queue.drain(self.state.device_currency)
        if trade.is_empty:
            return None

        logger.info(
            f"[{currency_code}] making a trade: {trade.crypto_amount} "
            f"({trade.intent_count} intents)"
        )

        try:
            await trader.purchase(trade.crypto_amount, {
                "currency_code": trade.currency_code,
                "fiat": trade.fiat_currency,
            })
        except asyncio.CancelledError:
            ctx.queue.enqueue(self.retry_policy.requeue_intent(trade))
            self._stats["trades_requeued"] += 1
            logger.warning(f"[{currency_code}] trade interrupted, requeued {trade.crypto_amount}")
            raise
        except Exception as e:
            await self._handle_failure(ctx, trade, e)
            return None

        self._stats["trades_executed"] += 1
        await self._publish(EventType.TRADE_EXECUTED, {
            "currency_code": trade.currency_code,
            "fiat": trade.fiat_currency,
            "crypto_amount": trade.crypto_amount,
            "intent_count": trade.intent_count,
        })

        await self.market_data.poll_balance(currency_code)
        return trade

    async def _handle_failure(self, ctx, trade: ConsolidatedTrade, error: Exception) -> None:
        decision = self.retry_policy.classify(error)

        if decision == RetryDecision.DROP:
            await self._drop(trade, "orderTooSmall", error)
            return

        if ctx.trader is None:
            # Trader removed mid-purchase
            await self._drop(trade, "traderRemoved", error)
            return

        ctx.queue.enqueue(self.retry_policy.requeue_intent(trade))
        self._stats["trades_requeued"] += 1
        logger.error(f"[{trade.currency_code}] trade failed, requeued {trade.crypto_amount}: {error}")
        await self._publish(EventType.TRADE_REQUEUED, {
            "currency_code": trade.currency_code,
            "crypto_amount": trade.crypto_amount,
            "error": str(error),
        })

    async def _drop(self, trade: ConsolidatedTrade, reason: str, error: Exception) -> None:
        record = TradeAuditRecord(
            currency_code=trade.currency_code,
            fiat_currency=trade.fiat_currency,
            crypto_amount=trade.crypto_amount,
            reason=reason,
            error=str(error),
        )
        self.audit_log.append(record)
        self._stats["trades_dropped"] += 1
        logger.warning(f"[{trade.currency_code}] trade dropped ({reason}): {trade.crypto_amount}")
        await self._publish(
            EventType.TRADE_DROPPED, record.to_dict(), EventPriority.CRITICAL,
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get executor statistics."""
        return {
            **self._stats,
            "queued": {code: len(ctx.queue) for code, ctx in self.state.contexts.items()},
            "audit_records": len(self.audit_log),
        }


__all__ = [
    "TradeExecutor",
]
