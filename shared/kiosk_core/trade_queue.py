"""
KIOSK CORE - Trade Consolidation Queue
======================================

Per-currency buffer of trade intents, flushed into one consolidated order.

The drain is a plain synchronous copy-then-clear. Under asyncio no other
coroutine runs between the copy and the clear, so an intent enqueued while
a flush is in flight lands in the next batch and is never double counted.

Retry policy:
    - Order too small -> DROP (audited, never retried)
    - Anything else   -> RETRY (re-enqueued as a single intent)

Author: KIOSK Development Team
Version: 1.0.0
"""

import logging
from enum import Enum
from typing import List, Optional

from .exceptions import is_order_too_small
from .models import ConsolidatedTrade, TradeIntent

logger = logging.getLogger("KIOSK_TradeQueue")


class TradeQueue:
    """
    In-memory FIFO of trade intents for one currency.

    Example:
        queue = TradeQueue("BTC", "USD")
        queue.enqueue(TradeIntent("BTC", "USD", 100))
        trade = queue.drain()
        # trade.crypto_amount == 100, queue is now empty
    """

    def __init__(self, currency_code: str, fiat_currency: str):
        self.currency_code = currency_code
        self.fiat_currency = fiat_currency
        self._intents: List[TradeIntent] = []

    def __len__(self) -> int:
        return len(self._intents)

    @property
    def is_empty(self) -> bool:
        return not self._intents

    def enqueue(self, intent: TradeIntent) -> None:
        """Append an intent."""
        if intent.currency_code != self.currency_code:
            raise ValueError(
                f"Intent for {intent.currency_code} pushed to {self.currency_code} queue"
            )
        if intent.crypto_amount < 0:
            raise ValueError(f"Negative trade amount: {intent.crypto_amount}")
        self._intents.append(intent)

    def drain(self, fiat_currency: Optional[str] = None) -> ConsolidatedTrade:
        """
        Consolidate and clear the queue in one step.

        Args:
            fiat_currency: Fiat the consolidated order is quoted in
                (defaults to the queue's fiat currency)

        Returns:
            ConsolidatedTrade with the exact integer sum of all intents
        """
        intents, self._intents = self._intents, []

        total = 0
        for intent in intents:
            total += intent.crypto_amount

        return ConsolidatedTrade(
            currency_code=self.currency_code,
            fiat_currency=fiat_currency or self.fiat_currency,
            crypto_amount=total,
            intent_count=len(intents),
        )

    def clear(self) -> int:
        """Drop all queued intents. Returns how many were dropped."""
        dropped = len(self._intents)
        self._intents = []
        return dropped

    def snapshot(self) -> List[TradeIntent]:
        """Copy of the queued intents."""
        return list(self._intents)


class RetryDecision(Enum):
    """What to do with a consolidated trade after a failed purchase."""

    RETRY = "retry"
    DROP = "drop"


class TradeRetryPolicy:
    """
    Classifies purchase failures.

    Order-too-small failures are dropped. Every other failure is retried
    on the next trader tick with the full consolidated amount.
    """

    def classify(self, error: Exception) -> RetryDecision:
        if is_order_too_small(error):
            return RetryDecision.DROP
        return RetryDecision.RETRY

    def requeue_intent(self, trade: ConsolidatedTrade) -> TradeIntent:
        """Build the single intent that carries a failed trade to the next tick."""
        return TradeIntent(
            currency_code=trade.currency_code,
            fiat_currency=trade.fiat_currency,
            crypto_amount=trade.crypto_amount,
        )


__all__ = [
    "TradeQueue",
    "RetryDecision",
    "TradeRetryPolicy",
]
