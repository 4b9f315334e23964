# KIOSK_FEAT: market-data-001
"""
KIOSK PRIME - Market Data Poller
================================

Refreshes the rate/balance cache from the active ticker and wallet plugins.

Polls never raise: a failed call is logged and the previous snapshot stays
in place, so the kiosk keeps quoting against the last known data.

Author: KIOSK Development Team
Version: 1.0.0
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from shared.kiosk_core.models import BalanceSnapshot, RateSnapshot

from ..core.event_bus import Event, EventBus, EventPriority, EventType
from ..core.state import KioskState

logger = logging.getLogger("KIOSK_MarketData")


class MarketDataPoller:
    """
    Balance and rate polling for every configured currency.

    Example:
        poller = MarketDataPoller(state, event_bus)
        await poller.poll_balance("BTC")
        await poller.poll_rate("BTC")

        poller.fiat_balance("BTC")  # Decimal("14000.000")
    """

    def __init__(self, state: KioskState, event_bus: Optional[EventBus] = None):
        self.state = state
        self.event_bus = event_bus
        self._stats = {
            "balance_polls": 0,
            "balance_failures": 0,
            "rate_polls": 0,
            "rate_failures": 0,
        }

    async def _publish(self, event_type: EventType, data: Dict[str, Any]) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.publish(Event(
            event_type=event_type,
            data=data,
            source="market_data",
            priority=EventPriority.LOW,
        ))

    async def poll_balance(self, currency_code: str) -> Optional[BalanceSnapshot]:
        """
        Refresh the wallet balance for a currency.

        Returns:
            The new snapshot, or None if no wallet is loaded or the call failed
        """
        wallet = self.state.wallet(currency_code)
        if wallet is None:
            logger.debug(f"[{currency_code}] no wallet loaded, skipping balance poll")
            return None

        self._stats["balance_polls"] += 1
        try:
            balances = await wallet.balance()
        except Exception as e:
            self._stats["balance_failures"] += 1
            logger.error(f"[{currency_code}] balance poll failed: {e}")
            return None

        if not balances or balances.get(currency_code) is None:
            self._stats["balance_failures"] += 1
            logger.error(f"[{currency_code}] wallet returned no balance for currency")
            return None

        snapshot = self.state.cache.update_balance(currency_code, balances[currency_code])
        logger.debug(f"[{currency_code}] balance updated: {snapshot.value}")

        await self._publish(EventType.BALANCE_UPDATED, {
            "currency_code": currency_code,
            "balance": str(snapshot.value),
        })
        return snapshot

    async def poll_rate(self, currency_code: str) -> Optional[RateSnapshot]:
        """
        Refresh the ask/bid for a currency, quoted in the device fiat currency.

        Returns:
            The new snapshot, or None if no ticker is loaded or the call failed
        """
        ticker = self.state.ticker(currency_code)
        if ticker is None:
            logger.debug(f"[{currency_code}] no ticker loaded, skipping rate poll")
            return None

        fiat = self.state.device_currency
        self._stats["rate_polls"] += 1
        try:
            rates = await ticker.quote([fiat], currency_code)
        except Exception as e:
            self._stats["rate_failures"] += 1
            logger.error(f"[{currency_code}] rate poll failed: {e}")
            return None

        quote = (rates or {}).get(fiat)
        if not quote:
            self._stats["rate_failures"] += 1
            logger.error(f"[{currency_code}] ticker returned no {fiat} quote")
            return None

        snapshot = self.state.cache.update_rate(
            currency_code, fiat, quote.get("ask"), quote.get("bid"),
        )
        logger.debug(f"[{currency_code}] rate updated: ask={snapshot.ask} bid={snapshot.bid}")

        await self._publish(EventType.RATE_UPDATED, snapshot.to_dict())
        return snapshot

    def fiat_balance(self, currency_code: str) -> Optional[Decimal]:
        """Fiat value of the cached balance, or None if data is missing."""
        return self.state.cache.fiat_balance(
            currency_code,
            commission=self.state.commission,
            low_balance_margin=self.state.low_balance_margin,
        )

    def get_balance(self, currency_code: str) -> Optional[Decimal]:
        """Cached balance in smallest units."""
        snapshot = self.state.cache.get_balance(currency_code)
        return snapshot.value if snapshot else None

    def get_device_rate(self, currency_code: str) -> Optional[RateSnapshot]:
        """Cached rate in the device fiat currency."""
        return self.state.cache.get_rate(currency_code)

    def check_balances(self) -> List[Dict[str, Any]]:
        """Fiat balance of every currency that has enough cached data."""
        balances = []
        for currency_code in self.state.currency_codes:
            fiat_balance = self.fiat_balance(currency_code)
            if fiat_balance is None:
                continue
            balances.append({
                "fiat_balance": fiat_balance,
                "currency_code": currency_code,
                "fiat_code": self.state.device_currency,
            })
        return balances

    def get_stats(self) -> Dict[str, Any]:
        """Get poller statistics."""
        return dict(self._stats)


__all__ = [
    "MarketDataPoller",
]
