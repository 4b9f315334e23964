"""
KIOSK CORE - Rate/Balance Cache
===============================

Last-known wallet balances and exchange rates per currency.

Values are last-write-wins with no history. A failed poll never clears a
snapshot, so readers see stale-but-available data. An optional maximum age
turns old snapshots into misses.

Fiat balance:
    round(balance / 10^unit_scale * ask * commission / low_balance_margin, 3)

Author: KIOSK Development Team
Version: 1.0.0
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional, Union

from .constants import FIAT_BALANCE_PLACES, get_unit_scale
from .models import BalanceSnapshot, RateSnapshot, utc_now

logger = logging.getLogger("KIOSK_RateCache")

Number = Union[int, str, Decimal]


def to_decimal(value: Number) -> Decimal:
    """Convert to Decimal without passing through binary floats."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def compute_fiat_balance(
    balance: Decimal,
    ask: Decimal,
    unit_scale: int,
    commission: Decimal,
    low_balance_margin: Decimal,
) -> Decimal:
    """
    Convert a smallest-unit balance to a fiat amount with safety margin.

    Args:
        balance: Wallet balance in smallest units
        ask: Ask rate in fiat per whole coin
        unit_scale: Power of ten between coin and smallest unit
        commission: Commission multiplier applied to the rate
        low_balance_margin: Safety divisor (>= 1)

    Returns:
        Fiat balance rounded to 3 decimal places
    """
    coins = to_decimal(balance) / (Decimal(10) ** unit_scale)
    rate = to_decimal(ask) * to_decimal(commission)
    fiat = coins * rate / to_decimal(low_balance_margin)
    return fiat.quantize(Decimal(1).scaleb(-FIAT_BALANCE_PLACES), rounding=ROUND_HALF_UP)


class RateBalanceCache:
    """
    In-memory cache of balance and rate snapshots.

    Example:
        cache = RateBalanceCache()
        cache.update_balance("BTC", 200000000)
        cache.update_rate("BTC", "USD", ask=10000, bid=9900)

        cache.fiat_balance("BTC", commission=Decimal("1.05"),
                           low_balance_margin=Decimal("1.5"))
        # Decimal("14000.000")
    """

    def __init__(self, max_age_seconds: Optional[float] = None):
        self._balances: Dict[str, BalanceSnapshot] = {}
        self._rates: Dict[str, RateSnapshot] = {}
        self.max_age_seconds = max_age_seconds

    def update_balance(
        self,
        currency_code: str,
        value: Number,
        timestamp: Optional[datetime] = None,
    ) -> BalanceSnapshot:
        """Overwrite the balance snapshot for a currency."""
        snapshot = BalanceSnapshot(
            currency_code=currency_code,
            value=to_decimal(value),
            timestamp=timestamp or utc_now(),
        )
        self._balances[currency_code] = snapshot
        return snapshot

    def update_rate(
        self,
        currency_code: str,
        fiat_currency: str,
        ask: Optional[Number],
        bid: Optional[Number],
        timestamp: Optional[datetime] = None,
    ) -> RateSnapshot:
        """Overwrite the rate snapshot for a currency."""
        snapshot = RateSnapshot(
            currency_code=currency_code,
            fiat_currency=fiat_currency,
            ask=to_decimal(ask) if ask is not None else None,
            bid=to_decimal(bid) if bid is not None else None,
            timestamp=timestamp or utc_now(),
        )
        self._rates[currency_code] = snapshot
        return snapshot

    def _is_fresh(self, timestamp: datetime, now: Optional[datetime]) -> bool:
        if self.max_age_seconds is None:
            return True
        now = now or utc_now()
        return now - timestamp <= timedelta(seconds=self.max_age_seconds)

    def get_balance(
        self, currency_code: str, now: Optional[datetime] = None
    ) -> Optional[BalanceSnapshot]:
        """Get the balance snapshot, or None if absent or expired."""
        snapshot = self._balances.get(currency_code)
        if snapshot is None or not self._is_fresh(snapshot.timestamp, now):
            return None
        return snapshot

    def get_rate(
        self, currency_code: str, now: Optional[datetime] = None
    ) -> Optional[RateSnapshot]:
        """Get the rate snapshot, or None if absent or expired."""
        snapshot = self._rates.get(currency_code)
        if snapshot is None or not self._is_fresh(snapshot.timestamp, now):
            return None
        return snapshot

    def fiat_balance(
        self,
        currency_code: str,
        commission: Decimal,
        low_balance_margin: Decimal,
        now: Optional[datetime] = None,
    ) -> Optional[Decimal]:
        """
        Fiat value of the cached balance at the cached ask rate.

        Returns:
            Rounded fiat balance, or None if either snapshot is missing
        """
        balance = self.get_balance(currency_code, now)
        rate = self.get_rate(currency_code, now)

        if balance is None or rate is None or rate.ask is None:
            return None

        return compute_fiat_balance(
            balance=balance.value,
            ask=rate.ask,
            unit_scale=get_unit_scale(currency_code),
            commission=commission,
            low_balance_margin=low_balance_margin,
        )

    def discard(self, currency_code: str) -> None:
        """Drop both snapshots for a currency removed from configuration."""
        self._balances.pop(currency_code, None)
        self._rates.pop(currency_code, None)

    def currencies(self) -> list:
        """Currencies with any cached snapshot."""
        return sorted(set(self._balances) | set(self._rates))


__all__ = [
    "to_decimal",
    "compute_fiat_balance",
    "RateBalanceCache",
]
