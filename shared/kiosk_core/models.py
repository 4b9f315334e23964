"""
KIOSK CORE - Domain Models
==========================

Data records shared by the settlement and scheduling components.

Crypto amounts are always exact integers in the currency's smallest unit.
Rates and balances are Decimal.

Author: KIOSK Development Team
Version: 1.0.0
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


def utc_now() -> datetime:
    """Current UTC time."""
    return datetime.now(timezone.utc)


class Direction(str, Enum):
    """Transaction direction relative to the kiosk."""

    OUTGOING = "outgoing"
    INCOMING = "incoming"


@dataclass
class Session:
    """Device session a request belongs to."""

    fingerprint: str
    session_id: str
    device_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "session_id": self.session_id,
            "device_time": self.device_time.isoformat() if self.device_time else None,
        }


@dataclass
class Transaction:
    """Outgoing send or cash-out request."""

    tx_id: str
    currency_code: str
    fiat_currency: str
    crypto_amount: int = 0
    to_address: Optional[str] = None
    fiat: Decimal = Decimal("0")
    incoming: bool = False


@dataclass(frozen=True)
class TradeIntent:
    """One accepted exchange event awaiting consolidation."""

    currency_code: str
    fiat_currency: str
    crypto_amount: int
    enqueued_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class ConsolidatedTrade:
    """Sum of queued intents at flush time."""

    currency_code: str
    fiat_currency: str
    crypto_amount: int
    intent_count: int

    @property
    def is_empty(self) -> bool:
        return self.crypto_amount == 0


@dataclass
class TradeAuditRecord:
    """Audit entry for a consolidated trade that was dropped without retry."""

    currency_code: str
    fiat_currency: str
    crypto_amount: int
    reason: str
    error: str
    dropped_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currency_code": self.currency_code,
            "fiat_currency": self.fiat_currency,
            "crypto_amount": self.crypto_amount,
            "reason": self.reason,
            "error": self.error,
            "dropped_at": self.dropped_at.isoformat(),
        }


@dataclass
class PendingTransaction:
    """Persisted transaction awaiting settlement."""

    session: Session
    tx_id: str
    direction: Direction
    crypto_amount: int
    to_address: Optional[str]
    currency_code: str
    fiat_currency: str
    created_at: datetime = field(default_factory=utc_now)

    @property
    def incoming(self) -> bool:
        return self.direction == Direction.INCOMING

    def to_transaction(self) -> Transaction:
        """Build the settlement request for this row (fiat is never re-counted)."""
        return Transaction(
            tx_id=self.tx_id,
            currency_code=self.currency_code,
            fiat_currency=self.fiat_currency,
            crypto_amount=self.crypto_amount,
            to_address=self.to_address,
            fiat=Decimal("0"),
            incoming=self.incoming,
        )


@dataclass
class SettlementResult:
    """Outcome of a settlement attempt."""

    status_code: int
    tx_id: str
    tx_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status_code": self.status_code,
            "tx_id": self.tx_id,
            "tx_hash": self.tx_hash,
        }


@dataclass
class BalanceSnapshot:
    """Last known wallet balance for a currency, in smallest units."""

    currency_code: str
    value: Decimal
    timestamp: datetime = field(default_factory=utc_now)


@dataclass
class RateSnapshot:
    """Last known ask/bid for a currency, quoted in the device fiat currency."""

    currency_code: str
    fiat_currency: str
    ask: Optional[Decimal]
    bid: Optional[Decimal]
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currency_code": self.currency_code,
            "fiat_currency": self.fiat_currency,
            "ask": str(self.ask) if self.ask is not None else None,
            "bid": str(self.bid) if self.bid is not None else None,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Alert:
    """Single alert condition."""

    code: str
    message: str
    currency_code: Optional[str] = None


@dataclass
class AlertRecord:
    """Structured result of a status check."""

    alerts: List[Alert] = field(default_factory=list)
    generated_at: datetime = field(default_factory=utc_now)

    @property
    def is_empty(self) -> bool:
        return not self.alerts


__all__ = [
    "utc_now",
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
]
