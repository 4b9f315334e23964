# KIOSK_FEAT: persistence-001
"""
KIOSK PRIME - Persistence Contract
==================================

The store the settlement core depends on, plus an in-memory implementation.

The core never locks around settlement itself. `add_outgoing_tx` is the
atomic claim: it returns how much is still owed for a transaction and
records that amount as claimed in the same step, so two concurrent
claimants (device request and reaper) can never both see a non-zero amount.

Author: KIOSK Development Team
Version: 1.0.0
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from shared.kiosk_core.models import (
    Direction,
    PendingTransaction,
    Session,
    Transaction,
    utc_now,
)

logger = logging.getLogger("KIOSK_Persistence")


class Persistence(ABC):
    """Persistence collaborator required by the core."""

    @abstractmethod
    async def record_device_event(self, session: Session, event: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def machine_event(self, event: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def record_bill(self, session: Session, bill: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def cartridge_counts(self, session: Session) -> Dict[str, Any]:
        """Returns {"id": ..., "counts": [int, ...]}."""
        pass

    @abstractmethod
    async def add_outgoing_pending(
        self, session: Session, fiat_currency: str, currency_code: str, to_address: str
    ) -> None:
        pass

    @abstractmethod
    async def add_outgoing_tx(self, session: Session, tx: Transaction) -> int:
        """Atomically claim a transaction. Returns the amount still owed."""
        pass

    @abstractmethod
    async def sent_coins(
        self,
        session: Session,
        tx: Transaction,
        authority: str,
        sent_amount: int,
        fee: Optional[int],
        error: Optional[str],
        tx_hash: Optional[str],
    ) -> None:
        pass

    @abstractmethod
    async def add_initial_incoming(self, session: Session, tx: Transaction) -> None:
        pass

    @abstractmethod
    async def add_dispense(
        self, session: Session, tx: Dict[str, Any], cartridges: List[int]
    ) -> None:
        pass

    @abstractmethod
    async def remove_old_pending(self, timeout_sec: float) -> int:
        """Purge incoming pending rows older than the timeout."""
        pass

    @abstractmethod
    async def pending_txs(self, timeout_sec: float) -> List[PendingTransaction]:
        """Pending rows older than the timeout."""
        pass


@dataclass
class SendRecord:
    """Outcome of one settlement attempt."""

    session_id: str
    tx_id: str
    authority: str
    sent_amount: int
    fee: Optional[int]
    error: Optional[str]
    tx_hash: Optional[str]
    recorded_at: datetime = field(default_factory=utc_now)


class MemoryStore(Persistence):
    """
    In-memory persistence for development, paper mode and tests.

    A session carries one outgoing transaction. Claimed amounts are tracked
    per session; a claim returns
    `tx.crypto_amount - already_claimed` (never negative), which supports
    partial settlement when more bills arrive after a first send.

    Example:
        store = MemoryStore()
        owed = await store.add_outgoing_tx(session, tx)
    """

    def __init__(
        self,
        cartridge_counts: Optional[List[int]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._clock = clock
        self._lock = asyncio.Lock()
        self._pending: Dict[str, PendingTransaction] = {}
        self._claimed: Dict[str, int] = {}
        self._counts: List[int] = list(cartridge_counts or [])
        self.device_events: List[Dict[str, Any]] = []
        self.machine_events: List[Dict[str, Any]] = []
        self.bills: List[Dict[str, Any]] = []
        self.sends: List[SendRecord] = []
        self.dispenses: List[Dict[str, Any]] = []

    async def record_device_event(self, session: Session, event: Dict[str, Any]) -> None:
        self.device_events.append({"session": session.to_dict(), **event})

    async def machine_event(self, event: Dict[str, Any]) -> None:
        self.machine_events.append(dict(event))

    async def record_bill(self, session: Session, bill: Dict[str, Any]) -> None:
        self.bills.append({"session_id": session.session_id, **bill})

        pending = self._pending.get(session.session_id)
        if pending is not None and not pending.incoming:
            pending.crypto_amount += int(bill.get("crypto_amount", 0))

    async def cartridge_counts(self, session: Session) -> Dict[str, Any]:
        return {"id": f"counts_{len(self.dispenses)}", "counts": list(self._counts)}

    async def add_outgoing_pending(
        self, session: Session, fiat_currency: str, currency_code: str, to_address: str
    ) -> None:
        if session.session_id in self._pending:
            return
        self._pending[session.session_id] = PendingTransaction(
            session=session,
            tx_id=session.session_id,
            direction=Direction.OUTGOING,
            crypto_amount=0,
            to_address=to_address,
            currency_code=currency_code,
            fiat_currency=fiat_currency,
            created_at=self._clock(),
        )

    async def add_outgoing_tx(self, session: Session, tx: Transaction) -> int:
        async with self._lock:
            claimed = self._claimed.get(session.session_id, 0)
            owed = max(0, int(tx.crypto_amount) - claimed)
            self._claimed[session.session_id] = claimed + owed

            pending = self._pending.get(session.session_id)
            if pending is not None and not pending.incoming:
                del self._pending[session.session_id]

            return owed

    async def sent_coins(
        self,
        session: Session,
        tx: Transaction,
        authority: str,
        sent_amount: int,
        fee: Optional[int],
        error: Optional[str],
        tx_hash: Optional[str],
    ) -> None:
        self.sends.append(SendRecord(
            session_id=session.session_id,
            tx_id=tx.tx_id,
            authority=authority,
            sent_amount=sent_amount,
            fee=fee,
            error=error,
            tx_hash=tx_hash,
        ))

    async def add_initial_incoming(self, session: Session, tx: Transaction) -> None:
        self._pending[session.session_id] = PendingTransaction(
            session=session,
            tx_id=tx.tx_id,
            direction=Direction.INCOMING,
            crypto_amount=int(tx.crypto_amount),
            to_address=tx.to_address,
            currency_code=tx.currency_code,
            fiat_currency=tx.fiat_currency,
            created_at=self._clock(),
        )

    async def add_dispense(
        self, session: Session, tx: Dict[str, Any], cartridges: List[int]
    ) -> None:
        self.dispenses.append({
            "session_id": session.session_id,
            "tx": dict(tx),
            "cartridges": list(cartridges),
        })
        for i, dispensed in enumerate(cartridges):
            if i < len(self._counts):
                self._counts[i] = max(0, self._counts[i] - int(dispensed))

        pending = self._pending.get(session.session_id)
        if pending is not None and pending.incoming:
            del self._pending[session.session_id]

    async def remove_old_pending(self, timeout_sec: float) -> int:
        cutoff = self._clock() - timedelta(seconds=timeout_sec)
        stale = [
            sid for sid, row in self._pending.items()
            if row.incoming and row.created_at < cutoff
        ]
        for sid in stale:
            del self._pending[sid]
        if stale:
            logger.debug(f"Purged {len(stale)} stale deposits")
        return len(stale)

    async def pending_txs(self, timeout_sec: float) -> List[PendingTransaction]:
        cutoff = self._clock() - timedelta(seconds=timeout_sec)
        return [row for row in self._pending.values() if row.created_at < cutoff]

    def claimed(self, session_id: str) -> int:
        """Total amount claimed for a session so far."""
        return self._claimed.get(session_id, 0)


__all__ = [
    "Persistence",
    "SendRecord",
    "MemoryStore",
]
