# KIOSK_FEAT: settlement-001
"""
KIOSK PRIME - Settlement Engine
===============================

Sends what is owed on an outgoing transaction, exactly once.

The persistence claim decides the amount. A zero claim means another
settler (device request or reaper) already took the transaction, and no
network action happens.

Author: KIOSK Development Team
Version: 1.0.0
"""

import logging
from typing import Any, Dict, Optional

from shared.kiosk_core.constants import (
    STATUS_NOTHING_OWED,
    STATUS_SENT,
)
from shared.kiosk_core.exceptions import (
    PluginOperationError,
    SettlementPersistenceError,
)
from shared.kiosk_core.models import Session, SettlementResult, Transaction

from ..core.event_bus import Event, EventBus, EventPriority, EventType
from ..core.state import KioskState
from .market_data import MarketDataPoller
from .persistence import Persistence

logger = logging.getLogger("KIOSK_Settlement")


class SettlementEngine:
    """
    Outgoing transaction settlement.

    Example:
        engine = SettlementEngine(state, store, poller, event_bus)
        result = await engine.execute_tx(session, tx, "machine")
        # result.status_code == 201, result.tx_hash == "..."
    """

    def __init__(
        self,
        state: KioskState,
        persistence: Persistence,
        market_data: MarketDataPoller,
        event_bus: Optional[EventBus] = None,
    ):
        self.state = state
        self.persistence = persistence
        self.market_data = market_data
        self.event_bus = event_bus
        self._stats = {
            "sent": 0,
            "nothing_owed": 0,
            "failed": 0,
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
            source="settlement",
            priority=priority,
        ))

    async def execute_tx(
        self, session: Session, tx: Transaction, authority: str
    ) -> SettlementResult:
        """
        Settle an outgoing transaction.

        Args:
            session: Device session owning the transaction
            tx: Transaction to settle
            authority: Audit label for who triggered settlement

        Returns:
            SettlementResult with status 201 (sent) or 204 (nothing owed)

        Raises:
            SettlementPersistenceError: The claim could not be recorded
            PluginOperationError: The wallet send failed (outcome recorded)
        """
        try:
            owed = await self.persistence.add_outgoing_tx(session, tx)
        except Exception as e:
            raise SettlementPersistenceError(
                f"Failed to claim transaction {tx.tx_id}: {e}",
                tx_id=tx.tx_id,
            ) from e

        if owed <= 0:
            self._stats["nothing_owed"] += 1
            logger.debug(f"[{tx.currency_code}] nothing owed on {tx.tx_id} ({authority})")
            return SettlementResult(status_code=STATUS_NOTHING_OWED, tx_id=tx.tx_id)

        fee = self.state.transaction_fee
        wallet = self.state.wallet(tx.currency_code)

        try:
            if wallet is None:
                raise PluginOperationError(
                    f"No wallet loaded for {tx.currency_code}",
                    operation="send",
                )
            tx_hash = await wallet.send(tx.to_address, owed, fee, tx.currency_code)
        except Exception as e:
            await self._record(session, tx, authority, 0, fee, str(e), None)
            self._stats["failed"] += 1
            logger.error(f"[{tx.currency_code}] send failed for {tx.tx_id} ({authority}): {e}")
            await self._publish(EventType.TX_FAILED, {
                "tx_id": tx.tx_id,
                "currency_code": tx.currency_code,
                "crypto_amount": owed,
                "authority": authority,
                "error": str(e),
            }, EventPriority.CRITICAL)
            if isinstance(e, PluginOperationError):
                raise
            raise PluginOperationError(
                f"Wallet send failed for {tx.tx_id}: {e}",
                plugin_name=wallet.display_name,
                operation="send",
            ) from e

        await self._record(session, tx, authority, owed, fee, None, tx_hash)
        self._stats["sent"] += 1
        logger.info(f"[{tx.currency_code}] sent {owed} to {tx.to_address} ({authority}): {tx_hash}")

        await self._publish(EventType.TX_SETTLED, {
            "tx_id": tx.tx_id,
            "currency_code": tx.currency_code,
            "crypto_amount": owed,
            "authority": authority,
            "tx_hash": tx_hash,
        })

        await self.market_data.poll_balance(tx.currency_code)
        return SettlementResult(status_code=STATUS_SENT, tx_id=tx.tx_id, tx_hash=tx_hash)

    async def _record(
        self,
        session: Session,
        tx: Transaction,
        authority: str,
        sent_amount: int,
        fee: Optional[int],
        error: Optional[str],
        tx_hash: Optional[str],
    ) -> None:
        try:
            await self.persistence.sent_coins(
                session, tx, authority, sent_amount, fee, error, tx_hash,
            )
        except Exception as e:
            raise SettlementPersistenceError(
                f"Failed to record send outcome for {tx.tx_id}: {e}",
                tx_id=tx.tx_id,
            ) from e

    def get_stats(self) -> Dict[str, Any]:
        """Get settlement statistics."""
        return dict(self._stats)


__all__ = [
    "SettlementEngine",
]
