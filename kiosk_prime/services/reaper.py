# KIOSK_FEAT: reaper-001
"""
KIOSK PRIME - Pending Transaction Reaper
========================================

Settles outgoing transactions the device never finished and purges
abandoned deposits.

Author: KIOSK Development Team
Version: 1.0.0
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from shared.kiosk_core.constants import AUTHORITY_TIMEOUT
from shared.kiosk_core.models import PendingTransaction

from ..core.event_bus import Event, EventBus, EventType
from ..core.state import KioskState
from .persistence import Persistence
from .settlement import SettlementEngine

logger = logging.getLogger("KIOSK_Reaper")


class PendingTransactionReaper:
    """
    Periodic sweep over persisted pending state.

    Every error is logged; `reap()` never raises.
    """

    def __init__(
        self,
        state: KioskState,
        persistence: Persistence,
        settlement: SettlementEngine,
        event_bus: Optional[EventBus] = None,
    ):
        self.state = state
        self.persistence = persistence
        self.settlement = settlement
        self.event_bus = event_bus
        self._purge_tasks: Set[asyncio.Task] = set()
        self._stats = {
            "sweeps": 0,
            "reaped": 0,
            "errors": 0,
        }

    def _start_purge(self) -> None:
        timeout = self.state.config.intervals.deposit_timeout_sec
        task = asyncio.create_task(self.persistence.remove_old_pending(timeout))
        self._purge_tasks.add(task)
        task.add_done_callback(self._purge_done)

    def _purge_done(self, task: asyncio.Task) -> None:
        self._purge_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._stats["errors"] += 1
            logger.error(f"Failed to purge old deposits: {error}")

    async def reap(self) -> int:
        """
        Run one sweep.

        Returns:
            Number of outgoing transactions settled by this sweep
        """
        self._stats["sweeps"] += 1
        self._start_purge()

        try:
            pending = await self.persistence.pending_txs(
                self.state.config.intervals.pending_timeout_sec
            )
        except Exception as e:
            self._stats["errors"] += 1
            logger.error(f"Failed to read pending transactions: {e}")
            return 0

        # Rows settle concurrently
        outcomes = await asyncio.gather(
            *(self._reap_row(row) for row in pending if not row.incoming),
            return_exceptions=True,
        )
        return sum(1 for outcome in outcomes if outcome is True)

    async def _reap_row(self, row: PendingTransaction) -> bool:
        try:
            result = await self.settlement.execute_tx(
                row.session, row.to_transaction(), AUTHORITY_TIMEOUT,
            )
        except Exception as e:
            self._stats["errors"] += 1
            logger.error(f"[{row.currency_code}] failed to reap {row.tx_id}: {e}")
            return False

        self._stats["reaped"] += 1
        if self.event_bus is not None:
            await self.event_bus.publish(Event(
                event_type=EventType.TX_REAPED,
                data={**result.to_dict(), "currency_code": row.currency_code},
                source="reaper",
            ))
        return True

    async def wait_purges(self) -> None:
        """Wait for in-flight deposit purges."""
        if self._purge_tasks:
            await asyncio.gather(*list(self._purge_tasks), return_exceptions=True)

    def get_stats(self) -> Dict[str, Any]:
        """Get reaper statistics."""
        return {**self._stats, "purges_in_flight": len(self._purge_tasks)}


__all__ = [
    "PendingTransactionReaper",
]
