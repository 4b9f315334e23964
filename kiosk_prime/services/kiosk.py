# KIOSK_FEAT: kiosk-service-001
"""
KIOSK PRIME - Kiosk Request Service
===================================

Entry points for device requests: bills, sends, cash-outs, dispenses,
status events and identity checks.

Request paths raise: a missing plugin is a PluginUnavailableError and a
failed plugin call is a PluginOperationError, so the device protocol layer
can answer with an error instead of a stale success.

Author: KIOSK Development Team
Version: 1.0.0
"""

import asyncio
import dataclasses
import json
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from shared.kiosk_core.constants import (
    AUTHORITY_MACHINE,
    DEFAULT_CURRENCY_CODES,
    REMIT_ADDRESS,
)
from shared.kiosk_core.exceptions import PluginOperationError, PluginUnavailableError
from shared.kiosk_core.models import RateSnapshot, Session, SettlementResult, Transaction, utc_now

from ..core.plugin_base import Plugin
from ..core.state import KioskState
from .market_data import MarketDataPoller
from .persistence import Persistence
from .settlement import SettlementEngine
from .trade_executor import TradeExecutor

logger = logging.getLogger("KIOSK_Service")


class KioskService:
    """
    Device-facing request handlers.

    Example:
        service = KioskService(state, store, poller, executor, settlement)
        await service.trade(session, {
            "currency_code": "BTC",
            "fiat_currency": "USD",
            "crypto_amount": 100000,
            "to_address": "1Abc...",
        })
        result = await service.send_coins(session, tx)
    """

    def __init__(
        self,
        state: KioskState,
        persistence: Persistence,
        market_data: MarketDataPoller,
        trade_executor: TradeExecutor,
        settlement: SettlementEngine,
    ):
        self.state = state
        self.persistence = persistence
        self.market_data = market_data
        self.trade_executor = trade_executor
        self.settlement = settlement

    async def _call(self, plugin: Optional[Plugin], capability: str, operation: str,
                    *args: Any) -> Any:
        if plugin is None:
            raise PluginUnavailableError(f"No {capability} plugin loaded", operation=operation)
        try:
            return await getattr(plugin, operation)(*args)
        except PluginOperationError:
            raise
        except Exception as e:
            raise PluginOperationError(
                f"{plugin.display_name}.{operation} failed: {e}",
                plugin_name=plugin.display_name,
                operation=operation,
            ) from e

    # ------------------------------------------------------------------
    # Device events
    # ------------------------------------------------------------------

    async def log_event(self, session: Session, event: Dict[str, Any]) -> None:
        """Record a raw device event."""
        await self.persistence.record_device_event(session, event)

    async def state_change(self, session: Session, rec: Dict[str, Any]) -> None:
        """Record a device state transition."""
        await self.persistence.machine_event({
            "id": rec.get("uuid") or uuid.uuid4().hex,
            "fingerprint": session.fingerprint,
            "event_type": "stateChange",
            "note": json.dumps({
                "state": rec.get("state"),
                "is_idle": bool(rec.get("is_idle")),
                "session_id": session.session_id,
            }),
            "device_time": session.device_time,
        })

    async def record_ping(self, session: Session, rec: Dict[str, Any]) -> None:
        """Record a device heartbeat."""
        idle = rec.get("idle")
        await self.persistence.machine_event({
            "id": uuid.uuid4().hex,
            "fingerprint": session.fingerprint,
            "event_type": "ping",
            "note": json.dumps({
                "state": rec.get("state"),
                "is_idle": idle is True or idle == "true",
                "session_id": session.session_id,
            }),
            "device_time": session.device_time,
        })

    async def poll_queries(self, session: Session) -> Dict[str, Any]:
        """Cartridge layout and counts for the device, empty without cartridges."""
        settings = self.state.config.settings
        if not settings.cartridges:
            return {}

        rec = await self.persistence.cartridge_counts(session)
        counts = list(rec.get("counts") or [])
        cartridges = [
            {"denomination": int(denomination), "count": int(counts[i]) if i < len(counts) else 0}
            for i, denomination in enumerate(settings.cartridges)
        ]

        return {
            "cartridges": {
                "cartridges": cartridges,
                "virtual_cartridges": list(settings.virtual_cartridges),
                "id": rec.get("id"),
            }
        }

    # ------------------------------------------------------------------
    # Cash in
    # ------------------------------------------------------------------

    async def trade(self, session: Session, raw_trade: Dict[str, Any]) -> None:
        """
        Accept a bill.

        The trade is queued for the trader when one is active; the bill is
        always recorded, even when the amount cannot be queued. Bills
        without a destination are recorded against the remit address.
        """
        currency_code = raw_trade.get("currency_code") or DEFAULT_CURRENCY_CODES[0]
        fiat_currency = raw_trade.get("fiat_currency") or self.state.device_currency

        try:
            crypto_amount = int(raw_trade.get("crypto_amount", 0))
            self.trade_executor.enqueue_trade(currency_code, fiat_currency, crypto_amount)
        except (TypeError, ValueError) as e:
            logger.error(f"[{currency_code}] trade not queued: {e}")

        to_address = raw_trade.get("to_address")
        if not to_address:
            await self.persistence.record_bill(
                session, {**raw_trade, "to_address": REMIT_ADDRESS}
            )
            return

        await asyncio.gather(
            self.persistence.add_outgoing_pending(
                session, fiat_currency, currency_code, to_address
            ),
            self.persistence.record_bill(session, dict(raw_trade)),
        )

    async def send_coins(self, session: Session, tx: Transaction) -> SettlementResult:
        """Settle an outgoing transaction at the device's request."""
        return await self.settlement.execute_tx(session, tx, AUTHORITY_MACHINE)

    # ------------------------------------------------------------------
    # Cash out
    # ------------------------------------------------------------------

    async def cash_out(self, session: Session, tx: Transaction) -> str:
        """
        Open a deposit for a cash-out.

        Returns:
            The fresh deposit address
        """
        wallet = self.state.wallet(tx.currency_code)
        info = {
            "label": f"TX {int(utc_now().timestamp() * 1000)}",
            "account": "deposit",
        }
        address = await self._call(wallet, "wallet", "new_address", info)

        incoming = dataclasses.replace(tx, to_address=address, incoming=True)
        await self.persistence.add_initial_incoming(session, incoming)
        logger.info(f"[{tx.currency_code}] cash-out deposit address issued for {tx.tx_id}")
        return address

    async def dispense_ack(self, session: Session, rec: Dict[str, Any]) -> None:
        """Record bills dispensed for a cash-out."""
        await self.persistence.add_dispense(
            session, rec.get("tx") or {}, list(rec.get("cartridges") or [])
        )

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def verify_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call(self.state.id_verifier, "id_verifier", "verify_user", data)

    async def verify_tx(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call(
            self.state.id_verifier, "id_verifier", "verify_transaction", data
        )

    async def check_address(self, address: str) -> Dict[str, Any]:
        return await self._call(self.state.info, "info", "check_address", address)

    # ------------------------------------------------------------------
    # Cached market data
    # ------------------------------------------------------------------

    def fiat_balance(self, currency_code: str) -> Optional[Decimal]:
        return self.market_data.fiat_balance(currency_code)

    def get_device_rate(self, currency_code: str) -> Optional[RateSnapshot]:
        return self.market_data.get_device_rate(currency_code)

    def get_balance(self, currency_code: str) -> Optional[Decimal]:
        return self.market_data.get_balance(currency_code)

    def currency_codes(self) -> List[str]:
        return self.state.currency_codes


__all__ = [
    "KioskService",
]
