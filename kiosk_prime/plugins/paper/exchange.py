# KIOSK_FEAT: paper-exchange-001
"""
KIOSK PRIME - Paper Exchange Plugin
===================================

Simulated ticker, trading venue and custodial wallet for development,
demos and tests.

Features:
- Static ask/bid quotes per currency and fiat
- Minimum order size (orders below it fail as orderTooSmall)
- In-memory balances moved by purchases, sales and sends
- Fake deposit addresses and transaction hashes

Settings:
    rates:       {BTC: {USD: {ask: "10000", bid: "9900"}}}
    balances:    {BTC: 200000000}
    min_order:   10000
    address_prefix: "paper1"

Author: KIOSK Development Team
Version: 1.0.0
"""

import hashlib
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from shared.kiosk_core.exceptions import OrderTooSmallError, PluginOperationError

from kiosk_prime.core.plugin_base import TickerPlugin, TraderPlugin, WalletPlugin


class PaperExchange(TickerPlugin, TraderPlugin, WalletPlugin):
    """
    Paper exchange.

    One instance is loaded per (capability, currency), so a ticker and a
    wallet configured as "paper" keep separate state.
    """

    NAME = "Paper Exchange"

    def __init__(self):
        super().__init__()
        self.rates: Dict[str, Dict[str, Dict[str, Decimal]]] = {}
        self.balances: Dict[str, int] = {}
        self.min_order = 0
        self.address_prefix = "paper1"
        self.orders: List[Dict[str, Any]] = []
        self.sends: List[Dict[str, Any]] = []
        self.addresses: List[str] = []

    def configure(self, settings: Dict[str, Any]) -> None:
        self.rates = {
            code.upper(): {
                fiat: {side: Decimal(str(value)) for side, value in quote.items()}
                for fiat, quote in (per_fiat or {}).items()
            }
            for code, per_fiat in (settings.get("rates") or {}).items()
        }
        # Reconfiguration keeps live balances unless new ones are given
        if "balances" in settings:
            self.balances = {
                code.upper(): int(value)
                for code, value in (settings.get("balances") or {}).items()
            }
        self.min_order = int(settings.get("min_order", 0))
        self.address_prefix = settings.get("address_prefix", "paper1")

    # ------------------------------------------------------------------
    # Ticker
    # ------------------------------------------------------------------

    async def quote(self, currencies: List[str], currency_code: str) -> Dict[str, Dict[str, Any]]:
        per_fiat = self.rates.get(currency_code, {})
        quotes = {fiat: dict(per_fiat[fiat]) for fiat in currencies if fiat in per_fiat}

        if not quotes:
            self.record_call(ok=False)
            raise PluginOperationError(
                f"No paper rate for {currency_code} in {currencies}",
                plugin_name=self.display_name,
                operation="quote",
            )

        self.record_call()
        return quotes

    # ------------------------------------------------------------------
    # Trader
    # ------------------------------------------------------------------

    def _order(self, side: str, crypto_amount: int, opts: Dict[str, Any]) -> Dict[str, Any]:
        currency_code = opts.get("currency_code")

        if crypto_amount < self.min_order:
            self.record_call(ok=False)
            raise OrderTooSmallError(
                f"Order of {crypto_amount} is below minimum {self.min_order}",
                currency_code=currency_code,
                crypto_amount=crypto_amount,
            )

        order = {
            "order_id": f"paper_{uuid.uuid4().hex[:12]}",
            "side": side,
            "currency_code": currency_code,
            "fiat": opts.get("fiat"),
            "crypto_amount": crypto_amount,
        }
        self.orders.append(order)
        self.record_call()
        self._logger.info(f"Paper {side}: {crypto_amount} {currency_code}")
        return order

    async def purchase(self, crypto_amount: int, opts: Dict[str, Any]) -> Dict[str, Any]:
        order = self._order("buy", crypto_amount, opts)
        code = order["currency_code"]
        self.balances[code] = self.balances.get(code, 0) + crypto_amount
        return order

    async def sell(self, crypto_amount: int, opts: Dict[str, Any]) -> Dict[str, Any]:
        order = self._order("sell", crypto_amount, opts)
        code = order["currency_code"]
        self.balances[code] = self.balances.get(code, 0) - crypto_amount
        return order

    # ------------------------------------------------------------------
    # Wallet
    # ------------------------------------------------------------------

    async def balance(self) -> Dict[str, int]:
        self.record_call()
        return dict(self.balances)

    async def send(
        self, to_address: str, crypto_amount: int, fee: Optional[int], currency_code: str
    ) -> str:
        total = crypto_amount + (fee or 0)
        available = self.balances.get(currency_code, 0)

        if not to_address:
            self.record_call(ok=False)
            raise PluginOperationError(
                "Missing destination address",
                plugin_name=self.display_name,
                operation="send",
            )

        if total > available:
            self.record_call(ok=False)
            raise PluginOperationError(
                f"Insufficient {currency_code} funds: need {total}, have {available}",
                plugin_name=self.display_name,
                operation="send",
            )

        self.balances[currency_code] = available - total
        tx_hash = hashlib.sha256(
            f"{to_address}:{crypto_amount}:{uuid.uuid4().hex}".encode()
        ).hexdigest()

        self.sends.append({
            "to_address": to_address,
            "crypto_amount": crypto_amount,
            "fee": fee,
            "currency_code": currency_code,
            "tx_hash": tx_hash,
        })
        self.record_call()
        return tx_hash

    async def new_address(self, info: Dict[str, Any]) -> str:
        address = f"{self.address_prefix}{uuid.uuid4().hex[:30]}"
        self.addresses.append(address)
        self.record_call()
        return address


__all__ = [
    "PaperExchange",
]
