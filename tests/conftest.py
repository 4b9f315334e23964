"""
KIOSK Test Configuration
========================

Pytest fixtures and configuration for KIOSK platform tests.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.kiosk_core.models import Session, Transaction

from kiosk_prime.core.config_manager import KioskConfig
from kiosk_prime.core.event_bus import EventBus
from kiosk_prime.core.plugin_base import TraderPlugin, WalletPlugin, TickerPlugin
from kiosk_prime.core.state import KioskState
from kiosk_prime.services.market_data import MarketDataPoller
from kiosk_prime.services.persistence import MemoryStore


class FakeClock:
    """Manually advanced clock for time-dependent tests."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def make_wallet(balances=None, tx_hash="txhash_1"):
    """Wallet plugin mock with async operations."""
    wallet = MagicMock(spec=WalletPlugin)
    wallet.display_name = "MockWallet"
    wallet.balance = AsyncMock(return_value=balances or {"BTC": 200000000})
    wallet.send = AsyncMock(return_value=tx_hash)
    wallet.new_address = AsyncMock(return_value="deposit_addr_1")
    return wallet


def make_ticker(ask="10000", bid="9900", fiat="USD"):
    """Ticker plugin mock quoting a single fiat currency."""
    ticker = MagicMock(spec=TickerPlugin)
    ticker.display_name = "MockTicker"
    ticker.quote = AsyncMock(return_value={fiat: {"ask": ask, "bid": bid}})
    return ticker


def make_trader():
    """Trader plugin mock."""
    trader = MagicMock(spec=TraderPlugin)
    trader.display_name = "MockTrader"
    trader.purchase = AsyncMock(return_value={"order_id": "o1"})
    trader.sell = AsyncMock(return_value={"order_id": "o2"})
    return trader


@pytest.fixture
def raw_config():
    """Paper configuration as a raw mapping."""
    return {
        "settings": {
            "currency": "USD",
            "coins": ["BTC", "ETH"],
            "commission": "1.05",
            "low_balance_margin": "1.5",
            "transaction_fee": 1000,
            "trade_interval_sec": 60,
            "cartridges": [20, 50],
            "virtual_cartridges": [100],
        },
        "plugins": {
            "current": {
                "ticker": "paper",
                "wallet": "paper",
                "trader": "paper",
                "id_verifier": "paper_compliance",
                "info": "paper_compliance",
                "notify": {"log": "log"},
            },
            "settings": {
                "paper": {
                    "rates": {
                        "BTC": {"USD": {"ask": "10000", "bid": "9900"}},
                        "ETH": {"USD": {"ask": "2500", "bid": "2450"}},
                    },
                    "balances": {"BTC": 200000000, "ETH": 10 ** 18},
                    "min_order": 100,
                },
            },
        },
    }


@pytest.fixture
def kiosk_config(raw_config):
    """Parsed paper configuration."""
    return KioskConfig.from_dict(raw_config)


@pytest.fixture
def event_bus():
    """Create an event bus for testing."""
    return EventBus()


@pytest.fixture
def clock():
    """Manually advanced clock."""
    return FakeClock()


@pytest.fixture
def store(clock):
    """In-memory persistence on the fake clock."""
    return MemoryStore(cartridge_counts=[10, 20], clock=clock)


@pytest.fixture
def state(kiosk_config):
    """Kiosk state with BTC and ETH contexts and mock plugins for BTC."""
    state = KioskState(kiosk_config)
    btc = state.ensure_context("BTC")
    btc.ticker = make_ticker()
    btc.wallet = make_wallet()
    btc.trader = make_trader()
    state.ensure_context("ETH")
    return state


@pytest.fixture
def poller(state, event_bus):
    """Market data poller over the test state."""
    return MarketDataPoller(state, event_bus)


@pytest.fixture
def session():
    """Device session."""
    return Session(fingerprint="fp:01", session_id="sess-1")


@pytest.fixture
def outgoing_tx():
    """Outgoing BTC transaction for the test session."""
    return Transaction(
        tx_id="sess-1",
        currency_code="BTC",
        fiat_currency="USD",
        crypto_amount=50000,
        to_address="1CustomerAddr",
        fiat=Decimal("5"),
    )
