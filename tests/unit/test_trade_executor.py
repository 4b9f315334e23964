"""
Tests for KIOSK PRIME Trade Executor
====================================

Tests consolidation into one purchase and the retry/drop policy.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from shared.kiosk_core.exceptions import OrderTooSmallError, TradeExecutionError

from kiosk_prime.core.event_bus import EventType
from kiosk_prime.services.trade_executor import TradeExecutor


@pytest.fixture
def executor(state, poller, event_bus):
    """Trade executor over the test state."""
    return TradeExecutor(state, poller, event_bus)


class TestEnqueue:
    """Tests for enqueue_trade."""

    def test_queued_when_trader_present(self, executor, state, event_bus):
        """Intents should land in the currency queue."""
        assert executor.enqueue_trade("BTC", "USD", 100) is True

        assert len(state.context("BTC").queue) == 1
        assert event_bus.get_history(EventType.TRADE_QUEUED)[-1].data["crypto_amount"] == 100

    def test_not_queued_without_trader(self, executor, state):
        """Without a trader nothing is queued."""
        assert executor.enqueue_trade("ETH", "USD", 100) is False
        assert len(state.context("ETH").queue) == 0

    def test_unknown_currency(self, executor):
        """Unknown currencies are ignored."""
        assert executor.enqueue_trade("LTC", "USD", 100) is False


class TestExecute:
    """Tests for execute_trades."""

    @pytest.mark.asyncio
    async def test_single_consolidated_purchase(self, executor, state):
        """Intents [100, 250, 0, 650] should produce exactly one purchase of 1000."""
        for amount in (100, 250, 0, 650):
            executor.enqueue_trade("BTC", "USD", amount)

        trade = await executor.execute_trades("BTC")

        trader = state.trader("BTC")
        trader.purchase.assert_awaited_once_with(1000, {"currency_code": "BTC", "fiat": "USD"})
        assert trade.crypto_amount == 1000
        assert state.context("BTC").queue.is_empty

    @pytest.mark.asyncio
    async def test_empty_queue_no_purchase(self, executor, state):
        """An empty queue should not call the trader."""
        assert await executor.execute_trades("BTC") is None
        state.trader("BTC").purchase.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_zero_sum_no_purchase(self, executor, state):
        """Intents summing to zero should not call the trader."""
        executor.enqueue_trade("BTC", "USD", 0)

        assert await executor.execute_trades("BTC") is None
        state.trader("BTC").purchase.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_balance_refreshed_after_success(self, executor, state, event_bus):
        """A successful trade should refresh the balance and publish."""
        executor.enqueue_trade("BTC", "USD", 500)

        await executor.execute_trades("BTC")

        state.wallet("BTC").balance.assert_awaited_once()
        assert event_bus.get_history(EventType.TRADE_EXECUTED)[-1].data["crypto_amount"] == 500

    @pytest.mark.asyncio
    async def test_failure_requeues_full_amount(self, executor, state, event_bus):
        """A transient failure should requeue the whole sum for the next tick."""
        state.trader("BTC").purchase = AsyncMock(side_effect=TradeExecutionError("venue down"))
        executor.enqueue_trade("BTC", "USD", 100)
        executor.enqueue_trade("BTC", "USD", 250)

        assert await executor.execute_trades("BTC") is None

        queue = state.context("BTC").queue
        assert len(queue) == 1
        assert queue.drain().crypto_amount == 350
        assert executor.get_stats()["trades_requeued"] == 1
        assert event_bus.get_history(EventType.TRADE_REQUEUED)

    @pytest.mark.asyncio
    async def test_requeued_amount_retried_next_tick(self, executor, state):
        """The next tick should buy the requeued sum plus anything new."""
        trader = state.trader("BTC")
        trader.purchase = AsyncMock(side_effect=[ConnectionError("reset"), {"order_id": "o"}])
        executor.enqueue_trade("BTC", "USD", 300)

        await executor.execute_trades("BTC")
        executor.enqueue_trade("BTC", "USD", 50)
        await executor.execute_trades("BTC")

        assert trader.purchase.await_args_list[-1].args[0] == 350

    @pytest.mark.asyncio
    async def test_order_too_small_dropped_with_audit(self, executor, state, event_bus):
        """orderTooSmall should drop the trade, audit it and publish."""
        state.trader("BTC").purchase = AsyncMock(side_effect=OrderTooSmallError("min 1000"))
        executor.enqueue_trade("BTC", "USD", 20)

        assert await executor.execute_trades("BTC") is None

        assert state.context("BTC").queue.is_empty
        assert len(executor.audit_log) == 1
        record = executor.audit_log[0]
        assert record.reason == "orderTooSmall"
        assert record.crypto_amount == 20

        dropped = event_bus.get_history(EventType.TRADE_DROPPED)
        assert dropped[-1].data["crypto_amount"] == 20

    @pytest.mark.asyncio
    async def test_trader_removed_before_tick(self, executor, state):
        """A tick after the trader is unloaded does nothing."""
        executor.enqueue_trade("BTC", "USD", 100)
        state.context("BTC").trader = None

        assert await executor.execute_trades("BTC") is None


class TestConcurrentTicks:
    """Enqueues and cancellation while a purchase is suspended."""

    @pytest.fixture
    def gate(self, state):
        """BTC trader whose first purchase waits on an event."""
        release = asyncio.Event()
        started = asyncio.Event()
        calls = []

        async def purchase(crypto_amount, opts):
            calls.append(crypto_amount)
            if len(calls) == 1:
                started.set()
                await release.wait()
            return {"order_id": f"o{len(calls)}"}

        state.trader("BTC").purchase = AsyncMock(side_effect=purchase)
        return started, release, calls

    @pytest.mark.asyncio
    async def test_enqueue_while_purchasing(self, executor, gate):
        """Intents added mid-purchase belong to the next tick only."""
        started, release, calls = gate
        executor.enqueue_trade("BTC", "USD", 1000)

        tick = asyncio.create_task(executor.execute_trades("BTC"))
        await started.wait()
        executor.enqueue_trade("BTC", "USD", 200)
        executor.enqueue_trade("BTC", "USD", 75)
        release.set()

        assert (await tick).crypto_amount == 1000
        assert (await executor.execute_trades("BTC")).crypto_amount == 275
        assert calls == [1000, 275]
        assert await executor.execute_trades("BTC") is None

    @pytest.mark.asyncio
    async def test_cancelled_purchase_requeued(self, executor, state, gate):
        """Cancelling a tick mid-purchase puts the drained sum back and re-raises."""
        started, _, calls = gate
        executor.enqueue_trade("BTC", "USD", 400)
        executor.enqueue_trade("BTC", "USD", 600)

        tick = asyncio.create_task(executor.execute_trades("BTC"))
        await started.wait()
        tick.cancel()

        with pytest.raises(asyncio.CancelledError):
            await tick

        queue = state.context("BTC").queue
        assert [i.crypto_amount for i in queue.snapshot()] == [1000]
        assert executor.get_stats()["trades_requeued"] == 1

        assert (await executor.execute_trades("BTC")).crypto_amount == 1000
        assert calls == [1000, 1000]

    @pytest.mark.asyncio
    async def test_failure_after_trader_removed_not_requeued(self, executor, state, event_bus):
        """A purchase failing after its trader was removed is audited, never requeued."""
        release = asyncio.Event()
        started = asyncio.Event()

        async def purchase(crypto_amount, opts):
            started.set()
            await release.wait()
            raise ConnectionError("venue gone")

        state.trader("BTC").purchase = AsyncMock(side_effect=purchase)
        executor.enqueue_trade("BTC", "USD", 800)

        tick = asyncio.create_task(executor.execute_trades("BTC"))
        await started.wait()
        state.context("BTC").trader = None
        release.set()

        assert await tick is None
        assert state.context("BTC").queue.is_empty
        assert executor.audit_log[-1].reason == "traderRemoved"
        assert event_bus.get_history(EventType.TRADE_DROPPED)[-1].data["crypto_amount"] == 800
