"""
Tests for KIOSK PRIME Settlement Engine & Reaper
================================================

Tests exactly-once sends, outcome recording and the timeout sweep.
"""

import asyncio
from dataclasses import replace
from unittest.mock import AsyncMock

import pytest

from shared.kiosk_core.constants import AUTHORITY_MACHINE, AUTHORITY_TIMEOUT
from shared.kiosk_core.exceptions import PluginOperationError, SettlementPersistenceError
from shared.kiosk_core.models import Session, Transaction

from kiosk_prime.core.event_bus import EventType
from kiosk_prime.services.reaper import PendingTransactionReaper
from kiosk_prime.services.settlement import SettlementEngine


@pytest.fixture
def engine(state, store, poller, event_bus):
    """Settlement engine over the in-memory store."""
    return SettlementEngine(state, store, poller, event_bus)


@pytest.fixture
def reaper(state, store, engine, event_bus):
    """Reaper sharing the settlement engine."""
    return PendingTransactionReaper(state, store, engine, event_bus)


async def open_outgoing(store, session, amount, to_address="1CustomerAddr"):
    """Persist an outgoing pending row the way the device flow does."""
    await store.add_outgoing_pending(session, "USD", "BTC", to_address)
    await store.record_bill(session, {"crypto_amount": amount, "to_address": to_address})


class TestExecuteTx:
    """Tests for SettlementEngine.execute_tx."""

    @pytest.mark.asyncio
    async def test_sends_owed_amount(self, engine, state, store, session, outgoing_tx):
        """A fresh claim should send and return 201 with the hash."""
        result = await engine.execute_tx(session, outgoing_tx, AUTHORITY_MACHINE)

        assert result.status_code == 201
        assert result.tx_hash == "txhash_1"
        state.wallet("BTC").send.assert_awaited_once_with("1CustomerAddr", 50000, 1000, "BTC")

        record = store.sends[-1]
        assert (record.sent_amount, record.fee, record.error) == (50000, 1000, None)
        assert record.authority == "machine"

    @pytest.mark.asyncio
    async def test_nothing_owed_returns_204(self, engine, state, session, outgoing_tx):
        """A second claim on the same transaction should not send."""
        await engine.execute_tx(session, outgoing_tx, AUTHORITY_MACHINE)
        result = await engine.execute_tx(session, outgoing_tx, AUTHORITY_MACHINE)

        assert result.status_code == 204
        assert result.tx_hash is None
        assert state.wallet("BTC").send.await_count == 1

    @pytest.mark.asyncio
    async def test_partial_top_up(self, engine, state, session, outgoing_tx):
        """A larger amount on a later claim should send only the difference."""
        await engine.execute_tx(session, outgoing_tx, AUTHORITY_MACHINE)
        await engine.execute_tx(session, replace(outgoing_tx, crypto_amount=80000), AUTHORITY_MACHINE)

        assert state.wallet("BTC").send.await_args.args[1] == 30000

    @pytest.mark.asyncio
    async def test_balance_refreshed_after_send(self, engine, state, session, outgoing_tx):
        """A successful send should refresh the currency balance."""
        await engine.execute_tx(session, outgoing_tx, AUTHORITY_MACHINE)

        state.wallet("BTC").balance.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_send_failure_recorded_and_raised(
        self, engine, state, store, session, outgoing_tx, event_bus
    ):
        """A failed send should record the error with zero sent and raise."""
        state.wallet("BTC").send = AsyncMock(side_effect=ConnectionError("node down"))

        with pytest.raises(PluginOperationError) as exc:
            await engine.execute_tx(session, outgoing_tx, AUTHORITY_MACHINE)

        assert exc.value.operation == "send"
        record = store.sends[-1]
        assert record.sent_amount == 0
        assert record.error == "node down"
        assert record.tx_hash is None
        assert event_bus.get_history(EventType.TX_FAILED)

    @pytest.mark.asyncio
    async def test_failed_claim_not_resent(self, engine, state, session, outgoing_tx):
        """The claim stands after a failure; a retry owes nothing."""
        state.wallet("BTC").send = AsyncMock(side_effect=ConnectionError("node down"))
        with pytest.raises(PluginOperationError):
            await engine.execute_tx(session, outgoing_tx, AUTHORITY_MACHINE)

        result = await engine.execute_tx(session, outgoing_tx, AUTHORITY_MACHINE)

        assert result.status_code == 204
        assert state.wallet("BTC").send.await_count == 1

    @pytest.mark.asyncio
    async def test_no_wallet(self, engine, store, session, outgoing_tx):
        """A currency without a wallet should record the failure and raise."""
        tx = replace(outgoing_tx, currency_code="ETH")

        with pytest.raises(PluginOperationError):
            await engine.execute_tx(session, tx, AUTHORITY_MACHINE)
        assert "No wallet loaded" in store.sends[-1].error

    @pytest.mark.asyncio
    async def test_claim_failure(self, engine, store, session, outgoing_tx):
        """A store that cannot claim should raise SettlementPersistenceError."""
        store.add_outgoing_tx = AsyncMock(side_effect=RuntimeError("db gone"))

        with pytest.raises(SettlementPersistenceError) as exc:
            await engine.execute_tx(session, outgoing_tx, AUTHORITY_MACHINE)
        assert exc.value.tx_id == "sess-1"

    @pytest.mark.asyncio
    async def test_record_failure(self, engine, state, store, session, outgoing_tx):
        """A store that cannot record the outcome should raise after the send."""
        store.sent_coins = AsyncMock(side_effect=RuntimeError("db gone"))

        with pytest.raises(SettlementPersistenceError):
            await engine.execute_tx(session, outgoing_tx, AUTHORITY_MACHINE)
        state.wallet("BTC").send.assert_awaited_once()


class TestConcurrentSettlement:
    """Device request racing the reaper on one transaction."""

    @pytest.mark.asyncio
    async def test_exactly_one_send(self, engine, state, session, outgoing_tx):
        """Concurrent claimants should produce one 201 and one 204."""
        results = await asyncio.gather(
            engine.execute_tx(session, outgoing_tx, AUTHORITY_MACHINE),
            engine.execute_tx(session, outgoing_tx, AUTHORITY_TIMEOUT),
        )

        assert sorted(r.status_code for r in results) == [201, 204]
        state.wallet("BTC").send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reaper_then_device(self, engine, reaper, state, store, session, clock):
        """A device request after the reaper settled should owe nothing."""
        await open_outgoing(store, session, 50000)
        clock.advance(71)

        assert await reaper.reap() == 1

        device_tx = Transaction("sess-1", "BTC", "USD", 50000, "1CustomerAddr")
        result = await engine.execute_tx(session, device_tx, AUTHORITY_MACHINE)

        assert result.status_code == 204
        state.wallet("BTC").send.assert_awaited_once()
        assert store.sends[0].authority == "timeout"


class TestReaper:
    """Tests for PendingTransactionReaper.reap."""

    @pytest.mark.asyncio
    async def test_settles_timed_out_outgoing(self, reaper, state, store, session, clock, event_bus):
        """Outgoing rows older than the pending timeout are settled with timeout authority."""
        await open_outgoing(store, session, 50000)
        clock.advance(71)

        assert await reaper.reap() == 1

        state.wallet("BTC").send.assert_awaited_once_with("1CustomerAddr", 50000, 1000, "BTC")
        assert store.sends[-1].authority == AUTHORITY_TIMEOUT
        assert event_bus.get_history(EventType.TX_REAPED)[-1].data["status_code"] == 201

    @pytest.mark.asyncio
    async def test_young_rows_untouched(self, reaper, state, store, session, clock):
        """Rows younger than the pending timeout are left alone."""
        await open_outgoing(store, session, 50000)
        clock.advance(69)

        assert await reaper.reap() == 0
        state.wallet("BTC").send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_incoming_rows_ignored(self, reaper, state, store, session, outgoing_tx, clock):
        """Incoming deposits are never sent by the reaper."""
        await store.add_initial_incoming(session, replace(outgoing_tx, incoming=True))
        clock.advance(100)

        assert await reaper.reap() == 0
        await reaper.wait_purges()

        state.wallet("BTC").send.assert_not_awaited()
        assert len(await store.pending_txs(0)) == 1

    @pytest.mark.asyncio
    async def test_old_deposits_purged(self, reaper, store, session, outgoing_tx, clock):
        """Deposits older than the deposit timeout are purged."""
        await store.add_initial_incoming(session, replace(outgoing_tx, incoming=True))
        clock.advance(131)

        await reaper.reap()
        await reaper.wait_purges()

        assert await store.pending_txs(0) == []

    @pytest.mark.asyncio
    async def test_send_errors_not_raised(self, reaper, state, store, session, clock):
        """A failing send is logged; the sweep continues with the next row."""
        other = Session("fp:01", "sess-2")
        await open_outgoing(store, session, 50000)
        await open_outgoing(store, other, 70000, "1OtherAddr")
        clock.advance(71)
        state.wallet("BTC").send = AsyncMock(side_effect=[ConnectionError("down"), "txhash_2"])

        assert await reaper.reap() == 1
        assert reaper.get_stats()["errors"] == 1

    @pytest.mark.asyncio
    async def test_stuck_send_does_not_hold_other_rows(self, reaper, state, store, session, clock):
        """A send that never returns leaves the other stale rows free to settle."""
        other = Session("fp:01", "sess-2")
        await open_outgoing(store, session, 50000)
        await open_outgoing(store, other, 70000, "1OtherAddr")
        clock.advance(71)
        release = asyncio.Event()

        async def send(to_address, amount, fee, currency_code):
            if to_address == "1CustomerAddr":
                await release.wait()
            return f"hash_{amount}"

        state.wallet("BTC").send = AsyncMock(side_effect=send)

        sweep = asyncio.create_task(reaper.reap())
        for _ in range(20):
            await asyncio.sleep(0)

        assert not sweep.done()
        assert [(r.session_id, r.tx_hash) for r in store.sends] == [("sess-2", "hash_70000")]

        release.set()
        assert await sweep == 2
        assert {r.session_id for r in store.sends} == {"sess-1", "sess-2"}

    @pytest.mark.asyncio
    async def test_read_errors_not_raised(self, reaper, store):
        """A store read failure is logged and the sweep ends."""
        store.pending_txs = AsyncMock(side_effect=RuntimeError("db gone"))

        assert await reaper.reap() == 0
        await reaper.wait_purges()

    @pytest.mark.asyncio
    async def test_purge_errors_logged(self, reaper, store):
        """A failing purge is counted, not raised."""
        store.remove_old_pending = AsyncMock(side_effect=RuntimeError("db gone"))

        await reaper.reap()
        await reaper.wait_purges()
        await asyncio.sleep(0)

        assert reaper.get_stats()["errors"] == 1
