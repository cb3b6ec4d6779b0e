"""Tests for the per-record monitoring pass and the concurrent sweep."""
import logging

import pytest
from sqlalchemy.exc import OperationalError

from txwatch.exceptions import ChainClientNotFoundError, InvalidTransitionError, TransactionNotFoundError
from txwatch.models import ABANDONED_ERROR, FAILURE_ERROR, TxState
from txwatch.services.chains import ChainClientRegistry
from txwatch.services.monitor import TransactionMonitor
from tests.conftest import FakeChainClient, add_transaction, load_transaction, tx_hash


class TestCheckTransaction:
    """One state machine pass for a single record."""

    @pytest.mark.asyncio
    async def test_confirmed_success(self, session_maker, monitor):
        tx = await add_transaction(session_maker, tx_hash(1), error="stale")

        state = await monitor.check_transaction(tx)

        assert state == TxState.CONFIRMED_SUCCESS
        stored = await load_transaction(session_maker, tx_hash(1))
        assert stored.checks == 1
        assert stored.success is True
        assert stored.pending is False
        assert stored.monitoring is False
        assert stored.error == ""

    @pytest.mark.asyncio
    async def test_confirmed_failure(self, session_maker, eth_client, monitor):
        eth_client.status = 0
        tx = await add_transaction(session_maker, tx_hash(1))

        state = await monitor.check_transaction(tx)

        assert state == TxState.CONFIRMED_FAILURE
        stored = await load_transaction(session_maker, tx_hash(1))
        assert stored.success is False
        assert stored.monitoring is False
        assert stored.error == FAILURE_ERROR

    @pytest.mark.asyncio
    async def test_pending_keeps_monitoring(self, session_maker, eth_client, monitor):
        eth_client.pending = True
        tx = await add_transaction(session_maker, tx_hash(1), error="earlier problem")

        state = await monitor.check_transaction(tx)

        assert state == TxState.PENDING
        stored = await load_transaction(session_maker, tx_hash(1))
        assert stored.pending is True
        assert stored.monitoring is True
        assert stored.checks == 1
        # Pending passes do not touch the error text
        assert stored.error == "earlier problem"
        assert eth_client.receipt_calls == []

    @pytest.mark.asyncio
    async def test_lookup_error(self, session_maker, eth_client, monitor):
        eth_client.tx_error = "not found"
        tx = await add_transaction(session_maker, tx_hash(1))

        state = await monitor.check_transaction(tx)

        assert state == TxState.ERRORED
        stored = await load_transaction(session_maker, tx_hash(1))
        assert stored.monitoring is False
        assert stored.error == "not found"
        assert stored.checks == 1

    @pytest.mark.asyncio
    async def test_receipt_error(self, session_maker, eth_client, monitor):
        eth_client.receipt_error = "receipt unavailable"
        tx = await add_transaction(session_maker, tx_hash(1))

        state = await monitor.check_transaction(tx)

        assert state == TxState.ERRORED
        stored = await load_transaction(session_maker, tx_hash(1))
        assert stored.error == "receipt unavailable"

    @pytest.mark.asyncio
    async def test_abandoned_over_threshold(self, session_maker, eth_client, monitor):
        """Abandonment wins even over a confirmed success."""
        tx = await add_transaction(session_maker, tx_hash(1), checks=5)

        state = await monitor.check_transaction(tx)

        assert state == TxState.ABANDONED
        stored = await load_transaction(session_maker, tx_hash(1))
        assert stored.checks == 6
        assert stored.monitoring is False
        assert stored.success is False
        assert stored.error == ABANDONED_ERROR

    @pytest.mark.asyncio
    @pytest.mark.parametrize("checks", [3, 4])
    async def test_not_abandoned_up_to_threshold(self, session_maker, eth_client, monitor, checks):
        eth_client.pending = True
        tx = await add_transaction(session_maker, tx_hash(1), checks=checks)

        state = await monitor.check_transaction(tx)

        assert state == TxState.PENDING
        stored = await load_transaction(session_maker, tx_hash(1))
        assert stored.checks == checks + 1

    @pytest.mark.asyncio
    async def test_threshold_changed_at_runtime(self, session_maker, eth_client, monitor, monkeypatch):
        eth_client.pending = True
        tx = await add_transaction(session_maker, tx_hash(1), checks=1)
        monkeypatch.setenv("CHECKS_THRESHOLD", "1")

        state = await monitor.check_transaction(tx)

        assert state == TxState.ABANDONED

    @pytest.mark.asyncio
    async def test_unknown_chain(self, session_maker, eth_client, monitor):
        tx = await add_transaction(session_maker, tx_hash(1), chain="unknown")

        with pytest.raises(ChainClientNotFoundError):
            await monitor.check_transaction(tx)

        stored = await load_transaction(session_maker, tx_hash(1))
        assert stored.checks == 1
        assert stored.state == TxState.CREATED
        assert stored.monitoring is True
        assert eth_client.tx_calls == []

    @pytest.mark.asyncio
    async def test_terminal_record_is_not_checked_again(self, session_maker, eth_client, monitor):
        tx = await add_transaction(
            session_maker, tx_hash(1),
            state=TxState.CONFIRMED_SUCCESS, monitoring=False, success=True,
        )

        with pytest.raises(InvalidTransitionError):
            await monitor.check_transaction(tx)

        # Rejected before any chain call, and the pass is not counted
        assert eth_client.tx_calls == []
        assert (await load_transaction(session_maker, tx_hash(1))).checks == 0

    @pytest.mark.asyncio
    async def test_errored_record_rechecked(self, session_maker, eth_client, monitor):
        await add_transaction(
            session_maker, tx_hash(1),
            state=TxState.ERRORED, monitoring=False, error="boom", checks=2,
        )

        tx = await monitor.check_by_id(tx_hash(1))

        assert tx.state == TxState.CONFIRMED_SUCCESS
        assert tx.checks == 3
        assert tx.success is True
        assert tx.error == ""
        assert eth_client.tx_calls == [tx_hash(1)]

    @pytest.mark.asyncio
    async def test_errored_record_still_failing(self, session_maker, eth_client, monitor):
        eth_client.tx_error = "connection refused"
        await add_transaction(
            session_maker, tx_hash(1),
            state=TxState.ERRORED, monitoring=False, error="boom", checks=2,
        )

        tx = await monitor.check_by_id(tx_hash(1))

        assert tx.state == TxState.ERRORED
        assert tx.checks == 3
        assert tx.error == "connection refused"
        assert tx.monitoring is False

    @pytest.mark.asyncio
    async def test_check_by_id(self, session_maker, monitor):
        await add_transaction(session_maker, tx_hash(1))

        tx = await monitor.check_by_id(tx_hash(1))

        assert tx.state == TxState.CONFIRMED_SUCCESS
        assert tx.checks == 1

    @pytest.mark.asyncio
    async def test_check_by_id_unknown(self, monitor):
        with pytest.raises(TransactionNotFoundError):
            await monitor.check_by_id(tx_hash(404))


class TestSweep:
    """Concurrent sweep over all monitored, unreviewed records."""

    @pytest.mark.asyncio
    async def test_empty_sweep(self, monitor, eth_client):
        assert await monitor.run_sweep() == 0
        assert eth_client.tx_calls == []

    @pytest.mark.asyncio
    async def test_each_record_checked_exactly_once(self, session_maker, eth_client, monitor):
        eth_client.pending = True
        hashes = [tx_hash(n) for n in range(25)]
        for h in hashes:
            await add_transaction(session_maker, h)

        processed = await monitor.run_sweep()

        assert processed == 25
        assert sorted(eth_client.tx_calls) == sorted(hashes)
        for h in hashes:
            stored = await load_transaction(session_maker, h)
            assert stored.checks == 1
            assert stored.state == TxState.PENDING

    @pytest.mark.asyncio
    async def test_excluded_records_untouched(self, session_maker, eth_client, monitor):
        await add_transaction(session_maker, tx_hash(1))
        await add_transaction(session_maker, tx_hash(2), reviewed=True)
        await add_transaction(
            session_maker, tx_hash(3),
            state=TxState.ERRORED, monitoring=False, error="boom", checks=2,
        )

        processed = await monitor.run_sweep()

        assert processed == 1
        assert eth_client.tx_calls == [tx_hash(1)]
        reviewed = await load_transaction(session_maker, tx_hash(2))
        assert reviewed.checks == 0
        assert reviewed.state == TxState.CREATED
        errored = await load_transaction(session_maker, tx_hash(3))
        assert errored.checks == 2
        assert errored.error == "boom"

    @pytest.mark.asyncio
    async def test_unknown_chain_does_not_stop_sweep(self, session_maker, eth_client, monitor):
        await add_transaction(session_maker, tx_hash(1), chain="unknown")
        await add_transaction(session_maker, tx_hash(2))

        processed = await monitor.run_sweep()

        assert processed == 2
        unknown = await load_transaction(session_maker, tx_hash(1))
        assert unknown.checks == 1
        assert unknown.monitoring is True
        known = await load_transaction(session_maker, tx_hash(2))
        assert known.state == TxState.CONFIRMED_SUCCESS

    @pytest.mark.asyncio
    async def test_failed_pass_does_not_stop_sweep(self, session_maker, eth_client, monitor, monkeypatch, caplog):
        await add_transaction(session_maker, tx_hash(1))
        await add_transaction(session_maker, tx_hash(2))
        persist = monitor._persist

        async def flaky_persist(txid, fields):
            if txid == tx_hash(1):
                raise OperationalError("UPDATE transactions", {}, Exception("database is locked"))
            await persist(txid, fields)

        monkeypatch.setattr(monitor, "_persist", flaky_persist)

        with caplog.at_level(logging.ERROR, logger="txwatch.services.monitor"):
            processed = await monitor.run_sweep()

        assert processed == 2
        assert sorted(eth_client.tx_calls) == [tx_hash(1), tx_hash(2)]
        failed = await load_transaction(session_maker, tx_hash(1))
        assert failed.checks == 0
        assert failed.state == TxState.CREATED
        ok = await load_transaction(session_maker, tx_hash(2))
        assert ok.state == TxState.CONFIRMED_SUCCESS
        assert any(tx_hash(1) in record.getMessage() for record in caplog.records)

    @pytest.mark.asyncio
    async def test_records_routed_to_their_chain(self, session_maker):
        mainnet = FakeChainClient("mainnet")
        sepolia = FakeChainClient("sepolia", status=0)
        monitor = TransactionMonitor(
            session_maker, ChainClientRegistry({"mainnet": mainnet, "sepolia": sepolia}), workers=2
        )
        await add_transaction(session_maker, tx_hash(1), chain="mainnet")
        await add_transaction(session_maker, tx_hash(2), chain="sepolia")

        await monitor.run_sweep()

        assert mainnet.tx_calls == [tx_hash(1)]
        assert sepolia.tx_calls == [tx_hash(2)]
        assert (await load_transaction(session_maker, tx_hash(1))).success is True
        assert (await load_transaction(session_maker, tx_hash(2))).error == FAILURE_ERROR

    @pytest.mark.asyncio
    async def test_bounded_concurrency(self, session_maker):
        slow = FakeChainClient("eth", pending=True, delay=0.02)
        monitor = TransactionMonitor(session_maker, ChainClientRegistry({"eth": slow}), workers=3)
        for n in range(10):
            await add_transaction(session_maker, tx_hash(n))

        processed = await monitor.run_sweep()

        assert processed == 10
        assert 1 < slow.max_in_flight <= 3

    @pytest.mark.asyncio
    async def test_stuck_pending_is_abandoned(self, session_maker, eth_client, monitor, monkeypatch):
        monkeypatch.setenv("CHECKS_THRESHOLD", "2")
        eth_client.pending = True
        await add_transaction(session_maker, tx_hash(1))

        for _ in range(2):
            await monitor.run_sweep()
        assert (await load_transaction(session_maker, tx_hash(1))).state == TxState.PENDING

        await monitor.run_sweep()
        stored = await load_transaction(session_maker, tx_hash(1))
        assert stored.state == TxState.ABANDONED
        assert stored.checks == 3
        assert stored.error == ABANDONED_ERROR

        # Out of the sweep from now on
        assert await monitor.run_sweep() == 0
