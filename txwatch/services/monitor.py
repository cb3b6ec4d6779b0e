"""
Transaction monitor.

Runs the per-record state machine pass and the concurrent sweep that applies
it to every monitored, unreviewed transaction.
"""
import asyncio
import logging
from typing import Dict, List

from sqlalchemy.ext.asyncio import async_sessionmaker

from txwatch.exceptions import ChainClientNotFoundError, ChainQueryError
from txwatch.models.transaction import Transaction, TxState, ensure_checkable, ensure_transition, state_fields
from txwatch.services.chains import ChainClientRegistry
from txwatch.services.policy import PassOutcome, apply_checks_threshold
from txwatch.services.store import TransactionStore

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 10


class TransactionMonitor:
    """Advances transaction records by polling their chains."""

    def __init__(
        self,
        session_maker: async_sessionmaker,
        registry: ChainClientRegistry,
        workers: int = DEFAULT_WORKERS,
    ):
        self.session_maker = session_maker
        self.registry = registry
        self.workers = workers

    async def _persist(self, txid: str, fields: Dict[str, object]) -> None:
        async with self.session_maker() as session:
            await TransactionStore(session).update_fields(txid, fields)
            await session.commit()

    async def _observe(self, tx: Transaction) -> PassOutcome:
        """Ask the chain where the transaction stands."""
        client = self.registry.resolve(tx.chain)

        try:
            _, is_pending = await client.transaction_by_hash(tx.id)
        except ChainQueryError as e:
            logger.warning(f"Transaction {tx.id} lookup failed: {e}")
            return PassOutcome(TxState.ERRORED, error=str(e))

        if is_pending:
            return PassOutcome(TxState.PENDING)

        try:
            receipt = await client.transaction_receipt(tx.id)
        except ChainQueryError as e:
            logger.warning(f"Transaction {tx.id} receipt failed: {e}")
            return PassOutcome(TxState.ERRORED, error=str(e))

        if (receipt.get("status") or 0) > 0:
            return PassOutcome(TxState.CONFIRMED_SUCCESS)
        return PassOutcome(TxState.CONFIRMED_FAILURE)

    async def check_transaction(self, tx: Transaction) -> TxState:
        """
        Run one state machine pass for a record and persist the result.

        The checks counter is always incremented and stored. When the record's
        chain has no configured client nothing else changes and
        ChainClientNotFoundError is raised to the caller. Records in a state
        that takes no further passes are rejected before the chain is queried.
        """
        ensure_checkable(tx.state)
        checks = tx.checks + 1
        logger.debug(f"Checking transaction {tx.id} chain={tx.chain} checks={checks}")

        try:
            outcome = await self._observe(tx)
        except ChainClientNotFoundError:
            await self._persist(tx.id, {"checks": checks})
            raise

        outcome = apply_checks_threshold(outcome, checks)
        ensure_transition(tx.state, outcome.state)

        fields = state_fields(outcome.state, outcome.error)
        fields["checks"] = checks
        await self._persist(tx.id, fields)

        logger.info(f"Transaction {tx.id} checked: {outcome.state.value} (checks={checks})")
        return outcome.state

    async def check_by_id(self, txid: str) -> Transaction:
        """Single-record check outside the sweep; returns the updated record."""
        async with self.session_maker() as session:
            tx = await TransactionStore(session).require(txid)

        await self.check_transaction(tx)

        async with self.session_maker() as session:
            return await TransactionStore(session).require(txid)

    async def _worker(self, worker_id: int, queue: "asyncio.Queue[Transaction]") -> int:
        """Consume records until the queue is drained."""
        processed = 0
        while True:
            try:
                tx = queue.get_nowait()
            except asyncio.QueueEmpty:
                return processed

            try:
                await self.check_transaction(tx)
            except ChainClientNotFoundError as e:
                logger.warning(f"Worker {worker_id}: {e} for transaction {tx.id} (chain={e.chain})")
            except Exception as e:
                # Confined to this record; the sweep carries on
                logger.error(f"Worker {worker_id}: error checking transaction {tx.id}: {e}", exc_info=True)
            finally:
                processed += 1
                queue.task_done()

    async def run_sweep(self) -> int:
        """
        Advance every monitored, unreviewed transaction by one pass.

        Candidates are snapshotted once and queued up front, so each record is
        handled by exactly one worker. Returns once every pass has been
        persisted, with the number of passes run.
        """
        async with self.session_maker() as session:
            candidates: List[Transaction] = await TransactionStore(session).find_monitored()

        if not candidates:
            logger.debug("Sweep: no monitored transactions")
            return 0

        queue: "asyncio.Queue[Transaction]" = asyncio.Queue()
        for tx in candidates:
            queue.put_nowait(tx)

        pool_size = min(self.workers, len(candidates))
        logger.info(f"Sweep: checking {len(candidates)} transactions with {pool_size} workers")

        results = await asyncio.gather(
            *(self._worker(worker_id, queue) for worker_id in range(pool_size))
        )
        await queue.join()

        processed = sum(results)
        logger.info(f"Sweep complete: {processed} transactions checked")
        return processed
