"""Transaction record store backed by SQLAlchemy."""
import logging
from typing import Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from txwatch.exceptions import TxWatchError, TransactionNotFoundError
from txwatch.models.transaction import Transaction, TxState, ensure_transition, state_fields
from txwatch.schemas.common import PageParams
from txwatch.schemas.transaction import TransactionCreate

logger = logging.getLogger(__name__)


class TransactionStore:
    """
    Engine-facing operations on transaction records.

    Methods flush but never commit; the caller owns the unit of work.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_monitored(self) -> List[Transaction]:
        """Sweep candidates: monitored and not yet reviewed."""
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.monitoring.is_(True))
            .where(Transaction.reviewed.is_(False))
        )
        txs = list(result.scalars().all())
        logger.debug(f"Found {len(txs)} monitored transactions")
        return txs

    async def get(self, txid: str) -> Optional[Transaction]:
        """Get a record by hash, bypassing stale identity-map copies."""
        return await self.db.get(Transaction, txid, populate_existing=True)

    async def require(self, txid: str) -> Transaction:
        tx = await self.get(txid)
        if tx is None:
            raise TransactionNotFoundError(txid)
        return tx

    async def create(self, data: TransactionCreate) -> Transaction:
        """Insert a new record in the CREATED state."""
        if await self.get(data.id) is not None:
            raise TxWatchError(f"transaction {data.id} already exists")

        tx = Transaction(
            id=data.id,
            chain=data.chain,
            tx_metadata=dict(data.metadata),
            state=TxState.CREATED,
            monitoring=True,
            pending=False,
            checks=0,
            success=False,
            reviewed=False,
            error="",
        )
        self.db.add(tx)
        await self.db.flush()

        logger.info(f"Transaction {tx.id} registered on chain {tx.chain}")
        return tx

    async def update_fields(self, txid: str, fields: Dict[str, object]) -> None:
        """Partial update of a single record."""
        result = await self.db.execute(
            update(Transaction)
            .where(Transaction.id == txid)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise TransactionNotFoundError(txid)

    async def set_reviewed(self, txid: str, reviewed: bool) -> Transaction:
        """Set the reviewed flag and return the current record."""
        tx = await self.require(txid)
        if tx.reviewed == reviewed:
            return tx
        await self.update_fields(txid, {"reviewed": reviewed})
        return await self.require(txid)

    async def find(self, criteria: Dict[str, object], page: PageParams) -> List[Transaction]:
        """
        Equality filter over record columns, one page at a time.

        ``metadata`` criteria match key by key inside the JSON column.
        """
        criteria = dict(criteria)
        metadata = criteria.pop("metadata", None) or {}

        query = select(Transaction)
        for field, value in criteria.items():
            query = query.where(getattr(Transaction, field) == value)
        for key, value in metadata.items():
            query = query.where(Transaction.tx_metadata[key].as_string() == value)

        query = (
            query.order_by(Transaction.created_at.asc(), Transaction.id.asc())
            .offset(page.offset)
            .limit(page.page_size)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def resume_monitoring(self, txid: str) -> Transaction:
        """Put an errored or abandoned record back into the sweep."""
        tx = await self.require(txid)
        previous = tx.state
        ensure_transition(previous, TxState.CREATED)
        await self.update_fields(txid, state_fields(TxState.CREATED))

        logger.info(f"Transaction {txid} resumed monitoring from {previous.value}")
        return await self.require(txid)
