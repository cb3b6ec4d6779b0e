"""Transaction API endpoints."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from txwatch.api.deps import get_monitor, get_transaction_store
from txwatch.database import get_db
from txwatch.exceptions import TxWatchError
from txwatch.schemas.common import PageParams
from txwatch.schemas.transaction import (
    TransactionCreate,
    TransactionFilter,
    TransactionResponse,
    TransactionReview,
)
from txwatch.services.monitor import TransactionMonitor
from txwatch.services.store import TransactionStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Transactions"])


def _bad_request(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/transaction")
async def create_transaction(
    tx_data: TransactionCreate,
    db: AsyncSession = Depends(get_db),
    store: TransactionStore = Depends(get_transaction_store),
):
    """
    Register a transaction for monitoring.

    The record starts in CREATED with monitoring on and zero checks.
    """
    logger.info(f"New transaction request txid={tx_data.id} chain={tx_data.chain}")
    try:
        await store.create(tx_data)
        await db.commit()
    except (TxWatchError, SQLAlchemyError) as e:
        await db.rollback()
        logger.warning(f"Create transaction {tx_data.id} failed: {e}")
        raise _bad_request(e)

    return Response(status_code=status.HTTP_200_OK)


@router.get("/transaction/{txid}", response_model=TransactionResponse)
async def get_transaction(
    txid: str,
    store: TransactionStore = Depends(get_transaction_store),
):
    """Get transaction by hash."""
    try:
        tx = await store.require(txid)
    except (TxWatchError, SQLAlchemyError) as e:
        raise _bad_request(e)
    return TransactionResponse.model_validate(tx)


@router.post("/transaction/{txid}/reviewed", response_model=TransactionResponse)
async def set_reviewed(
    txid: str,
    review: TransactionReview,
    db: AsyncSession = Depends(get_db),
    store: TransactionStore = Depends(get_transaction_store),
):
    """
    Acknowledge a transaction outcome.

    A reviewed record is no longer swept, whatever its monitoring flag says.
    """
    logger.info(f"Set reviewed txid={txid} reviewed={review.reviewed}")
    try:
        tx = await store.set_reviewed(txid, review.reviewed)
        await db.commit()
    except (TxWatchError, SQLAlchemyError) as e:
        await db.rollback()
        raise _bad_request(e)

    return TransactionResponse.model_validate(tx)


@router.post("/transaction/{txid}/check", response_model=TransactionResponse)
async def check_transaction(
    txid: str,
    monitor: TransactionMonitor = Depends(get_monitor),
):
    """Run one monitoring pass for a single transaction right now."""
    try:
        tx = await monitor.check_by_id(txid)
    except (TxWatchError, SQLAlchemyError) as e:
        raise _bad_request(e)
    return TransactionResponse.model_validate(tx)


@router.post("/transaction/{txid}/monitor", response_model=TransactionResponse)
async def resume_monitoring(
    txid: str,
    db: AsyncSession = Depends(get_db),
    store: TransactionStore = Depends(get_transaction_store),
):
    """Put an errored or abandoned transaction back under monitoring."""
    try:
        tx = await store.resume_monitoring(txid)
        await db.commit()
    except (TxWatchError, SQLAlchemyError) as e:
        await db.rollback()
        raise _bad_request(e)
    return TransactionResponse.model_validate(tx)


@router.post("/transactions", response_model=List[TransactionResponse])
async def list_transactions(
    filters: Optional[TransactionFilter] = Body(None),
    page: Optional[str] = Query(None),
    page_size: Optional[str] = Query(None, alias="pageSize"),
    store: TransactionStore = Depends(get_transaction_store),
):
    """
    Find transactions matching a filter object.

    Every field present in the body must match exactly. Results are paginated
    with ``page`` (from 1) and ``pageSize`` (default 10, at most 100).
    """
    page_params = PageParams.from_query(page, page_size)
    criteria = filters.criteria() if filters else {}
    try:
        txs = await store.find(criteria, page_params)
    except SQLAlchemyError as e:
        raise _bad_request(e)

    return [TransactionResponse.model_validate(tx) for tx in txs]
