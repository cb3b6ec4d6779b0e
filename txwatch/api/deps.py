"""API dependencies for dependency injection."""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from txwatch.database import get_db
from txwatch.services.chains import ChainClientRegistry
from txwatch.services.monitor import TransactionMonitor
from txwatch.services.store import TransactionStore


def get_chain_registry(request: Request) -> ChainClientRegistry:
    """Registry built at startup."""
    return request.app.state.chain_registry


def get_monitor(request: Request) -> TransactionMonitor:
    """Monitor shared with the background sweep."""
    return request.app.state.monitor


async def get_transaction_store(db: AsyncSession = Depends(get_db)) -> TransactionStore:
    """Get transaction store bound to the request session."""
    return TransactionStore(db)
