"""Health check endpoint."""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import PlainTextResponse

from txwatch.api.deps import get_chain_registry
from txwatch.exceptions import TxWatchError
from txwatch.services.chains import ChainClientRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/status", tags=["Health"])


@router.get("/healthz", response_class=PlainTextResponse)
async def healthz(registry: ChainClientRegistry = Depends(get_chain_registry)):
    """Healthy when every configured chain endpoint answers."""
    for name, client in registry.items():
        try:
            await client.chain_id()
        except TxWatchError as e:
            logger.warning(f"Health check: chain {name} unreachable: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=str(e)
            )
    return "healthy"
