"""Main FastAPI application."""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from txwatch import __version__
from txwatch.config import get_settings
from txwatch.database import async_session_maker, init_models, ping
from txwatch.api import transactions_router, health_router
from txwatch.services.chains import ChainClientRegistry
from txwatch.services.monitor import TransactionMonitor
from txwatch.services.watcher import TransactionWatcher, StoreHealthChecker

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

settings = get_settings()

# Background loops
watcher: Optional[TransactionWatcher] = None
health_checker: Optional[StoreHealthChecker] = None
background_tasks: list = []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    global watcher, health_checker

    logger.info("Starting transaction monitor...")

    # Malformed ETH_ENDPOINTS aborts startup
    registry = ChainClientRegistry.from_settings(settings)
    logger.info(f"Configured {len(registry)} chain clients: {', '.join(registry)}")

    if settings.auto_migrate:
        logger.info("Creating database tables")
        await init_models()

    monitor = TransactionMonitor(
        session_maker=async_session_maker,
        registry=registry,
        workers=settings.sweep_workers,
    )
    app.state.chain_registry = registry
    app.state.monitor = monitor

    watcher = TransactionWatcher(monitor, interval=settings.checks_timer)
    health_checker = StoreHealthChecker(ping, interval=settings.healthcheck_interval)
    background_tasks.append(asyncio.create_task(health_checker.start()))
    background_tasks.append(asyncio.create_task(watcher.start()))

    yield

    # Shutdown
    logger.info("Shutting down...")

    if watcher:
        await watcher.stop()
    if health_checker:
        await health_checker.stop()
    for task in background_tasks:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    background_tasks.clear()

    logger.info("Shutdown complete")


app = FastAPI(
    title="txwatch",
    description="Tracks submitted blockchain transactions until they are confirmed, fail or are abandoned.",
    version=__version__,
    lifespan=lifespan,
)


# Errors are returned as plain text carrying the message verbatim
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info(f"Rejected request to {request.url.path}: {exc}")
    return PlainTextResponse(str(exc), status_code=status.HTTP_400_BAD_REQUEST)


# Include routers
app.include_router(transactions_router)
app.include_router(health_router)


def run():
    """Serve the API on the configured port."""
    import uvicorn
    logger.info(f"Listening on :{settings.port}")
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
