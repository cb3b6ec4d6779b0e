"""Background loops: periodic sweeps and store liveness checks."""
import asyncio
import logging
import os
from typing import Awaitable, Callable, Optional

from txwatch.services.monitor import TransactionMonitor

logger = logging.getLogger(__name__)


class TransactionWatcher:
    """
    Runs a sweep, sleeps for the configured interval, repeats.

    Sweeps never overlap: the sleep only starts once the previous sweep has
    fully completed.
    """

    def __init__(self, monitor: TransactionMonitor, interval: int = 60):
        self.monitor = monitor
        self.interval = interval
        self._running = False
        self.sweeps = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the sweep loop."""
        self._running = True
        logger.info(f"Transaction watcher started, sweeping every {self.interval}s")

        while self._running:
            try:
                await self.monitor.run_sweep()
            except Exception as e:
                logger.error(f"Transaction sweep failed: {e}", exc_info=True)
            self.sweeps += 1

            await asyncio.sleep(self.interval)

    async def stop(self):
        """Stop the sweep loop."""
        self._running = False
        logger.info("Transaction watcher stopped")


def terminate_process(exc: Exception) -> None:
    """Exit immediately; a lost store is not recoverable."""
    logger.critical(f"Store health check failed, terminating: {exc}")
    logging.shutdown()
    os._exit(1)


class StoreHealthChecker:
    """Pings the store on a fixed interval; any failure is fatal."""

    def __init__(
        self,
        ping: Callable[[], Awaitable[None]],
        interval: int = 10,
        on_failure: Optional[Callable[[Exception], None]] = None,
    ):
        self.ping = ping
        self.interval = interval
        self.on_failure = on_failure or terminate_process
        self._running = False

    async def start(self):
        """Start the liveness loop."""
        self._running = True
        logger.info(f"Store health checker started, interval {self.interval}s")

        while self._running:
            try:
                await self.ping()
            except Exception as e:
                self._running = False
                self.on_failure(e)
                return
            await asyncio.sleep(self.interval)

    async def stop(self):
        """Stop the liveness loop."""
        self._running = False
        logger.info("Store health checker stopped")
