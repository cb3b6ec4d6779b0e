"""Business logic services."""
from txwatch.services.store import TransactionStore
from txwatch.services.chains import BaseChainClient, Web3ChainClient, ChainClientRegistry
from txwatch.services.policy import PassOutcome, apply_checks_threshold, read_checks_threshold
from txwatch.services.monitor import TransactionMonitor
from txwatch.services.watcher import TransactionWatcher, StoreHealthChecker

__all__ = [
    "TransactionStore",
    "BaseChainClient",
    "Web3ChainClient",
    "ChainClientRegistry",
    "PassOutcome",
    "apply_checks_threshold",
    "read_checks_threshold",
    "TransactionMonitor",
    "TransactionWatcher",
    "StoreHealthChecker",
]
