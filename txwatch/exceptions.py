"""Custom exceptions for the transaction monitor."""

from __future__ import annotations

from typing import Any


class TxWatchError(Exception):
    """Base exception for transaction monitor errors."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConfigurationError(TxWatchError):
    """Invalid startup configuration (endpoint list, timers)."""

    pass


class ChainClientNotFoundError(TxWatchError):
    """No chain client is configured under the requested name."""

    def __init__(self, chain: str):
        super().__init__("blockchain client not found")
        self.chain = chain


class ChainQueryError(TxWatchError):
    """Chain endpoint failed to answer a transaction or receipt query."""

    pass


class TransactionNotFoundError(TxWatchError):
    """Transaction record does not exist in the store."""

    def __init__(self, txid: str):
        super().__init__(f"transaction {txid} not found")
        self.txid = txid


class InvalidTransitionError(TxWatchError):
    """Requested lifecycle transition is not allowed."""

    pass
