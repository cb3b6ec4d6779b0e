"""Database models package."""
from txwatch.models.transaction import (
    Transaction,
    TxState,
    STATE_FLAGS,
    VALID_TRANSITIONS,
    ABANDONED_ERROR,
    FAILURE_ERROR,
    ensure_checkable,
    ensure_transition,
    state_fields,
)

__all__ = [
    "Transaction",
    "TxState",
    "STATE_FLAGS",
    "VALID_TRANSITIONS",
    "ABANDONED_ERROR",
    "FAILURE_ERROR",
    "ensure_checkable",
    "ensure_transition",
    "state_fields",
]
