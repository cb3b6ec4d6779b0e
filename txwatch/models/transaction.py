"""Transaction record model and lifecycle state machine."""
import enum
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import String, Enum, DateTime, Text, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from txwatch.database import Base
from txwatch.exceptions import InvalidTransitionError

ABANDONED_ERROR = "exceeded checks threshold"
FAILURE_ERROR = "failure"


class TxState(str, enum.Enum):
    """
    Transaction lifecycle.

    CREATED and PENDING are monitored; everything else takes the record out of
    the sweep. ERRORED and ABANDONED can be put back into CREATED by an
    explicit resume; an ERRORED record can also be checked again directly.
    """
    CREATED = "CREATED"
    PENDING = "PENDING"
    CONFIRMED_SUCCESS = "CONFIRMED_SUCCESS"
    CONFIRMED_FAILURE = "CONFIRMED_FAILURE"
    ERRORED = "ERRORED"
    ABANDONED = "ABANDONED"


# Persisted flags for each state: (monitoring, pending, success)
STATE_FLAGS = {
    TxState.CREATED: (True, False, False),
    TxState.PENDING: (True, True, False),
    TxState.CONFIRMED_SUCCESS: (False, False, True),
    TxState.CONFIRMED_FAILURE: (False, False, False),
    TxState.ERRORED: (False, False, False),
    TxState.ABANDONED: (False, False, False),
}

# Error text written with the state; None leaves the stored error untouched
STATE_ERRORS = {
    TxState.CONFIRMED_SUCCESS: "",
    TxState.CONFIRMED_FAILURE: FAILURE_ERROR,
    TxState.ABANDONED: ABANDONED_ERROR,
}

_PASS_OUTCOMES = [
    TxState.PENDING,
    TxState.CONFIRMED_SUCCESS,
    TxState.CONFIRMED_FAILURE,
    TxState.ERRORED,
    TxState.ABANDONED,
]

VALID_TRANSITIONS = {
    TxState.CREATED: _PASS_OUTCOMES,
    TxState.PENDING: _PASS_OUTCOMES,
    TxState.CONFIRMED_SUCCESS: [],  # Terminal state
    TxState.CONFIRMED_FAILURE: [],  # Terminal state
    # Re-checked on demand, or resumed into the sweep
    TxState.ERRORED: _PASS_OUTCOMES + [TxState.CREATED],
    TxState.ABANDONED: [TxState.CREATED],  # Resume monitoring
}


def ensure_transition(current: TxState, target: TxState) -> None:
    """Raise InvalidTransitionError unless current -> target is allowed."""
    if target not in VALID_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Invalid transition from {current.value} to {target.value}"
        )


def ensure_checkable(current: TxState) -> None:
    """Raise InvalidTransitionError unless a monitoring pass may run from this state."""
    if not set(_PASS_OUTCOMES) <= set(VALID_TRANSITIONS[current]):
        raise InvalidTransitionError(
            f"Transaction in {current.value} cannot be checked"
        )


def state_fields(state: TxState, error: Optional[str] = None) -> Dict[str, object]:
    """
    Derive the persisted columns for a state.

    ``error`` is only used by states without a fixed error text (ERRORED);
    states that neither define nor receive one leave the column untouched.
    """
    monitoring, pending, success = STATE_FLAGS[state]
    fields: Dict[str, object] = {
        "state": state,
        "monitoring": monitoring,
        "pending": pending,
        "success": success,
    }
    fixed_error = STATE_ERRORS.get(state)
    if fixed_error is not None:
        fields["error"] = fixed_error
    elif error is not None:
        fields["error"] = error
    return fields


class Transaction(Base):
    """Monitored chain transaction, keyed by its hash."""
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(66), primary_key=True)
    chain: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    # "metadata" is reserved on declarative classes
    tx_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)

    # Lifecycle
    state: Mapped[TxState] = mapped_column(Enum(TxState), nullable=False, default=TxState.CREATED, index=True)
    monitoring: Mapped[bool] = mapped_column(default=True)
    pending: Mapped[bool] = mapped_column(default=False)
    checks: Mapped[int] = mapped_column(default=0)
    success: Mapped[bool] = mapped_column(default=False)
    reviewed: Mapped[bool] = mapped_column(default=False)
    error: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_transactions_monitoring_reviewed", "monitoring", "reviewed"),
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.id} chain={self.chain} state={self.state} checks={self.checks}>"
