"""Checks threshold (abandonment) policy."""
import logging
import os
from dataclasses import dataclass
from typing import Optional

from txwatch.models.transaction import TxState

logger = logging.getLogger(__name__)

CHECKS_THRESHOLD_ENV = "CHECKS_THRESHOLD"

# Last unusable CHECKS_THRESHOLD value warned about
_NOT_WARNED = object()
_warned_value = _NOT_WARNED


@dataclass(frozen=True)
class PassOutcome:
    """Result of one state machine pass, before it is persisted."""
    state: TxState
    error: Optional[str] = None


def read_checks_threshold() -> Optional[int]:
    """
    Read CHECKS_THRESHOLD from the environment.

    Read on every call so the threshold can be changed on a live process.
    Returns None (abandonment disabled) when unset or not an integer. The
    warning for an unusable value is logged once until the value changes.
    """
    global _warned_value

    raw = os.environ.get(CHECKS_THRESHOLD_ENV)
    try:
        threshold = int(raw)
    except (TypeError, ValueError):
        if raw != _warned_value:
            logger.warning(f"{CHECKS_THRESHOLD_ENV}={raw!r} is not an integer, abandonment disabled")
            _warned_value = raw
        return None

    _warned_value = _NOT_WARNED
    return threshold


def apply_checks_threshold(
    outcome: PassOutcome,
    checks: int,
    threshold: Optional[int] = None,
) -> PassOutcome:
    """
    Abandon a transaction that has been checked more than the threshold.

    Abandonment wins over whatever the chain reported in the same pass,
    including a confirmed success.
    """
    if threshold is None:
        threshold = read_checks_threshold()
    if threshold is None:
        return outcome

    if checks > threshold:
        if outcome.state != TxState.ABANDONED:
            logger.info(
                f"Abandoning transaction after {checks} checks "
                f"(threshold {threshold}, observed {outcome.state.value})"
            )
        return PassOutcome(state=TxState.ABANDONED)
    return outcome
