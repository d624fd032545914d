"""
Dose Lifecycle Tool
State machine and time windows for dose logs
"""

import logging
from typing import Dict, FrozenSet, Optional, Tuple
from datetime import datetime, timedelta

from config import dose_config
from models import DoseStatus


logger = logging.getLogger(__name__)


GRACE_WINDOW = timedelta(minutes=dose_config.GRACE_WINDOW_MINUTES)
RETRY_WINDOW = timedelta(minutes=dose_config.RETRY_WINDOW_MINUTES)
UPCOMING_HORIZON = timedelta(hours=dose_config.UPCOMING_HORIZON_HOURS)

TERMINAL_STATUSES: FrozenSet[DoseStatus] = frozenset({
    DoseStatus.TAKEN,
    DoseStatus.MISSED,
    DoseStatus.SKIPPED,
})

# Statuses the grace window turns into MISSED
UNRESOLVED_STATUSES: Tuple[DoseStatus, ...] = (DoseStatus.PENDING, DoseStatus.DISPENSED)

ALLOWED_TRANSITIONS: Dict[DoseStatus, FrozenSet[DoseStatus]] = {
    DoseStatus.PENDING: frozenset({
        DoseStatus.DISPENSED, DoseStatus.TAKEN, DoseStatus.MISSED,
        DoseStatus.SKIPPED, DoseStatus.ERROR,
    }),
    DoseStatus.DISPENSED: frozenset({
        DoseStatus.PENDING, DoseStatus.TAKEN, DoseStatus.MISSED, DoseStatus.ERROR,
    }),
    DoseStatus.ERROR: frozenset({
        DoseStatus.PENDING, DoseStatus.DISPENSED, DoseStatus.TAKEN,
        DoseStatus.MISSED, DoseStatus.SKIPPED,
    }),
    DoseStatus.TAKEN: frozenset(),
    DoseStatus.MISSED: frozenset(),
    DoseStatus.SKIPPED: frozenset(),
}

AUTO_MISSED_REASON = "auto: grace window elapsed"


class DoseTransitionError(Exception):
    """Requested status change is not allowed from the current status"""

    def __init__(self, current: DoseStatus, target: DoseStatus):
        self.current = current
        self.target = target
        super().__init__(
            f"Dose is already {DoseStatus(current).value} and cannot be marked {DoseStatus(target).value}"
        )


def is_terminal(status: DoseStatus) -> bool:
    return DoseStatus(status) in TERMINAL_STATUSES


def retry_cutoff(now: datetime) -> datetime:
    """Dispensed doses confirmed no later than this revert to pending"""
    return now - RETRY_WINDOW


def grace_cutoff(now: datetime) -> datetime:
    """Unresolved doses scheduled no later than this become missed"""
    return now - GRACE_WINDOW


def upcoming_window(now: datetime) -> Tuple[datetime, datetime]:
    """[now - grace, now + horizon] window served to devices"""
    return now - GRACE_WINDOW, now + UPCOMING_HORIZON


def dispense_expired(dose, now: datetime) -> bool:
    return (
        DoseStatus(dose.status) == DoseStatus.DISPENSED
        and dose.dispensed_at is not None
        and dose.dispensed_at <= retry_cutoff(now)
    )


def grace_expired(dose, now: datetime) -> bool:
    return (
        DoseStatus(dose.status) in UNRESOLVED_STATUSES
        and dose.scheduled_at <= grace_cutoff(now)
    )


def apply_time_transitions(dose, now: datetime) -> Optional[DoseStatus]:
    """
    In-memory version of the read-time reconciliation.

    Retry decay runs before the grace check so a demoted dose can still be
    caught as missed in the same pass. Returns the new status if changed.
    """
    changed = None
    if dispense_expired(dose, now):
        dose.status = DoseStatus.PENDING
        dose.dispensed_at = None
        changed = DoseStatus.PENDING
    if grace_expired(dose, now):
        dose.status = DoseStatus.MISSED
        dose.missed_reason = AUTO_MISSED_REASON
        changed = DoseStatus.MISSED
    return changed


def transition(dose, target: DoseStatus, now: datetime, reason: Optional[str] = None) -> bool:
    """
    Apply an explicit status change to a dose.

    Returns False when the dose already has the target status (no-op) and
    raises DoseTransitionError when the state machine forbids the change.
    """
    current = DoseStatus(dose.status or DoseStatus.PENDING)
    target = DoseStatus(target)

    if current == target:
        return False
    if target not in ALLOWED_TRANSITIONS[current]:
        raise DoseTransitionError(current, target)

    dose.status = target
    if target == DoseStatus.TAKEN:
        dose.taken_at = now
    elif target == DoseStatus.DISPENSED:
        dose.dispensed_at = now
    elif target == DoseStatus.PENDING:
        dose.dispensed_at = None
    elif target in (DoseStatus.MISSED, DoseStatus.SKIPPED):
        dose.missed_reason = reason
    return True
