from clinic.exceptions import BookingValidationError, InvalidTransition
from clinic.models import Appointment

SCHEDULED = Appointment.STATUS_SCHEDULED
CONFIRMED = Appointment.STATUS_CONFIRMED
IN_PROGRESS = Appointment.STATUS_IN_PROGRESS
COMPLETED = Appointment.STATUS_COMPLETED
CANCELLED = Appointment.STATUS_CANCELLED
NO_SHOW = Appointment.STATUS_NO_SHOW

TRANSITIONS = {
    SCHEDULED: {CONFIRMED, CANCELLED, NO_SHOW},
    CONFIRMED: {IN_PROGRESS, CANCELLED, NO_SHOW},
    IN_PROGRESS: {COMPLETED, NO_SHOW},
    COMPLETED: set(),
    CANCELLED: set(),
    NO_SHOW: set(),
}

TERMINAL = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

# Statuses that still hold their slot
BLOCKING = frozenset(TRANSITIONS) - {CANCELLED}


def can_transition(current: str, new: str) -> bool:
    """Return True if an appointment may move from ``current`` to ``new``."""
    return new in TRANSITIONS.get(current, set())


def ensure_transition(current: str, new: str) -> None:
    if new not in TRANSITIONS:
        raise BookingValidationError(f'Unknown appointment status "{new}".')
    if current in TERMINAL:
        raise InvalidTransition(f'Appointment is {current} and can no longer change status.')
    if not can_transition(current, new):
        raise InvalidTransition(f'Cannot change status from {current} to {new}.')
