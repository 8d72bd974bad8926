from billing.errors import InvalidTransitionError

PENDING_PAYMENT = "pending_payment"
CONFIRMED = "confirmed"
COMPLETED = "completed"
CANCELLED = "cancelled"

BOOKING_STATUSES = (PENDING_PAYMENT, CONFIRMED, COMPLETED, CANCELLED)

_ALLOWED_TRANSITIONS = {
    PENDING_PAYMENT: {CONFIRMED, CANCELLED},
    CONFIRMED: {COMPLETED, CANCELLED},
    COMPLETED: set(),
    CANCELLED: set(),
}


def allowed_predecessors(target: str) -> set:
    return {src for src, targets in _ALLOWED_TRANSITIONS.items() if target in targets}


def is_terminal(status: str) -> bool:
    return not _ALLOWED_TRANSITIONS.get(status)


def validate_transition(current: str, target: str) -> None:
    """Raise InvalidTransitionError unless current -> target is legal."""
    if target not in _ALLOWED_TRANSITIONS.get(current, set()):
        if current == target == CONFIRMED:
            raise InvalidTransitionError(current, target, "Booking already confirmed")
        if current == target == CANCELLED:
            raise InvalidTransitionError(current, target, "Booking already cancelled")
        if is_terminal(current):
            raise InvalidTransitionError(current, target, f"Booking is already {current}")
        raise InvalidTransitionError(current, target)
