"""Payment record status transitions applied during reconciliation."""

from paybridge.common.errors import InvalidTransitionError

PENDING = "pending"
SUCCESS = "success"
FAILED = "failed"
CANCELLED = "cancelled"

STATUSES = (PENDING, SUCCESS, FAILED, CANCELLED)

# Same-status writes are always allowed so repeated callbacks stay idempotent.
# `success` never regresses; a later COMPLETED may still upgrade failed/cancelled.
ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {PENDING, SUCCESS, FAILED, CANCELLED},
    SUCCESS: {SUCCESS},
    FAILED: {FAILED, SUCCESS, CANCELLED},
    CANCELLED: {CANCELLED, SUCCESS, FAILED},
}


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the status policy."""

    if new not in STATUSES:
        raise InvalidTransitionError(f"Unknown status: {new}")
    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Invalid transition: {current} -> {new}")
