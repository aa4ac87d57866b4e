"""
Hall pass state machine.

A pass starts OUT and moves to exactly one terminal state:

    OUT --return--------> RETURNED   (returned_at set, duration computed)
    OUT --force_return--> RETURNED   (same effect, used by the midnight reset)
    OUT --revoke--------> REVOKED    (administrative override, no duration)

EXPIRED is terminal but no event leads into it; expires_at is display only.
"""

from datetime import datetime, timezone

from hallpass.errors import AlreadyReturnedError, InvalidTransitionError
from hallpass.models import PassStatus

RETURN = 'return'
FORCE_RETURN = 'force_return'
REVOKE = 'revoke'

TRANSITIONS = {
    (PassStatus.OUT, RETURN): PassStatus.RETURNED,
    (PassStatus.OUT, FORCE_RETURN): PassStatus.RETURNED,
    (PassStatus.OUT, REVOKE): PassStatus.REVOKED,
}


def as_utc(dt):
    """Treat naive datetimes read back from the database as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def compute_duration_minutes(issued_at, returned_at):
    """
    Whole minutes between issue and return, floored.

    Clock skew can put returned_at before issued_at; the result is clamped to 0.
    """
    if issued_at is None or returned_at is None:
        return 0
    seconds = (as_utc(returned_at) - as_utc(issued_at)).total_seconds()
    if seconds <= 0:
        return 0
    return int(seconds // 60)


def elapsed_minutes(issued_at, now=None):
    """Minutes an open pass has been out, derived at read time."""
    now = now or datetime.now(timezone.utc)
    return compute_duration_minutes(issued_at, now)


def can_transition(status, event):
    return (PassStatus.from_string(status), event) in TRANSITIONS


def apply_transition(hall_pass, event, now=None):
    """
    Move a pass along one edge of the state machine and apply side effects.

    Raises AlreadyReturnedError when returning a pass that is already closed,
    and InvalidTransitionError for any other edge not in TRANSITIONS. The
    pass is left unchanged when an error is raised.
    """
    current = PassStatus.from_string(hall_pass.status)

    if not can_transition(current, event):
        if event in (RETURN, FORCE_RETURN) and current.is_terminal:
            raise AlreadyReturnedError(
                f"Pass {hall_pass.id} is already {current.value}."
            )
        raise InvalidTransitionError(
            f"Cannot {event.replace('_', ' ')} a pass that is {current.value}."
        )

    target = TRANSITIONS[(current, event)]

    now = now or datetime.now(timezone.utc)
    if target is PassStatus.RETURNED:
        hall_pass.returned_at = now
        hall_pass.duration = compute_duration_minutes(hall_pass.issued_at, now)
    hall_pass.status = target.value
    return hall_pass
