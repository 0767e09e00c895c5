"""Booking lifecycle: which transitions exist, who may trigger them, from where.

    pending     -> confirmed | cancelled | completed | no_show
    confirmed   -> rescheduled | completed | cancelled | no_show
    rescheduled -> (as confirmed)
    completed, cancelled, no_show are terminal

A booking a caller does not own is reported as missing rather than
forbidden, so non-owners cannot probe which booking ids exist.
Administrators see every booking but are still bound by the status rules.
"""

import enum
from dataclasses import dataclass

from counsel_backend.auth.actor import Actor
from counsel_backend.core.errors import IllegalTransitionError, NotFoundError
from counsel_backend.models.booking import Booking, BookingStatus
from counsel_backend.models.user import UserRole


class Transition(str, enum.Enum):
    CREATE = 'create'
    APPROVE = 'approve'
    REJECT = 'reject'
    CANCEL = 'cancel'
    RESCHEDULE = 'reschedule'
    COMPLETE = 'complete'
    NO_SHOW = 'no_show'


@dataclass(frozen=True)
class TransitionRule:
    sources: frozenset[BookingStatus]
    target: BookingStatus
    roles: frozenset[UserRole]


_CONFIRMED_LIKE = {BookingStatus.CONFIRMED, BookingStatus.RESCHEDULED}
_OPEN = {BookingStatus.PENDING} | _CONFIRMED_LIKE

TRANSITIONS: dict[Transition, TransitionRule] = {
    Transition.CREATE: TransitionRule(
        sources=frozenset(),
        target=BookingStatus.PENDING,
        roles=frozenset({UserRole.STUDENT}),
    ),
    Transition.APPROVE: TransitionRule(
        sources=frozenset({BookingStatus.PENDING}),
        target=BookingStatus.CONFIRMED,
        roles=frozenset({UserRole.COUNSELLOR, UserRole.ADMIN}),
    ),
    Transition.REJECT: TransitionRule(
        sources=frozenset({BookingStatus.PENDING}),
        target=BookingStatus.CANCELLED,
        roles=frozenset({UserRole.COUNSELLOR, UserRole.ADMIN}),
    ),
    Transition.CANCEL: TransitionRule(
        sources=frozenset(_OPEN),
        target=BookingStatus.CANCELLED,
        roles=frozenset({UserRole.STUDENT, UserRole.ADMIN}),
    ),
    Transition.RESCHEDULE: TransitionRule(
        sources=frozenset(_CONFIRMED_LIKE),
        target=BookingStatus.RESCHEDULED,
        roles=frozenset({UserRole.COUNSELLOR}),
    ),
    Transition.COMPLETE: TransitionRule(
        sources=frozenset(_OPEN),
        target=BookingStatus.COMPLETED,
        roles=frozenset({UserRole.COUNSELLOR}),
    ),
    Transition.NO_SHOW: TransitionRule(
        sources=frozenset(_OPEN),
        target=BookingStatus.NO_SHOW,
        roles=frozenset({UserRole.COUNSELLOR}),
    ),
}

_unmapped = set(Transition) - set(TRANSITIONS)
if _unmapped:
    raise RuntimeError(f'Transitions without rules: {sorted(t.value for t in _unmapped)}')

TERMINAL_STATUSES = frozenset(
    status
    for status in BookingStatus
    if not any(status in rule.sources for rule in TRANSITIONS.values())
)


def owns_booking(actor: Actor, booking: Booking) -> bool:
    if actor.role == UserRole.STUDENT:
        return booking.student_id == actor.id
    if actor.role == UserRole.COUNSELLOR:
        return booking.counsellor_id == actor.id
    return False


def can_view(actor: Actor, booking: Booking) -> bool:
    return actor.is_admin or owns_booking(actor, booking)


def ensure_visible(actor: Actor, booking: Booking | None) -> Booking:
    if booking is None or not can_view(actor, booking):
        raise NotFoundError('Booking not found.')
    return booking


def check_transition(actor: Actor, booking: Booking | None, transition: Transition) -> TransitionRule:
    """Return the rule for ``transition`` if ``actor`` may apply it to ``booking`` now."""
    rule = TRANSITIONS[transition]
    booking = ensure_visible(actor, booking)

    if actor.role not in rule.roles:
        raise IllegalTransitionError(f'A {actor.role.value} cannot {transition.value.replace("_", "-")} a booking.')

    if booking.status not in rule.sources:
        raise IllegalTransitionError(
            f'Cannot {transition.value.replace("_", "-")} a booking that is {booking.status.value}.'
        )

    return rule
