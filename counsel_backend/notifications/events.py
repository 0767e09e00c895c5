"""Notification events produced by booking transitions and screening alerts."""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from counsel_backend.auth.actor import Actor
from counsel_backend.models.booking import Booking
from counsel_backend.models.notification import NotificationPriority, NotificationType
from counsel_backend.notifications.directory import Contact
from counsel_backend.scheduling.state_machine import Transition

ALERT_SEVERITIES = {
    'moderately_severe': NotificationPriority.HIGH,
    'severe': NotificationPriority.URGENT,
}

_ALERT_MESSAGES = {
    'moderately_severe': 'Student showing moderately severe mental health symptoms',
    'severe': 'URGENT: Student showing severe mental health symptoms - immediate attention required',
}


class Audience(str, enum.Enum):
    USER = 'user'
    ADMINS = 'admins'


@dataclass(frozen=True)
class NotificationEvent:
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.MEDIUM
    recipient_id: int | None = None
    audience: Audience = Audience.USER
    sender_id: int | None = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BookingSnapshot:
    """Detached copy of a booking, safe to hand to deferred work."""

    id: int
    student_id: int
    counsellor_id: int
    slot_start: datetime
    slot_end: datetime
    status: str
    cancellation_reason: str | None = None
    reschedule_reason: str | None = None

    @classmethod
    def from_booking(cls, booking: Booking) -> 'BookingSnapshot':
        return cls(
            id=booking.id,
            student_id=booking.student_id,
            counsellor_id=booking.counsellor_id,
            slot_start=booking.slot_start,
            slot_end=booking.slot_end,
            status=booking.status.value,
            cancellation_reason=booking.cancellation_reason,
            reschedule_reason=booking.reschedule_reason,
        )


def describe_slot(start: datetime) -> str:
    return start.strftime('%A %d %B %Y at %H:%M')


def _slot_payload(start: datetime, end: datetime) -> dict[str, str]:
    return {'start': start.isoformat(), 'end': end.isoformat()}


def _base_payload(transition: Transition, booking: BookingSnapshot, actor: Actor) -> dict[str, Any]:
    return {
        'booking_id': booking.id,
        'action': transition.value,
        'actor_role': actor.role.value,
        'slot': _slot_payload(booking.slot_start, booking.slot_end),
    }


@dataclass(frozen=True)
class _Context:
    booking: BookingSnapshot
    actor: Actor
    student: str
    counsellor: str
    payload: dict[str, Any]
    previous_slot: tuple[datetime, datetime] | None


def _created(ctx: _Context) -> list[NotificationEvent]:
    return [
        NotificationEvent(
            type=NotificationType.BOOKING,
            title='New Booking Request',
            message=f'{ctx.student} requested a session on {describe_slot(ctx.booking.slot_start)}.',
            recipient_id=ctx.booking.counsellor_id,
            sender_id=ctx.booking.student_id,
            payload=ctx.payload,
        )
    ]


def _approved(ctx: _Context) -> list[NotificationEvent]:
    return [
        NotificationEvent(
            type=NotificationType.BOOKING,
            title='Session Approved',
            message=f'Your session on {describe_slot(ctx.booking.slot_start)} was approved by {ctx.counsellor}.',
            recipient_id=ctx.booking.student_id,
            sender_id=ctx.actor.id,
            payload=ctx.payload,
        )
    ]


def _rejected(ctx: _Context) -> list[NotificationEvent]:
    reason = ctx.booking.cancellation_reason or 'No reason given'
    return [
        NotificationEvent(
            type=NotificationType.CANCELLATION,
            title='Session Request Declined',
            message=(
                f'Your session request for {describe_slot(ctx.booking.slot_start)} was declined. '
                f'Reason: {reason}'
            ),
            priority=NotificationPriority.HIGH,
            recipient_id=ctx.booking.student_id,
            sender_id=ctx.actor.id,
            payload=ctx.payload,
        )
    ]


def _cancelled(ctx: _Context) -> list[NotificationEvent]:
    events = [
        NotificationEvent(
            type=NotificationType.CANCELLATION,
            title='Session Cancelled',
            message=f'The session with {ctx.student} on {describe_slot(ctx.booking.slot_start)} was cancelled.',
            priority=NotificationPriority.HIGH,
            recipient_id=ctx.booking.counsellor_id,
            sender_id=ctx.actor.id,
            payload=ctx.payload,
        )
    ]
    if ctx.actor.is_admin:
        events.append(
            NotificationEvent(
                type=NotificationType.CANCELLATION,
                title='Session Cancelled',
                message=(
                    f'Your session with {ctx.counsellor} on {describe_slot(ctx.booking.slot_start)} '
                    'was cancelled by an administrator.'
                ),
                priority=NotificationPriority.HIGH,
                recipient_id=ctx.booking.student_id,
                sender_id=ctx.actor.id,
                payload=ctx.payload,
            )
        )
    return events


def _rescheduled(ctx: _Context) -> list[NotificationEvent]:
    payload = dict(ctx.payload)
    if ctx.previous_slot is not None:
        payload['old'] = _slot_payload(*ctx.previous_slot)
    payload['new'] = _slot_payload(ctx.booking.slot_start, ctx.booking.slot_end)
    if ctx.booking.reschedule_reason:
        payload['reason'] = ctx.booking.reschedule_reason

    moved_from = f' from {describe_slot(ctx.previous_slot[0])}' if ctx.previous_slot else ''
    return [
        NotificationEvent(
            type=NotificationType.RESCHEDULE,
            title='Session Rescheduled',
            message=(
                f'{ctx.counsellor} moved your session{moved_from} '
                f'to {describe_slot(ctx.booking.slot_start)}.'
            ),
            priority=NotificationPriority.HIGH,
            recipient_id=ctx.booking.student_id,
            sender_id=ctx.actor.id,
            payload=payload,
        )
    ]


def _completed(ctx: _Context) -> list[NotificationEvent]:
    return [
        NotificationEvent(
            type=NotificationType.SESSION_REMINDER,
            title='Session Completed',
            message=f'Your session with {ctx.counsellor} on {describe_slot(ctx.booking.slot_start)} is complete.',
            recipient_id=ctx.booking.student_id,
            sender_id=ctx.actor.id,
            payload=ctx.payload,
        )
    ]


def _no_show(ctx: _Context) -> list[NotificationEvent]:
    return [
        NotificationEvent(
            type=NotificationType.SYSTEM,
            title='Missed Session',
            message=(
                f'You were marked as not attending your session with {ctx.counsellor} '
                f'on {describe_slot(ctx.booking.slot_start)}.'
            ),
            recipient_id=ctx.booking.student_id,
            sender_id=ctx.actor.id,
            payload=ctx.payload,
        ),
        NotificationEvent(
            type=NotificationType.MENTAL_HEALTH_ALERT,
            title='No-Show Alert',
            message=f'Student {ctx.student} missed their session with {ctx.counsellor} - potential concern',
            priority=NotificationPriority.HIGH,
            audience=Audience.ADMINS,
            payload={
                **ctx.payload,
                'student_id': ctx.booking.student_id,
                'counsellor_id': ctx.booking.counsellor_id,
            },
        ),
    ]


_BUILDERS: dict[Transition, Callable[[_Context], list[NotificationEvent]]] = {
    Transition.CREATE: _created,
    Transition.APPROVE: _approved,
    Transition.REJECT: _rejected,
    Transition.CANCEL: _cancelled,
    Transition.RESCHEDULE: _rescheduled,
    Transition.COMPLETE: _completed,
    Transition.NO_SHOW: _no_show,
}

_unmapped = set(Transition) - set(_BUILDERS)
if _unmapped:
    raise RuntimeError(f'Transitions without notifications: {sorted(t.value for t in _unmapped)}')


def booking_events(
    transition: Transition,
    booking: BookingSnapshot,
    actor: Actor,
    student: Contact | None,
    counsellor: Contact | None,
    previous_slot: tuple[datetime, datetime] | None = None,
) -> list[NotificationEvent]:
    ctx = _Context(
        booking=booking,
        actor=actor,
        student=student.name if student else 'A student',
        counsellor=counsellor.name if counsellor else 'your counsellor',
        payload=_base_payload(transition, booking, actor),
        previous_slot=previous_slot,
    )
    return _BUILDERS[transition](ctx)


def screening_alert_events(screening_id: str, severity: str, student_id: int, now: datetime) -> list[NotificationEvent]:
    priority = ALERT_SEVERITIES.get(severity)
    if priority is None:
        return []
    return [
        NotificationEvent(
            type=NotificationType.MENTAL_HEALTH_ALERT,
            title='Mental Health Alert',
            message=_ALERT_MESSAGES[severity],
            priority=priority,
            audience=Audience.ADMINS,
            payload={
                'screening_id': screening_id,
                'severity': severity,
                'student_id': student_id,
                'timestamp': now.isoformat(),
            },
        )
    ]
