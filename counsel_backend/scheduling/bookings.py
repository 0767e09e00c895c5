"""The booking ledger: creation, lifecycle transitions and queries.

Every write to a counsellor's calendar happens while holding that
counsellor's lock, and the conflict check, the write and the commit all
happen inside it. Notifications are handed off only after the commit.

All instants are naive wall-clock datetimes in the service's local time;
timezone-aware input is converted on the way in.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from counsel_backend.auth.actor import Actor
from counsel_backend.core.errors import (
    ConflictError,
    IllegalTransitionError,
    NotFoundError,
    PastTimeError,
    SchedulingError,
    ValidationError,
)
from counsel_backend.models.availability import AvailabilityWindow
from counsel_backend.models.booking import ACTIVE_STATUSES, Booking, BookingStatus
from counsel_backend.models.user import UserRole
from counsel_backend.notifications.events import BookingSnapshot
from counsel_backend.scheduling.conflicts import ConflictDetector, count_overlapping
from counsel_backend.scheduling.locks import CounsellorLocks, counsellor_locks
from counsel_backend.scheduling.slots import Slot, generate_slots
from counsel_backend.scheduling.state_machine import (
    TRANSITIONS,
    Transition,
    check_transition,
    ensure_visible,
)
from counsel_backend.scheduling.templates import find_counsellor

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 600
DEFAULT_REJECTION_REASON = 'Cancelled by counsellor'


class BookingNotifier(Protocol):
    def notify_booking(
        self,
        transition: Transition,
        booking: BookingSnapshot,
        actor: Actor,
        previous_slot: tuple[datetime, datetime] | None = None,
    ) -> object:
        ...


@dataclass(frozen=True)
class TransitionPayload:
    """Optional inputs a transition may use; each transition reads its own."""

    notes: str | None = None
    reason: str | None = None
    new_slot_start: datetime | None = None
    new_slot_end: datetime | None = None
    session_summary: str | None = None
    actual_start: datetime | None = None
    actual_end: datetime | None = None


def normalize_instant(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def clean_text(value: str | None, field: str, max_length: int = MAX_NOTES_LENGTH) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    if len(normalized) > max_length:
        raise ValidationError(field, f'{field} must be {max_length} characters or fewer.')
    return normalized


def validate_interval(start: datetime, end: datetime, field: str = 'slot_end') -> tuple[datetime, datetime]:
    start, end = normalize_instant(start), normalize_instant(end)
    if start >= end:
        raise ValidationError(field, 'Start time must be before end time.')
    return start, end


class BookingService:
    def __init__(
        self,
        db: Session,
        notifier: BookingNotifier,
        clock: Callable[[], datetime] = datetime.now,
        locks: CounsellorLocks = counsellor_locks,
    ) -> None:
        self.db = db
        self.notifier = notifier
        self.clock = clock
        self.locks = locks
        self.detector = ConflictDetector(db)

    # Queries

    def available_slots(self, counsellor_id: int, on_date: date) -> list[Slot]:
        """Free, future slots for a counsellor on a date.

        Advisory only: the check inside ``create_booking`` decides.
        """
        find_counsellor(self.db, counsellor_id)
        windows = self.db.query(AvailabilityWindow).filter(
            AvailabilityWindow.counsellor_id == counsellor_id,
        ).order_by(AvailabilityWindow.position.asc(), AvailabilityWindow.id.asc()).all()

        slots = generate_slots(windows, on_date, counsellor_id)
        if not slots:
            return []

        booked = [
            (booking.slot_start, booking.slot_end)
            for booking in self.detector.active_bookings(
                counsellor_id,
                slots[0].start,
                max(slot.end for slot in slots),
            )
        ]
        now = self.clock()
        return [
            slot
            for slot in slots
            if slot.start > now and count_overlapping(booked, slot.start, slot.end) < slot.capacity
        ]

    def get_booking(self, actor: Actor, booking_id: int) -> Booking:
        return ensure_visible(actor, self._load(booking_id))

    def list_bookings(
        self,
        actor: Actor,
        status: BookingStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Booking]:
        query = self.db.query(Booking)
        if actor.role == UserRole.STUDENT:
            query = query.filter(Booking.student_id == actor.id)
        elif actor.role == UserRole.COUNSELLOR:
            query = query.filter(Booking.counsellor_id == actor.id)

        if status is not None:
            query = query.filter(Booking.status == status)

        return query.order_by(Booking.slot_start.desc(), Booking.id.desc()).offset(offset).limit(limit).all()

    # Mutations

    def create_booking(
        self,
        actor: Actor,
        counsellor_id: int,
        slot_start: datetime,
        slot_end: datetime,
        notes: str | None = None,
    ) -> Booking:
        if actor.role not in TRANSITIONS[Transition.CREATE].roles:
            raise IllegalTransitionError('Only students can request a booking.')

        slot_start, slot_end = validate_interval(slot_start, slot_end)
        notes = clean_text(notes, 'notes')

        # Unknown ids never reach the lock registry.
        find_counsellor(self.db, counsellor_id)
        with self.locks.hold(counsellor_id):
            try:
                if slot_start <= self.clock():
                    raise PastTimeError('Booking must be in the future.')

                find_counsellor(self.db, counsellor_id, for_update=True)
                if self.detector.has_conflict(counsellor_id, slot_start, slot_end):
                    raise ConflictError('Time slot is not available.')

                booking = Booking(
                    student_id=actor.id,
                    counsellor_id=counsellor_id,
                    slot_start=slot_start,
                    slot_end=slot_end,
                    status=TRANSITIONS[Transition.CREATE].target,
                    notes=notes,
                )
                self.db.add(booking)
                self.db.commit()
            except (SQLAlchemyError, SchedulingError):
                self.db.rollback()
                raise

            self.db.refresh(booking)
            snapshot = BookingSnapshot.from_booking(booking)

        logger.info('Booking %s created for counsellor %s by student %s', booking.id, counsellor_id, actor.id)
        self._notify(Transition.CREATE, snapshot, actor)
        return booking

    def transition(
        self,
        actor: Actor,
        booking_id: int,
        transition: Transition,
        payload: TransitionPayload | None = None,
    ) -> Booking:
        payload = payload or TransitionPayload()
        handlers = {
            Transition.APPROVE: self._approve,
            Transition.REJECT: self._reject,
            Transition.CANCEL: self._cancel,
            Transition.RESCHEDULE: self._reschedule,
            Transition.COMPLETE: self._complete,
            Transition.NO_SHOW: self._no_show,
        }
        handler = handlers.get(transition)
        if handler is None:
            raise IllegalTransitionError(f'{transition.value} is not applied to an existing booking.')

        booking = ensure_visible(actor, self._load(booking_id))

        with self.locks.hold(booking.counsellor_id):
            try:
                find_counsellor(self.db, booking.counsellor_id, for_update=True, active_only=False)
                self.db.refresh(booking)
                rule = check_transition(actor, booking, transition)
                previous_slot = handler(booking, payload)
                booking.status = rule.target
                self.db.commit()
            except (SQLAlchemyError, SchedulingError):
                self.db.rollback()
                raise

            self.db.refresh(booking)
            snapshot = BookingSnapshot.from_booking(booking)

        logger.info(
            'Booking %s moved to %s by %s %s',
            booking.id,
            booking.status.value,
            actor.role.value,
            actor.id,
        )
        self._notify(transition, snapshot, actor, previous_slot)
        return booking

    def approve(self, actor: Actor, booking_id: int, notes: str | None = None) -> Booking:
        return self.transition(actor, booking_id, Transition.APPROVE, TransitionPayload(notes=notes))

    def reject(self, actor: Actor, booking_id: int, reason: str | None = None) -> Booking:
        return self.transition(actor, booking_id, Transition.REJECT, TransitionPayload(reason=reason))

    def cancel(self, actor: Actor, booking_id: int, reason: str | None = None) -> Booking:
        return self.transition(actor, booking_id, Transition.CANCEL, TransitionPayload(reason=reason))

    def reschedule(
        self,
        actor: Actor,
        booking_id: int,
        new_slot_start: datetime,
        new_slot_end: datetime,
        reason: str | None = None,
    ) -> Booking:
        return self.transition(
            actor,
            booking_id,
            Transition.RESCHEDULE,
            TransitionPayload(new_slot_start=new_slot_start, new_slot_end=new_slot_end, reason=reason),
        )

    def complete(
        self,
        actor: Actor,
        booking_id: int,
        session_summary: str | None = None,
        notes: str | None = None,
        actual_start: datetime | None = None,
        actual_end: datetime | None = None,
    ) -> Booking:
        return self.transition(
            actor,
            booking_id,
            Transition.COMPLETE,
            TransitionPayload(
                session_summary=session_summary,
                notes=notes,
                actual_start=actual_start,
                actual_end=actual_end,
            ),
        )

    def mark_no_show(self, actor: Actor, booking_id: int, reason: str | None = None) -> Booking:
        return self.transition(actor, booking_id, Transition.NO_SHOW, TransitionPayload(reason=reason))

    def update_notes(self, actor: Actor, booking_id: int, counsellor_notes: str | None) -> Booking:
        booking = ensure_visible(actor, self._load(booking_id))
        if actor.role == UserRole.STUDENT:
            raise IllegalTransitionError('A student cannot edit counsellor notes.')

        counsellor_notes = clean_text(counsellor_notes, 'counsellor_notes')
        with self.locks.hold(booking.counsellor_id):
            try:
                find_counsellor(self.db, booking.counsellor_id, for_update=True, active_only=False)
                booking.counsellor_notes = counsellor_notes
                self.db.commit()
            except (SQLAlchemyError, SchedulingError):
                self.db.rollback()
                raise
        self.db.refresh(booking)
        return booking

    def purge_user_bookings(self, actor: Actor, user_id: int) -> int:
        """Delete a removed user's finished bookings; refused while any are active."""
        if not actor.is_admin:
            raise IllegalTransitionError('Only administrators can delete bookings.')

        involving_user = (Booking.student_id == user_id) | (Booking.counsellor_id == user_id)
        active = self.db.query(Booking.id).filter(
            involving_user,
            Booking.status.in_(ACTIVE_STATUSES),
        ).count()
        if active:
            raise IllegalTransitionError(f'User {user_id} still has {active} active bookings.')

        try:
            deleted = self.db.query(Booking).filter(
                involving_user,
                Booking.status.not_in(ACTIVE_STATUSES),
            ).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info('Deleted %s bookings for removed user %s', deleted, user_id)
        return deleted

    # Transition effects. Each runs under the counsellor's lock and returns
    # the slot the booking occupied before, when it moved.

    def _approve(self, booking: Booking, payload: TransitionPayload) -> None:
        notes = clean_text(payload.notes, 'notes')
        if notes:
            booking.counsellor_notes = notes

    def _reject(self, booking: Booking, payload: TransitionPayload) -> None:
        booking.cancellation_reason = clean_text(payload.reason, 'reason') or DEFAULT_REJECTION_REASON

    def _cancel(self, booking: Booking, payload: TransitionPayload) -> None:
        reason = clean_text(payload.reason, 'reason')
        if reason:
            booking.cancellation_reason = reason

    def _reschedule(self, booking: Booking, payload: TransitionPayload) -> tuple[datetime, datetime]:
        if payload.new_slot_start is None:
            raise ValidationError('new_slot_start', 'A new start time is required.')
        if payload.new_slot_end is None:
            raise ValidationError('new_slot_end', 'A new end time is required.')

        new_start, new_end = validate_interval(payload.new_slot_start, payload.new_slot_end, 'new_slot_end')
        reason = clean_text(payload.reason, 'reason')
        if new_start <= self.clock():
            raise PastTimeError('Rescheduled booking must be in the future.')
        if self.detector.has_conflict(booking.counsellor_id, new_start, new_end, exclude_booking_id=booking.id):
            raise ConflictError('Time slot is not available.')

        previous_slot = (booking.slot_start, booking.slot_end)
        booking.slot_start = new_start
        booking.slot_end = new_end
        if reason:
            booking.reschedule_reason = reason
        return previous_slot

    def _complete(self, booking: Booking, payload: TransitionPayload) -> None:
        actual_start = normalize_instant(payload.actual_start) if payload.actual_start else None
        actual_end = normalize_instant(payload.actual_end) if payload.actual_end else self.clock()
        if actual_start is not None and actual_start >= actual_end:
            raise ValidationError('actual_end', 'Actual end must be after actual start.')

        summary = clean_text(payload.session_summary, 'session_summary', max_length=4000)
        notes = clean_text(payload.notes, 'notes')
        if summary:
            booking.session_summary = summary
        if notes:
            booking.counsellor_notes = notes
        booking.actual_start_time = actual_start
        booking.actual_end_time = actual_end

    def _no_show(self, booking: Booking, payload: TransitionPayload) -> None:
        reason = clean_text(payload.reason, 'reason')
        if reason:
            booking.cancellation_reason = reason

    def _load(self, booking_id: int) -> Booking | None:
        return self.db.query(Booking).filter(Booking.id == booking_id).first()

    def _notify(
        self,
        transition: Transition,
        snapshot: BookingSnapshot,
        actor: Actor,
        previous_slot: tuple[datetime, datetime] | None = None,
    ) -> None:
        try:
            self.notifier.notify_booking(transition, snapshot, actor, previous_slot)
        except Exception:
            logger.exception('Failed to hand off %s notification for booking %s', transition.value, snapshot.id)
