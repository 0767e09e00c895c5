"""Best-effort notification fan-out.

Dispatch runs after the booking transaction has committed, in its own
session. A failure here is logged and dropped: it must never undo or fail
the transition that produced it. Each notification is written up to
``max_attempts`` times before it is given up on.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from counsel_backend.auth.actor import Actor
from counsel_backend.core import config
from counsel_backend.database import SessionLocal
from counsel_backend.models.notification import MAX_MESSAGE_LENGTH, MAX_TITLE_LENGTH, Notification
from counsel_backend.notifications.directory import Contact, SqlUserDirectory, UserDirectory
from counsel_backend.notifications.events import (
    Audience,
    BookingSnapshot,
    NotificationEvent,
    booking_events,
    screening_alert_events,
)
from counsel_backend.scheduling.state_machine import Transition

logger = logging.getLogger(__name__)

DeliveryHook = Callable[[NotificationEvent, Contact | None], None]


class NotificationDispatcher:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        directory: UserDirectory | None = None,
        clock: Callable[[], datetime] = datetime.now,
        ttl_days: int = config.NOTIFICATION_TTL_DAYS,
        max_attempts: int = config.NOTIFICATION_MAX_ATTEMPTS,
        delivery_hooks: Iterable[DeliveryHook] = (),
    ) -> None:
        self.session_factory = session_factory
        self.directory = directory or SqlUserDirectory(session_factory)
        self.clock = clock
        self.ttl_days = ttl_days
        self.max_attempts = max(1, max_attempts)
        self.delivery_hooks = list(delivery_hooks)

    def recipients_for(self, event: NotificationEvent) -> set[int]:
        if event.audience == Audience.ADMINS:
            return self.directory.list_active_admins()
        if event.recipient_id is None:
            return set()
        return {event.recipient_id}

    def dispatch(self, event: NotificationEvent) -> int:
        """Persist ``event`` for every recipient; returns how many were stored."""
        try:
            recipients = sorted(self.recipients_for(event))
        except Exception:
            logger.exception('Could not resolve recipients for %s notification', event.type.value)
            return 0

        if not recipients:
            logger.info('No recipients for %s notification "%s"', event.type.value, event.title)
            return 0

        if not self._persist(event, recipients):
            return 0

        self._deliver(event, recipients)
        return len(recipients)

    def dispatch_all(self, events: Iterable[NotificationEvent]) -> int:
        return sum(self.dispatch(event) for event in events)

    def notify_booking(
        self,
        transition: Transition,
        booking: BookingSnapshot,
        actor: Actor,
        previous_slot: tuple[datetime, datetime] | None = None,
    ) -> int:
        try:
            student = self.directory.resolve(booking.student_id)
            counsellor = self.directory.resolve(booking.counsellor_id)
            events = booking_events(transition, booking, actor, student, counsellor, previous_slot)
        except Exception:
            logger.exception('Could not compose notifications for booking %s (%s)', booking.id, transition.value)
            return 0
        return self.dispatch_all(events)

    def alert_screening(self, screening_id: str, severity: str, student_id: int) -> int:
        events = screening_alert_events(screening_id, severity, student_id, self.clock())
        created = self.dispatch_all(events)
        if events:
            logger.info('Created %s mental health alerts for severity: %s', created, severity)
        return created

    def sweep_expired(self) -> int:
        """Delete notifications whose expiry has passed."""
        now = self.clock()
        db = self.session_factory()
        try:
            deleted = db.query(Notification).filter(
                Notification.expires_at.is_not(None),
                Notification.expires_at < now,
            ).delete(synchronize_session=False)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info('Cleaned up %s expired notifications', deleted)
        return deleted

    def _expires_at(self) -> datetime | None:
        if self.ttl_days <= 0:
            return None
        return self.clock() + timedelta(days=self.ttl_days)

    def _persist(self, event: NotificationEvent, recipients: list[int]) -> bool:
        expires_at = self._expires_at()
        for attempt in range(1, self.max_attempts + 1):
            db = self.session_factory()
            try:
                db.add_all(
                    Notification(
                        recipient_id=recipient_id,
                        sender_id=event.sender_id,
                        type=event.type,
                        title=event.title[:MAX_TITLE_LENGTH],
                        message=event.message[:MAX_MESSAGE_LENGTH],
                        priority=event.priority,
                        payload=event.payload or None,
                        is_read=False,
                        expires_at=expires_at,
                    )
                    for recipient_id in recipients
                )
                db.commit()
                return True
            except SQLAlchemyError:
                db.rollback()
                logger.warning(
                    'Attempt %s/%s to store %s notification failed',
                    attempt,
                    self.max_attempts,
                    event.type.value,
                    exc_info=True,
                )
            finally:
                db.close()

        logger.error(
            'Dropped %s notification "%s" for %s recipients after %s attempts',
            event.type.value,
            event.title,
            len(recipients),
            self.max_attempts,
        )
        return False

    def _deliver(self, event: NotificationEvent, recipients: list[int]) -> None:
        for hook in self.delivery_hooks:
            for recipient_id in recipients:
                try:
                    hook(event, self.directory.resolve(recipient_id))
                except Exception:
                    logger.exception('Delivery hook failed for %s notification to %s', event.type.value, recipient_id)


class DeferredDispatcher:
    """Queues booking notifications to run after the HTTP response is sent."""

    def __init__(self, dispatcher: NotificationDispatcher, background_tasks: BackgroundTasks) -> None:
        self.dispatcher = dispatcher
        self.background_tasks = background_tasks

    def notify_booking(
        self,
        transition: Transition,
        booking: BookingSnapshot,
        actor: Actor,
        previous_slot: tuple[datetime, datetime] | None = None,
    ) -> None:
        self.background_tasks.add_task(self.dispatcher.notify_booking, transition, booking, actor, previous_slot)


def log_delivery(event: NotificationEvent, recipient: Contact | None) -> None:
    """Default hand-off to the mail service: record what would be sent."""
    if recipient is None or not recipient.email:
        return
    logger.info('Queued "%s" email for %s', event.title, recipient.email)
