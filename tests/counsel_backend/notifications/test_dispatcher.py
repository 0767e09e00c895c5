from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from counsel_backend.auth.actor import Actor
from counsel_backend.models.notification import (
    MAX_TITLE_LENGTH,
    Notification,
    NotificationPriority,
    NotificationType,
)
from counsel_backend.models.user import UserRole
from counsel_backend.notifications.directory import Contact
from counsel_backend.notifications.dispatcher import DeferredDispatcher, NotificationDispatcher
from counsel_backend.notifications.events import (
    Audience,
    BookingSnapshot,
    NotificationEvent,
    booking_events,
)
from counsel_backend.scheduling.state_machine import Transition


def snapshot(student_id: int = 1, counsellor_id: int = 2, status: str = 'pending') -> BookingSnapshot:
    return BookingSnapshot(
        id=7,
        student_id=student_id,
        counsellor_id=counsellor_id,
        slot_start=datetime(2026, 1, 5, 10, 0),
        slot_end=datetime(2026, 1, 5, 11, 0),
        status=status,
    )


STUDENT_CONTACT = Contact(id=1, name='Asha', email='asha@example.edu')
COUNSELLOR_CONTACT = Contact(id=2, name='Carmen', email='carmen@example.edu')


class FlakySessionFactory:
    """Fails the first ``failures`` commits, then behaves normally."""

    def __init__(self, session_factory, failures: int) -> None:
        self.session_factory = session_factory
        self.failures = failures
        self.attempts = 0

    def __call__(self):
        session = self.session_factory()
        if self.failures > 0:
            self.failures -= 1
            self.attempts += 1

            def broken_commit():
                raise OperationalError('INSERT', {}, Exception('database is locked'))

            session.commit = broken_commit
        return session


class StaticDirectory:
    def __init__(self, admins: set[int]) -> None:
        self.admins = admins

    def resolve(self, user_id: int) -> Contact | None:
        return None

    def list_active_admins(self) -> set[int]:
        return self.admins


def test_created_event_goes_to_counsellor() -> None:
    events = booking_events(
        Transition.CREATE,
        snapshot(),
        Actor(id=1, role=UserRole.STUDENT),
        STUDENT_CONTACT,
        COUNSELLOR_CONTACT,
    )

    assert [(event.recipient_id, event.type, event.priority) for event in events] == [
        (2, NotificationType.BOOKING, NotificationPriority.MEDIUM),
    ]
    assert 'Asha' in events[0].message
    assert events[0].payload['slot'] == {'start': '2026-01-05T10:00:00', 'end': '2026-01-05T11:00:00'}


def test_admin_cancellation_notifies_both_parties() -> None:
    events = booking_events(
        Transition.CANCEL,
        snapshot(status='cancelled'),
        Actor(id=9, role=UserRole.ADMIN),
        STUDENT_CONTACT,
        COUNSELLOR_CONTACT,
    )

    assert {event.recipient_id for event in events} == {1, 2}
    assert {event.type for event in events} == {NotificationType.CANCELLATION}


def test_student_cancellation_notifies_counsellor_only() -> None:
    events = booking_events(
        Transition.CANCEL,
        snapshot(status='cancelled'),
        Actor(id=1, role=UserRole.STUDENT),
        STUDENT_CONTACT,
        COUNSELLOR_CONTACT,
    )

    assert [event.recipient_id for event in events] == [2]


def test_reschedule_event_carries_old_and_new_slots() -> None:
    moved = BookingSnapshot(
        id=7,
        student_id=1,
        counsellor_id=2,
        slot_start=datetime(2026, 1, 5, 14, 0),
        slot_end=datetime(2026, 1, 5, 15, 0),
        status='rescheduled',
    )

    (event,) = booking_events(
        Transition.RESCHEDULE,
        moved,
        Actor(id=2, role=UserRole.COUNSELLOR),
        STUDENT_CONTACT,
        COUNSELLOR_CONTACT,
        previous_slot=(datetime(2026, 1, 5, 10, 0), datetime(2026, 1, 5, 11, 0)),
    )

    assert event.type == NotificationType.RESCHEDULE
    assert event.payload['old'] == {'start': '2026-01-05T10:00:00', 'end': '2026-01-05T11:00:00'}
    assert event.payload['new'] == {'start': '2026-01-05T14:00:00', 'end': '2026-01-05T15:00:00'}


def test_events_fall_back_to_generic_names_when_users_are_unknown() -> None:
    (event,) = booking_events(
        Transition.APPROVE,
        snapshot(status='confirmed'),
        Actor(id=2, role=UserRole.COUNSELLOR),
        None,
        None,
    )

    assert 'your counsellor' in event.message


def test_dispatch_persists_with_expiry(db, people, dispatcher, clock) -> None:
    event = NotificationEvent(
        type=NotificationType.SYSTEM,
        title='Welcome',
        message='Your account is ready.',
        recipient_id=people.student.id,
    )

    assert dispatcher.dispatch(event) == 1

    stored = db.query(Notification).one()
    assert stored.recipient_id == people.student.id
    assert stored.is_read is False
    assert stored.expires_at == clock.now + timedelta(days=30)


def test_dispatch_truncates_long_titles(db, people, dispatcher) -> None:
    event = NotificationEvent(
        type=NotificationType.SYSTEM,
        title='t' * (MAX_TITLE_LENGTH + 50),
        message='m',
        recipient_id=people.student.id,
    )

    dispatcher.dispatch(event)

    assert len(db.query(Notification).one().title) == MAX_TITLE_LENGTH


def test_admin_audience_fans_out_to_active_admins_only(db, people, dispatcher) -> None:
    event = NotificationEvent(
        type=NotificationType.MENTAL_HEALTH_ALERT,
        title='Alert',
        message='Check in with student',
        audience=Audience.ADMINS,
    )

    assert dispatcher.dispatch(event) == 1

    assert [n.recipient_id for n in db.query(Notification).all()] == [people.admin.id]


def test_admin_audience_with_no_admins_stores_nothing(db, session_factory, clock) -> None:
    dispatcher = NotificationDispatcher(session_factory=session_factory, directory=StaticDirectory(set()), clock=clock)
    event = NotificationEvent(type=NotificationType.SYSTEM, title='t', message='m', audience=Audience.ADMINS)

    assert dispatcher.dispatch(event) == 0
    assert db.query(Notification).count() == 0


@pytest.mark.parametrize(
    ('severity', 'priority'),
    [('moderately_severe', NotificationPriority.HIGH), ('severe', NotificationPriority.URGENT)],
)
def test_screening_alert_reaches_admins(db, people, dispatcher, severity: str, priority: NotificationPriority) -> None:
    assert dispatcher.alert_screening('scr-1', severity, people.student.id) == 1

    alert = db.query(Notification).one()
    assert alert.recipient_id == people.admin.id
    assert alert.type == NotificationType.MENTAL_HEALTH_ALERT
    assert alert.priority == priority
    assert alert.payload['screening_id'] == 'scr-1'
    assert alert.payload['student_id'] == people.student.id


def test_mild_screening_raises_no_alert(db, people, dispatcher) -> None:
    assert dispatcher.alert_screening('scr-2', 'mild', people.student.id) == 0
    assert db.query(Notification).count() == 0


def test_dispatch_retries_transient_failures(db, people, session_factory, clock) -> None:
    flaky = FlakySessionFactory(session_factory, failures=1)
    dispatcher = NotificationDispatcher(
        session_factory=flaky,
        directory=StaticDirectory({people.admin.id}),
        clock=clock,
        max_attempts=3,
    )
    event = NotificationEvent(type=NotificationType.SYSTEM, title='t', message='m', recipient_id=people.student.id)

    assert dispatcher.dispatch(event) == 1
    assert flaky.attempts == 1
    assert db.query(Notification).count() == 1


def test_dispatch_gives_up_without_raising(db, people, session_factory, clock) -> None:
    flaky = FlakySessionFactory(session_factory, failures=5)
    dispatcher = NotificationDispatcher(
        session_factory=flaky,
        directory=StaticDirectory(set()),
        clock=clock,
        max_attempts=2,
    )
    event = NotificationEvent(type=NotificationType.SYSTEM, title='t', message='m', recipient_id=people.student.id)

    assert dispatcher.dispatch(event) == 0
    assert flaky.attempts == 2
    assert db.query(Notification).count() == 0


def test_notify_booking_swallows_directory_failures(people, session_factory, clock) -> None:
    class BrokenDirectory(StaticDirectory):
        def resolve(self, user_id: int) -> Contact | None:
            raise RuntimeError('directory offline')

    dispatcher = NotificationDispatcher(session_factory=session_factory, directory=BrokenDirectory(set()), clock=clock)

    assert dispatcher.notify_booking(Transition.CREATE, snapshot(), people.student) == 0


def test_delivery_hooks_receive_each_recipient(people, session_factory, clock) -> None:
    delivered = []

    def failing_hook(event, contact):
        raise RuntimeError('smtp refused')

    dispatcher = NotificationDispatcher(
        session_factory=session_factory,
        clock=clock,
        delivery_hooks=[failing_hook, lambda event, contact: delivered.append((event.title, contact.email))],
    )
    event = NotificationEvent(type=NotificationType.SYSTEM, title='Hello', message='m', audience=Audience.ADMINS)

    assert dispatcher.dispatch(event) == 1
    assert delivered == [('Hello', 'erin@example.edu')]


def test_sweep_removes_only_expired_notifications(db, people, session_factory, clock) -> None:
    dispatcher = NotificationDispatcher(session_factory=session_factory, clock=clock, ttl_days=1)
    event = NotificationEvent(type=NotificationType.SYSTEM, title='t', message='m', recipient_id=people.student.id)
    dispatcher.dispatch(event)

    assert dispatcher.sweep_expired() == 0

    clock.now = clock.now + timedelta(days=1, minutes=1)
    dispatcher.dispatch(event)

    assert dispatcher.sweep_expired() == 1
    assert db.query(Notification).count() == 1


def test_zero_ttl_keeps_notifications_forever(db, people, session_factory, clock) -> None:
    dispatcher = NotificationDispatcher(session_factory=session_factory, clock=clock, ttl_days=0)
    dispatcher.dispatch(
        NotificationEvent(type=NotificationType.SYSTEM, title='t', message='m', recipient_id=people.student.id)
    )
    clock.now = clock.now + timedelta(days=3650)

    assert dispatcher.sweep_expired() == 0
    assert db.query(Notification).one().expires_at is None


def test_deferred_dispatcher_queues_background_task(dispatcher, people) -> None:
    class RecordingTasks:
        def __init__(self) -> None:
            self.tasks = []

        def add_task(self, func, *args, **kwargs) -> None:
            self.tasks.append((func, args))

    tasks = RecordingTasks()

    DeferredDispatcher(dispatcher, tasks).notify_booking(Transition.CREATE, snapshot(), people.student)

    assert len(tasks.tasks) == 1
    func, args = tasks.tasks[0]
    assert func == dispatcher.notify_booking
    assert args[0] == Transition.CREATE
