import os
from datetime import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('NOTIFICATION_SWEEP_INTERVAL_SECONDS', '0')

from counsel_backend.auth.actor import Actor  # noqa: E402
from counsel_backend.database import Base  # noqa: E402
from counsel_backend.models import availability, notification  # noqa: E402,F401
from counsel_backend.models.booking import Booking, BookingStatus  # noqa: E402
from counsel_backend.models.user import User, UserRole  # noqa: E402
from counsel_backend.notifications.dispatcher import NotificationDispatcher  # noqa: E402

# Monday 5 January 2026, 08:00.
NOW = datetime(2026, 1, 5, 8, 0)


class FixedClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls = []

    def notify_booking(self, transition, booking, actor, previous_slot=None):
        self.calls.append(SimpleNamespace(transition=transition, booking=booking, actor=actor, previous_slot=previous_slot))


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def add_user(db, name: str, role: UserRole, is_active: bool = True) -> User:
    user = User(name=name, email=f'{name.lower()}@example.edu', role=role, is_active=is_active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_booking(db):
    def _make(student_id: int, counsellor_id: int, start: datetime, end: datetime, status=BookingStatus.PENDING):
        record = Booking(
            student_id=student_id,
            counsellor_id=counsellor_id,
            slot_start=start,
            slot_end=end,
            status=status,
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    return _make


@pytest.fixture
def people(db):
    student = add_user(db, 'Asha', UserRole.STUDENT)
    other_student = add_user(db, 'Ben', UserRole.STUDENT)
    counsellor = add_user(db, 'Carmen', UserRole.COUNSELLOR)
    other_counsellor = add_user(db, 'Dev', UserRole.COUNSELLOR)
    admin = add_user(db, 'Erin', UserRole.ADMIN)
    retired_admin = add_user(db, 'Farah', UserRole.ADMIN, is_active=False)

    def actor(user: User) -> Actor:
        return Actor(id=user.id, role=user.role)

    return SimpleNamespace(
        student=actor(student),
        other_student=actor(other_student),
        counsellor=actor(counsellor),
        other_counsellor=actor(other_counsellor),
        admin=actor(admin),
        retired_admin=actor(retired_admin),
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def dispatcher(session_factory, clock):
    return NotificationDispatcher(session_factory=session_factory, clock=clock, ttl_days=30, max_attempts=2)
