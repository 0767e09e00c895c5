from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from counsel_backend.core import config


def build_engine(url: str, **kwargs):
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, **kwargs)


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_booking_schema_checked = False
_notification_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_booking_schema() -> None:
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    with _schema_lock:
        if _booking_schema_checked:
            return

        inspector = inspect(engine)

        if 'bookings' not in inspector.get_table_names():
            _booking_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('bookings')}
        migration_steps = [
            ('session_summary', 'ALTER TABLE bookings ADD COLUMN session_summary VARCHAR'),
            ('reschedule_reason', 'ALTER TABLE bookings ADD COLUMN reschedule_reason VARCHAR'),
            ('actual_start_time', 'ALTER TABLE bookings ADD COLUMN actual_start_time TIMESTAMP'),
            ('actual_end_time', 'ALTER TABLE bookings ADD COLUMN actual_end_time TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_bookings_counsellor_range '
                    'ON bookings(counsellor_id, slot_start, slot_end)'
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_student_start ON bookings(student_id, slot_start)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_status ON bookings(status)')
            )

        _booking_schema_checked = True


def ensure_notification_schema() -> None:
    global _notification_schema_checked

    if _notification_schema_checked:
        return

    with _schema_lock:
        if _notification_schema_checked:
            return

        inspector = inspect(engine)

        if 'notifications' not in inspector.get_table_names():
            _notification_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('notifications')}
        migration_steps = [
            ('payload', 'ALTER TABLE notifications ADD COLUMN payload JSON'),
            ('expires_at', 'ALTER TABLE notifications ADD COLUMN expires_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_notifications_recipient_read '
                    'ON notifications(recipient_id, is_read)'
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_notifications_expires ON notifications(expires_at)')
            )

        _notification_schema_checked = True
