"""Booking model definitions."""

import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, func
from counsel_backend.database import Base


class BookingStatus(str, enum.Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    RESCHEDULED = 'rescheduled'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    NO_SHOW = 'no_show'


# Statuses that occupy the counsellor's calendar.
ACTIVE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.RESCHEDULED})


class Booking(Base):
    """A student's requested or confirmed session with a counsellor."""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    counsellor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    slot_start = Column(DateTime, nullable=False)
    slot_end = Column(DateTime, nullable=False)
    status = Column(
        Enum(
            BookingStatus,
            name='booking_status',
            native_enum=False,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    notes = Column(String)
    counsellor_notes = Column(String)
    session_summary = Column(String)
    cancellation_reason = Column(String)
    reschedule_reason = Column(String)
    actual_start_time = Column(DateTime)
    actual_end_time = Column(DateTime)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
